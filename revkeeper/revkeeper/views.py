
import os
import json
from typing import Optional, Awaitable
from tornado.web import RequestHandler
from jinja2 import Environment, FileSystemLoader
from .app import RevKeeperApplication
from .manager.supervisor import STATE_CONNECTED


class ServeStatusHandler(RequestHandler):
    app: RevKeeperApplication = None

    def data_received(self, chunk: bytes) -> Optional[Awaitable[None]]:
        pass

    def get(self):
        loader = FileSystemLoader(os.path.dirname(os.path.abspath(__file__)) + '/templates')
        tpl = Environment(loader=loader, autoescape=True).get_template('status.html.j2')

        self.write(tpl.render(**self._get_data()))

    def _get_data(self) -> dict:
        stats = self.app.supervisor.get_stats()
        stats['is_connected'] = stats['state'] == STATE_CONNECTED

        return stats


class ServeJsonStatus(ServeStatusHandler):
    def get(self):
        """ Returns a JSON formatted status page """

        data = self._get_data()
        tunnels = {}
        global_status = data['is_connected']

        for tunnel in data['tunnels']:
            ok = data['is_connected'] and tunnel['is_active']

            tunnels[tunnel['ident']] = {
                'ok': ok,
                'ident': tunnel['ident'] + '=' + str(ok)
            }

        self.add_header('Content-Type', 'application/json')
        self.write(
            json.dumps({
                'status': {
                    'tunnels': tunnels,
                    'ident': 'global_status=' + str(global_status),
                    'ok': global_status
                },
                'data': data
            }, indent=4)
        )
