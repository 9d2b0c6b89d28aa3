#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""The app module, containing the app factory function."""

import argparse
import os
import signal
import logging
from tornado.ioloop import IOLoop
from tornado.web import Application

from .revkeeper.settings import Config
from .revkeeper.app import RevKeeperApplication
from .revkeeper.views import ServeStatusHandler, ServeJsonStatus
from .revkeeper.settings import ProdConfig, DevConfig


def start_application(config: Config, action: str):
    if action not in ['start', 'add-to-known-hosts']:
        print('Invalid command name, possible commands: start, add-to-known-hosts')
        return

    revkeeper = RevKeeperApplication(config)

    try:
        if action == 'start':
            signal.signal(signal.SIGTERM, _interrupt)
            revkeeper.main()
            spawn_server(revkeeper, config.PORT, config.LISTEN, config.SECRET_PREFIX)
            return
        elif action == 'add-to-known-hosts':
            revkeeper.add_to_known_hosts()
    except KeyboardInterrupt:
        print('[CTRL] + [C]')
    finally:
        revkeeper.on_application_close()


def _interrupt(signum, frame):
    raise KeyboardInterrupt()


def create_web_application(revkeeper: RevKeeperApplication, secret_prefix: str = '') -> Application:
    ServeStatusHandler.app = revkeeper

    prefix = '/'

    if secret_prefix:
        prefix += secret_prefix + "/"

    return Application([
        (r"" + prefix + "health", ServeJsonStatus),
        (r"" + prefix, ServeStatusHandler)
    ])


def spawn_server(revkeeper: RevKeeperApplication, port: int, address: str = '', secret_prefix: str = ''):
    # disable logger
    hn = logging.NullHandler()
    hn.setLevel(logging.DEBUG)

    if revkeeper.settings.DEBUG is False:
        for logger_name in ['tornado.application', 'tornado.general', 'tornado.access']:
            logging.getLogger(logger_name).addHandler(hn)
            logging.getLogger(logger_name).propagate = False

    # port 0: no status page, the loop only keeps the process in the foreground
    if port:
        create_web_application(revkeeper, secret_prefix).listen(port, address)

    IOLoop.current().start()


def main():
    #
    # Arguments parsing
    #
    parser = argparse.ArgumentParser()
    parser.add_argument(
        '-c',
        '--config',
        help='Path to the configuration file',
        default=os.getenv('REVKEEPER_CONFIG', Config.CONFIG_PATH)
    )
    parser.add_argument(
        '-p',
        '--port',
        help='HTTP port to listen on, 0 disables the status page',
        type=int,
        default=8015
    )
    parser.add_argument(
        '-l',
        '--listen',
        help='Address to listen on, defaults to 0.0.0.0',
        default=''
    )
    parser.add_argument(
        '-s',
        '--secret-prefix',
        default=os.getenv('REVKEEPER_SECRET_PREFIX', ''),
        help='Add a subdirectory prefix to the URL example: https://your-domain.org/some-secret-code-here/health'
    )
    parser.add_argument(
        'action',
        metavar='N',
        type=str,
        help='Action. Choice: start, add-to-known-hosts'
    )
    parser.add_argument(
        '-e',
        '--env',
        help='Environment: debug, prod',
        default=os.getenv('REVKEEPER_ENV', 'prod')
    )

    parsed = parser.parse_args()
    config = ProdConfig() if parsed.env == 'prod' else DevConfig()
    config.CONFIG_PATH = parsed.config
    config.PORT = parsed.port
    config.LISTEN = parsed.listen
    config.SECRET_PREFIX = parsed.secret_prefix

    start_application(config, parsed.action)


if __name__ == '__main__':
    main()
