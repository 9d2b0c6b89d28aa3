
import os
from .manager.supervisor import ConnectionSupervisor
from .model import SupervisorConfig
from .factory import ConfigurationFactory
from .settings import Config
from .audit import LoggerAuditSink, SqliteAuditSink, CompositeAuditSink
from .credentials import FileKeySource
from .ssh import SSHConnector, fetch_host_key, known_hosts_entry_name
from .logger import setup_logger, Logger

"""
    Application main() - starts the supervisor that keeps reverse tunnels alive in a background thread
"""


class RevKeeperApplication(object):
    config: ConfigurationFactory
    settings: Config
    supervisor: ConnectionSupervisor

    def __init__(self, config: Config, supervisor: ConnectionSupervisor = None):
        setup_logger(config.LOG_PATH, config.LOG_LEVEL)
        self.config = ConfigurationFactory(config)
        self.settings = config
        self.supervisor = supervisor if supervisor is not None else self._create_supervisor()

    def _create_supervisor(self) -> ConnectionSupervisor:
        definition = self.config.provide_configuration()
        sinks = [LoggerAuditSink()]

        if self.config.provide_audit_db_path():
            sinks.append(SqliteAuditSink(self.config.provide_audit_db_path()))

        return ConnectionSupervisor(
            config=definition,
            connector=SSHConnector(
                timeout=definition.connect_timeout,
                keepalive_interval=definition.keepalive_interval,
                strict_host_key_checking=definition.strict_host_key_checking,
                known_hosts_path=definition.known_hosts_path
            ),
            key_source=FileKeySource(definition.key_reference, definition.key_passphrase),
            audit=CompositeAuditSink(sinks)
        )

    @property
    def definition(self) -> SupervisorConfig:
        return self.config.provide_configuration()

    def main(self):
        """ Start tunnelling """

        Logger.info('Starting supervision of %s' % self.definition)
        self.supervisor.start()

    def add_to_known_hosts(self):
        """ Fetches the server key and appends it to the known hosts file """

        definition = self.definition
        path = os.path.expanduser(definition.known_hosts_path or '~/.ssh/known_hosts')
        entry = known_hosts_entry_name(definition.host, definition.port)

        os.makedirs(os.path.dirname(path), mode=0o700, exist_ok=True)

        content = ''

        if os.path.isfile(path):
            with open(path, 'rb') as f:
                content = f.read().decode('utf-8')

        if any(line.split(' ')[0] == entry for line in content.splitlines()):
            Logger.info('%s already present in the %s' % (entry, path))
            return

        key = fetch_host_key(definition.host, definition.port, timeout=definition.connect_timeout)
        Logger.info('Adding %s (%s) to the %s' % (entry, key.get_name(), path))

        with open(path, 'ab') as f:
            if content and not content.endswith("\n"):
                f.write(b"\n")

            f.write(('%s %s %s\n' % (entry, key.get_name(), key.get_base64())).encode('utf-8'))

    def on_application_close(self):
        Logger.debug('Closing the application')
        self.supervisor.stop(self.settings.STOP_TIMEOUT_MS)
