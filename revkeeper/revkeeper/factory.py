
import os
from importlib.machinery import SourceFileLoader
from importlib.util import spec_from_file_location, module_from_spec
from typing import List, Optional, Union
from .settings import Config
from .exceptions import ConfigurationError
from .model import SupervisorConfig, TunnelDefinition, DEFAULT_SSH_PORT, MAX_TUNNELS, DEFAULT_HEARTBEAT_INTERVAL_MS
from .logger import Logger


MAX_PORT = 65535


def parse_port(raw) -> int:
    """ Unparsable or out of range values become 0 """

    try:
        port = int(str(raw).strip())
    except ValueError:
        return 0

    if port < 0 or port > MAX_PORT:
        return 0

    return port


def parse_tunnels(tunnels: Optional[str]) -> List[TunnelDefinition]:
    """
    Parses "remoteHost:remotePort:localHost:localPort,remoteHost2:remotePort2:localHost2:localPort2"

    Empty entries and empty fields are dropped, entries without exactly 4 fields are skipped

    :param tunnels:
    :return:
    """

    definitions = []

    if not tunnels or not tunnels.strip():
        return definitions

    for entry in [e for e in tunnels.split(',') if e]:
        parts = [part for part in entry.split(':') if part]

        if len(parts) != 4:
            Logger.debug('Skipping malformed tunnel definition "%s"' % entry)
            continue

        definitions.append(TunnelDefinition(
            remote_host=parts[0],
            remote_port=parse_port(parts[1]),
            local_host=parts[2],
            local_port=parse_port(parts[3])
        ))

    return definitions


class ConfigurationFactory(object):
    """
    Factory method for the model, reads a Python configuration file
    """

    _definition: SupervisorConfig
    _raw: object

    def __init__(self, config: Config):
        self._raw = self._load_from_file(config.CONFIG_PATH)

        try:
            self._definition = self._parse(self._raw)
        except (AttributeError, ValueError, TypeError) as e:
            raise ConfigurationError('Error while parsing "%s". %s' % (config.CONFIG_PATH, str(e)))

    @staticmethod
    def _load_from_file(path: str):
        Logger.debug('Looking up configuration at "%s" path' % path)

        if not os.path.isfile(path):
            raise ConfigurationError('Specified configuration file "%s" does not exist' % path)

        spec = spec_from_file_location("Conf", path, loader=SourceFileLoader("Conf", path))
        module = module_from_spec(spec)
        spec.loader.exec_module(module)

        return module

    def provide_configuration(self) -> SupervisorConfig:
        return self._definition

    def provide_audit_db_path(self) -> str:
        return getattr(self._raw, 'AUDIT_DB_PATH', '') or ''

    def _parse(self, raw) -> SupervisorConfig:
        raw_opts = dir(raw)

        return SupervisorConfig(
            host=raw.SSH_HOST,
            port=int(raw.SSH_PORT) if 'SSH_PORT' in raw_opts else DEFAULT_SSH_PORT,
            username=raw.SSH_USER,
            key_reference=raw.SSH_KEY,
            key_passphrase=raw.SSH_KEY_PASSPHRASE if 'SSH_KEY_PASSPHRASE' in raw_opts else None,
            tunnels=self._parse_tunnels(raw.TUNNELS if 'TUNNELS' in raw_opts else ''),
            max_tunnels=raw.MAX_TUNNELS if 'MAX_TUNNELS' in raw_opts else MAX_TUNNELS,
            heartbeat_interval_ms=raw.HEARTBEAT_INTERVAL_MS if 'HEARTBEAT_INTERVAL_MS' in raw_opts
            else DEFAULT_HEARTBEAT_INTERVAL_MS,
            connect_timeout=raw.CONNECT_TIMEOUT if 'CONNECT_TIMEOUT' in raw_opts else 15,
            keepalive_interval=raw.KEEPALIVE_INTERVAL if 'KEEPALIVE_INTERVAL' in raw_opts else 15,
            strict_host_key_checking=raw.STRICT_HOST_KEY_CHECKING if 'STRICT_HOST_KEY_CHECKING' in raw_opts
            else True,
            known_hosts_path=raw.KNOWN_HOSTS_PATH if 'KNOWN_HOSTS_PATH' in raw_opts else None,
            notify_url=raw.NOTIFY_URL if 'NOTIFY_URL' in raw_opts else ''
        )

    @staticmethod
    def _parse_tunnels(raw_tunnels: Union[str, list]) -> List[TunnelDefinition]:
        if isinstance(raw_tunnels, str):
            return parse_tunnels(raw_tunnels)

        definitions = []

        for raw_definition in raw_tunnels:
            definitions.append(TunnelDefinition(
                remote_host=raw_definition.get('remote').get('host', '127.0.0.1'),
                remote_port=parse_port(raw_definition.get('remote').get('port')),
                local_host=raw_definition.get('local').get('host', '127.0.0.1'),
                local_port=parse_port(raw_definition.get('local').get('port'))
            ))

        return definitions
