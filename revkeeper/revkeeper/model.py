
from typing import List, NamedTuple, Optional
from .exceptions import ConfigurationError


MIN_TUNNELS = 1
MAX_TUNNELS = 5
DEFAULT_SSH_PORT = 3422
DEFAULT_HEARTBEAT_INTERVAL_MS = 30000


class TunnelDefinition(NamedTuple):
    """
    Reverse forwarding remote <==> local

    Server listens on remote_host:remote_port, connections are relayed to local_host:local_port
    """

    remote_host: str
    remote_port: int
    local_host: str
    local_port: int

    def __str__(self) -> str:
        return '%s:%i -> %s:%i' % (self.remote_host, self.remote_port, self.local_host, self.local_port)

    @property
    def ident(self) -> str:
        return 'Reverse[' + self.remote_host + ':' + str(self.remote_port) + '][' + \
               self.local_host + ':' + str(self.local_port) + ']'


def clamp_max_tunnels(value: int) -> int:
    return max(MIN_TUNNELS, min(MAX_TUNNELS, int(value)))


class SupervisorConfig(object):
    """
    Single SSH endpoint, multiple reverse tunnels.
    Defines ACCESS to the host where the SSH server is placed at, and what should be exposed there.

    Read-only after construction.
    """

    host: str
    port: int
    username: str
    key_reference: str
    key_passphrase: Optional[str]
    tunnels: List[TunnelDefinition]
    max_tunnels: int
    heartbeat_interval_ms: int
    connect_timeout: int
    keepalive_interval: int
    strict_host_key_checking: bool
    known_hosts_path: Optional[str]
    notify_url: str

    def __init__(self, host: str, username: str, key_reference: str,
                 tunnels: Optional[List[TunnelDefinition]] = None,
                 port: int = DEFAULT_SSH_PORT,
                 max_tunnels: int = MAX_TUNNELS,
                 heartbeat_interval_ms: int = DEFAULT_HEARTBEAT_INTERVAL_MS,
                 key_passphrase: Optional[str] = None,
                 connect_timeout: int = 15,
                 keepalive_interval: int = 15,
                 strict_host_key_checking: bool = True,
                 known_hosts_path: Optional[str] = None,
                 notify_url: str = ''):

        if not host:
            raise ConfigurationError('SSH host is required')

        if not username:
            raise ConfigurationError('SSH username is required')

        if not key_reference:
            raise ConfigurationError('Private key reference is required')

        self.host = host
        self.port = int(port)
        self.username = username
        self.key_reference = key_reference
        self.key_passphrase = key_passphrase
        self.tunnels = list(tunnels) if tunnels else []
        self.max_tunnels = clamp_max_tunnels(max_tunnels)
        self.heartbeat_interval_ms = int(heartbeat_interval_ms)
        self.connect_timeout = connect_timeout
        self.keepalive_interval = keepalive_interval
        self.strict_host_key_checking = strict_host_key_checking
        self.known_hosts_path = known_hosts_path
        self.notify_url = notify_url or ''

    def __str__(self) -> str:
        return 'Host<ssh=%s@%s:%i> (contains %i tunnels, max %i active)' % (
            self.username,
            self.host,
            self.port,
            len(self.tunnels),
            self.max_tunnels
        )

    @property
    def ident(self) -> str:
        return self.username + '@' + self.host + ':' + str(self.port)
