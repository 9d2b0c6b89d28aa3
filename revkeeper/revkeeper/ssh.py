
import os
import select
import socket
import paramiko
from threading import Thread, RLock
from typing import List, Optional, Tuple
from .interfaces import ConnectorInterface, SessionInterface, ForwardInterface
from .model import TunnelDefinition
from .exceptions import ForwardingError
from .logger import Logger


BUFFER_SIZE = 16384


class ReverseForward(ForwardInterface):
    """
    Remote port forwarding (the -R switch of OpenSSH) on top of an already authenticated session

    The server listens on tunnel.remote_host:tunnel.remote_port, every accepted connection arrives as a channel
    and is relayed to tunnel.local_host:tunnel.local_port in its own thread.
    """

    tunnel: TunnelDefinition
    bound_port: int
    _session: 'SSHSession'
    _started: bool

    def __init__(self, session: 'SSHSession', tunnel: TunnelDefinition, connect_timeout: int = 15):
        self.tunnel = tunnel
        self.bound_port = tunnel.remote_port
        self._session = session
        self._started = False
        self._connect_timeout = connect_timeout

    @property
    def is_started(self) -> bool:
        return self._started

    def start(self):
        if self._started:
            return

        transport = self._session.transport

        if transport is None or not transport.is_active():
            raise ForwardingError('Cannot forward %s, the session is not connected' % str(self.tunnel))

        try:
            bound_port = transport.request_port_forward(
                self.tunnel.remote_host, self.tunnel.remote_port, handler=self._session.dispatch
            )
        except paramiko.SSHException as e:
            raise ForwardingError('Server refused forwarding of %s: %s' % (str(self.tunnel), str(e))) from e

        # port 0 means "allocate any", the server tells which one it picked
        self.bound_port = bound_port or self.tunnel.remote_port
        self._started = True

    def stop(self):
        if not self._started:
            return

        self._started = False
        transport = self._session.transport

        if transport is not None and transport.is_active():
            transport.cancel_port_forward(self.tunnel.remote_host, self.bound_port)

    def accepts(self, port: int) -> bool:
        return self._started and self.bound_port == port

    def handle_channel(self, channel: paramiko.Channel, origin: Tuple[str, int]):
        """
        Called by paramiko on the transport thread, must not block
        """

        thr = Thread(target=self._relay, args=(channel, origin), daemon=True,
                     name='relay-%s:%i' % (self.tunnel.local_host, self.tunnel.local_port))
        thr.start()

    def _relay(self, channel: paramiko.Channel, origin: Tuple[str, int]):
        try:
            sock = socket.create_connection((self.tunnel.local_host, self.tunnel.local_port),
                                            timeout=self._connect_timeout)
        except OSError as e:
            Logger.warning('Cannot connect to %s:%i for %s: %s' % (
                self.tunnel.local_host, self.tunnel.local_port, str(origin), str(e)))
            channel.close()
            return

        sock.settimeout(None)
        Logger.debug('Relay opened %s -> %s' % (str(origin), str(self.tunnel)))

        try:
            while True:
                readable, _, _ = select.select([sock, channel], [], [])

                if sock in readable:
                    data = sock.recv(BUFFER_SIZE)

                    if not data:
                        break

                    channel.sendall(data)

                if channel in readable:
                    data = channel.recv(BUFFER_SIZE)

                    if not data:
                        break

                    sock.sendall(data)

        except (OSError, paramiko.SSHException) as e:
            Logger.debug('Relay for %s interrupted: %s' % (str(self.tunnel), str(e)))
        finally:
            channel.close()
            sock.close()
            Logger.debug('Relay closed %s -> %s' % (str(origin), str(self.tunnel)))


class SSHSession(SessionInterface):
    """
    Wrapper to a connected paramiko client, owns the reverse forwards registered on it
    """

    forwards: List[ReverseForward]
    _client: Optional[paramiko.SSHClient]
    _lock: RLock

    def __init__(self, client: paramiko.SSHClient, connect_timeout: int = 15):
        self._client = client
        self._connect_timeout = connect_timeout
        self._lock = RLock()
        self.forwards = []

    @property
    def transport(self) -> Optional[paramiko.Transport]:
        if self._client is None:
            return None

        return self._client.get_transport()

    def is_connected(self) -> bool:
        transport = self.transport

        return transport is not None and transport.is_active()

    def is_alive(self) -> bool:
        # close() may drop the client from another thread, read it once
        transport = self.transport

        return transport is not None and transport.is_active() and transport.is_authenticated()

    def add_reverse_forward(self, tunnel: TunnelDefinition) -> ReverseForward:
        forward = ReverseForward(self, tunnel, connect_timeout=self._connect_timeout)

        with self._lock:
            self.forwards.append(forward)

        return forward

    def dispatch(self, channel: paramiko.Channel, origin: Tuple[str, int], destination: Tuple[str, int]):
        """
        paramiko keeps a single port forwarding handler per transport, route the channel to the matching forward
        """

        address, port = destination

        with self._lock:
            candidates = [forward for forward in self.forwards if forward.accepts(port)]

        exact = [forward for forward in candidates if forward.tunnel.remote_host == address]
        chosen = (exact or candidates or [None])[0]

        if chosen is None:
            Logger.warning('No forward registered for %s:%i, closing the channel' % (address, port))
            channel.close()
            return

        chosen.handle_channel(channel, origin)

    def disconnect(self):
        if self._client is not None:
            self._client.close()

    def close(self):
        self.disconnect()

        with self._lock:
            self.forwards = []

        self._client = None


class SSHConnector(ConnectorInterface):
    """
    Opens key authenticated sessions, adds timeouts and keepalives
    """

    def __init__(self, timeout: int = 15, keepalive_interval: int = 15, strict_host_key_checking: bool = True,
                 known_hosts_path: Optional[str] = None):
        self._timeout = timeout
        self._keepalive_interval = keepalive_interval
        self._strict_host_key_checking = strict_host_key_checking
        self._known_hosts_path = known_hosts_path

    def connect(self, host: str, port: int, username: str, key: paramiko.PKey) -> SSHSession:
        Logger.debug('SSH connection to %s@%s:%i is starting' % (username, host, port))

        client = paramiko.SSHClient()
        client.load_system_host_keys()

        if self._known_hosts_path and os.path.isfile(os.path.expanduser(self._known_hosts_path)):
            client.load_host_keys(os.path.expanduser(self._known_hosts_path))

        client.set_missing_host_key_policy(
            paramiko.RejectPolicy() if self._strict_host_key_checking else paramiko.AutoAddPolicy()
        )

        try:
            client.connect(
                hostname=host, port=port, username=username, pkey=key,
                look_for_keys=False, allow_agent=False,
                timeout=self._timeout, banner_timeout=self._timeout, auth_timeout=self._timeout
            )
        except BaseException:
            client.close()
            raise

        if self._keepalive_interval:
            client.get_transport().set_keepalive(self._keepalive_interval)

        return SSHSession(client, connect_timeout=self._timeout)


def fetch_host_key(host: str, port: int, timeout: int = 15) -> paramiko.PKey:
    """ Performs only the key exchange, without authentication """

    sock = socket.create_connection((host, port), timeout=timeout)
    transport = paramiko.Transport(sock)

    try:
        transport.start_client(timeout=timeout)
        return transport.get_remote_server_key()
    finally:
        transport.close()


def known_hosts_entry_name(host: str, port: int) -> str:
    if port == 22:
        return host

    return '[%s]:%i' % (host, port)
