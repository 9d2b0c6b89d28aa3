
import socket
import threading
import unittest
import paramiko
from unittest.mock import Mock, patch

from ..revkeeper.ssh import SSHSession, SSHConnector, ReverseForward, known_hosts_entry_name
from ..revkeeper.model import TunnelDefinition
from ..revkeeper.exceptions import ForwardingError
from ..revkeeper.logger import setup_dummy_logger


def create_client(active: bool = True) -> Mock:
    transport = Mock()
    transport.is_active.return_value = active
    transport.is_authenticated.return_value = active
    transport.request_port_forward.side_effect = lambda address, port, handler=None: port

    client = Mock()
    client.get_transport.return_value = transport

    return client


class SSHSessionTest(unittest.TestCase):
    def setUp(self) -> None:
        setup_dummy_logger()

    def test_forward_is_requested_on_start_and_cancelled_on_stop(self):
        client = create_client()
        session = SSHSession(client)
        forward = session.add_reverse_forward(TunnelDefinition('127.0.0.1', 8080, 'localhost', 80))

        self.assertFalse(forward.is_started)
        client.get_transport().request_port_forward.assert_not_called()

        forward.start()

        self.assertTrue(forward.is_started)
        client.get_transport().request_port_forward.assert_called_once_with(
            '127.0.0.1', 8080, handler=session.dispatch
        )

        forward.stop()

        self.assertFalse(forward.is_started)
        client.get_transport().cancel_port_forward.assert_called_once_with('127.0.0.1', 8080)

    def test_refused_forwarding_raises_forwarding_error(self):
        client = create_client()
        client.get_transport().request_port_forward.side_effect = paramiko.SSHException(
            'TCP forwarding request denied')

        forward = SSHSession(client).add_reverse_forward(TunnelDefinition('0.0.0.0', 80, 'localhost', 8080))

        with self.assertRaises(ForwardingError):
            forward.start()

        self.assertFalse(forward.is_started)

    def test_forward_cannot_start_on_dead_session(self):
        forward = SSHSession(create_client(active=False)).add_reverse_forward(
            TunnelDefinition('0.0.0.0', 80, 'localhost', 8080))

        with self.assertRaises(ForwardingError):
            forward.start()

    def test_server_allocated_port_is_used_for_routing(self):
        client = create_client()
        client.get_transport().request_port_forward.side_effect = lambda address, port, handler=None: 41234
        forward = SSHSession(client).add_reverse_forward(TunnelDefinition('127.0.0.1', 0, 'localhost', 80))

        forward.start()

        self.assertEqual(41234, forward.bound_port)
        self.assertTrue(forward.accepts(41234))
        self.assertFalse(forward.accepts(0))

    def test_dispatch_routes_channel_to_matching_forward(self):
        session = SSHSession(create_client())
        first = session.add_reverse_forward(TunnelDefinition('127.0.0.1', 8080, 'localhost', 80))
        second = session.add_reverse_forward(TunnelDefinition('127.0.0.1', 2222, '192.168.1.5', 22))
        first.start()
        second.start()

        channel = Mock()

        with patch.object(ReverseForward, 'handle_channel') as handle_mock:
            session.dispatch(channel, ('10.0.0.1', 51000), ('127.0.0.1', 2222))

        handle_mock.assert_called_once_with(channel, ('10.0.0.1', 51000))
        channel.close.assert_not_called()

    def test_dispatch_closes_channel_without_forward(self):
        session = SSHSession(create_client())
        channel = Mock()

        session.dispatch(channel, ('10.0.0.1', 51000), ('127.0.0.1', 9999))

        channel.close.assert_called_once()

    def test_liveness_and_release(self):
        client = create_client()
        session = SSHSession(client)
        session.add_reverse_forward(TunnelDefinition('127.0.0.1', 8080, 'localhost', 80))

        self.assertTrue(session.is_alive())
        self.assertTrue(session.is_connected())

        session.close()

        client.close.assert_called_once()
        self.assertFalse(session.is_alive())
        self.assertFalse(session.is_connected())
        self.assertIsNone(session.transport)
        self.assertEqual([], session.forwards)

    def test_liveness_check_survives_concurrent_close(self):
        """
        Scenario: The client is dropped by another thread right after the transport was looked up
        Expectation: No AttributeError, the session is reported as dead on the next check
        """

        transport = create_client().get_transport()
        client = Mock()
        client.get_transport.side_effect = [transport, None]
        session = SSHSession(client)

        self.assertTrue(session.is_alive())
        self.assertFalse(session.is_alive())

    def test_relay_copies_data_to_local_service(self):
        """
        Scenario: A connection arrives from the remote side through the SSH channel
        Expectation: Bytes are delivered to the local service and the answer goes back
        """

        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.bind(('127.0.0.1', 0))
        server.listen(1)
        local_port = server.getsockname()[1]

        def echo():
            conn, _ = server.accept()
            conn.sendall(conn.recv(1024).upper())
            conn.close()

        echo_thread = threading.Thread(target=echo, daemon=True)
        echo_thread.start()

        channel, remote_end = socket.socketpair()
        forward = SSHSession(create_client()).add_reverse_forward(
            TunnelDefinition('127.0.0.1', 8080, '127.0.0.1', local_port))

        relay = threading.Thread(target=forward._relay, args=(channel, ('10.0.0.1', 51000)), daemon=True)
        relay.start()

        remote_end.sendall(b'solidarity')
        remote_end.settimeout(5)

        try:
            self.assertEqual(b'SOLIDARITY', remote_end.recv(1024))
        finally:
            relay.join(5)
            remote_end.close()
            server.close()

    def test_relay_closes_channel_when_local_service_is_down(self):
        probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        probe.bind(('127.0.0.1', 0))
        closed_port = probe.getsockname()[1]
        probe.close()

        channel = Mock()
        forward = SSHSession(create_client()).add_reverse_forward(
            TunnelDefinition('127.0.0.1', 8080, '127.0.0.1', closed_port))

        forward._relay(channel, ('10.0.0.1', 51000))

        channel.close.assert_called_once()


class SSHConnectorTest(unittest.TestCase):
    def setUp(self) -> None:
        setup_dummy_logger()

    def test_connects_with_key_only(self):
        client = create_client()
        key = Mock()

        with patch.object(paramiko, 'SSHClient') as client_class:
            client_class.return_value = client
            session = SSHConnector(timeout=7, keepalive_interval=20).connect('riotkit.org', 3422, 'riotkit', key)

        client.connect.assert_called_once_with(
            hostname='riotkit.org', port=3422, username='riotkit', pkey=key,
            look_for_keys=False, allow_agent=False, timeout=7, banner_timeout=7, auth_timeout=7
        )
        client.load_system_host_keys.assert_called_once()
        self.assertIsInstance(client.set_missing_host_key_policy.call_args[0][0], paramiko.RejectPolicy)
        client.get_transport().set_keepalive.assert_called_once_with(20)
        self.assertTrue(session.is_alive())

    def test_accepts_unknown_host_keys_when_not_strict(self):
        client = create_client()

        with patch.object(paramiko, 'SSHClient') as client_class:
            client_class.return_value = client
            SSHConnector(strict_host_key_checking=False).connect('riotkit.org', 22, 'riotkit', Mock())

        self.assertIsInstance(client.set_missing_host_key_policy.call_args[0][0], paramiko.AutoAddPolicy)

    def test_client_is_closed_when_connection_fails(self):
        client = create_client()
        client.connect.side_effect = paramiko.AuthenticationException('Authentication failed.')

        with patch.object(paramiko, 'SSHClient') as client_class:
            client_class.return_value = client

            with self.assertRaises(paramiko.AuthenticationException):
                SSHConnector().connect('riotkit.org', 22, 'riotkit', Mock())

        client.close.assert_called_once()

    def test_known_hosts_entry_name(self):
        self.assertEqual('riotkit.org', known_hosts_entry_name('riotkit.org', 22))
        self.assertEqual('[riotkit.org]:3422', known_hosts_entry_name('riotkit.org', 3422))
