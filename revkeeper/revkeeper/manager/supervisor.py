
import random
from datetime import datetime
from threading import Event, RLock, Thread
from typing import List, Optional
from ..model import SupervisorConfig
from ..interfaces import AuditSinkInterface, ConnectorInterface, KeySourceInterface, SessionInterface, ForwardInterface
from ..exceptions import CancelledError
from ..notify import Notify
from ..logger import Logger

SOURCE = 'ConnectionSupervisor'

STATE_DISCONNECTED = 'DISCONNECTED'
STATE_CONNECTING = 'CONNECTING'
STATE_CONNECTED = 'CONNECTED'
STATE_STOPPED = 'STOPPED'

SIGNAL_TERMINATE = 1
SIGNAL_RESTART = 2

MAX_BACKOFF_MS = 120000
MAX_JITTER_MS = 1000


def calculate_base_delay(attempt: int) -> int:
    # past 2^17 the cap always wins
    return min(MAX_BACKOFF_MS, (2 ** max(0, min(attempt, 17))) * 1000)


def calculate_backoff_delay(attempt: int, rnd: random.Random) -> int:
    return calculate_base_delay(attempt) + rnd.randrange(0, MAX_JITTER_MS)


class ConnectionSupervisor:
    """
    Keeps a single SSH session with its reverse forwards alive, reconnects with exponential backoff

    Threads: start() and stop() are called from the hosting thread, the loop and every session
             operation run on one dedicated worker thread.

    The worker owns the session state. stop() sets the cancellation signal first, and only then
    reaches into the state to force the teardown, always under the lock.
    """

    config: SupervisorConfig
    state: str
    attempt: int
    reconnects: int
    last_error: str
    connected_since: Optional[datetime]
    monitor_step = 1.0
    backoff_step = 0.5

    _session: Optional[SessionInterface]
    _forwards: List[ForwardInterface]
    _cancel: Optional[Event]
    _worker: Optional[Thread]
    _lock: RLock
    _has_connected: bool

    def __init__(self, config: SupervisorConfig, connector: ConnectorInterface, key_source: KeySourceInterface,
                 audit: AuditSinkInterface, notify=Notify, rnd: Optional[random.Random] = None):
        self.config = config
        self._connector = connector
        self._key_source = key_source
        self._audit = audit
        self._notify = notify
        self._random = rnd if rnd is not None else random.Random()
        self._lock = RLock()
        self._session = None
        self._forwards = []
        self._cancel = None
        self._worker = None
        self._has_connected = False

        self.state = STATE_STOPPED
        self.attempt = 0
        self.reconnects = 0
        self.last_error = ''
        self.connected_since = None

    @property
    def is_running(self) -> bool:
        return self._cancel is not None

    def start(self):
        with self._lock:
            if self._cancel is not None:
                return

            self._cancel = Event()
            self._set_state(STATE_DISCONNECTED)
            self._worker = Thread(target=self._run, args=(self._cancel,), daemon=True,
                                  name='ConnectionSupervisorWorker')
            self._worker.start()

        self._audit.info(SOURCE, 'Supervisor started for %s' % str(self.config))

    def stop(self, timeout_ms: int = 30000):
        """
        Threads: Called from the hosting thread

        :param timeout_ms: How long to wait for the worker, non-positive value waits until it exits
        :return:
        """

        with self._lock:
            cancel = self._cancel
            worker = self._worker

        if cancel is None:
            return

        self._audit.info(SOURCE, 'Shutdown requested')
        cancel.set()

        try:
            if worker is not None and worker.is_alive():
                if timeout_ms <= 0:
                    worker.join()
                else:
                    worker.join(timeout_ms / 1000.0)

                if worker.is_alive():
                    self._audit.info(SOURCE, 'Worker did not exit within %i ms, forcing teardown' % timeout_ms)

        except Exception as e:
            self._audit.error(SOURCE, 'Exception while waiting for worker: %s' % str(e), e)

        finally:
            with self._lock:
                self._disconnect()
                self._cancel = None
                self._worker = None
                self._set_state(STATE_STOPPED)

            self._audit.info(SOURCE, 'Supervisor stopped')

    def _run(self, cancel: Event):
        """
        Connect -> provision -> monitor -> back off -> retry, until cancelled

        Threads: Worker
        """

        attempt = 0

        try:
            while not cancel.is_set():
                try:
                    self._connect_and_provision(cancel)
                    self._notify.notify_connection_restored(self.config, attempt)

                    attempt = 0
                    self.attempt = 0

                    if self._monitor(cancel) == SIGNAL_TERMINATE:
                        break

                    self._set_state(STATE_DISCONNECTED)
                    self._audit.info(SOURCE, 'Connection lost, will attempt reconnect')
                    self._notify.notify_connection_lost(self.config)

                except CancelledError:
                    break

                except Exception as e:
                    # a forced teardown breaks the attempt in progress, that is not a failure
                    if cancel.is_set():
                        Logger.debug('Attempt interrupted by shutdown: %s' % str(e))
                        break

                    self.last_error = '%s: %s' % (e.__class__.__name__, str(e))
                    self._set_state(STATE_DISCONNECTED)
                    self._audit.error(SOURCE, 'Exception in supervisor loop: %s' % str(e), e)

                attempt += 1
                self.attempt = attempt
                delay = self._calculate_delay(attempt)

                self._audit.info(SOURCE, 'Reconnecting after %i ms (attempt %i)' % (delay, attempt))
                self._carefully_sleep(cancel, delay / 1000.0, self.backoff_step)

        finally:
            with self._lock:
                # after a timed out stop() the state may already belong to a newer worker
                if self._owns(cancel):
                    self._disconnect()

            Logger.debug('Supervisor loop exited')

    def _connect_and_provision(self, cancel: Event):
        with self._lock:
            self._disconnect()

        if cancel.is_set():
            raise CancelledError('Cancellation requested before connecting')

        self._set_state(STATE_CONNECTING)

        key = self._key_source.load()
        session = self._connector.connect(self.config.host, self.config.port, self.config.username, key)

        with self._lock:
            # stop() could have already forced the teardown, the new session must not outlive it
            if cancel.is_set():
                self._release(session)
                raise CancelledError('Cancellation requested while connecting')

            self._session = session
            self._forwards = []

        self._audit.info(SOURCE, 'Connected to %s:%i' % (self.config.host, self.config.port))

        started = 0

        for tunnel in self.config.tunnels:
            if cancel.is_set() or started >= self.config.max_tunnels:
                break

            forward = session.add_reverse_forward(tunnel)

            with self._lock:
                if cancel.is_set():
                    raise CancelledError('Cancellation requested while provisioning')

                self._forwards.append(forward)

            forward.start()
            started += 1
            self._audit.info(SOURCE, 'Tunnel started: %s' % str(tunnel))

        self._audit.info(SOURCE, '%i tunnels active' % started)

        with self._lock:
            # stop() could have torn the session down while forwards were starting
            if cancel.is_set():
                raise CancelledError('Cancellation requested while provisioning')

            if self._has_connected:
                self.reconnects += 1

            self._has_connected = True
            self.connected_since = datetime.now()
            self.last_error = ''
            self._set_state(STATE_CONNECTED)

    def _monitor(self, cancel: Event) -> int:
        """
        Checks the session on every step, reports a heartbeat once per interval

        :return: SIGNAL_TERMINATE on cancellation, SIGNAL_RESTART when the session died
        """

        ticks = max(1, self.config.heartbeat_interval_ms // 1000)

        while not cancel.is_set():
            if not self._is_session_alive():
                return SIGNAL_RESTART

            self._audit.info(SOURCE, 'Heartbeat: connection alive')

            for _ in range(ticks):
                if not self._carefully_sleep(cancel, self.monitor_step, self.monitor_step):
                    return SIGNAL_TERMINATE

                if not self._is_session_alive():
                    return SIGNAL_RESTART

        return SIGNAL_TERMINATE

    def _owns(self, cancel: Event) -> bool:
        """ Caller must hold self._lock """

        return self._cancel is None or self._cancel is cancel

    def _is_session_alive(self) -> bool:
        session = self._session

        return session is not None and session.is_alive()

    def _calculate_delay(self, attempt: int) -> int:
        return calculate_backoff_delay(attempt, self._random)

    @staticmethod
    def _carefully_sleep(cancel: Event, seconds: float, step: float) -> bool:
        """
        Sleeps in steps, wakes up immediately when cancellation is requested

        :return: False when cancelled
        """

        remaining = seconds

        while remaining > 0:
            if cancel.wait(min(step, remaining)):
                Logger.debug('Careful sleep: got termination signal')
                return False

            remaining -= step

        return not cancel.is_set()

    def _disconnect(self):
        """
        Idempotent teardown: forwards first, then the session. Never raises

        Caller must hold self._lock
        """

        session = self._session

        if session is None:
            return

        try:
            try:
                for forward in self._forwards:
                    try:
                        if forward.is_started:
                            forward.stop()
                    except Exception as e:
                        Logger.warning('Cannot stop %s: %s' % (str(forward), str(e)))

                if session.is_connected():
                    session.disconnect()
            finally:
                self._release(session)
                self._session = None
                self._forwards = []

            self.connected_since = None
            self._audit.info(SOURCE, 'Disconnected')

        except Exception as e:
            self._audit.error(SOURCE, 'Error during disconnect: %s' % str(e), e)

    @staticmethod
    def _release(session: SessionInterface):
        try:
            session.close()
        except Exception as e:
            Logger.warning('Cannot release the session: %s' % str(e))

    def _set_state(self, state: str):
        if self.state != state:
            Logger.debug('State %s -> %s' % (self.state, state))

        self.state = state

    def get_stats(self) -> dict:
        with self._lock:
            active = [forward.tunnel for forward in self._forwards if forward.is_started]

        return {
            'endpoint': self.config.ident,
            'state': self.state,
            'is_running': self.is_running,
            'attempt': self.attempt,
            'reconnects': self.reconnects,
            'last_error': self.last_error,
            'connected_since': self.connected_since.isoformat() if self.connected_since else '',
            'max_tunnels': self.config.max_tunnels,
            'active': [tunnel.ident for tunnel in active],
            'tunnels': [
                {
                    'ident': tunnel.ident,
                    'definition': str(tunnel),
                    'is_active': tunnel in active
                }
                for tunnel in self.config.tunnels
            ]
        }
