import abc
from typing import Any, Optional
from .model import TunnelDefinition


class AuditSinkInterface(abc.ABC):
    """
    Leveled event log. Implementations must never raise into the caller
    """

    @abc.abstractmethod
    def info(self, source: str, message: str):
        pass

    @abc.abstractmethod
    def error(self, source: str, message: str, error: Optional[BaseException] = None):
        pass


class KeySourceInterface(abc.ABC):
    @abc.abstractmethod
    def load(self) -> Any:
        """
        :raises PrivateKeyNotFoundError: when the reference does not resolve to key material
        :return: Key material usable by the SSH connector
        """
        pass


class ForwardInterface(abc.ABC):
    tunnel: TunnelDefinition

    @property
    @abc.abstractmethod
    def is_started(self) -> bool:
        pass

    @abc.abstractmethod
    def start(self):
        pass

    @abc.abstractmethod
    def stop(self):
        pass

    def __str__(self):
        return 'Forward<%s, started=%s>' % (self.tunnel, str(self.is_started))


class SessionInterface(abc.ABC):
    @abc.abstractmethod
    def is_alive(self) -> bool:
        pass

    @abc.abstractmethod
    def is_connected(self) -> bool:
        pass

    @abc.abstractmethod
    def add_reverse_forward(self, tunnel: TunnelDefinition) -> ForwardInterface:
        pass

    @abc.abstractmethod
    def disconnect(self):
        pass

    @abc.abstractmethod
    def close(self):
        """ Release all resources held by the session """
        pass


class ConnectorInterface(abc.ABC):
    @abc.abstractmethod
    def connect(self, host: str, port: int, username: str, key: Any) -> SessionInterface:
        pass
