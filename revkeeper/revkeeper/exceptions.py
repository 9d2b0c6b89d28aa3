
class RevKeeperError(Exception):
    pass


class ConfigurationError(RevKeeperError):
    """ Invalid or incomplete configuration, raised at construction time """


class PrivateKeyNotFoundError(RevKeeperError, FileNotFoundError):
    """ The credential reference does not point to any key material """

    def __init__(self, reference: str):
        super().__init__('Private key not found: %s' % reference)
        self.reference = reference


class CancelledError(RevKeeperError):
    """ Raised inside the supervisor loop when a shutdown was requested """


class ForwardingError(RevKeeperError):
    """ The SSH server refused to set up a reverse forward """
