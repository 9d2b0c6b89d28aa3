
import os
import paramiko
from typing import Optional
from .interfaces import KeySourceInterface
from .exceptions import PrivateKeyNotFoundError
from .logger import Logger


KEY_TYPES = [paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey]


class FileKeySource(KeySourceInterface):
    """
    Resolves a private key file into paramiko key material.
    The file is read on every connection attempt, so a key replaced on disk is picked up on reconnect
    """

    reference: str
    passphrase: Optional[str]

    def __init__(self, reference: str, passphrase: Optional[str] = None):
        self.reference = reference
        self.passphrase = passphrase

    @property
    def path(self) -> str:
        return os.path.expanduser(self.reference)

    def load(self) -> paramiko.PKey:
        path = self.path

        if not os.path.isfile(path):
            raise PrivateKeyNotFoundError(self.reference)

        last_error = None

        for key_type in KEY_TYPES:
            try:
                key = key_type.from_private_key_file(path, password=self.passphrase)
                Logger.debug('Loaded %s key from "%s"' % (key.get_name(), path))

                return key
            except paramiko.PasswordRequiredException:
                raise
            except (paramiko.SSHException, ValueError) as e:
                last_error = e

        raise paramiko.SSHException('Cannot decode private key "%s": %s' % (path, str(last_error)))
