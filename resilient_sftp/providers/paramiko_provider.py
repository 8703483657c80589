"""Session provider backed by Paramiko.

Adapts `paramiko.SSHClient` and `paramiko.SFTPClient` to the `Session` and
`Channel` interfaces used by the operation executor. Authentication is by
private key only; the key material is supplied as bytes and parsed in memory,
never written to disk.
"""
import io
import logging
import typing
from typing import BinaryIO, List, Optional

import paramiko

from .base import Channel, Session, SessionProvider

logger = logging.getLogger(__name__)

DEFAULT_KEEPALIVE_INTERVAL = 30
DEFAULT_CONNECT_TIMEOUT = 10
SFTP_CHANNEL = "sftp"

# Tried in order when parsing in-memory key material.
_KEY_CLASSES: typing.Tuple[typing.Type[paramiko.PKey], ...] = (
    paramiko.Ed25519Key,
    paramiko.ECDSAKey,
    paramiko.RSAKey,
)


def load_private_key(key_material: bytes, passphrase: Optional[str] = None) -> paramiko.PKey:
    """Parses OpenSSH/PEM private key bytes into a Paramiko key.

    Args:
        key_material: The raw private key file contents.
        passphrase: Password for an encrypted key, if any.

    Returns:
        The parsed key.

    Raises:
        paramiko.PasswordRequiredException: If the key is encrypted and no
            passphrase was given.
        paramiko.SSHException: If the material is not a supported key type.
    """
    text = key_material.decode("utf-8") if isinstance(key_material, bytes) else key_material
    errors = []
    for key_class in _KEY_CLASSES:
        try:
            return key_class.from_private_key(io.StringIO(text), password=passphrase)
        except paramiko.PasswordRequiredException:
            raise
        except (paramiko.SSHException, ValueError) as e:
            errors.append(f"{key_class.__name__}: {e}")
    raise paramiko.SSHException(f"Unsupported or malformed private key ({'; '.join(errors)})")


class ParamikoSftpChannel(Channel):
    """An SFTP subsystem channel opened on a connected `SSHClient`."""

    def __init__(self, ssh_client: paramiko.SSHClient):
        self._ssh = ssh_client
        self._sftp: Optional[paramiko.SFTPClient] = None

    def connect(self) -> None:
        self._sftp = self._ssh.open_sftp()

    def disconnect(self) -> None:
        if self._sftp is not None:
            try:
                self._sftp.close()
            finally:
                self._sftp = None

    def _client(self) -> paramiko.SFTPClient:
        if self._sftp is None:
            raise paramiko.SSHException("SFTP channel is not connected")
        return self._sftp

    def put(self, local_path: str, remote_path: str) -> None:
        self._client().put(local_path, remote_path)

    def get(self, remote_path: str) -> BinaryIO:
        remote_file = self._client().open(remote_path, "rb")
        remote_file.prefetch()
        return remote_file

    def ls(self, remote_dir: str) -> List[paramiko.SFTPAttributes]:
        return self._client().listdir_attr(remote_dir)

    def rename(self, remote_from: str, remote_to: str) -> None:
        self._client().rename(remote_from, remote_to)

    def rm(self, remote_path: str) -> None:
        self._client().remove(remote_path)


class ParamikoSession(Session):
    """A single SSH connection to one host."""

    def __init__(self, host: str, port: int, username: str, pkey: paramiko.PKey,
                 connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
                 keepalive_interval: int = DEFAULT_KEEPALIVE_INTERVAL):
        self.host = host
        self.port = port
        self.username = username
        self.connect_timeout = connect_timeout
        self.keepalive_interval = keepalive_interval
        self._pkey = pkey
        self._ssh: Optional[paramiko.SSHClient] = None

    def connect(self) -> None:
        ssh_client = paramiko.SSHClient()
        # Host keys are not verified, matching StrictHostKeyChecking=no.
        ssh_client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            ssh_client.connect(
                hostname=self.host,
                port=self.port,
                username=self.username,
                pkey=self._pkey,
                timeout=self.connect_timeout,
                allow_agent=False,
                look_for_keys=False,
            )
        except Exception as e:
            logger.error(f"Failed to create SSH connection to {self.host}:{self.port}: {e}")
            ssh_client.close()
            raise
        transport = ssh_client.get_transport()
        if transport and self.keepalive_interval > 0:
            transport.set_keepalive(self.keepalive_interval)
        self._ssh = ssh_client
        logger.debug(f"Successfully created new SSH connection to {self.host}:{self.port}")

    def disconnect(self) -> None:
        if self._ssh is not None:
            try:
                self._ssh.close()
            finally:
                self._ssh = None

    def is_connected(self) -> bool:
        if self._ssh is None:
            return False
        try:
            transport = self._ssh.get_transport()
            return transport is not None and transport.is_active()
        except Exception:
            return False

    def open_channel(self, kind: str) -> Channel:
        if kind != SFTP_CHANNEL:
            raise ValueError(f"Unsupported channel kind: {kind}")
        if not self.is_connected():
            raise paramiko.SSHException(f"Session to {self.host}:{self.port} is not connected")
        return ParamikoSftpChannel(self._ssh)


class ParamikoSessionProvider(SessionProvider):
    """Creates `ParamikoSession`s authenticated with an in-memory private key.

    The key is parsed on first use and cached, so a malformed key surfaces as
    a connection failure rather than at construction time.
    """

    def __init__(self, private_key: bytes, passphrase: Optional[str] = None,
                 connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
                 keepalive_interval: int = DEFAULT_KEEPALIVE_INTERVAL):
        self._private_key = private_key
        self._passphrase = passphrase
        self.connect_timeout = connect_timeout
        self.keepalive_interval = keepalive_interval
        self._pkey: Optional[paramiko.PKey] = None

    def _get_pkey(self) -> paramiko.PKey:
        if self._pkey is None:
            self._pkey = load_private_key(self._private_key, self._passphrase)
            logger.debug(f"Loaded {self._pkey.get_name()} private key")
        return self._pkey

    def get_session(self, username: str, host: str, port: int) -> Session:
        return ParamikoSession(
            host=host,
            port=port,
            username=username,
            pkey=self._get_pkey(),
            connect_timeout=self.connect_timeout,
            keepalive_interval=self.keepalive_interval,
        )
