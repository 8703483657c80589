import logging
import threading
from typing import Callable, Hashable, Optional, Union

from .client import SftpClient
from .config import DEFAULT_PORT, ClientConfig, Timeouts
from .exceptions import InvalidArgumentError
from .executor import MAX_RETRY_ATTEMPTS, OperationExecutor
from .providers.base import SessionProvider
from .providers.paramiko_provider import ParamikoSessionProvider
from .session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class SftpClientBuilder:
    """Fluent builder for `SftpClient`.

    Example:
        client = (sftp_client()
                  .host("sftp.example.com")
                  .username("deploy")
                  .private_key(key_bytes)
                  .build())
    """

    def __init__(self):
        self._host: Optional[str] = None
        self._port: int = DEFAULT_PORT
        self._username: Optional[str] = None
        self._private_key: Optional[bytes] = None
        self._passphrase: Optional[str] = None
        self._provider: Optional[SessionProvider] = None
        self._connect_timeout: float = Timeouts.CONNECT
        self._keepalive_interval: int = Timeouts.KEEPALIVE
        self._max_attempts: int = MAX_RETRY_ATTEMPTS
        self._retry_delay: float = 0
        self._context_key: Callable[[], Hashable] = threading.get_ident

    @classmethod
    def from_config(cls, config: ClientConfig) -> "SftpClientBuilder":
        return (cls()
                .host(config.host)
                .port(config.port)
                .username(config.username)
                .private_key(config.credential)
                .passphrase(config.passphrase)
                .connect_timeout(config.connect_timeout)
                .keepalive_interval(config.keepalive_interval)
                .max_attempts(config.max_attempts)
                .retry_delay(config.retry_delay))

    def host(self, host: str) -> "SftpClientBuilder":
        self._host = host
        return self

    def port(self, port: int) -> "SftpClientBuilder":
        self._port = port
        return self

    def username(self, username: str) -> "SftpClientBuilder":
        self._username = username
        return self

    def private_key(self, private_key: Union[bytes, str]) -> "SftpClientBuilder":
        if isinstance(private_key, str):
            private_key = private_key.encode('utf-8')
        self._private_key = private_key
        return self

    def passphrase(self, passphrase: Optional[str]) -> "SftpClientBuilder":
        self._passphrase = passphrase
        return self

    def session_provider(self, provider: SessionProvider) -> "SftpClientBuilder":
        """Overrides the Paramiko-backed provider, e.g. with a test double."""
        self._provider = provider
        return self

    def connect_timeout(self, seconds: float) -> "SftpClientBuilder":
        self._connect_timeout = seconds
        return self

    def keepalive_interval(self, seconds: int) -> "SftpClientBuilder":
        self._keepalive_interval = seconds
        return self

    def max_attempts(self, attempts: int) -> "SftpClientBuilder":
        self._max_attempts = attempts
        return self

    def retry_delay(self, seconds: float) -> "SftpClientBuilder":
        self._retry_delay = seconds
        return self

    def context_key(self, context_key: Callable[[], Hashable]) -> "SftpClientBuilder":
        """Sets how the calling execution context is identified (default: thread id)."""
        self._context_key = context_key
        return self

    def build(self) -> SftpClient:
        """Assembles the client. No connection is made until first use.

        Raises:
            InvalidArgumentError: If no private key was given, or the retry
                budget is not positive.
        """
        if not self._private_key:
            raise InvalidArgumentError("A non-empty private key is required")
        if self._max_attempts < 1:
            raise InvalidArgumentError("max_attempts must be at least 1")

        provider = self._provider
        if provider is None:
            provider = ParamikoSessionProvider(
                private_key=self._private_key,
                passphrase=self._passphrase,
                connect_timeout=self._connect_timeout,
                keepalive_interval=self._keepalive_interval,
            )

        registry = SessionRegistry(
            host=self._host or "",
            port=self._port,
            username=self._username or "",
            provider=provider,
            context_key=self._context_key,
        )
        executor = OperationExecutor(registry, max_attempts=self._max_attempts, retry_delay=self._retry_delay)
        logger.debug(f"Built SFTP client for {registry.username}@{registry.host}:{registry.port}")
        return SftpClient(registry, executor)


def sftp_client() -> SftpClientBuilder:
    """Returns a new `SftpClientBuilder`."""
    return SftpClientBuilder()
