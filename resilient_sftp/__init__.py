"""A resilient SFTP client with per-thread sessions, reconnects and retries."""
__version__ = "1.0.0"

from .builder import SftpClientBuilder, sftp_client
from .client import SftpClient
from .config import ClientConfig, load_config
from .exceptions import (
    ConfigurationError,
    ErrorKind,
    InvalidArgumentError,
    LocalTransferError,
    SftpClientError,
    SftpConnectionError,
)
from .executor import OperationExecutor, RetryState
from .session_registry import SessionRegistry

__all__ = [
    "ClientConfig",
    "ConfigurationError",
    "ErrorKind",
    "InvalidArgumentError",
    "LocalTransferError",
    "OperationExecutor",
    "RetryState",
    "SessionRegistry",
    "SftpClient",
    "SftpClientBuilder",
    "SftpClientError",
    "SftpConnectionError",
    "load_config",
    "sftp_client",
]
