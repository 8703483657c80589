"""Exception types raised across the SFTP client facade.

Every failure that reaches a caller is an `SftpClientError` (or subclass).
Each instance carries an `ErrorKind` so callers can branch on the kind of
failure without depending on a particular subclass:

- `ErrorKind.INVALID_ARGUMENT`: a caller-supplied parameter was rejected.
  Never retried and raised before any network call.
- `ErrorKind.CONNECTION`: the session or channel could not be established.
  Never retried by the attempt loop; the session is torn down.
- `ErrorKind.OPERATION`: the remote operation failed on an open channel and
  the retry budget was exhausted.
"""
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    INVALID_ARGUMENT = "invalid_argument"
    CONNECTION = "connection"
    OPERATION = "operation"


class SftpClientError(Exception):
    """Base error for all failures surfaced by the SFTP client."""

    kind: ErrorKind = ErrorKind.OPERATION
    retryable: bool = True

    def __init__(self, message: str = "", cause: Optional[BaseException] = None):
        if not message and cause is not None:
            message = f"{type(cause).__name__}: {cause}"
        super().__init__(message)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class InvalidArgumentError(SftpClientError, ValueError):
    """A required argument was missing or empty."""

    kind = ErrorKind.INVALID_ARGUMENT
    retryable = False


class SftpConnectionError(SftpClientError):
    """The SSH session or SFTP channel could not be established."""

    kind = ErrorKind.CONNECTION
    retryable = False


class LocalTransferError(SftpClientError):
    """Reading or writing the local side of a transfer failed.

    Raised from inside an operation closure. The executor surfaces it
    immediately instead of spending the remaining retry budget, since a retry
    on the same channel cannot fix a local disk problem.
    """

    retryable = False


class ConfigurationError(SftpClientError):
    """The client configuration file is missing or invalid."""

    kind = ErrorKind.INVALID_ARGUMENT
    retryable = False
