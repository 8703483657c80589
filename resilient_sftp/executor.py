"""Runs SFTP operations with connect-if-needed, reconnect and retry semantics.

`OperationExecutor.execute` is the single path every facade operation takes:

1. Make sure the calling context has a live session.
2. Open a fresh SFTP channel. If the channel cannot be opened the session is
   assumed stale, so the session is rebuilt once and the channel reopened.
3. Run the operation against that channel, retrying in place up to the
   retry budget. Transient failures on a healthy channel do not justify a
   reconnect.
4. Release the channel, whatever happened in step 3.

Connectivity failures in steps 1 and 2 are not retried: the session is torn
down and an `SftpConnectionError` is raised, so the next call starts clean.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from .exceptions import SftpClientError, SftpConnectionError
from .providers.base import Channel
from .session_registry import SessionRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRY_ATTEMPTS = 2
SFTP_CHANNEL = "sftp"


@dataclass
class RetryState:
    """Attempt bookkeeping for one logical operation."""
    attempts_remaining: int
    last_error: Optional[BaseException] = None

    def record_failure(self, error: BaseException) -> None:
        self.attempts_remaining -= 1
        self.last_error = error

    @property
    def exhausted(self) -> bool:
        return self.attempts_remaining <= 0


class OperationExecutor:
    """Executes closures against a per-context SFTP channel.

    Attributes:
        registry: The session registry supplying per-context sessions.
        max_attempts: Total attempts given to an operation on an open channel.
        retry_delay: Seconds to wait between attempts.
    """

    def __init__(self, registry: SessionRegistry, max_attempts: int = MAX_RETRY_ATTEMPTS,
                 retry_delay: float = 0):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.registry = registry
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

    def execute(self, operation: Callable[[Channel], T]) -> T:
        """Runs `operation` with a freshly opened channel.

        Args:
            operation: Receives the connected channel and returns the result.

        Returns:
            Whatever `operation` returns on its first successful attempt.

        Raises:
            SftpConnectionError: If no session or channel could be established.
            SftpClientError: If every attempt failed, chained from the last
                underlying error, or immediately for non-retryable errors.
        """
        try:
            self.registry.ensure_connected()
            channel = self._open_channel_with_reconnect()
        except SftpConnectionError:
            self.registry.disconnect()
            raise

        try:
            return self._run_with_retries(operation, channel)
        finally:
            _release(channel)

    def _open_channel(self) -> Channel:
        session = self.registry.current()
        if session is None:
            raise SftpConnectionError(f"No session registered for {self.registry.host}")
        channel = session.open_channel(SFTP_CHANNEL)
        try:
            channel.connect()
        except Exception:
            _release(channel)
            raise
        return channel

    def _open_channel_with_reconnect(self) -> Channel:
        try:
            return self._open_channel()
        except Exception as e:
            logger.warning(f"Could not open SFTP channel to {self.registry.host} ({e}). Reconnecting session...")

        self.registry.connect()
        try:
            return self._open_channel()
        except Exception as e:
            logger.error(f"Could not open SFTP channel to {self.registry.host} after reconnect: {e}")
            raise SftpConnectionError(f"Could not open SFTP channel to {self.registry.host}", cause=e) from e

    def _run_with_retries(self, operation: Callable[[Channel], T], channel: Channel) -> T:
        state = RetryState(attempts_remaining=self.max_attempts)
        name = getattr(operation, "__name__", "operation")
        while not state.exhausted:
            attempt = self.max_attempts - state.attempts_remaining + 1
            try:
                return operation(channel)
            except SftpClientError as e:
                if not e.retryable:
                    logger.error(f"'{name}' failed with a non-retryable error: {e}")
                    raise
                state.record_failure(e)
            except Exception as e:
                state.record_failure(e)

            if state.exhausted:
                logger.error(f"'{name}' failed on the final attempt ({attempt}/{self.max_attempts}): {state.last_error}")
                break
            logger.warning(f"'{name}' failed with '{state.last_error}'. Attempt {attempt}/{self.max_attempts}. Retrying...")
            if self.retry_delay > 0:
                time.sleep(self.retry_delay)

        raise SftpClientError(cause=state.last_error) from state.last_error


def _release(channel: Channel) -> None:
    try:
        channel.disconnect()
    except Exception as e:
        logger.debug(f"Ignoring error while releasing channel: {e}")
