import logging
import threading
import typing
from typing import Callable, Dict, Hashable, Optional

from .exceptions import SftpConnectionError
from .providers.base import Session, SessionProvider

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Holds at most one SSH session per execution context.

    SSH sessions are not shared between concurrent callers: every context
    (by default, every thread) gets its own session, created lazily on first
    use and replaced whenever a fresh connection is requested. The mapping
    itself is guarded by a lock, but connecting and disconnecting happen
    outside the lock so one slow host never blocks other contexts.

    Attributes:
        host: The hostname or IP address of the SSH server.
        port: The port number of the SSH server.
        username: The username for authentication.
        provider: The `SessionProvider` that builds new sessions.
    """

    def __init__(self, host: str, port: int, username: str, provider: SessionProvider,
                 context_key: Callable[[], Hashable] = threading.get_ident):
        """Initializes the SessionRegistry.

        Args:
            host: The hostname of the SSH server.
            port: The port of the SSH server.
            username: The username for authentication.
            provider: Factory for new, unconnected sessions.
            context_key: Returns the identity of the calling execution
                context. Defaults to the current thread's identifier.
        """
        self.host = host
        self.port = port
        self.username = username
        self.provider = provider
        self._context_key = context_key
        self._sessions: Dict[Hashable, Session] = {}
        self._lock = threading.Lock()

    def current(self) -> Optional[Session]:
        """Returns the session registered for the calling context, if any."""
        key = self._context_key()
        with self._lock:
            return self._sessions.get(key)

    def _pop_current(self) -> Optional[Session]:
        key = self._context_key()
        with self._lock:
            return self._sessions.pop(key, None)

    def is_connected(self) -> bool:
        session = self.current()
        if session is None:
            return False
        try:
            return session.is_connected()
        except Exception as e:
            logger.debug(f"Session state check for {self.host} failed: {e}")
            return False

    def connect(self) -> Session:
        """Replaces the calling context's session with a freshly connected one.

        Any existing session for the context is disconnected first. On failure
        nothing is registered for the context.

        Returns:
            The newly connected session.

        Raises:
            SftpConnectionError: If the session cannot be created or connected.
        """
        if self.current() is not None:
            logger.debug(f"Replacing existing session to {self.host}:{self.port}")
            self.disconnect()

        logger.debug(f"Connecting to {self.username}@{self.host}:{self.port}")
        try:
            session = self.provider.get_session(self.username, self.host, self.port)
            session.connect()
        except Exception as e:
            logger.error(f"Could not connect to {self.host}:{self.port}: {e}")
            raise SftpConnectionError(f"Could not connect to {self.host}:{self.port}", cause=e) from e

        key = self._context_key()
        with self._lock:
            self._sessions[key] = session
        logger.info(f"Connected to {self.host}:{self.port} as {self.username}")
        return session

    def ensure_connected(self) -> Session:
        """Returns a live session, connecting only if none is usable."""
        if self.is_connected():
            return typing.cast(Session, self.current())
        return self.connect()

    def disconnect(self) -> None:
        """Disconnects and forgets the calling context's session. Never raises."""
        session = self._pop_current()
        if session is None:
            return
        _close_quietly(session, self.host)

    def close_all(self) -> None:
        """Disconnects every registered session, whichever context owns it.

        Intended for application shutdown, after worker threads have finished.
        """
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        logger.debug(f"Closing {len(sessions)} session(s) for {self.host}...")
        for session in sessions:
            _close_quietly(session, self.host)

    def get_stats(self) -> typing.Dict[str, int]:
        """Returns the number of registered and currently connected sessions."""
        with self._lock:
            sessions = list(self._sessions.values())
        connected = 0
        for session in sessions:
            try:
                if session.is_connected():
                    connected += 1
            except Exception:
                pass
        return {"registered": len(sessions), "connected": connected}


def _close_quietly(session: Session, host: str) -> None:
    try:
        session.disconnect()
    except Exception as e:
        logger.warning(f"Ignoring error while disconnecting from {host}: {e}")
