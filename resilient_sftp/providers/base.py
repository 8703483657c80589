from abc import ABC, abstractmethod
from typing import BinaryIO, List, Protocol


class DirectoryEntry(Protocol):
    """Anything returned by `Channel.ls` that exposes a `filename`."""

    filename: str


class Channel(ABC):
    """A short-lived SFTP channel opened from a `Session`.

    A channel is opened for a single logical operation and released with
    `disconnect()` afterwards. Protocol operations may raise any exception;
    the operation executor decides whether to retry.
    """

    @abstractmethod
    def connect(self) -> None:
        pass

    @abstractmethod
    def disconnect(self) -> None:
        pass

    @abstractmethod
    def put(self, local_path: str, remote_path: str) -> None:
        pass

    @abstractmethod
    def get(self, remote_path: str) -> BinaryIO:
        """Opens `remote_path` for reading. The caller closes the stream."""
        pass

    @abstractmethod
    def ls(self, remote_dir: str) -> List[DirectoryEntry]:
        pass

    @abstractmethod
    def rename(self, remote_from: str, remote_to: str) -> None:
        pass

    @abstractmethod
    def rm(self, remote_path: str) -> None:
        pass


class Session(ABC):
    """An authenticated SSH session over which channels are opened."""

    @abstractmethod
    def connect(self) -> None:
        pass

    @abstractmethod
    def disconnect(self) -> None:
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        pass

    @abstractmethod
    def open_channel(self, kind: str) -> Channel:
        """Returns an unconnected channel of the given kind (e.g. 'sftp')."""
        pass


class SessionProvider(ABC):
    """Produces unconnected sessions for a host/port/username triple."""

    @abstractmethod
    def get_session(self, username: str, host: str, port: int) -> Session:
        pass
