"""High-level SFTP client facade.

`SftpClient` exposes upload, download, list, move and delete as simple
blocking calls. Connection handling is implicit: the first call on a thread
connects, broken channels trigger a reconnect, and transient failures are
retried. See `executor.OperationExecutor` for the exact semantics.
"""
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, List, Optional, Union

from .exceptions import InvalidArgumentError, LocalTransferError
from .executor import OperationExecutor
from .providers.base import Channel
from .session_registry import SessionRegistry

if TYPE_CHECKING:
    from .builder import SftpClientBuilder

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

DOWNLOAD_CHUNK_SIZE = 65536
_PSEUDO_ENTRIES = (".", "..")


def _require_remote_dir(remote_dir: Optional[str]) -> str:
    if remote_dir is None or remote_dir == "":
        raise InvalidArgumentError("remote_dir must not be None or empty")
    return remote_dir


def remote_basename(remote_path: str) -> str:
    """Returns everything after the last '/' of a remote path, or the path itself."""
    index = remote_path.rfind("/")
    return remote_path if index == -1 else remote_path[index + 1:]


class SftpClient:
    """A resilient SFTP client with one session per calling thread.

    Instances are safe to share between threads: each thread lazily gets its
    own SSH session from the registry, so operations from different threads
    never share a channel namespace.

    Attributes:
        registry: Per-context session registry.
        executor: Runs every operation with retry and reconnect handling.
    """

    def __init__(self, registry: SessionRegistry, executor: Optional[OperationExecutor] = None):
        self.registry = registry
        self.executor = executor if executor is not None else OperationExecutor(registry)

    @staticmethod
    def builder() -> "SftpClientBuilder":
        from .builder import SftpClientBuilder
        return SftpClientBuilder()

    @property
    def host(self) -> str:
        return self.registry.host

    @property
    def port(self) -> int:
        return self.registry.port

    @property
    def username(self) -> str:
        return self.registry.username

    def connect(self) -> None:
        """Connects the calling thread, replacing any session it already has."""
        self.registry.connect()

    def disconnect(self) -> None:
        """Disconnects the calling thread's session. Never raises."""
        self.registry.disconnect()

    def is_connected(self) -> bool:
        return self.registry.is_connected()

    def close(self) -> None:
        """Disconnects the sessions of every thread that used this client."""
        self.registry.close_all()

    def __enter__(self) -> "SftpClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def upload(self, file: PathLike, remote_dir: str) -> None:
        """Uploads a local file into a remote directory.

        Args:
            file: The local file to upload. Its base name is kept remotely.
            remote_dir: Remote directory to upload into. Must not be None or
                empty; use '.' for the current directory.

        Raises:
            InvalidArgumentError: If `remote_dir` is None or empty.
            SftpClientError: If the upload failed after all attempts.
        """
        remote_dir = _require_remote_dir(remote_dir)
        local_file = Path(file).absolute()
        destination = f"{remote_dir}/{local_file.name}"

        def upload_file(channel: Channel) -> None:
            logger.info(f"Uploading file [{local_file}] to [{destination}]")
            channel.put(str(local_file), destination)

        self.executor.execute(upload_file)

    def list_directory(self, remote_dir: str) -> List[str]:
        """Lists entry names in a remote directory, without '.' and '..'.

        Names are returned in the order the server sent them.
        """
        remote_dir = _require_remote_dir(remote_dir)

        def list_entries(channel: Channel) -> List[str]:
            logger.debug(f"Listing directory [{remote_dir}]")
            filenames = [entry.filename for entry in channel.ls(remote_dir)
                         if entry.filename not in _PSEUDO_ENTRIES]
            logger.debug(f"Found: {filenames}")
            return filenames

        return self.executor.execute(list_entries)

    def download(self, remote_path: str, local_destination: PathLike) -> Path:
        """Downloads a remote file into a local directory or onto a local file.

        If `local_destination` is an existing directory, the file keeps the
        last segment of `remote_path` as its name. Otherwise
        `local_destination` is used verbatim as the target file.

        Failures reading the remote file are retried. Failures opening or
        writing the local file are raised immediately as `LocalTransferError`.

        Returns:
            The path of the downloaded local file.
        """
        destination = Path(local_destination)
        if destination.is_dir():
            local_path = destination / remote_basename(remote_path)
        else:
            local_path = destination

        def download_file(channel: Channel) -> Path:
            logger.debug(f"Downloading remote file [{remote_path}] into local [{local_path}]")
            with channel.get(remote_path) as remote_file:
                try:
                    local_file = open(local_path, "wb")
                except OSError as e:
                    logger.error(f"Cannot open local file {local_path}: {e}")
                    raise LocalTransferError(f"Cannot open local file {local_path}", cause=e) from e
                with local_file:
                    while True:
                        chunk = remote_file.read(DOWNLOAD_CHUNK_SIZE)
                        if not chunk:
                            break
                        try:
                            local_file.write(chunk)
                        except OSError as e:
                            logger.error(f"Cannot write local file {local_path}: {e}")
                            raise LocalTransferError(f"Cannot write local file {local_path}", cause=e) from e
            return local_path

        return self.executor.execute(download_file)

    def move(self, remote_from: str, remote_to: str) -> None:
        """Renames a remote file or directory."""
        def rename(channel: Channel) -> None:
            logger.debug(f"Move [{remote_from}] to [{remote_to}]")
            channel.rename(remote_from, remote_to)

        self.executor.execute(rename)

    def delete(self, remote_paths: Union[str, Iterable[str]]) -> None:
        """Deletes one remote file, or many in a single channel.

        Directories are not deleted. For a collection, duplicates are removed
        first and each distinct path is removed once. If the batch fails part
        way and is retried, only the paths not yet removed are resubmitted,
        including the one whose removal failed.

        Args:
            remote_paths: A single remote path, or an iterable of them.
        """
        if isinstance(remote_paths, str):
            self._delete_one(remote_paths)
        else:
            self._delete_many(remote_paths)

    def _delete_one(self, remote_path: str) -> None:
        def remove(channel: Channel) -> None:
            logger.debug(f"Delete [{remote_path}]")
            channel.rm(remote_path)

        self.executor.execute(remove)

    def _delete_many(self, remote_paths: Iterable[str]) -> None:
        # Insertion-ordered set; shrinks as removals succeed so a retry resumes.
        pending = dict.fromkeys(remote_paths)

        def remove_all(channel: Channel) -> None:
            logger.debug(f"Deleting [{len(pending)}] files")
            for remote_path in list(pending):
                channel.rm(remote_path)
                del pending[remote_path]
            logger.debug("Files successfully deleted")

        self.executor.execute(remove_all)
