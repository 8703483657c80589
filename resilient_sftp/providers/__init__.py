from .base import Channel, DirectoryEntry, Session, SessionProvider
from .paramiko_provider import ParamikoSessionProvider, load_private_key

__all__ = [
    "Channel",
    "DirectoryEntry",
    "Session",
    "SessionProvider",
    "ParamikoSessionProvider",
    "load_private_key",
]
