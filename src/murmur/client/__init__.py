"""Async client for the Murmur realtime protocol."""

from .keys import EncryptionSession, KeyDirectory, LocalKeyStore, PublicKeyCache
from .session import SocketSession
from .state import ChatState, TypingNotifier

__all__ = [
    "ChatState",
    "EncryptionSession",
    "KeyDirectory",
    "LocalKeyStore",
    "PublicKeyCache",
    "SocketSession",
    "TypingNotifier",
]
