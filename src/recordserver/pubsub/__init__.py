"""
Pub/sub engines for the change feed.
"""

from __future__ import annotations

from .base import MessageHandler, PubSub
from .memory import MemoryPubSub
from .redis import RedisPubSub

__all__ = [
    "MessageHandler",
    "PubSub",
    "MemoryPubSub",
    "RedisPubSub",
]
