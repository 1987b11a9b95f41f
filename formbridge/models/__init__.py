"""Models - re-exports all models and Base.metadata."""

from .base import Base, TimestampMixin
from .kv import KVEntry
from .submission import TypeformSubmission

__all__ = [
    "Base",
    "TimestampMixin",
    "KVEntry",
    "TypeformSubmission",
]
