"""Transcript storage with tiered retention."""

from .retention import RetentionStore, StorageUnavailableError

__all__ = [
    "RetentionStore",
    "StorageUnavailableError",
]
