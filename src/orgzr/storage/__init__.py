"""Persistence substrate: namespaced, atomically written local storage."""
from __future__ import annotations

from orgzr.storage.substrate import (
    NamespaceHandle,
    StorageError,
    Substrate,
    SubstrateClosedError,
    SubstrateLockedError,
)

__all__ = [
    "NamespaceHandle",
    "StorageError",
    "Substrate",
    "SubstrateClosedError",
    "SubstrateLockedError",
]
