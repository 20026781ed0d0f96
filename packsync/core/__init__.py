"""Core functionality for packsync.

This module provides the synchronization engine:
- Configuration management
- Hashing and integrity verification
- Descriptor fetching
- Cache store persistence
- Reconciliation and download orchestration
"""

from packsync.core.errors import (
    DescriptorError,
    FetchError,
    ManifestError,
    OptionSelectionCancelled,
    SyncError,
)
from packsync.core.hashing import HashingStream, HashValue, get_hasher
from packsync.core.integrity import IntegrityError, verify_hash
from packsync.core.types import HashFormat, Side

__all__ = [
    # Errors
    "SyncError",
    "ManifestError",
    "DescriptorError",
    "FetchError",
    "OptionSelectionCancelled",
    "IntegrityError",
    # Hashing
    "HashFormat",
    "HashValue",
    "HashingStream",
    "get_hasher",
    "verify_hash",
    # Types
    "Side",
]
