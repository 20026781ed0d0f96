"""Exception hierarchy for packsync.

Errors derived from SyncError abort a run before any cache state is
persisted. Per-file problems are captured on the unit that raised them
and never escape the download orchestrator.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for run-aborting synchronization errors."""


class ManifestError(SyncError):
    """Raised when the persisted cache store exists but cannot be read.

    Attributes:
        path: Location of the offending cache store file
    """

    def __init__(self, message: str, *, path: str | None = None):
        self.path = path
        super().__init__(message)


class DescriptorError(SyncError):
    """Raised when a pack, index or linked descriptor cannot be parsed."""

    def __init__(self, message: str, *, location: str | None = None):
        self.location = location
        super().__init__(message)


class FetchError(SyncError):
    """Raised when a location cannot be opened or read."""

    def __init__(self, message: str, *, location: str | None = None):
        self.location = location
        super().__init__(message)


class OptionSelectionCancelled(SyncError):
    """Raised when optional components need a decision and none was given."""
