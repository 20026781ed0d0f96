"""Per-entry units of work.

Each index entry becomes a DownloadTask. The entry's source is a tagged
variant: a DirectSource names the artifact and its digest, a LinkedSource
names a linked descriptor (and the digest of that descriptor) which must
be fetched to learn the artifact's location and digest.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath

import structlog

from packsync.core.fetcher import DescriptorFetcher
from packsync.core.hashing import HashValue
from packsync.core.manifest import CacheRecord
from packsync.core.utils import normalize_relative_path
from packsync.formats.index import IndexEntry
from packsync.formats.linked import LinkedDescriptor, LinkedParser

logger = structlog.get_logger()


@dataclass(frozen=True)
class DirectSource:
    """Entry that is the artifact itself."""

    location: str
    hash: HashValue | None


@dataclass
class LinkedSource:
    """Entry that points at a linked descriptor.

    Attributes:
        location: Location of the linked descriptor
        pointer_hash: Digest of the linked descriptor declared by the index
        descriptor: Parsed descriptor, populated by ``resolve``
    """

    location: str
    pointer_hash: HashValue
    descriptor: LinkedDescriptor | None = None

    def resolve(self, fetcher: DescriptorFetcher) -> LinkedDescriptor:
        """Fetch, verify and parse the linked descriptor once."""
        if self.descriptor is None:
            data, _ = fetcher.fetch_verified(
                self.location, self.pointer_hash.format, expected=self.pointer_hash
            )
            self.descriptor = LinkedParser().parse(data)
            logger.debug("linked_descriptor_resolved", location=self.location, name=self.descriptor.name)
        return self.descriptor


Source = DirectSource | LinkedSource


@dataclass
class DownloadTask:
    """One index entry matched with its cache record.

    Attributes:
        file_id: Canonical remote identifier (join key with the cache store)
        entry: Index entry as declared
        source: Direct or linked source
        record: Cache record from the previous run, if any
        invalidated: Cached copy is missing and must be fetched again
        selection: Optional-group selection made during this run
        error: Failure captured while preparing the task
    """

    file_id: str
    entry: IndexEntry
    source: Source
    record: CacheRecord | None = None
    invalidated: bool = False
    selection: bool | None = None
    error: Exception | None = field(default=None, compare=False)

    @property
    def is_linked(self) -> bool:
        return isinstance(self.source, LinkedSource)

    @property
    def descriptor(self) -> LinkedDescriptor | None:
        if isinstance(self.source, LinkedSource):
            return self.source.descriptor
        return None

    @property
    def name(self) -> str:
        """Display name: descriptor name for linked files, else the entry path."""
        descriptor = self.descriptor
        if descriptor is not None:
            return descriptor.name
        return self.entry.alias or self.entry.file

    @property
    def destination(self) -> str:
        """Destination relative to the pack folder.

        Raises:
            ValueError: If the path escapes the pack folder, or the linked
                descriptor has not been resolved yet
        """
        if self.entry.alias:
            return normalize_relative_path(self.entry.alias)
        if isinstance(self.source, LinkedSource):
            if self.source.descriptor is None:
                raise ValueError(f"Linked descriptor for {self.file_id} is not resolved")
            parent = PurePosixPath(self.entry.file.replace("\\", "/")).parent
            return normalize_relative_path(str(parent / self.source.descriptor.filename))
        return normalize_relative_path(self.entry.file)

    @property
    def option_group(self) -> str | None:
        """Name of the optional group this task belongs to, if any."""
        descriptor = self.descriptor
        if descriptor is not None and descriptor.is_optional:
            return descriptor.name
        return None

    @property
    def is_optional(self) -> bool:
        descriptor = self.descriptor
        if descriptor is not None:
            return descriptor.is_optional
        return self.record is not None and self.record.is_optional

    @property
    def is_new_optional(self) -> bool:
        """Optional file whose selection has never been recorded."""
        return self.is_optional and (self.record is None or not self.record.is_optional)

    @property
    def option_value(self) -> bool:
        """Effective selection: this run's choice, then the recorded one, then the default."""
        if self.selection is not None:
            return self.selection
        if self.record is not None and self.record.is_optional:
            return self.record.option_value
        descriptor = self.descriptor
        if descriptor is not None and descriptor.option is not None:
            return descriptor.option.default
        return True

    @property
    def is_deselected(self) -> bool:
        return self.is_optional and not self.option_value

    def is_up_to_date(self) -> bool:
        """Whether the cache record already reflects this entry.

        Direct entries compare the artifact digest (and destination);
        linked entries compare the digest of the linked descriptor.
        """
        record = self.record
        if record is None:
            return False
        if isinstance(self.source, LinkedSource):
            return record.linked_file_hash == self.source.pointer_hash.value
        if record.hash_value != self.source.hash:
            return False
        return record.is_deselected or record.cached_location == self.destination

    def resolve(self, fetcher: DescriptorFetcher) -> LinkedDescriptor | None:
        """Resolve the linked descriptor; direct tasks have none."""
        if isinstance(self.source, LinkedSource):
            return self.source.resolve(fetcher)
        return None

    def artifact(self, fetcher: DescriptorFetcher) -> tuple[str, HashValue]:
        """Location and expected digest of the final artifact."""
        if isinstance(self.source, DirectSource):
            if self.source.hash is None:
                raise ValueError(f"Index entry {self.entry.file} declares no hash")
            return self.source.location, self.source.hash
        descriptor = self.source.resolve(fetcher)
        location = fetcher.resolve(self.source.location, descriptor.download.url)
        return location, descriptor.download.hash_value

    def build_record(self, artifact_hash: HashValue, cached_location: str | None) -> CacheRecord:
        """Cache record describing this task after a successful unit."""
        record = CacheRecord(
            hash=artifact_hash.value,
            hash_algorithm=artifact_hash.format.value,
            cached_location=cached_location,
        )
        if isinstance(self.source, LinkedSource):
            record.linked_file_hash = self.source.pointer_hash.value
            record.is_optional = self.is_optional
            record.option_value = self.option_value if record.is_optional else True
        return record


@dataclass(frozen=True)
class DownloadOutcome:
    """Immutable result of one fetch unit.

    Attributes:
        task: Task the unit executed
        action: One of downloaded, skipped, preserved, deselected, failed
        record: New cache record on success
        error: Captured error on failure
        bytes_written: Size of the written file
    """

    task: DownloadTask
    action: str
    record: CacheRecord | None = None
    error: BaseException | None = None
    bytes_written: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None
