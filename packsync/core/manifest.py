"""Persistent cache store.

Maps each remote file identifier to the last verified local state of that
file. The store is loaded once when a run starts, mutated in memory by the
run, and written back once at the end using an atomic write (temp file +
os.replace), so an interrupted run leaves the previous state intact.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from packsync.core.errors import ManifestError
from packsync.core.hashing import HashValue

logger = structlog.get_logger()


class CacheRecord(BaseModel):
    """Last verified local state of one remote file."""

    hash: str | None = Field(None, description="Digest of the file as written to disk")
    hash_algorithm: str | None = Field(None, alias="hashAlgorithm", description="Digest algorithm")
    cached_location: str | None = Field(
        None,
        alias="cachedLocation",
        description="Path relative to the pack folder, absent when not materialized"
    )
    is_optional: bool = Field(default=False, alias="isOptional")
    option_value: bool = Field(default=True, alias="optionValue")
    linked_file_hash: str | None = Field(
        None,
        alias="linkedFileHash",
        description="Digest of the linked descriptor that produced this file"
    )

    model_config = ConfigDict(populate_by_name=True)

    @property
    def hash_value(self) -> HashValue | None:
        if self.hash is None or self.hash_algorithm is None:
            return None
        return HashValue.parse(self.hash_algorithm, self.hash)

    @property
    def is_deselected(self) -> bool:
        """Optional file the user chose to exclude."""
        return self.is_optional and not self.option_value


class CacheManifest(BaseModel):
    """Serialized form of the cache store."""

    pack_descriptor_hash: str | None = Field(None, alias="packDescriptorHash")
    index_descriptor_hash: str | None = Field(None, alias="indexDescriptorHash")
    installed_side: str | None = Field(None, alias="installedSide", description="Side the files were installed for")
    cached_files: dict[str, CacheRecord] = Field(default_factory=dict, alias="cachedFiles")

    model_config = ConfigDict(populate_by_name=True)


class CacheStore:
    """Durable mapping from remote file identifier to cache record.

    Args:
        path: Location of the persisted store
        manifest: Loaded contents, empty when omitted
    """

    def __init__(self, path: Path, manifest: CacheManifest | None = None) -> None:
        self.path = path
        self.manifest = manifest or CacheManifest()

    @property
    def records(self) -> dict[str, CacheRecord]:
        return self.manifest.cached_files

    @property
    def pack_hash(self) -> str | None:
        return self.manifest.pack_descriptor_hash

    @property
    def index_hash(self) -> str | None:
        return self.manifest.index_descriptor_hash

    @property
    def side(self) -> str | None:
        return self.manifest.installed_side

    def get(self, file_id: str) -> CacheRecord | None:
        return self.records.get(file_id)

    def put(self, file_id: str, record: CacheRecord) -> None:
        self.records[file_id] = record

    def remove(self, file_id: str) -> CacheRecord | None:
        return self.records.pop(file_id, None)

    def set_descriptor_hashes(self, pack_hash: str | None, index_hash: str | None) -> None:
        """Record the pack/index digests this state was produced from."""
        self.manifest.pack_descriptor_hash = pack_hash
        self.manifest.index_descriptor_hash = index_hash

    def set_side(self, side: str | None) -> None:
        """Record the side the tracked files were installed for."""
        self.manifest.installed_side = side

    def __contains__(self, file_id: object) -> bool:
        return file_id in self.records

    def __len__(self) -> int:
        return len(self.records)

    def save(self) -> None:
        """Persist the store using an atomic write.

        Writes to a temporary file first, then atomically replaces the
        target so readers never observe a partially written store.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")

        data = self.manifest.model_dump(mode="json", by_alias=True)
        try:
            tmp_path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise

        logger.debug("manifest_saved", path=str(self.path), records=len(self.records))

    @classmethod
    def load(cls, path: Path) -> CacheStore:
        """Load the store from disk.

        Args:
            path: Location of the persisted store

        Returns:
            Loaded store, or an empty store when the file does not exist

        Raises:
            ManifestError: If the file exists but cannot be parsed
        """
        if not path.exists():
            logger.debug("manifest_missing", path=str(path))
            return cls(path)

        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            manifest = CacheManifest.model_validate(raw)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
            raise ManifestError(f"Cache store {path} is corrupt: {e}", path=str(path)) from e

        logger.debug("manifest_loaded", path=str(path), records=len(manifest.cached_files))
        return cls(path, manifest)
