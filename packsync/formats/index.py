"""Index descriptor parser.

The index enumerates every file of a pack. An entry either describes the
final artifact directly (``hash`` of the file itself) or, with
``metafile = true``, points at a linked descriptor whose own digest is
the entry's ``hash``.

Example::

    hash-format = "sha256"

    [[files]]
    file = "config/settings.json"
    hash = "9a0b..."
    preserve = true

    [[files]]
    file = "mods/example.pw.toml"
    hash = "c41d..."
    metafile = true
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from packsync.core.hashing import HashValue, parse_hash_format
from packsync.formats.base import TomlFormatParser


class IndexEntry(BaseModel):
    """One file declared by the index."""

    file: str = Field(..., description="Location relative to the index descriptor")
    hash: str | None = Field(None, description="Expected digest of the file or linked descriptor")
    hash_format: str | None = Field(None, alias="hash-format", description="Per-entry digest algorithm")
    alias: str | None = Field(None, description="Destination override, relative to the pack folder")
    metafile: bool = Field(default=False, description="Entry points at a linked descriptor")
    preserve: bool = Field(default=False, description="Never overwrite an existing destination")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("hash_format")
    @classmethod
    def validate_hash_format(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return parse_hash_format(v).value

    def hash_value(self, default_format: str) -> HashValue | None:
        """Expected digest, using the index-wide format when none is declared."""
        if self.hash is None:
            return None
        return HashValue.parse(self.hash_format or default_format, self.hash)


class IndexDescriptor(BaseModel):
    """Remote document enumerating every file belonging to the pack."""

    hash_format: str = Field(..., alias="hash-format", description="Default digest algorithm")
    files: list[IndexEntry] = Field(default_factory=list, description="Declared files")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("hash_format")
    @classmethod
    def validate_hash_format(cls, v: str) -> str:
        return parse_hash_format(v).value


class IndexParser(TomlFormatParser[IndexDescriptor]):
    """Parser for index descriptors."""

    model = IndexDescriptor
    kind = "index descriptor"
