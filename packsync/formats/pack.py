"""Pack descriptor parser.

The pack descriptor is the root of trust for a run: its own digest is
remembered between runs and it declares the digest of the index.

Example::

    name = "Example Pack"
    version = "1.2.0"

    [index]
    file = "index.toml"
    hash-format = "sha256"
    hash = "3f5a..."
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from packsync.core.hashing import HashValue, parse_hash_format
from packsync.formats.base import TomlFormatParser


class IndexReference(BaseModel):
    """Location and expected digest of the index descriptor."""

    file: str = Field(..., description="Index location relative to the pack descriptor")
    hash_format: str = Field(..., alias="hash-format", description="Index digest algorithm")
    hash: str = Field(..., description="Expected index digest")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("hash_format")
    @classmethod
    def validate_hash_format(cls, v: str) -> str:
        return parse_hash_format(v).value

    @property
    def hash_value(self) -> HashValue:
        return HashValue.parse(self.hash_format, self.hash)


class PackDescriptor(BaseModel):
    """Root remote document naming the pack and pointing at its index."""

    name: str = Field(..., description="Pack name")
    author: str | None = Field(None, description="Pack author")
    version: str | None = Field(None, description="Pack version")
    pack_format: str | None = Field(None, alias="pack-format", description="Descriptor format version")
    index: IndexReference

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class PackParser(TomlFormatParser[PackDescriptor]):
    """Parser for pack descriptors."""

    model = PackDescriptor
    kind = "pack descriptor"
