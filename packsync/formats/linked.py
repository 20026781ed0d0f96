"""Linked descriptor parser.

A linked descriptor (metafile) describes the artifact an index entry
stands for: where to download it, its digest, the name it is saved
under, which side it belongs to, and whether it is optional.

Example::

    name = "Example Mod"
    filename = "example-1.0.jar"
    side = "client"

    [download]
    url = "https://cdn.example.com/files/example-1.0.jar"
    hash-format = "sha1"
    hash = "5e1f..."

    [option]
    optional = true
    description = "Adds example content"
    default = false
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from packsync.core.hashing import HashValue, parse_hash_format
from packsync.core.types import Side
from packsync.formats.base import TomlFormatParser


class DownloadInfo(BaseModel):
    """Where the artifact lives and what it must hash to."""

    url: str = Field(..., description="Artifact location, absolute or relative to the descriptor")
    hash_format: str = Field(..., alias="hash-format", description="Artifact digest algorithm")
    hash: str = Field(..., description="Expected artifact digest")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("hash_format")
    @classmethod
    def validate_hash_format(cls, v: str) -> str:
        return parse_hash_format(v).value

    @property
    def hash_value(self) -> HashValue:
        return HashValue.parse(self.hash_format, self.hash)


class OptionInfo(BaseModel):
    """Optional-group declaration."""

    optional: bool = Field(default=False, description="Whether the user may exclude this file")
    description: str = Field(default="", description="Human-readable description")
    default: bool = Field(default=False, description="Selection used when the user accepts defaults")


class LinkedDescriptor(BaseModel):
    """Secondary document describing the downloadable artifact."""

    name: str = Field(..., description="Display name, also the optional group name")
    filename: str = Field(..., description="File name at the destination")
    side: Side = Field(default=Side.BOTH, description="Side the artifact installs on")
    download: DownloadInfo
    option: OptionInfo | None = Field(None, description="Optional-group declaration")

    model_config = ConfigDict(extra="allow")

    @property
    def is_optional(self) -> bool:
        return self.option is not None and self.option.optional


class LinkedParser(TomlFormatParser[LinkedDescriptor]):
    """Parser for linked descriptors."""

    model = LinkedDescriptor
    kind = "linked descriptor"
