"""Descriptor parsers for packsync.

This module provides parsers for the TOML documents that describe a pack:
- Pack: root descriptor naming the pack and pointing at its index
- Index: enumeration of every file in the pack
- Linked: per-file metadata (download location, optional group, side)
"""

from packsync.formats.base import FormatParser, TomlFormatParser
from packsync.formats.index import IndexDescriptor, IndexEntry, IndexParser
from packsync.formats.linked import (
    DownloadInfo,
    LinkedDescriptor,
    LinkedParser,
    OptionInfo,
)
from packsync.formats.pack import IndexReference, PackDescriptor, PackParser

__all__ = [
    "FormatParser",
    "TomlFormatParser",
    "PackDescriptor",
    "IndexReference",
    "PackParser",
    "IndexDescriptor",
    "IndexEntry",
    "IndexParser",
    "LinkedDescriptor",
    "DownloadInfo",
    "OptionInfo",
    "LinkedParser",
]
