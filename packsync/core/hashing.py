"""Incremental hashing of byte streams.

Digests are computed while content is consumed, so a downloaded file is
read exactly once: the bytes that get hashed are the bytes that get
written. Cryptographic formats come from hashlib; ``murmur2`` is the
CurseForge fingerprint, a 32-bit MurmurHash2 (seed 1) over the content
with whitespace bytes removed, rendered in decimal.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import BinaryIO, Protocol

from packsync.core.types import HashFormat

# Bytes ignored by the CurseForge fingerprint: tab, LF, CR, space
_MURMUR2_IGNORED = bytes([9, 10, 13, 32])
_MURMUR2_M = 0x5BD1E995


class UnsupportedHashFormat(ValueError):
    """Raised for a hash format name packsync cannot compute."""


class Hasher(Protocol):
    """Incremental digest computation."""

    def update(self, data: bytes) -> None: ...

    def hexdigest(self) -> str: ...


def murmur2(data: bytes, seed: int = 1) -> int:
    """Compute 32-bit MurmurHash2.

    Args:
        data: Input bytes
        seed: Hash seed

    Returns:
        Unsigned 32-bit hash value
    """
    length = len(data)
    h = (seed ^ length) & 0xFFFFFFFF
    pos = 0

    while length - pos >= 4:
        k = int.from_bytes(data[pos:pos + 4], "little")
        k = (k * _MURMUR2_M) & 0xFFFFFFFF
        k ^= k >> 24
        k = (k * _MURMUR2_M) & 0xFFFFFFFF
        h = (h * _MURMUR2_M) & 0xFFFFFFFF
        h ^= k
        pos += 4

    tail = length - pos
    if tail == 3:
        h ^= data[pos + 2] << 16
    if tail >= 2:
        h ^= data[pos + 1] << 8
    if tail >= 1:
        h ^= data[pos]
        h = (h * _MURMUR2_M) & 0xFFFFFFFF

    h ^= h >> 13
    h = (h * _MURMUR2_M) & 0xFFFFFFFF
    h ^= h >> 15
    return h


class Murmur2Hasher:
    """CurseForge fingerprint hasher.

    MurmurHash2 mixes the total length into its seed, so filtered content is
    buffered until the digest is requested.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    def update(self, data: bytes) -> None:
        self._buffer += data.translate(None, _MURMUR2_IGNORED)

    def hexdigest(self) -> str:
        return str(murmur2(bytes(self._buffer)))


def parse_hash_format(name: str | HashFormat) -> HashFormat:
    """Normalize a hash format name.

    Raises:
        UnsupportedHashFormat: If the name is not a known format
    """
    try:
        return HashFormat(str(name).strip().lower())
    except ValueError as e:
        raise UnsupportedHashFormat(f"Unsupported hash format: {name}") from e


def get_hasher(name: str | HashFormat) -> Hasher:
    """Create a fresh incremental hasher for a format.

    Args:
        name: Hash format name (sha1, sha256, sha512, md5, murmur2)

    Returns:
        Hasher with ``update`` and ``hexdigest``
    """
    fmt = parse_hash_format(name)
    if fmt is HashFormat.MURMUR2:
        return Murmur2Hasher()
    return hashlib.new(fmt.value)


@dataclass(frozen=True)
class HashValue:
    """A digest together with the algorithm that produced it.

    Values are normalized (stripped, lower-case) so that hex digests
    declared in upper case compare equal to computed ones.
    """

    format: HashFormat
    value: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "format", parse_hash_format(self.format))
        object.__setattr__(self, "value", self.value.strip().lower())

    @classmethod
    def parse(cls, format: str | HashFormat, value: str) -> HashValue:
        """Build a HashValue from a declared format name and digest."""
        return cls(parse_hash_format(format), value)

    def __str__(self) -> str:
        return f"{self.format.value}:{self.value}"


class HashingStream:
    """Binary stream wrapper that hashes everything read through it.

    Args:
        stream: Source stream
        format: Hash format to compute
    """

    def __init__(self, stream: BinaryIO, format: str | HashFormat):
        self._stream = stream
        self.format = parse_hash_format(format)
        self._hasher = get_hasher(self.format)
        self.bytes_read = 0

    def read(self, size: int = -1) -> bytes:
        data = self._stream.read(size)
        if data:
            self._hasher.update(data)
            self.bytes_read += len(data)
        return data

    def read_all(self, chunk_size: int = 65536) -> bytes:
        """Consume the rest of the stream, returning the buffered content."""
        chunks: list[bytes] = []
        while True:
            chunk = self.read(chunk_size)
            if not chunk:
                break
            chunks.append(chunk)
        return b"".join(chunks)

    def digest(self) -> HashValue:
        """Digest of everything read so far."""
        return HashValue(self.format, self._hasher.hexdigest())

    def hash_is_equal(self, expected: HashValue | None) -> bool:
        """Compare the computed digest against an expected one.

        Returns False when ``expected`` is None or uses another format.
        """
        if expected is None:
            return False
        return self.digest() == expected
