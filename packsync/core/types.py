"""Core type definitions for packsync."""

from __future__ import annotations

from enum import StrEnum


class HashFormat(StrEnum):
    """Supported digest algorithms."""
    SHA1 = "sha1"
    SHA256 = "sha256"
    SHA512 = "sha512"
    MD5 = "md5"
    MURMUR2 = "murmur2"


class Side(StrEnum):
    """Installation side a file is meant for."""
    CLIENT = "client"
    SERVER = "server"
    BOTH = "both"

    def has_side(self, other: Side) -> bool:
        """Check whether files declared for ``other`` belong on this side.

        ``both`` contains client and server; every side contains itself.
        """
        if self is other:
            return True
        return self is Side.BOTH and other in (Side.CLIENT, Side.SERVER)

    def includes(self, declared: Side) -> bool:
        """Check whether a file declared for ``declared`` installs here."""
        return declared.has_side(self) or self.has_side(declared)
