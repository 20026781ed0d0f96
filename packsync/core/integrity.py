"""Content integrity verification for downloaded files.

Every artifact and every descriptor is hashed while it is read; the
computed digest must equal the digest declared one level up (pack → index
→ file, or index → linked descriptor → file) before anything is trusted.
"""

from __future__ import annotations

import structlog

from packsync.core.hashing import HashingStream, HashValue

logger = structlog.get_logger()


class IntegrityError(Exception):
    """Raised when content verification fails.

    Attributes:
        expected: Expected digest
        actual: Computed digest
        key: Identifier of the content being verified
    """

    def __init__(
        self,
        message: str,
        *,
        expected: str | None = None,
        actual: str | None = None,
        key: str | None = None,
    ):
        self.expected = expected
        self.actual = actual
        self.key = key
        super().__init__(message)


def verify_hash(stream: HashingStream, expected: HashValue, key: str | None = None) -> bool:
    """Verify a fully consumed stream against its expected digest.

    Args:
        stream: Hashing stream that has been read to the end
        expected: Declared digest
        key: Identifier used in the error message

    Returns:
        True if the digests match

    Raises:
        IntegrityError: If the digests do not match
    """
    actual = stream.digest()
    if actual != expected:
        logger.debug(
            "hash_mismatch",
            key=key,
            expected=str(expected),
            actual=str(actual),
        )
        raise IntegrityError(
            f"Hash mismatch for {key or 'content'}: expected {expected}, got {actual}",
            expected=str(expected),
            actual=str(actual),
            key=key,
        )
    return True
