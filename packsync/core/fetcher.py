"""Descriptor and artifact fetching.

Locations are either URLs (``http``, ``https``, ``file``) or plain
filesystem paths. The fetcher only resolves locations and opens byte
streams; hashing and parsing happen in the caller.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO
from urllib.parse import urljoin, urlparse
from urllib.request import url2pathname

import httpx
import structlog

from packsync.core.config import HttpConfig
from packsync.core.errors import FetchError
from packsync.core.hashing import HashingStream, HashValue
from packsync.core.integrity import verify_hash
from packsync.core.types import HashFormat

logger = structlog.get_logger()

_URL_SCHEMES = {"http", "https", "file"}


def is_url(location: str) -> bool:
    """Check whether a location is a URL rather than a filesystem path.

    Single-letter schemes are treated as Windows drive letters.
    """
    scheme = urlparse(location).scheme
    return len(scheme) > 1 and scheme in _URL_SCHEMES


class _ChunkReader:
    """Minimal binary reader over an iterator of byte chunks."""

    def __init__(self, chunks: Iterator[bytes]):
        self._chunks = chunks
        self._pending = b""
        self._exhausted = False

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            data = self._pending + b"".join(self._chunks)
            self._pending = b""
            self._exhausted = True
            return data

        while len(self._pending) < size and not self._exhausted:
            try:
                self._pending += next(self._chunks)
            except StopIteration:
                self._exhausted = True

        data, self._pending = self._pending[:size], self._pending[size:]
        return data


class DescriptorFetcher:
    """Resolves locations and opens byte streams to them.

    The HTTP client is created lazily and owned by the fetcher; use the
    fetcher as a context manager to close it at the end of a run.
    """

    def __init__(self, config: HttpConfig | None = None, client: httpx.Client | None = None):
        """Initialize fetcher.

        Args:
            config: Optional HTTP configuration
            client: Optional pre-built HTTP client (tests inject mock transports)
        """
        self.config = config or HttpConfig()
        self._client = client

    @property
    def client(self) -> httpx.Client:
        """Get or create sync HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                timeout=self.config.timeout,
                verify=self.config.verify_ssl,
                follow_redirects=True,
                headers={"User-Agent": self.config.user_agent},
            )
        return self._client

    def resolve(self, base: str, relative: str) -> str:
        """Resolve ``relative`` against the location of ``base``.

        Args:
            base: Location of the referring document
            relative: Reference found inside that document

        Returns:
            Resolved location
        """
        if is_url(relative) or Path(relative).is_absolute():
            return relative
        if is_url(base):
            return urljoin(base, relative)
        return str(Path(base).parent / relative)

    @contextmanager
    def open(self, location: str) -> Iterator[BinaryIO]:
        """Open a byte stream to a location.

        Args:
            location: URL or filesystem path

        Yields:
            Readable binary stream

        Raises:
            FetchError: If the location cannot be opened
        """
        parsed = urlparse(location)

        if parsed.scheme in ("http", "https"):
            try:
                with self.client.stream("GET", location) as response:
                    response.raise_for_status()
                    logger.debug("fetch_open", location=location, status=response.status_code)
                    yield _ChunkReader(response.iter_bytes())  # type: ignore[misc]
            except httpx.HTTPError as e:
                raise FetchError(f"Failed to fetch {location}: {e}", location=location) from e
            return

        if is_url(location):
            path = Path(url2pathname(parsed.path))
        else:
            path = Path(location)

        try:
            f = open(path, "rb")
        except OSError as e:
            raise FetchError(f"Failed to open {location}: {e}", location=location) from e
        with f:
            yield f

    def fetch_verified(
        self,
        location: str,
        hash_format: str | HashFormat,
        expected: HashValue | None = None,
    ) -> tuple[bytes, HashValue]:
        """Read a whole location while hashing it.

        Args:
            location: URL or filesystem path
            hash_format: Digest algorithm to compute
            expected: Digest the content must match, if known

        Returns:
            Tuple of (content, computed digest)

        Raises:
            FetchError: If the location cannot be read
            IntegrityError: If ``expected`` is given and does not match
        """
        with self.open(location) as raw:
            stream = HashingStream(raw, hash_format)
            data = stream.read_all()

        if expected is not None:
            verify_hash(stream, expected, key=location)
        return data, stream.digest()

    def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> DescriptorFetcher:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()
