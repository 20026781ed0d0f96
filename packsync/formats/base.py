"""Base classes for descriptor parsers."""

from __future__ import annotations

import tomllib
from abc import ABC, abstractmethod
from typing import Any, BinaryIO, ClassVar, Generic, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from packsync.core.errors import DescriptorError

logger = structlog.get_logger()

T = TypeVar("T", bound=BaseModel)


class FormatParser(ABC, Generic[T]):
    """Base class for descriptor parsers."""

    @abstractmethod
    def parse(self, data: bytes | BinaryIO) -> T:
        """Parse descriptor data.

        Args:
            data: Raw bytes or stream

        Returns:
            Parsed descriptor object
        """
        ...

    def parse_file(self, path: str) -> T:
        """Parse descriptor from file.

        Args:
            path: File path

        Returns:
            Parsed descriptor object
        """
        try:
            with open(path, "rb") as f:
                return self.parse(f)
        except OSError as e:
            logger.error("descriptor_read_failed", path=path, error=str(e))
            raise DescriptorError(f"Cannot read file {path}: {e}", location=path) from e


class TomlFormatParser(FormatParser[T]):
    """Parser for TOML descriptors validated by a pydantic model.

    Subclasses set ``model`` and ``kind``.
    """

    model: ClassVar[type[BaseModel]]
    kind: ClassVar[str] = "descriptor"

    def parse(self, data: bytes | BinaryIO) -> T:
        raw = data if isinstance(data, bytes) else data.read()
        try:
            document: dict[str, Any] = tomllib.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
            raise DescriptorError(f"Malformed {self.kind}: {e}") from e

        try:
            return self.model.model_validate(document)  # type: ignore[return-value]
        except ValidationError as e:
            raise DescriptorError(f"Invalid {self.kind}: {e}") from e
