"""Pytest configuration and shared fixtures for packsync tests."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Generator, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, BinaryIO

import pytest

from packsync.core.config import SyncConfig
from packsync.core.fetcher import DescriptorFetcher
from packsync.core.options import OptionGroup


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    # JSON string literals are valid TOML basic strings
    return json.dumps(value)


def _toml_table(values: dict[str, Any]) -> str:
    return "".join(f"{key} = {_toml_value(value)}\n" for key, value in values.items() if value is not None)


class PackBuilder:
    """Writes a pack (pack.toml, index.toml, files, linked descriptors) to a folder.

    The builder can be modified and rebuilt between sync runs to simulate
    remote changes.
    """

    def __init__(self, root: Path, name: str = "Test Pack"):
        self.root = root
        self.name = name
        self.root.mkdir(parents=True, exist_ok=True)
        self.entries: dict[str, dict[str, Any]] = {}

    @property
    def pack_uri(self) -> str:
        return str(self.root / "pack.toml")

    def file_id(self, path: str) -> str:
        """Identifier the engine assigns to an index entry."""
        return str(self.root / path)

    def add_file(
        self,
        path: str,
        content: bytes,
        *,
        preserve: bool = False,
        alias: str | None = None,
        declared_hash: str | None = None,
    ) -> str:
        """Add a direct file entry."""
        target = self.root / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        self.entries[path] = {
            "file": path,
            "hash": declared_hash or sha256_hex(content),
            "alias": alias,
            "preserve": preserve or None,
        }
        return self.file_id(path)

    def add_linked(
        self,
        path: str,
        name: str,
        filename: str,
        content: bytes,
        *,
        side: str = "both",
        optional: bool = False,
        default: bool = False,
        description: str = "",
        declared_hash: str | None = None,
    ) -> str:
        """Add a metafile entry with its linked descriptor and artifact."""
        artifact = self.root / "artifacts" / filename
        artifact.parent.mkdir(parents=True, exist_ok=True)
        artifact.write_bytes(content)

        document = _toml_table({"name": name, "filename": filename, "side": side})
        document += "\n[download]\n" + _toml_table({
            "url": artifact.as_uri(),
            "hash-format": "sha1",
            "hash": declared_hash or hashlib.sha1(content).hexdigest(),
        })
        if optional:
            document += "\n[option]\n" + _toml_table({
                "optional": True,
                "description": description,
                "default": default,
            })

        metafile = self.root / path
        metafile.parent.mkdir(parents=True, exist_ok=True)
        metafile.write_text(document, encoding="utf-8")
        self.entries[path] = {
            "file": path,
            "hash": sha256_hex(document.encode("utf-8")),
            "metafile": True,
        }
        return self.file_id(path)

    def remove(self, path: str) -> None:
        del self.entries[path]

    def build(self, version: str = "1.0.0") -> str:
        """Write index.toml and pack.toml, returning the pack location."""
        index = _toml_table({"hash-format": "sha256"})
        for entry in self.entries.values():
            index += "\n[[files]]\n" + _toml_table(entry)
        index_bytes = index.encode("utf-8")
        (self.root / "index.toml").write_bytes(index_bytes)

        pack = _toml_table({"name": self.name, "version": version, "pack-format": "1.1.0"})
        pack += "\n[index]\n" + _toml_table({
            "file": "index.toml",
            "hash-format": "sha256",
            "hash": sha256_hex(index_bytes),
        })
        (self.root / "pack.toml").write_text(pack, encoding="utf-8")
        return self.pack_uri


class CountingFetcher(DescriptorFetcher):
    """Fetcher that records every location it opens."""

    def __init__(self) -> None:
        super().__init__()
        self.opened: list[str] = []

    @contextmanager
    def open(self, location: str) -> Iterator[BinaryIO]:
        self.opened.append(location)
        with super().open(location) as stream:
            yield stream


class RecordingUI:
    """User interface that records every callback.

    Args:
        selections: Answers for option groups by name; unanswered groups keep
            their current selection
        cancel: Return None from the option dialog
    """

    def __init__(self, selections: dict[str, bool] | None = None, cancel: bool = False):
        self.selections = selections or {}
        self.cancel = cancel
        self.messages: list[str] = []
        self.progress: list[tuple[int, int]] = []
        self.presented: list[list[OptionGroup]] = []
        self.fatal: list[BaseException] = []
        self.recoverable: list[tuple[str | None, BaseException]] = []

    def report_progress(self, message: str, completed: int | None = None, total: int | None = None) -> None:
        self.messages.append(message)
        if completed is not None and total is not None:
            self.progress.append((completed, total))

    def present_option_groups(self, groups: list[OptionGroup]) -> dict[str, bool] | None:
        self.presented.append(groups)
        if self.cancel:
            return None
        return {group.name: self.selections.get(group.name, group.selected) for group in groups}

    def report_fatal_error(self, error: BaseException) -> None:
        self.fatal.append(error)

    def report_recoverable_error(self, error: BaseException, file_id: str | None = None) -> None:
        self.recoverable.append((file_id, error))


@pytest.fixture
def remote_dir(tmp_path: Path) -> Path:
    """Folder playing the role of the remote pack host."""
    return tmp_path / "remote"


@pytest.fixture
def pack_folder(tmp_path: Path) -> Path:
    """Local pack root being synchronized."""
    folder = tmp_path / "instance"
    folder.mkdir()
    return folder


@pytest.fixture
def builder(remote_dir: Path) -> PackBuilder:
    """Builder for a local pack served from the filesystem."""
    return PackBuilder(remote_dir)


@pytest.fixture
def sync_config(pack_folder: Path) -> SyncConfig:
    """Sync configuration without retry delays."""
    return SyncConfig(pack_folder=pack_folder, max_workers=4, max_retries=2, base_backoff=0.0)


@pytest.fixture
def fetcher() -> Generator[CountingFetcher, None, None]:
    """Fetcher that records opened locations."""
    with CountingFetcher() as f:
        yield f


@pytest.fixture
def ui() -> RecordingUI:
    """User interface that accepts current selections."""
    return RecordingUI()


@pytest.fixture
def ui_factory() -> type[RecordingUI]:
    """Factory for user interfaces with preset option answers."""
    return RecordingUI
