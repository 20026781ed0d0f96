"""End-to-end tests for packsync.core.updater module."""

import hashlib
import json

import pytest

from packsync.core.errors import DescriptorError, FetchError, ManifestError, OptionSelectionCancelled
from packsync.core.manifest import CacheStore
from packsync.core.types import Side
from packsync.core.updater import PackUpdater, SyncResult


def _sync(builder, sync_config, ui, fetcher, **kwargs) -> SyncResult:
    return PackUpdater(builder.pack_uri, sync_config, ui, fetcher, **kwargs).run()


def _store(sync_config) -> CacheStore:
    return CacheStore.load(sync_config.manifest_path)


class TestFirstSync:
    """Test a sync into an empty pack folder."""

    def test_installs_all_files(self, builder, pack_folder, sync_config, fetcher, ui):
        """Test every file is downloaded and recorded."""
        a = builder.add_file("config/a.txt", b"alpha")
        mod = builder.add_linked("mods/mod.pw.toml", "Mod", "mod.jar", b"jar")
        builder.build()

        result = _sync(builder, sync_config, ui, fetcher)

        assert result.ok
        assert result.pack_name == "Test Pack"
        assert sorted(result.fetched) == sorted([a, mod])
        assert result.bytes_written == len(b"alpha") + len(b"jar")
        assert (pack_folder / "config" / "a.txt").read_bytes() == b"alpha"
        assert (pack_folder / "mods" / "mod.jar").read_bytes() == b"jar"

        store = _store(sync_config)
        assert store.get(a).cached_location == "config/a.txt"
        assert store.get(mod).cached_location == "mods/mod.jar"
        assert store.pack_hash.startswith("sha256:")
        assert store.index_hash == "sha256:" + hashlib.sha256(
            (builder.root / "index.toml").read_bytes()
        ).hexdigest()

    def test_progress_reported_per_outcome(self, builder, sync_config, fetcher, ui):
        """Test one counted progress event per fetched file."""
        for i in range(3):
            builder.add_file(f"f{i}.txt", str(i).encode())
        builder.build()

        _sync(builder, sync_config, ui, fetcher)

        assert sorted(ui.progress) == [(1, 3), (2, 3), (3, 3)]
        assert "Loading pack file..." in ui.messages


class TestIdempotence:
    """Test re-running without changes."""

    def test_second_run_fetches_nothing(self, builder, sync_config, fetcher, ui):
        """Test the pack digest short-circuits the second run."""
        builder.add_file("a.txt", b"a")
        builder.add_linked("mods/mod.pw.toml", "Mod", "mod.jar", b"jar")
        builder.build()
        _sync(builder, sync_config, ui, fetcher)
        fetcher.opened.clear()

        result = _sync(builder, sync_config, ui, fetcher)

        assert result.up_to_date
        assert result.fetched == []
        assert fetcher.opened == [builder.pack_uri]

    def test_index_unchanged_short_circuits(self, builder, sync_config, fetcher, ui):
        """Test a pack change that keeps the index skips per-file work."""
        builder.add_file("a.txt", b"a")
        builder.build(version="1.0.0")
        _sync(builder, sync_config, ui, fetcher)
        builder.build(version="1.0.1")
        fetcher.opened.clear()

        result = _sync(builder, sync_config, ui, fetcher)

        assert result.up_to_date
        assert fetcher.opened == [builder.pack_uri]
        assert _store(sync_config).pack_hash == "sha256:" + hashlib.sha256(
            (builder.root / "pack.toml").read_bytes()
        ).hexdigest()


class TestInvalidation:
    """Test recovery of locally deleted files."""

    def test_deleted_file_fetched_again(self, builder, pack_folder, sync_config, fetcher, ui):
        """Test a missing cached file bypasses the early exit and is refetched alone."""
        a = builder.add_file("a.txt", b"a")
        builder.add_file("b.txt", b"b")
        builder.build()
        _sync(builder, sync_config, ui, fetcher)
        (pack_folder / "a.txt").unlink()

        result = _sync(builder, sync_config, ui, fetcher)

        assert result.fetched == [a]
        assert (pack_folder / "a.txt").read_bytes() == b"a"


class TestRemoteChanges:
    """Test updates, removals and integrity failures."""

    def test_changed_file_updated(self, builder, pack_folder, sync_config, fetcher, ui):
        """Test only the changed file is downloaded."""
        a = builder.add_file("a.txt", b"h1")
        b = builder.add_file("b.txt", b"b")
        builder.build()
        _sync(builder, sync_config, ui, fetcher)

        builder.add_file("a.txt", b"h2")
        builder.build()
        result = _sync(builder, sync_config, ui, fetcher)

        assert result.fetched == [a]
        assert b in result.skipped
        assert (pack_folder / "a.txt").read_bytes() == b"h2"
        assert _store(sync_config).get(a).hash == hashlib.sha256(b"h2").hexdigest()

    def test_removed_file_deleted(self, builder, pack_folder, sync_config, fetcher, ui):
        """Test files that leave the index are deleted with their records."""
        builder.add_file("a.txt", b"a")
        b = builder.add_file("b.txt", b"b")
        builder.build()
        _sync(builder, sync_config, ui, fetcher)

        builder.remove("b.txt")
        builder.build()
        result = _sync(builder, sync_config, ui, fetcher)

        assert result.deleted == [b]
        assert not (pack_folder / "b.txt").exists()
        assert b not in _store(sync_config)

    def test_hash_mismatch_not_recorded(self, builder, pack_folder, sync_config, fetcher, ui):
        """Test a corrupt file fails alone and forces a full diff next run."""
        good = builder.add_file("good.txt", b"good")
        bad = builder.add_file("bad.txt", b"bad", declared_hash="00" * 32)
        builder.build()

        result = _sync(builder, sync_config, ui, fetcher)

        assert not result.ok
        assert [f.file_id for f in result.failures] == [bad]
        assert "Hash mismatch" in result.failures[0].error
        assert result.fetched == [good]
        assert not (pack_folder / "bad.txt").exists()
        assert [file_id for file_id, _ in ui.recoverable] == [bad]

        store = _store(sync_config)
        assert good in store
        assert bad not in store
        assert store.pack_hash is None
        assert store.index_hash is None

    def test_failed_file_retried_next_run(self, builder, pack_folder, sync_config, fetcher, ui):
        """Test a fixed remote file is picked up without any other change."""
        builder.add_file("bad.txt", b"bad", declared_hash="00" * 32)
        builder.build()
        _sync(builder, sync_config, ui, fetcher)

        (builder.root / "bad.txt").write_bytes(b"fixed")
        builder.entries["bad.txt"]["hash"] = hashlib.sha256(b"fixed").hexdigest()
        builder.build()
        result = _sync(builder, sync_config, ui, fetcher)

        assert result.ok
        assert (pack_folder / "bad.txt").read_bytes() == b"fixed"

    def test_preserved_file_not_overwritten(self, builder, pack_folder, sync_config, fetcher, ui):
        """Test a preserved file with local edits survives remote updates."""
        builder.add_file("options.txt", b"v1", preserve=True)
        builder.build()
        _sync(builder, sync_config, ui, fetcher)
        (pack_folder / "options.txt").write_text("user edits")

        builder.add_file("options.txt", b"v2", preserve=True)
        builder.build()
        result = _sync(builder, sync_config, ui, fetcher)

        assert result.ok
        assert result.fetched == []
        assert (pack_folder / "options.txt").read_text() == "user edits"

    def test_mismatch_keeps_previous_version(self, builder, pack_folder, sync_config, fetcher, ui):
        """Test a failed update leaves the cached file and its record as they were."""
        a = builder.add_file("a.txt", b"h1")
        builder.build()
        _sync(builder, sync_config, ui, fetcher)

        builder.add_file("a.txt", b"h2", declared_hash="11" * 32)
        builder.build()
        result = _sync(builder, sync_config, ui, fetcher)

        assert [f.file_id for f in result.failures] == [a]
        assert result.fetched == []
        assert (pack_folder / "a.txt").read_bytes() == b"h1"
        record = _store(sync_config).get(a)
        assert record.hash == hashlib.sha256(b"h1").hexdigest()
        assert record.cached_location == "a.txt"

    def test_unresolvable_entry_fails_alone(self, builder, pack_folder, sync_config, fetcher, ui):
        """Test an entry with an unparseable location does not abort the run."""
        good = builder.add_file("good.txt", b"good")
        builder.entries["broken"] = {"file": "http://[bad", "hash": "00" * 32}
        builder.build()

        result = _sync(builder, sync_config, ui, fetcher)

        assert ui.fatal == []
        assert result.fetched == [good]
        assert [f.file_id for f in result.failures] == ["http://[bad"]
        assert (pack_folder / "good.txt").read_bytes() == b"good"
        assert good in _store(sync_config)


class TestOptionalFiles:
    """Test optional component selection across runs."""

    def test_toggle_optional(self, builder, pack_folder, sync_config, fetcher, ui_factory):
        """Test deselecting and reselecting an optional file."""
        opt = builder.add_linked(
            "mods/opt.pw.toml", "Shaders", "shaders.jar", b"s", optional=True, default=True
        )
        builder.build()
        jar = pack_folder / "mods" / "shaders.jar"

        first = ui_factory()
        _sync(builder, sync_config, first, fetcher)
        assert len(first.presented) == 1
        assert jar.exists()

        off = ui_factory(selections={"Shaders": False})
        _sync(builder, sync_config, off, fetcher, reconfigure_options=True)
        assert not jar.exists()
        record = _store(sync_config).get(opt)
        assert record.option_value is False
        assert record.cached_location is None

        quiet = ui_factory()
        result = _sync(builder, sync_config, quiet, fetcher)
        assert result.up_to_date
        assert quiet.presented == []

        on = ui_factory(selections={"Shaders": True})
        _sync(builder, sync_config, on, fetcher, reconfigure_options=True)
        assert jar.read_bytes() == b"s"
        assert _store(sync_config).get(opt).option_value is True

    def test_default_off_not_downloaded(self, builder, pack_folder, sync_config, fetcher, ui):
        """Test an optional file defaulting to off is recorded but not written."""
        opt = builder.add_linked("mods/opt.pw.toml", "Extra", "extra.jar", b"e", optional=True)
        builder.build()

        _sync(builder, sync_config, ui, fetcher)

        assert not (pack_folder / "mods" / "extra.jar").exists()
        record = _store(sync_config).get(opt)
        assert record.is_optional and record.option_value is False

    def test_cancel_persists_nothing(self, builder, sync_config, fetcher, ui_factory):
        """Test cancelling the option dialog aborts without writing state."""
        builder.add_linked("mods/opt.pw.toml", "Extra", "extra.jar", b"e", optional=True)
        builder.build()
        ui = ui_factory(cancel=True)

        with pytest.raises(OptionSelectionCancelled):
            _sync(builder, sync_config, ui, fetcher)

        assert len(ui.fatal) == 1
        assert not sync_config.manifest_path.exists()


class TestFatalErrors:
    """Test run-aborting failures."""

    def test_missing_pack(self, builder, sync_config, fetcher, ui):
        """Test an unreachable pack descriptor aborts the run."""
        with pytest.raises(FetchError):
            _sync(builder, sync_config, ui, fetcher)
        assert isinstance(ui.fatal[0], FetchError)

    def test_index_hash_mismatch(self, builder, sync_config, fetcher, ui):
        """Test a tampered index aborts without persisting anything."""
        builder.add_file("a.txt", b"a")
        builder.build()
        with open(builder.root / "index.toml", "a") as f:
            f.write("# tampered\n")

        with pytest.raises(DescriptorError, match="Index descriptor failed verification"):
            _sync(builder, sync_config, ui, fetcher)
        assert not sync_config.manifest_path.exists()

    def test_corrupt_manifest(self, builder, sync_config, fetcher, ui):
        """Test a corrupt cache store aborts the run untouched."""
        builder.build()
        sync_config.manifest_path.write_text("{broken")

        with pytest.raises(ManifestError):
            _sync(builder, sync_config, ui, fetcher)
        assert sync_config.manifest_path.read_text() == "{broken"

    def test_malformed_pack(self, builder, sync_config, fetcher, ui):
        """Test an unparseable pack descriptor aborts the run."""
        (builder.root / "pack.toml").write_text("this is not toml =")

        with pytest.raises(DescriptorError):
            _sync(builder, sync_config, ui, fetcher)


class TestPersistedFormat:
    """Test the persisted cache store layout."""

    def test_manifest_keys(self, builder, sync_config, fetcher, ui):
        """Test the cache store uses camelCase keys."""
        a = builder.add_file("a.txt", b"a")
        builder.build()
        _sync(builder, sync_config, ui, fetcher)

        data = json.loads(sync_config.manifest_path.read_text())
        assert set(data) == {"packDescriptorHash", "indexDescriptorHash", "installedSide", "cachedFiles"}
        assert data["installedSide"] == "client"
        assert data["cachedFiles"][a]["cachedLocation"] == "a.txt"


class TestSideChange:
    """Test switching the configured side on an unchanged pack."""

    def test_side_change_swaps_side_files(self, builder, pack_folder, sync_config, fetcher, ui):
        """Test files of the old side are removed and files of the new side fetched."""
        client = builder.add_linked("mods/client.pw.toml", "Client", "client.jar", b"c", side="client")
        shared = builder.add_linked("mods/shared.pw.toml", "Shared", "shared.jar", b"s")
        server = builder.add_linked("mods/server.pw.toml", "Server", "server.jar", b"v", side="server")
        builder.build()
        _sync(builder, sync_config, ui, fetcher)
        assert (pack_folder / "mods" / "client.jar").exists()
        assert _store(sync_config).side == "client"

        server_config = sync_config.model_copy(update={"side": Side.SERVER})
        result = _sync(builder, server_config, ui, fetcher)

        assert not result.up_to_date
        assert result.deleted == [client]
        assert result.fetched == [server]
        assert shared in result.skipped
        assert not (pack_folder / "mods" / "client.jar").exists()
        assert (pack_folder / "mods" / "server.jar").read_bytes() == b"v"
        assert (pack_folder / "mods" / "shared.jar").read_bytes() == b"s"

        store = _store(server_config)
        assert client not in store
        assert store.side == "server"

    def test_same_side_keeps_early_exit(self, builder, sync_config, fetcher, ui):
        """Test the recorded side does not defeat the early exit when unchanged."""
        builder.add_linked("mods/server.pw.toml", "Server", "server.jar", b"v", side="server")
        builder.build()
        server_config = sync_config.model_copy(update={"side": Side.SERVER})
        _sync(builder, server_config, ui, fetcher)
        fetcher.opened.clear()

        result = _sync(builder, server_config, ui, fetcher)

        assert result.up_to_date
        assert fetcher.opened == [builder.pack_uri]
