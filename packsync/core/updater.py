"""Synchronization run driver.

One call to ``PackUpdater.run`` performs a single pull-and-verify pass:

    load cache store → fetch pack descriptor → invalidation pass
    → (early exit) → fetch index → reconcile → option selection
    → concurrent downloads → fold outcomes → persist cache store

The cache store is written once, at the very end. Any run-aborting error
raised before that leaves the previously persisted state untouched.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import structlog

from packsync.core.config import SyncConfig
from packsync.core.download_queue import DownloadQueue
from packsync.core.errors import DescriptorError, SyncError
from packsync.core.fetcher import DescriptorFetcher
from packsync.core.hashing import HashValue
from packsync.core.installer import FileInstaller
from packsync.core.integrity import IntegrityError
from packsync.core.manifest import CacheStore
from packsync.core.options import OptionCoordinator
from packsync.core.reconcile import ReconcilePlan, diff, find_invalidated
from packsync.core.tasks import DownloadOutcome, DownloadTask
from packsync.core.ui import UserInterface
from packsync.formats.index import IndexDescriptor, IndexParser
from packsync.formats.pack import PackDescriptor, PackParser

logger = structlog.get_logger()

_ACTION_MESSAGES = {
    "downloaded": "Downloaded {name}",
    "skipped": "Unchanged {name}",
    "preserved": "Kept existing {name}",
    "deselected": "Removed deselected {name}",
}


@dataclass(frozen=True)
class FileFailure:
    """A per-file failure reported at the end of a run."""

    file_id: str
    name: str
    error: str


@dataclass
class SyncResult:
    """Summary of one run."""

    pack_name: str | None = None
    up_to_date: bool = False
    fetched: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    failures: list[FileFailure] = field(default_factory=list)
    bytes_written: int = 0

    @property
    def ok(self) -> bool:
        return not self.failures


class PackUpdater:
    """Reconciles a local pack folder against a remote pack descriptor.

    Args:
        pack_uri: Location of the pack descriptor
        config: Run configuration
        ui: User interface callbacks
        fetcher: Descriptor fetcher; the updater does not close it
        reconfigure_options: Present all optional groups even if none is new
    """

    def __init__(
        self,
        pack_uri: str,
        config: SyncConfig,
        ui: UserInterface,
        fetcher: DescriptorFetcher,
        reconfigure_options: bool = False,
    ):
        self.pack_uri = pack_uri
        self.config = config
        self.ui = ui
        self.fetcher = fetcher
        self.reconfigure_options = reconfigure_options
        self.pack_folder = config.pack_folder

    def run(self) -> SyncResult:
        """Execute one synchronization pass.

        Returns:
            Run summary; per-file failures are listed, not raised

        Raises:
            SyncError: On any run-aborting failure, after reporting it
        """
        try:
            return self._run()
        except SyncError as e:
            logger.error("sync_failed", error=str(e))
            self.ui.report_fatal_error(e)
            raise

    def _run(self) -> SyncResult:
        self.ui.report_progress("Loading manifest file...")
        store = CacheStore.load(self.config.manifest_path)

        self.ui.report_progress("Loading pack file...")
        pack, pack_hash = self._fetch_pack()
        result = SyncResult(pack_name=pack.name)

        self.ui.report_progress("Checking local files...")
        invalidated = find_invalidated(store, self.pack_folder)

        side_changed = store.side != self.config.side.value
        current = not invalidated and not self.reconfigure_options and not side_changed
        if current and store.pack_hash == str(pack_hash):
            logger.info("pack_up_to_date", pack=pack.name)
            self.ui.report_progress("Modpack is already up to date!")
            result.up_to_date = True
            return result

        logger.info("pack_changed", pack=pack.name, invalidated=len(invalidated), side_changed=side_changed)
        index_hash = pack.index.hash_value
        index_location = self.fetcher.resolve(self.pack_uri, pack.index.file)

        if current and store.index_hash == str(index_hash):
            logger.info("index_up_to_date", pack=pack.name)
            self.ui.report_progress("Modpack files are already up to date!")
            store.set_descriptor_hashes(str(pack_hash), str(index_hash))
            store.save()
            result.up_to_date = True
            return result

        index = self._fetch_index(index_location, pack)

        self.ui.report_progress("Comparing new files...")
        plan = diff(
            store,
            index,
            index_location,
            invalidated,
            self.fetcher,
            self.pack_folder,
            side=self.config.side,
            recheck_side=side_changed,
        )
        OptionCoordinator(self.ui, self.fetcher).coordinate(plan, force=self.reconfigure_options)

        result.deleted = list(plan.to_delete)
        result.skipped = [t.file_id for t in plan.to_skip]
        for task in plan.failed:
            self.ui.report_recoverable_error(task.error, task.file_id)
            self._record_failure(result, task, task.error)

        outcomes = asyncio.run(self._download(plan, store))
        for outcome in outcomes:
            if not outcome.ok:
                self._record_failure(result, outcome.task, outcome.error)
            elif outcome.action == "downloaded":
                result.fetched.append(outcome.task.file_id)
            else:
                result.skipped.append(outcome.task.file_id)
            result.bytes_written += outcome.bytes_written

        if result.failures:
            # Force a full diff next run so failed files are retried
            store.set_descriptor_hashes(None, None)
        else:
            store.set_descriptor_hashes(str(pack_hash), str(index_hash))
            store.set_side(self.config.side.value)
        store.save()

        logger.info(
            "sync_complete",
            pack=pack.name,
            fetched=len(result.fetched),
            skipped=len(result.skipped),
            deleted=len(result.deleted),
            failed=len(result.failures),
        )
        return result

    def _fetch_pack(self) -> tuple[PackDescriptor, HashValue]:
        data, digest = self.fetcher.fetch_verified(self.pack_uri, self.config.pack_hash_format)
        pack = PackParser().parse(data)
        logger.info("pack_loaded", name=pack.name, version=pack.version)
        return pack, digest

    def _fetch_index(self, location: str, pack: PackDescriptor) -> IndexDescriptor:
        index_hash = pack.index.hash_value
        try:
            data, _ = self.fetcher.fetch_verified(location, index_hash.format, expected=index_hash)
        except IntegrityError as e:
            raise DescriptorError(f"Index descriptor failed verification: {e}", location=location) from e
        index = IndexParser().parse(data)
        logger.info("index_loaded", files=len(index.files))
        return index

    async def _download(self, plan: ReconcilePlan, store: CacheStore) -> list[DownloadOutcome]:
        """Run the fetch set and fold each outcome into the store as it arrives."""
        tasks = {task.file_id: task for task in plan.to_fetch}
        total = len(tasks)
        if total == 0:
            return []

        installer = FileInstaller(self.pack_folder, self.fetcher)
        queue: DownloadQueue[DownloadOutcome] = DownloadQueue(
            max_concurrency=self.config.max_workers,
            max_retries=self.config.max_retries,
            base_backoff=self.config.base_backoff,
        )
        for file_id, task in tasks.items():
            queue.submit(file_id, lambda t=task: installer.install(t))

        outcomes: list[DownloadOutcome] = []
        async for item in queue.run(total=total):
            task = tasks[item.key]
            if item.value is not None:
                outcome = item.value
            else:
                outcome = DownloadOutcome(task, "failed", error=item.error)
            outcomes.append(outcome)

            if outcome.ok:
                if outcome.record is not None:
                    store.put(task.file_id, outcome.record)
                message = _ACTION_MESSAGES[outcome.action].format(name=task.name)
            else:
                message = f"Failed to download {task.name}: {outcome.error}"
                logger.warning("download_failed", file_id=task.file_id, error=str(outcome.error))
                self.ui.report_recoverable_error(outcome.error, task.file_id)  # type: ignore[arg-type]

            self.ui.report_progress(message, len(outcomes), total)

        return outcomes

    def _record_failure(self, result: SyncResult, task: DownloadTask, error: BaseException | None) -> None:
        result.failures.append(FileFailure(task.file_id, task.name, str(error)))
