"""Reconciliation of the cache store against a freshly fetched index.

The passes are strictly ordered, each consuming the output of the one
before it:

1. Invalidation: cached files that vanished from disk (checked against the
   previous cache store, before any remote document is compared).
2. Stale removal: records whose identifier left the index are deleted
   together with their files; deselected optional files are deleted but
   their records kept so the selection is remembered.
3. Classification: every surviving index entry is sorted into fetch, skip
   or failed, linked descriptors of fetched entries (and of skipped ones
   after a side change) are resolved, and preserved destinations that
   already exist are skipped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import structlog

from packsync.core.errors import SyncError
from packsync.core.fetcher import DescriptorFetcher
from packsync.core.integrity import IntegrityError
from packsync.core.manifest import CacheStore
from packsync.core.tasks import DirectSource, DownloadTask, LinkedSource
from packsync.core.types import Side
from packsync.core.utils import delete_quietly
from packsync.formats.index import IndexDescriptor

logger = structlog.get_logger()


@dataclass
class ReconcilePlan:
    """Result of diffing the cache store against the index.

    Attributes:
        to_delete: Identifiers whose records (and files) were removed
        to_fetch: Tasks handed to the download orchestrator
        to_skip: Tasks whose cached copy is current
        failed: Tasks that could not be prepared (bad path, linked
            descriptor fetch or parse failure)
        excluded: Tasks whose linked descriptor targets another side
        optional_set_changed: A fetched or skipped task declares an
            optional group with no recorded selection
    """

    to_delete: list[str] = field(default_factory=list)
    to_fetch: list[DownloadTask] = field(default_factory=list)
    to_skip: list[DownloadTask] = field(default_factory=list)
    failed: list[DownloadTask] = field(default_factory=list)
    excluded: list[DownloadTask] = field(default_factory=list)
    optional_set_changed: bool = False

    @property
    def active(self) -> list[DownloadTask]:
        """Tasks taking part in this run (fetched or skipped)."""
        return self.to_fetch + self.to_skip


def find_invalidated(store: CacheStore, pack_folder: Path) -> set[str]:
    """Find cached files that must be fetched again because they are missing.

    Records of deselected optional files are exempt: their files are
    expected to be absent.

    Args:
        store: Cache store from the previous run
        pack_folder: Pack root

    Returns:
        Identifiers of invalidated records
    """
    invalidated: set[str] = set()
    for file_id, record in store.records.items():
        if record.is_deselected:
            continue
        if record.cached_location is None or not (pack_folder / record.cached_location).exists():
            logger.info("file_invalidated", file_id=file_id, location=record.cached_location)
            invalidated.add(file_id)
    return invalidated


def remove_stale(store: CacheStore, index_ids: set[str], pack_folder: Path) -> list[str]:
    """Delete files that are deselected or no longer in the index.

    Deletion failures are logged and do not stop the pass.

    Args:
        store: Cache store, mutated in place
        index_ids: Identifiers present in the new index
        pack_folder: Pack root

    Returns:
        Identifiers whose records were dropped
    """
    removed: list[str] = []
    for file_id, record in list(store.records.items()):
        already_deleted = False
        if record.is_deselected and record.cached_location is not None:
            delete_quietly(pack_folder, record.cached_location)
            record.cached_location = None
            already_deleted = True

        if file_id not in index_ids:
            if record.cached_location is not None and not already_deleted:
                delete_quietly(pack_folder, record.cached_location)
            store.remove(file_id)
            removed.append(file_id)
            logger.info("file_removed_from_index", file_id=file_id)
    return removed


def build_tasks(
    index: IndexDescriptor,
    index_location: str,
    store: CacheStore,
    invalidated: set[str],
    fetcher: DescriptorFetcher,
) -> list[DownloadTask]:
    """Turn index entries into tasks matched with their cache records.

    Entries that cannot be located or declare no digest still produce a
    task, carrying the error.
    """
    tasks: list[DownloadTask] = []
    for entry in index.files:
        error: Exception | None = None
        try:
            file_id = fetcher.resolve(index_location, entry.file)
        except ValueError as e:
            logger.warning("index_entry_unresolvable", file=entry.file, error=str(e))
            tasks.append(
                DownloadTask(
                    file_id=entry.file,
                    entry=entry,
                    source=DirectSource(location=entry.file, hash=None),
                    error=ValueError(f"Index entry {entry.file} has an invalid location: {e}"),
                )
            )
            continue

        expected = entry.hash_value(index.hash_format)

        if expected is None:
            error = ValueError(f"Index entry {entry.file} declares no hash")
            source: DirectSource | LinkedSource = DirectSource(location=file_id, hash=None)
        elif entry.metafile:
            source = LinkedSource(location=file_id, pointer_hash=expected)
        else:
            source = DirectSource(location=file_id, hash=expected)

        tasks.append(
            DownloadTask(
                file_id=file_id,
                entry=entry,
                source=source,
                record=store.get(file_id),
                invalidated=file_id in invalidated,
                error=error,
            )
        )
    return tasks


def diff(
    store: CacheStore,
    index: IndexDescriptor,
    index_location: str,
    invalidated: set[str],
    fetcher: DescriptorFetcher,
    pack_folder: Path,
    side: Side = Side.CLIENT,
    recheck_side: bool = False,
) -> ReconcilePlan:
    """Compute what must be deleted, fetched and skipped.

    Mutates ``store`` for the removal pass only; records of fetched files
    are updated later, as download outcomes arrive.

    Args:
        store: Cache store from the previous run
        index: Freshly fetched, verified index
        index_location: Location the index was fetched from
        invalidated: Output of ``find_invalidated``
        fetcher: Fetcher used to resolve linked descriptors
        pack_folder: Pack root
        side: Side being installed
        recheck_side: Also resolve linked descriptors of skipped entries, so
            files installed for a previously configured side are removed

    Returns:
        Reconciliation plan
    """
    plan = ReconcilePlan()
    tasks = build_tasks(index, index_location, store, invalidated, fetcher)
    plan.to_delete = remove_stale(store, {t.file_id for t in tasks}, pack_folder)

    for task in tasks:
        if task.error is not None:
            plan.failed.append(task)
            continue
        try:
            up_to_date = not task.invalidated and task.is_up_to_date()
        except ValueError as e:
            task.error = e
            plan.failed.append(task)
            continue
        (plan.to_skip if up_to_date else plan.to_fetch).append(task)

    if recheck_side:
        skip: list[DownloadTask] = []
        for task in plan.to_skip:
            if isinstance(task.source, LinkedSource):
                try:
                    descriptor = task.source.resolve(fetcher)
                except (SyncError, IntegrityError) as e:
                    logger.warning("linked_descriptor_failed", file_id=task.file_id, error=str(e))
                    task.error = e
                    plan.failed.append(task)
                    continue
                if not side.includes(descriptor.side):
                    logger.debug("file_excluded_by_side", file_id=task.file_id, side=descriptor.side.value)
                    plan.excluded.append(task)
                    continue
            skip.append(task)
        plan.to_skip = skip

    fetch: list[DownloadTask] = []
    for task in plan.to_fetch:
        if isinstance(task.source, LinkedSource):
            try:
                descriptor = task.source.resolve(fetcher)
            except (SyncError, IntegrityError) as e:
                logger.warning("linked_descriptor_failed", file_id=task.file_id, error=str(e))
                task.error = e
                plan.failed.append(task)
                continue
            if not side.includes(descriptor.side):
                logger.debug("file_excluded_by_side", file_id=task.file_id, side=descriptor.side.value)
                plan.excluded.append(task)
                continue

        try:
            destination = task.destination
        except ValueError as e:
            task.error = e
            plan.failed.append(task)
            continue

        if task.entry.preserve and (pack_folder / destination).exists():
            logger.debug("file_preserved", file_id=task.file_id, destination=destination)
            plan.to_skip.append(task)
            continue
        fetch.append(task)
    plan.to_fetch = fetch

    for task in plan.excluded:
        record = store.remove(task.file_id)
        if record is not None:
            if record.cached_location is not None:
                delete_quietly(pack_folder, record.cached_location)
            plan.to_delete.append(task.file_id)

    plan.optional_set_changed = any(t.is_new_optional for t in plan.active)

    logger.info(
        "reconcile_complete",
        fetch=len(plan.to_fetch),
        skip=len(plan.to_skip),
        delete=len(plan.to_delete),
        failed=len(plan.failed),
        excluded=len(plan.excluded),
        optional_set_changed=plan.optional_set_changed,
    )
    return plan
