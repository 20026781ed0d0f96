"""Execution of a single fetch unit.

A unit resolves where its artifact lives, decides whether any I/O is
needed at all, downloads and verifies the content, and only then places
it at the destination. Units run on worker threads and return immutable
outcomes; they never touch the cache store.
"""

from __future__ import annotations

from pathlib import Path

import structlog

from packsync.core.fetcher import DescriptorFetcher
from packsync.core.hashing import HashingStream
from packsync.core.integrity import verify_hash
from packsync.core.tasks import DownloadOutcome, DownloadTask
from packsync.core.utils import atomic_write, delete_quietly

logger = structlog.get_logger()


class FileInstaller:
    """Downloads, verifies and places files under the pack folder.

    Args:
        pack_folder: Pack root
        fetcher: Fetcher used to open artifact streams
    """

    def __init__(self, pack_folder: Path, fetcher: DescriptorFetcher):
        self.pack_folder = pack_folder
        self.fetcher = fetcher

    def install(self, task: DownloadTask) -> DownloadOutcome:
        """Run one unit.

        Args:
            task: Task to execute

        Returns:
            Outcome carrying the new cache record

        Raises:
            FetchError: On transport failure (retried by the queue)
            IntegrityError: If the content does not match its digest
            ValueError: If the destination is invalid
        """
        location, expected = task.artifact(self.fetcher)
        destination = task.destination
        dest_path = self.pack_folder / destination
        record = task.record

        if task.is_deselected:
            if record is not None and record.cached_location is not None:
                delete_quietly(self.pack_folder, record.cached_location)
            logger.debug("file_deselected", file_id=task.file_id)
            return DownloadOutcome(task, "deselected", record=task.build_record(expected, None))

        if (
            task.is_linked
            and not task.invalidated
            and record is not None
            and record.hash_value == expected
            and record.cached_location == destination
            and dest_path.exists()
        ):
            # Only the linked descriptor changed, not the artifact
            logger.debug("file_unchanged", file_id=task.file_id)
            return DownloadOutcome(task, "skipped", record=task.build_record(expected, destination))

        if task.entry.preserve and dest_path.exists():
            logger.debug("file_preserved", file_id=task.file_id, destination=destination)
            return DownloadOutcome(task, "preserved", record=record)

        with self.fetcher.open(location) as raw:
            stream = HashingStream(raw, expected.format)
            data = stream.read_all()
        verify_hash(stream, expected, key=task.file_id)

        atomic_write(dest_path, data)
        logger.debug("file_written", file_id=task.file_id, destination=destination, size=len(data))

        if record is not None and record.cached_location and record.cached_location != destination:
            delete_quietly(self.pack_folder, record.cached_location)
            logger.info(
                "file_relocated",
                file_id=task.file_id,
                old=record.cached_location,
                new=destination,
            )

        return DownloadOutcome(
            task,
            "downloaded",
            record=task.build_record(expected, destination),
            bytes_written=len(data),
        )
