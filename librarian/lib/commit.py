"""
Commit of queued files into the library.

Sequence, each step only after the previous one succeeded:

1. validate   - all-or-nothing; edits are then saved to the queue
2. plan       - destination path per file
3. write-back - one ExifTool run embeds the metadata of the whole batch
4. copy       - files copied into the library tree
5. persist    - library rows and keyword links in one transaction
6. cleanup    - queue rows, source files and thumbnails removed

A failure in steps 1-3 leaves the library untouched. A failure in step 4 or
5 deletes the copies made so far. Cleanup failures never fail the commit;
they come back as warnings.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import logging

from librarian.lib.errors import StoreError
from librarian.lib.placement import copy_planned_files, plan_library_paths, remove_files
from librarian.lib.processing import remove_queue_artifacts
from librarian.lib.records import FileChange, LibraryEntry, QueueEntry
from librarian.lib.validation import validate_commit

logger = logging.getLogger(__name__)


@dataclass
class CommitReport:
    committed: int = 0
    library_ids: list[int] = field(default_factory=list)
    cleanup_warnings: list[str] = field(default_factory=list)


class CommitOrchestrator:
    """
    Moves a batch of queued files into the library.

    Args:
        store: MetadataStore
        exif_tool: ExifTool used for the metadata write-back
        library_root: Root of the library tree
        batch_dir: Directory holding the queued files (the write-back target)
        max_workers: Thread pool size for copy and cleanup
    """

    def __init__(
        self,
        store,
        exif_tool,
        library_root: Path | str,
        batch_dir: Path | str,
        max_workers: Optional[int] = None
    ):
        self.store = store
        self.exif_tool = exif_tool
        self.library_root = Path(library_root)
        self.batch_dir = Path(batch_dir)
        self.max_workers = max_workers

    def commit(self, changes: list[FileChange]) -> CommitReport:
        """
        Apply the final edits of a batch and move it into the library.

        Raises:
            ValidationError: Batch rejected, nothing changed
            WriteBackError: Metadata could not be written, no files copied
            CopyError: Copy failed, copies removed again
            StoreError: Library rows could not be saved, copies removed again
        """
        validate_commit(changes, self.store)
        self.store.update_queue_entries(changes)

        ids = [change.id for change in changes]
        # Stable sort: files sharing an instant keep their queue order
        entries = sorted(self.store.get_queue_entries(ids), key=lambda e: e.capture_datetime)

        keyword_ids = {kid for entry in entries for kid in entry.keyword_ids}
        folder_labels = self.store.get_folder_label_keywords(keyword_ids)
        plans = plan_library_paths(entries, self.library_root, folder_labels, is_taken=Path.exists)

        self.exif_tool.write_records(entries, self.batch_dir)

        destinations = copy_planned_files(plans, self.max_workers)

        library_entries = [
            self._library_entry(entry, plan.destination_path)
            for entry, plan in zip(entries, plans)
        ]
        try:
            library_ids = self.store.insert_library_entries(library_entries)
        except StoreError:
            leftovers = remove_files(destinations)
            if leftovers:
                logger.error(f"{len(leftovers)} copied files could not be removed after a failed insert")
            raise

        warnings = self.cleanup(entries)

        logger.info(f"Committed {len(entries)} files to the library ({len(warnings)} cleanup warnings)")
        return CommitReport(committed=len(entries), library_ids=library_ids, cleanup_warnings=warnings)

    def _library_entry(self, entry: QueueEntry, destination: Path) -> LibraryEntry:
        return LibraryEntry(
            name=destination.name,
            path=destination.parent.relative_to(self.library_root).as_posix(),
            mime_type=entry.mime_type,
            capture_datetime=entry.capture_datetime,
            timezone=entry.timezone,
            title=entry.title,
            latitude=entry.latitude,
            longitude=entry.longitude,
            altitude=entry.altitude,
            keywords=list(entry.keywords),
            keyword_ids=list(entry.keyword_ids),
        )

    def cleanup(self, entries: list[QueueEntry]) -> list[str]:
        """Remove committed files from the queue. Returns warnings instead of raising."""
        warnings = []

        try:
            self.store.delete_queue_entries([entry.id for entry in entries])
        except StoreError as e:
            logger.error(f"Queue rows could not be deleted after commit: {e}")
            warnings.append(f"Queue rows could not be deleted: {e}")

        failures = remove_queue_artifacts(entries, self.max_workers)
        for file_id, errors in failures.items():
            warnings.extend(f"File {file_id}: {error}" for error in errors)

        return warnings
