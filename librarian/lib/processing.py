"""
Upload processing and removal of queue artifacts.

Per-file work runs in ThreadPoolExecutor workers. Functions executed in
workers MUST NOT access the database: they return plain results and the
calling (request) thread applies every store write.
"""
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import logging
import uuid

from werkzeug.utils import secure_filename

from librarian.lib.errors import CleanupError, ExtractionError, StoreError, ThumbnailError
from librarian.lib.metadata import EXTRACTED_TAGS, resolve_properties
from librarian.lib.records import QueueEntry, build_canonical_record
from librarian.lib.timezones import TimezoneResolver

logger = logging.getLogger(__name__)


@dataclass
class UploadSummary:
    succeeded: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class DeletionSummary:
    deleted: list[int] = field(default_factory=list)
    failed: dict[int, list[str]] = field(default_factory=dict)


def process_single_upload(
    file_path: Path,
    exif_tool,
    thumbnailer,
    resolver: TimezoneResolver,
) -> dict:
    """
    Extract metadata and generate a thumbnail for one stored upload.

    Runs in a worker thread; does NOT touch the database.

    Returns:
        Dict with processing results:
        {
            'status': 'success' or 'error',
            'file_path': str,
            'thumbnail_path': str or None,
            'record': CanonicalRecord or None,
            'error': str or None
        }
    """
    thumb_path: Optional[Path] = None
    try:
        bag = exif_tool.extract(file_path, EXTRACTED_TAGS)
        resolved = resolve_properties(bag, default_tz=resolver.local_zone)
        zone = resolver.resolve(resolved.offset)
        record = build_canonical_record(str(file_path), resolved, zone)

        thumb_path = thumbnailer.generate(file_path, record.mime_type)

        return {
            'status': 'success',
            'file_path': str(file_path),
            'thumbnail_path': str(thumb_path),
            'record': record,
            'error': None,
        }
    except Exception as e:
        # Returned, not raised: one broken file must not abort its siblings
        expected = isinstance(e, (ExtractionError, ThumbnailError))
        logger.error(f"Processing {file_path.name} failed: {e}", exc_info=not expected)
        return {
            'status': 'error',
            'file_path': str(file_path),
            'thumbnail_path': str(thumb_path) if thumb_path else None,
            'record': None,
            'error': str(e),
        }


def _discard(*paths: Optional[str]):
    for path in paths:
        if not path:
            continue
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Could not remove {path}: {e}")


def process_uploads(
    uploads: list,
    store,
    exif_tool,
    thumbnailer,
    upload_dir: Path | str,
    local_zone: str,
    max_workers: Optional[int] = None,
) -> UploadSummary:
    """
    Store uploaded files in the queue.

    Each file is saved under a fresh UUID name (keeping its extension), then
    metadata extraction and thumbnail generation run concurrently. A failure
    in one file removes that file's stored copy and thumbnail and does not
    affect the others.

    Args:
        uploads: werkzeug FileStorage objects
        store: MetadataStore receiving the queue rows
        exif_tool: ExifTool used for extraction
        thumbnailer: Thumbnailer for previews
        upload_dir: Directory holding queued files
        local_zone: Current local zone for timezone inference
        max_workers: Thread pool size (None: executor default)

    Returns:
        UploadSummary with success/failure counts
    """
    upload_dir = Path(upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    resolver = TimezoneResolver(local_zone)
    summary = UploadSummary()

    saved: dict[Path, str] = {}
    for upload in uploads:
        # Sanitize to prevent path traversal
        original_name = secure_filename(upload.filename or '') or 'upload'
        file_path = upload_dir / f"{uuid.uuid4()}{Path(original_name).suffix}"
        try:
            upload.save(file_path)
        except OSError as e:
            logger.error(f"Saving upload {original_name} failed: {e}")
            _discard(str(file_path))
            summary.failed += 1
            summary.errors.append(f"{original_name}: {e}")
            continue
        saved[file_path] = original_name

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_path = {
            executor.submit(process_single_upload, path, exif_tool, thumbnailer, resolver): path
            for path in saved
        }

        for future in as_completed(future_to_path):
            path = future_to_path[future]
            original_name = saved[path]
            result = future.result()

            if result['status'] != 'success':
                _discard(result['file_path'], result['thumbnail_path'])
                summary.failed += 1
                summary.errors.append(f"{original_name}: {result['error']}")
                continue

            try:
                store.add_queue_entry(result['record'], original_name, result['thumbnail_path'])
            except StoreError as e:
                _discard(result['file_path'], result['thumbnail_path'])
                summary.failed += 1
                summary.errors.append(f"{original_name}: {e}")
                continue

            summary.succeeded += 1

    logger.info(f"Upload finished: {summary.succeeded} succeeded, {summary.failed} failed")
    return summary


def remove_entry_files(entry: QueueEntry) -> None:
    """
    Remove a queued file and then its thumbnail. Each removal is attempted
    independently.

    Raises:
        CleanupError: With one message per file that could not be removed
    """
    errors = []
    for path in (entry.path, entry.thumbnail_path):
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as e:
            errors.append(f"Could not remove {path}: {e}")
    if errors:
        raise CleanupError(errors)


def remove_queue_artifacts(entries: list[QueueEntry], max_workers: Optional[int] = None) -> dict[int, list[str]]:
    """
    Remove files and thumbnails of many entries concurrently.

    Returns:
        Entry id -> error messages, only for entries with failures
    """
    failures: dict[int, list[str]] = {}
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_entry = {executor.submit(remove_entry_files, entry): entry for entry in entries}
        for future in as_completed(future_to_entry):
            entry = future_to_entry[future]
            try:
                future.result()
            except CleanupError as e:
                for error in e.errors:
                    logger.error(f"File {entry.id}: {error}")
                failures[entry.id] = e.errors
    return failures


def delete_queue_files(ids: list[int], store, max_workers: Optional[int] = None) -> DeletionSummary:
    """
    Delete queued files on user request.

    Entries whose files could not be removed keep their queue row, so the
    user can see them and retry.
    """
    summary = DeletionSummary()
    if not ids:
        return summary

    entries = store.get_queue_entries(ids)
    summary.failed = remove_queue_artifacts(entries, max_workers)
    summary.deleted = [entry.id for entry in entries if entry.id not in summary.failed]

    store.delete_queue_entries(summary.deleted)
    logger.info(f"Deleted {len(summary.deleted)} queued files, {len(summary.failed)} failed")
    return summary
