"""
Library placement: destination planning and copying.

Handles:
- Date-based folders (YYYY/MM - MonthName/DD) with an optional " - Label" suffix
- Type-tagged filenames (IMG/VID/EDT-YYYYMMDD-000.ext), indexed per tag and folder
- Collision avoidance against files already in the library
- Concurrent copy with metadata preservation and size verification
"""
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional
import logging
import shutil

from librarian.lib.errors import CopyError
from librarian.lib.records import QueueEntry
from librarian.lib.timestamp import to_local

logger = logging.getLogger(__name__)

# Fixed English names; strftime('%B') would follow the process locale
MONTH_NAMES = (
    'January', 'February', 'March', 'April', 'May', 'June',
    'July', 'August', 'September', 'October', 'November', 'December',
)

EDIT_KEYWORD = 'Edit'
TAGS = ('IMG', 'VID', 'EDT')
MAX_INDEX = 999


@dataclass(frozen=True)
class PathPlan:
    id: int
    source_path: Path
    destination_path: Path


def date_folder(entry: QueueEntry) -> str:
    """'YYYY/MM - MonthName/DD' of the capture instant in the entry's own zone."""
    local = to_local(entry.capture_datetime, entry.timezone)
    return f"{local:%Y}/{local:%m} - {MONTH_NAMES[local.month - 1]}/{local:%d}"


def file_tag(entry: QueueEntry) -> str:
    if EDIT_KEYWORD in entry.keywords:
        return 'EDT'
    return 'IMG' if entry.mime_type.startswith('image/') else 'VID'


def pick_folder_label(entries: Iterable[QueueEntry], folder_labels: list[str]) -> Optional[str]:
    """
    Highest-priority folder label carried by any of the entries.

    Args:
        entries: Files sharing one date folder
        folder_labels: Labels in ascending priority (last = highest)
    """
    best = -1
    for entry in entries:
        for idx, label in enumerate(folder_labels):
            if idx > best and label in entry.keywords:
                best = idx
    return folder_labels[best] if best >= 0 else None


def plan_library_paths(
    entries: list[QueueEntry],
    library_root: Path | str,
    folder_labels: list[str],
    is_taken: Optional[Callable[[Path], bool]] = None
) -> list[PathPlan]:
    """
    Compute a destination path for every entry.

    Entries must already be sorted by capture time (ascending); indices are
    handed out in input order, so files captured at the same instant keep
    their relative order. Each date folder restarts the IMG, VID and EDT
    counters at 000.

    Args:
        entries: Committable queue entries (capture time and timezone set)
        library_root: Root directory of the library
        folder_labels: Folder label keywords in ascending priority
        is_taken: Optional check for destinations that already exist; taken
            names are skipped. Without it the plan is a pure function of the input.

    Returns:
        One PathPlan per entry, in input order

    Raises:
        CopyError: If a folder runs out of indices for a tag
    """
    library_root = Path(library_root)

    # Group by date folder in first-appearance order
    groups: dict[str, list[QueueEntry]] = {}
    for entry in entries:
        groups.setdefault(date_folder(entry), []).append(entry)

    plans_by_id: dict[int, PathPlan] = {}
    planned: set[Path] = set()

    for folder, members in groups.items():
        label = pick_folder_label(members, folder_labels)
        directory = library_root / (f"{folder} - {label}" if label else folder)
        counters = dict.fromkeys(TAGS, 0)

        for entry in members:
            tag = file_tag(entry)
            local = to_local(entry.capture_datetime, entry.timezone)
            ext = Path(entry.path).suffix

            while True:
                if counters[tag] > MAX_INDEX:
                    raise CopyError(f"More than {MAX_INDEX + 1} {tag} files in {directory}")
                destination = directory / f"{tag}-{local:%Y%m%d}-{counters[tag]:03d}{ext}"
                counters[tag] += 1
                if destination in planned or (is_taken and is_taken(destination)):
                    continue
                break

            planned.add(destination)
            plans_by_id[entry.id] = PathPlan(entry.id, Path(entry.path), destination)

    plans = [plans_by_id[entry.id] for entry in entries]
    logger.debug(f"Planned library paths: {plans}")
    return plans


def copy_file(source_path: Path, destination_path: Path) -> Path:
    """
    Copy one file, preserving its metadata, and verify the result.

    Raises:
        FileExistsError: If the destination already exists
        ValueError: If the copy's size does not match the source
    """
    if destination_path.exists():
        raise FileExistsError(f"Destination already exists: {destination_path}")

    try:
        shutil.copy2(source_path, destination_path)
    except OSError:
        destination_path.unlink(missing_ok=True)
        raise

    source_size = source_path.stat().st_size
    output_size = destination_path.stat().st_size
    if source_size != output_size:
        destination_path.unlink(missing_ok=True)
        raise ValueError(
            f"Copy verification failed: size mismatch (source: {source_size}, "
            f"output: {output_size}) for {destination_path}"
        )
    return destination_path


def remove_files(paths: Iterable[Path]) -> list[str]:
    """
    Delete files, continuing past failures.

    Returns:
        Error messages for files that could not be removed
    """
    errors = []
    for path in paths:
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Could not remove {path}: {e}")
            errors.append(f"{path}: {e}")
    return errors


def copy_planned_files(plans: list[PathPlan], max_workers: Optional[int] = None) -> list[Path]:
    """
    Copy every planned file into the library.

    All sources are checked before anything is copied. When any copy fails,
    the copies that did succeed are deleted again before raising.

    Returns:
        Destination paths, in plan order

    Raises:
        CopyError: If sources are missing or any copy fails
    """
    missing = [str(plan.source_path) for plan in plans if not plan.source_path.is_file()]
    if missing:
        raise CopyError(f"Copy failed. Missing source files: {', '.join(missing)}")

    try:
        for directory in dict.fromkeys(plan.destination_path.parent for plan in plans):
            directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise CopyError(f"Could not create library directory: {e}") from e

    copied: list[Path] = []
    errors: list[str] = []

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {
            executor.submit(copy_file, plan.source_path, plan.destination_path): plan
            for plan in plans
        }
        for future in as_completed(futures):
            plan = futures[future]
            try:
                copied.append(future.result())
            except (OSError, ValueError) as e:
                logger.error(f"Copy of {plan.source_path} to {plan.destination_path} failed: {e}")
                errors.append(f"{plan.source_path}: {e}")

    if errors:
        leftovers = remove_files(copied)
        if leftovers:
            logger.error(f"Could not roll back {len(leftovers)} copied files")
        raise CopyError(f"Copy failed for {len(errors)} of {len(plans)} files: {'; '.join(errors)}")

    logger.info(f"Copied {len(plans)} files into the library")
    return [plan.destination_path for plan in plans]
