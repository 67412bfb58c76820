"""Export of library metadata as portable JSON."""
from pathlib import Path
from dataclasses import replace
import json
import logging

from librarian.lib.records import to_export_shape

logger = logging.getLogger(__name__)


def export_library_metadata(store, library_root: Path | str) -> list[dict]:
    """
    Export shape of every library file, with `path` pointing at the file itself.

    Args:
        store: MetadataStore to read library entries from
        library_root: Root the stored relative paths are resolved against

    Returns:
        List of export dicts ordered by capture time
    """
    library_root = Path(library_root)
    exported = []
    for entry in store.get_library_entries():
        located = replace(entry, path=str(library_root / entry.path / entry.name))
        exported.append(to_export_shape(located))

    logger.debug(f"Exported metadata of {len(exported)} library files")
    return exported


def dump_library_metadata(store, library_root: Path | str) -> str:
    """export_library_metadata() serialised as JSON."""
    return json.dumps(export_library_metadata(store, library_root), indent=2)
