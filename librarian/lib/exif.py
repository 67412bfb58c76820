"""
ExifTool access for extraction and metadata write-back.

Wraps PyExifTool. Extraction asks for group-qualified, numeric output
(-G -n) so GPS values arrive as signed or unsigned floats and QuickTime
tags can be told apart from their EXIF namesakes.
"""
from pathlib import Path
from typing import Any, Iterable
import json
import logging

import exiftool
from exiftool.exceptions import ExifToolException

from librarian.lib.errors import ExtractionError, WriteBackError
from librarian.lib.metadata import expand_tags
from librarian.lib.records import CanonicalRecord, from_exiftool_tags, to_exiftool_write_shape

logger = logging.getLogger(__name__)

# -m: ignore minor errors and warnings
EXTRACT_ARGS = ['-G', '-n', '-m']
WRITE_ARGS = ['-n', '-m']

METADATA_DOCUMENT = 'metadata.json'


class ExifTool:
    """
    ExifTool runner bound to one executable.

    Each call starts its own ExifTool process, so one instance may be shared
    between worker threads.

    Args:
        executable: Path or name of the exiftool binary
    """

    def __init__(self, executable: str = 'exiftool'):
        self.executable = executable

    def extract(self, path: Path | str, tags: Iterable[str]) -> dict[str, Any]:
        """
        Read the requested tags (plus related candidates) from a file.

        Returns:
            Raw property bag with group prefixes removed

        Raises:
            ExtractionError: If ExifTool fails or reports nothing for the file
        """
        path_str = str(path)
        try:
            with exiftool.ExifToolHelper(executable=self.executable, common_args=EXTRACT_ARGS) as et:
                results = et.get_tags([path_str], expand_tags(tags))
        except (ExifToolException, OSError) as e:
            raise ExtractionError(f"ExifTool failed on {path_str}: {e}") from e

        if not results:
            raise ExtractionError(f"ExifTool returned no metadata for {path_str}")

        return from_exiftool_tags(results[0])

    def write(self, batch_dir: Path | str, document_path: Path | str) -> None:
        """
        Import a JSON metadata document into every matching file of a directory.

        Files are overwritten in place (-overwrite_original).

        Raises:
            WriteBackError: If ExifTool fails
        """
        try:
            with exiftool.ExifToolHelper(executable=self.executable, common_args=WRITE_ARGS) as et:
                output = et.execute(f"-json={document_path}", '-overwrite_original', str(batch_dir))
        except (ExifToolException, OSError) as e:
            raise WriteBackError(f"ExifTool write-back failed for {batch_dir}: {e}") from e

        logger.debug(f"ExifTool write-back output: {output}")

    def write_records(self, records: list[CanonicalRecord], batch_dir: Path | str) -> Path:
        """
        Write the metadata of a batch of records into their files.

        The document is saved as metadata.json inside batch_dir and removed
        again afterwards.

        Returns:
            Path of the document that was imported
        """
        batch_dir = Path(batch_dir)
        try:
            document = [to_exiftool_write_shape(record) for record in records]
        except ValueError as e:
            raise WriteBackError(str(e)) from e

        document_path = batch_dir / METADATA_DOCUMENT
        try:
            document_path.write_text(json.dumps(document, indent=2), encoding='utf-8')
        except OSError as e:
            raise WriteBackError(f"Could not write metadata document {document_path}: {e}") from e

        try:
            self.write(batch_dir, document_path)
        finally:
            document_path.unlink(missing_ok=True)

        logger.info(f"Wrote metadata for {len(records)} files in {batch_dir}")
        return document_path
