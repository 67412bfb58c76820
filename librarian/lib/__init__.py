"""
Library modules for the media librarian.

Metadata resolution, timezone inference, library placement and commit logic,
independent of Flask routes.
"""
from librarian.lib.metadata import resolve_properties, ResolvedProperties, PropertyCategory
from librarian.lib.timezones import TimezoneResolver
from librarian.lib.records import (
    CanonicalRecord,
    QueueEntry,
    LibraryEntry,
    FileChange,
    build_canonical_record,
    from_exiftool_tags,
    to_exiftool_write_shape,
    to_export_shape,
)
from librarian.lib.placement import PathPlan, plan_library_paths, copy_planned_files
from librarian.lib.commit import CommitOrchestrator, CommitReport
from librarian.lib.processing import process_uploads, delete_queue_files, UploadSummary

__all__ = [
    # Property resolution
    'resolve_properties',
    'ResolvedProperties',
    'PropertyCategory',
    # Timezone inference
    'TimezoneResolver',
    # Canonical records
    'CanonicalRecord',
    'QueueEntry',
    'LibraryEntry',
    'FileChange',
    'build_canonical_record',
    'from_exiftool_tags',
    'to_exiftool_write_shape',
    'to_export_shape',
    # Placement
    'PathPlan',
    'plan_library_paths',
    'copy_planned_files',
    # Commit
    'CommitOrchestrator',
    'CommitReport',
    # Uploads and deletion
    'process_uploads',
    'delete_queue_files',
    'UploadSummary',
]
