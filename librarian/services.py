"""Per-application service objects, built from the Flask config.

create_app() registers the external tool wrappers in app.extensions; tests
replace them there with fakes.
"""
from flask import current_app

from librarian.lib.commit import CommitOrchestrator
from librarian.lib.exif import ExifTool
from librarian.lib.thumbnail import Thumbnailer
from librarian.store import SqlMetadataStore

EXIF_TOOL_KEY = 'librarian.exif_tool'
THUMBNAILER_KEY = 'librarian.thumbnailer'


def init_services(app):
    app.extensions[EXIF_TOOL_KEY] = ExifTool(app.config['EXIFTOOL_PATH'])
    app.extensions[THUMBNAILER_KEY] = Thumbnailer(
        app.config['THUMBNAILS_FOLDER'],
        ffmpeg_path=app.config['FFMPEG_PATH'],
        timeout=app.config['SUBPROCESS_TIMEOUT'],
    )


def get_store() -> SqlMetadataStore:
    return SqlMetadataStore()


def get_exif_tool():
    return current_app.extensions[EXIF_TOOL_KEY]


def get_thumbnailer():
    return current_app.extensions[THUMBNAILER_KEY]


def get_commit_orchestrator(store=None) -> CommitOrchestrator:
    return CommitOrchestrator(
        store or get_store(),
        get_exif_tool(),
        library_root=current_app.config['LIBRARY_ROOT'],
        batch_dir=current_app.config['UPLOAD_FOLDER'],
        max_workers=current_app.config['WORKER_THREADS'],
    )
