"""Shared fixtures: Flask app on a temporary database, fakes for ExifTool and ffmpeg."""
import os
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Set testing environment before imports
os.environ['FLASK_ENV'] = 'testing'

from librarian.lib.errors import ExtractionError, ThumbnailError, WriteBackError
from librarian.lib.records import CanonicalRecord, KeywordData, KeywordLocation
from librarian.lib.thumbnail import thumbnail_suffix


class FakeExifTool:
    """
    Stands in for ExifTool.

    Extraction returns the bag registered for the file's content; write-back
    records the batch and optionally fails.
    """

    def __init__(self, bags=None, fail_write=False):
        self.bags = bags or {}
        self.fail_write = fail_write
        self.written = []

    def extract(self, path, tags):
        content = Path(path).read_bytes()
        if content not in self.bags:
            raise ExtractionError(f"No metadata for {path}")
        return dict(self.bags[content])

    def write_records(self, records, batch_dir):
        if self.fail_write:
            raise WriteBackError('exiftool exited with status 1')
        self.written.append([record.path for record in records])
        return Path(batch_dir) / 'metadata.json'


class FakeThumbnailer:
    """Writes a tiny placeholder thumbnail; fails for registered contents."""

    def __init__(self, thumb_dir, fail_for=()):
        self.thumb_dir = Path(thumb_dir)
        self.fail_for = set(fail_for)

    def generate(self, source_path, mime_type):
        source_path = Path(source_path)
        if source_path.read_bytes() in self.fail_for:
            raise ThumbnailError(f"Cannot render {source_path}")
        self.thumb_dir.mkdir(parents=True, exist_ok=True)
        thumb_path = self.thumb_dir / f"{source_path.stem}{thumbnail_suffix(mime_type)}"
        thumb_path.write_bytes(b'thumb')
        return thumb_path


@pytest.fixture
def app(tmp_path):
    """Create application for testing."""
    from librarian import create_app, db
    from librarian.services import EXIF_TOOL_KEY, THUMBNAILER_KEY

    app = create_app('testing', overrides={
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'test.db'}",
        'UPLOAD_FOLDER': tmp_path / 'uploads',
        'THUMBNAILS_FOLDER': tmp_path / 'uploads' / 'thumb',
        'LIBRARY_ROOT': tmp_path / 'library',
    })
    app.extensions[EXIF_TOOL_KEY] = FakeExifTool()
    app.extensions[THUMBNAILER_KEY] = FakeThumbnailer(tmp_path / 'uploads' / 'thumb')

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Test client for HTTP requests."""
    return app.test_client()


@pytest.fixture
def store(app):
    from librarian.store import SqlMetadataStore
    return SqlMetadataStore()


@pytest.fixture
def exif_tool(app):
    from librarian.services import EXIF_TOOL_KEY
    return app.extensions[EXIF_TOOL_KEY]


@pytest.fixture
def add_keyword(store):
    """Factory creating keywords; Location keywords get a default location."""

    def _add(name, category='Other', is_folder_label=False, location=None):
        if category == 'Location' and location is None:
            location = KeywordLocation(country='France', state='IDF', city='Paris',
                                       latitude=48.85, longitude=2.35)
        return store.add_keyword(KeywordData(
            id=None, name=name, category=category,
            is_folder_label=is_folder_label, location=location,
        ))

    return _add


@pytest.fixture
def add_queued(app, store):
    """Factory creating a queued file on disk and in the store."""
    counter = {'n': 0}

    def _add(
        capture=datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc),
        zone='UTC',
        mime_type='image/jpeg',
        suffix='.jpg',
        keywords=(),
        **fields
    ):
        counter['n'] += 1
        upload_dir = app.config['UPLOAD_FOLDER']
        path = upload_dir / f"queued-{counter['n']}{suffix}"
        path.write_bytes(f"content-{counter['n']}".encode())
        thumb = app.config['THUMBNAILS_FOLDER'] / f"queued-{counter['n']}.jpg"
        thumb.write_bytes(b'thumb')

        record = CanonicalRecord(
            path=str(path),
            mime_type=mime_type,
            capture_datetime=capture,
            timezone=zone,
            keywords=list(keywords),
            **fields
        )
        return store.add_queue_entry(record, f"original-{counter['n']}{suffix}", str(thumb))

    return _add
