"""Tests for the ExifTool wrapper (the exiftool process is replaced)."""
import json
from datetime import datetime, timezone

import pytest
from exiftool.exceptions import ExifToolException

from librarian.lib import exif
from librarian.lib.errors import ExtractionError, WriteBackError
from librarian.lib.exif import ExifTool
from librarian.lib.records import CanonicalRecord


class FakeHelper:
    """Context-manager stand-in for exiftool.ExifToolHelper."""

    instances = []

    def __init__(self, executable=None, common_args=None, result=None, error=None):
        self.executable = executable
        self.common_args = common_args
        self.result = result
        self.error = error
        self.calls = []
        FakeHelper.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def get_tags(self, files, tags):
        self.calls.append(('get_tags', files, tags))
        if self.error:
            raise self.error
        return self.result

    def execute(self, *params):
        self.calls.append(('execute',) + params)
        if self.error:
            raise self.error
        return '1 directories scanned'


@pytest.fixture
def helper(monkeypatch):
    """Patch ExifToolHelper; set .result/.error on the returned dict to configure it."""
    FakeHelper.instances = []
    options = {}

    def factory(executable=None, common_args=None):
        return FakeHelper(executable, common_args, **options)

    monkeypatch.setattr(exif.exiftool, 'ExifToolHelper', factory)
    return options


def record(path, **kwargs):
    defaults = dict(
        mime_type='image/jpeg',
        capture_datetime=datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc),
        timezone='UTC',
    )
    defaults.update(kwargs)
    return CanonicalRecord(path=str(path), **defaults)


class TestExtract:
    """Tests for ExifTool.extract()."""

    def test_extract(self, helper):
        helper['result'] = [{'SourceFile': '/q/a.jpg', 'File:MIMEType': 'image/jpeg', 'XMP:Title': 'Snow'}]

        bag = ExifTool('/usr/local/bin/exiftool').extract('/q/a.jpg', ['Title'])

        assert bag == {'SourceFile': '/q/a.jpg', 'MIMEType': 'image/jpeg', 'Title': 'Snow'}
        [instance] = FakeHelper.instances
        assert instance.executable == '/usr/local/bin/exiftool'
        assert instance.common_args == ['-G', '-n', '-m']
        _, files, tags = instance.calls[0]
        assert files == ['/q/a.jpg']
        assert 'XPTitle' in tags

    def test_no_result(self, helper):
        helper['result'] = []
        with pytest.raises(ExtractionError):
            ExifTool().extract('/q/a.jpg', ['Title'])

    def test_tool_failure(self, helper):
        helper['error'] = ExifToolException('Error: File not found')
        with pytest.raises(ExtractionError):
            ExifTool().extract('/q/a.jpg', ['Title'])


class TestWriteRecords:
    """Tests for ExifTool.write_records()."""

    def test_document_imported_and_removed(self, tmp_path, monkeypatch):
        seen = {}

        def fake_write(self, batch_dir, document_path):
            seen['batch_dir'] = batch_dir
            seen['document'] = json.loads(document_path.read_text(encoding='utf-8'))

        monkeypatch.setattr(ExifTool, 'write', fake_write)

        document_path = ExifTool().write_records([record(tmp_path / 'a.jpg', title='Snow')], tmp_path)

        assert seen['batch_dir'] == tmp_path
        [entry] = seen['document']
        assert entry['SourceFile'] == str(tmp_path / 'a.jpg')
        assert entry['Title'] == 'Snow'
        assert not document_path.exists()

    def test_execute_arguments(self, tmp_path, helper):
        ExifTool().write_records([record(tmp_path / 'a.jpg')], tmp_path)
        [instance] = FakeHelper.instances
        assert instance.calls[0] == (
            'execute', f"-json={tmp_path / 'metadata.json'}", '-overwrite_original', str(tmp_path),
        )

    def test_failure_removes_document(self, tmp_path, helper):
        helper['error'] = ExifToolException('Error: bad JSON')
        with pytest.raises(WriteBackError):
            ExifTool().write_records([record(tmp_path / 'a.jpg')], tmp_path)
        assert not (tmp_path / 'metadata.json').exists()

    def test_incomplete_record(self, tmp_path):
        with pytest.raises(WriteBackError):
            ExifTool().write_records([record(tmp_path / 'a.jpg', timezone=None)], tmp_path)
