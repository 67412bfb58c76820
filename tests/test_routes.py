"""HTTP tests for the queue, library and keyword endpoints."""
import io
import json
from datetime import datetime, timezone
from pathlib import Path

from librarian.routes import GENERIC_ERROR

PHOTO = b'photo-bytes'
PHOTO_TAGS = {
    'MIMEType': 'image/jpeg',
    'DateTimeOriginal': '2024:01:15 12:00:00',
}


def commit_body(*entries, deleted=(), **fields):
    changes = []
    for entry in entries:
        change = {'id': entry.id, 'captureDate': '2024-01-15', 'captureTime': '12:00:00', 'timezone': 'UTC'}
        change.update(fields)
        changes.append(change)
    return {'fileChanges': changes, 'deletedFiles': list(deleted)}


class TestUpload:
    """POST /api/queue/upload"""

    def test_upload(self, client, exif_tool, store):
        exif_tool.bags = {PHOTO: PHOTO_TAGS}
        response = client.post(
            '/api/queue/upload',
            data={'files': [(io.BytesIO(PHOTO), 'a.jpg', 'image/jpeg')]},
            content_type='multipart/form-data',
        )
        assert response.status_code == 200
        assert response.get_json() == {'succeeded': 1, 'failed': 0, 'errors': []}
        assert store.count_queue_entries() == 1

    def test_partial_failure_is_reported_in_summary(self, client, exif_tool):
        exif_tool.bags = {PHOTO: PHOTO_TAGS}
        response = client.post(
            '/api/queue/upload',
            data={'files': [
                (io.BytesIO(PHOTO), 'a.jpg', 'image/jpeg'),
                (io.BytesIO(b'???'), 'b.jpg', 'image/jpeg'),
            ]},
            content_type='multipart/form-data',
        )
        assert response.status_code == 200
        body = response.get_json()
        assert (body['succeeded'], body['failed']) == (1, 1)
        assert body['errors'][0].startswith('b.jpg: ')

    def test_no_files(self, client):
        response = client.post('/api/queue/upload', data={}, content_type='multipart/form-data')
        assert response.status_code == 400
        assert response.get_json() == {'errors': ['No file uploaded.']}

    def test_not_media(self, client):
        response = client.post(
            '/api/queue/upload',
            data={'files': [(io.BytesIO(b'hello'), 'notes.txt', 'text/plain')]},
            content_type='multipart/form-data',
        )
        assert response.status_code == 400


class TestQueueListing:
    """GET /api/queue"""

    def test_local_date_and_time(self, client, add_queued):
        add_queued(capture=datetime(2024, 1, 15, 23, 30, 0, tzinfo=timezone.utc), zone='Asia/Tokyo')
        [file] = client.get('/api/queue').get_json()['files']
        assert file['captureDate'] == '2024-01-16'
        assert file['captureTime'] == '08:30:00'
        assert file['timezone'] == 'Asia/Tokyo'
        assert file['captureDateTime'] == '2024-01-15T23:30:00+00:00'

    def test_undated_file(self, client, add_queued):
        add_queued(capture=None, zone=None)
        [file] = client.get('/api/queue').get_json()['files']
        assert file['captureDate'] is None
        assert file['captureTime'] is None


class TestModify:
    """POST /api/queue/modify"""

    def test_edit_and_delete(self, client, add_queued, store):
        edited, deleted = add_queued(), add_queued()
        response = client.post('/api/queue/modify', json={
            'fileChanges': [{'id': edited.id, 'title': 'Renamed', 'timezone': 'UTC'}],
            'deletedFiles': [deleted.id],
        })
        assert response.status_code == 200
        assert response.get_json() == {'success': True, 'deleted': [deleted.id]}

        [remaining] = store.get_queue_entries()
        assert remaining.title == 'Renamed'
        assert remaining.capture_datetime is None
        assert not Path(deleted.path).exists()

    def test_invalid_edit_rejects_whole_request(self, client, add_queued, store):
        first, second = add_queued(title='One'), add_queued()
        response = client.post('/api/queue/modify', json={
            'fileChanges': [
                {'id': first.id, 'title': 'Changed'},
                {'id': second.id, 'latitude': 95.0},
            ],
            'deletedFiles': [],
        })
        assert response.status_code == 400
        assert response.get_json()['errors'] == [f"File {second.id}: Latitude must be between -90 and 90."]
        assert store.get_queue_entries([first.id])[0].title == 'One'

    def test_modified_and_deleted(self, client, add_queued):
        entry = add_queued()
        response = client.post('/api/queue/modify', json={
            'fileChanges': [{'id': entry.id}],
            'deletedFiles': [entry.id],
        })
        assert response.status_code == 400

    def test_not_json(self, client):
        response = client.post('/api/queue/modify', data='nope', content_type='text/plain')
        assert response.status_code == 400


class TestCommit:
    """POST /api/queue/commit"""

    def test_commit(self, client, app, add_queued, store):
        entry, discarded = add_queued(), add_queued()
        response = client.post('/api/queue/commit', json=commit_body(entry, deleted=[discarded.id]))

        assert response.status_code == 200
        assert response.get_json() == {'success': True, 'committed': 1, 'warnings': []}
        assert store.count_queue_entries() == 0
        assert (app.config['LIBRARY_ROOT'] / '2024' / '01 - January' / '15' / 'IMG-20240115-000.jpg').exists()

    def test_invalid_commit_deletes_nothing(self, client, add_queued, store):
        entry, discarded = add_queued(), add_queued()
        response = client.post(
            '/api/queue/commit',
            json=commit_body(entry, deleted=[discarded.id], latitude=12.0, longitude=None),
        )
        assert response.status_code == 400
        assert any('Both latitude and longitude' in e for e in response.get_json()['errors'])
        assert store.count_queue_entries() == 2
        assert Path(discarded.path).exists()

    def test_write_back_failure_is_500(self, client, app, add_queued, exif_tool, store):
        exif_tool.fail_write = True
        entry = add_queued()
        response = client.post('/api/queue/commit', json=commit_body(entry))

        assert response.status_code == 500
        assert response.get_json() == {'errors': [GENERIC_ERROR]}
        assert store.get_library_entries() == []
        assert list(app.config['LIBRARY_ROOT'].rglob('*.jpg')) == []

    def test_empty_commit(self, client):
        response = client.post('/api/queue/commit', json={'fileChanges': [], 'deletedFiles': []})
        assert response.status_code == 400


class TestThumbnail:
    """GET /api/thumbnail/<id>"""

    def test_image_thumbnail(self, client, add_queued):
        entry = add_queued()
        response = client.get(f"/api/thumbnail/{entry.id}")
        assert response.status_code == 200
        assert response.mimetype == 'image/jpeg'
        assert response.data == b'thumb'
        response.close()

    def test_video_thumbnail_mimetype(self, client, add_queued):
        entry = add_queued(mime_type='video/mp4', suffix='.mp4')
        response = client.get(f"/api/thumbnail/{entry.id}")
        assert response.mimetype == 'image/gif'
        response.close()

    def test_unknown_file(self, client):
        assert client.get('/api/thumbnail/999').status_code == 404

    def test_missing_thumbnail_file(self, client, add_queued):
        entry = add_queued()
        Path(entry.thumbnail_path).unlink()
        assert client.get(f"/api/thumbnail/{entry.id}").status_code == 404


class TestKeywords:
    """/api/keywords"""

    def test_create_and_list(self, client):
        response = client.post('/api/keywords', json={
            'name': 'Eiffel Tower', 'category': 'Location', 'isFolderLabel': False,
            'country': 'France', 'state': 'IDF', 'city': 'Paris',
            'latitude': 48.858, 'longitude': 2.294,
        })
        assert response.status_code == 201
        keyword_id = response.get_json()['id']

        [keyword] = client.get('/api/keywords').get_json()['keywords']
        assert keyword['id'] == keyword_id
        assert keyword['category'] == 'Location'
        assert keyword['location']['city'] == 'Paris'

    def test_invalid_keyword(self, client):
        response = client.post('/api/keywords', json={'name': '', 'category': 'Album'})
        assert response.status_code == 400
        assert response.get_json()['errors'] == ['Keyword cannot be empty.']


class TestLibrary:
    """/api/library"""

    def test_list_and_export(self, client, app, add_queued, add_keyword):
        family = add_keyword('Family', 'Group')
        entry = add_queued()
        client.post('/api/queue/commit', json=commit_body(entry, keywordIds=[family], title='Snow'))

        [file] = client.get('/api/library').get_json()['files']
        assert file['name'] == 'IMG-20240115-000.jpg'
        assert file['path'] == '2024/01 - January/15'
        assert file['keywords'] == ['Family']

        response = client.get('/api/library/export-exif')
        assert response.status_code == 200
        assert 'attachment' in response.headers['Content-Disposition']
        [exported] = json.loads(response.data)
        assert exported['path'] == str(app.config['LIBRARY_ROOT'] / '2024/01 - January/15' / 'IMG-20240115-000.jpg')
        assert exported['title'] == 'Snow'
        assert exported['captureDateTime'] == '2024-01-15T12:00:00+00:00'
