"""Queue routes: upload, listing, editing and commit of queued files.

Provides endpoints for:
- Browser file upload (POST /api/queue/upload)
- Queue listing (GET /api/queue)
- Edits and deletions (POST /api/queue/modify)
- Commit to the library (POST /api/queue/commit)
- Thumbnails (GET /api/thumbnail/<id>)
"""
from flask import Blueprint, request, jsonify, current_app, send_file
import logging

from librarian.lib.errors import FieldError, ValidationError
from librarian.lib.processing import delete_queue_files, process_uploads
from librarian.lib.records import QueueEntry
from librarian.lib.thumbnail import thumbnail_content_type
from librarian.lib.validation import (
    parse_file_changes,
    parse_id_list,
    validate_commit,
    validate_deletions,
    validate_modifications,
    validate_uploads,
)
from librarian.services import get_commit_orchestrator, get_exif_tool, get_store, get_thumbnailer

logger = logging.getLogger(__name__)

queue_bp = Blueprint('queue', __name__, url_prefix='/api')


def queue_entry_to_json(entry: QueueEntry) -> dict:
    """Serialize an entry; date and time are given in the entry's zone, as edited."""
    local = entry.local_datetime
    return {
        'id': entry.id,
        'name': entry.name,
        'mimeType': entry.mime_type,
        'captureDateTime': entry.capture_datetime.isoformat() if entry.capture_datetime else None,
        'captureDate': local.strftime('%Y-%m-%d') if local else None,
        'captureTime': local.strftime('%H:%M:%S') if local else None,
        'timezone': entry.timezone,
        'title': entry.title,
        'latitude': entry.latitude,
        'longitude': entry.longitude,
        'altitude': entry.altitude,
        'keywords': entry.keywords,
        'keywordIds': entry.keyword_ids,
    }


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError([FieldError('body', 'Expected a JSON object.')])
    return data


@queue_bp.route('/queue/upload', methods=['POST'])
def upload_files():
    """
    Accept multipart/form-data with a 'files' field (multiple files).

    Returns:
        JSON: {succeeded, failed, errors}; per-file failures are only counted
    """
    uploads = [f for f in request.files.getlist('files') if f.filename]
    validate_uploads(uploads)

    summary = process_uploads(
        uploads,
        get_store(),
        get_exif_tool(),
        get_thumbnailer(),
        upload_dir=current_app.config['UPLOAD_FOLDER'],
        local_zone=current_app.config['TIMEZONE'],
        max_workers=current_app.config['WORKER_THREADS'],
    )

    response = {'succeeded': summary.succeeded, 'failed': summary.failed, 'errors': summary.errors}
    return jsonify(response)


@queue_bp.route('/queue', methods=['GET'])
def list_queue():
    entries = get_store().get_queue_entries()
    return jsonify({'files': [queue_entry_to_json(entry) for entry in entries]})


def _parse_edit_request():
    data = _json_body()
    changes = parse_file_changes(data.get('fileChanges'))
    deleted_ids = parse_id_list(data.get('deletedFiles'), field='deletedFiles')

    overlap = {change.id for change in changes} & set(deleted_ids)
    if overlap:
        raise ValidationError([FieldError('deletedFiles', f"Files both modified and deleted: {sorted(overlap)}")])
    return changes, deleted_ids


def _deletion_errors(summary) -> list[str]:
    return [f"File {file_id}: {error}" for file_id, errors in summary.failed.items() for error in errors]


@queue_bp.route('/queue/modify', methods=['POST'])
def modify_files():
    """
    Save edits and delete files.

    Body: {fileChanges: [...], deletedFiles: [ids]}
    """
    store = get_store()
    changes, deleted_ids = _parse_edit_request()

    validate_modifications(changes, store)
    validate_deletions(deleted_ids, store)

    deletion = delete_queue_files(deleted_ids, store, current_app.config['WORKER_THREADS'])
    store.update_queue_entries(changes)

    if deletion.failed:
        return jsonify({'errors': ['Unable to delete files.', *_deletion_errors(deletion)]}), 500
    return jsonify({'success': True, 'deleted': deletion.deleted})


@queue_bp.route('/queue/commit', methods=['POST'])
def commit_files():
    """
    Save final edits, delete discarded files and move the rest into the library.

    Body: {fileChanges: [...], deletedFiles: [ids]}

    Returns:
        JSON: {success, committed, warnings}
    """
    store = get_store()
    changes, deleted_ids = _parse_edit_request()

    # Reject the request before deleting anything
    validate_commit(changes, store)
    validate_deletions(deleted_ids, store)

    deletion = delete_queue_files(deleted_ids, store, current_app.config['WORKER_THREADS'])
    report = get_commit_orchestrator(store).commit(changes)

    warnings = report.cleanup_warnings + _deletion_errors(deletion)
    return jsonify({'success': True, 'committed': report.committed, 'warnings': warnings})


@queue_bp.route('/thumbnail/<int:file_id>', methods=['GET'])
def get_thumbnail(file_id):
    entries = get_store().get_queue_entries([file_id])
    if not entries:
        return jsonify({'errors': [f"File {file_id} not found"]}), 404

    entry = entries[0]
    try:
        return send_file(entry.thumbnail_path, mimetype=thumbnail_content_type(entry.mime_type))
    except FileNotFoundError:
        logger.error(f"Thumbnail missing for file {file_id}: {entry.thumbnail_path}")
        return jsonify({'errors': [f"Thumbnail for file {file_id} not found"]}), 404
