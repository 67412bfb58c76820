"""Library routes: listing and metadata export of committed files."""
from flask import Blueprint, Response, jsonify, current_app
import logging

from librarian.lib.export import dump_library_metadata
from librarian.services import get_store

logger = logging.getLogger(__name__)

library_bp = Blueprint('library', __name__, url_prefix='/api/library')


@library_bp.route('', methods=['GET'])
def list_library():
    entries = get_store().get_library_entries()
    return jsonify({'files': [
        {
            'id': entry.id,
            'name': entry.name,
            'path': entry.path,
            'mimeType': entry.mime_type,
            'captureDateTime': entry.capture_datetime.isoformat(),
            'timezone': entry.timezone,
            'title': entry.title,
            'latitude': entry.latitude,
            'longitude': entry.longitude,
            'altitude': entry.altitude,
            'keywords': entry.keywords,
        }
        for entry in entries
    ]})


@library_bp.route('/export-exif', methods=['GET'])
def export_exif():
    """Download the metadata of every library file as JSON."""
    data = dump_library_metadata(get_store(), current_app.config['LIBRARY_ROOT'])
    return Response(
        data,
        mimetype='application/json',
        headers={'Content-Disposition': 'attachment; filename=library-metadata.json'},
    )
