"""Flask routes package."""
from flask import jsonify
import logging

from librarian.lib.errors import LibrarianError, ValidationError
from librarian.routes.queue import queue_bp
from librarian.routes.library import library_bp
from librarian.routes.keywords import keywords_bp

logger = logging.getLogger(__name__)

GENERIC_ERROR = 'Internal failure. Check server logs for details.'


def register_error_handlers(app):
    """Map ValidationError to 400 and every other librarian failure to 500."""

    @app.errorhandler(ValidationError)
    def handle_validation_error(error):
        logger.info(f"Rejected request: {error}")
        return jsonify({'errors': error.messages}), 400

    @app.errorhandler(LibrarianError)
    def handle_librarian_error(error):
        logger.error(f"Request failed: {error}", exc_info=True)
        return jsonify({'errors': [GENERIC_ERROR]}), 500


__all__ = ['queue_bp', 'library_bp', 'keywords_bp', 'register_error_handlers']
