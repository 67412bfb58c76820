"""Keyword routes: listing and creation."""
from dataclasses import asdict
from flask import Blueprint, request, jsonify
import logging

from librarian.lib.validation import parse_keyword
from librarian.services import get_store

logger = logging.getLogger(__name__)

keywords_bp = Blueprint('keywords', __name__, url_prefix='/api/keywords')


@keywords_bp.route('', methods=['GET'])
def list_keywords():
    keywords = get_store().get_keywords()
    return jsonify({'keywords': [
        {
            'id': kw.id,
            'name': kw.name,
            'category': kw.category,
            'isFolderLabel': kw.is_folder_label,
            'location': asdict(kw.location) if kw.location else None,
        }
        for kw in keywords
    ]})


@keywords_bp.route('', methods=['POST'])
def add_keyword():
    """
    Create a keyword.

    Body: {name, category, isFolderLabel, city?, state?, country?,
    latitude?, longitude?, altitude?}
    """
    store = get_store()
    keyword = parse_keyword(request.get_json(silent=True), store)
    keyword_id = store.add_keyword(keyword)
    return jsonify({'id': keyword_id}), 201
