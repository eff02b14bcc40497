"""
routes/main.py — Service overview route.

Provides:
- GET / — Trait schema and plant counts (JSON)
"""

from flask import Blueprint, jsonify, current_app

from database import get_plants
from trait_schema import get_all_trait_fields

main_bp = Blueprint('main', __name__)


@main_bp.route('/')
def index():
    """Overview of the merged schema and stored plants."""
    editor = current_app.extensions['trait_editor']
    schema = editor.merged_schema()
    fields = get_all_trait_fields(schema)

    try:
        plants = get_plants()
    except Exception as e:
        current_app.logger.exception("Could not list plants")
        return jsonify({'success': False, 'error': str(e)}), 500

    return jsonify({
        'success': True,
        'areas': len(schema),
        'traits': len(fields),
        'custom_traits': sum(1 for f in fields if f['is_custom']),
        'plants': len(plants),
    })
