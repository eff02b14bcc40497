"""
routes/traits.py — Trait schema and custom-trait editing routes.

Provides:
- GET /traits/ — Merged schema (baseline + custom)
- GET /traits/fields — Flat list of all trait fields
- GET /traits/field-name?label= — Suggested field name for a new trait
- GET /traits/label/<field> — Display label for a field
- GET /traits/season?season=&all= — Traits to observe in a season
- GET /traits/custom — Raw custom-trait document
- POST /traits/custom/add — Add a custom trait
- POST /traits/custom/edit — Edit a custom trait
- POST /traits/custom/delete — Delete a custom trait
- POST /traits/custom/group/add — Add a custom group
- POST /traits/custom/group/delete — Delete a custom group
- POST /traits/custom/area/add — Add a custom area
- POST /traits/custom/area/delete — Delete a custom area

All POST routes take a JSON body and return {'success': ..., ...}.
"""

from flask import Blueprint, request, jsonify, current_app

from custom_traits import (
    add_custom_area, add_custom_group, delete_custom_area, delete_custom_group,
    delete_custom_trait, store_to_dict, update_custom_trait,
)
from models import SEASONS, TraitDefinition, TraitLocation
from trait_schema import (
    filter_traits_for_season, get_all_trait_fields, get_current_season,
    get_trait_label, schema_to_dict,
)
from utils.validators import validate_location, validate_trait_input, validate_trait_updates

traits_bp = Blueprint('traits', __name__, url_prefix='/traits')


def _editor():
    return current_app.extensions['trait_editor']


def _payload():
    return request.get_json(silent=True) or request.form.to_dict()


def _edit_response(success, error):
    if success:
        return jsonify({'success': True, 'custom_traits': store_to_dict(_editor().store)})
    return jsonify({'success': False, 'error': error}), 400


def _required(data, *keys):
    missing = [k for k in keys if not str(data.get(k) or '').strip()]
    if missing:
        return f"Missing: {', '.join(missing)}"
    return None


# ========================================
# Schema
# ========================================

@traits_bp.route('/')
def merged_schema():
    """Merged trait schema (JSON API)."""
    return jsonify({'success': True, 'areas': schema_to_dict(_editor().merged_schema())})


@traits_bp.route('/fields')
def trait_fields():
    """Flat list of trait fields (JSON API)."""
    return jsonify({'success': True, 'fields': get_all_trait_fields(_editor().merged_schema())})


@traits_bp.route('/field-name')
def field_name():
    """Suggested unique field name for a label (JSON API)."""
    label = request.args.get('label', '').strip()
    if not label:
        return jsonify({'success': False, 'error': 'Label is required.'}), 400
    return jsonify({'success': True, 'field': _editor().suggest_field_name(label)})


@traits_bp.route('/label/<field>')
def trait_label(field):
    """Display label for a field; unknown fields get a formatted name."""
    return jsonify({'success': True, 'field': field, 'label': get_trait_label(_editor().merged_schema(), field)})


@traits_bp.route('/season')
def season_traits():
    """Traits to offer in an observation session (JSON API)."""
    season = request.args.get('season') or get_current_season()
    if season not in SEASONS:
        return jsonify({'success': False, 'error': f'Unknown season: {season}'}), 400
    show_all = request.args.get('all', '0') in ('1', 'true', 'on')

    areas = filter_traits_for_season(_editor().merged_schema(), season, show_all=show_all)
    return jsonify({'success': True, 'season': season, 'areas': schema_to_dict(areas)})


# ========================================
# Custom Traits
# ========================================

@traits_bp.route('/custom')
def custom_document():
    """Raw custom-trait document (JSON API)."""
    return jsonify({'success': True, 'custom_traits': store_to_dict(_editor().store)})


@traits_bp.route('/custom/add', methods=['POST'])
def custom_trait_add():
    """Add a custom trait at an existing group, a new group or a new area."""
    data = _payload()
    location_data = data.get('location') or {}
    trait_data = data.get('trait') or {}

    errors = validate_location(location_data) + validate_trait_input(trait_data)
    if errors:
        return jsonify({'success': False, 'error': '; '.join(errors), 'errors': errors}), 400

    trait = TraitDefinition.from_dict(trait_data)
    trait.label = trait.label.strip()
    if trait.type != 'select':
        trait.options = None

    field, error = _editor().add_trait(TraitLocation.from_dict(location_data), trait)
    if error:
        return jsonify({'success': False, 'error': error}), 400

    current_app.logger.info("Custom trait %s added", field)
    return jsonify({'success': True, 'field': field, 'custom_traits': store_to_dict(_editor().store)})


@traits_bp.route('/custom/edit', methods=['POST'])
def custom_trait_edit():
    """Edit label, type, options or timing of a custom trait."""
    data = _payload()
    error = _required(data, 'area', 'group', 'field')
    if error:
        return jsonify({'success': False, 'error': error}), 400

    updates = data.get('updates') or {}
    if not isinstance(updates, dict):
        return jsonify({'success': False, 'error': 'updates must be an object.'}), 400

    errors = validate_trait_updates(updates)
    if errors:
        return jsonify({'success': False, 'error': '; '.join(errors), 'errors': errors}), 400

    success, error = _editor().apply(update_custom_trait, data['area'], data['group'], data['field'], updates)
    return _edit_response(success, error)


@traits_bp.route('/custom/delete', methods=['POST'])
def custom_trait_delete():
    """Delete a custom trait."""
    data = _payload()
    error = _required(data, 'area', 'group', 'field')
    if error:
        return jsonify({'success': False, 'error': error}), 400

    success, error = _editor().apply(delete_custom_trait, data['area'], data['group'], data['field'])
    return _edit_response(success, error)


@traits_bp.route('/custom/group/add', methods=['POST'])
def custom_group_add():
    """Add an empty custom group to an area."""
    data = _payload()
    error = _required(data, 'area', 'group')
    if error:
        return jsonify({'success': False, 'error': error}), 400

    area = data['area'].strip()
    if area not in {a.name for a in _editor().merged_schema()}:
        return jsonify({'success': False, 'error': f'Unknown area: {area}'}), 400

    success, error = _editor().apply(add_custom_group, area, data['group'].strip())
    return _edit_response(success, error)


@traits_bp.route('/custom/group/delete', methods=['POST'])
def custom_group_delete():
    """Delete a custom group with its traits."""
    data = _payload()
    error = _required(data, 'area', 'group')
    if error:
        return jsonify({'success': False, 'error': error}), 400

    success, error = _editor().apply(delete_custom_group, data['area'], data['group'])
    return _edit_response(success, error)


@traits_bp.route('/custom/area/add', methods=['POST'])
def custom_area_add():
    """Add a custom area with one empty group."""
    data = _payload()
    error = _required(data, 'area', 'group')
    if error:
        return jsonify({'success': False, 'error': error}), 400

    area = data['area'].strip()
    if area in {a.name for a in _editor().baseline}:
        return jsonify({'success': False, 'error': f'Area already exists: {area}'}), 400

    success, error = _editor().apply(add_custom_area, area, data['group'].strip())
    return _edit_response(success, error)


@traits_bp.route('/custom/area/delete', methods=['POST'])
def custom_area_delete():
    """Delete a custom area with its groups and traits."""
    data = _payload()
    error = _required(data, 'area')
    if error:
        return jsonify({'success': False, 'error': error}), 400

    success, error = _editor().apply(delete_custom_area, data['area'])
    return _edit_response(success, error)
