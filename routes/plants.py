"""
routes/plants.py — Plant and observation routes.

Provides:
- GET /plants/ — List plants
- POST /plants/add — Register a plant with static trait values
- POST /plants/delete — Delete a plant
- GET /plants/<id>/observations — Aggregated observations grouped by area
- GET /plants/<id>/observations/<field> — One field's aggregate with full history
- GET /plants/<id>/summary?fields=a,b — Summary values for selected fields
- POST /plants/<id>/observations/add — Record an individual observation
- POST /plants/<id>/cycles/add — Record an observation cycle

Aggregates are recomputed on every request and never stored.
"""

from flask import Blueprint, request, jsonify, current_app

from database import (
    add_observation_cycle, add_trait_observation, create_plant, delete_plant,
    get_plant_record, get_plants,
)
from models import ObservationCycle, ObservationRecord
from observation_engine import (
    build_plant_observations, format_display_value, get_field_detail,
    get_summary_value,
)
from trait_schema import find_trait_by_field, get_trait_label
from utils.validators import validate_observation_date, validate_observation_input

plants_bp = Blueprint('plants', __name__, url_prefix='/plants')

DEFAULT_SUMMARY_FIELDS = (
    'variety_name', 'hybridizer_name', 'year_introduced', 'ploidy',
    'scape_height', 'bloom_season', 'bud_count_per_scape', 'branch_count',
)


def _schema():
    return current_app.extensions['trait_editor'].merged_schema()


def _payload():
    return request.get_json(silent=True) or request.form.to_dict()


def _plant_or_404(plant_id):
    plant = get_plant_record(plant_id)
    if not plant:
        return None, (jsonify({'success': False, 'error': 'Plant not found'}), 404)
    return plant, None


# ========================================
# Plant List and CRUD
# ========================================

@plants_bp.route('/')
def list_plants():
    """Get all plants (JSON API)."""
    try:
        return jsonify({'success': True, 'plants': get_plants()})
    except Exception as e:
        current_app.logger.exception("Could not list plants")
        return jsonify({'success': False, 'error': str(e)}), 500


@plants_bp.route('/add', methods=['POST'])
def plant_add():
    """Register a plant."""
    data = _payload()
    static_values = data.get('static_values') or {}
    if not isinstance(static_values, dict):
        return jsonify({'success': False, 'error': 'static_values must be an object.'}), 400

    acquisition_date = data.get('acquisition_date') or None
    if acquisition_date and not validate_observation_date(acquisition_date):
        return jsonify({'success': False, 'error': 'Invalid acquisition date.'}), 400

    plant_id, error = create_plant(data.get('name', ''), acquisition_date, static_values)
    if error:
        return jsonify({'success': False, 'error': error}), 400
    return jsonify({'success': True, 'plant_id': plant_id})


@plants_bp.route('/delete', methods=['POST'])
def plant_delete():
    """Delete a plant with its observations."""
    data = _payload()
    try:
        plant_id = int(data.get('plant_id'))
    except (TypeError, ValueError):
        return jsonify({'success': False, 'error': 'plant_id is required.'}), 400

    success, error = delete_plant(plant_id)
    if not success:
        return jsonify({'success': False, 'error': error}), 404 if error == 'Plant not found.' else 500
    return jsonify({'success': True})


# ========================================
# Aggregated Observations
# ========================================

@plants_bp.route('/<int:plant_id>/observations')
def plant_observations(plant_id):
    """Aggregated observations grouped by trait area (JSON API)."""
    plant, not_found = _plant_or_404(plant_id)
    if not_found:
        return not_found

    grouped = build_plant_observations(plant, _schema())
    return jsonify({
        'success': True,
        'plant': {'id': plant.id, 'name': plant.name},
        'areas': [g.to_dict() for g in grouped],
        'observed_count': sum(g.observed_count for g in grouped),
    })


@plants_bp.route('/<int:plant_id>/observations/<field>')
def field_observations(plant_id, field):
    """One field's aggregate including its full observation history."""
    plant, not_found = _plant_or_404(plant_id)
    if not_found:
        return not_found

    schema = _schema()
    detail = get_field_detail(plant, field, label=get_trait_label(schema, field))
    if detail is None:
        return jsonify({'success': False, 'error': f'No observations for {field}'}), 404

    trait = find_trait_by_field(schema, field)
    return jsonify({
        'success': True,
        'trait': trait.to_dict() if trait else None,
        'aggregate': detail.to_dict(),
        'display_value': format_display_value(detail.current_value, field),
    })


@plants_bp.route('/<int:plant_id>/summary')
def plant_summary(plant_id):
    """Summary values for selected fields (JSON API)."""
    plant, not_found = _plant_or_404(plant_id)
    if not_found:
        return not_found

    requested = request.args.get('fields', '')
    fields = [f.strip() for f in requested.split(',') if f.strip()] or list(DEFAULT_SUMMARY_FIELDS)

    schema = _schema()
    summary = []
    for field in fields:
        value = get_summary_value(plant, field)
        summary.append({
            'field': field,
            'label': get_trait_label(schema, field),
            'value': value,
            'display_value': format_display_value(value, field),
        })
    return jsonify({'success': True, 'summary': summary})


# ========================================
# Recording Observations
# ========================================

@plants_bp.route('/<int:plant_id>/observations/add', methods=['POST'])
def observation_add(plant_id):
    """Record an individual spot observation."""
    data = _payload()
    errors = validate_observation_input(data)
    if errors:
        return jsonify({'success': False, 'error': '; '.join(errors), 'errors': errors}), 400

    record = ObservationRecord(
        field=data['field'].strip(),
        value=data.get('value'),
        observation_date=data['observation_date'].strip(),
        notes=data.get('notes') or None,
        observer=data.get('observer') or None,
        conditions=data.get('conditions') or None,
        exclude_from_automatic_cycle=bool(data.get('exclude_from_automatic_cycle', False)),
    )
    observation_id, error = add_trait_observation(plant_id, record)
    if error:
        status = 404 if error == 'Plant not found.' else 400
        return jsonify({'success': False, 'error': error}), status
    return jsonify({'success': True, 'observation_id': observation_id})


@plants_bp.route('/<int:plant_id>/cycles/add', methods=['POST'])
def cycle_add(plant_id):
    """Record an observation cycle (several trait values at once)."""
    data = _payload()
    observations = data.get('observations') or {}
    if not isinstance(observations, dict):
        return jsonify({'success': False, 'error': 'observations must be an object.'}), 400
    if not validate_observation_date(data.get('start_date')):
        return jsonify({'success': False, 'error': 'start_date must be an ISO date.'}), 400

    cycle = ObservationCycle(
        year=data.get('year'),
        cycle_name=(data.get('cycle_name') or '').strip(),
        start_date=data['start_date'].strip(),
        end_date=data.get('end_date') or None,
        observations=observations,
        notes=data.get('notes') or '',
        completed=bool(data.get('completed', False)),
    )
    cycle_id, error = add_observation_cycle(plant_id, cycle)
    if error:
        status = 404 if error == 'Plant not found.' else 400
        return jsonify({'success': False, 'error': error}), status
    return jsonify({'success': True, 'cycle_id': cycle_id})
