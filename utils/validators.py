"""
utils/validators.py — Input validation helpers.

Validates:
- Custom trait definitions (label, type, select options, timing)
- Custom trait locations (kind, area, group)
- Observation payloads (field, date)

Each validator returns a list of error messages; an empty list means valid.
"""

from datetime import datetime
from typing import Any, Dict, List

from models import SEASONS, TRAIT_TYPES, LocationKind

MIN_SELECT_OPTIONS = 2


def validate_trait_input(data: Dict[str, Any]) -> List[str]:
    """Validate a custom trait payload."""
    errors = []

    label = (data.get('label') or '').strip()
    if not label:
        errors.append("Trait label is required.")

    trait_type = data.get('type') or 'text'
    if trait_type not in TRAIT_TYPES:
        errors.append(f"Unknown trait type: {trait_type}")

    if trait_type == 'select':
        options = [o for o in (data.get('options') or []) if str(o).strip()]
        if len(options) < MIN_SELECT_OPTIONS:
            errors.append(f"Select traits need at least {MIN_SELECT_OPTIONS} options.")

    timing = data.get('default_timing') or {}
    if not isinstance(timing, dict):
        errors.append("default_timing must be an object.")
    elif timing.get('season') and timing['season'] not in SEASONS:
        errors.append(f"Unknown season: {timing['season']}")

    return errors


def validate_location(data: Dict[str, Any]) -> List[str]:
    """Validate a custom trait location payload."""
    errors = []

    kind = data.get('kind', LocationKind.EXISTING_GROUP.value)
    if kind not in {k.value for k in LocationKind}:
        errors.append(f"Unknown location kind: {kind}")

    if not (data.get('area') or '').strip():
        errors.append("Area name is required.")
    if not (data.get('group') or '').strip():
        errors.append("Group name is required.")

    return errors


def validate_observation_date(value: Any) -> bool:
    """True for ISO dates/datetimes (a trailing 'Z' is accepted)."""
    if not value or not isinstance(value, str):
        return False
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        datetime.fromisoformat(text)
    except ValueError:
        return False
    return True


def validate_observation_input(data: Dict[str, Any]) -> List[str]:
    """Validate an individual observation payload."""
    errors = []
    if not (data.get('field') or '').strip():
        errors.append("Trait field is required.")
    if 'value' not in data:
        errors.append("Observation value is required.")
    if not validate_observation_date(data.get('observation_date')):
        errors.append("Observation date must be an ISO date (YYYY-MM-DD).")
    return errors


def validate_trait_updates(updates: Dict[str, Any]) -> List[str]:
    """Validate the keys present in a custom trait update."""
    errors = []

    if 'label' in updates and not (updates.get('label') or '').strip():
        errors.append("Trait label cannot be empty.")

    if 'type' in updates and updates.get('type') not in TRAIT_TYPES:
        errors.append(f"Unknown trait type: {updates.get('type')}")

    if updates.get('type') == 'select':
        options = [o for o in (updates.get('options') or []) if str(o).strip()]
        if len(options) < MIN_SELECT_OPTIONS:
            errors.append(f"Select traits need at least {MIN_SELECT_OPTIONS} options.")

    timing = updates.get('default_timing')
    if timing is not None:
        if not isinstance(timing, dict):
            errors.append("default_timing must be an object.")
        elif timing.get('season') and timing['season'] not in SEASONS:
            errors.append(f"Unknown season: {timing['season']}")

    return errors
