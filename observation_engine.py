"""
observation_engine.py — Observation collection, aggregation and grouping.

This module implements:
- Collection: gathering every observation record of a plant per trait field
  from individual observations, observation cycles and registered values
- Aggregation: reducing one field's records to a representative value
- Grouping: re-projecting aggregated fields onto the merged trait schema

Collection precedence (per field):
    1. individual observations, verbatim
    2. one record per field of each observation cycle, dated at its start
    3. registered/static values, only for fields with nothing from 1 or 2

Aggregation rules (per field):
    - records sorted newest first (stable); all kept for history
    - None values ignored for statistics
    - one value                  → 'single'
    - two or more, all numeric   → 'mean' (1 decimal) + min/max range
    - otherwise                  → 'mode' (ties: first seen in input order)
                                   + value distribution
    - no value at all            → 'latest' with current_value None
    - has_conflicts: more than one distinct value (as strings)

All functions are pure: inputs are never modified and identical inputs
give equal outputs.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from models import (
    AggregatedField, GroupedArea, ObservationRecord, PlantRecord, TraitArea,
)
from trait_schema import format_field_label

logger = logging.getLogger(__name__)

BASE_VALUE_DATE = '2000-01-01'
BASE_VALUE_NOTE = 'Registered/Base value'
OTHER_AREA_NAME = 'Other Observations'

EMPTY_DISPLAY_VALUE = '—'


# ========================================
# Statistics Helpers
# ========================================

def _round_half_up(value: float, digits: int = 1) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def get_mean_value(values: List[float]) -> float:
    """Arithmetic mean rounded to 1 decimal place (0 for no values)."""
    if not values:
        return 0
    return _round_half_up(sum(values) / len(values))


def value_key(value: Any) -> str:
    """String form used to compare values; integral floats print as ints (8.0 → "8")."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def get_mode_value(values: List[Any]) -> Any:
    """
    Most frequent value; ties go to the value seen first in the given order.

    Values are compared by value_key(), so 8, 8.0 and "8" count together.
    The first raw value seen for the winning key is returned.
    """
    if not values:
        return None

    counts: Dict[str, int] = {}
    first_seen: Dict[str, Any] = {}
    for value in values:
        key = value_key(value)
        if key not in counts:
            counts[key] = 0
            first_seen[key] = value
        counts[key] += 1

    # dict order is first-occurrence order and max() keeps the first maximum
    winner = max(counts, key=counts.get)
    return first_seen[winner]


def get_value_range(values: List[float]) -> Optional[Dict[str, float]]:
    if not values:
        return None
    return {'min': min(values), 'max': max(values)}


def get_value_counts(values: List[Any]) -> Dict[str, int]:
    """Occurrences of each value, keyed by value_key()."""
    counts: Dict[str, int] = {}
    for value in values:
        key = value_key(value)
        counts[key] = counts.get(key, 0) + 1
    return counts


def to_number(value: Any) -> Optional[float]:
    """
    Numeric reading of a value, or None.

    Numbers pass through; strings count when they parse to a finite number.
    Booleans are never numeric.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
        return value if math.isfinite(number) else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


# ========================================
# Dates
# ========================================

def parse_observation_date(value: Optional[str]) -> datetime:
    """
    Parse an ISO date/datetime for ordering.

    Timezone-aware values are converted to naive UTC so that date-only and
    full timestamps compare. Unparseable dates sort as oldest.
    """
    if not value:
        return datetime.min
    text = str(value).strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Unparseable observation date %r", value)
        return datetime.min
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def sort_observations_by_date(records: Iterable[ObservationRecord]) -> List[ObservationRecord]:
    """Newest first; records with the same date keep their input order."""
    return sorted(records, key=lambda r: parse_observation_date(r.observation_date), reverse=True)


# ========================================
# Collection
# ========================================

def collect_observations(plant: PlantRecord) -> Dict[str, List[ObservationRecord]]:
    """
    Gather every observation record of a plant, keyed by field.

    Args:
        plant: Plant with individual observations, cycles and static values.

    Returns:
        Dict field → records, fields in first-seen order. Synthetic records
        are new objects; the plant is not modified.
    """
    observation_map: Dict[str, List[ObservationRecord]] = {}

    def add(record: ObservationRecord):
        observation_map.setdefault(record.field, []).append(record)

    for record in plant.individual_observations:
        add(record)

    for cycle in plant.observation_cycles:
        for field_name, value in cycle.observations.items():
            add(ObservationRecord(
                field=field_name,
                value=value,
                observation_date=cycle.start_date,
                notes=f"From {cycle.cycle_name}",
                exclude_from_automatic_cycle=False,
            ))

    base_date = plant.acquisition_date or BASE_VALUE_DATE
    for field_name, value in plant.static_values.items():
        if value is None:
            continue
        # Registered values only fill fields that were never observed
        if field_name in observation_map:
            continue
        add(ObservationRecord(
            field=field_name,
            value=value,
            observation_date=base_date,
            notes=BASE_VALUE_NOTE,
            exclude_from_automatic_cycle=True,
        ))

    return observation_map


# ========================================
# Aggregation
# ========================================

def aggregate_field(field_name: str, records: List[ObservationRecord]) -> AggregatedField:
    """
    Reduce one field's records to a representative value.

    Args:
        field_name: Trait field identifier.
        records: Records in collection order (may be empty or all-None).

    Returns:
        AggregatedField with the full newest-first history attached.
    """
    records = list(records)
    values = [r.value for r in records if r.value is not None]
    sorted_records = sort_observations_by_date(records)

    distinct = {value_key(v) for v in values}
    result = AggregatedField(
        field=field_name,
        observations=sorted_records,
        has_conflicts=len(distinct) > 1,
    )

    if not values:
        result.value_type = 'latest'
        result.current_value = None
        return result

    if len(values) == 1:
        result.value_type = 'single'
        result.current_value = values[0]
        return result

    numbers = [to_number(v) for v in values]
    if all(n is not None for n in numbers):
        result.value_type = 'mean'
        result.current_value = get_mean_value(numbers)
        result.range = get_value_range(numbers)
        return result

    # Tie-break must use the unsorted input order
    result.value_type = 'mode'
    result.current_value = get_mode_value(values)
    result.value_count = get_value_counts(values)
    return result


def aggregate_all(observation_map: Dict[str, List[ObservationRecord]]) -> Dict[str, AggregatedField]:
    return {
        field_name: aggregate_field(field_name, records)
        for field_name, records in observation_map.items()
    }


# ========================================
# Grouping
# ========================================

def group_by_area(
    aggregated: Dict[str, AggregatedField],
    schema: Iterable[TraitArea]
) -> List[GroupedArea]:
    """
    Re-project aggregated fields onto the schema for display.

    Fields appear under their area in schema order, labelled with the
    schema label. Fields with no definition go to a trailing
    "Other Observations" area. Areas without observed fields are omitted.
    Input AggregatedField objects are not modified.
    """
    groups: List[GroupedArea] = []
    assigned = set()

    for area in schema:
        area_traits = []
        for group in area.groups:
            for trait in group.traits:
                if trait.field in aggregated and trait.field not in assigned:
                    area_traits.append(_with_label(aggregated[trait.field], trait.label))
                    assigned.add(trait.field)

        if area_traits:
            groups.append(GroupedArea(area=area.name, traits=area_traits, observed_count=len(area_traits)))

    other_traits = [
        _with_label(entry, format_field_label(field_name))
        for field_name, entry in aggregated.items()
        if field_name not in assigned
    ]
    if other_traits:
        groups.append(GroupedArea(area=OTHER_AREA_NAME, traits=other_traits, observed_count=len(other_traits)))

    return groups


def _with_label(entry: AggregatedField, label: str) -> AggregatedField:
    return AggregatedField(
        field=entry.field,
        current_value=entry.current_value,
        value_type=entry.value_type,
        observations=list(entry.observations),
        range=dict(entry.range) if entry.range else None,
        value_count=dict(entry.value_count) if entry.value_count else None,
        has_conflicts=entry.has_conflicts,
        label=label,
    )


def build_plant_observations(plant: PlantRecord, schema: Iterable[TraitArea]) -> List[GroupedArea]:
    """Collect, aggregate and group a plant's observations in one call."""
    return group_by_area(aggregate_all(collect_observations(plant)), schema)


def get_field_detail(
    plant: PlantRecord,
    field_name: str,
    label: Optional[str] = None
) -> Optional[AggregatedField]:
    """Full aggregate (with history) of one field, or None if never observed."""
    records = collect_observations(plant).get(field_name)
    if records is None:
        return None
    result = aggregate_field(field_name, records)
    result.label = label or format_field_label(field_name)
    return result


# ========================================
# Display Helpers
# ========================================

def get_summary_value(plant: PlantRecord, field_name: str) -> Any:
    """
    Value to show for a summary field.

    A registered value wins; otherwise the aggregated current value;
    otherwise None.
    """
    value = plant.static_values.get(field_name)
    if value is not None:
        return value

    detail = get_field_detail(plant, field_name)
    if detail:
        return detail.current_value
    return None


def format_display_value(value: Any, field_name: Optional[str] = None) -> str:
    """Render a trait value for display."""
    if value is None:
        return EMPTY_DISPLAY_VALUE

    if isinstance(value, bool):
        return 'Yes' if value else 'No'

    if isinstance(value, (int, float)):
        text = f"{value:g}" if isinstance(value, float) else str(value)
        if field_name and ('height' in field_name or 'size' in field_name):
            return f'{text}"'
        return text

    return str(value)
