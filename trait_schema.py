"""
trait_schema.py — Baseline taxonomy loading and schema merge.

This module implements:
- Loading the fixed baseline taxonomy (areas → groups → traits) from JSON
- Merging the baseline with the user's custom-trait overlay
- Field-name generation for new custom traits
- Trait lookup by field, with a label fallback that never raises
- Seasonal filtering of traits for observation sessions

Merge order (after the baseline, which keeps its own order):
    1. custom traits appended to existing (area, group) pairs
    2. custom groups appended to existing areas
    3. new custom areas appended at the end

The merge never validates field uniqueness; that is enforced when a custom
trait is written (see custom_traits.add_custom_trait).
"""

import json
import logging
import os
import re
from dataclasses import replace
from datetime import date, datetime
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from models import (
    CustomTraitsStore, DefaultTiming, TraitArea, TraitDefinition, TraitGroup,
)

logger = logging.getLogger(__name__)

TRAIT_KEY_SEPARATOR = '::'


def get_taxonomy_path() -> str:
    """Get the baseline taxonomy path from environment or default."""
    default_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'data', 'trait_taxonomy.json')
    return os.environ.get('TRAIT_TAXONOMY_PATH', default_path)


# ========================================
# Baseline Taxonomy
# ========================================

@lru_cache(maxsize=None)
def _load_taxonomy_file(path: str) -> Tuple[TraitArea, ...]:
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    areas = tuple(TraitArea.from_dict(a) for a in data.get('areas', []))
    logger.info("Loaded baseline taxonomy from %s (%d areas)", path, len(areas))
    return areas


def load_baseline_taxonomy(path: Optional[str] = None) -> Tuple[TraitArea, ...]:
    """
    Load the baseline taxonomy once per path.

    The returned areas are shared; callers must not mutate them.
    merge_schema() always works on copies.
    """
    return _load_taxonomy_file(path or get_taxonomy_path())


def make_trait_key(area_name: str, group_name: str) -> str:
    """Storage key for custom traits attached to an (area, group) pair."""
    return f"{area_name}{TRAIT_KEY_SEPARATOR}{group_name}"


def split_trait_key(key: str) -> Tuple[str, str]:
    area_name, _, group_name = key.partition(TRAIT_KEY_SEPARATOR)
    return area_name, group_name


# ========================================
# Merge
# ========================================

def _copy_trait(trait: TraitDefinition, is_custom: bool) -> TraitDefinition:
    timing = replace(trait.default_timing) if trait.default_timing else None
    if timing and timing.weeks:
        timing.weeks = list(timing.weeks)
    return replace(
        trait,
        options=list(trait.options) if trait.options else None,
        default_timing=timing,
        is_custom=is_custom,
    )


def _copy_group(group: TraitGroup, is_custom: bool) -> TraitGroup:
    return TraitGroup(
        name=group.name,
        traits=[_copy_trait(t, is_custom) for t in group.traits],
        is_custom=is_custom,
    )


def merge_schema(
    baseline: Iterable[TraitArea],
    overlay: Optional[CustomTraitsStore] = None
) -> List[TraitArea]:
    """
    Combine the baseline taxonomy with a custom-trait overlay.

    Args:
        baseline: Baseline areas in display order.
        overlay: Custom-trait store, or None for the bare baseline.

    Returns:
        New list of areas. Baseline items are tagged is_custom=False and
        injected overlay items is_custom=True. Neither input is modified.
    """
    merged = [
        TraitArea(
            name=area.name,
            groups=[_copy_group(g, is_custom=False) for g in area.groups],
            is_custom=False,
        )
        for area in baseline
    ]

    if overlay is None:
        return merged

    areas_by_name = {}
    for area in merged:
        areas_by_name.setdefault(area.name, area)

    # Custom traits into existing groups
    for key, traits in overlay.custom_traits.items():
        area_name, group_name = split_trait_key(key)
        area = areas_by_name.get(area_name)
        if not area:
            logger.debug("Skipping custom traits for unknown area %r", area_name)
            continue
        group = next((g for g in area.groups if g.name == group_name), None)
        if not group:
            logger.debug("Skipping custom traits for unknown group %r", key)
            continue
        group.traits.extend(_copy_trait(t, is_custom=True) for t in traits)

    # Custom groups into existing areas
    for area_name, groups in overlay.custom_groups.items():
        area = areas_by_name.get(area_name)
        if not area:
            continue
        area.groups.extend(_copy_group(g, is_custom=True) for g in groups)

    # New custom areas at the end
    for custom_area in overlay.custom_areas:
        merged.append(TraitArea(
            name=custom_area.name,
            groups=[_copy_group(g, is_custom=True) for g in custom_area.groups],
            is_custom=True,
        ))

    return merged


# ========================================
# Field Names
# ========================================

def slugify_label(label: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to '_' and trim boundary underscores."""
    slug = re.sub(r'[^a-z0-9]+', '_', (label or '').lower())
    return slug.strip('_')


def generate_field_name(label: str, existing_fields: Set[str]) -> str:
    """
    Generate a unique field identifier for a custom trait label.

    Examples:
        "Bud Count", {}                    -> "custom_bud_count"
        "Bud Count", {"custom_bud_count"}  -> "custom_bud_count_1"
    """
    base = 'custom_' + slugify_label(label)

    field_name = base
    counter = 1
    while field_name in existing_fields:
        field_name = f"{base}_{counter}"
        counter += 1

    return field_name


def get_all_field_names(schema: Iterable[TraitArea]) -> Set[str]:
    """All field identifiers in a schema."""
    return {trait.field for area in schema for group in area.groups for trait in group.traits}


def is_field_name_taken(schema: Iterable[TraitArea], field_name: str) -> bool:
    return find_trait_by_field(schema, field_name) is not None


# ========================================
# Lookup
# ========================================

def find_trait_by_field(schema: Iterable[TraitArea], field_name: str) -> Optional[TraitDefinition]:
    """First trait with this field in area → group → trait order."""
    for area in schema:
        for group in area.groups:
            for trait in group.traits:
                if trait.field == field_name:
                    return trait
    return None


def format_field_label(field_name: str) -> str:
    """Title-case a raw field name: "bud_count" -> "Bud Count"."""
    text = (field_name or '').replace('_', ' ')
    return re.sub(r'\b\w', lambda m: m.group(0).upper(), text)


def get_trait_label(schema: Iterable[TraitArea], field_name: str) -> str:
    """Human label for a field; falls back to a title-cased field name."""
    trait = find_trait_by_field(schema, field_name)
    if trait:
        return trait.label
    return format_field_label(field_name)


def get_all_trait_fields(schema: Iterable[TraitArea]) -> List[Dict[str, Any]]:
    """Flat listing of every trait with its area and group."""
    fields = []
    for area in schema:
        for group in area.groups:
            for trait in group.traits:
                fields.append({
                    'field': trait.field,
                    'label': trait.label,
                    'area': area.name,
                    'group': group.name,
                    'type': trait.type,
                    'is_custom': trait.is_custom,
                    'is_numeric': trait.is_numeric,
                })
    return fields


def schema_to_dict(schema: Iterable[TraitArea]) -> List[Dict[str, Any]]:
    return [area.to_dict() for area in schema]


# ========================================
# Seasonal Filtering
# ========================================

def get_current_season(today: Optional[Union[date, datetime]] = None) -> str:
    """Northern-hemisphere meteorological season for a date."""
    month = (today or date.today()).month
    if month in (3, 4, 5):
        return 'Spring'
    if month in (6, 7, 8):
        return 'Summer'
    if month in (9, 10, 11):
        return 'Fall'
    return 'Winter'


def _observable_in(trait: TraitDefinition, season: str, show_all: bool) -> bool:
    if trait.excluded_from_cycle:
        return False
    if show_all:
        return True
    timing: Optional[DefaultTiming] = trait.default_timing
    return bool(timing and timing.season == season)


def filter_traits_for_season(
    schema: Iterable[TraitArea],
    season: str,
    show_all: bool = False
) -> List[TraitArea]:
    """
    Traits to offer in an observation session.

    Traits flagged exclude_from_automatic_cycle never appear. Unless show_all
    is set, only traits whose default season matches are kept. Groups and
    areas left empty are dropped.
    """
    result = []
    for area in schema:
        groups = []
        for group in area.groups:
            traits = [t for t in group.traits if _observable_in(t, season, show_all)]
            if traits:
                groups.append(TraitGroup(name=group.name, traits=traits, is_custom=group.is_custom))
        if groups:
            result.append(TraitArea(name=area.name, groups=groups, is_custom=area.is_custom))
    return result
