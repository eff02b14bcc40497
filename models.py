"""
models.py — Python dataclasses for the trait observation tracker.

Schema types (areas → groups → traits), the custom-trait overlay document,
plant observation inputs and the derived aggregation results.
"""

import dataclasses
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


TRAIT_TYPES = ('text', 'number', 'select', 'rating', 'boolean')
NUMERIC_TRAIT_TYPES = ('number', 'rating')
SEASONS = ('Spring', 'Summer', 'Fall', 'Winter')


# ========================================
# Trait Schema
# ========================================

@dataclass
class DefaultTiming:
    """When a trait is normally observed."""
    year: Optional[int] = None
    season: Optional[str] = None
    month: Optional[str] = None
    weeks: Optional[List[str]] = None
    exclude_from_automatic_cycle: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional['DefaultTiming']:
        if not data:
            return None
        weeks = data.get('weeks')
        return cls(
            year=data.get('year'),
            season=data.get('season') or None,
            month=data.get('month') or None,
            weeks=list(weeks) if weeks else None,
            exclude_from_automatic_cycle=bool(data.get('exclude_from_automatic_cycle', False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        if self.year is not None:
            result['year'] = self.year
        if self.season:
            result['season'] = self.season
        if self.month:
            result['month'] = self.month
        if self.weeks:
            result['weeks'] = list(self.weeks)
        if self.exclude_from_automatic_cycle:
            result['exclude_from_automatic_cycle'] = True
        return result


@dataclass
class TraitDefinition:
    """A single observable plant characteristic."""
    field: str = ""
    label: str = ""
    type: str = "text"
    options: Optional[List[str]] = None
    default_timing: Optional[DefaultTiming] = None
    is_custom: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_numeric(self) -> bool:
        return self.type in NUMERIC_TRAIT_TYPES

    @property
    def excluded_from_cycle(self) -> bool:
        return bool(self.default_timing and self.default_timing.exclude_from_automatic_cycle)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TraitDefinition':
        options = data.get('options')
        return cls(
            field=data.get('field', ''),
            label=data.get('label', ''),
            type=data.get('type') or 'text',
            options=list(options) if options else None,
            default_timing=DefaultTiming.from_dict(data.get('default_timing')),
            is_custom=bool(data.get('is_custom', False)),
            created_at=data.get('created_at'),
            updated_at=data.get('updated_at'),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'field': self.field,
            'label': self.label,
            'type': self.type,
            'is_custom': self.is_custom,
        }
        if self.options:
            result['options'] = list(self.options)
        if self.default_timing:
            result['default_timing'] = self.default_timing.to_dict()
        if self.created_at:
            result['created_at'] = self.created_at
        if self.updated_at:
            result['updated_at'] = self.updated_at
        return result


@dataclass
class TraitGroup:
    """Named, ordered collection of traits under an area."""
    name: str = ""
    traits: List[TraitDefinition] = field(default_factory=list)
    is_custom: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TraitGroup':
        return cls(
            name=data.get('name', ''),
            traits=[TraitDefinition.from_dict(t) for t in data.get('traits', [])],
            is_custom=bool(data.get('is_custom', False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'is_custom': self.is_custom,
            'traits': [t.to_dict() for t in self.traits],
        }


@dataclass
class TraitArea:
    """Top-level namespace of trait groups."""
    name: str = ""
    groups: List[TraitGroup] = field(default_factory=list)
    is_custom: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TraitArea':
        return cls(
            name=data.get('name', ''),
            groups=[TraitGroup.from_dict(g) for g in data.get('groups', [])],
            is_custom=bool(data.get('is_custom', False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'is_custom': self.is_custom,
            'groups': [g.to_dict() for g in self.groups],
        }


# ========================================
# Custom Trait Overlay
# ========================================

class LocationKind(Enum):
    """Where a new custom trait is attached."""
    EXISTING_GROUP = 'existing'
    NEW_GROUP = 'new-group'
    NEW_AREA = 'new-area'


@dataclass(frozen=True)
class TraitLocation:
    """Attachment location for a custom trait: (kind, area, group)."""
    kind: LocationKind
    area: str
    group: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TraitLocation':
        return cls(
            kind=LocationKind(data.get('kind', LocationKind.EXISTING_GROUP.value)),
            area=(data.get('area') or '').strip(),
            group=(data.get('group') or '').strip(),
        )


@dataclass(frozen=True)
class CustomTraitsStore:
    """
    User-authored schema extensions layered on the baseline taxonomy.

    Treated as an immutable snapshot: update functions in custom_traits.py
    always build a new store and never touch the nested lists/dicts of an
    existing one.

    custom_traits keys are "Area::Group" pairs.
    """
    version: int = 1
    custom_areas: Tuple[TraitArea, ...] = ()
    custom_groups: Dict[str, List[TraitGroup]] = field(default_factory=dict)
    custom_traits: Dict[str, List[TraitDefinition]] = field(default_factory=dict)


# ========================================
# Observations
# ========================================

@dataclass
class ObservationRecord:
    """One timestamped value of one trait for one plant."""
    field: str = ""
    value: Any = None
    observation_date: str = ""
    notes: Optional[str] = None
    photos: Optional[List[str]] = None
    observer: Optional[str] = None
    conditions: Optional[str] = None
    exclude_from_automatic_cycle: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ObservationCycle:
    """A bundled, dated set of trait observations recorded together."""
    id: Optional[int] = None
    year: Optional[int] = None
    cycle_name: str = ""
    start_date: str = ""
    end_date: Optional[str] = None
    observations: Dict[str, Any] = field(default_factory=dict)
    photos: List[str] = field(default_factory=list)
    notes: str = ""
    completed: bool = False


@dataclass
class PlantRecord:
    """A plant with its three observation sources."""
    id: Optional[int] = None
    name: str = ""
    acquisition_date: Optional[str] = None
    static_values: Dict[str, Any] = field(default_factory=dict)
    observation_cycles: List[ObservationCycle] = field(default_factory=list)
    individual_observations: List[ObservationRecord] = field(default_factory=list)


@dataclass
class AggregatedField:
    """Representative value and provenance for one field of one plant. Never persisted."""
    field: str = ""
    current_value: Any = None
    value_type: str = "latest"
    # "field" is shadowed by the attribute above
    observations: List[ObservationRecord] = dataclasses.field(default_factory=list)
    range: Optional[Dict[str, float]] = None
    value_count: Optional[Dict[str, int]] = None
    has_conflicts: bool = False
    label: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'field': self.field,
            'label': self.label,
            'current_value': self.current_value,
            'value_type': self.value_type,
            'observations': [o.to_dict() for o in self.observations],
            'range': dict(self.range) if self.range else None,
            'value_count': dict(self.value_count) if self.value_count else None,
            'has_conflicts': self.has_conflicts,
        }


@dataclass
class GroupedArea:
    """Aggregated fields of one schema area, in schema order."""
    area: str = ""
    traits: List[AggregatedField] = field(default_factory=list)
    observed_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'area': self.area,
            'observed_count': self.observed_count,
            'traits': [t.to_dict() for t in self.traits],
        }
