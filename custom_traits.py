"""
custom_traits.py — Custom-trait overlay editing.

Every edit is a pure function taking a CustomTraitsStore snapshot and
returning a new one; the previous snapshot is never modified, so a merge or
aggregation still holding it stays valid.

Three attachment mechanisms, chosen explicitly by TraitLocation.kind:
- EXISTING_GROUP: trait appended to a group that already exists
  (baseline group → custom_traits["Area::Group"], custom group → that group)
- NEW_GROUP: a custom group is created in an existing area, trait goes in it
- NEW_AREA: a custom area (with one group) is created, trait goes in it

Field identifiers must be unique across the baseline and the whole overlay.
add_custom_trait() raises DuplicateFieldError instead of writing a clash.

TraitEditor holds the current snapshot and persists each new snapshot
through a save callback before swapping it in.
"""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from models import (
    CustomTraitsStore, DefaultTiming, LocationKind, TraitArea, TraitDefinition,
    TraitGroup, TraitLocation,
)
from trait_schema import (
    generate_field_name, get_all_field_names, make_trait_key, merge_schema,
    split_trait_key,
)

logger = logging.getLogger(__name__)

CURRENT_VERSION = 1

# Fields a caller may change through update_custom_trait()
UPDATABLE_FIELDS = ('label', 'type', 'options', 'default_timing')


class CustomTraitError(ValueError):
    """Base error for rejected overlay edits."""


class DuplicateFieldError(CustomTraitError):
    """The field identifier is already used by another trait."""

    def __init__(self, field_name: str):
        super().__init__(f"Field name already in use: {field_name}")
        self.field_name = field_name


class UnknownLocationError(CustomTraitError):
    """The target area or group of an edit does not exist."""


class TraitValidationError(CustomTraitError):
    """Trait input failed validation."""

    def __init__(self, errors: List[str]):
        super().__init__('; '.join(errors))
        self.errors = errors


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='seconds')


# ========================================
# Serialization
# ========================================

def empty_store() -> CustomTraitsStore:
    return CustomTraitsStore(version=CURRENT_VERSION)


def store_from_dict(data: Optional[Dict[str, Any]]) -> CustomTraitsStore:
    """
    Build a store from its JSON document shape.

    Unknown versions are bumped to CURRENT_VERSION; there is no migration
    beyond that yet.
    """
    if not data:
        return empty_store()

    if data.get('version') != CURRENT_VERSION:
        logger.info("Upgrading custom traits document from version %r", data.get('version'))

    return CustomTraitsStore(
        version=CURRENT_VERSION,
        custom_areas=tuple(
            _as_custom_area(TraitArea.from_dict(a)) for a in data.get('custom_areas', [])
        ),
        custom_groups={
            area_name: [_as_custom_group(TraitGroup.from_dict(g)) for g in groups]
            for area_name, groups in (data.get('custom_groups') or {}).items()
        },
        custom_traits={
            key: [replace(TraitDefinition.from_dict(t), is_custom=True) for t in traits]
            for key, traits in (data.get('custom_traits') or {}).items()
        },
    )


def store_to_dict(store: CustomTraitsStore) -> Dict[str, Any]:
    return {
        'version': store.version,
        'custom_areas': [a.to_dict() for a in store.custom_areas],
        'custom_groups': {
            area_name: [g.to_dict() for g in groups]
            for area_name, groups in store.custom_groups.items()
        },
        'custom_traits': {
            key: [t.to_dict() for t in traits]
            for key, traits in store.custom_traits.items()
        },
    }


def _as_custom_group(group: TraitGroup) -> TraitGroup:
    return TraitGroup(
        name=group.name,
        traits=[replace(t, is_custom=True) for t in group.traits],
        is_custom=True,
    )


def _as_custom_area(area: TraitArea) -> TraitArea:
    return TraitArea(
        name=area.name,
        groups=[_as_custom_group(g) for g in area.groups],
        is_custom=True,
    )


# ========================================
# Lookup Helpers
# ========================================

def store_field_names(store: CustomTraitsStore) -> Set[str]:
    """All field identifiers defined by the overlay."""
    fields = {t.field for traits in store.custom_traits.values() for t in traits}
    fields.update(t.field for groups in store.custom_groups.values() for g in groups for t in g.traits)
    fields.update(t.field for a in store.custom_areas for g in a.groups for t in g.traits)
    return fields


def _find_custom_area(store: CustomTraitsStore, area_name: str) -> Optional[TraitArea]:
    return next((a for a in store.custom_areas if a.name == area_name), None)


def _has_custom_group(store: CustomTraitsStore, area_name: str, group_name: str) -> bool:
    return any(g.name == group_name for g in store.custom_groups.get(area_name, []))


def _area_has_group(area: Optional[TraitArea], group_name: str) -> bool:
    return bool(area) and any(g.name == group_name for g in area.groups)


# ========================================
# Area and Group Updates
# ========================================

def add_custom_area(store: CustomTraitsStore, area_name: str, group_name: str) -> CustomTraitsStore:
    """Add a new custom area with one empty group. No-op if the area exists."""
    if _find_custom_area(store, area_name):
        return store

    new_area = TraitArea(
        name=area_name,
        groups=[TraitGroup(name=group_name, traits=[], is_custom=True)],
        is_custom=True,
    )
    return replace(store, custom_areas=store.custom_areas + (new_area,))


def add_custom_group(store: CustomTraitsStore, area_name: str, group_name: str) -> CustomTraitsStore:
    """
    Add an empty custom group.

    Groups for a custom area live inside that area; groups for a baseline
    area are kept in custom_groups keyed by the area name.
    """
    custom_area = _find_custom_area(store, area_name)
    if custom_area:
        if _area_has_group(custom_area, group_name):
            return store
        return _replace_custom_area(store, area_name, lambda area: TraitArea(
            name=area.name,
            groups=area.groups + [TraitGroup(name=group_name, traits=[], is_custom=True)],
            is_custom=True,
        ))

    if _has_custom_group(store, area_name, group_name):
        return store

    existing_groups = store.custom_groups.get(area_name, [])
    custom_groups = dict(store.custom_groups)
    custom_groups[area_name] = existing_groups + [TraitGroup(name=group_name, traits=[], is_custom=True)]
    return replace(store, custom_groups=custom_groups)


def delete_custom_group(store: CustomTraitsStore, area_name: str, group_name: str) -> CustomTraitsStore:
    """Remove a custom group and every custom trait attached to it."""
    custom_groups = dict(store.custom_groups)
    if area_name in custom_groups:
        remaining = [g for g in custom_groups[area_name] if g.name != group_name]
        if remaining:
            custom_groups[area_name] = remaining
        else:
            del custom_groups[area_name]

    key = make_trait_key(area_name, group_name)
    custom_traits = {k: v for k, v in store.custom_traits.items() if k != key}

    custom_areas = tuple(
        TraitArea(
            name=area.name,
            groups=[g for g in area.groups if g.name != group_name],
            is_custom=True,
        ) if area.name == area_name else area
        for area in store.custom_areas
    )

    return replace(
        store,
        custom_areas=custom_areas,
        custom_groups=custom_groups,
        custom_traits=custom_traits,
    )


def delete_custom_area(store: CustomTraitsStore, area_name: str) -> CustomTraitsStore:
    """Remove a custom area along with any groups/traits keyed under its name."""
    custom_traits = {
        k: v for k, v in store.custom_traits.items()
        if split_trait_key(k)[0] != area_name
    }
    custom_groups = {k: v for k, v in store.custom_groups.items() if k != area_name}
    custom_areas = tuple(a for a in store.custom_areas if a.name != area_name)

    return replace(
        store,
        custom_areas=custom_areas,
        custom_groups=custom_groups,
        custom_traits=custom_traits,
    )


def _replace_custom_area(
    store: CustomTraitsStore,
    area_name: str,
    transform: Callable[[TraitArea], TraitArea]
) -> CustomTraitsStore:
    return replace(store, custom_areas=tuple(
        transform(area) if area.name == area_name else area
        for area in store.custom_areas
    ))


def _map_group_traits(
    group: TraitGroup,
    transform: Callable[[List[TraitDefinition]], List[TraitDefinition]]
) -> TraitGroup:
    return TraitGroup(name=group.name, traits=transform(group.traits), is_custom=group.is_custom)


def _update_custom_group_traits(
    store: CustomTraitsStore,
    area_name: str,
    group_name: str,
    transform: Callable[[List[TraitDefinition]], List[TraitDefinition]]
) -> Optional[CustomTraitsStore]:
    """
    Apply transform to the trait list of a custom group, wherever it lives.

    Returns None when no custom group (area, group) exists.
    """
    custom_area = _find_custom_area(store, area_name)
    if _area_has_group(custom_area, group_name):
        return _replace_custom_area(store, area_name, lambda area: TraitArea(
            name=area.name,
            groups=[
                _map_group_traits(g, transform) if g.name == group_name else g
                for g in area.groups
            ],
            is_custom=True,
        ))

    if _has_custom_group(store, area_name, group_name):
        custom_groups = dict(store.custom_groups)
        custom_groups[area_name] = [
            _map_group_traits(g, transform) if g.name == group_name else g
            for g in store.custom_groups[area_name]
        ]
        return replace(store, custom_groups=custom_groups)

    return None


# ========================================
# Trait Updates
# ========================================

def _stamp_new_trait(trait: TraitDefinition, field_name: str) -> TraitDefinition:
    now = _now()
    return replace(
        trait,
        field=field_name,
        is_custom=True,
        options=list(trait.options) if trait.options else None,
        created_at=now,
        updated_at=now,
    )


def _find_baseline_group(baseline: Iterable[TraitArea], area_name: str, group_name: str) -> Optional[TraitGroup]:
    for area in baseline:
        if area.name == area_name:
            return next((g for g in area.groups if g.name == group_name), None)
    return None


def add_custom_trait(
    store: CustomTraitsStore,
    location: TraitLocation,
    trait: TraitDefinition,
    baseline: Iterable[TraitArea] = (),
) -> CustomTraitsStore:
    """
    Attach a new custom trait at location.

    Args:
        store: Current overlay snapshot.
        location: Where the trait goes; location.kind picks the mechanism.
        trait: The trait to add. An empty field is generated from the label.
        baseline: Baseline areas. Their fields count as taken and their
            (area, group) pairs are valid EXISTING_GROUP targets.

    Returns:
        New store containing the trait.

    Raises:
        TraitValidationError: the trait has no label.
        DuplicateFieldError: field already used by the baseline or overlay.
        UnknownLocationError: target area/group missing, or a NEW_* target
            would shadow a baseline area/group.
    """
    if not (trait.label or '').strip():
        raise TraitValidationError(["Trait label is required."])

    baseline = tuple(baseline)
    baseline_areas = {area.name for area in baseline}
    taken = get_all_field_names(baseline) | store_field_names(store)

    field_name = trait.field.strip() if trait.field else ''
    if not field_name:
        field_name = generate_field_name(trait.label, taken)
    elif field_name in taken:
        raise DuplicateFieldError(field_name)

    if not location.area or not location.group:
        raise UnknownLocationError("Area and group names are required.")

    new_trait = _stamp_new_trait(trait, field_name)

    def append(traits: List[TraitDefinition]) -> List[TraitDefinition]:
        return traits + [new_trait]

    if location.kind is LocationKind.NEW_AREA:
        if location.area in baseline_areas:
            raise UnknownLocationError(f"Area already exists: {location.area}")
        updated = add_custom_area(store, location.area, location.group)
        updated = add_custom_group(updated, location.area, location.group)
        return _update_custom_group_traits(updated, location.area, location.group, append)

    if location.kind is LocationKind.NEW_GROUP:
        if location.area not in baseline_areas and not _find_custom_area(store, location.area):
            raise UnknownLocationError(f"Unknown area: {location.area}")
        if _find_baseline_group(baseline, location.area, location.group):
            raise UnknownLocationError(f"Group already exists: {location.group}")
        updated = add_custom_group(store, location.area, location.group)
        return _update_custom_group_traits(updated, location.area, location.group, append)

    # EXISTING_GROUP: a custom group, or a baseline (area, group) pair
    updated = _update_custom_group_traits(store, location.area, location.group, append)
    if updated is not None:
        return updated

    if not _find_baseline_group(baseline, location.area, location.group):
        raise UnknownLocationError(f"Unknown group: {make_trait_key(location.area, location.group)}")

    key = make_trait_key(location.area, location.group)
    custom_traits = dict(store.custom_traits)
    custom_traits[key] = custom_traits.get(key, []) + [new_trait]
    return replace(store, custom_traits=custom_traits)


def update_custom_trait(
    store: CustomTraitsStore,
    area_name: str,
    group_name: str,
    field_name: str,
    updates: Dict[str, Any]
) -> CustomTraitsStore:
    """
    Update label/type/options/timing of a custom trait and refresh updated_at.

    field, is_custom and created_at are never changed.
    """
    now = _now()
    changes = {k: v for k, v in updates.items() if k in UPDATABLE_FIELDS}
    if 'default_timing' in changes and isinstance(changes['default_timing'], dict):
        changes['default_timing'] = DefaultTiming.from_dict(changes['default_timing'])
    if changes.get('options') is not None:
        changes['options'] = list(changes['options'])

    def apply(traits: List[TraitDefinition]) -> List[TraitDefinition]:
        return [
            replace(t, updated_at=now, **changes) if t.field == field_name else t
            for t in traits
        ]

    key = make_trait_key(area_name, group_name)
    if key in store.custom_traits:
        custom_traits = dict(store.custom_traits)
        custom_traits[key] = apply(store.custom_traits[key])
        return replace(store, custom_traits=custom_traits)

    updated = _update_custom_group_traits(store, area_name, group_name, apply)
    if updated is None:
        raise UnknownLocationError(f"Unknown custom trait location: {key}")
    return updated


def delete_custom_trait(
    store: CustomTraitsStore,
    area_name: str,
    group_name: str,
    field_name: str
) -> CustomTraitsStore:
    """Remove a custom trait. Empty custom_traits entries are dropped."""
    def remove(traits: List[TraitDefinition]) -> List[TraitDefinition]:
        return [t for t in traits if t.field != field_name]

    key = make_trait_key(area_name, group_name)
    if key in store.custom_traits:
        custom_traits = dict(store.custom_traits)
        remaining = remove(store.custom_traits[key])
        if remaining:
            custom_traits[key] = remaining
        else:
            del custom_traits[key]
        return replace(store, custom_traits=custom_traits)

    updated = _update_custom_group_traits(store, area_name, group_name, remove)
    return updated if updated is not None else store


# ========================================
# Editor
# ========================================

SaveCallback = Callable[[CustomTraitsStore], Tuple[bool, Optional[str]]]


class TraitEditor:
    """
    Owns the current overlay snapshot for one local user.

    apply() computes the next snapshot with a pure update function, persists
    it through save_callback and only then replaces the current snapshot. A
    rejected edit or failed save leaves the current snapshot untouched.
    """

    def __init__(
        self,
        baseline: Iterable[TraitArea],
        store: Optional[CustomTraitsStore] = None,
        save_callback: Optional[SaveCallback] = None
    ):
        self.baseline = tuple(baseline)
        self.store = store or empty_store()
        self._save_callback = save_callback
        self._schema_cache = None

    def merged_schema(self) -> List[TraitArea]:
        """Merged schema, memoised on the identity of the current snapshot."""
        if self._schema_cache is None or self._schema_cache[0] is not self.store:
            self._schema_cache = (self.store, merge_schema(self.baseline, self.store))
        return self._schema_cache[1]

    def taken_fields(self) -> Set[str]:
        return get_all_field_names(self.baseline) | store_field_names(self.store)

    def apply(self, update: Callable[..., CustomTraitsStore], *args, **kwargs) -> Tuple[bool, Optional[str]]:
        """
        Run update(store, *args, **kwargs) and persist the result.

        Returns:
            Tuple of (success, error_message)
        """
        try:
            new_store = update(self.store, *args, **kwargs)
        except CustomTraitError as e:
            return False, str(e)

        if new_store is self.store:
            return True, None

        if self._save_callback:
            saved, error = self._save_callback(new_store)
            if not saved:
                logger.warning("Custom traits not saved, keeping previous snapshot: %s", error)
                return False, error or "Could not save custom traits."

        self.store = new_store
        logger.info("Custom traits updated via %s", getattr(update, '__name__', 'update'))
        return True, None

    def add_trait(self, location: TraitLocation, trait: TraitDefinition) -> Tuple[Optional[str], Optional[str]]:
        """
        Add a custom trait, generating its field from the label when empty.

        Returns:
            Tuple of (field, error_message)
        """
        if not (trait.field or '').strip():
            trait = replace(trait, field=self.suggest_field_name(trait.label))
        success, error = self.apply(add_custom_trait, location, trait, baseline=self.baseline)
        if not success:
            return None, error
        return trait.field.strip(), None

    def suggest_field_name(self, label: str) -> str:
        return generate_field_name(label, self.taken_fields())
