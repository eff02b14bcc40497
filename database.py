"""
database.py — SQLite schema, seed data and persistence helpers.

Tables:
- settings: key-value store; the custom-trait overlay document lives under
  the 'custom_traits' key and is rewritten wholesale on every edit
- plants: plant registration data (static trait values as JSON)
- observation_cycles: dated bundles of trait values per plant
- trait_observations: individual spot observations per plant

Trait values are untyped at rest and stored JSON-encoded.
Uses WAL mode for concurrent read performance.
"""

import json
import logging
import os
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

from models import ObservationCycle, ObservationRecord, PlantRecord, CustomTraitsStore
from custom_traits import store_from_dict, store_to_dict

logger = logging.getLogger(__name__)

CUSTOM_TRAITS_KEY = 'custom_traits'


def get_db_path() -> str:
    """Get the database path from environment or default."""
    default_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'data', 'trait_tracker.db')
    return os.environ.get('TRAIT_DB_PATH', default_path)


def get_db() -> sqlite3.Connection:
    """Get a database connection with WAL mode and foreign keys enabled."""
    db_path = get_db_path()
    os.makedirs(os.path.dirname(db_path), exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


def init_db():
    """Create all tables and indexes if they don't exist."""
    conn = get_db()
    cursor = conn.cursor()

    # Table: settings
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
    """)

    # Table: plants
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS plants (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            acquisition_date TEXT,
            static_values TEXT NOT NULL DEFAULT '{}',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    # Table: observation_cycles
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS observation_cycles (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            plant_id INTEGER NOT NULL REFERENCES plants(id) ON DELETE CASCADE,
            year INTEGER,
            cycle_name TEXT NOT NULL,
            start_date TEXT NOT NULL,
            end_date TEXT,
            observations TEXT NOT NULL DEFAULT '{}',
            notes TEXT DEFAULT '',
            completed BOOLEAN DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    # Table: trait_observations
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS trait_observations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            plant_id INTEGER NOT NULL REFERENCES plants(id) ON DELETE CASCADE,
            field TEXT NOT NULL,
            value TEXT,
            observation_date TEXT NOT NULL,
            notes TEXT,
            observer TEXT,
            conditions TEXT,
            exclude_from_automatic_cycle BOOLEAN DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_trait_observations_plant
        ON trait_observations(plant_id, field)
    """)
    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_observation_cycles_plant
        ON observation_cycles(plant_id)
    """)

    conn.commit()
    conn.close()


def seed_defaults():
    """Populate a sample plant if the plants table is empty. Idempotent."""
    conn = get_db()
    cursor = conn.cursor()

    existing = cursor.execute("SELECT COUNT(*) FROM plants").fetchone()[0]
    if existing == 0:
        static_values = {
            'type': 'Registered Variety',
            'variety_name': 'Energy Gain of One',
            'ploidy': 'Diploid',
            'hybridizer_name': 'Rice-JA',
            'year_introduced': 2023,
            'foliage_type': 'Dormant',
            'foliage_height': 28,
            'scape_height': 40,
            'branch_count': 3,
            'bud_count_per_scape': 18,
            'fragrance': None,
        }
        cursor.execute(
            "INSERT INTO plants (name, acquisition_date, static_values) VALUES (?, ?, ?)",
            ('Energy Gain of One', '2024-03-15', json.dumps(static_values))
        )
        plant_id = cursor.lastrowid

        cursor.execute(
            """INSERT INTO observation_cycles
               (plant_id, year, cycle_name, start_date, end_date, observations, notes, completed)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (plant_id, 2024, 'Summer Bloom', '2024-07-01', '2024-07-31',
             json.dumps({'scape_height': 38, 'bud_count_per_scape': 16, 'bloom_season': 'Early-Midseason'}),
             'First bloom season in garden', 1)
        )

        observations = [
            ('scape_height', 41, '2024-07-12', 'Measured after rain', None),
            ('bud_count_per_scape', 19, '2024-07-15', None, None),
            ('substance', 'Good', '2024-07-15', None, 'Hot afternoon'),
        ]
        cursor.executemany(
            """INSERT INTO trait_observations
               (plant_id, field, value, observation_date, notes, conditions)
               VALUES (?, ?, ?, ?, ?, ?)""",
            [(plant_id, f, json.dumps(v), d, n, c) for f, v, d, n, c in observations]
        )

    conn.commit()
    conn.close()


# ========================================
# Settings (key-value)
# ========================================

def get_setting(key, default=None):
    """Get a setting value by key."""
    conn = get_db()
    row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
    conn.close()
    if row:
        return row['value']
    return default


def update_setting(key, value):
    """Insert or replace a setting. Returns True on success, False on failure."""
    conn = None
    try:
        conn = get_db()
        conn.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value)
        )
        conn.commit()
        return True
    except sqlite3.Error:
        logger.exception("Could not write setting %r", key)
        return False
    finally:
        if conn is not None:
            conn.close()


def load_custom_traits() -> CustomTraitsStore:
    """
    Load the custom-trait overlay document.

    A missing or unreadable document yields an empty store.
    """
    raw = get_setting(CUSTOM_TRAITS_KEY)
    if not raw:
        return store_from_dict(None)
    try:
        return store_from_dict(json.loads(raw))
    except (ValueError, TypeError, AttributeError):
        logger.exception("Stored custom traits are unreadable; starting empty")
        return store_from_dict(None)


def save_custom_traits(store: CustomTraitsStore) -> Tuple[bool, Optional[str]]:
    """
    Rewrite the whole custom-trait overlay document.

    Returns:
        Tuple of (success, error_message)
    """
    document = json.dumps(store_to_dict(store), ensure_ascii=False)
    if update_setting(CUSTOM_TRAITS_KEY, document):
        return True, None
    return False, "Could not save custom traits."


# ========================================
# Plants
# ========================================

def _loads(raw: Optional[str], default: Any = None) -> Any:
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        # Legacy rows may hold plain text
        return raw


def _row_to_observation(row: sqlite3.Row) -> ObservationRecord:
    return ObservationRecord(
        field=row['field'],
        value=_loads(row['value']),
        observation_date=row['observation_date'],
        notes=row['notes'],
        observer=row['observer'],
        conditions=row['conditions'],
        exclude_from_automatic_cycle=bool(row['exclude_from_automatic_cycle']),
    )


def _row_to_cycle(row: sqlite3.Row) -> ObservationCycle:
    return ObservationCycle(
        id=row['id'],
        year=row['year'],
        cycle_name=row['cycle_name'],
        start_date=row['start_date'],
        end_date=row['end_date'],
        observations=_loads(row['observations'], {}) or {},
        notes=row['notes'] or '',
        completed=bool(row['completed']),
    )


def get_plants() -> List[Dict[str, Any]]:
    """List plants with observation counts."""
    conn = get_db()
    try:
        rows = conn.execute("""
            SELECT p.id, p.name, p.acquisition_date,
                   (SELECT COUNT(*) FROM trait_observations o WHERE o.plant_id = p.id) AS observation_count,
                   (SELECT COUNT(*) FROM observation_cycles c WHERE c.plant_id = p.id) AS cycle_count
            FROM plants p
            ORDER BY p.name, p.id
        """).fetchall()
        return [dict(row) for row in rows]
    finally:
        conn.close()


def get_plant_record(plant_id: int) -> Optional[PlantRecord]:
    """
    Load a plant with all observation sources.

    Cycles and observations are returned in insertion order so collection
    is deterministic.
    """
    conn = get_db()
    try:
        plant = conn.execute("SELECT * FROM plants WHERE id = ?", (plant_id,)).fetchone()
        if not plant:
            return None

        cycles = conn.execute(
            "SELECT * FROM observation_cycles WHERE plant_id = ? ORDER BY id",
            (plant_id,)
        ).fetchall()
        observations = conn.execute(
            "SELECT * FROM trait_observations WHERE plant_id = ? ORDER BY id",
            (plant_id,)
        ).fetchall()

        return PlantRecord(
            id=plant['id'],
            name=plant['name'],
            acquisition_date=plant['acquisition_date'],
            static_values=_loads(plant['static_values'], {}) or {},
            observation_cycles=[_row_to_cycle(r) for r in cycles],
            individual_observations=[_row_to_observation(r) for r in observations],
        )
    finally:
        conn.close()


def create_plant(
    name: str,
    acquisition_date: Optional[str] = None,
    static_values: Optional[Dict[str, Any]] = None
) -> Tuple[Optional[int], Optional[str]]:
    """
    Create a plant.

    Returns:
        Tuple of (plant_id, error_message)
    """
    if not name or not name.strip():
        return None, "Plant name is required."

    conn = get_db()
    try:
        cursor = conn.execute(
            "INSERT INTO plants (name, acquisition_date, static_values) VALUES (?, ?, ?)",
            (name.strip(), acquisition_date or None, json.dumps(static_values or {}))
        )
        conn.commit()
        return cursor.lastrowid, None
    except (sqlite3.Error, TypeError, ValueError) as e:
        conn.rollback()
        logger.exception("Could not create plant %r", name)
        return None, f"Error: {e}"
    finally:
        conn.close()


def delete_plant(plant_id: int) -> Tuple[bool, Optional[str]]:
    """
    Delete a plant and (via cascade) its cycles and observations.

    Returns:
        Tuple of (success, error_message)
    """
    conn = get_db()
    try:
        existing = conn.execute("SELECT id FROM plants WHERE id = ?", (plant_id,)).fetchone()
        if not existing:
            return False, "Plant not found."
        conn.execute("DELETE FROM plants WHERE id = ?", (plant_id,))
        conn.commit()
        return True, None
    except sqlite3.Error as e:
        conn.rollback()
        logger.exception("Could not delete plant %s", plant_id)
        return False, f"Error: {e}"
    finally:
        conn.close()


def add_trait_observation(plant_id: int, record: ObservationRecord) -> Tuple[Optional[int], Optional[str]]:
    """
    Store an individual spot observation.

    Returns:
        Tuple of (observation_id, error_message)
    """
    if not record.field:
        return None, "Trait field is required."
    if not record.observation_date:
        return None, "Observation date is required."

    conn = get_db()
    try:
        if not conn.execute("SELECT id FROM plants WHERE id = ?", (plant_id,)).fetchone():
            return None, "Plant not found."
        cursor = conn.execute(
            """INSERT INTO trait_observations
               (plant_id, field, value, observation_date, notes, observer, conditions,
                exclude_from_automatic_cycle)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (plant_id, record.field, json.dumps(record.value), record.observation_date,
             record.notes, record.observer, record.conditions,
             1 if record.exclude_from_automatic_cycle else 0)
        )
        conn.commit()
        return cursor.lastrowid, None
    except (sqlite3.Error, TypeError, ValueError) as e:
        conn.rollback()
        logger.exception("Could not store observation for plant %s", plant_id)
        return None, f"Error: {e}"
    finally:
        conn.close()


def add_observation_cycle(plant_id: int, cycle: ObservationCycle) -> Tuple[Optional[int], Optional[str]]:
    """
    Store an observation cycle.

    Returns:
        Tuple of (cycle_id, error_message)
    """
    if not cycle.cycle_name or not cycle.start_date:
        return None, "Cycle name and start date are required."

    conn = get_db()
    try:
        if not conn.execute("SELECT id FROM plants WHERE id = ?", (plant_id,)).fetchone():
            return None, "Plant not found."
        cursor = conn.execute(
            """INSERT INTO observation_cycles
               (plant_id, year, cycle_name, start_date, end_date, observations, notes, completed)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (plant_id, cycle.year, cycle.cycle_name, cycle.start_date, cycle.end_date,
             json.dumps(cycle.observations), cycle.notes, 1 if cycle.completed else 0)
        )
        conn.commit()
        return cursor.lastrowid, None
    except (sqlite3.Error, TypeError, ValueError) as e:
        conn.rollback()
        logger.exception("Could not store observation cycle for plant %s", plant_id)
        return None, f"Error: {e}"
    finally:
        conn.close()
