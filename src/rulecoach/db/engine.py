"""Database engine setup and initialization."""

import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

logger = logging.getLogger(__name__)

# Default data directory
DATA_DIR = Path("data")

DB_FILENAME = "rulecoach.db"

APPEND_ONLY_TABLES = ("checkins", "decision_records", "profiles")
IMMUTABLE_TABLES = ("nutrition_plans", "training_plans")


def get_db_path(data_dir: Path | None = None) -> Path:
    """Get the database file path."""
    if data_dir is None:
        data_dir = DATA_DIR
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir / DB_FILENAME


@asynccontextmanager
async def connection(
    db_path: Path, conn: aiosqlite.Connection | None = None
) -> AsyncIterator[aiosqlite.Connection]:
    """Yield `conn` when joining a transaction, otherwise a fresh connection.

    A fresh connection is committed on exit; a joined one is left to the
    transaction that owns it.
    """
    if conn is not None:
        yield conn
        return

    async with aiosqlite.connect(db_path) as db:
        db.row_factory = aiosqlite.Row
        yield db
        await db.commit()


@asynccontextmanager
async def transaction(db_path: Path) -> AsyncIterator[aiosqlite.Connection]:
    """Open a connection and run a write transaction on it.

    BEGIN IMMEDIATE takes SQLite's write lock up front, so a second writer
    waits (or times out) instead of reading state that is about to change.
    """
    async with aiosqlite.connect(db_path, isolation_level=None) as db:
        db.row_factory = aiosqlite.Row
        await db.execute("BEGIN IMMEDIATE")
        try:
            yield db
        except BaseException:
            await db.execute("ROLLBACK")
            raise
        else:
            await db.execute("COMMIT")


async def _create_guards(db: aiosqlite.Connection) -> None:
    """Reject edits to rows that must never change once written."""
    for table in APPEND_ONLY_TABLES:
        await db.execute(f"""
            CREATE TRIGGER IF NOT EXISTS {table}_no_update
            BEFORE UPDATE ON {table}
            BEGIN
                SELECT RAISE(ABORT, '{table} is append-only');
            END
        """)
        await db.execute(f"""
            CREATE TRIGGER IF NOT EXISTS {table}_no_delete
            BEFORE DELETE ON {table}
            BEGIN
                SELECT RAISE(ABORT, '{table} is append-only');
            END
        """)

    for table in IMMUTABLE_TABLES:
        await db.execute(f"""
            CREATE TRIGGER IF NOT EXISTS {table}_no_update
            BEFORE UPDATE ON {table}
            BEGIN
                SELECT RAISE(ABORT, '{table} rows are immutable');
            END
        """)


async def init_db(db_path: Path | None = None) -> None:
    """Initialize the database schema."""
    if db_path is None:
        db_path = get_db_path()

    async with aiosqlite.connect(db_path) as db:
        # Rule pack versions, exactly one active
        await db.execute("""
            CREATE TABLE IF NOT EXISTS rule_packs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                version TEXT UNIQUE NOT NULL,
                description TEXT DEFAULT '',
                document TEXT NOT NULL,
                active INTEGER DEFAULT 0,
                loaded_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # Onboarding submissions, newest supersedes older
        await db.execute("""
            CREATE TABLE IF NOT EXISTS profiles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                age INTEGER NOT NULL,
                sex TEXT NOT NULL,
                height REAL NOT NULL,
                weight REAL NOT NULL,
                activity_level TEXT NOT NULL,
                goal TEXT NOT NULL,
                training TEXT NOT NULL DEFAULT '{}',
                created_at TIMESTAMP NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS checkins (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                week_number INTEGER NOT NULL,
                weight REAL NOT NULL,
                waist REAL,
                energy INTEGER NOT NULL,
                hunger INTEGER NOT NULL,
                sleep INTEGER NOT NULL,
                stress INTEGER NOT NULL,
                adherence TEXT NOT NULL,
                events TEXT DEFAULT '[]',
                notes TEXT DEFAULT '',
                recorded_at TIMESTAMP NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS nutrition_plans (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                version INTEGER NOT NULL,
                calories_target INTEGER NOT NULL,
                calories_min INTEGER NOT NULL,
                calories_max INTEGER NOT NULL,
                macros TEXT NOT NULL,
                tdee INTEGER NOT NULL,
                bmr INTEGER NOT NULL,
                expected_weekly_change REAL NOT NULL,
                valid_from TIMESTAMP NOT NULL,
                valid_until TIMESTAMP,
                rule_pack_version TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (user_id, version)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS training_plans (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                version INTEGER NOT NULL,
                program_id TEXT NOT NULL,
                program_name TEXT NOT NULL,
                week INTEGER NOT NULL,
                weekly_sets INTEGER NOT NULL,
                volume_multiplier REAL NOT NULL,
                intensity_multiplier REAL NOT NULL,
                is_deload INTEGER DEFAULT 0,
                deload_frequency INTEGER NOT NULL,
                progression_scheme TEXT DEFAULT 'linear',
                valid_from TIMESTAMP NOT NULL,
                valid_until TIMESTAMP,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (user_id, version)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS active_plan_pointers (
                user_id TEXT PRIMARY KEY,
                nutrition_version INTEGER NOT NULL,
                training_version INTEGER NOT NULL,
                current_week INTEGER DEFAULT 1,
                last_checkin_at TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS engine_states (
                user_id TEXT PRIMARY KEY,
                nutrition_mode TEXT NOT NULL,
                training_mode TEXT NOT NULL,
                anti_reversal_lock_until TIMESTAMP,
                program_lock_until TIMESTAMP,
                weeks_since_last_deload INTEGER DEFAULT 0,
                weeks_since_last_change INTEGER DEFAULT 0,
                revision INTEGER NOT NULL DEFAULT 0
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS decision_records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                trigger_type TEXT NOT NULL,
                trigger_checkin_id INTEGER,
                record TEXT NOT NULL,
                content_hash TEXT NOT NULL,
                engine_version TEXT NOT NULL,
                rule_pack_version TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL,
                FOREIGN KEY (trigger_checkin_id) REFERENCES checkins(id)
            )
        """)

        # Create indexes for common queries
        await db.execute("""
            CREATE INDEX IF NOT EXISTS idx_profiles_user
            ON profiles(user_id)
        """)
        await db.execute("""
            CREATE INDEX IF NOT EXISTS idx_checkins_user
            ON checkins(user_id, recorded_at)
        """)
        await db.execute("""
            CREATE INDEX IF NOT EXISTS idx_decision_records_user
            ON decision_records(user_id)
        """)

        await _create_guards(db)
        await db.commit()


async def seed_rule_pack(db_path: Path | None = None) -> str:
    """Store the bundled rule pack and activate it if nothing is active yet.

    Returns:
        The version of the bundled rule pack
    """
    from ..data.rule_pack_loader import load_rule_pack

    if db_path is None:
        db_path = get_db_path()

    pack = load_rule_pack()
    async with aiosqlite.connect(db_path) as db:
        await db.execute(
            """
            INSERT OR IGNORE INTO rule_packs (version, description, document)
            VALUES (?, ?, ?)
            """,
            (pack.version, pack.description, json.dumps(pack.to_dict(), sort_keys=True)),
        )
        cursor = await db.execute("SELECT COUNT(*) FROM rule_packs WHERE active = 1")
        (active_count,) = await cursor.fetchone()
        if active_count == 0:
            await db.execute("UPDATE rule_packs SET active = 1 WHERE version = ?", (pack.version,))
            logger.info("Activated bundled rule pack %s", pack.version)
        await db.commit()

    return pack.version
