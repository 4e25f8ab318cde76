"""Data access layer for rulecoach.

Every method takes an optional `conn` so it can join a transaction opened
with `engine.transaction()`. Without one it opens and commits its own
connection.

Check-ins, profiles and decision records are append-only: their
repositories have no update or delete methods, and the schema rejects such
statements with triggers.
"""

import json
from datetime import datetime
from pathlib import Path

import aiosqlite

from ..errors import ConcurrentUpdateError, ConfigurationError
from ..models.checkin import CheckIn
from ..models.decision import DecisionRecord
from ..models.engine_state import EngineState
from ..models.plan import (
    ActivePlanPointer,
    MacroBreakdown,
    NutritionPlanVersion,
    TrainingPlanVersion,
)
from ..models.profile import AnthropometricProfile
from ..models.rule_pack import RulePack
from .engine import connection, get_db_path, transaction


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class RulePackRepository:
    """Repository for stored rule pack versions."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or get_db_path()

    async def save(self, pack: RulePack, conn: aiosqlite.Connection | None = None) -> bool:
        """Store a rule pack version.

        Returns:
            True if stored, False if the same version and content already exist

        Raises:
            ConfigurationError: if the version exists with different content
        """
        document = json.dumps(pack.to_dict(), sort_keys=True)
        async with connection(self.db_path, conn) as db:
            cursor = await db.execute(
                "SELECT document FROM rule_packs WHERE version = ?", (pack.version,)
            )
            row = await cursor.fetchone()
            if row is not None:
                if json.loads(row["document"]) != json.loads(document):
                    raise ConfigurationError(
                        f"Rule pack version {pack.version} already exists with different content"
                    )
                return False

            await db.execute(
                "INSERT INTO rule_packs (version, description, document) VALUES (?, ?, ?)",
                (pack.version, pack.description, document),
            )
            return True

    async def get(
        self, version: str, conn: aiosqlite.Connection | None = None
    ) -> RulePack | None:
        async with connection(self.db_path, conn) as db:
            cursor = await db.execute(
                "SELECT document FROM rule_packs WHERE version = ?", (version,)
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            return RulePack.from_dict(json.loads(row["document"]))

    async def get_active(self, conn: aiosqlite.Connection | None = None) -> RulePack | None:
        """Get the rule pack currently marked active."""
        async with connection(self.db_path, conn) as db:
            cursor = await db.execute("SELECT document FROM rule_packs WHERE active = 1")
            row = await cursor.fetchone()
            if row is None:
                return None
            return RulePack.from_dict(json.loads(row["document"]))

    async def list_all(self) -> list[dict]:
        """List stored versions with their active flag."""
        async with connection(self.db_path) as db:
            cursor = await db.execute(
                "SELECT version, description, active, loaded_at FROM rule_packs ORDER BY id"
            )
            rows = await cursor.fetchall()
            return [
                {
                    "version": row["version"],
                    "description": row["description"],
                    "active": bool(row["active"]),
                    "loaded_at": row["loaded_at"],
                }
                for row in rows
            ]

    async def activate(self, version: str) -> None:
        """Make `version` the only active rule pack."""
        async with transaction(self.db_path) as db:
            cursor = await db.execute("SELECT id FROM rule_packs WHERE version = ?", (version,))
            if await cursor.fetchone() is None:
                raise ConfigurationError(f"Rule pack version {version} is not stored")
            await db.execute("UPDATE rule_packs SET active = 0 WHERE active = 1")
            await db.execute("UPDATE rule_packs SET active = 1 WHERE version = ?", (version,))


class ProfileRepository:
    """Repository for onboarding profiles."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or get_db_path()

    async def create(
        self, profile: AnthropometricProfile, conn: aiosqlite.Connection | None = None
    ) -> int:
        """Append a profile submission."""
        data = profile.to_dict()
        async with connection(self.db_path, conn) as db:
            cursor = await db.execute(
                """
                INSERT INTO profiles
                (user_id, age, sex, height, weight, activity_level, goal, training, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    data["user_id"],
                    data["age"],
                    data["sex"],
                    data["height"],
                    data["weight"],
                    data["activity_level"],
                    data["goal"],
                    json.dumps(data["training"]),
                    _ts(profile.created_at or datetime.now()),
                ),
            )
            return cursor.lastrowid

    async def get_latest(
        self, user_id: str, conn: aiosqlite.Connection | None = None
    ) -> AnthropometricProfile | None:
        """Get the submission that supersedes all earlier ones."""
        async with connection(self.db_path, conn) as db:
            cursor = await db.execute(
                "SELECT * FROM profiles WHERE user_id = ? ORDER BY id DESC LIMIT 1",
                (user_id,),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            return self._row_to_profile(row)

    async def list_for_user(self, user_id: str) -> list[AnthropometricProfile]:
        async with connection(self.db_path) as db:
            cursor = await db.execute(
                "SELECT * FROM profiles WHERE user_id = ? ORDER BY id", (user_id,)
            )
            rows = await cursor.fetchall()
            return [self._row_to_profile(row) for row in rows]

    async def list_users(self) -> list[str]:
        async with connection(self.db_path) as db:
            cursor = await db.execute("SELECT DISTINCT user_id FROM profiles ORDER BY user_id")
            rows = await cursor.fetchall()
            return [row["user_id"] for row in rows]

    def _row_to_profile(self, row: aiosqlite.Row) -> AnthropometricProfile:
        """Convert a database row to a profile."""
        data = {
            "user_id": row["user_id"],
            "age": row["age"],
            "sex": row["sex"],
            "height": row["height"],
            "weight": row["weight"],
            "activity_level": row["activity_level"],
            "goal": row["goal"],
            "training": json.loads(row["training"]),
        }
        return AnthropometricProfile.from_dict(
            data, id=row["id"], created_at=_parse_ts(row["created_at"])
        )


class CheckInRepository:
    """Repository for weekly check-ins (append-only)."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or get_db_path()

    async def create(self, checkin: CheckIn, conn: aiosqlite.Connection | None = None) -> int:
        data = checkin.to_dict()
        async with connection(self.db_path, conn) as db:
            cursor = await db.execute(
                """
                INSERT INTO checkins
                (user_id, week_number, weight, waist, energy, hunger, sleep, stress,
                 adherence, events, notes, recorded_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    data["user_id"],
                    data["week_number"],
                    data["weight"],
                    data["waist"],
                    data["energy"],
                    data["hunger"],
                    data["sleep"],
                    data["stress"],
                    data["adherence"],
                    json.dumps(data["events"]),
                    data["notes"],
                    data["recorded_at"],
                ),
            )
            return cursor.lastrowid

    async def get(
        self, checkin_id: int, conn: aiosqlite.Connection | None = None
    ) -> CheckIn | None:
        async with connection(self.db_path, conn) as db:
            cursor = await db.execute("SELECT * FROM checkins WHERE id = ?", (checkin_id,))
            row = await cursor.fetchone()
            if row is None:
                return None
            return self._row_to_checkin(row)

    async def list_recent(
        self,
        user_id: str,
        limit: int | None = None,
        conn: aiosqlite.Connection | None = None,
    ) -> list[CheckIn]:
        """List a user's most recent check-ins, oldest first."""
        query = "SELECT * FROM checkins WHERE user_id = ? ORDER BY recorded_at DESC, id DESC"
        params: tuple = (user_id,)
        if limit is not None:
            query += " LIMIT ?"
            params = (user_id, limit)

        async with connection(self.db_path, conn) as db:
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
            return [self._row_to_checkin(row) for row in reversed(rows)]

    async def count_for_user(self, user_id: str, conn: aiosqlite.Connection | None = None) -> int:
        async with connection(self.db_path, conn) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM checkins WHERE user_id = ?", (user_id,))
            (count,) = await cursor.fetchone()
            return count

    def _row_to_checkin(self, row: aiosqlite.Row) -> CheckIn:
        data = {
            "user_id": row["user_id"],
            "week_number": row["week_number"],
            "weight": row["weight"],
            "waist": row["waist"],
            "energy": row["energy"],
            "hunger": row["hunger"],
            "sleep": row["sleep"],
            "stress": row["stress"],
            "adherence": row["adherence"],
            "events": json.loads(row["events"]),
            "notes": row["notes"],
            "recorded_at": row["recorded_at"],
        }
        return CheckIn.from_dict(data, id=row["id"])


class PlanRepository:
    """Repository for plan versions and the active plan pointer."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or get_db_path()

    async def create_nutrition(
        self, plan: NutritionPlanVersion, conn: aiosqlite.Connection | None = None
    ) -> int:
        data = plan.to_dict()
        async with connection(self.db_path, conn) as db:
            cursor = await db.execute(
                """
                INSERT INTO nutrition_plans
                (user_id, version, calories_target, calories_min, calories_max, macros,
                 tdee, bmr, expected_weekly_change, valid_from, valid_until, rule_pack_version)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    data["user_id"],
                    data["version"],
                    data["calories_target"],
                    data["calories_min"],
                    data["calories_max"],
                    json.dumps(plan.macros.to_dict()),
                    data["tdee"],
                    data["bmr"],
                    data["expected_weekly_change"],
                    data["valid_from"],
                    data["valid_until"],
                    data["rule_pack_version"],
                ),
            )
            return cursor.lastrowid

    async def create_training(
        self, plan: TrainingPlanVersion, conn: aiosqlite.Connection | None = None
    ) -> int:
        data = plan.to_dict()
        async with connection(self.db_path, conn) as db:
            cursor = await db.execute(
                """
                INSERT INTO training_plans
                (user_id, version, program_id, program_name, week, weekly_sets,
                 volume_multiplier, intensity_multiplier, is_deload, deload_frequency,
                 progression_scheme, valid_from, valid_until)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    data["user_id"],
                    data["version"],
                    data["program_id"],
                    data["program_name"],
                    data["week"],
                    data["weekly_sets"],
                    data["volume_multiplier"],
                    data["intensity_multiplier"],
                    int(data["is_deload"]),
                    data["deload_frequency"],
                    data["progression_scheme"],
                    data["valid_from"],
                    data["valid_until"],
                ),
            )
            return cursor.lastrowid

    async def get_nutrition(
        self, user_id: str, version: int, conn: aiosqlite.Connection | None = None
    ) -> NutritionPlanVersion | None:
        async with connection(self.db_path, conn) as db:
            cursor = await db.execute(
                "SELECT * FROM nutrition_plans WHERE user_id = ? AND version = ?",
                (user_id, version),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            return self._row_to_nutrition(row)

    async def get_training(
        self, user_id: str, version: int, conn: aiosqlite.Connection | None = None
    ) -> TrainingPlanVersion | None:
        async with connection(self.db_path, conn) as db:
            cursor = await db.execute(
                "SELECT * FROM training_plans WHERE user_id = ? AND version = ?",
                (user_id, version),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            return self._row_to_training(row)

    async def list_nutrition(self, user_id: str) -> list[NutritionPlanVersion]:
        async with connection(self.db_path) as db:
            cursor = await db.execute(
                "SELECT * FROM nutrition_plans WHERE user_id = ? ORDER BY version", (user_id,)
            )
            rows = await cursor.fetchall()
            return [self._row_to_nutrition(row) for row in rows]

    async def list_training(self, user_id: str) -> list[TrainingPlanVersion]:
        async with connection(self.db_path) as db:
            cursor = await db.execute(
                "SELECT * FROM training_plans WHERE user_id = ? ORDER BY version", (user_id,)
            )
            rows = await cursor.fetchall()
            return [self._row_to_training(row) for row in rows]

    async def latest_versions(
        self, user_id: str, conn: aiosqlite.Connection | None = None
    ) -> tuple[int, int]:
        """Highest stored (nutrition, training) versions, 0 when none exist."""
        async with connection(self.db_path, conn) as db:
            cursor = await db.execute(
                "SELECT COALESCE(MAX(version), 0) FROM nutrition_plans WHERE user_id = ?",
                (user_id,),
            )
            (nutrition,) = await cursor.fetchone()
            cursor = await db.execute(
                "SELECT COALESCE(MAX(version), 0) FROM training_plans WHERE user_id = ?",
                (user_id,),
            )
            (training,) = await cursor.fetchone()
            return nutrition, training

    async def get_pointer(
        self, user_id: str, conn: aiosqlite.Connection | None = None
    ) -> ActivePlanPointer | None:
        async with connection(self.db_path, conn) as db:
            cursor = await db.execute(
                "SELECT * FROM active_plan_pointers WHERE user_id = ?", (user_id,)
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            return ActivePlanPointer(
                user_id=row["user_id"],
                nutrition_version=row["nutrition_version"],
                training_version=row["training_version"],
                current_week=row["current_week"],
                last_checkin_at=_parse_ts(row["last_checkin_at"]),
            )

    async def set_pointer(
        self, pointer: ActivePlanPointer, conn: aiosqlite.Connection | None = None
    ) -> None:
        """Point the user at plan versions. Must share a transaction with their creation."""
        async with connection(self.db_path, conn) as db:
            await db.execute(
                """
                INSERT INTO active_plan_pointers
                (user_id, nutrition_version, training_version, current_week, last_checkin_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    nutrition_version = excluded.nutrition_version,
                    training_version = excluded.training_version,
                    current_week = excluded.current_week,
                    last_checkin_at = excluded.last_checkin_at,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    pointer.user_id,
                    pointer.nutrition_version,
                    pointer.training_version,
                    pointer.current_week,
                    _ts(pointer.last_checkin_at),
                ),
            )

    def _row_to_nutrition(self, row: aiosqlite.Row) -> NutritionPlanVersion:
        return NutritionPlanVersion(
            id=row["id"],
            user_id=row["user_id"],
            version=row["version"],
            calories_target=row["calories_target"],
            calories_min=row["calories_min"],
            calories_max=row["calories_max"],
            macros=MacroBreakdown.from_dict(json.loads(row["macros"])),
            tdee=row["tdee"],
            bmr=row["bmr"],
            expected_weekly_change=row["expected_weekly_change"],
            valid_from=datetime.fromisoformat(row["valid_from"]),
            valid_until=_parse_ts(row["valid_until"]),
            rule_pack_version=row["rule_pack_version"],
        )

    def _row_to_training(self, row: aiosqlite.Row) -> TrainingPlanVersion:
        return TrainingPlanVersion(
            id=row["id"],
            user_id=row["user_id"],
            version=row["version"],
            program_id=row["program_id"],
            program_name=row["program_name"],
            week=row["week"],
            weekly_sets=row["weekly_sets"],
            volume_multiplier=row["volume_multiplier"],
            intensity_multiplier=row["intensity_multiplier"],
            is_deload=bool(row["is_deload"]),
            deload_frequency=row["deload_frequency"],
            progression_scheme=row["progression_scheme"],
            valid_from=datetime.fromisoformat(row["valid_from"]),
            valid_until=_parse_ts(row["valid_until"]),
        )


class EngineStateRepository:
    """Repository for the live per-user engine state."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or get_db_path()

    async def get(
        self, user_id: str, conn: aiosqlite.Connection | None = None
    ) -> EngineState | None:
        async with connection(self.db_path, conn) as db:
            cursor = await db.execute("SELECT * FROM engine_states WHERE user_id = ?", (user_id,))
            row = await cursor.fetchone()
            if row is None:
                return None
            return EngineState.from_dict(dict(row))

    async def save(
        self,
        state: EngineState,
        expected_revision: int | None,
        conn: aiosqlite.Connection | None = None,
    ) -> None:
        """Write `state` if the stored revision still equals `expected_revision`.

        Pass None as the expected revision for a user with no state yet, or
        to replace the state on re-onboarding regardless of revision.

        Raises:
            ConcurrentUpdateError: if another writer advanced the state first
        """
        data = state.to_dict()
        values = (
            data["nutrition_mode"],
            data["training_mode"],
            data["anti_reversal_lock_until"],
            data["program_lock_until"],
            data["weeks_since_last_deload"],
            data["weeks_since_last_change"],
            data["revision"],
        )
        async with connection(self.db_path, conn) as db:
            if expected_revision is None:
                await db.execute(
                    """
                    INSERT INTO engine_states
                    (nutrition_mode, training_mode, anti_reversal_lock_until, program_lock_until,
                     weeks_since_last_deload, weeks_since_last_change, revision, user_id)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(user_id) DO UPDATE SET
                        nutrition_mode = excluded.nutrition_mode,
                        training_mode = excluded.training_mode,
                        anti_reversal_lock_until = excluded.anti_reversal_lock_until,
                        program_lock_until = excluded.program_lock_until,
                        weeks_since_last_deload = excluded.weeks_since_last_deload,
                        weeks_since_last_change = excluded.weeks_since_last_change,
                        revision = excluded.revision
                    """,
                    values + (state.user_id,),
                )
                return

            cursor = await db.execute(
                """
                UPDATE engine_states SET
                    nutrition_mode = ?, training_mode = ?, anti_reversal_lock_until = ?,
                    program_lock_until = ?, weeks_since_last_deload = ?,
                    weeks_since_last_change = ?, revision = ?
                WHERE user_id = ? AND revision = ?
                """,
                values + (state.user_id, expected_revision),
            )
            if cursor.rowcount != 1:
                raise ConcurrentUpdateError(
                    f"Engine state for {state.user_id} moved past revision {expected_revision}"
                )


class DecisionRecordRepository:
    """Repository for decision records (append-only)."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or get_db_path()

    async def append(
        self, record: DecisionRecord, conn: aiosqlite.Connection | None = None
    ) -> int:
        """Store a sealed decision record."""
        if not record.content_hash:
            raise ValueError("Decision record must be sealed before it is stored")

        async with connection(self.db_path, conn) as db:
            cursor = await db.execute(
                """
                INSERT INTO decision_records
                (user_id, trigger_type, trigger_checkin_id, record, content_hash,
                 engine_version, rule_pack_version, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.user_id,
                    record.trigger_type.value,
                    record.trigger_checkin_id,
                    json.dumps(record.to_dict(), sort_keys=True),
                    record.content_hash,
                    record.engine_version,
                    record.rule_pack_version,
                    _ts(record.created_at),
                ),
            )
            return cursor.lastrowid

    async def get(self, record_id: int) -> DecisionRecord | None:
        async with connection(self.db_path) as db:
            cursor = await db.execute("SELECT * FROM decision_records WHERE id = ?", (record_id,))
            row = await cursor.fetchone()
            if row is None:
                return None
            return self._row_to_record(row)

    async def list_for_user(self, user_id: str, limit: int | None = None) -> list[DecisionRecord]:
        """List a user's decision records, newest first."""
        query = "SELECT * FROM decision_records WHERE user_id = ? ORDER BY id DESC"
        params: tuple = (user_id,)
        if limit is not None:
            query += " LIMIT ?"
            params = (user_id, limit)

        async with connection(self.db_path) as db:
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
            return [self._row_to_record(row) for row in rows]

    def _row_to_record(self, row: aiosqlite.Row) -> DecisionRecord:
        return DecisionRecord.from_dict(
            json.loads(row["record"]),
            content_hash=row["content_hash"],
            id=row["id"],
        )
