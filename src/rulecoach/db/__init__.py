"""Database layer for rulecoach."""

from .engine import connection, get_db_path, init_db, seed_rule_pack, transaction
from .repositories import (
    CheckInRepository,
    DecisionRecordRepository,
    EngineStateRepository,
    PlanRepository,
    ProfileRepository,
    RulePackRepository,
)

__all__ = [
    "CheckInRepository",
    "connection",
    "DecisionRecordRepository",
    "EngineStateRepository",
    "get_db_path",
    "init_db",
    "PlanRepository",
    "ProfileRepository",
    "RulePackRepository",
    "seed_rule_pack",
    "transaction",
]
