"""Data loading utilities."""

from .rule_pack_loader import (
    RulePackRegistry,
    get_default_rule_pack_path,
    load_rule_pack,
    parse_rule_pack,
)

__all__ = ["get_default_rule_pack_path", "load_rule_pack", "parse_rule_pack", "RulePackRegistry"]
