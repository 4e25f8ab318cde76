"""Tests for rule pack parsing, validation and the registry."""

import copy
import json

import pytest

from rulecoach.data.rule_pack_loader import (
    RulePackRegistry,
    get_default_rule_pack_path,
    load_rule_pack,
    parse_rule_pack,
)
from rulecoach.errors import ConfigurationError
from rulecoach.models.checkin import AdherenceLevel, ContextualEvent
from rulecoach.models.profile import Goal, Sex
from rulecoach.models.rule_pack import RulePack
from rulecoach.models.signals import RiskLevel


@pytest.fixture
def document():
    """The bundled rule pack as a plain dict."""
    return json.loads(get_default_rule_pack_path().read_text())


class TestBundledRulePack:
    """Tests for the bundled v1 rule pack."""

    def test_loads(self, rule_pack):
        """Test the bundled pack parses with its headline values."""
        assert rule_pack.version == "1.0.0"
        assert rule_pack.safety.floor_for(Sex.MALE) == 1500
        assert rule_pack.safety.floor_for(Sex.FEMALE) == 1200
        assert rule_pack.calorie_adjustments.max_increase == 200
        assert rule_pack.trend.window == 3
        assert rule_pack.locks.anti_reversal_weeks == 2

    def test_enum_keyed_tables(self, rule_pack):
        """Test lookup tables are keyed by the model enums."""
        assert rule_pack.adherence_mapping[AdherenceLevel.FULL] == 1.0
        assert rule_pack.adherence_mapping[AdherenceLevel.LOW] == 0.4
        assert rule_pack.event_impact[ContextualEvent.ILLNESS] == 0.2
        assert rule_pack.recovery_risk.thresholds[RiskLevel.HIGH] == 5

    def test_goal_ratios(self, rule_pack):
        """Test protein selection per goal."""
        assert rule_pack.goal(Goal.WEIGHT_LOSS).protein_ratio == 2.4
        assert rule_pack.goal(Goal.MAINTENANCE).protein_ratio == pytest.approx(2.0)
        assert rule_pack.goal(Goal.MUSCLE_GAIN).fat_ratio == pytest.approx(0.9)

    def test_to_dict_returns_source(self, rule_pack, document):
        """Test to_dict reproduces the loaded document."""
        assert rule_pack.to_dict() == document

    def test_frozen(self, rule_pack):
        """Test nested tables cannot be mutated."""
        with pytest.raises(TypeError):
            rule_pack.adherence_mapping[AdherenceLevel.FULL] = 0.0


class TestValidation:
    """Tests for load-time validation."""

    def test_missing_section(self, document):
        """Test a missing section names the key."""
        del document["locks"]

        with pytest.raises(ConfigurationError, match="locks"):
            RulePack.from_dict(document)

    def test_missing_nested_key(self, document):
        """Test a missing nested key reports its full path."""
        del document["safety"]["max_step_kcal"]

        with pytest.raises(ConfigurationError, match="safety.max_step_kcal"):
            RulePack.from_dict(document)

    def test_non_numeric(self, document):
        """Test strings and booleans are not numbers."""
        document["trend"]["window"] = "3"
        with pytest.raises(ConfigurationError):
            RulePack.from_dict(document)

        document["trend"]["window"] = True
        with pytest.raises(ConfigurationError):
            RulePack.from_dict(document)

    def test_confidence_weights_sum(self, document):
        """Test confidence weights must sum to one."""
        document["trend"]["confidence_weights"]["adherence"] = 0.6

        with pytest.raises(ConfigurationError, match="sum to 1.0"):
            RulePack.from_dict(document)

    def test_thresholds_ascending(self, document):
        """Test risk thresholds must be strictly ascending."""
        document["recovery_risk"]["thresholds"]["high"] = 8

        with pytest.raises(ConfigurationError, match="ascending"):
            RulePack.from_dict(document)

    def test_candidate_deltas_include_zero(self, document):
        """Test the step set must allow no change."""
        document["calorie_adjustments"]["candidate_deltas"] = [-100, 100]

        with pytest.raises(ConfigurationError):
            RulePack.from_dict(document)

    def test_unknown_protein_selection(self, document):
        """Test protein selection is 'high' or 'midpoint'."""
        document["goal_defaults"]["maintenance"]["protein_selection"] = "low"

        with pytest.raises(ConfigurationError, match="protein_selection"):
            RulePack.from_dict(document)

    def test_bad_range(self, document):
        """Test ranges must be ascending pairs."""
        document["training"]["volume_multiplier_bounds"] = [1.3, 0.6]

        with pytest.raises(ConfigurationError):
            RulePack.from_dict(document)

    def test_step_limits_consistent(self, document):
        """Test the warning step cannot exceed the maximum step."""
        document["safety"]["step_warning_kcal"] = 250

        with pytest.raises(ConfigurationError):
            RulePack.from_dict(document)

    def test_invalid_json(self):
        """Test malformed JSON is a configuration error."""
        with pytest.raises(ConfigurationError, match="not valid JSON"):
            parse_rule_pack("{not json")

    def test_missing_file(self, tmp_path):
        """Test a missing file is a configuration error."""
        with pytest.raises(ConfigurationError, match="not found"):
            load_rule_pack(tmp_path / "missing.json")


class TestRegistry:
    """Tests for the in-process rule pack registry."""

    def test_default_cached(self):
        """Test the default pack is loaded once."""
        registry = RulePackRegistry()
        first = registry.default()

        assert registry.default() is first
        assert registry.versions() == ["1.0.0"]
        assert "1.0.0" in registry

    def test_same_content_reuses_instance(self, document):
        """Test re-registering identical content returns the cached pack."""
        registry = RulePackRegistry()
        first = registry.register_document(json.dumps(document))

        assert registry.register_document(json.dumps(document)) is first
        assert len(registry) == 1

    def test_conflicting_content_rejected(self, document):
        """Test one version string can only name one behaviour."""
        registry = RulePackRegistry()
        registry.register(RulePack.from_dict(document))

        changed = copy.deepcopy(document)
        changed["locks"]["anti_reversal_weeks"] = 3
        with pytest.raises(ConfigurationError, match="different content"):
            registry.register(RulePack.from_dict(changed))

    def test_get_unknown(self):
        """Test asking for an unloaded version fails."""
        with pytest.raises(ConfigurationError):
            RulePackRegistry().get("9.9.9")

    def test_second_version(self, document):
        """Test distinct versions live side by side."""
        registry = RulePackRegistry()
        registry.register(RulePack.from_dict(document))
        document["version"] = "1.1.0"
        registry.register(RulePack.from_dict(document))

        assert registry.versions() == ["1.0.0", "1.1.0"]
        assert registry.get("1.1.0").version == "1.1.0"
