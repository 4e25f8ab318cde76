"""Tests for signal interpretation."""

import json
from dataclasses import replace

import pytest

from rulecoach.data.rule_pack_loader import get_default_rule_pack_path
from rulecoach.errors import ContractViolation
from rulecoach.models.checkin import AdherenceLevel, ContextualEvent
from rulecoach.models.rule_pack import RulePack
from rulecoach.models.signals import RiskLevel, TrendDirection
from rulecoach.rules.signals import (
    analyze_trend,
    analyze_waist_trend,
    assess_recovery_risk,
    calculate_confidence,
    detect_plateau,
    detect_recomposition,
    elapsed_weeks,
    interpret_signals,
)


class TestTrend:
    """Tests for weight trend analysis."""

    def test_single_checkin_is_stable(self, rule_pack, weekly):
        """Test one check-in yields a flat trend."""
        trend = analyze_trend(weekly(80.0), rule_pack)

        assert trend.direction == TrendDirection.STABLE
        assert trend.total_change == 0
        assert trend.rate_per_week == 0

    def test_decreasing(self, rule_pack, weekly):
        """Test change and weekly rate over two weeks."""
        trend = analyze_trend(weekly(80.0, 79.6, 79.2), rule_pack)

        assert trend.direction == TrendDirection.DECREASING
        assert trend.total_change == -0.8
        assert trend.rate_per_week == -0.4
        assert trend.values == (80.0, 79.6, 79.2)

    def test_small_change_is_stable(self, rule_pack, weekly):
        """Test changes inside the plateau band count as stable."""
        trend = analyze_trend(weekly(80.0, 80.3), rule_pack)

        assert trend.direction == TrendDirection.STABLE

    def test_input_order_ignored(self, rule_pack, weekly):
        """Test check-ins are sorted by time before the trend is taken."""
        checkins = weekly(80.0, 80.5, 81.0)
        trend = analyze_trend(list(reversed(checkins)), rule_pack)

        assert trend.direction == TrendDirection.INCREASING
        assert trend.total_change == 1.0

    def test_elapsed_weeks_fallback(self, make_checkin):
        """Test coinciding timestamps fall back to week numbers."""
        first = make_checkin(80.0, week=1)
        second = replace(first, week_number=3)

        assert elapsed_weeks(first, second) == 2.0
        assert elapsed_weeks(first, first) == 1.0

    def test_waist_has_its_own_stable_band(self, rule_pack, make_checkin):
        """Test the waist trend uses its configured band, not the weight plateau band."""
        checkins = [
            make_checkin(80.0, week=1, waist=90.0),
            make_checkin(79.6, week=2, waist=89.2),
        ]
        document = json.loads(get_default_rule_pack_path().read_text())
        document["trend"]["recomposition"]["waist_stable_change"] = 1.0
        wide = RulePack.from_dict(document)

        assert analyze_waist_trend(checkins, rule_pack).direction == TrendDirection.DECREASING
        assert analyze_waist_trend(checkins, wide).direction == TrendDirection.STABLE
        assert analyze_trend(checkins, wide).direction == TrendDirection.DECREASING


class TestConfidence:
    """Tests for the weighted confidence score."""

    def test_full_window_no_events(self, rule_pack, weekly):
        """Test a full window of good weeks scores high."""
        confidence = calculate_confidence(weekly(80.0, 79.6, 79.2), rule_pack)

        assert confidence.score == pytest.approx(0.925)
        assert confidence.adherence_score == pytest.approx(0.85)
        assert confidence.data_quality_score == 1.0
        assert confidence.event_impact_score == 1.0

    def test_events_reduce_confidence(self, rule_pack, make_checkin, weekly):
        """Test contextual events lower the event sub-score."""
        checkins = weekly(80.0, 79.6)
        checkins.append(
            make_checkin(
                79.2,
                week=3,
                events=(ContextualEvent.ILLNESS, ContextualEvent.TRAVEL),
            )
        )
        confidence = calculate_confidence(checkins, rule_pack)

        assert confidence.event_impact_score == pytest.approx(0.7)
        assert confidence.score == pytest.approx(0.865)

    def test_short_window_low_adherence(self, rule_pack, weekly):
        """Test partial data and poor adherence compound."""
        checkins = weekly(80.0, 79.6, adherence=AdherenceLevel.LOW)
        confidence = calculate_confidence(checkins, rule_pack)

        assert confidence.data_quality_score == pytest.approx(0.6667)
        assert confidence.score == pytest.approx(0.6, abs=1e-4)

    def test_empty(self, rule_pack):
        """Test no check-ins means no confidence."""
        assert calculate_confidence([], rule_pack).score == 0.0


class TestRecoveryRisk:
    """Tests for recovery risk scoring."""

    def test_low(self, rule_pack, make_checkin):
        """Test good ratings are low risk."""
        risk = assess_recovery_risk(make_checkin(80.0), rule_pack)

        assert risk.score == 2.4
        assert risk.level == RiskLevel.LOW
        assert risk.action == "continue"

    def test_moderate(self, rule_pack, make_checkin):
        """Test middling ratings are moderate risk."""
        checkin = make_checkin(80.0, energy=7, hunger=4, sleep=7, stress=4)
        risk = assess_recovery_risk(checkin, rule_pack)

        assert risk.score == 3.4
        assert risk.level == RiskLevel.MODERATE

    def test_high(self, rule_pack, make_checkin):
        """Test poor ratings are high risk."""
        checkin = make_checkin(80.0, energy=5, hunger=6, sleep=5, stress=6)
        risk = assess_recovery_risk(checkin, rule_pack)

        assert risk.score == 5.4
        assert risk.level == RiskLevel.HIGH
        assert risk.action == "hold_deficit"
        assert not any(risk.factors.to_dict().values())

    def test_critical_with_factors(self, rule_pack, make_checkin):
        """Test very poor ratings are critical and flag every factor."""
        checkin = make_checkin(80.0, energy=2, hunger=8, sleep=3, stress=8)
        risk = assess_recovery_risk(checkin, rule_pack)

        assert risk.score == 7.7
        assert risk.level == RiskLevel.CRITICAL
        assert risk.action == "increase_calories"
        assert all(risk.factors.to_dict().values())


class TestPlateauAndRecomposition:
    """Tests for plateau and recomposition detection."""

    def test_plateau(self, rule_pack, weekly):
        """Test a flat window with good adherence is a plateau."""
        assert detect_plateau(weekly(80.0, 80.1, 80.0), rule_pack)

    def test_plateau_needs_adherence(self, rule_pack, weekly):
        """Test a flat window with poor adherence is not a plateau."""
        checkins = weekly(80.0, 80.1, 80.0, adherence=AdherenceLevel.MEDIUM)

        assert not detect_plateau(checkins, rule_pack)

    def test_plateau_needs_full_window(self, rule_pack, weekly):
        """Test two check-ins are not enough for a plateau."""
        assert not detect_plateau(weekly(80.0, 80.0), rule_pack)

    def test_recomposition(self, rule_pack, make_checkin):
        """Test a stable weight with a shrinking waist."""
        checkins = [
            make_checkin(80.0, week=1, waist=90.0),
            make_checkin(80.1, week=2, waist=89.5),
            make_checkin(80.0, week=3, waist=88.8),
        ]

        assert detect_recomposition(checkins, rule_pack)

    def test_recomposition_needs_every_waist(self, rule_pack, make_checkin):
        """Test a missing waist measurement disables recomposition."""
        checkins = [
            make_checkin(80.0, week=1, waist=90.0),
            make_checkin(80.1, week=2),
            make_checkin(80.0, week=3, waist=88.8),
        ]

        assert not detect_recomposition(checkins, rule_pack)


class TestInterpretSignals:
    """Tests for the combined signal derivation."""

    def test_requires_checkins(self, rule_pack):
        """Test an empty history is a contract violation."""
        with pytest.raises(ContractViolation):
            interpret_signals([], rule_pack)

    def test_uses_recent_window(self, rule_pack, weekly):
        """Test only the last `window` check-ins are considered."""
        signals = interpret_signals(weekly(82.0, 81.0, 80.0, 80.1, 80.0), rule_pack)

        assert signals.window_size == 3
        assert signals.weight_trend.values == (80.0, 80.1, 80.0)
        assert signals.plateau
        assert signals.waist_trend is None

    def test_risk_from_latest(self, rule_pack, make_checkin, weekly):
        """Test recovery risk reads the newest check-in only."""
        checkins = weekly(80.0, 79.6)
        checkins.append(make_checkin(79.2, week=3, energy=2, hunger=8, sleep=3, stress=8))
        signals = interpret_signals(checkins, rule_pack)

        assert signals.recovery_risk.level == RiskLevel.CRITICAL
