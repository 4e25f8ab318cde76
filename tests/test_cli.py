"""Tests for the command line interface."""

import json

import pytest
from click.testing import CliRunner

from rulecoach.cli import main

ONBOARD_BEA = [
    "onboard",
    "bea",
    "--age", "30",
    "--sex", "female",
    "--height", "165",
    "--weight", "70",
    "--goal", "weight_loss",
]


@pytest.fixture
def cli(tmp_path):
    """Invoke the CLI against a data directory under tmp_path."""
    runner = CliRunner()
    data_dir = str(tmp_path / "data")

    def invoke(*args):
        return runner.invoke(main, ["--data-dir", data_dir, *args])

    return invoke


@pytest.fixture
def onboarded(cli):
    assert cli("init").exit_code == 0
    assert cli(*ONBOARD_BEA).exit_code == 0
    return cli


class TestInit:
    """Tests for the init command."""

    def test_init(self, cli, tmp_path):
        """Test init creates the database and stores the bundled pack."""
        result = cli("init")

        assert result.exit_code == 0
        assert "Bundled rule pack 1.0.0 stored" in result.output
        assert (tmp_path / "data" / "rulecoach.db").exists()

    def test_requires_init(self, cli):
        """Test commands refuse to run before init."""
        result = cli("plan", "show", "bea")

        assert result.exit_code == 1
        assert "Database not initialized" in result.output


class TestOnboard:
    """Tests for the onboard command."""

    def test_onboard_with_options(self, cli):
        """Test onboarding from options prints the new plans."""
        cli("init")
        result = cli(*ONBOARD_BEA)

        assert result.exit_code == 0
        assert "Onboarded bea" in result.output
        assert "v1: 1761 kcal" in result.output
        assert "Your starting plan is ready" in result.output

    def test_missing_options(self, cli):
        """Test a partial set of profile options is an error."""
        cli("init")
        result = cli("onboard", "bea", "--age", "30")

        assert result.exit_code == 1
        assert "Missing options: --sex, --height, --weight, --goal" in result.output

    def test_unsafe_profile(self, cli):
        """Test an unsafe starting plan is refused."""
        cli("init")
        result = cli(
            "onboard", "dora",
            "--age", "70",
            "--sex", "female",
            "--height", "150",
            "--weight", "45",
            "--activity", "sedentary",
            "--goal", "weight_loss",
        )

        assert result.exit_code == 1
        assert "failed safety validation" in result.output


class TestCheckin:
    """Tests for the checkin command."""

    def test_baseline_then_decision(self, onboarded):
        """Test the first check-in is a baseline and the second is decided."""
        first = onboarded(
            "checkin", "bea", "--weight", "70.0", "--energy", "8", "--hunger", "3",
            "--sleep", "8", "--stress", "3", "--date", "2026-01-12 08:00:00",
        )
        second = onboarded(
            "checkin", "bea", "--weight", "69.6", "--energy", "8", "--hunger", "3",
            "--sleep", "8", "--stress", "3", "--date", "2026-01-19 08:00:00",
        )

        assert first.exit_code == 0
        assert "Baseline check-in recorded for bea" in first.output
        assert second.exit_code == 0
        assert "Check-in processed for bea" in second.output
        assert "Decision record #3" in second.output

    def test_unknown_user(self, onboarded):
        """Test a check-in before onboarding fails cleanly."""
        result = onboarded("checkin", "nobody", "--weight", "80")

        assert result.exit_code == 1
        assert "no onboarding profile" in result.output

    def test_rating_range(self, onboarded):
        """Test ratings outside 0-10 are rejected by the parser."""
        result = onboarded("checkin", "bea", "--weight", "70", "--energy", "11")

        assert result.exit_code == 2


class TestPlan:
    """Tests for the plan commands."""

    def test_show(self, onboarded):
        """Test the active plan and safety limits are shown."""
        result = onboarded("plan", "show", "bea")

        assert result.exit_code == 0
        assert "Target: 1761 kcal/day" in result.output
        assert "Minimum calories: 1200 kcal" in result.output

    def test_show_unknown(self, onboarded):
        """Test showing a plan for an unknown user fails."""
        assert onboarded("plan", "show", "nobody").exit_code == 1

    def test_history(self, onboarded):
        """Test version history lists every version."""
        result = onboarded("plan", "history", "bea")

        assert result.exit_code == 0
        assert "Total: 1 version(s)" in result.output


class TestDecisions:
    """Tests for the decision audit commands."""

    def test_list_and_verify(self, onboarded):
        """Test records are listed and verify cleanly."""
        listed = onboarded("decisions", "list", "bea")
        verified = onboarded("decisions", "verify", "bea")

        assert "onboarding" in listed.output
        assert "Total: 1 record(s)" in listed.output
        assert verified.exit_code == 0
        assert "All 1 record(s) verified" in verified.output

    def test_show_json(self, onboarded):
        """Test a record can be dumped as JSON."""
        result = onboarded("decisions", "show", "1", "--json")
        data = json.loads(result.output)

        assert data["trigger_type"] == "onboarding"
        assert data["calorie_action"]["new_calories"] == 1761


class TestRulePack:
    """Tests for the rule pack commands."""

    def test_list(self, onboarded):
        """Test the bundled pack is listed as active."""
        result = onboarded("rulepack", "list")

        assert result.exit_code == 0
        assert "1.0.0" in result.output
        assert "*" in result.output

    def test_load_and_activate(self, onboarded, tmp_path):
        """Test a new version can be loaded and activated."""
        document = json.loads(onboarded("rulepack", "show").output)
        document["version"] = "1.1.0"
        path = tmp_path / "pack.json"
        path.write_text(json.dumps(document))

        result = onboarded("rulepack", "load", str(path), "--activate")

        assert result.exit_code == 0
        assert "Stored rule pack 1.1.0" in result.output
        assert "Rule pack 1.1.0 is now active" in result.output

    def test_load_invalid(self, onboarded, tmp_path):
        """Test an invalid document is rejected."""
        path = tmp_path / "pack.json"
        path.write_text("{}")

        result = onboarded("rulepack", "load", str(path))

        assert result.exit_code == 1
        assert "[ERROR]" in result.output

    def test_activate_unknown(self, onboarded):
        """Test activating an unknown version fails."""
        assert onboarded("rulepack", "activate", "9.9.9").exit_code == 1
