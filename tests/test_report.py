"""Tests for report aggregation and rendering."""
from wslprovision.outcome import Outcome, OutcomeKind
from wslprovision.report import Report, render_report


class TestOutcome:
    """Tests for outcome construction."""

    def test_constructors(self):
        """Test each constructor sets its kind and reason."""
        assert Outcome.success().kind is OutcomeKind.SUCCESS
        assert Outcome.failure("x") == Outcome(OutcomeKind.FAILURE, "x")
        assert Outcome.skipped("y").reason == "y"
        assert Outcome.success().ok is True
        assert Outcome.failure("x").ok is False

    def test_str(self):
        """Test outcomes print their kind and reason."""
        assert str(Outcome.success()) == "success"
        assert str(Outcome.failure("exit 100")) == "failure: exit 100"


class TestRecord:
    """Tests for tallying outcomes."""

    def test_counts_by_kind(self):
        """Test each outcome bumps the matching counter."""
        report = Report()
        report.record("a", Outcome.success())
        report.record("b", Outcome.failure("broken"))
        report.record("c", Outcome.skipped("not needed"), optional=True)

        assert (report.total, report.passed, report.failed, report.warned) == (3, 1, 1, 1)
        assert [name for name, _ in report.entries] == ["a", "b", "c"]

    def test_optional_failure_is_warning(self):
        """Test optional failures count as warnings."""
        report = Report()
        status = report.record("fzf", Outcome.failure("not found"), optional=True)

        assert status == "warned"
        assert report.warned == 1
        assert report.failed == 0

    def test_required_skip_is_failure(self):
        """Test a skipped required step counts as failed."""
        report = Report()
        status = report.record("git-config", Outcome.skipped("no identity"))

        assert status == "failed"
        assert report.failed == 1

    def test_optional_success_is_passed(self):
        """Test optional successes still count as passed."""
        report = Report()
        report.record("htop", Outcome.success(), optional=True)

        assert report.passed == 1


class TestSuccessRate:
    """Tests for the success rate."""

    def test_empty_report(self):
        """Test an empty report has a zero rate rather than an error."""
        assert Report().success_rate() == 0.0

    def test_rate(self):
        """Test the rate is passed over total."""
        report = Report()
        report.record("a", Outcome.success())
        report.record("b", Outcome.success())
        report.record("c", Outcome.failure("x"))
        report.record("d", Outcome.failure("x"), optional=True)

        assert report.success_rate() == 0.5


class TestRender:
    """Tests for rendering a report."""

    def test_render_lists_entries_and_totals(self):
        """Test the summary shows each step and the tallies."""
        report = Report()
        report.record("docker", Outcome.success())
        report.record("aws-cli", Outcome.failure("download failed"))
        report.record("fzf", Outcome.failure("not found"), optional=True)

        text = render_report(report)

        assert "✅ docker" in text
        assert "❌ aws-cli" in text
        assert "download failed" in text
        assert "fzf" in text
        assert "Total: 3  Passed: 1  Warnings: 1  Failed: 1" in text
        assert "Success rate: 33%" in text

    def test_render_empty_report(self):
        """Test rendering a report without entries."""
        text = render_report(Report())

        assert "Total: 0" in text
        assert "Success rate: 0%" in text

    def test_render_cancelled(self):
        """Test a cancelled run says so."""
        report = Report(cancelled=True)

        assert "cancelled" in render_report(report)

    def test_render_is_pure(self):
        """Test rendering does not change the report."""
        report = Report()
        report.record("a", Outcome.success())

        assert render_report(report) == render_report(report)
        assert report.total == 1
