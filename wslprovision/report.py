"""Aggregation and rendering of step outcomes."""
from dataclasses import dataclass, field
from typing import List, Tuple

from wslprovision.outcome import Outcome, OutcomeKind

STATUS_ICONS = {
    "passed": "✅",
    "warned": "⚠️ ",
    "failed": "❌",
}


@dataclass
class Report:
    """Tally and ordered log of step outcomes for one run."""

    total: int = 0
    passed: int = 0
    failed: int = 0
    warned: int = 0
    entries: List[Tuple[str, Outcome]] = field(default_factory=list)
    statuses: List[str] = field(default_factory=list)
    cancelled: bool = False

    def record(self, step_name: str, outcome: Outcome, optional: bool = False) -> str:
        """Append an outcome and bump the matching counter.

        Failures and skips of optional steps count as warnings. A skipped
        required step counts as a failure.
        """
        if outcome.kind is OutcomeKind.SUCCESS:
            status = "passed"
        elif optional:
            status = "warned"
        else:
            status = "failed"

        setattr(self, status, getattr(self, status) + 1)
        self.total += 1
        self.entries.append((step_name, outcome))
        self.statuses.append(status)
        return status

    def success_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.passed / self.total


def render_report(report: Report) -> str:
    """Render a report as a human readable summary."""
    lines = ["Provisioning summary", "=" * 20]
    width = max((len(name) for name, _ in report.entries), default=0)

    for (name, outcome), status in zip(report.entries, report.statuses):
        line = f"{STATUS_ICONS[status]} {name.ljust(width)}"
        if outcome.reason:
            line += f"  {outcome.reason}"
        lines.append(line.rstrip())

    if report.cancelled:
        lines.append("Run cancelled before all steps completed.")

    lines.append("")
    lines.append(
        f"Total: {report.total}  Passed: {report.passed}  "
        f"Warnings: {report.warned}  Failed: {report.failed}"
    )
    lines.append(f"Success rate: {report.success_rate():.0%}")
    return "\n".join(lines)
