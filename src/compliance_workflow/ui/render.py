"""Plain-text rendering of verdicts, status snapshots and compliance reports for the CLI.

Respects the ``NO_COLOR`` environment variable and the ``--no-color`` flag; color is
only used for the pass/fail markers.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from collections.abc import Sequence

    from compliance_workflow.domain.models import Verdict, Violation
    from compliance_workflow.reporting.report import ComplianceReport, StatusReport

_GREEN = "\033[32m"
_RED = "\033[31m"
_RESET = "\033[0m"


def _color_allowed(no_color_flag: bool, stream: TextIO) -> bool:
    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


class CLIRenderer:
    """Thin CLI output renderer producing deterministic plain text."""

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        self.verbose = verbose
        self._stream = stream if stream is not None else sys.stdout
        self._color = _color_allowed(no_color, self._stream)

    def text(self, line: str) -> None:
        print(line, file=self._stream)

    def heading(self, text: str) -> None:
        self.text(text)

    def section(self, title: str) -> None:
        self.text(f"\n{title}")

    def kv(self, key: str, value: object) -> None:
        self.text(f"{key}: {value}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self.text(f"  {prefix}{entry}")

    def table(self, headers: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
        """Print a left-aligned ASCII table; nothing is printed for zero rows."""
        if not rows:
            return
        widths = [len(header) for header in headers]
        for row in rows:
            for index, cell in enumerate(row[: len(headers)]):
                widths[index] = max(widths[index], len(str(cell)))

        def _pad(cells: Sequence[str]) -> str:
            return "  ".join(
                (str(cells[index]) if index < len(cells) else "").ljust(width)
                for index, width in enumerate(widths)
            ).rstrip()

        self.text(f"  {_pad(list(headers))}")
        self.text(f"  {'  '.join('-' * width for width in widths)}")
        for row in rows:
            self.text(f"  {_pad(list(row))}")

    def outcome(self, passed: bool) -> str:
        label = "PASS" if passed else "FAIL"
        if not self._color:
            return label
        return f"{_GREEN if passed else _RED}{label}{_RESET}"

    def violations(self, violations: Sequence[Violation]) -> None:
        rows = [
            (
                item.kind.value,
                item.origin_phase.value,
                "yes" if item.blocking else "no",
                item.message,
            )
            for item in violations
        ]
        self.table(("kind", "origin", "blocking", "message"), rows)

    def verdict(self, verdict: Verdict, *, label: str | None = None) -> None:
        prefix = f"{label} " if label else ""
        self.text(
            f"{prefix}{verdict.phase.value} verdict: {self.outcome(verdict.passed)} "
            f"(generation {verdict.generation}, {len(verdict.violations)} violation(s))"
        )
        self.violations(verdict.violations)

    def status(self, report: StatusReport) -> None:
        self.kv("Workflow", report.workflow_id)
        self.kv("Task", report.task_id)
        self.kv("Phase", report.current_phase.value)
        self.kv("Generation", report.generation)
        self.kv("Cleared", ", ".join(phase.value for phase in report.cleared_phases) or "(none)")
        self.kv("Verdicts", report.verdict_count)
        if report.abort_reason:
            self.kv("Abort reason", report.abort_reason)
        self.section("Scope:")
        self.table(("item", "status"), [(item.name, item.status.value) for item in report.scope])
        if report.outstanding_violations:
            self.section("Outstanding violations:")
            self.violations(report.outstanding_violations)
        if self.verbose:
            self.section("Transitions:")
            self.items(
                [
                    f"{item.from_phase.value} -> {item.to_phase.value} ({item.kind.value}, "
                    f"generation {item.generation})"
                    for item in report.transitions
                ]
            )
        self.section(f"Next: {report.next_action}")

    def compliance_report(self, report: ComplianceReport) -> None:
        self.kv("Outcome", self.outcome(report.passed))
        self.kv("Total violations", report.total_violations)
        self.kv("Verdicts", report.verdict_count)
        self.kv("Generation", report.generation)
        self.kv("Final scope", ", ".join(report.approved_scope) or "(empty)")
        if report.violations:
            self.section("Violations raised:")
            self.table(
                ("phase", "gen", "kind", "message"),
                [
                    (
                        item.phase.value,
                        str(item.generation),
                        item.violation.kind.value,
                        item.violation.message,
                    )
                    for item in report.violations
                ],
            )


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
