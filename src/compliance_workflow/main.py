"""Process entrypoint for ``compliance-workflow`` and ``python -m compliance_workflow``.

Every outcome maps onto one of five exit codes; only internal errors print a
traceback, everything else prints a single ``error:`` line on stderr.
"""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    SUCCESS = 0
    NON_COMPLIANT = 1
    CONFIG_ERROR = 2
    USAGE_ERROR = 3
    INTERNAL_ERROR = 4


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    try:
        from compliance_workflow.ui.cli import run_cli

        code = run_cli(argv)
    except SystemExit as exc:
        # argparse: 0 after --help, 2 for a bad command line.
        if exc.code in (None, 0):
            return ExitCode.SUCCESS
        return ExitCode.USAGE_ERROR if exc.code == 2 else ExitCode.INTERNAL_ERROR
    except Exception as exc:  # noqa: BLE001 - process boundary
        exit_code = exit_code_for(exc)
        if exit_code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            print(f"error: {str(exc).strip() or type(exc).__name__}", file=sys.stderr)
        return exit_code
    if code is None:
        return ExitCode.SUCCESS
    try:
        return ExitCode(code)
    except ValueError:
        return ExitCode.INTERNAL_ERROR


def exit_code_for(exc: BaseException) -> ExitCode:
    """Exit code for ``exc``, consulting its ``raise ... from`` chain as well."""

    from compliance_workflow.config import ConfigLoadError, ConfigValidationError
    from compliance_workflow.domain.errors import ProfileError, UsageError
    from compliance_workflow.persistence.archive import ArchiveNotFoundError
    from compliance_workflow.ui.replay import ScriptError

    routes: tuple[tuple[tuple[type[BaseException], ...], ExitCode], ...] = (
        ((UsageError, ArchiveNotFoundError), ExitCode.USAGE_ERROR),
        (
            (ConfigLoadError, ConfigValidationError, ProfileError, ScriptError, OSError),
            ExitCode.CONFIG_ERROR,
        ),
    )
    for cause in _causes(exc):
        for types, code in routes:
            if isinstance(cause, types):
                return code
    return ExitCode.INTERNAL_ERROR


def _causes(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


__all__ = ["ExitCode", "cli_entrypoint", "exit_code_for"]
