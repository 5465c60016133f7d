"""Command-line interface router for compliance-workflow."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from compliance_workflow.architecture.profile import ProfileDirectory, load_profile
from compliance_workflow.config import WorkflowSettings, effective_config, load_config
from compliance_workflow.domain import ids as domain_ids
from compliance_workflow.observability import setup_logging, shutdown_logging
from compliance_workflow.persistence.archive import WorkflowArchive
from compliance_workflow.reporting import reporter
from compliance_workflow.ui.render import CLIRenderer, create_renderer
from compliance_workflow.ui.replay import ReplayResult, load_script, run_script

EXIT_NON_COMPLIANT: Final[int] = 1


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 2

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="compliance-workflow",
        description=(
            "compliance-workflow — phase-gated compliance checks for code-generation tasks.\n\n"
            "Common workflows:\n"
            "  compliance-workflow profile profiles/web.yaml   Validate an architecture profile\n"
            '  compliance-workflow extract "name and email"    Show extracted features\n'
            "  compliance-workflow replay script.yaml          Drive a workflow from a script\n"
            "  compliance-workflow inspect wf-...              Show an archived workflow\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to compliance TOML config (default: ./compliance.toml if present).",
    )
    common.add_argument("--profile", default=None, help="Optional config profile overlay name.")
    common.add_argument("--json", action="store_true", help="Emit deterministic JSON output.")
    common.add_argument(
        "--verbose", "-v", action="store_true", default=False, help="Show detailed output."
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    profile_parser = subparsers.add_parser(
        "profile",
        parents=[common],
        help="Validate an architecture profile and list its layers in dependency order",
    )
    profile_parser.add_argument("path", help="Path to a YAML architecture profile")
    profile_parser.set_defaults(handler=_cmd_profile)

    extract_parser = subparsers.add_parser(
        "extract",
        parents=[common],
        help="Print the features the keyword extractor finds in a request",
    )
    extract_parser.add_argument("text", help="Free-text task request")
    extract_parser.set_defaults(handler=_cmd_extract)

    replay_parser = subparsers.add_parser(
        "replay",
        parents=[common],
        help="Drive one workflow from a YAML script of steps",
    )
    replay_parser.add_argument("script", help="Path to the replay script")
    replay_parser.add_argument(
        "--profiles-dir",
        default=None,
        help="Directory of named architecture profiles referenced by the script.",
    )
    replay_parser.add_argument("--archive", default=None, help="Override the archive database path.")
    replay_parser.add_argument(
        "--no-archive", action="store_true", help="Do not archive the workflow on completion."
    )
    replay_parser.add_argument("--log-dir", default=None, help="Override the log directory.")
    replay_parser.set_defaults(handler=_cmd_replay)

    inspect_parser = subparsers.add_parser(
        "inspect",
        parents=[common],
        help="Print the status snapshot of an archived workflow",
    )
    inspect_parser.add_argument(
        "workflow_id", nargs="?", default=None, help="Workflow id (omit to list archived workflows)"
    )
    inspect_parser.add_argument("--archive", default=None, help="Override the archive database path.")
    inspect_parser.set_defaults(handler=_cmd_inspect)

    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Print the redacted effective configuration",
    )
    config_parser.set_defaults(handler=_cmd_config)
    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 3

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_profile(args: argparse.Namespace) -> int:
    profile = load_profile(Path(args.path))
    order = profile.dependency_order()
    if args.json:
        _emit_json(
            {
                "command": "profile",
                "name": profile.name,
                "dependency_order": list(order),
                "layers": [layer.to_dict() for layer in profile.layers],
            }
        )
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Profile", profile.name)
    renderer.section("Layers (dependencies first):")
    renderer.table(
        ("layer", "may depend on"),
        [(name, ", ".join(profile.layer(name).allowed_dependencies) or "-") for name in order],
    )
    return 0


def _cmd_extract(args: argparse.Namespace) -> int:
    settings = WorkflowSettings.from_config(_load_effective_config(args))
    features = settings.build_extractor().extract(args.text)
    if args.json:
        _emit_json({"command": "extract", "features": list(features)})
        return 0
    renderer = _get_renderer(args)
    if not features:
        renderer.text("No features found.")
        return 0
    renderer.items(features)
    return 0


def _cmd_replay(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    settings = WorkflowSettings.from_config(config)
    profiles = ProfileDirectory(args.profiles_dir) if args.profiles_dir else None
    script = load_script(Path(args.script), profiles=profiles)

    archive: WorkflowArchive | None = None
    persistence = _mapping(config.get("persistence"))
    if not args.no_archive and (args.archive or persistence.get("archive_on_terminal", True)):
        archive = WorkflowArchive(args.archive or str(persistence.get("archive_db")))

    observability = _mapping(config.get("observability"))
    handle = setup_logging(
        observability,
        session_id=domain_ids.generate_ulid(),
        log_dir=args.log_dir,
    )
    try:
        result = run_script(script, settings=settings, archive=archive)
    finally:
        shutdown_logging(handle)

    if args.json:
        _emit_json(_replay_payload(result))
    else:
        _render_replay(_get_renderer(args), result)
    return 0 if result.compliant else EXIT_NON_COMPLIANT


def _cmd_inspect(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    persistence = _mapping(config.get("persistence"))
    archive_path = Path(args.archive or str(persistence.get("archive_db")))
    if not archive_path.exists():
        raise CLIError(f"archive not found: {archive_path}", exit_code=3)
    archive = WorkflowArchive(archive_path)

    if args.workflow_id is None:
        records = archive.list_workflows()
        if args.json:
            _emit_json(
                {
                    "command": "inspect",
                    "workflows": [
                        {
                            "workflow_id": item.workflow_id,
                            "task_id": item.task_id,
                            "phase": item.phase.value,
                            "generation": item.generation,
                            "archived_at": item.archived_at,
                        }
                        for item in records
                    ],
                }
            )
            return 0
        renderer = _get_renderer(args)
        if not records:
            renderer.text("No archived workflows.")
            return 0
        renderer.table(
            ("workflow", "task", "phase", "gen", "archived"),
            [
                (item.workflow_id, item.task_id, item.phase.value, str(item.generation), item.archived_at)
                for item in records
            ],
        )
        return 0

    state = archive.load(args.workflow_id)
    snapshot = reporter.snapshot(state)
    if args.json:
        payload: dict[str, object] = {"command": "inspect", "status": snapshot.to_dict()}
        if state.final_report is not None:
            payload["report"] = state.final_report.to_dict()
        _emit_json(payload)
        return 0
    renderer = _get_renderer(args)
    renderer.status(snapshot)
    if state.final_report is not None:
        renderer.section("Compliance report:")
        renderer.compliance_report(state.final_report)
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    redacted = effective_config(config)
    profile = args.profile
    if args.json:
        _emit_json({"command": "config", "active_profile": profile, "config": redacted})
        return 0
    renderer = _get_renderer(args)
    renderer.kv("Active profile", profile or "(default)")
    renderer.text(json.dumps(redacted, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _render_replay(renderer: CLIRenderer, result: ReplayResult) -> None:
    report = result.handle.current_report()
    renderer.kv("Workflow", report.workflow_id)
    renderer.kv("Task", report.task_id)
    for item in result.steps:
        label = f"[{item.step.index}] {item.step.action}"
        if item.verdict is not None:
            renderer.verdict(item.verdict, label=label)
        else:
            renderer.text(f"{label}: {item.detail or 'ok'}")
    if result.error is not None:
        renderer.section(f"Workflow aborted: {result.error}")
    if result.report is not None:
        renderer.section("Compliance report:")
        renderer.compliance_report(result.report)
    else:
        renderer.section(f"Final phase: {report.current_phase.value}")
        renderer.text(f"Next: {report.next_action}")


def _replay_payload(result: ReplayResult) -> dict[str, object]:
    return {
        "command": "replay",
        "compliant": result.compliant,
        "steps": [
            {
                "index": item.step.index,
                "action": item.step.action,
                "phase_after": item.phase_after.value,
                "verdict": None if item.verdict is None else item.verdict.to_dict(),
                "detail": item.detail,
            }
            for item in result.steps
        ],
        "error": None if result.error is None else str(result.error),
        "status": result.handle.current_report().to_dict(),
        "report": None if result.report is None else result.report.to_dict(),
    }


def _emit_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=bool(args.no_color), verbose=bool(args.verbose))


def _load_effective_config(args: argparse.Namespace) -> dict[str, object]:
    return load_config(args.config_path, profile=args.profile)


def _mapping(value: object) -> Mapping[str, object]:
    return value if isinstance(value, Mapping) else {}


__all__ = ["CLIError", "build_parser", "run_cli"]
