"""Command-line interface router for ux-autofix."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Final, TextIO

from ux_autofix.config import (
    ConfigLoadError,
    ConfigValidationError,
    load_config,
    redact_config,
)
from ux_autofix.control.context import SessionContext
from ux_autofix.control.pipeline import PipelineResult, RemediationPipeline
from ux_autofix.control.repair_loop import GuardedPatchChecker
from ux_autofix.detection.event_store import EventStore
from ux_autofix.detection.pattern_detector import PatternDetector, detect_anomalies, summarize_issues
from ux_autofix.detection.rules import load_pattern_rules
from ux_autofix.domain.events import Event
from ux_autofix.domain.ids import ISSUE_ID_PREFIX, generate_run_id, validate_prefixed_id
from ux_autofix.domain.models import Issue, IssueStatus, Patch, PatternRule
from ux_autofix.guardrails.extractor import DEFAULT_SCAN_DIRS, extract_guardrails
from ux_autofix.guardrails.store import GuardrailStore
from ux_autofix.guardrails.validator import summarize_validation, validate_patches
from ux_autofix.integration.patch_applier import PatchApplier
from ux_autofix.observability.logging import LoggingConfig, setup_structured_logging, shutdown_logging
from ux_autofix.persistence.issue_store import IssueStore
from ux_autofix.synthesis.anthropic_oracle import AnthropicOracle
from ux_autofix.synthesis.openai_oracle import OpenAIOracle
from ux_autofix.synthesis.oracle import CompletionOracle
from ux_autofix.ui.render import CLIRenderer, create_renderer

EXIT_OK: Final[int] = 0
EXIT_REJECTED: Final[int] = 1
EXIT_CONFIG: Final[int] = 2
EXIT_ORACLE: Final[int] = 3

ORACLE_ERROR_CODES: Final[frozenset[str]] = frozenset(
    {"oracle_unavailable", "oracle_timeout", "oracle_malformed_response"}
)


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = EXIT_REJECTED

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="ux-autofix",
        description=(
            "ux-autofix — turn recurring storefront interaction failures into verified patches.\n\n"
            "Common workflows:\n"
            "  ux-autofix detect               Detect issues from recorded events\n"
            "  ux-autofix fix                  Generate, validate and apply fixes\n"
            "  ux-autofix check-patch p.json   Validate a patch set without applying it\n"
            "  ux-autofix guardrails show      Show the active style guardrails\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to autofix TOML config (default: ./autofix.toml if present).",
    )
    common.add_argument(
        "--workspace-root",
        default=None,
        help="Override paths.workspace_root (the storefront source tree).",
    )
    common.add_argument("--verbose", "-v", action="store_true", default=False, help="Show detailed output.")
    common.add_argument("--json", action="store_true", help="Emit deterministic JSON output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    detect_parser = subparsers.add_parser(
        "detect", parents=[common], help="Detect recurring interaction failures"
    )
    detect_parser.add_argument("--rules", default=None, help="Pattern rules YAML (default: bundled)")
    detect_parser.add_argument(
        "--dry-run", action="store_true", help="Report issues without persisting them"
    )
    detect_parser.set_defaults(handler=_cmd_detect)

    fix_parser = subparsers.add_parser(
        "fix", parents=[common], help="Generate, validate and apply fixes for open issues"
    )
    fix_parser.add_argument(
        "--issue", dest="issue_ids", action="append", default=None, help="Fix only this issue ID"
    )
    fix_parser.add_argument("--rules", default=None, help="Pattern rules YAML (default: bundled)")
    fix_parser.add_argument(
        "--no-detect", action="store_true", help="Skip detection and use persisted issues only"
    )
    fix_parser.add_argument(
        "--retry-failed", action="store_true", help="Also retry issues in fix_failed status"
    )
    fix_parser.add_argument(
        "--revert-on-failure",
        action="store_true",
        help="Restore every touched file when any issue fails to apply completely",
    )
    fix_parser.set_defaults(handler=_cmd_fix)

    check_parser = subparsers.add_parser(
        "check-patch", parents=[common], help="Validate a patch set (JSON) against the workspace"
    )
    check_parser.add_argument("patch_file", help="JSON file with a patch list or {patches: [...]}")
    check_parser.set_defaults(handler=_cmd_check_patch)

    status_parser = subparsers.add_parser("status", parents=[common], help="List persisted issues")
    status_parser.add_argument(
        "--status",
        dest="status_filter",
        choices=[item.value for item in IssueStatus],
        default=None,
        help="Only list issues in this status",
    )
    status_parser.add_argument("--attempts", action="store_true", help="Include fix attempts")
    status_parser.set_defaults(handler=_cmd_status)

    archive_parser = subparsers.add_parser(
        "archive", parents=[common], help="Archive issues whose last occurrence is old"
    )
    archive_parser.add_argument("--older-than-days", type=float, required=True)
    archive_parser.set_defaults(handler=_cmd_archive)

    guardrails_parser = subparsers.add_parser("guardrails", help="Inspect or update style guardrails")
    guardrail_commands = guardrails_parser.add_subparsers(dest="guardrails_command", required=True)

    show_parser = guardrail_commands.add_parser("show", parents=[common], help="Show active guardrails")
    show_parser.set_defaults(handler=_cmd_guardrails_show)

    extract_parser = guardrail_commands.add_parser(
        "extract", parents=[common], help="Extract guardrails from workspace sources"
    )
    extract_parser.add_argument(
        "--scan-dir",
        dest="scan_dirs",
        action="append",
        default=None,
        help=f"Directory to scan, relative to the workspace (default: {', '.join(DEFAULT_SCAN_DIRS)})",
    )
    extract_parser.add_argument("--site-id", default="extracted-site")
    extract_parser.add_argument(
        "--merge", action="store_true", help="Keep accents from the saved guardrails (hybrid)"
    )
    extract_parser.add_argument("--dry-run", action="store_true", help="Do not save the result")
    extract_parser.set_defaults(handler=_cmd_guardrails_extract)

    merge_parser = guardrail_commands.add_parser(
        "merge", parents=[common], help="Merge a partial guardrail JSON into the saved spec"
    )
    merge_parser.add_argument("partial_file")
    merge_parser.set_defaults(handler=_cmd_guardrails_merge)

    config_parser = subparsers.add_parser(
        "config", parents=[common], help="Show the effective (redacted) config"
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None, *, stdout: TextIO | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    namespace.stdout = stdout
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return EXIT_CONFIG

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_detect(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    events = _read_events(config)
    store = _issue_store(config)
    detector = PatternDetector(_load_rules(args))
    issues = detector.detect(events, known_issues=store.open_issues())
    if not args.dry_run:
        issues = [store.upsert(issue) for issue in issues]
    anomaly = detect_anomalies(events)

    if args.json:
        _emit_json(
            args,
            {
                "command": "detect",
                "events": len(events),
                "issues": [issue.to_dict() for issue in issues],
                "anomaly": None
                if anomaly is None
                else {
                    "type": anomaly.anomaly_type,
                    "severity": anomaly.severity.value,
                    "count": anomaly.count,
                },
                "persisted": not args.dry_run,
            },
        )
        return EXIT_OK

    renderer = _get_renderer(args)
    renderer.kv("Events analysed", len(events))
    if anomaly is not None:
        renderer.warning(
            f"{anomaly.anomaly_type} ({anomaly.severity.value}, {anomaly.count} recent events)"
        )
    renderer.summary(summarize_issues(issues))
    renderer.issues(issues, title="Detected issues:")
    if issues and not args.dry_run:
        renderer.next_steps(["ux-autofix fix"])
    return EXIT_OK


def _cmd_fix(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    run_id = generate_run_id()
    handle = setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=_config_str(config, "paths", "log_dir"),
            level=_config_str(config, "observability", "log_level"),
            redact_secrets=bool(config["observability"]["redact_secrets"]),
        )
    )
    try:
        results, reverted = asyncio.run(_run_fix(args, config))
    finally:
        shutdown_logging(handle)

    if args.json:
        _emit_json(
            args,
            {
                "command": "fix",
                "run_id": run_id,
                "results": [_result_payload(result) for result in results],
                "reverted_files": list(reverted),
            },
        )
    else:
        renderer = _get_renderer(args)
        renderer.kv("Run", run_id)
        if not results:
            renderer.text("No open issues to fix.")
        renderer.pipeline_results(results)
        if reverted:
            renderer.section("Reverted files:")
            renderer.items(list(reverted))
    return _exit_code_for(results)


async def _run_fix(
    args: argparse.Namespace, config: Mapping[str, Any]
) -> tuple[list[PipelineResult], tuple[str, ...]]:
    store = _issue_store(config)
    events = _read_events(config)
    if not args.no_detect:
        detector = PatternDetector(_load_rules(args))
        for issue in detector.detect(events, known_issues=store.open_issues()):
            store.upsert(issue)
    targets = _select_targets(store, args)

    context = SessionContext(cooldown_seconds=float(config["detection"]["cooldown_seconds"]))
    applier = PatchApplier(_config_str(config, "paths", "workspace_root"), context)
    repair = config["repair"]
    pipeline = RemediationPipeline(
        oracle=build_oracle(config),
        store=store,
        context=context,
        applier=applier,
        guardrails=_guardrail_store(config).load(),
        max_rounds=int(repair["max_rounds"]),
        excerpt_lines=int(repair["excerpt_lines"]),
        excerpt_chars=int(repair["excerpt_chars"]),
        oracle_timeout_seconds=float(config["oracle"]["timeout_seconds"]),
        max_concurrency=int(config["pipeline"]["max_concurrency"]),
    )
    results = await pipeline.process_issues(
        targets, bypass_cooldown=detect_anomalies(events) is not None
    )

    reverted: tuple[str, ...] = ()
    failed = any(not result.applied and not result.skipped for result in results)
    if args.revert_on_failure and failed and context.backups:
        report = await applier.revert_all()
        if not report.ok:
            raise CLIError(
                "revert incomplete: "
                + ", ".join(f"{path}: {error}" for path, error in sorted(report.errors.items()))
            )
        reverted = report.reverted_files
    return results, reverted


def _cmd_check_patch(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    patches = _load_patch_file(Path(args.patch_file))
    guardrails = _guardrail_store(config).load()
    applier = PatchApplier(_config_str(config, "paths", "workspace_root"), SessionContext())
    checked = GuardedPatchChecker(applier.read, guardrails).check(patches)
    style = validate_patches(patches, guardrails)

    if args.json:
        _emit_json(
            args,
            {
                "command": "check-patch",
                "valid": checked.valid,
                "results": [
                    {
                        "filePath": item.patch.file_path,
                        "valid": item.valid,
                        "reasons": list(item.reasons),
                    }
                    for item in checked.results
                ],
                "fixType": style.fix_type.value,
            },
        )
    else:
        renderer = _get_renderer(args)
        for index, item in enumerate(checked.results, start=1):
            label = f"patch {index} ({item.patch.file_path})"
            if item.valid:
                renderer.ok(label)
                continue
            renderer.fail(label)
            renderer.items(list(item.reasons), prefix="    - ")
        renderer.section(summarize_validation(style))
    return EXIT_OK if checked.valid else EXIT_REJECTED


def _cmd_status(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    store = _issue_store(config)
    issues = store.all_issues() if args.status_filter is None else store.list_by_status(args.status_filter)

    if args.json:
        payload: dict[str, object] = {"command": "status", "issues": [issue.to_dict() for issue in issues]}
        if args.attempts:
            payload["attempts"] = {
                issue.id: [attempt.to_dict() for attempt in store.list_fix_attempts(issue.id)]
                for issue in issues
            }
        _emit_json(args, payload)
        return EXIT_OK

    renderer = _get_renderer(args)
    renderer.issues(issues)
    if args.attempts:
        for issue in issues:
            attempts = store.list_fix_attempts(issue.id)
            if not attempts:
                continue
            renderer.section(f"Attempts for {issue.id}:")
            renderer.items(
                [
                    f"#{attempt.attempt_number} {attempt.outcome.value} "
                    f"({attempt.source.value}, {attempt.rounds_used} repair round(s))"
                    for attempt in attempts
                ]
            )
    return EXIT_OK


def _cmd_archive(args: argparse.Namespace) -> int:
    if args.older_than_days < 0:
        raise CLIError("--older-than-days must be >= 0", exit_code=EXIT_CONFIG)
    config = _load_effective_config(args)
    cutoff = datetime.now(tz=UTC) - timedelta(days=args.older_than_days)
    archived = _issue_store(config).archive_older_than(cutoff)
    if args.json:
        _emit_json(args, {"command": "archive", "archived": archived})
        return EXIT_OK
    renderer = _get_renderer(args)
    renderer.kv("Archived", len(archived))
    if renderer.verbose:
        renderer.items(archived)
    return EXIT_OK


def _cmd_guardrails_show(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    store = _guardrail_store(config)
    spec = store.load()
    if args.json:
        _emit_json(args, {"command": "guardrails show", "saved": store.exists(), "guardrails": spec.to_dict()})
        return EXIT_OK
    renderer = _get_renderer(args)
    renderer.kv("Source", store.path if store.exists() else "(built-in defaults)")
    renderer.text(json.dumps(spec.to_dict(), indent=2, sort_keys=True, ensure_ascii=False))
    return EXIT_OK


def _cmd_guardrails_extract(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    store = _guardrail_store(config)
    existing = store.load() if args.merge and store.exists() else None
    spec, report = extract_guardrails(
        _config_str(config, "paths", "workspace_root"),
        scan_dirs=tuple(args.scan_dirs) if args.scan_dirs else DEFAULT_SCAN_DIRS,
        site_id=args.site_id,
        existing=existing,
    )
    if not report.files_scanned:
        raise CLIError("no .tsx/.jsx/.css files found to extract guardrails from")
    if not args.dry_run:
        spec = store.save(spec)

    if args.json:
        _emit_json(
            args,
            {
                "command": "guardrails extract",
                "saved": not args.dry_run,
                "guardrails": spec.to_dict(),
                "report": report.to_dict(),
            },
        )
        return EXIT_OK
    renderer = _get_renderer(args)
    renderer.kv("Files scanned", len(report.files_scanned))
    renderer.kv("Provenance", spec.provenance.value)
    if report.conflicts:
        renderer.section("Conflicts:")
        renderer.items(report.conflicts)
    renderer.kv("Saved", store.path if not args.dry_run else "no (dry run)")
    return EXIT_OK


def _cmd_guardrails_merge(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    partial = _read_json(Path(args.partial_file))
    if not isinstance(partial, Mapping):
        raise CLIError("guardrail partial must be a JSON object", exit_code=EXIT_CONFIG)
    try:
        spec = _guardrail_store(config).merge(partial)
    except (TypeError, ValueError) as exc:
        raise CLIError(f"invalid guardrail partial: {exc}", exit_code=EXIT_CONFIG) from exc
    if args.json:
        _emit_json(args, {"command": "guardrails merge", "guardrails": spec.to_dict()})
        return EXIT_OK
    renderer = _get_renderer(args)
    renderer.kv("Version", spec.version)
    renderer.kv("Provenance", spec.provenance.value)
    return EXIT_OK


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    if args.json:
        _emit_json(args, {"command": "config", "config": redact_config(config)})
        return EXIT_OK
    _get_renderer(args).text(json.dumps(redact_config(config), indent=2, sort_keys=True, ensure_ascii=False))
    return EXIT_OK


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def build_oracle(config: Mapping[str, Any]) -> CompletionOracle:
    """Construct the configured provider oracle; the SDK is imported on first call."""

    oracle_config = config["oracle"]
    oracle_cls: type[AnthropicOracle] | type[OpenAIOracle]
    oracle_cls = OpenAIOracle if oracle_config["provider"] == "openai" else AnthropicOracle
    return oracle_cls(
        model=str(oracle_config["model"]),
        api_key_env=str(oracle_config["api_key_env"]),
        max_tokens=int(oracle_config["max_tokens"]),
        timeout_seconds=float(oracle_config["timeout_seconds"]),
    )


def _select_targets(store: IssueStore, args: argparse.Namespace) -> list[Issue]:
    if args.issue_ids:
        targets: list[Issue] = []
        for issue_id in args.issue_ids:
            try:
                validate_prefixed_id(issue_id, ISSUE_ID_PREFIX)
            except ValueError as exc:
                raise CLIError(f"invalid issue id {issue_id!r}: {exc}", exit_code=EXIT_CONFIG) from exc
            issue = store.get(issue_id)
            if issue is None:
                raise CLIError(f"unknown issue: {issue_id}", exit_code=EXIT_CONFIG)
            targets.append(issue)
        return targets
    statuses = [IssueStatus.DETECTED]
    if args.retry_failed:
        statuses.append(IssueStatus.FIX_FAILED)
    targets = [issue for status in statuses for issue in store.list_by_status(status)]
    return sorted(targets, key=lambda issue: (-issue.severity.weight, -issue.event_count))


def _exit_code_for(results: Sequence[PipelineResult]) -> int:
    attempted = [result for result in results if not result.skipped]
    failed = [result for result in attempted if not result.applied]
    if not failed:
        return EXIT_OK
    if all(result.error_code in ORACLE_ERROR_CODES for result in failed):
        return EXIT_ORACLE
    return EXIT_REJECTED


def _result_payload(result: PipelineResult) -> dict[str, object]:
    payload: dict[str, object] = {
        "issueId": result.issue.id,
        "status": result.issue.status.value,
        "skippedReason": result.skipped_reason,
        "errorCode": result.error_code,
        "diagnostic": result.issue.fix_diagnostic,
    }
    if result.attempt is not None:
        payload["attempt"] = result.attempt.to_dict()
    return payload


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, object] = {}
    if args.workspace_root is not None:
        overrides["paths.workspace_root"] = args.workspace_root
    try:
        return load_config(args.config_path, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=EXIT_CONFIG) from exc


def _load_rules(args: argparse.Namespace) -> tuple[PatternRule, ...]:
    try:
        return load_pattern_rules(args.rules)
    except (OSError, ValueError) as exc:
        raise CLIError(f"unable to load pattern rules: {exc}", exit_code=EXIT_CONFIG) from exc


def _read_events(config: Mapping[str, Any]) -> tuple[Event, ...]:
    window = timedelta(hours=float(config["detection"]["time_window_hours"]))
    store = EventStore(_config_str(config, "paths", "events_file"))
    return store.read_events(since=datetime.now(tz=UTC) - window)


def _issue_store(config: Mapping[str, Any]) -> IssueStore:
    return IssueStore(_config_str(config, "paths", "state_db"))


def _guardrail_store(config: Mapping[str, Any]) -> GuardrailStore:
    return GuardrailStore(_config_str(config, "paths", "guardrails_file"))


def _load_patch_file(path: Path) -> list[Patch]:
    payload = _read_json(path)
    raw_patches = payload.get("patches") if isinstance(payload, Mapping) else payload
    if not isinstance(raw_patches, list):
        raise CLIError("patch file must hold a list of patches or an object with 'patches'", exit_code=EXIT_CONFIG)
    try:
        return [Patch.from_dict(item) for item in raw_patches]
    except (AttributeError, TypeError, ValueError) as exc:
        raise CLIError(f"invalid patch in {path}: {exc}", exit_code=EXIT_CONFIG) from exc


def _read_json(path: Path) -> object:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise CLIError(f"unable to read {path}: {exc}", exit_code=EXIT_CONFIG) from exc
    except json.JSONDecodeError as exc:
        raise CLIError(f"invalid JSON in {path}: {exc}", exit_code=EXIT_CONFIG) from exc


def _config_str(config: Mapping[str, Any], section: str, key: str) -> str:
    return str(config[section][key])


def _emit_json(args: argparse.Namespace, payload: Mapping[str, object]) -> None:
    """Emit a JSON payload with deterministic formatting."""

    stream = args.stdout if args.stdout is not None else sys.stdout
    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False), file=stream)


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(verbose=args.verbose, stream=args.stdout)


__all__ = ["CLIError", "build_oracle", "build_parser", "run_cli"]
