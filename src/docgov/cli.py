from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import typer

from docgov.config import (
    STALE_DAYS_ENV,
    governance_defaults,
    load_governance_config,
    merge_payload,
    parse_stale_days,
    stale_days_from_env,
)
from docgov.conformance import check_conformance
from docgov.engine import audit_plans, run_governance
from docgov.evals import check_eval_report
from docgov.exceptions import DocumentReadError, GovernanceError
from docgov.findings import Producer
from docgov.governance_paths import GOVERNANCE_PATHS
from docgov.lifecycle import Bucket, lifecycle_policy_from_config
from docgov.metadata import set_metadata_fields
from docgov.report import (
    GovernanceReport,
    ProducerResult,
    aggregate,
    exit_code,
    render_console,
    report_artifact,
)
from docgov.runtime.json_io import write_json_pretty
from docgov.schema import ConformanceDTO, EvalsDTO, GovernanceConfigDTO

app = typer.Typer(add_completion=False)

_FATAL_EXIT = 2


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to stderr."),
) -> None:
    """Documentation governance checks."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(levelname)s %(name)s: %(message)s",
        )


def _fail(exc: Exception) -> None:
    typer.secho(str(exc), err=True, fg=typer.colors.RED)
    raise typer.Exit(code=_FATAL_EXIT)


def _resolve(root: Path, value: object) -> Path:
    path = Path(str(value))
    return path if path.is_absolute() else root / path


def _resolve_config_path(root: Path, config: Optional[Path]) -> Path:
    defaults = governance_defaults(root=root)
    merged = merge_payload({"config": None if config is None else str(config)}, defaults)
    value = merged.get("config")
    if value is None:
        return GOVERNANCE_PATHS.config_path(root=root)
    return _resolve(root, value)


def _load_optional_config(root: Path, config: Optional[Path]) -> GovernanceConfigDTO:
    path = _resolve_config_path(root, config)
    if config is None and not path.exists():
        return GovernanceConfigDTO()
    return load_governance_config(path)


def _emit(report: GovernanceReport, *, tag: str) -> None:
    for line in render_console(report, tag=tag):
        typer.echo(line)


@app.command("check")
def check(
    root: Path = typer.Option(Path("."), "--root"),
    config: Optional[Path] = typer.Option(None, "--config", help="Governance configuration (JSON or YAML)."),
    report: Optional[Path] = typer.Option(None, "--report", help="Where to write the JSON report."),
    write_report: bool = typer.Option(True, "--write-report/--no-write-report"),
    stale_days: Optional[str] = typer.Option(
        None,
        "--stale-days",
        help=f"Override the staleness threshold (positive integer); falls back to ${STALE_DAYS_ENV}.",
    ),
) -> None:
    """Run every configured governance check and write the report artifact."""
    try:
        defaults = governance_defaults(root=root)
        options = merge_payload({"report": None if report is None else str(report)}, defaults)
        override = parse_stale_days(stale_days)
        if override is None:
            override = stale_days_from_env()
        if override is None:
            override = parse_stale_days(options.get("stale_days"))
        governance = load_governance_config(_resolve_config_path(root, config))
        now = datetime.now(timezone.utc)
        result = run_governance(root, governance, now=now, stale_days=override)
    except GovernanceError as exc:
        _fail(exc)
    _emit(result, tag="docgov")
    if write_report:
        report_path = (
            _resolve(root, options["report"])
            if options.get("report") is not None
            else GOVERNANCE_PATHS.report_path(root=root)
        )
        write_json_pretty(report_path, report_artifact(result, generated_at=now))
        typer.echo(f"Wrote governance report: {report_path}")
    raise typer.Exit(code=exit_code(result))


@app.command("plans")
def plans(
    root: Path = typer.Option(Path("."), "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
    list_plans: bool = typer.Option(False, "--list", help="List plans by priority, then id."),
) -> None:
    """Validate plan metadata and bucket/status consistency."""
    try:
        governance = _load_optional_config(root, config)
        policy = lifecycle_policy_from_config(governance.plans)
        audit = audit_plans(root, policy)
    except GovernanceError as exc:
        _fail(exc)
    counts = ", ".join(f"{bucket}={audit.count(bucket)}" for bucket in Bucket)
    typer.echo(f"[plan-metadata] plans: {counts}")
    if list_plans:
        for plan in audit.by_priority():
            typer.echo(f"- {plan.priority} {plan.plan_id or '?'} [{plan.bucket}] {plan.path}")
    result = aggregate(
        [
            ProducerResult(
                producer=Producer.PLANS,
                findings=tuple(audit.findings),
                files=tuple(plan.path for plan in audit.plans),
            )
        ],
        stats={"plansAnalyzed": len(audit.plans)},
    )
    _emit(result, tag="plan-metadata")
    raise typer.Exit(code=exit_code(result))


@app.command("conformance")
def conformance(
    root: Path = typer.Option(Path("."), "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
    path: Optional[str] = typer.Option(None, "--path", help="Conformance artifact path."),
) -> None:
    """Validate the capability manifest."""
    try:
        governance = _load_optional_config(root, config)
        target = path or (governance.conformance or ConformanceDTO()).path
        audit = check_conformance(root, target)
    except GovernanceError as exc:
        _fail(exc)
    result = aggregate(
        [
            ProducerResult(
                producer=Producer.CONFORMANCE,
                findings=tuple(audit.findings),
                files=(target,) if (root / target).is_file() else (),
            )
        ],
        stats={"capabilitiesAnalyzed": audit.capabilities},
    )
    _emit(result, tag="article-conformance")
    raise typer.Exit(code=exit_code(result))


@app.command("evals")
def evals(
    root: Path = typer.Option(Path("."), "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
    report_path: Optional[str] = typer.Option(None, "--report-path", help="Eval report to gate."),
) -> None:
    """Gate an eval report against the configured release thresholds."""
    try:
        governance = _load_optional_config(root, config)
        settings = governance.evals or EvalsDTO()
        if report_path is not None:
            settings = settings.model_copy(update={"report_path": report_path})
        audit = check_eval_report(root, settings, now=datetime.now(timezone.utc))
    except GovernanceError as exc:
        _fail(exc)
    result = aggregate(
        [
            ProducerResult(
                producer=Producer.EVALS,
                findings=tuple(audit.findings),
                files=(settings.report_path,) if (root / settings.report_path).is_file() else (),
            )
        ],
        stats={"evalSuitesAnalyzed": audit.suites},
    )
    _emit(result, tag="eval-verify")
    raise typer.Exit(code=exit_code(result))


def _parse_field_assignment(raw: str) -> tuple[str, str]:
    key, sep, value = raw.partition("=")
    if not sep or not key.strip():
        raise typer.BadParameter(f"expected KEY=VALUE, got {raw!r}", param_hint="--field")
    return key.strip(), value.strip()


@app.command("set-metadata")
def set_metadata(
    path: Path = typer.Argument(..., help="Document to update."),
    field: List[str] = typer.Option([], "--field", "-f", help="KEY=VALUE (repeatable)."),
    check_only: bool = typer.Option(
        False, "--check", help="Exit 1 when the document would change; write nothing."
    ),
) -> None:
    """Write or update a document's metadata section in canonical order."""
    updates = dict(_parse_field_assignment(raw) for raw in field)
    try:
        original = path.read_text(encoding="utf-8")
    except (OSError, UnicodeError) as exc:
        _fail(DocumentReadError(path, exc))
    updated = set_metadata_fields(original, updates)
    if updated == original:
        typer.echo(f"{path}: metadata up to date")
        raise typer.Exit(code=0)
    if check_only:
        typer.echo(f"{path}: metadata would change")
        raise typer.Exit(code=1)
    path.write_text(updated, encoding="utf-8")
    typer.echo(f"{path}: metadata updated")
