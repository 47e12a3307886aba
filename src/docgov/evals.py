"""Release gate over an eval report.

The eval report shares the shape of the governance report artifact
(``summary``, ``regressions``, ``suites`` and ``evidence``), so a governance
report can itself be gated.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from docgov.conformance import is_evidence_path, resolve_inside_root
from docgov.exceptions import DocumentReadError
from docgov.findings import Finding, FindingCode, Producer, error, warning
from docgov.schema import EvalsDTO, RequiredSuiteDTO

logger = logging.getLogger(__name__)

PASS_RATE_TOLERANCE = 0.001
_SECONDS_PER_DAY = 86_400


@dataclass
class EvalAudit:
    path: str
    findings: list[Finding] = field(default_factory=list)
    suites: int = 0
    age_days: int | None = None
    pass_rate: float | None = None

    def fail(self, code: FindingCode, message: str) -> None:
        self.findings.append(error(Producer.EVALS, code, message, self.path))

    def invalid(self, message: str) -> None:
        self.fail(FindingCode.INVALID_EVAL_REPORT, message)


def _number(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def parse_report_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_utc(now: datetime) -> datetime:
    return now if now.tzinfo is not None else now.replace(tzinfo=timezone.utc)


def required_suite(raw: str | RequiredSuiteDTO) -> RequiredSuiteDTO:
    if isinstance(raw, str):
        return RequiredSuiteDTO(id=raw)
    return RequiredSuiteDTO(id=raw.id, status=raw.status.strip().lower() or "pass")


def _check_freshness(
    payload: dict[str, object], config: EvalsDTO, *, now: datetime, audit: EvalAudit
) -> None:
    generated_at = parse_report_timestamp(payload.get("generatedAtUtc"))
    if generated_at is None:
        audit.invalid(f"Report generatedAtUtc is invalid: {payload.get('generatedAtUtc')!r}")
        return
    seconds = abs((_as_utc(now) - generated_at).total_seconds())
    audit.age_days = int(seconds // _SECONDS_PER_DAY)
    if audit.age_days > config.max_age_days:
        audit.findings.append(
            warning(
                Producer.EVALS,
                FindingCode.STALE_EVAL_REPORT,
                f"Eval report is stale ({audit.age_days} days old, max {config.max_age_days}).",
                audit.path,
            )
        )


def _check_summary(payload: dict[str, object], config: EvalsDTO, audit: EvalAudit) -> None:
    summary = payload.get("summary")
    if not isinstance(summary, dict):
        audit.invalid("Report field 'summary' must be an object.")
        return
    total, passed, failed, pass_rate = (
        _number(summary.get(key)) for key in ("total", "passed", "failed", "passRate")
    )
    if total is None or passed is None or failed is None or pass_rate is None:
        audit.invalid("Report summary fields total/passed/failed/passRate must be numeric.")
        return
    if total <= 0:
        audit.invalid("Eval report summary.total must be greater than zero.")
        return
    if passed < 0 or failed < 0:
        audit.invalid("Eval report summary passed/failed values must be non-negative.")
    elif passed + failed > total:
        audit.invalid("Eval report summary is inconsistent: passed + failed exceeds total.")
    if not 0 <= pass_rate <= 1:
        audit.invalid("Eval report summary.passRate must be within [0,1].")
        return
    derived = passed / total
    if abs(derived - pass_rate) > PASS_RATE_TOLERANCE:
        audit.invalid(
            f"Eval report summary.passRate ({pass_rate}) does not match passed/total ({derived:.3f})."
        )
    audit.pass_rate = pass_rate
    if pass_rate < config.minimum_pass_rate:
        audit.fail(
            FindingCode.EVAL_THRESHOLD_BREACH,
            f"Eval passRate {pass_rate:.3f} is below minimum {config.minimum_pass_rate:.3f}.",
        )


def _check_regressions(payload: dict[str, object], config: EvalsDTO, audit: EvalAudit) -> None:
    regressions = payload.get("regressions")
    if not isinstance(regressions, dict):
        audit.invalid("Report field 'regressions' must be an object.")
        return
    critical = _number(regressions.get("criticalOpen", 0))
    high = _number(regressions.get("highOpen", 0))
    if critical is None or high is None or critical < 0 or high < 0:
        audit.invalid("Report regressions criticalOpen/highOpen must be non-negative numbers.")
        return
    if critical > config.max_critical_regressions:
        audit.fail(
            FindingCode.EVAL_THRESHOLD_BREACH,
            f"Open critical regressions ({critical:g}) exceed allowed max ({config.max_critical_regressions}).",
        )
    if high > config.max_high_regressions:
        audit.fail(
            FindingCode.EVAL_THRESHOLD_BREACH,
            f"Open high regressions ({high:g}) exceed allowed max ({config.max_high_regressions}).",
        )


def _check_suites(payload: dict[str, object], config: EvalsDTO, audit: EvalAudit) -> None:
    suites = payload.get("suites")
    observed: dict[str, str] = {}
    if not isinstance(suites, list) or not suites:
        audit.invalid("Report field 'suites' must be a non-empty array.")
        suites = []
    for index, suite in enumerate(suites):
        if not isinstance(suite, dict):
            audit.invalid(f"Suite entry #{index} must be an object.")
            continue
        suite_id = str(suite.get("id") or "").strip()
        status = str(suite.get("status") or "").strip().lower()
        if not suite_id:
            audit.invalid(f"Suite entry #{index} must include a non-empty id.")
            continue
        if not status:
            audit.invalid(f"Suite '{suite_id}' is missing status.")
        if suite_id in observed:
            audit.invalid(f"Duplicate suite id in report: '{suite_id}'.")
            continue
        total, passed, failed = (_number(suite.get(key, 0)) for key in ("total", "passed", "failed"))
        if total is None or total < 0:
            audit.invalid(f"Suite '{suite_id}' has invalid total value.")
        elif passed is None or failed is None or passed < 0 or failed < 0:
            audit.invalid(f"Suite '{suite_id}' has invalid passed/failed values.")
        elif passed + failed > total:
            audit.invalid(f"Suite '{suite_id}' is inconsistent: passed + failed exceeds total.")
        observed[suite_id] = status
    audit.suites = len(observed)

    for raw in config.required_suites:
        requirement = required_suite(raw)
        status = observed.get(requirement.id)
        if status is None:
            audit.fail(
                FindingCode.MISSING_REQUIRED_SUITE,
                f"Required eval suite is missing from report: '{requirement.id}'.",
            )
        elif status != requirement.status:
            audit.fail(
                FindingCode.EVAL_THRESHOLD_BREACH,
                f"Suite '{requirement.id}' status '{status}' does not satisfy required status '{requirement.status}'.",
            )


def _check_evidence(
    payload: dict[str, object], config: EvalsDTO, *, root: Path, audit: EvalAudit
) -> None:
    if not config.require_evidence_paths:
        return
    evidence = payload.get("evidence")
    if not isinstance(evidence, list) or not evidence:
        audit.fail(
            FindingCode.MISSING_EVIDENCE_PATH,
            "Report field 'evidence' must be a non-empty array when requireEvidencePaths is set.",
        )
        return
    for entry in evidence:
        rel = entry.strip() if is_evidence_path(entry) else ""
        if not rel:
            audit.fail(FindingCode.MISSING_EVIDENCE_PATH, "Eval evidence entries must be non-empty path strings.")
            continue
        target = resolve_inside_root(root, rel)
        if target is None:
            audit.fail(
                FindingCode.EVIDENCE_OUTSIDE_ROOT,
                f"Eval evidence path escapes repository root: {rel}",
            )
        elif not target.exists():
            audit.fail(FindingCode.MISSING_EVIDENCE_FILE, f"Eval evidence path does not exist: {rel}")


def check_eval_report_text(
    text: str, config: EvalsDTO, *, root: Path, now: datetime
) -> EvalAudit:
    audit = EvalAudit(path=config.report_path)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        audit.fail(FindingCode.INVALID_JSON, f"Invalid JSON in eval report: {exc}")
        return audit
    if not isinstance(payload, dict):
        audit.invalid("Eval report must be a JSON object.")
        return audit
    _check_freshness(payload, config, now=now, audit=audit)
    _check_summary(payload, config, audit)
    _check_regressions(payload, config, audit)
    _check_suites(payload, config, audit)
    _check_evidence(payload, config, root=root, audit=audit)
    logger.debug(
        "eval report %s: suites=%d findings=%d", audit.path, audit.suites, len(audit.findings)
    )
    return audit


def check_eval_report(root: Path, config: EvalsDTO, *, now: datetime) -> EvalAudit:
    target = root / config.report_path
    if not target.is_file():
        audit = EvalAudit(path=config.report_path)
        audit.fail(FindingCode.MISSING_FILE, f"Missing eval report file: {config.report_path}")
        return audit
    try:
        text = target.read_text(encoding="utf-8")
    except (OSError, UnicodeError) as exc:
        raise DocumentReadError(target, exc) from exc
    return check_eval_report_text(text, config, root=root, now=now)
