from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from docgov.evals import check_eval_report, check_eval_report_text, parse_report_timestamp
from docgov.findings import FindingCode, Severity
from docgov.schema import EvalsDTO
from tests.repo_helpers import write_json, write_text

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
REPORT = "docs/generated/evals-report.json"


def _report(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "generatedAtUtc": "2026-10-18T08:00:00Z",
        "summary": {"total": 10, "passed": 9, "failed": 1, "passRate": 0.9},
        "regressions": {"criticalOpen": 0, "highOpen": 0},
        "suites": [
            {"id": "smoke", "status": "pass", "total": 4, "passed": 4, "failed": 0},
            {"id": "regression", "status": "fail", "total": 6, "passed": 5, "failed": 1},
        ],
        "evidence": ["docs/generated/evals/run.log"],
    }
    payload.update(overrides)
    return payload


def _audit(root: Path, payload: object, config: EvalsDTO | None = None):
    return check_eval_report_text(json.dumps(payload), config or EvalsDTO(), root=root, now=NOW)


def _codes(audit) -> list[FindingCode]:
    return [finding.code for finding in audit.findings]


def test_valid_report_passes(tmp_path: Path) -> None:
    write_text(tmp_path, "docs/generated/evals/run.log", "ok\n")
    audit = _audit(tmp_path, _report(), EvalsDTO(minimum_pass_rate=0.8, required_suites=["smoke"]))
    assert audit.findings == []
    assert audit.suites == 2
    assert audit.age_days == 1


def test_stale_report_is_a_warning(tmp_path: Path) -> None:
    write_text(tmp_path, "docs/generated/evals/run.log", "ok\n")
    audit = _audit(tmp_path, _report(generatedAtUtc="2026-09-01T00:00:00Z"))
    assert [(finding.code, finding.severity) for finding in audit.findings] == [
        (FindingCode.STALE_EVAL_REPORT, Severity.WARNING)
    ]


def test_thresholds_and_required_suites(tmp_path: Path) -> None:
    write_text(tmp_path, "docs/generated/evals/run.log", "ok\n")
    config = EvalsDTO.model_validate(
        {
            "minimumPassRate": 0.95,
            "maxCriticalRegressions": 0,
            "maxHighRegressions": 1,
            "requiredSuites": ["smoke", {"id": "regression", "status": "PASS"}, "safety"],
        }
    )
    audit = _audit(tmp_path, _report(regressions={"criticalOpen": 1, "highOpen": 1}), config)
    assert _codes(audit) == [
        FindingCode.EVAL_THRESHOLD_BREACH,
        FindingCode.EVAL_THRESHOLD_BREACH,
        FindingCode.EVAL_THRESHOLD_BREACH,
        FindingCode.MISSING_REQUIRED_SUITE,
    ]


def test_inconsistent_summary_is_invalid(tmp_path: Path) -> None:
    write_text(tmp_path, "docs/generated/evals/run.log", "ok\n")
    audit = _audit(tmp_path, _report(summary={"total": 10, "passed": 9, "failed": 1, "passRate": 0.5}))
    assert _codes(audit) == [FindingCode.INVALID_EVAL_REPORT]
    assert "does not match passed/total" in audit.findings[0].message


def test_shape_errors_are_collected(tmp_path: Path) -> None:
    payload = {
        "generatedAtUtc": "yesterday",
        "summary": {"total": "10"},
        "regressions": [],
        "suites": [{"id": "a", "status": "pass"}, {"id": "a", "status": "pass"}, {"status": "x"}],
        "evidence": ["../outside.log", "docs/missing.log", 3],
    }
    audit = _audit(tmp_path, payload)
    assert _codes(audit) == [
        FindingCode.INVALID_EVAL_REPORT,
        FindingCode.INVALID_EVAL_REPORT,
        FindingCode.INVALID_EVAL_REPORT,
        FindingCode.INVALID_EVAL_REPORT,
        FindingCode.INVALID_EVAL_REPORT,
        FindingCode.EVIDENCE_OUTSIDE_ROOT,
        FindingCode.MISSING_EVIDENCE_FILE,
        FindingCode.MISSING_EVIDENCE_PATH,
    ]


def test_evidence_check_can_be_disabled(tmp_path: Path) -> None:
    audit = _audit(tmp_path, _report(evidence=[]), EvalsDTO(require_evidence_paths=False))
    assert audit.findings == []


def test_invalid_json_and_missing_report(tmp_path: Path) -> None:
    audit = check_eval_report_text("nope", EvalsDTO(), root=tmp_path, now=NOW)
    assert _codes(audit) == [FindingCode.INVALID_JSON]
    missing = check_eval_report(tmp_path, EvalsDTO(), now=NOW)
    assert [(finding.code, finding.file) for finding in missing.findings] == [
        (FindingCode.MISSING_FILE, REPORT)
    ]


def test_check_eval_report_reads_configured_path(tmp_path: Path) -> None:
    write_text(tmp_path, "docs/generated/evals/run.log", "ok\n")
    write_json(tmp_path, REPORT, _report())
    assert check_eval_report(tmp_path, EvalsDTO(), now=NOW).findings == []


def test_naive_timestamps_are_read_as_utc() -> None:
    parsed = parse_report_timestamp("2026-10-18T08:00:00")
    assert parsed == datetime(2026, 10, 18, 8, 0, tzinfo=timezone.utc)
    assert parse_report_timestamp("") is None


def test_nul_byte_evidence_path_is_reported(tmp_path: Path) -> None:
    audit = _audit(tmp_path, _report(evidence=["docs/a\x00b.md"]))
    assert _codes(audit) == [FindingCode.MISSING_EVIDENCE_PATH]


def test_oversized_integers_are_invalid_not_fatal(tmp_path: Path) -> None:
    write_text(tmp_path, "docs/generated/evals/run.log", "ok\n")
    huge = 10**400
    summary = {"total": huge, "passed": 9, "failed": 1, "passRate": 0.9}
    audit = _audit(tmp_path, _report(summary=summary, regressions={"criticalOpen": huge, "highOpen": 0}))
    assert _codes(audit) == [FindingCode.INVALID_EVAL_REPORT, FindingCode.INVALID_EVAL_REPORT]
    assert "must be numeric" in audit.findings[0].message
