"""Merge producer findings into one governance report and render it."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType

from docgov.findings import PRODUCER_RANK, Finding, Producer
from docgov.json_types import JSONObject
from docgov.schema import FindingDTO, GovernanceReportDTO

STAT_LABELS: Mapping[str, str] = MappingProxyType(
    {
        "documentsAnalyzed": "Documents analyzed",
        "markdownFilesAnalyzed": "Markdown files analyzed",
        "plansAnalyzed": "Plans analyzed",
        "jsonFilesAnalyzed": "JSON files analyzed",
        "capabilitiesAnalyzed": "Capabilities analyzed",
        "evalSuitesAnalyzed": "Eval suites analyzed",
        "brokenRefCount": "Broken references",
    }
)


@dataclass(frozen=True)
class ProducerResult:
    """Findings from one producer and the files it looked at.

    ``files`` lists the repository-relative paths the producer actually read;
    they become the report's evidence list.
    """

    producer: Producer
    findings: tuple[Finding, ...] = ()
    files: tuple[str, ...] = ()


@dataclass(frozen=True)
class SuiteTally:
    id: str
    status: str
    total: int
    passed: int
    failed: int


@dataclass(frozen=True)
class GovernanceReport:
    warnings: tuple[Finding, ...]
    errors: tuple[Finding, ...]
    suites: tuple[SuiteTally, ...]
    evidence: tuple[str, ...]
    subjects: int
    failed_subjects: int
    stats: Mapping[str, int] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return not self.errors

    @property
    def pass_rate(self) -> float:
        if not self.subjects:
            return 1.0
        return round((self.subjects - self.failed_subjects) / self.subjects, 4)


def sort_findings(findings: Iterable[Finding]) -> list[Finding]:
    # sorted() is stable, so emission order breaks ties within a file.
    return sorted(
        findings,
        key=lambda finding: (
            PRODUCER_RANK[finding.producer],
            finding.file is not None,
            finding.file or "",
        ),
    )


def _suite_tally(producer: Producer, results: list[ProducerResult]) -> SuiteTally:
    findings = [finding for result in results for finding in result.findings]
    subjects = {path for result in results for path in result.files}
    subjects.update(finding.file for finding in findings if finding.file)
    failing = {finding.file for finding in findings if finding.is_error and finding.file}
    status = "fail" if any(finding.is_error for finding in findings) else "pass"
    return SuiteTally(
        id=str(producer),
        status=status,
        total=len(subjects),
        passed=len(subjects - failing),
        failed=len(failing),
    )


def aggregate(
    results: Iterable[ProducerResult], *, stats: Mapping[str, int] | None = None
) -> GovernanceReport:
    by_producer: dict[Producer, list[ProducerResult]] = {}
    for result in results:
        by_producer.setdefault(result.producer, []).append(result)

    ordered = sort_findings(
        finding
        for producer in sorted(by_producer, key=PRODUCER_RANK.__getitem__)
        for result in by_producer[producer]
        for finding in result.findings
    )
    subjects: set[str] = set()
    failing: set[str] = set()
    evidence: set[str] = set()
    for producer_results in by_producer.values():
        for result in producer_results:
            evidence.update(result.files)
            subjects.update(result.files)
            for finding in result.findings:
                if finding.file:
                    subjects.add(finding.file)
                    if finding.is_error:
                        failing.add(finding.file)

    return GovernanceReport(
        warnings=tuple(finding for finding in ordered if not finding.is_error),
        errors=tuple(finding for finding in ordered if finding.is_error),
        suites=tuple(
            _suite_tally(producer, by_producer[producer])
            for producer in sorted(by_producer, key=PRODUCER_RANK.__getitem__)
        ),
        evidence=tuple(sorted(evidence)),
        subjects=len(subjects),
        failed_subjects=len(failing),
        stats=MappingProxyType(dict(stats or {})),
    )


def render_console(report: GovernanceReport, *, tag: str = "docgov") -> list[str]:
    lines = [f"[{tag}] Doc governance check"]
    for key, value in report.stats.items():
        lines.append(f"- {STAT_LABELS.get(key, key)}: {value}")
    if report.warnings:
        lines.append("")
        lines.append(f"Warnings ({len(report.warnings)}):")
        lines.extend(finding.format_line() for finding in report.warnings)
    if report.errors:
        lines.append("")
        lines.append(f"Errors ({len(report.errors)}):")
        lines.extend(finding.format_line() for finding in report.errors)
    verdict = "passed" if report.passed else "failed"
    lines.append("")
    lines.append(
        f"[{tag}] {verdict} (files={report.subjects} "
        f"warnings={len(report.warnings)} errors={len(report.errors)})"
    )
    return lines


def format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def report_artifact(report: GovernanceReport, *, generated_at: datetime) -> JSONObject:
    """Build the machine-readable report payload.

    The shape matches what the eval gate in :mod:`docgov.evals` reads, so a
    report can be fed back through ``docgov evals``.
    """
    dto = GovernanceReportDTO(
        generated_at_utc=format_timestamp(generated_at),
        summary={
            "total": report.subjects,
            "passed": report.subjects - report.failed_subjects,
            "failed": report.failed_subjects,
            "passRate": report.pass_rate,
        },
        regressions={
            "criticalOpen": len(report.errors),
            "highOpen": len(report.warnings),
        },
        suites=[
            {
                "id": suite.id,
                "status": suite.status,
                "total": suite.total,
                "passed": suite.passed,
                "failed": suite.failed,
            }
            for suite in report.suites
        ],
        evidence=list(report.evidence),
        stats=dict(report.stats),
        warnings=[FindingDTO.model_validate(finding.to_payload()) for finding in report.warnings],
        errors=[FindingDTO.model_validate(finding.to_payload()) for finding in report.errors],
        passed=report.passed,
    )
    return dto.model_dump(by_alias=True)


def exit_code(report: GovernanceReport) -> int:
    return 0 if report.passed else 1
