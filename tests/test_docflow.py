from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path

from docgov.docflow import (
    build_reference_graph,
    check_generated_artifacts,
    check_references,
    check_staleness,
    extract_refs,
    find_unreachable_docs,
    normalize_ref,
    parse_iso_date,
)
from docgov.findings import FindingCode, Severity
from docgov.schema import GeneratedArtifactDTO, ReferencesDTO, StalenessDTO
from tests.repo_helpers import markdown_doc, write_text

NOW = datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)


def test_normalize_ref_resolves_relative_to_source() -> None:
    assert normalize_ref("../plans/a.md#scope", "docs/guides/intro.md") == "docs/plans/a.md"
    assert normalize_ref("/AGENTS.md", "docs/guides/intro.md") == "AGENTS.md"
    assert normalize_ref("./b.md?x=1", "docs/a.md") == "docs/b.md"
    assert normalize_ref("https://example.com/a.md", "docs/a.md") is None
    assert normalize_ref("#anchor", "docs/a.md") is None
    assert normalize_ref("../../outside.md", "docs/a.md") is None


def test_extract_refs_combines_code_refs_and_links() -> None:
    text = "See `docs/index.md`, `AGENTS.md` and [guide](guide.md) or [again](./guide.md).\n"
    assert extract_refs(text, "docs/sub/page.md") == ["docs/index.md", "AGENTS.md", "docs/sub/guide.md"]


def test_check_references_reports_broken_and_unreachable(tmp_path: Path) -> None:
    contents = {
        "AGENTS.md": "Start at [index](docs/index.md).\n",
        "docs/index.md": "- [A](a.md)\n- [Gone](gone.md)\n",
        "docs/a.md": "Back to `AGENTS.md`.\n",
        "docs/orphan.md": "Nobody links here.\n",
    }
    for rel, text in contents.items():
        write_text(tmp_path, rel, text)
    findings = check_references(contents, ReferencesDTO(), root=tmp_path)
    assert [(finding.code, finding.file, finding.severity) for finding in findings] == [
        (FindingCode.BROKEN_DOC_REF, "docs/index.md", Severity.ERROR),
        (FindingCode.UNREACHABLE_DOC, "docs/orphan.md", Severity.WARNING),
    ]
    assert findings[0].message == "Broken reference in docs/index.md: docs/gone.md"


def test_unreachable_level_can_be_escalated() -> None:
    graph = build_reference_graph({"AGENTS.md": "", "docs/orphan.md": ""})
    findings = find_unreachable_docs(graph, ["AGENTS.md"], severity=Severity.ERROR)
    assert [(finding.file, finding.severity) for finding in findings] == [("docs/orphan.md", Severity.ERROR)]


def test_parse_iso_date() -> None:
    assert parse_iso_date(" 2026-01-31 ") == date(2026, 1, 31)
    assert parse_iso_date("2026-02-30") is None
    assert parse_iso_date("31/01/2026") is None
    assert parse_iso_date(None) is None


def _freshness_doc(stamp: str | None) -> str:
    fields = {"Owner": "docs"}
    if stamp is not None:
        fields["Last Updated"] = stamp
    return markdown_doc("Doc", fields=fields)


def test_staleness_flags_old_and_undated_documents() -> None:
    contents = {
        "docs/fresh.md": _freshness_doc("2026-10-10"),
        "docs/old.md": _freshness_doc("2026-01-01"),
        "docs/undated.md": _freshness_doc(None),
    }
    staleness = StalenessDTO(
        max_age_days=30,
        targets=["docs/fresh.md", "docs/old.md", "docs/undated.md", "docs/absent.md"],
    )
    audit = check_staleness(contents, staleness, now=NOW)
    assert [(finding.code, finding.file, finding.severity) for finding in audit.findings] == [
        (FindingCode.STALE_DOC, "docs/old.md", Severity.WARNING),
        (FindingCode.MISSING_STALENESS_TIMESTAMP, "docs/undated.md", Severity.ERROR),
        (FindingCode.MISSING_FILE, "docs/absent.md", Severity.ERROR),
    ]
    assert audit.checked == ["docs/fresh.md", "docs/old.md", "docs/undated.md"]


def test_stale_days_override_replaces_configured_threshold() -> None:
    contents = {"docs/doc.md": _freshness_doc("2026-10-10")}
    staleness = StalenessDTO(max_age_days=30, targets=["docs/doc.md"])
    audit = check_staleness(contents, staleness, now=NOW, stale_days=5)
    assert audit.max_age_days == 5
    assert [finding.code for finding in audit.findings] == [FindingCode.STALE_DOC]
    assert "(9 days)" in audit.findings[0].message


def test_code_span_refs_that_escape_the_root_are_dropped(tmp_path: Path) -> None:
    text = "See `docs/../../secrets.md` and `docs/a/../b.md`.\n"
    assert extract_refs(text, "docs/page.md") == ["docs/b.md"]
    write_text(tmp_path, "docs/page.md", text)
    findings = check_references({"docs/page.md": text}, ReferencesDTO(graphSeeds=["docs/page.md"]), root=tmp_path)
    assert [(finding.code, finding.message) for finding in findings] == [
        (FindingCode.BROKEN_DOC_REF, "Broken reference in docs/page.md: docs/b.md")
    ]


def test_regex_strategy_reads_dates_outside_metadata() -> None:
    contents = {
        "AGENTS.md": "# Agents\n\n_Last reviewed: 2026-10-01_\n",
        "docs/old.md": "# Old\n\n_Last reviewed: 2025-01-01_\n",
        "docs/meta.md": _freshness_doc("2026-10-12"),
    }
    staleness = StalenessDTO.model_validate(
        {
            "maxAgeDays": 60,
            "defaultStrategy": {"type": "regex", "pattern": r"^_Last reviewed: (\S+)_$"},
            "targets": [
                "AGENTS.md",
                "docs/old.md",
                {"path": "docs/meta.md", "strategy": {"type": "metadata_field", "field": "Last Updated"}},
                {"path": "docs/meta.md", "strategy": {"type": "regex", "pattern": "Reviewed on (.+)"}},
            ],
        }
    )
    audit = check_staleness(contents, staleness, now=NOW)
    assert [(finding.code, finding.file) for finding in audit.findings] == [
        (FindingCode.STALE_DOC, "docs/old.md"),
        (FindingCode.MISSING_STALENESS_TIMESTAMP, "docs/meta.md"),
    ]
    assert "date matching /Reviewed on (.+)/" in audit.findings[1].message


def test_generated_artifacts_presence_timestamp_and_age(tmp_path: Path) -> None:
    write_text(tmp_path, "docs/generated/report.json", '{"generatedAtUtc": "2026-10-18T00:00:00Z"}\n')
    write_text(tmp_path, "docs/generated/old.json", '{"generatedAtUtc": "2026-01-01T00:00:00Z"}\n')
    write_text(tmp_path, "docs/generated/summary.md", "Generated: 2026-10-17\n")
    write_text(tmp_path, "docs/generated/undated.md", "No stamp here.\n")
    artifacts = [
        GeneratedArtifactDTO.model_validate(payload)
        for payload in (
            {"path": "docs/generated/report.json", "maxAgeDays": 7, "timestampJsonField": "generatedAtUtc"},
            {"path": "docs/generated/old.json", "maxAgeDays": 7, "timestampJsonField": "generatedAtUtc"},
            {"path": "docs/generated/summary.md", "maxAgeDays": 7, "timestampRegex": r"^Generated: (\S+)$"},
            {"path": "docs/generated/undated.md", "maxAgeDays": 7, "timestampRegex": r"^Generated: (\S+)$"},
            {"path": "docs/generated/absent.json", "maxAgeDays": 7},
        )
    ]
    audit = check_generated_artifacts(tmp_path, artifacts, now=NOW)
    assert [(finding.code, finding.file, finding.severity) for finding in audit.findings] == [
        (FindingCode.STALE_GENERATED_ARTIFACT, "docs/generated/old.json", Severity.WARNING),
        (FindingCode.MISSING_GENERATED_ARTIFACT_TIMESTAMP, "docs/generated/undated.md", Severity.ERROR),
        (FindingCode.MISSING_GENERATED_ARTIFACT, "docs/generated/absent.json", Severity.ERROR),
    ]
    assert audit.checked == [
        "docs/generated/report.json",
        "docs/generated/old.json",
        "docs/generated/summary.md",
        "docs/generated/undated.md",
    ]
