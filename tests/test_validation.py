from __future__ import annotations

from pathlib import Path

import pytest

from docgov.exceptions import DocumentReadError
from docgov.findings import FindingCode, Producer
from docgov.schema import DocumentEntryDTO, DocumentSchemaDTO
from docgov.validation import (
    check_docs_index,
    check_required_dirs,
    check_required_links,
    validate_document,
    validate_documents,
    validate_json_files,
)
from tests.repo_helpers import markdown_doc, write_text


SCHEMA = DocumentSchemaDTO(
    required_fields=["Status", "Owner", "Last Updated", "Source of Truth"],
    required_headings=["Scope", "Rules", "Enforcement"],
)


def test_schema_completeness_reports_every_gap() -> None:
    text = markdown_doc(
        "Policy",
        fields={"Status": "active", "Owner": "docs"},
        headings=["Scope", "Rules"],
    )
    findings = validate_document("docs/policy.md", text, SCHEMA)
    assert [finding.code for finding in findings] == [
        FindingCode.MISSING_METADATA,
        FindingCode.MISSING_METADATA,
        FindingCode.MISSING_HEADING,
    ]
    assert findings[0].message == 'Missing metadata field "Last Updated"'
    assert findings[2].message == 'Missing required heading "## Enforcement"'
    assert {finding.file for finding in findings} == {"docs/policy.md"}


def test_empty_required_field_counts_as_present() -> None:
    text = markdown_doc(
        "Policy",
        fields={"Status": "", "Owner": "", "Last Updated": "", "Source of Truth": ""},
        headings=["Scope", "Rules", "Enforcement"],
    )
    assert validate_document("docs/policy.md", text, SCHEMA) == []


def test_document_without_metadata_section_misses_every_field() -> None:
    text = markdown_doc("Policy", headings=["Scope", "Rules", "Enforcement"])
    findings = validate_document("docs/policy.md", text, SCHEMA)
    assert [finding.code for finding in findings] == [FindingCode.MISSING_METADATA] * 4


def test_heading_match_is_case_sensitive() -> None:
    schema = DocumentSchemaDTO(required_headings=["Release Gates"])
    findings = validate_document("docs/evals.md", "## release gates\n", schema)
    assert [finding.code for finding in findings] == [FindingCode.MISSING_HEADING]


def test_validate_documents_fails_closed_on_unknown_kind() -> None:
    entries = [
        DocumentEntryDTO(path="docs/a.md", kind="policy"),
        DocumentEntryDTO(path="docs/b.md", kind="unknown"),
        DocumentEntryDTO(path="docs/c.md", kind="policy"),
    ]
    contents = {
        "docs/a.md": markdown_doc(
            "A",
            fields={"Status": "x", "Owner": "x", "Last Updated": "x", "Source of Truth": "x"},
            headings=["Scope", "Rules", "Enforcement"],
        ),
        "docs/b.md": "# B\n",
    }
    findings = validate_documents(entries, contents, {"policy": SCHEMA})
    assert [(finding.code, finding.file) for finding in findings] == [
        (FindingCode.MISSING_SCHEMA, "docs/b.md"),
        (FindingCode.MISSING_FILE, "docs/c.md"),
    ]
    assert all(finding.producer is Producer.DOCUMENTS for finding in findings)


def test_entry_headings_extend_kind_headings() -> None:
    entry = DocumentEntryDTO(path="docs/a.md", kind="policy", requiredHeadings=["Rules", "Appendix"])
    schema = DocumentSchemaDTO(required_headings=["Rules"])
    findings = validate_documents([entry], {"docs/a.md": "## Rules\n"}, {"policy": schema})
    assert [finding.message for finding in findings] == ['Missing required heading "## Appendix"']


def test_validate_json_files(tmp_path: Path) -> None:
    write_text(tmp_path, "docs/good.json", '{"ok": true}\n')
    write_text(tmp_path, "docs/bad.json", '{"ok": \n')
    findings = validate_json_files(tmp_path, ["docs/good.json", "docs/bad.json", "docs/missing.json"])
    assert [(finding.code, finding.file) for finding in findings] == [
        (FindingCode.INVALID_JSON, "docs/bad.json"),
        (FindingCode.MISSING_FILE, "docs/missing.json"),
    ]


def test_validate_json_files_treats_directory_as_missing(tmp_path: Path) -> None:
    (tmp_path / "docs" / "dir.json").mkdir(parents=True)
    findings = validate_json_files(tmp_path, ["docs/dir.json"])
    assert [finding.code for finding in findings] == [FindingCode.MISSING_FILE]


def test_document_read_error_message() -> None:
    error = DocumentReadError("docs/a.md", PermissionError("denied"))
    assert str(error) == "failed to read docs/a.md: denied"
    with pytest.raises(DocumentReadError):
        raise error


def test_required_dirs_must_be_directories(tmp_path: Path) -> None:
    (tmp_path / "docs" / "exec-plans").mkdir(parents=True)
    write_text(tmp_path, "docs/future", "not a directory\n")
    findings = check_required_dirs(tmp_path, ["docs/exec-plans", "docs/future", "docs/generated"])
    assert [(finding.code, finding.file) for finding in findings] == [
        (FindingCode.MISSING_REQUIRED_DIR, "docs/future"),
        (FindingCode.MISSING_REQUIRED_DIR, "docs/generated"),
    ]


def test_docs_index_entries_accept_code_spans_and_links() -> None:
    contents = {"docs/index.md": "- `docs/a.md`\n- [B](docs/b.md)\n- docs/c.md\n"}
    findings = check_docs_index(contents, "docs/index.md", ["docs/a.md", "docs/b.md", "docs/c.md"])
    assert [(finding.code, finding.message) for finding in findings] == [
        (FindingCode.MISSING_INDEX_ENTRY, "docs/index.md is missing required entry: docs/c.md")
    ]


def test_missing_docs_index_is_a_single_finding() -> None:
    findings = check_docs_index({}, "docs/index.md", ["docs/a.md", "docs/b.md"])
    assert [(finding.code, finding.file) for finding in findings] == [
        (FindingCode.MISSING_DOCS_INDEX, "docs/index.md")
    ]


def test_required_links_are_substring_matches() -> None:
    contents = {"AGENTS.md": "Read `docs/index.md` and ARCHITECTURE.md first.\n"}
    findings = check_required_links(
        contents,
        {"AGENTS.md": ["docs/index.md", "ARCHITECTURE.md", "docs/PLANS.md"], "README.md": ["AGENTS.md"]},
    )
    assert [(finding.code, finding.file) for finding in findings] == [
        (FindingCode.MISSING_REQUIRED_LINK, "AGENTS.md"),
        (FindingCode.MISSING_FILE, "README.md"),
    ]
    assert findings[0].message == "AGENTS.md is missing required reference: docs/PLANS.md"
