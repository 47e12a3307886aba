"""Required-field and required-heading checks for configured documents."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, Mapping

from docgov.exceptions import DocumentReadError
from docgov.findings import Finding, FindingCode, Producer, error
from docgov.metadata import MetadataEntry, has_heading, normalize_key, parse_metadata
from docgov.schema import DocumentEntryDTO, DocumentSchemaDTO

logger = logging.getLogger(__name__)


def validate_document(
    path: str,
    text: str,
    schema: DocumentSchemaDTO,
    *,
    metadata: Mapping[str, MetadataEntry] | None = None,
    extra_headings: Iterable[str] = (),
    producer: Producer = Producer.DOCUMENTS,
) -> list[Finding]:
    """Check one document against its kind's schema.

    A field counts as present when the metadata section has an entry for it,
    even if the value is empty. Every missing field and heading is reported.
    """
    section = parse_metadata(text) if metadata is None else metadata
    findings: list[Finding] = []
    for field in schema.required_fields:
        if normalize_key(field) not in section:
            findings.append(
                error(
                    producer,
                    FindingCode.MISSING_METADATA,
                    f'Missing metadata field "{field}"',
                    path,
                )
            )
    headings = [*schema.required_headings, *extra_headings]
    for heading in dict.fromkeys(headings):
        if not has_heading(text, heading):
            findings.append(
                error(
                    producer,
                    FindingCode.MISSING_HEADING,
                    f'Missing required heading "## {heading}"',
                    path,
                )
            )
    return findings


def validate_documents(
    entries: Iterable[DocumentEntryDTO],
    contents: Mapping[str, str],
    schemas: Mapping[str, DocumentSchemaDTO],
) -> list[Finding]:
    findings: list[Finding] = []
    for entry in entries:
        text = contents.get(entry.path)
        if text is None:
            findings.append(
                error(
                    Producer.DOCUMENTS,
                    FindingCode.MISSING_FILE,
                    f"Missing required document: {entry.path}",
                    entry.path,
                )
            )
            continue
        schema = schemas.get(entry.kind)
        if schema is None:
            findings.append(
                error(
                    Producer.DOCUMENTS,
                    FindingCode.MISSING_SCHEMA,
                    f"No schema configured for document kind '{entry.kind}'",
                    entry.path,
                )
            )
            continue
        findings.extend(
            validate_document(entry.path, text, schema, extra_headings=entry.required_headings)
        )
    logger.debug("document schema checks produced %d finding(s)", len(findings))
    return findings


def validate_json_files(root: Path, paths: Iterable[str]) -> list[Finding]:
    findings: list[Finding] = []
    for rel in paths:
        target = root / rel
        if not target.is_file():
            findings.append(error(Producer.JSON, FindingCode.MISSING_FILE, f"Missing required file: {rel}", rel))
            continue
        try:
            raw = target.read_text(encoding="utf-8")
        except UnicodeError as exc:
            findings.append(error(Producer.JSON, FindingCode.INVALID_JSON, f"Invalid JSON: {exc}", rel))
            continue
        except OSError as exc:
            raise DocumentReadError(target, exc) from exc
        try:
            json.loads(raw)
        except json.JSONDecodeError as exc:
            findings.append(error(Producer.JSON, FindingCode.INVALID_JSON, f"Invalid JSON: {exc}", rel))
    return findings


def check_required_dirs(root: Path, dirs: Iterable[str]) -> list[Finding]:
    return [
        error(Producer.DOCUMENTS, FindingCode.MISSING_REQUIRED_DIR, f"Missing required docs directory: {rel}", rel)
        for rel in dirs
        if not (root / rel).is_dir()
    ]


def check_docs_index(
    contents: Mapping[str, str], index_path: str, entries: Iterable[str]
) -> list[Finding]:
    """An entry is listed when the index mentions it as `` `entry` `` or ``(entry)``."""
    text = contents.get(index_path)
    if text is None:
        return [
            error(Producer.DOCUMENTS, FindingCode.MISSING_DOCS_INDEX, f"Missing docs index: {index_path}", index_path)
        ]
    return [
        error(
            Producer.DOCUMENTS,
            FindingCode.MISSING_INDEX_ENTRY,
            f"{index_path} is missing required entry: {entry}",
            index_path,
        )
        for entry in entries
        if f"`{entry}`" not in text and f"({entry})" not in text
    ]


def check_required_links(
    contents: Mapping[str, str], required_links: Mapping[str, Iterable[str]]
) -> list[Finding]:
    findings: list[Finding] = []
    for source, links in required_links.items():
        text = contents.get(source)
        if text is None:
            findings.append(
                error(Producer.DOCUMENTS, FindingCode.MISSING_FILE, f"Missing required link source: {source}", source)
            )
            continue
        findings.extend(
            error(
                Producer.DOCUMENTS,
                FindingCode.MISSING_REQUIRED_LINK,
                f"{source} is missing required reference: {link}",
                source,
            )
            for link in links
            if link not in text
        )
    return findings
