"""Capability manifest (conformance artifact) validation.

Validation is exhaustive: every violation across every capability is collected
before reporting. The only early exit is a payload that is not JSON at all.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from docgov.exceptions import DocumentReadError
from docgov.findings import Finding, FindingCode, Producer, error

logger = logging.getLogger(__name__)

SNAKE_CASE_RE = re.compile(r"^[a-z0-9_]+$")
CAPABILITY_STATUSES = frozenset({"implemented", "partial"})
MIN_TIMESTAMP_LENGTH = 20


@dataclass
class ConformanceAudit:
    path: str
    findings: list[Finding] = field(default_factory=list)
    capabilities: int = 0
    evidence_refs: int = 0

    def add(self, code: FindingCode, message: str) -> None:
        self.findings.append(error(Producer.CONFORMANCE, code, message, self.path))


def is_snake_case(value: object) -> bool:
    return isinstance(value, str) and SNAKE_CASE_RE.fullmatch(value) is not None


def _is_nonempty_str(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip())


def is_evidence_path(value: object) -> bool:
    return _is_nonempty_str(value) and "\x00" not in value


def parse_utc_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str) or len(value) < MIN_TIMESTAMP_LENGTH:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def resolve_inside_root(root: Path, candidate: str) -> Path | None:
    """Resolve ``candidate`` against ``root``; ``None`` unless strictly inside it."""
    base = root.resolve()
    try:
        target = (base / candidate).resolve()
    except (OSError, ValueError):
        return None
    if target == base or not target.is_relative_to(base):
        return None
    return target


def _check_header(payload: dict[str, object], audit: ConformanceAudit) -> None:
    if parse_utc_timestamp(payload.get("generatedAtUtc")) is None:
        audit.add(FindingCode.INVALID_CONFORMANCE_FIELD, "'generatedAtUtc' must be an ISO datetime string.")
    if not _is_nonempty_str(payload.get("source")):
        audit.add(FindingCode.INVALID_CONFORMANCE_FIELD, "'source' must be a non-empty string.")
    if not is_snake_case(payload.get("repositoryProfile")):
        audit.add(FindingCode.INVALID_IDENTIFIER, "'repositoryProfile' must be a snake_case string.")
    if not _is_nonempty_str(payload.get("purpose")):
        audit.add(FindingCode.INVALID_CONFORMANCE_FIELD, "'purpose' must be a non-empty string.")

    out_of_scope = payload.get("outOfScope")
    if not isinstance(out_of_scope, list) or not out_of_scope:
        audit.add(FindingCode.INVALID_CONFORMANCE_FIELD, "'outOfScope' must be a non-empty array.")
        return
    seen: set[str] = set()
    for item in out_of_scope:
        if not is_snake_case(item):
            audit.add(FindingCode.INVALID_IDENTIFIER, f"Out-of-scope item must be snake_case: {item}")
            continue
        if item in seen:
            audit.add(FindingCode.DUPLICATE_OUT_OF_SCOPE, f"Duplicate out-of-scope item: {item}")
        seen.add(item)


def _check_evidence(
    capability_id: str, evidence: object, *, root: Path, audit: ConformanceAudit
) -> None:
    if not isinstance(evidence, list) or not evidence:
        audit.add(
            FindingCode.MISSING_EVIDENCE_PATH,
            f"Capability '{capability_id}' must include at least one evidence path.",
        )
        return
    for entry in evidence:
        if not is_evidence_path(entry):
            audit.add(
                FindingCode.MISSING_EVIDENCE_PATH,
                f"Capability '{capability_id}' contains invalid evidence path value.",
            )
            continue
        audit.evidence_refs += 1
        target = resolve_inside_root(root, entry)
        if target is None:
            audit.add(
                FindingCode.EVIDENCE_OUTSIDE_ROOT,
                f"Capability '{capability_id}' has out-of-repo evidence path: {entry}",
            )
        elif not target.is_file():
            audit.add(
                FindingCode.MISSING_EVIDENCE_FILE,
                f"Capability '{capability_id}' references missing evidence file: {entry}",
            )


def _check_capabilities(
    payload: dict[str, object], *, root: Path, audit: ConformanceAudit
) -> None:
    capabilities = payload.get("coreCapabilities")
    if not isinstance(capabilities, list) or not capabilities:
        audit.add(FindingCode.INVALID_CONFORMANCE_FIELD, "'coreCapabilities' must be a non-empty array.")
        return
    seen_ids: set[str] = set()
    for index, capability in enumerate(capabilities):
        if not isinstance(capability, dict):
            audit.add(
                FindingCode.INVALID_CONFORMANCE_FIELD,
                f"Core capability entry #{index} must be an object.",
            )
            continue
        audit.capabilities += 1
        raw_id = capability.get("id")
        capability_id = raw_id if isinstance(raw_id, str) else f"#{index}"
        if not is_snake_case(raw_id):
            audit.add(FindingCode.INVALID_IDENTIFIER, f"Capability id must be snake_case: {raw_id}")
        elif raw_id in seen_ids:
            audit.add(FindingCode.DUPLICATE_CAPABILITY_ID, f"Duplicate capability id: {raw_id}")
        else:
            seen_ids.add(raw_id)
        status = capability.get("status")
        if not isinstance(status, str) or status not in CAPABILITY_STATUSES:
            audit.add(
                FindingCode.INVALID_CAPABILITY_STATUS,
                f"Capability '{capability_id}' has invalid status: {status}. Allowed: implemented, partial.",
            )
        _check_evidence(capability_id, capability.get("evidence"), root=root, audit=audit)


def check_conformance_text(text: str, *, root: Path, path: str) -> ConformanceAudit:
    audit = ConformanceAudit(path=path)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        audit.add(FindingCode.INVALID_JSON, f"Invalid JSON in conformance artifact: {exc}")
        return audit
    if not isinstance(payload, dict):
        audit.add(FindingCode.INVALID_CONFORMANCE_FIELD, "Conformance payload must be a JSON object.")
        return audit
    _check_header(payload, audit)
    _check_capabilities(payload, root=root, audit=audit)
    logger.debug(
        "conformance %s: capabilities=%d evidence=%d findings=%d",
        path,
        audit.capabilities,
        audit.evidence_refs,
        len(audit.findings),
    )
    return audit


def check_conformance(root: Path, path: str) -> ConformanceAudit:
    target = root / path
    if not target.is_file():
        audit = ConformanceAudit(path=path)
        audit.add(FindingCode.MISSING_FILE, f"Missing conformance file: {path}")
        return audit
    try:
        text = target.read_text(encoding="utf-8")
    except (OSError, UnicodeError) as exc:
        raise DocumentReadError(target, exc) from exc
    return check_conformance_text(text, root=root, path=path)
