"""Reference graph between governance documents, plus freshness checks.

References are collected from two sources: backticked repository paths
(``AGENTS.md``, ``README.md``, ``ARCHITECTURE.md`` or anything under
``docs/`` with a ``.md``/``.json``/``.yaml`` suffix) and markdown links.
Link targets are resolved relative to the referring document; absolute
(``/``-prefixed) targets are resolved against the repository root.
Backticked paths always resolve from the root, and refs that would leave it
are dropped.

Freshness covers documents, dated by a metadata field or a regex, and
generated artifacts, dated by a regex or a JSON field.
"""

from __future__ import annotations

import json
import logging
import re
from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Iterable, Mapping, Sequence

from docgov.evals import parse_report_timestamp
from docgov.exceptions import DocumentReadError
from docgov.findings import Finding, FindingCode, Producer, Severity, error, warning
from docgov.governance_paths import GOVERNANCE_PATHS, normalize_rel
from docgov.metadata import metadata_value, parse_metadata
from docgov.schema import (
    DateStrategyDTO,
    GeneratedArtifactDTO,
    ReferencesDTO,
    StalenessDTO,
    StalenessTargetDTO,
)

logger = logging.getLogger(__name__)

DOC_REF_IN_CODE_RE = re.compile(
    r"`(AGENTS\.md|README\.md|ARCHITECTURE\.md|docs/[A-Za-z0-9_./-]+\.(?:md|json|ya?ml))`"
)
MD_LINK_RE = re.compile(r"\[[^\]]*\]\(([^)]+)\)")
ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_SECONDS_PER_DAY = 86_400
_EXTERNAL_PREFIXES = ("#", "mailto:", "http://", "https://")


def normalize_ref(raw: str, source_file: str) -> str | None:
    """Resolve a link target to a repository-relative POSIX path.

    Anchors, e-mail and web links resolve to ``None``; so do targets that
    climb above the repository root.
    """
    trimmed = raw.strip()
    if not trimmed or trimmed.startswith(_EXTERNAL_PREFIXES):
        return None
    target = trimmed.split("#", 1)[0].split("?", 1)[0]
    if not target:
        return None
    if target.startswith("/"):
        joined = target.lstrip("/")
    else:
        joined = str(PurePosixPath(source_file).parent / target)
    normalized = normalize_rel(joined)
    if not normalized or normalized == ".." or normalized.startswith("../"):
        return None
    return normalized


def extract_refs(text: str, source_file: str) -> list[str]:
    refs: dict[str, None] = {}
    for match in DOC_REF_IN_CODE_RE.finditer(text):
        normalized = normalize_ref("/" + match.group(1), source_file)
        if normalized:
            refs[normalized] = None
    for match in MD_LINK_RE.finditer(text):
        normalized = normalize_ref(match.group(1), source_file)
        if normalized:
            refs[normalized] = None
    return list(refs)


def build_reference_graph(contents: Mapping[str, str]) -> dict[str, list[str]]:
    return {path: extract_refs(text, path) for path, text in sorted(contents.items())}


def find_broken_refs(graph: Mapping[str, Sequence[str]], *, root: Path) -> list[Finding]:
    findings: list[Finding] = []
    for source, refs in sorted(graph.items()):
        for ref in refs:
            if not (root / ref.rstrip("/")).exists():
                findings.append(
                    error(
                        Producer.DOCFLOW,
                        FindingCode.BROKEN_DOC_REF,
                        f"Broken reference in {source}: {ref}",
                        source,
                    )
                )
    return findings


def reachable_docs(graph: Mapping[str, Sequence[str]], seeds: Iterable[str]) -> set[str]:
    visited: set[str] = set()
    queue = deque(seeds)
    while queue:
        current = queue.popleft()
        if current in visited:
            continue
        visited.add(current)
        for ref in graph.get(current, ()):
            if ref in graph and ref not in visited:
                queue.append(ref)
    return visited


def find_unreachable_docs(
    graph: Mapping[str, Sequence[str]],
    seeds: Sequence[str],
    *,
    severity: Severity = Severity.WARNING,
) -> list[Finding]:
    visited = reachable_docs(graph, seeds)
    make = error if severity is Severity.ERROR else warning
    return [
        make(
            Producer.DOCFLOW,
            FindingCode.UNREACHABLE_DOC,
            f"Doc is not reachable from {', '.join(seeds)}: {path}",
            path,
        )
        for path in sorted(graph)
        if GOVERNANCE_PATHS.is_docs_markdown(path) and path not in visited
    ]


def check_references(
    contents: Mapping[str, str], references: ReferencesDTO, *, root: Path
) -> list[Finding]:
    graph = build_reference_graph(contents)
    findings = find_broken_refs(graph, root=root)
    severity = Severity.ERROR if references.unreachable_level == "error" else Severity.WARNING
    findings.extend(find_unreachable_docs(graph, references.graph_seeds, severity=severity))
    logger.debug("reference graph: nodes=%d findings=%d", len(graph), len(findings))
    return findings


def parse_iso_date(value: str | None) -> date | None:
    if value is None or not ISO_DATE_RE.match(value.strip()):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def age_in_days(stamp: date, now: datetime | date) -> int:
    today = now.date() if isinstance(now, datetime) else now
    return abs((today - stamp).days)


def staleness_target(raw: str | StalenessTargetDTO) -> StalenessTargetDTO:
    if isinstance(raw, str):
        return StalenessTargetDTO(path=raw)
    return raw


def _resolve_strategy(target: StalenessTargetDTO, staleness: StalenessDTO) -> DateStrategyDTO:
    strategy = target.strategy or staleness.default_strategy or DateStrategyDTO()
    if strategy.kind == "metadata_field" and not strategy.field:
        return strategy.model_copy(update={"field": staleness.field})
    return strategy


def parse_date_by_strategy(text: str, strategy: DateStrategyDTO) -> date | None:
    """Extract a ``YYYY-MM-DD`` freshness date from ``text``.

    ``metadata_field`` reads a field of the metadata section; ``regex`` takes
    the configured group of the first match of ``pattern`` (multiline).
    """
    if strategy.kind == "regex":
        match = re.search(strategy.pattern or "", text, re.MULTILINE)
        if match is None:
            return None
        try:
            capture = match.group(strategy.group)
        except IndexError:
            return None
        return parse_iso_date(capture)
    return parse_iso_date(metadata_value(parse_metadata(text), strategy.field or ""))


def _strategy_label(strategy: DateStrategyDTO) -> str:
    if strategy.kind == "regex":
        return f"date matching /{strategy.pattern}/"
    return f'"{strategy.field}" date'


@dataclass
class StalenessAudit:
    max_age_days: int
    findings: list[Finding] = field(default_factory=list)
    checked: list[str] = field(default_factory=list)


def check_staleness(
    contents: Mapping[str, str],
    staleness: StalenessDTO,
    *,
    now: datetime | date,
    stale_days: int | None = None,
) -> StalenessAudit:
    """Flag targets whose freshness date is older than the allowed age.

    ``stale_days`` overrides the configured ``maxAgeDays``; it has already
    been validated as a positive integer by the caller.
    """
    audit = StalenessAudit(max_age_days=stale_days or staleness.max_age_days)
    for raw in staleness.targets:
        target = staleness_target(raw)
        text = contents.get(target.path)
        if text is None:
            audit.findings.append(
                error(
                    Producer.DOCFLOW,
                    FindingCode.MISSING_FILE,
                    f"Missing staleness target: {target.path}",
                    target.path,
                )
            )
            continue
        audit.checked.append(target.path)
        strategy = _resolve_strategy(target, staleness)
        stamp = parse_date_by_strategy(text, strategy)
        if stamp is None:
            audit.findings.append(
                error(
                    Producer.DOCFLOW,
                    FindingCode.MISSING_STALENESS_TIMESTAMP,
                    f"Missing or invalid {_strategy_label(strategy)} (YYYY-MM-DD) in {target.path}",
                    target.path,
                )
            )
            continue
        age = age_in_days(stamp, now)
        if age > audit.max_age_days:
            audit.findings.append(
                warning(
                    Producer.DOCFLOW,
                    FindingCode.STALE_DOC,
                    f"Stale document ({age} days): {target.path} (max {audit.max_age_days})",
                    target.path,
                )
            )
    return audit


# --- generated artifacts ---


@dataclass
class ArtifactAudit:
    findings: list[Finding] = field(default_factory=list)
    checked: list[str] = field(default_factory=list)


def artifact_timestamp(raw: str, artifact: GeneratedArtifactDTO) -> datetime | None:
    if artifact.timestamp_regex is not None:
        match = re.search(artifact.timestamp_regex, raw, re.MULTILINE)
        if match is None:
            return None
        try:
            capture = match.group(artifact.timestamp_group)
        except IndexError:
            return None
        return parse_report_timestamp(capture)
    if artifact.timestamp_json_field is not None:
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            return None
        if not isinstance(payload, dict):
            return None
        return parse_report_timestamp(payload.get(artifact.timestamp_json_field))
    return None


def check_generated_artifacts(
    root: Path, artifacts: Sequence[GeneratedArtifactDTO], *, now: datetime
) -> ArtifactAudit:
    audit = ArtifactAudit()
    moment = now if now.tzinfo is not None else now.replace(tzinfo=timezone.utc)
    for artifact in artifacts:
        target = root / artifact.path
        if not target.is_file():
            audit.findings.append(
                error(
                    Producer.DOCFLOW,
                    FindingCode.MISSING_GENERATED_ARTIFACT,
                    f"Missing generated artifact: {artifact.path}",
                    artifact.path,
                )
            )
            continue
        try:
            raw = target.read_text(encoding="utf-8")
        except (OSError, UnicodeError) as exc:
            raise DocumentReadError(target, exc) from exc
        audit.checked.append(artifact.path)
        stamp = artifact_timestamp(raw, artifact)
        if stamp is None:
            audit.findings.append(
                error(
                    Producer.DOCFLOW,
                    FindingCode.MISSING_GENERATED_ARTIFACT_TIMESTAMP,
                    f"Generated artifact missing parsable timestamp: {artifact.path}",
                    artifact.path,
                )
            )
            continue
        age = int(abs((moment - stamp).total_seconds()) // _SECONDS_PER_DAY)
        if age > artifact.max_age_days:
            audit.findings.append(
                warning(
                    Producer.DOCFLOW,
                    FindingCode.STALE_GENERATED_ARTIFACT,
                    f"Stale generated artifact ({age} days): {artifact.path} (max {artifact.max_age_days})",
                    artifact.path,
                )
            )
    logger.debug("generated artifacts: checked=%d findings=%d", len(audit.checked), len(audit.findings))
    return audit
