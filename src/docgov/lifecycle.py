"""Plan lifecycle tracking across the future/active/completed buckets.

The bucket a plan lives in is decided by its directory, never by its Status
field. Each bucket is a state of a small finite state machine that carries the
statuses it permits and the fields and headings it requires; the two must
agree for a plan to pass.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from enum import StrEnum
from pathlib import Path, PurePosixPath
from types import MappingProxyType
from typing import Mapping, Sequence

from docgov.findings import Finding, FindingCode, Producer, error
from docgov.metadata import (
    MetadataSection,
    first_heading,
    metadata_section_range,
    metadata_value,
    parse_metadata,
    slugify,
)
from docgov.schema import DocumentSchemaDTO, PlansDTO
from docgov.validation import validate_document

logger = logging.getLogger(__name__)


class Bucket(StrEnum):
    FUTURE = "future"
    ACTIVE = "active"
    COMPLETED = "completed"


PLAN_REQUIRED_FIELDS: tuple[str, ...] = (
    "Plan-ID",
    "Status",
    "Priority",
    "Owner",
    "Acceptance-Criteria",
    "Dependencies",
    "Spec-Targets",
    "Done-Evidence",
)

PRIORITIES: tuple[str, ...] = ("p0", "p1", "p2", "p3")
PRIORITY_ALIASES: Mapping[str, str] = MappingProxyType({"high": "p1", "medium": "p2", "low": "p3"})
DEFAULT_PRIORITY = "p2"
_EMPTY_LIST_TOKENS = frozenset({"", "none", "n/a"})
CANONICAL_STATUS_RE = re.compile(r"^Status:\s*(.+)$", re.MULTILINE)


@dataclass(frozen=True)
class BucketState:
    bucket: Bucket
    directory: str
    permitted_statuses: frozenset[str]
    required_fields: tuple[str, ...] = PLAN_REQUIRED_FIELDS
    required_headings: tuple[str, ...] = ()
    canonical_status: str | None = None

    def permits(self, status: str | None) -> bool:
        return normalize_status(status) in self.permitted_statuses

    def schema(self) -> DocumentSchemaDTO:
        return DocumentSchemaDTO(
            required_fields=list(self.required_fields),
            required_headings=list(self.required_headings),
        )


@dataclass(frozen=True)
class LifecyclePolicy:
    states: Mapping[Bucket, BucketState]
    exclude_files: frozenset[str] = frozenset({"README.md", ".gitkeep"})

    def state(self, bucket: Bucket) -> BucketState:
        return self.states[bucket]


DEFAULT_LIFECYCLE_POLICY = LifecyclePolicy(
    states=MappingProxyType(
        {
            Bucket.FUTURE: BucketState(
                bucket=Bucket.FUTURE,
                directory="docs/future",
                permitted_statuses=frozenset({"draft", "ready-for-promotion"}),
            ),
            Bucket.ACTIVE: BucketState(
                bucket=Bucket.ACTIVE,
                directory="docs/exec-plans/active",
                permitted_statuses=frozenset(
                    {"queued", "in-progress", "blocked", "validation", "completed", "failed"}
                ),
            ),
            Bucket.COMPLETED: BucketState(
                bucket=Bucket.COMPLETED,
                directory="docs/exec-plans/completed",
                permitted_statuses=frozenset({"completed"}),
                required_headings=("Closure", "Validation Evidence"),
                canonical_status="completed",
            ),
        }
    )
)


def lifecycle_policy_from_config(
    plans: PlansDTO, *, base: LifecyclePolicy = DEFAULT_LIFECYCLE_POLICY
) -> LifecyclePolicy:
    states: dict[Bucket, BucketState] = {}
    for bucket in Bucket:
        state = base.state(bucket)
        override = plans.buckets.get(bucket.value)
        if override is not None:
            state = replace(
                state,
                directory=override.directory if override.directory is not None else state.directory,
                permitted_statuses=(
                    frozenset(normalize_status(item) for item in override.permitted_statuses)
                    if override.permitted_statuses is not None
                    else state.permitted_statuses
                ),
                required_fields=(
                    tuple(override.required_fields)
                    if override.required_fields is not None
                    else state.required_fields
                ),
                required_headings=(
                    tuple(override.required_headings)
                    if override.required_headings is not None
                    else state.required_headings
                ),
                canonical_status=(
                    normalize_status(override.canonical_status)
                    if override.canonical_status is not None
                    else state.canonical_status
                ),
            )
        states[bucket] = state
    return LifecyclePolicy(
        states=MappingProxyType(states),
        exclude_files=frozenset(plans.exclude_files),
    )


def normalize_status(value: str | None) -> str:
    return (value or "").strip().lower()


def parse_priority(value: str | None) -> str:
    raw = (value or DEFAULT_PRIORITY).strip().lower()
    if raw in PRIORITIES:
        return raw
    return PRIORITY_ALIASES.get(raw, DEFAULT_PRIORITY)


def priority_order(value: str | None) -> int:
    return PRIORITIES.index(parse_priority(value))


def parse_list_field(value: str | None) -> list[str]:
    raw = (value or "").strip()
    if raw.lower() in _EMPTY_LIST_TOKENS:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def infer_plan_id(text: str, path: str, *, metadata: MetadataSection | None = None) -> str:
    section = parse_metadata(text) if metadata is None else metadata
    explicit = (metadata_value(section, "Plan-ID") or "").strip()
    if explicit:
        return explicit
    heading = first_heading(text)
    if heading and slugify(heading):
        return slugify(heading)
    return slugify(PurePosixPath(path).stem)


@dataclass(frozen=True)
class Plan:
    path: str
    bucket: Bucket
    plan_id: str
    status: str
    priority: str
    owner: str | None
    acceptance_criteria: str | None
    dependencies: tuple[str, ...]
    spec_targets: str | None
    done_evidence: str | None
    has_metadata_section: bool


def build_plan(path: str, text: str, bucket: Bucket) -> Plan:
    section = parse_metadata(text)
    return Plan(
        path=path,
        bucket=bucket,
        plan_id=infer_plan_id(text, path, metadata=section),
        status=normalize_status(metadata_value(section, "Status")),
        priority=parse_priority(metadata_value(section, "Priority")),
        owner=metadata_value(section, "Owner"),
        acceptance_criteria=metadata_value(section, "Acceptance-Criteria"),
        dependencies=tuple(parse_list_field(metadata_value(section, "Dependencies"))),
        spec_targets=metadata_value(section, "Spec-Targets"),
        done_evidence=metadata_value(section, "Done-Evidence"),
        has_metadata_section=metadata_section_range(text) is not None,
    )


def validate_plan(plan: Plan, text: str, state: BucketState) -> list[Finding]:
    findings: list[Finding] = []
    if not plan.has_metadata_section:
        findings.append(
            error(
                Producer.PLANS,
                FindingCode.MISSING_METADATA_SECTION,
                "Missing '## Metadata' section",
                plan.path,
            )
        )
    findings.extend(validate_document(plan.path, text, state.schema(), producer=Producer.PLANS))
    if not plan.status:
        findings.append(
            error(Producer.PLANS, FindingCode.MISSING_STATUS, "Missing Status metadata value", plan.path)
        )
    elif not state.permits(plan.status):
        allowed = ", ".join(sorted(state.permitted_statuses))
        findings.append(
            error(
                Producer.PLANS,
                FindingCode.INVALID_STATUS_FOR_BUCKET,
                f"Invalid status '{plan.status}' for {state.bucket} plan (allowed: {allowed})",
                plan.path,
            )
        )
    if state.canonical_status:
        match = CANONICAL_STATUS_RE.search(text)
        canonical = normalize_status(match.group(1)) if match else ""
        if canonical and canonical != state.canonical_status:
            findings.append(
                error(
                    Producer.PLANS,
                    FindingCode.CANONICAL_STATUS_MISMATCH,
                    f"{state.bucket.capitalize()} plan top-level Status must be '{state.canonical_status}' (found '{canonical}')",
                    plan.path,
                )
            )
    return findings


@dataclass
class PlanAudit:
    plans: list[Plan] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)

    def count(self, bucket: Bucket) -> int:
        return sum(1 for plan in self.plans if plan.bucket is bucket)

    def by_priority(self) -> list[Plan]:
        return sorted(self.plans, key=lambda plan: (priority_order(plan.priority), plan.plan_id, plan.path))


def list_plan_files(root: Path, state: BucketState, *, exclude: frozenset[str]) -> list[str]:
    directory = root / state.directory
    if not directory.is_dir():
        return []
    return sorted(
        f"{state.directory.rstrip('/')}/{entry.name}"
        for entry in directory.iterdir()
        if entry.is_file() and entry.name.endswith(".md") and entry.name not in exclude
    )


def validate_plans(
    documents: Mapping[Bucket, Sequence[tuple[str, str]]],
    policy: LifecyclePolicy = DEFAULT_LIFECYCLE_POLICY,
) -> PlanAudit:
    """Validate plans grouped by the bucket directory that holds them.

    ``documents`` maps each bucket to ``(path, text)`` pairs. Plan ids are
    unique across all buckets; the first plan (in bucket order, then path
    order) owns an id and later ones are reported as duplicates.
    """
    audit = PlanAudit()
    for bucket in Bucket:
        state = policy.state(bucket)
        for path, text in sorted(documents.get(bucket, ()), key=lambda item: item[0]):
            plan = build_plan(path, text, bucket)
            audit.plans.append(plan)
            audit.findings.extend(validate_plan(plan, text, state))

    owners: dict[str, str] = {}
    for plan in audit.plans:
        if not plan.plan_id:
            audit.findings.append(
                error(Producer.PLANS, FindingCode.MISSING_PLAN_ID, "Could not infer or parse Plan-ID", plan.path)
            )
            continue
        owner = owners.get(plan.plan_id)
        if owner is not None:
            audit.findings.append(
                error(
                    Producer.PLANS,
                    FindingCode.DUPLICATE_PLAN_ID,
                    f"Duplicate Plan-ID '{plan.plan_id}' (also in {owner})",
                    plan.path,
                )
            )
            continue
        owners[plan.plan_id] = plan.path

    for plan in audit.plans:
        for dependency in plan.dependencies:
            if dependency not in owners:
                audit.findings.append(
                    error(
                        Producer.PLANS,
                        FindingCode.MISSING_DEPENDENCY_PLAN,
                        f"Dependency '{dependency}' does not exist in future/active/completed plans",
                        plan.path,
                    )
                )
    logger.debug(
        "plan audit: plans=%d findings=%d", len(audit.plans), len(audit.findings)
    )
    return audit
