"""Discovery, reads and orchestration of a single governance run."""

from __future__ import annotations

import concurrent.futures
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Mapping

from docgov.config import parse_stale_days
from docgov.conformance import check_conformance
from docgov.docflow import (
    check_generated_artifacts,
    check_references,
    check_staleness,
    staleness_target,
)
from docgov.evals import check_eval_report
from docgov.exceptions import DocumentReadError
from docgov.findings import Finding, FindingCode, Producer
from docgov.governance_paths import GOVERNANCE_PATHS, GovernancePathConfig, normalize_rel
from docgov.lifecycle import (
    Bucket,
    LifecyclePolicy,
    PlanAudit,
    lifecycle_policy_from_config,
    list_plan_files,
    validate_plans,
)
from docgov.report import GovernanceReport, ProducerResult, aggregate
from docgov.schema import GovernanceConfigDTO
from docgov.validation import (
    check_docs_index,
    check_required_dirs,
    check_required_links,
    validate_documents,
    validate_json_files,
)

logger = logging.getLogger(__name__)

MARKDOWN_KIND = "markdown"
DEFAULT_MAX_WORKERS = 8


@dataclass(frozen=True)
class Document:
    path: str
    text: str
    kind: str


def _read_text(root: Path, rel: str) -> str:
    target = root / rel
    try:
        return target.read_text(encoding="utf-8")
    except (OSError, UnicodeError) as exc:
        raise DocumentReadError(target, exc) from exc


def load_documents(
    root: Path,
    requests: Mapping[str, str],
    *,
    max_workers: int | None = None,
) -> dict[str, Document]:
    """Read every requested file that exists, fanned out over a thread pool.

    ``requests`` maps repository-relative paths to document kinds. Paths that
    do not exist are skipped; the producers report them. A file that exists
    but cannot be read aborts the run with :class:`DocumentReadError`.
    """
    existing = sorted(path for path in requests if (root / path).is_file())
    if not existing:
        return {}
    workers = max_workers or min(DEFAULT_MAX_WORKERS, len(existing))
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(_read_text, root, path): path for path in existing}
        texts = {futures[future]: future.result() for future in concurrent.futures.as_completed(futures)}
    logger.debug("read %d document(s) with %d worker(s)", len(texts), workers)
    return {path: Document(path=path, text=texts[path], kind=requests[path]) for path in existing}


def discover_markdown(
    root: Path,
    *,
    scan_files: Iterable[str] = (),
    paths: GovernancePathConfig = GOVERNANCE_PATHS,
) -> list[str]:
    found: set[str] = {rel for rel in paths.root_docs}
    found.update(normalize_rel(rel) for rel in scan_files)
    docs_dir = paths.docs_dir(root=root)
    if docs_dir.is_dir():
        for current, dirnames, filenames in os.walk(docs_dir, topdown=True):
            dirnames[:] = sorted(name for name in dirnames if name not in paths.skipped_dirs)
            for filename in filenames:
                if filename.endswith(".md"):
                    found.add((Path(current) / filename).relative_to(root).as_posix())
    return sorted(rel for rel in found if (root / rel).is_file())


def _docs_index_path(config: GovernanceConfigDTO, paths: GovernancePathConfig) -> str | None:
    if config.docs_index_path is not None:
        return config.docs_index_path
    return paths.docs_index_rel if config.required_index_entries else None


def _plan_requests(root: Path, policy: LifecyclePolicy) -> dict[Bucket, list[str]]:
    return {
        bucket: list_plan_files(root, policy.state(bucket), exclude=policy.exclude_files)
        for bucket in Bucket
    }


def audit_plans(
    root: Path,
    policy: LifecyclePolicy,
    *,
    documents: Mapping[str, Document] | None = None,
    max_workers: int | None = None,
) -> PlanAudit:
    plan_files = _plan_requests(root, policy)
    if documents is None:
        documents = load_documents(
            root,
            {path: f"plan:{bucket}" for bucket, files in plan_files.items() for path in files},
            max_workers=max_workers,
        )
    grouped = {
        bucket: [(path, documents[path].text) for path in files if path in documents]
        for bucket, files in plan_files.items()
    }
    return validate_plans(grouped, policy)


def run_governance(
    root: Path,
    config: GovernanceConfigDTO,
    *,
    now: datetime | None = None,
    stale_days: int | None = None,
    paths: GovernancePathConfig = GOVERNANCE_PATHS,
    max_workers: int | None = None,
) -> GovernanceReport:
    """Run every configured producer over ``root`` and aggregate the verdict."""
    stale_days = parse_stale_days(stale_days)
    moment = now or datetime.now(timezone.utc)

    policy = lifecycle_policy_from_config(config.plans) if config.plans.enabled else None
    plan_files = _plan_requests(root, policy) if policy is not None else {}
    markdown = (
        discover_markdown(root, scan_files=config.references.scan_files, paths=paths)
        if config.references.enabled
        else []
    )

    requests: dict[str, str] = {path: MARKDOWN_KIND for path in markdown}
    if config.staleness is not None:
        requests.update(
            {staleness_target(target).path: MARKDOWN_KIND for target in config.staleness.targets}
        )
    index_path = _docs_index_path(config, paths)
    if index_path is not None:
        requests[index_path] = MARKDOWN_KIND
    requests.update({path: MARKDOWN_KIND for path in config.required_links})
    for bucket, files in plan_files.items():
        requests.update({path: f"plan:{bucket}" for path in files})
    requests.update({entry.path: entry.kind for entry in config.documents})
    documents = load_documents(root, requests, max_workers=max_workers)
    contents = {path: document.text for path, document in documents.items()}

    results: list[ProducerResult] = []
    document_findings = validate_documents(config.documents, contents, config.schemas)
    document_findings.extend(check_required_dirs(root, config.required_dirs))
    if index_path is not None:
        document_findings.extend(
            check_docs_index(contents, index_path, config.required_index_entries)
        )
    document_findings.extend(check_required_links(contents, config.required_links))
    analyzed = [entry.path for entry in config.documents]
    if index_path is not None:
        analyzed.append(index_path)
    analyzed.extend(config.required_links)
    results.append(
        ProducerResult(
            producer=Producer.DOCUMENTS,
            findings=tuple(document_findings),
            files=tuple(path for path in dict.fromkeys(analyzed) if path in contents),
        )
    )

    json_files = [path for path in config.required_json_files if (root / path).is_file()]
    results.append(
        ProducerResult(
            producer=Producer.JSON,
            findings=tuple(validate_json_files(root, config.required_json_files)),
            files=tuple(json_files),
        )
    )

    plan_audit = None
    if policy is not None:
        plan_audit = audit_plans(root, policy, documents=documents)
        results.append(
            ProducerResult(
                producer=Producer.PLANS,
                findings=tuple(plan_audit.findings),
                files=tuple(plan.path for plan in plan_audit.plans),
            )
        )

    capabilities = 0
    if config.conformance is not None and config.conformance.enabled:
        conformance = check_conformance(root, config.conformance.path)
        capabilities = conformance.capabilities
        results.append(
            ProducerResult(
                producer=Producer.CONFORMANCE,
                findings=tuple(conformance.findings),
                files=tuple(
                    path for path in (config.conformance.path,) if (root / path).is_file()
                ),
            )
        )

    docflow_findings: list[Finding] = []
    docflow_files: set[str] = set()
    if config.references.enabled:
        graph_contents = {path: contents[path] for path in markdown}
        docflow_findings.extend(check_references(graph_contents, config.references, root=root))
        docflow_files.update(graph_contents)
    if config.staleness is not None:
        staleness = check_staleness(contents, config.staleness, now=moment, stale_days=stale_days)
        docflow_findings.extend(staleness.findings)
        docflow_files.update(staleness.checked)
    if config.generated_artifacts:
        artifacts = check_generated_artifacts(root, config.generated_artifacts, now=moment)
        docflow_findings.extend(artifacts.findings)
        docflow_files.update(artifacts.checked)
    if config.references.enabled or config.staleness is not None or config.generated_artifacts:
        results.append(
            ProducerResult(
                producer=Producer.DOCFLOW,
                findings=tuple(docflow_findings),
                files=tuple(sorted(docflow_files)),
            )
        )

    eval_suites = 0
    if config.evals is not None:
        evals = check_eval_report(root, config.evals, now=moment)
        eval_suites = evals.suites
        results.append(
            ProducerResult(
                producer=Producer.EVALS,
                findings=tuple(evals.findings),
                files=tuple(
                    path for path in (config.evals.report_path,) if (root / path).is_file()
                ),
            )
        )

    stats = {
        "documentsAnalyzed": len(results[0].files),
        "markdownFilesAnalyzed": sum(1 for path in documents if path.endswith(".md")),
        "plansAnalyzed": 0 if plan_audit is None else len(plan_audit.plans),
        "jsonFilesAnalyzed": len(json_files),
        "capabilitiesAnalyzed": capabilities,
        "evalSuitesAnalyzed": eval_suites,
        "brokenRefCount": sum(
            1 for finding in docflow_findings if finding.code is FindingCode.BROKEN_DOC_REF
        ),
    }
    report = aggregate(results, stats=stats)
    logger.debug(
        "governance run: errors=%d warnings=%d", len(report.errors), len(report.warnings)
    )
    return report
