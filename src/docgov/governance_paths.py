from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath


@dataclass(frozen=True)
class GovernancePathConfig:
    """Centralized repository-relative paths for governance tooling."""

    config_rel: str = "docs/governance/doc-checks.config.json"
    report_rel: str = "docs/generated/governance-report.json"
    docs_index_rel: str = "docs/index.md"
    docs_prefix: str = "docs/"
    root_docs: tuple[str, ...] = ("AGENTS.md", "README.md", "ARCHITECTURE.md")
    skipped_dirs: tuple[str, ...] = (".git", "node_modules", ".next", "dist", ".venv")

    def config_path(self, *, root: Path) -> Path:
        return root / self.config_rel

    def report_path(self, *, root: Path) -> Path:
        return root / self.report_rel

    def docs_dir(self, *, root: Path) -> Path:
        return root / self.docs_prefix.rstrip("/")

    def is_docs_markdown(self, rel: str) -> bool:
        return rel.startswith(self.docs_prefix) and rel.endswith(".md")


GOVERNANCE_PATHS = GovernancePathConfig()


def normalize_rel(rel: str) -> str:
    """Collapse ``.`` and ``..`` segments lexically, without touching the disk."""
    parts: list[str] = []
    for part in PurePosixPath(rel).parts:
        if part == ".":
            continue
        if part == ".." and parts and parts[-1] != "..":
            parts.pop()
            continue
        parts.append(part)
    return "/".join(parts)
