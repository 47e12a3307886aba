from __future__ import annotations

import sys
import textwrap
from pathlib import Path
from typing import Callable

ROOT = Path(__file__).resolve().parents[1]
for entry in (ROOT, ROOT / "src"):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))


import pytest

from tests.repo_helpers import (
    AGENT_HARDENING_HEADINGS,
    conformance_payload,
    governance_config,
    markdown_doc,
    write_json,
    write_text,
)


@pytest.fixture
def governance_repo(tmp_path: Path) -> Path:
    """Repository with every agent-hardening document and three capabilities."""
    for path, headings in AGENT_HARDENING_HEADINGS.items():
        write_text(
            tmp_path,
            path,
            markdown_doc(
                Path(path).stem.replace("_", " ").title(),
                fields={
                    "Status": "active",
                    "Owner": "platform-team",
                    "Last Updated": "2026-10-01",
                    "Source of Truth": "docs/agent-hardening/README.md",
                },
                headings=headings,
            ),
        )
    write_text(tmp_path, "scripts/check_governance.sh", "#!/bin/sh\ndocgov check\n")
    write_text(
        tmp_path,
        "docs/exec-plans/README.md",
        textwrap.dedent(
            """
            # Execution plans

            Plans live in future/, active/ and completed/.
            """
        ).lstrip(),
    )
    write_json(tmp_path, "docs/generated/article-conformance.json", conformance_payload())
    write_json(tmp_path, "docs/governance/doc-checks.config.json", governance_config())
    return tmp_path


@pytest.fixture
def write_repo_file(tmp_path: Path) -> Callable[[str, str], Path]:
    def _write(rel: str, text: str) -> Path:
        return write_text(tmp_path, rel, text)

    return _write
