"""Finding taxonomy shared by every governance producer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from docgov.json_types import JSONObject


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"


class Producer(StrEnum):
    DOCUMENTS = "documents"
    JSON = "json"
    PLANS = "plans"
    CONFORMANCE = "conformance"
    DOCFLOW = "docflow"
    EVALS = "evals"


# Report ordering rank; enum declaration order is the contract.
PRODUCER_RANK: dict[Producer, int] = {producer: rank for rank, producer in enumerate(Producer)}


class FindingCode(StrEnum):
    MISSING_FILE = "MISSING_FILE"
    MISSING_METADATA = "MISSING_METADATA"
    MISSING_HEADING = "MISSING_HEADING"
    INVALID_JSON = "INVALID_JSON"
    MISSING_SCHEMA = "MISSING_SCHEMA"
    MISSING_METADATA_SECTION = "MISSING_METADATA_SECTION"
    MISSING_STATUS = "MISSING_STATUS"
    INVALID_STATUS_FOR_BUCKET = "INVALID_STATUS_FOR_BUCKET"
    MISSING_PLAN_ID = "MISSING_PLAN_ID"
    DUPLICATE_PLAN_ID = "DUPLICATE_PLAN_ID"
    MISSING_DEPENDENCY_PLAN = "MISSING_DEPENDENCY_PLAN"
    CANONICAL_STATUS_MISMATCH = "CANONICAL_STATUS_MISMATCH"
    MISSING_REQUIRED_DIR = "MISSING_REQUIRED_DIR"
    MISSING_DOCS_INDEX = "MISSING_DOCS_INDEX"
    MISSING_INDEX_ENTRY = "MISSING_INDEX_ENTRY"
    MISSING_REQUIRED_LINK = "MISSING_REQUIRED_LINK"
    INVALID_CONFORMANCE_FIELD = "INVALID_CONFORMANCE_FIELD"
    INVALID_IDENTIFIER = "INVALID_IDENTIFIER"
    DUPLICATE_OUT_OF_SCOPE = "DUPLICATE_OUT_OF_SCOPE"
    DUPLICATE_CAPABILITY_ID = "DUPLICATE_CAPABILITY_ID"
    INVALID_CAPABILITY_STATUS = "INVALID_CAPABILITY_STATUS"
    MISSING_EVIDENCE_PATH = "MISSING_EVIDENCE_PATH"
    EVIDENCE_OUTSIDE_ROOT = "EVIDENCE_OUTSIDE_ROOT"
    MISSING_EVIDENCE_FILE = "MISSING_EVIDENCE_FILE"
    BROKEN_DOC_REF = "BROKEN_DOC_REF"
    UNREACHABLE_DOC = "UNREACHABLE_DOC"
    STALE_DOC = "STALE_DOC"
    MISSING_STALENESS_TIMESTAMP = "MISSING_STALENESS_TIMESTAMP"
    MISSING_GENERATED_ARTIFACT = "MISSING_GENERATED_ARTIFACT"
    MISSING_GENERATED_ARTIFACT_TIMESTAMP = "MISSING_GENERATED_ARTIFACT_TIMESTAMP"
    STALE_GENERATED_ARTIFACT = "STALE_GENERATED_ARTIFACT"
    INVALID_EVAL_REPORT = "INVALID_EVAL_REPORT"
    STALE_EVAL_REPORT = "STALE_EVAL_REPORT"
    EVAL_THRESHOLD_BREACH = "EVAL_THRESHOLD_BREACH"
    MISSING_REQUIRED_SUITE = "MISSING_REQUIRED_SUITE"


@dataclass(frozen=True)
class Finding:
    code: FindingCode
    message: str
    producer: Producer
    file: str | None = None
    severity: Severity = Severity.ERROR

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def format_line(self) -> str:
        if self.file:
            return f"- [{self.code}] {self.message} ({self.file})"
        return f"- [{self.code}] {self.message}"

    def to_payload(self) -> JSONObject:
        return {
            "code": str(self.code),
            "message": self.message,
            "file": self.file,
            "severity": str(self.severity),
            "producer": str(self.producer),
        }


def error(producer: Producer, code: FindingCode, message: str, file: str | None = None) -> Finding:
    return Finding(code=code, message=message, producer=producer, file=file, severity=Severity.ERROR)


def warning(producer: Producer, code: FindingCode, message: str, file: str | None = None) -> Finding:
    return Finding(code=code, message=message, producer=producer, file=file, severity=Severity.WARNING)
