from __future__ import annotations

from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PositiveInt


class _ConfigModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class DocumentSchemaDTO(_ConfigModel):
    required_fields: List[str] = Field(default_factory=list, alias="requiredFields")
    required_headings: List[str] = Field(default_factory=list, alias="requiredHeadings")


class DocumentEntryDTO(_ConfigModel):
    path: str
    kind: str
    required_headings: List[str] = Field(default_factory=list, alias="requiredHeadings")


class PlanBucketDTO(_ConfigModel):
    directory: Optional[str] = None
    permitted_statuses: Optional[List[str]] = Field(default=None, alias="permittedStatuses")
    required_fields: Optional[List[str]] = Field(default=None, alias="requiredFields")
    required_headings: Optional[List[str]] = Field(default=None, alias="requiredHeadings")
    canonical_status: Optional[str] = Field(default=None, alias="canonicalStatus")


class PlansDTO(_ConfigModel):
    enabled: bool = True
    exclude_files: List[str] = Field(
        default_factory=lambda: ["README.md", ".gitkeep"], alias="excludeFiles"
    )
    buckets: Dict[Literal["future", "active", "completed"], PlanBucketDTO] = Field(
        default_factory=dict
    )


class ConformanceDTO(_ConfigModel):
    enabled: bool = True
    path: str = "docs/generated/article-conformance.json"


class DateStrategyDTO(_ConfigModel):
    kind: Literal["metadata_field", "regex"] = Field(default="metadata_field", alias="type")
    field: Optional[str] = None
    pattern: Optional[str] = None
    group: int = Field(default=1, ge=0)


class StalenessTargetDTO(_ConfigModel):
    path: str
    strategy: Optional[DateStrategyDTO] = None


class StalenessDTO(_ConfigModel):
    max_age_days: PositiveInt = Field(alias="maxAgeDays")
    field: str = "Last Updated"
    default_strategy: Optional[DateStrategyDTO] = Field(default=None, alias="defaultStrategy")
    targets: List[Union[str, StalenessTargetDTO]] = Field(default_factory=list)


class GeneratedArtifactDTO(_ConfigModel):
    path: str
    max_age_days: PositiveInt = Field(alias="maxAgeDays")
    timestamp_regex: Optional[str] = Field(default=None, alias="timestampRegex")
    timestamp_group: int = Field(default=1, ge=0, alias="timestampGroup")
    timestamp_json_field: Optional[str] = Field(default=None, alias="timestampJsonField")


class ReferencesDTO(_ConfigModel):
    enabled: bool = False
    graph_seeds: List[str] = Field(
        default_factory=lambda: ["AGENTS.md", "README.md", "docs/index.md"],
        alias="graphSeeds",
    )
    unreachable_level: Literal["warning", "error"] = Field(
        default="warning", alias="unreachableLevel"
    )
    scan_files: List[str] = Field(default_factory=list, alias="scanFiles")


class RequiredSuiteDTO(_ConfigModel):
    id: str
    status: str = "pass"


class EvalsDTO(_ConfigModel):
    report_path: str = Field(default="docs/generated/evals-report.json", alias="reportPath")
    max_age_days: PositiveInt = Field(default=7, alias="maxAgeDays")
    minimum_pass_rate: float = Field(default=0.0, ge=0.0, le=1.0, alias="minimumPassRate")
    max_critical_regressions: int = Field(default=0, ge=0, alias="maxCriticalRegressions")
    max_high_regressions: int = Field(default=0, ge=0, alias="maxHighRegressions")
    required_suites: List[Union[str, RequiredSuiteDTO]] = Field(
        default_factory=list, alias="requiredSuites"
    )
    require_evidence_paths: bool = Field(default=True, alias="requireEvidencePaths")


class GovernanceConfigDTO(_ConfigModel):
    schemas: Dict[str, DocumentSchemaDTO] = Field(default_factory=dict)
    documents: List[DocumentEntryDTO] = Field(default_factory=list)
    required_json_files: List[str] = Field(default_factory=list, alias="requiredJsonFiles")
    required_dirs: List[str] = Field(default_factory=list, alias="requiredDirs")
    docs_index_path: Optional[str] = Field(default=None, alias="docsIndexPath")
    required_index_entries: List[str] = Field(default_factory=list, alias="requiredIndexEntries")
    required_links: Dict[str, List[str]] = Field(default_factory=dict, alias="requiredLinks")
    plans: PlansDTO = Field(default_factory=PlansDTO)
    conformance: Optional[ConformanceDTO] = None
    staleness: Optional[StalenessDTO] = None
    generated_artifacts: List[GeneratedArtifactDTO] = Field(
        default_factory=list, alias="generatedArtifacts"
    )
    references: ReferencesDTO = Field(default_factory=ReferencesDTO)
    evals: Optional[EvalsDTO] = None


class FindingDTO(BaseModel):
    code: str
    message: str
    file: Optional[str] = None
    severity: str
    producer: str


class SummaryDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total: int
    passed: int
    failed: int
    pass_rate: float = Field(alias="passRate")


class RegressionsDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    critical_open: int = Field(alias="criticalOpen")
    high_open: int = Field(alias="highOpen")


class SuiteDTO(BaseModel):
    id: str
    status: Literal["pass", "fail"]
    total: int
    passed: int
    failed: int


class GovernanceReportDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    generated_at_utc: str = Field(alias="generatedAtUtc")
    summary: SummaryDTO
    regressions: RegressionsDTO
    suites: List[SuiteDTO]
    evidence: List[str]
    stats: Dict[str, int]
    warnings: List[FindingDTO] = []
    errors: List[FindingDTO] = []
    passed: bool
