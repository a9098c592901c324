"""Schema package for extracted facts, citations, pipeline runs and reports.

Primary exports:
- ExtractedFact: a quantity recognised in free text
- BudgetItem / SpendingRecord / PerformanceMetric / StatisticalData: classified records
- CitationMetadata: provenance attached to every persisted fact
- PipelineRun: one execution of the pipeline
- ExecutiveSummary: the report contract read back by the orchestrator

Usage:
    from civic_pipeline.data_management.schemas import CitationMetadata
    citation = CitationMetadata(source_url="https://www.example-council.gov.uk/budget")

    from civic_pipeline.data_management.schemas import parse_executive_summary
    summary = parse_executive_summary(path.read_text())
"""

from civic_pipeline.data_management.schemas.citation_schema import (
    CitationMarkup,
    CitationMetadata,
    CitationType,
    ConfidenceLevel,
    DeepLinkInfo,
    MultipleSources,
    SourceVerification,
    get_confidence_score,
    score_to_confidence,
    utc_now,
)
from civic_pipeline.data_management.schemas.fact_schema import (
    BudgetItem,
    ClassifiedRecord,
    ExtractedFact,
    FactKind,
    PerformanceMetric,
    SpendingRecord,
    StatisticalData,
)
from civic_pipeline.data_management.schemas.report_schema import (
    SUMMARY_SCHEMA_VERSION,
    ExecutiveSummary,
    QualityMetrics,
    ReportContractError,
    WardSummary,
    parse_executive_summary,
)
from civic_pipeline.data_management.schemas.run_schema import (
    PipelineRun,
    PipelineStatus,
    RunMetrics,
    RunStatus,
    RunType,
    StepOutcome,
    StepStatus,
    new_run_id,
)

__all__ = [
    # Citations
    "CitationMarkup",
    "CitationMetadata",
    "CitationType",
    "ConfidenceLevel",
    "DeepLinkInfo",
    "MultipleSources",
    "SourceVerification",
    "get_confidence_score",
    "score_to_confidence",
    "utc_now",
    # Facts
    "BudgetItem",
    "ClassifiedRecord",
    "ExtractedFact",
    "FactKind",
    "PerformanceMetric",
    "SpendingRecord",
    "StatisticalData",
    # Reports
    "SUMMARY_SCHEMA_VERSION",
    "ExecutiveSummary",
    "QualityMetrics",
    "ReportContractError",
    "WardSummary",
    "parse_executive_summary",
    # Runs
    "PipelineRun",
    "PipelineStatus",
    "RunMetrics",
    "RunStatus",
    "RunType",
    "StepOutcome",
    "StepStatus",
    "new_run_id",
]
