"""Pipeline modules for turning fetched pages into facts and reports.

This package contains the pieces a run wires together:

- ExtractionPipeline: pages -> classified records -> cited facts
- QualityAnalyzer: facts -> executive summary
- ExecutiveSummaryLoader: cached, validated access to the rendered summary
- Collaborator protocols and their reference adapters
"""

from civic_pipeline.pipelines.collaborators import (
    FetchedPage,
    HttpPageFetcher,
    JsonReportRenderer,
    LogNotifier,
    Notifier,
    PageFetcher,
    ReportAggregate,
    ReportRenderer,
)
from civic_pipeline.pipelines.extraction_pipeline import ExtractionPipeline, PipelineStats
from civic_pipeline.pipelines.quality_analyzer import QualityAnalyzer
from civic_pipeline.pipelines.summary_loader import ExecutiveSummaryLoader

__all__ = [
    "ExecutiveSummaryLoader",
    "ExtractionPipeline",
    "FetchedPage",
    "HttpPageFetcher",
    "JsonReportRenderer",
    "LogNotifier",
    "Notifier",
    "PageFetcher",
    "PipelineStats",
    "QualityAnalyzer",
    "ReportAggregate",
    "ReportRenderer",
]
