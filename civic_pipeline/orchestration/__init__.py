"""Run orchestration: the pipeline orchestrator, recurring triggers and health checks."""

from civic_pipeline.orchestration.health import (
    HealthAlert,
    HealthReport,
    compute_health_score,
    evaluate_health,
)
from civic_pipeline.orchestration.pipeline_orchestrator import (
    DataPipelineOrchestrator,
    PipelineBusyError,
    PipelineConfig,
)
from civic_pipeline.orchestration.scheduler import RecurringTrigger, TriggerScheduler

__all__ = [
    "DataPipelineOrchestrator",
    "HealthAlert",
    "HealthReport",
    "PipelineBusyError",
    "PipelineConfig",
    "RecurringTrigger",
    "TriggerScheduler",
    "compute_health_score",
    "evaluate_health",
]
