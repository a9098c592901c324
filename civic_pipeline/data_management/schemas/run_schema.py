"""Pipeline run schemas.

A PipelineRun is created in the ``running`` state and finalized exactly once
into ``completed``, ``failed`` or ``cancelled`` with an ``end_time``. Only
finalized runs are ever written to the run history.
"""

import secrets
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from civic_pipeline.data_management.schemas.citation_schema import utc_now


class RunType(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"
    VISUALIZATION_ONLY = "visualization-only"


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class StepOutcome(BaseModel):
    """Result of one phase (fetch, classify, report) of a run."""

    status: StepStatus = StepStatus.PENDING
    duration_seconds: float = Field(0.0, ge=0.0)
    records: int = Field(0, ge=0)
    error: Optional[str] = None


class RunMetrics(BaseModel):
    """Headline numbers computed when a run finishes.

    Attributes:
        total_duration_seconds: Wall-clock time of the whole run.
        data_quality_score: Completeness score as a percentage (0-100).
        data_quality_delta: Change in quality score versus the previous run.
        fresh_data_percentage: Share of records considered fresh (0-100).
        units_updated: Wards/areas covered by the latest summary.
    """

    total_duration_seconds: float = 0.0
    data_quality_score: float = 0.0
    data_quality_delta: float = 0.0
    fresh_data_percentage: float = 0.0
    units_updated: int = 0


def new_run_id(now: Optional[datetime] = None) -> str:
    """Build a run ID like ``pipeline-2024-05-01T12-00-00-000000Z-a1b2c3``."""
    now = now or utc_now()
    stamp = now.strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    return f"pipeline-{stamp}-{secrets.token_hex(3)}"


class PipelineRun(BaseModel):
    """One execution of the pipeline.

    Attributes:
        id: Unique run ID.
        type: full, incremental or visualization-only.
        status: Lifecycle state.
        start_time: When the run began.
        end_time: When the run was finalized; None while running.
        steps: Outcome per phase, keyed fetch/classify/report.
        metrics: Computed after the report phase.
        errors: Error messages collected during the run.
        recommendations: Follow-up actions derived from the summary.
    """

    id: str = Field(default_factory=new_run_id)
    type: RunType = RunType.FULL
    status: RunStatus = RunStatus.RUNNING
    start_time: datetime = Field(default_factory=utc_now)
    end_time: Optional[datetime] = None
    steps: dict[str, StepOutcome] = Field(default_factory=dict)
    metrics: RunMetrics = Field(default_factory=RunMetrics)
    errors: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal and self.end_time is not None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()

    def finalize(self, status: RunStatus, end_time: Optional[datetime] = None) -> None:
        """Move the run into a terminal state."""
        if not status.is_terminal:
            raise ValueError(f"cannot finalize a run as {status.value}")
        self.status = status
        self.end_time = end_time or utc_now()
        self.metrics.total_duration_seconds = round(
            (self.end_time - self.start_time).total_seconds(), 3
        )


class PipelineStatus(BaseModel):
    """Snapshot answered by a status query."""

    is_running: bool
    current_run: Optional[PipelineRun] = None
    last_run: Optional[PipelineRun] = None
    run_history: list[PipelineRun] = Field(default_factory=list)
    health_score: float = 100.0
