"""Run-history health monitoring.

The health score is the success rate over the most recent runs. Alerts are
returned as data; the orchestrator decides whether to send them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from civic_pipeline.data_management.schemas.run_schema import PipelineRun, RunStatus

HEALTH_WINDOW_RUNS = 10
HEALTH_WARNING_THRESHOLD = 70.0
STUCK_RUN_AFTER = timedelta(hours=4)

HEALTH_WARNING_SUBJECT = "Pipeline Health Warning"
STUCK_ALERT_SUBJECT = "Pipeline Stuck Alert"


@dataclass
class HealthAlert:
    """A notification the health check wants sent."""

    subject: str
    message: str
    severity: str = "warning"


@dataclass
class HealthReport:
    """Result of one health check."""

    health_score: float
    runs_considered: int
    alerts: List[HealthAlert] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return not self.alerts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "health_score": self.health_score,
            "runs_considered": self.runs_considered,
            "alerts": [alert.subject for alert in self.alerts],
        }


def compute_health_score(runs: List[PipelineRun], window: int = HEALTH_WINDOW_RUNS) -> float:
    """Percentage of completed runs among the last ``window``; 100 with no history."""
    recent = runs[-window:]
    if not recent:
        return 100.0
    completed = sum(1 for run in recent if run.status is RunStatus.COMPLETED)
    return completed / len(recent) * 100


def evaluate_health(
    runs: List[PipelineRun],
    current_run: Optional[PipelineRun],
    now: datetime,
    window: int = HEALTH_WINDOW_RUNS,
    warning_threshold: float = HEALTH_WARNING_THRESHOLD,
    stuck_after: timedelta = STUCK_RUN_AFTER,
) -> HealthReport:
    """
    Score recent history and flag a run that has been running too long.

    Args:
        runs: Finished runs, oldest first
        current_run: The run in progress, if any
        now: Reference time for the stuck check
    """
    score = compute_health_score(runs, window)
    report = HealthReport(health_score=score, runs_considered=min(len(runs), window))

    if score < warning_threshold:
        report.alerts.append(HealthAlert(
            subject=HEALTH_WARNING_SUBJECT,
            message=(
                f"Success rate has dropped to {score:.0f}%. "
                "Recent failures may need attention."
            ),
        ))

    if current_run is not None and now - current_run.start_time > stuck_after:
        hours = stuck_after.total_seconds() / 3600
        report.alerts.append(HealthAlert(
            subject=STUCK_ALERT_SUBJECT,
            message=(
                f"Pipeline run {current_run.id} has been running for over "
                f"{hours:g} hours and may be stuck."
            ),
            severity="critical",
        ))

    return report
