"""Pipeline orchestrator: scheduled, single-run-at-a-time pipeline execution.

A run moves through up to four phases:

    fetch     -> pull council pages through the PageFetcher (full runs only)
    classify  -> turn pages into cited facts (ExtractionPipeline)
    report    -> build the executive summary and hand it to the ReportRenderer
    analyze   -> read the summary back and derive run metrics

Only one run may be active. A second request while busy raises
PipelineBusyError; scheduled triggers check the flag first and skip.

A phase that raises aborts the run: the error is recorded, a failure report
is written to the reports directory and the run ends ``failed``. A cancel
request is honoured between phases, never in the middle of one. Every run
ends in history in a terminal state.
"""

import asyncio
import json
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

from loguru import logger

from civic_pipeline.data_management.run_history import RunHistoryStore
from civic_pipeline.data_management.schemas.citation_schema import utc_now
from civic_pipeline.data_management.schemas.report_schema import (
    ExecutiveSummary,
    ReportContractError,
)
from civic_pipeline.data_management.schemas.run_schema import (
    PipelineRun,
    PipelineStatus,
    RunStatus,
    RunType,
    StepOutcome,
    StepStatus,
    new_run_id,
)
from civic_pipeline.orchestration.health import (
    HEALTH_WARNING_THRESHOLD,
    HEALTH_WINDOW_RUNS,
    STUCK_RUN_AFTER,
    HealthReport,
    compute_health_score,
    evaluate_health,
)
from civic_pipeline.orchestration.scheduler import TriggerScheduler
from civic_pipeline.pipelines.collaborators import (
    Notifier,
    PageFetcher,
    ReportAggregate,
    ReportRenderer,
)
from civic_pipeline.pipelines.extraction_pipeline import ExtractionPipeline
from civic_pipeline.pipelines.quality_analyzer import QualityAnalyzer
from civic_pipeline.pipelines.summary_loader import ExecutiveSummaryLoader

RUN_PHASES = {
    RunType.FULL: ("fetch", "classify", "report", "analyze"),
    RunType.INCREMENTAL: ("classify", "report", "analyze"),
    RunType.VISUALIZATION_ONLY: ("report", "analyze"),
}

FAILURE_RECOMMENDATIONS = [
    "Check system resources and network connectivity",
    "Verify data store accessibility",
    "Review logs for specific error details",
    "Consider running individual pipeline components separately",
]

LOW_FRESHNESS_RECOMMENDATION = "Schedule additional data collection within 48 hours"

FAILURE_SUBJECT = "Pipeline Failure Alert"
COMPLETION_SUBJECT = "Pipeline Run Complete"


class PipelineBusyError(RuntimeError):
    """A run was requested while another run is active."""


class _RunCancelled(Exception):
    """Raised between phases after cancel_current_run()."""


@dataclass
class PipelineConfig:
    """
    Orchestrator configuration.

    Built from settings by ``from_settings``; tests construct it directly.
    """

    reports_dir: str = "pipeline-reports"
    full_crawl_interval: timedelta = timedelta(days=7)
    reprocessing_interval: timedelta = timedelta(days=1)
    visualization_interval: timedelta = timedelta(days=1)
    health_check_interval: timedelta = timedelta(hours=1)
    cleanup_interval: timedelta = timedelta(days=1)
    refresh_threshold: float = 30.0
    recent_success_window: timedelta = timedelta(hours=24)
    low_freshness_target: float = 50.0
    retain_runs_days: int = 30
    notifications_enabled: bool = True
    health_window: int = HEALTH_WINDOW_RUNS
    health_warning_threshold: float = HEALTH_WARNING_THRESHOLD
    stuck_after: timedelta = STUCK_RUN_AFTER

    @classmethod
    def from_settings(cls) -> "PipelineConfig":
        from civic_pipeline.config.settings import settings

        return cls(
            reports_dir=settings.reports_dir,
            full_crawl_interval=settings.full_crawl_interval,
            reprocessing_interval=settings.reprocessing_interval,
            visualization_interval=settings.visualization_interval,
            health_check_interval=settings.health_check_interval,
            cleanup_interval=settings.cleanup_interval,
            refresh_threshold=settings.refresh_threshold,
            retain_runs_days=settings.retain_runs_days,
            notifications_enabled=settings.notifications_enabled,
        )


class DataPipelineOrchestrator:
    """
    Runs and schedules the civic data pipeline.

    Usage:
        orchestrator = DataPipelineOrchestrator()
        run = await orchestrator.run_full_pipeline(RunType.INCREMENTAL)
        status = await orchestrator.get_status()

    Collaborators not passed in are built from settings: JSON-persisted
    stores under ``data_dir``, the HTTP page fetcher over the configured
    seed URLs, the JSON report renderer and the log notifier.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        fetcher: Optional[PageFetcher] = None,
        extraction: Optional[ExtractionPipeline] = None,
        renderer: Optional[ReportRenderer] = None,
        notifier: Optional[Notifier] = None,
        history: Optional[RunHistoryStore] = None,
        summary_loader: Optional[ExecutiveSummaryLoader] = None,
        analyzer: Optional[QualityAnalyzer] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        from civic_pipeline.config.settings import settings
        from civic_pipeline.data_management.fact_store import FactStore
        from civic_pipeline.data_management.page_store import PageStore
        from civic_pipeline.pipelines.collaborators import (
            HttpPageFetcher,
            JsonReportRenderer,
            LogNotifier,
        )

        self.config = config or PipelineConfig.from_settings()
        data_dir = Path(settings.data_dir)

        if extraction is None:
            extraction = ExtractionPipeline(
                page_store=PageStore(str(data_dir / "pages.json")),
                fact_store=FactStore(str(data_dir / "facts.json")),
            )
        self.extraction = extraction
        self.fetcher = fetcher or HttpPageFetcher()
        self.renderer = renderer or JsonReportRenderer()
        self.notifier = notifier or LogNotifier()
        self.history = history or RunHistoryStore(
            str(Path(self.config.reports_dir) / "run-history.json")
        )
        self.summary_loader = summary_loader or ExecutiveSummaryLoader()
        self.analyzer = analyzer or QualityAnalyzer(fresh_target=self.config.low_freshness_target)

        self._clock = clock
        self._busy = False
        self._current_run: Optional[PipelineRun] = None
        self._cancel_requested = False
        self._fetched_pages: Optional[List[Dict[str, Any]]] = None
        self._extraction_stats: Dict[str, Any] = {}
        self._scheduler: Optional[TriggerScheduler] = None
        self._immediate_task: Optional[asyncio.Task] = None

        self.logger = logger.bind(component="DataPipelineOrchestrator")

    @property
    def is_running(self) -> bool:
        return self._busy

    @property
    def current_run(self) -> Optional[PipelineRun]:
        return self._current_run

    # -- run execution ----------------------------------------------------

    async def run_full_pipeline(self, run_type: RunType = RunType.FULL) -> PipelineRun:
        """
        Execute one run of ``run_type`` to completion.

        Returns:
            The finished run (completed, failed or cancelled)

        Raises:
            PipelineBusyError: Another run is active
        """
        run_type = RunType(run_type)
        if self._busy:
            raise PipelineBusyError(
                f"Pipeline is already running ({self._current_run.id if self._current_run else 'unknown'})"
            )

        now = self._clock()
        run = PipelineRun(id=new_run_id(now), type=run_type, start_time=now)
        self._busy = True
        self._current_run = run
        self._cancel_requested = False
        self._fetched_pages = None
        self._extraction_stats = {}

        self.logger.info(f"Starting {run_type.value} pipeline run {run.id}")

        try:
            await self._execute(run)
            run.finalize(RunStatus.COMPLETED, self._clock())
            self.logger.info(
                "Pipeline run completed",
                run_id=run.id,
                duration_seconds=run.metrics.total_duration_seconds,
                fresh_data_percentage=run.metrics.fresh_data_percentage,
                units_updated=run.metrics.units_updated,
            )
        except _RunCancelled:
            run.finalize(RunStatus.CANCELLED, self._clock())
            self.logger.warning(f"Pipeline run {run.id} cancelled")
        except asyncio.CancelledError:
            run.errors.append("Pipeline task cancelled")
            run.finalize(RunStatus.CANCELLED, self._clock())
            raise
        except Exception as e:
            run.errors.append(f"Pipeline failed: {e}")
            self.logger.opt(exception=e).error(f"Pipeline run {run.id} failed: {e}")
            await self._handle_failure(run, e)
            run.finalize(RunStatus.FAILED, self._clock())
        finally:
            self._busy = False
            self._current_run = None
            self._cancel_requested = False
            self._fetched_pages = None
            if run.is_terminal:
                await self.history.append(run)
                await self._notify_completion(run)

        return run

    async def run_visualization_only(self) -> PipelineRun:
        """Regenerate reports and metrics from already stored facts."""
        return await self.run_full_pipeline(RunType.VISUALIZATION_ONLY)

    def cancel_current_run(self) -> bool:
        """
        Ask the active run to stop before its next phase.

        Returns:
            True if a run was active
        """
        if not self._busy:
            return False
        self._cancel_requested = True
        self.logger.warning("Cancellation requested for current run")
        return True

    async def _execute(self, run: PipelineRun) -> None:
        phases = RUN_PHASES[run.type]
        handlers: Dict[str, Callable[[PipelineRun], Awaitable[int]]] = {
            "fetch": self._fetch_step,
            "classify": self._classify_step,
            "report": self._report_step,
            "analyze": self._analyze_step,
        }

        for name in phases:
            run.steps[name] = StepOutcome()

        for index, name in enumerate(phases):
            if self._cancel_requested:
                for remaining in phases[index:]:
                    run.steps[remaining].status = StepStatus.SKIPPED
                raise _RunCancelled()
            await self._run_step(run, name, handlers[name])

    async def _run_step(
        self,
        run: PipelineRun,
        name: str,
        handler: Callable[[PipelineRun], Awaitable[int]],
    ) -> None:
        step = run.steps[name]
        step.status = StepStatus.RUNNING
        started = time.monotonic()
        self.logger.info("Step started", run_id=run.id, step=name)

        try:
            step.records = await handler(run)
        except Exception as e:
            step.status = StepStatus.FAILED
            step.error = str(e)
            step.duration_seconds = round(time.monotonic() - started, 3)
            raise

        step.status = StepStatus.COMPLETED
        step.duration_seconds = round(time.monotonic() - started, 3)
        self.logger.info("Step completed", run_id=run.id, step=name, records=step.records)

    async def _fetch_step(self, run: PipelineRun) -> int:
        pages = await self.fetcher.fetch_pages()
        page_dicts = [page.to_dict() for page in pages]
        await self.extraction.page_store.save_pages(page_dicts)
        self._fetched_pages = page_dicts
        return len(page_dicts)

    async def _classify_step(self, run: PipelineRun) -> int:
        if self._fetched_pages is not None:
            stats = await self.extraction.process_pages(self._fetched_pages)
        else:
            stats = await self.extraction.process_stored_pages()
        self._extraction_stats = stats

        if stats.get("pages_failed"):
            run.errors.append(f"{stats['pages_failed']} pages failed extraction")
        return stats.get("facts_extracted", 0)

    async def _report_step(self, run: PipelineRun) -> int:
        citation_service = self.extraction.citation_service
        facts = await self.extraction.fact_store.list_facts(active_only=True)
        citation_report = await citation_service.generate_citation_report()
        summary = self.analyzer.build_summary(facts, citation_report, now=self._clock())

        paths = await self.renderer.render(ReportAggregate(
            summary=summary,
            citation_report=citation_report,
            extraction_stats=self._extraction_stats,
        ))
        self.summary_loader.invalidate()
        return len(paths)

    async def _analyze_step(self, run: PipelineRun) -> int:
        summary = self.summary_loader.load()
        if summary is None:
            raise ReportContractError(
                f"report phase produced no executive summary at {self.summary_loader.path}"
            )
        await self._apply_summary(run, summary)
        return summary.quality_metrics.total_records

    async def _apply_summary(self, run: PipelineRun, summary: ExecutiveSummary) -> None:
        quality = summary.quality_metrics

        score = round(quality.completeness_score * 100, 1)
        previous = await self.history.last_successful_run()
        baseline = previous.metrics.data_quality_score if previous else score

        run.metrics.data_quality_score = score
        run.metrics.data_quality_delta = round(score - baseline, 1)
        run.metrics.fresh_data_percentage = round(quality.fresh_percentage, 1)
        run.metrics.units_updated = summary.ward_summary.total_wards

        run.recommendations = [*quality.critical_gaps, *quality.recommendations[:3]]
        if run.metrics.fresh_data_percentage < self.config.low_freshness_target:
            run.recommendations.append(LOW_FRESHNESS_RECOMMENDATION)

    # -- failure and notification ----------------------------------------

    async def _handle_failure(self, run: PipelineRun, error: Exception) -> Optional[Path]:
        failed_at = self._clock()
        report = {
            "runId": run.id,
            "type": run.type.value,
            "startTime": run.start_time.isoformat(),
            "failureTime": failed_at.isoformat(),
            "error": str(error),
            "steps": {name: step.model_dump(mode="json") for name, step in run.steps.items()},
            "recommendations": list(FAILURE_RECOMMENDATIONS),
        }

        path = Path(self.config.reports_dir) / f"failure-report-{run.id}.json"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(report, indent=2))
            self.logger.info(f"Failure report written to {path}")
        except OSError as e:
            self.logger.error(f"Could not write failure report {path}: {e}")
            path = None

        await self._notify(FAILURE_SUBJECT, f"Pipeline run {run.id} failed: {error}")
        return path

    async def _notify(self, subject: str, message: str) -> None:
        if not self.config.notifications_enabled:
            return
        try:
            await self.notifier.notify(subject, message)
        except Exception as e:
            self.logger.opt(exception=e).error(f"Notification '{subject}' failed: {e}")

    async def _notify_completion(self, run: PipelineRun) -> None:
        if run.status is RunStatus.COMPLETED:
            minutes = run.metrics.total_duration_seconds / 60
            message = f"Pipeline run {run.id} completed successfully in {minutes:.0f} minutes"
        elif run.status is RunStatus.CANCELLED:
            message = f"Pipeline run {run.id} was cancelled"
        else:
            message = f"Pipeline run {run.id} failed with {len(run.errors)} errors"
        await self._notify(COMPLETION_SUBJECT, message)

    # -- status and monitoring -------------------------------------------

    async def get_status(self) -> PipelineStatus:
        runs = await self.history.list_runs()
        return PipelineStatus(
            is_running=self._busy,
            current_run=self._current_run.model_copy(deep=True) if self._current_run else None,
            last_run=runs[-1] if runs else None,
            run_history=runs,
            health_score=compute_health_score(runs, self.config.health_window),
        )

    async def should_run_immediately(self, now: Optional[datetime] = None) -> bool:
        """
        True when data needs an immediate full run.

        That is the case when no run completed within the recent-success
        window, or when the current summary's fresh-data percentage is below
        the refresh threshold. An unreadable summary counts as stale; a
        missing one defers to recency alone.
        """
        now = now or self._clock()
        cutoff = now - self.config.recent_success_window
        runs = await self.history.list_runs()

        if not any(r.status is RunStatus.COMPLETED and r.start_time >= cutoff for r in runs):
            self.logger.info("No successful run in the recent window, immediate run needed")
            return True

        try:
            summary = self.summary_loader.load()
        except ReportContractError as e:
            self.logger.warning(f"Executive summary unreadable, immediate run needed: {e}")
            return True

        if summary is None:
            return False

        fresh = summary.quality_metrics.fresh_percentage
        if fresh < self.config.refresh_threshold:
            self.logger.info(
                f"Fresh data at {fresh:.1f}% is below {self.config.refresh_threshold}%, "
                "immediate run needed"
            )
            return True
        return False

    async def perform_health_check(self, now: Optional[datetime] = None) -> HealthReport:
        """Score recent runs, detect a stuck run and send any alerts."""
        runs = await self.history.list_runs()
        report = evaluate_health(
            runs,
            self._current_run,
            now or self._clock(),
            window=self.config.health_window,
            warning_threshold=self.config.health_warning_threshold,
            stuck_after=self.config.stuck_after,
        )

        for alert in report.alerts:
            if alert.severity == "critical":
                self.logger.error(f"Health check critical: {alert.message}")
            else:
                self.logger.warning(f"Health check warning: {alert.message}")
            await self._notify(alert.subject, alert.message)

        self.logger.debug("Health check complete", **report.to_dict())
        return report

    async def cleanup_old_runs(self, now: Optional[datetime] = None) -> int:
        """Drop history entries older than the retention window."""
        cutoff = (now or self._clock()) - timedelta(days=self.config.retain_runs_days)
        removed = await self.history.purge_older_than(cutoff)
        if removed:
            self.logger.info(f"Cleaned up {removed} old run records")
        return removed

    # -- scheduling -------------------------------------------------------

    async def _scheduled_run(self, run_type: RunType) -> None:
        if self._busy:
            self.logger.info(f"Skipping scheduled {run_type.value} run, pipeline busy")
            return
        try:
            await self.run_full_pipeline(run_type)
        except PipelineBusyError:
            self.logger.info(f"Skipping scheduled {run_type.value} run, pipeline busy")

    async def start(self, scheduler: Optional[TriggerScheduler] = None) -> TriggerScheduler:
        """
        Register the recurring triggers and start them.

        A full run is also started right away when ``should_run_immediately``
        says the data is stale.
        """
        scheduler = scheduler or TriggerScheduler()
        config = self.config

        scheduler.add("full-crawl", config.full_crawl_interval,
                      lambda: self._scheduled_run(RunType.FULL))
        scheduler.add("reprocessing", config.reprocessing_interval,
                      lambda: self._scheduled_run(RunType.INCREMENTAL))
        scheduler.add("visualization", config.visualization_interval,
                      lambda: self._scheduled_run(RunType.VISUALIZATION_ONLY))
        scheduler.add("health-check", config.health_check_interval, self.perform_health_check)
        scheduler.add("cleanup", config.cleanup_interval, self.cleanup_old_runs)

        scheduler.start()
        self._scheduler = scheduler
        self.logger.info("Automated pipeline started")

        if await self.should_run_immediately():
            self._immediate_task = asyncio.create_task(
                self._scheduled_run(RunType.FULL), name="Pipeline-immediate-run"
            )
        return scheduler

    async def stop(self) -> None:
        """Stop triggers, cancel a pending immediate run and release HTTP clients."""
        if self._scheduler is not None:
            await self._scheduler.stop()
            self._scheduler = None

        if self._immediate_task is not None:
            self._immediate_task.cancel()
            await asyncio.gather(self._immediate_task, return_exceptions=True)
            self._immediate_task = None

        await self.extraction.citation_service.close()
        close = getattr(self.fetcher, "close", None)
        if close is not None:
            await close()
        self.logger.info("Automated pipeline stopped")
