"""Application settings using Pydantic BaseSettings for environment variable management."""

from datetime import timedelta
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Global application settings loaded from environment variables.

    Every field can be overridden with a ``CIVIC_`` prefixed environment
    variable (e.g. ``CIVIC_REFRESH_THRESHOLD=40``) or through a ``.env`` file.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log output format (json for production, console for dev)
        log_file: Optional JSON run log written alongside stdout
        log_rotation: Rotation threshold for the run log file
        data_dir: Root directory for persisted stores
        reports_dir: Directory for run history and failure reports
        analysis_dir: Directory holding the rendered executive summary
        full_crawl_interval: Interval between scheduled full crawls
        reprocessing_interval: Interval between incremental reprocessing runs
        visualization_interval: Interval between report regenerations
        health_check_interval: Interval between health checks
        cleanup_interval: Interval between run history cleanups
        refresh_threshold: Fresh-data percentage below which a run is forced
        retain_runs_days: Days of run history to keep
        notifications_enabled: Send run/health notifications
        verification_interval_seconds: Minimum spacing between source checks
        verification_timeout_seconds: HTTP timeout for a source check
        verification_retries: Attempts per source check on transport errors
        recheck_after_days: Sources verified more recently are not re-checked
        stale_citation_days: Verification age after which a citation is broken
        seed_urls: Council pages fetched during a full crawl
        known_wards: Ward names recognised in page text besides "<Name> ward" phrases
        user_agent: User-Agent header sent with every request
        max_requests_per_second: Fetch rate for the reference page fetcher
    """

    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )
    log_format: str = Field(
        default="json",
        description="Log output format: json or console"
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Optional JSON run log file, rotated and pruned with run history"
    )
    log_rotation: str = Field(
        default="10 MB",
        description="Size or interval at which the run log file rotates"
    )
    data_dir: str = Field(
        default="data",
        description="Root directory for persisted stores"
    )
    reports_dir: str = Field(
        default="pipeline-reports",
        description="Directory for run history and failure reports"
    )
    analysis_dir: str = Field(
        default="analysis",
        description="Directory holding executive-summary.json"
    )
    full_crawl_interval: timedelta = Field(
        default=timedelta(days=7),
        description="Interval between scheduled full crawls"
    )
    reprocessing_interval: timedelta = Field(
        default=timedelta(days=1),
        description="Interval between incremental reprocessing runs"
    )
    visualization_interval: timedelta = Field(
        default=timedelta(days=1),
        description="Interval between visualization-only runs"
    )
    health_check_interval: timedelta = Field(
        default=timedelta(hours=1),
        description="Interval between health checks"
    )
    cleanup_interval: timedelta = Field(
        default=timedelta(days=1),
        description="Interval between run history cleanups"
    )
    refresh_threshold: float = Field(
        default=30.0,
        ge=0.0,
        le=100.0,
        description="Fresh-data percentage that triggers an immediate run"
    )
    retain_runs_days: int = Field(
        default=30,
        ge=1,
        description="Days of run history retained by cleanup"
    )
    notifications_enabled: bool = Field(
        default=True,
        description="Send run and health notifications"
    )
    verification_interval_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Minimum spacing between source verifications"
    )
    verification_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="HTTP timeout for a single source verification"
    )
    verification_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts per verification on transport errors"
    )
    recheck_after_days: int = Field(
        default=7,
        ge=0,
        description="Sources checked within this window are skipped by bulk verification"
    )
    stale_citation_days: int = Field(
        default=30,
        ge=1,
        description="Citations not verified within this window are reported broken"
    )
    seed_urls: list[str] = Field(
        default_factory=list,
        description="Council pages fetched during a full crawl"
    )
    known_wards: list[str] = Field(
        default_factory=list,
        description="Ward names recognised in page text (a JSON list in the environment)"
    )
    user_agent: str = Field(
        default="civic_pipeline:v0.1.0 (+council data verification)",
        description="User-Agent header for outbound requests"
    )
    max_requests_per_second: float = Field(
        default=2.0,
        gt=0.0,
        description="Request rate for the page fetcher"
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "CIVIC_",
        "case_sensitive": False,
        "extra": "ignore",
    }


# Singleton instance - import this throughout the application
settings = Settings()
