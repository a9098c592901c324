"""Cached, validated access to the rendered executive summary."""

import time
from pathlib import Path
from typing import Callable, Optional

from cachetools import TTLCache
from loguru import logger

from civic_pipeline.data_management.schemas.report_schema import (
    ExecutiveSummary,
    ReportContractError,
    parse_executive_summary,
)
from civic_pipeline.pipelines.collaborators import EXECUTIVE_SUMMARY_FILE


class ExecutiveSummaryLoader:
    """
    Reads ``executive-summary.json`` through a short-lived cache.

    The cache belongs to the loader instance; the orchestrator invalidates it
    after every report phase so a run always sees the summary it produced.

    Raises ReportContractError (from ``load``) when the file exists but cannot
    be read or does not match the summary schema.
    """

    def __init__(
        self,
        path: Optional[str] = None,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if path is None:
            from civic_pipeline.config.settings import settings
            path = str(Path(settings.analysis_dir) / EXECUTIVE_SUMMARY_FILE)

        self.path = Path(path)
        self._cache: TTLCache[str, ExecutiveSummary] = TTLCache(
            maxsize=1, ttl=ttl_seconds, timer=clock
        )
        self.logger = logger.bind(component="ExecutiveSummaryLoader")

    def load(self) -> Optional[ExecutiveSummary]:
        """
        Return the current summary.

        Returns:
            The parsed summary, or None when no summary has been rendered yet
        """
        key = str(self.path)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        if not self.path.exists():
            self.logger.debug(f"No executive summary at {self.path}")
            return None

        try:
            raw = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ReportContractError(f"cannot read executive summary at {self.path}: {e}") from e

        summary = parse_executive_summary(raw)
        self._cache[key] = summary
        return summary

    def invalidate(self) -> None:
        self._cache.clear()
