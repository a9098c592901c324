"""Run history storage for finished pipeline runs.

Only terminal runs (completed, failed or cancelled, with an end_time) are
accepted; the running run lives on the orchestrator until it is finalized.

Usage:
    from civic_pipeline.data_management.run_history import RunHistoryStore

    history = RunHistoryStore("pipeline-reports/run-history.json")
    await history.append(run)
    last = await history.last_run()
"""

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import ValidationError

from civic_pipeline.data_management.schemas.run_schema import PipelineRun, RunStatus


class RunHistoryStore:
    """Ordered (oldest first) list of finished runs with JSON persistence."""

    def __init__(self, persistence_path: Optional[str] = None) -> None:
        """Initialize RunHistoryStore.

        Args:
            persistence_path: Optional path to JSON file for persistence.
                            If None, history is memory-only.
        """
        self._runs: list[PipelineRun] = []
        self._lock = asyncio.Lock()
        self.persistence_path = Path(persistence_path) if persistence_path else None
        self.logger = logger.bind(component="RunHistoryStore")

        if self.persistence_path and self.persistence_path.exists():
            self._load_from_file()

    async def append(self, run: PipelineRun) -> None:
        """Add a finished run.

        Raises:
            ValueError: The run is still running or has no end_time.
        """
        if not run.is_terminal:
            raise ValueError(f"run {run.id} is not terminal ({run.status.value})")

        async with self._lock:
            self._runs.append(run.model_copy(deep=True))
            if self.persistence_path:
                self._save_to_file()

    async def list_runs(self, limit: Optional[int] = None) -> list[PipelineRun]:
        """Runs oldest first; with ``limit``, the most recent ``limit`` runs."""
        async with self._lock:
            runs = self._runs[-limit:] if limit else self._runs
            return [r.model_copy(deep=True) for r in runs]

    async def last_run(self) -> Optional[PipelineRun]:
        async with self._lock:
            return self._runs[-1].model_copy(deep=True) if self._runs else None

    async def last_successful_run(self) -> Optional[PipelineRun]:
        async with self._lock:
            for run in reversed(self._runs):
                if run.status is RunStatus.COMPLETED:
                    return run.model_copy(deep=True)
            return None

    async def purge_older_than(self, cutoff: datetime) -> int:
        """Remove runs that started before ``cutoff``.

        Returns:
            Number of runs removed
        """
        async with self._lock:
            kept = [r for r in self._runs if r.start_time >= cutoff]
            removed = len(self._runs) - len(kept)
            self._runs = kept
            if removed and self.persistence_path:
                self._save_to_file()
            return removed

    async def count(self) -> int:
        async with self._lock:
            return len(self._runs)

    def _save_to_file(self) -> None:
        """Save history to JSON file (synchronous)."""
        try:
            self.persistence_path.parent.mkdir(parents=True, exist_ok=True)
            data = [run.model_dump(mode="json") for run in self._runs]
            with open(self.persistence_path, "w") as f:
                json.dump(data, f, indent=2)
            self.logger.debug(f"Persisted {len(data)} runs to {self.persistence_path}")
        except OSError as e:
            self.logger.error(f"Failed to persist run history: {e}")

    def _load_from_file(self) -> None:
        """Load history from JSON file, dropping entries that are not terminal."""
        try:
            with open(self.persistence_path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Failed to load run history: {e}")
            return

        dropped = 0
        for entry in data if isinstance(data, list) else []:
            try:
                run = PipelineRun.model_validate(entry)
            except ValidationError:
                dropped += 1
                continue
            if not run.is_terminal:
                dropped += 1
                continue
            self._runs.append(run)

        self._runs.sort(key=lambda r: r.start_time)
        if dropped:
            self.logger.warning(f"Dropped {dropped} invalid or unfinished runs from history")
        self.logger.info(f"Loaded {len(self._runs)} runs from {self.persistence_path}")
