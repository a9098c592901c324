"""Tests for pipeline run schemas."""

import re
from datetime import datetime, timedelta, timezone

import pytest

from civic_pipeline.data_management.schemas.run_schema import (
    PipelineRun,
    RunStatus,
    new_run_id,
)

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestRunId:
    def test_format(self):
        run_id = new_run_id(T0)

        assert re.fullmatch(r"pipeline-2024-05-01T12-00-00-000000Z-[0-9a-f]{6}", run_id)

    def test_unique(self):
        assert new_run_id(T0) != new_run_id(T0)


class TestPipelineRunLifecycle:
    """Tests for the run state machine."""

    def test_new_run_is_running(self):
        run = PipelineRun(start_time=T0)

        assert run.status == RunStatus.RUNNING
        assert not run.is_terminal
        assert run.duration_seconds is None

    @pytest.mark.parametrize("status", [RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED])
    def test_finalize_terminal(self, status):
        run = PipelineRun(start_time=T0)
        run.finalize(status, T0 + timedelta(seconds=90))

        assert run.is_terminal
        assert run.end_time == T0 + timedelta(seconds=90)
        assert run.metrics.total_duration_seconds == 90

    def test_finalize_running_rejected(self):
        run = PipelineRun(start_time=T0)

        with pytest.raises(ValueError):
            run.finalize(RunStatus.RUNNING)
        assert run.end_time is None

    def test_round_trip_keeps_status(self):
        run = PipelineRun(start_time=T0)
        run.finalize(RunStatus.FAILED, T0 + timedelta(minutes=1))

        restored = PipelineRun.model_validate(run.model_dump(mode="json"))

        assert restored.status == RunStatus.FAILED
        assert restored.is_terminal
