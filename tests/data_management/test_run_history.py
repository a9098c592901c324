"""Tests for RunHistoryStore."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from civic_pipeline.data_management.run_history import RunHistoryStore
from civic_pipeline.data_management.schemas.run_schema import PipelineRun, RunStatus, RunType

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def finished_run(status=RunStatus.COMPLETED, start=T0, run_type=RunType.FULL) -> PipelineRun:
    run = PipelineRun(type=run_type, start_time=start)
    run.finalize(status, start + timedelta(minutes=5))
    return run


class TestRunHistoryAppend:
    """Tests for appending runs."""

    @pytest.mark.asyncio
    async def test_append_terminal_run(self):
        history = RunHistoryStore()
        run = finished_run()
        await history.append(run)

        assert await history.count() == 1
        assert (await history.last_run()).id == run.id

    @pytest.mark.asyncio
    async def test_running_run_rejected(self):
        history = RunHistoryStore()

        with pytest.raises(ValueError):
            await history.append(PipelineRun(start_time=T0))
        assert await history.count() == 0

    @pytest.mark.asyncio
    async def test_stored_copy_is_detached(self):
        history = RunHistoryStore()
        run = finished_run()
        await history.append(run)
        run.errors.append("mutated after append")

        assert (await history.last_run()).errors == []


class TestRunHistoryQueries:
    """Tests for listing and purging."""

    @staticmethod
    async def build_history():
        history = RunHistoryStore()
        await history.append(finished_run(RunStatus.COMPLETED, T0))
        await history.append(finished_run(RunStatus.FAILED, T0 + timedelta(days=1)))
        await history.append(finished_run(RunStatus.CANCELLED, T0 + timedelta(days=2)))
        return history

    @pytest.mark.asyncio
    async def test_list_runs_oldest_first(self):
        history = await self.build_history()
        runs = await history.list_runs()

        assert [r.status for r in runs] == [RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED]
        assert [r.status for r in await history.list_runs(limit=2)] == [
            RunStatus.FAILED, RunStatus.CANCELLED,
        ]

    @pytest.mark.asyncio
    async def test_last_successful_run(self):
        history = await self.build_history()
        last_success = await history.last_successful_run()

        assert last_success.status == RunStatus.COMPLETED
        assert last_success.start_time == T0

    @pytest.mark.asyncio
    async def test_purge_older_than(self):
        history = await self.build_history()
        removed = await history.purge_older_than(T0 + timedelta(days=1))

        assert removed == 1
        assert await history.count() == 2


class TestRunHistoryPersistence:
    """Tests for JSON persistence."""

    @pytest.mark.asyncio
    async def test_save_and_load(self, tmp_path):
        path = tmp_path / "run-history.json"
        history = RunHistoryStore(str(path))
        run = finished_run(RunStatus.FAILED)
        run.errors.append("Pipeline failed: boom")
        await history.append(run)

        reloaded = RunHistoryStore(str(path))
        last = await reloaded.last_run()

        assert last.id == run.id
        assert last.status == RunStatus.FAILED
        assert last.errors == ["Pipeline failed: boom"]

    @pytest.mark.asyncio
    async def test_unfinished_and_invalid_entries_dropped(self, tmp_path):
        path = tmp_path / "run-history.json"
        good = finished_run().model_dump(mode="json")
        running = PipelineRun(start_time=T0).model_dump(mode="json")
        path.write_text(json.dumps([good, running, {"status": "bogus"}]))

        runs = await RunHistoryStore(str(path)).list_runs()

        assert [r.id for r in runs] == [good["id"]]
        assert all(r.is_terminal for r in runs)
