"""Recurring triggers for scheduled pipeline work.

Each trigger is an asyncio task looping sleep -> callback. A callback that
raises is logged with its traceback and the trigger keeps firing; one failed
scheduled run never deregisters the schedule.
"""

import asyncio
import inspect
from datetime import timedelta
from typing import Awaitable, Callable, Dict, Optional, Union

from loguru import logger

TriggerCallback = Callable[[], Union[Awaitable[None], None]]


class RecurringTrigger:
    """
    Run a callback every ``interval``.

    Attributes:
        name: Trigger name, used for the task name and in logs
        interval: Delay between the end of one firing and the next
        callback: Sync or async callable, called without arguments
        fire_count: Number of completed firings (failed ones included)
        task: The underlying task while started
    """

    def __init__(
        self,
        name: str,
        interval: timedelta,
        callback: TriggerCallback,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if interval.total_seconds() <= 0:
            raise ValueError(f"trigger {name} needs a positive interval, got {interval}")

        self.name = name
        self.interval = interval
        self.callback = callback
        self.fire_count = 0
        self.task: Optional[asyncio.Task] = None
        self._sleep = sleep
        self.logger = logger.bind(component="RecurringTrigger", trigger=name)

    @property
    def is_running(self) -> bool:
        return self.task is not None and not self.task.done()

    async def fire(self) -> None:
        """Run the callback once, logging instead of raising on failure."""
        try:
            result = self.callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.opt(exception=e).error(f"Trigger {self.name} failed: {e}")
        finally:
            self.fire_count += 1

    async def _wrapper(self) -> None:
        sleep_time_secs = self.interval.total_seconds()
        while True:
            await self._sleep(sleep_time_secs)
            await self.fire()

    def start(self) -> None:
        """Start firing. The first firing happens one interval from now."""
        if self.is_running:
            return
        self.task = asyncio.create_task(self._wrapper(), name=f"Trigger-{self.name}")
        self.logger.debug(f"Trigger {self.name} started, every {self.interval}")

    async def stop(self) -> None:
        """Stop firing, waiting for an in-flight callback to be cancelled."""
        if self.task:
            self.task.cancel()
            await asyncio.gather(self.task, return_exceptions=True)
            self.task = None


class TriggerScheduler:
    """
    A named set of recurring triggers started and stopped together.

    Usage:
        scheduler = TriggerScheduler()
        scheduler.add("health-check", timedelta(hours=1), orchestrator.perform_health_check)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> None:
        self._sleep = sleep
        self.triggers: Dict[str, RecurringTrigger] = {}
        self.logger = logger.bind(component="TriggerScheduler")

    def add(self, name: str, interval: timedelta, callback: TriggerCallback) -> RecurringTrigger:
        """
        Register a trigger; it starts immediately if the scheduler is running.

        Raises:
            ValueError: A trigger with this name already exists
        """
        if name in self.triggers:
            raise ValueError(f"trigger {name} already registered")

        trigger = RecurringTrigger(name, interval, callback, sleep=self._sleep)
        self.triggers[name] = trigger
        if self.is_running:
            trigger.start()
        return trigger

    @property
    def is_running(self) -> bool:
        return any(trigger.is_running for trigger in self.triggers.values())

    def start(self) -> None:
        for trigger in self.triggers.values():
            trigger.start()
        self.logger.info(f"Scheduler started with {len(self.triggers)} triggers")

    async def stop(self) -> None:
        for trigger in self.triggers.values():
            await trigger.stop()
        self.logger.info("Scheduler stopped")
