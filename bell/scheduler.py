"""Recurring triggers on top of APScheduler."""

import itertools
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Union

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from .models import WEEKDAYS

# Trigger kinds
PLAY = "play"
RECOMPILE = "recompile"

# Seconds a late firing is still run; keeps cron's minute resolution
MISFIRE_GRACE_SECONDS = 60


class ExpressionError(ValueError):
    """Raised for a malformed trigger expression."""


@dataclass(frozen=True)
class Expression:
    """
    A five-field cron expression: "minute hour * * day_of_week".

    Only literal minute/hour values and a single weekday token (or "*") are
    supported; day-of-month and month are always "*". A non-zero `second`
    adds a leading seconds field: "30 1 0 * * *".
    """
    minute: int
    hour: int
    day_of_week: str = "*"
    second: int = 0

    def __post_init__(self):
        if not 0 <= self.minute <= 59:
            raise ExpressionError(f"Minute out of range: {self.minute}")
        if not 0 <= self.hour <= 23:
            raise ExpressionError(f"Hour out of range: {self.hour}")
        if not 0 <= self.second <= 59:
            raise ExpressionError(f"Second out of range: {self.second}")
        if self.day_of_week != "*" and self.day_of_week not in WEEKDAYS:
            raise ExpressionError(f"Invalid day of week: {self.day_of_week!r}")

    def __str__(self) -> str:
        text = f"{self.minute} {self.hour} * * {self.day_of_week}"
        return f"{self.second} {text}" if self.second else text

    @classmethod
    def parse(cls, text: str) -> "Expression":
        fields = text.split()
        second = "0"
        if len(fields) == 6:
            second, fields = fields[0], fields[1:]
        if len(fields) != 5:
            raise ExpressionError(f"Expected 5 or 6 fields, got {len(text.split())}: {text!r}")

        minute, hour, day, month, day_of_week = fields
        if day != "*" or month != "*":
            raise ExpressionError(f"Day of month and month must be '*': {text!r}")
        try:
            return cls(int(minute), int(hour), day_of_week.upper(), int(second))
        except ValueError as e:
            raise ExpressionError(f"Invalid expression {text!r}: {e}") from None

    def to_cron_trigger(self) -> CronTrigger:
        day_of_week = None if self.day_of_week == "*" else self.day_of_week.lower()
        return CronTrigger(second=self.second, minute=self.minute, hour=self.hour, day_of_week=day_of_week)


@dataclass(frozen=True)
class Trigger:
    """A registered expression and what it does when it fires."""
    expression: Expression
    kind: str
    sound: Optional[str] = None


class TriggerScheduler:
    """A set of recurring triggers that becomes live on start()."""

    def __init__(self, generation: int = 0, is_current: Optional[Callable[[int], bool]] = None):
        """
        Args:
            generation: Build number assigned by the SchedulerManager
            is_current: Checked before every firing; superseded generations skip
        """
        self.generation = generation
        self._is_current = is_current
        self._scheduler = BackgroundScheduler(job_defaults={
            "coalesce": True,
            "misfire_grace_time": MISFIRE_GRACE_SECONDS,
        })
        self._triggers: list[Trigger] = []

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def register(
        self,
        expression: Union[Expression, str],
        callback: Callable[[], None],
        kind: str = PLAY,
        sound: Optional[str] = None,
    ) -> Trigger:
        """Register a zero-argument callback to run whenever the expression matches."""
        if isinstance(expression, str):
            expression = Expression.parse(expression)

        trigger = Trigger(expression=expression, kind=kind, sound=sound)

        def fire():
            if self._is_current is not None and not self._is_current(self.generation):
                logger.debug("Skipping superseded trigger {} ({})", expression, kind)
                return
            callback()

        self._scheduler.add_job(
            fire,
            trigger=expression.to_cron_trigger(),
            name=f"{kind} {expression}",
        )
        self._triggers.append(trigger)
        return trigger

    def triggers(self) -> tuple[Trigger, ...]:
        return tuple(self._triggers)

    def start(self):
        """Start evaluating the wall clock against the registered triggers."""
        if self._scheduler.running:
            return
        self._scheduler.start()
        logger.debug("Trigger scheduler {} started with {} triggers", self.generation, len(self._triggers))

    def stop(self):
        """Cancel every future firing. Callbacks already running are not interrupted."""
        self._scheduler.remove_all_jobs()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._triggers.clear()
        logger.debug("Trigger scheduler {} stopped", self.generation)

    def next_fire_times(self) -> list:
        """Next run time of every live job."""
        return [job.next_run_time for job in self._scheduler.get_jobs() if job.next_run_time]


class SchedulerManager:
    """
    Owns the active TriggerScheduler.

    Compile passes build a new scheduler, fill it, then hand it to
    activate(), which swaps it in under a lock before starting it.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._builds = itertools.count(1)
        self._generation = 0
        self._current: Optional[TriggerScheduler] = None

    @property
    def current(self) -> Optional[TriggerScheduler]:
        return self._current

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    def build(self) -> TriggerScheduler:
        """Create a new, not yet active, scheduler."""
        with self._lock:
            generation = next(self._builds)
        return TriggerScheduler(generation=generation, is_current=self.is_current)

    def activate(self, scheduler: TriggerScheduler) -> bool:
        """
        Replace the active scheduler with `scheduler` and start it.

        Returns False (and stops `scheduler`) if a newer build is already active.
        """
        with self._lock:
            if scheduler.generation <= self._generation:
                logger.warning(
                    "Discarding scheduler {}: newer scheduler {} is active",
                    scheduler.generation, self._generation,
                )
                scheduler.stop()
                return False

            previous = self._current
            self._current = scheduler
            self._generation = scheduler.generation
            if previous is not None:
                previous.stop()
            scheduler.start()

        return True

    def shutdown(self):
        """Stop the active scheduler."""
        with self._lock:
            if self._current is not None:
                logger.info("Stopping trigger scheduler")
                self._current.stop()
                self._current = None
