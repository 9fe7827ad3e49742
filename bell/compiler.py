"""Compiles schedule.json into recurring play triggers."""

import functools
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from . import SCHEDULE_FILE
from .models import Day, Schedule, ScheduleError, ScheduleFileError, load_schedules
from .scheduler import PLAY, RECOMPILE, Expression, SchedulerManager, Trigger, TriggerScheduler

# Daily rebuild so schedules switch on and off as their date windows pass.
# Play triggers fire at second 0; the rebuild runs at 00:01:30 so it never
# supersedes a play firing that is due in the same instant.
RECOMPILE_EXPRESSION = Expression(minute=1, hour=0, second=30)


@dataclass
class CompileReport:
    """Outcome of one compile pass."""
    active: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    triggers: tuple[Trigger, ...] = ()

    @property
    def play_triggers(self) -> list[Trigger]:
        return [t for t in self.triggers if t.kind == PLAY]


class ScheduleCompiler:
    """Rebuilds the full trigger set from the schedule file."""

    def __init__(
        self,
        manager: SchedulerManager,
        play: Callable[[str], object],
        schedule_file: Path = SCHEDULE_FILE,
    ):
        """
        Args:
            manager: Owner of the active trigger scheduler
            play: Called with a sound filename when a play trigger fires
            schedule_file: Path to schedule.json
        """
        self.manager = manager
        self.play = play
        self.schedule_file = Path(schedule_file)

    def compile(self, now: Optional[datetime] = None) -> CompileReport:
        """
        Load the schedule file and replace every armed trigger.

        Raises ScheduleFileError if the file is missing or malformed; the
        previously armed triggers are left untouched in that case. Problems
        with individual schedules, days and events are logged and skipped.
        """
        schedules = load_schedules(self.schedule_file)

        if now is None:
            now = datetime.now()

        scheduler = self.manager.build()
        report = CompileReport()

        for schedule in schedules:
            try:
                active = schedule.is_active(now)
            except ScheduleError as e:
                logger.error("Schedule {}: {}", schedule.name, e)
                report.skipped.append(schedule.name)
                continue

            if not active:
                logger.info("Schedule {} is outside {} - {}, skipping", schedule.name, schedule.starts, schedule.ends)
                report.skipped.append(schedule.name)
                continue

            logger.info("Configuring schedule: {}", schedule.name)
            self._configure_days(scheduler, schedule)
            report.active.append(schedule.name)

        scheduler.register(RECOMPILE_EXPRESSION, self.recompile, kind=RECOMPILE)
        report.triggers = scheduler.triggers()

        self.manager.activate(scheduler)
        logger.info(
            "Armed {} play triggers from {} active schedules",
            len(report.play_triggers), len(report.active),
        )
        return report

    def recompile(self):
        """Scheduled rebuild; keeps the current triggers if the file became unreadable."""
        logger.info("Recompiling schedules")
        try:
            self.compile()
        except ScheduleFileError as e:
            logger.critical("Could not parse schedule, keeping current triggers: {}", e)

    def _configure_days(self, scheduler: TriggerScheduler, schedule: Schedule):
        for day in schedule.days:
            try:
                token = day.token
            except ScheduleError as e:
                logger.error("Schedule {}: {}", schedule.name, e)
                continue
            self._configure_events(scheduler, token, day)

    def _configure_events(self, scheduler: TriggerScheduler, token: str, day: Day):
        logger.debug("Configuring: {}", token)
        for event in day.events:
            try:
                hour, minute = event.hour_minute()
            except ScheduleError as e:
                logger.error("{} {}: {}", day.name, event.sound, e)
                continue

            expression = Expression(minute=minute, hour=hour, day_of_week=token)
            logger.debug("{:02d}:{:02d} | {}", hour, minute, expression)
            scheduler.register(
                expression,
                functools.partial(self.play, event.sound),
                kind=PLAY,
                sound=event.sound,
            )
