"""Tests for compiling schedule.json into triggers."""

from datetime import datetime

import pytest

from bell.compiler import RECOMPILE_EXPRESSION, ScheduleCompiler
from bell.models import ScheduleFileError
from bell.scheduler import PLAY, RECOMPILE, Expression, Trigger

JUNE_2024 = datetime(2024, 6, 1, 12, 0)


def _triples(triggers):
    return {(t.expression.minute, t.expression.hour, t.expression.day_of_week, t.kind, t.sound) for t in triggers}


@pytest.fixture
def compiler(manager, player, write_schedule, spring):
    path = write_schedule([spring])
    return ScheduleCompiler(manager, player, path)


class TestCompile:
    def test_spring_scenario(self, compiler, manager):
        report = compiler.compile(now=JUNE_2024)

        assert report.active == ["Spring"]
        assert report.skipped == []
        assert report.triggers == (
            Trigger(Expression(0, 8, "MON"), PLAY, "chime.mp3"),
            Trigger(Expression(1, 0, "*", second=30), RECOMPILE),
        )
        assert manager.current.triggers() == report.triggers
        assert manager.current.running

    def test_after_end_arms_no_play_triggers(self, compiler):
        report = compiler.compile(now=datetime(2025, 1, 1, 0, 0))

        assert report.active == []
        assert report.skipped == ["Spring"]
        assert report.play_triggers == []

    def test_recompile_trigger_armed_without_active_schedules(self, compiler):
        report = compiler.compile(now=datetime(2023, 6, 1))

        assert [t.expression for t in report.triggers] == [RECOMPILE_EXPRESSION]
        assert report.triggers[0].kind == RECOMPILE

    def test_single_recompile_trigger_for_many_schedules(self, manager, player, write_schedule, spring):
        autumn = dict(spring, name="Autumn")
        path = write_schedule([spring, autumn])

        report = ScheduleCompiler(manager, player, path).compile(now=JUNE_2024)

        assert report.active == ["Spring", "Autumn"]
        assert len(report.play_triggers) == 2
        assert [t.kind for t in report.triggers].count(RECOMPILE) == 1

    @pytest.mark.parametrize("now, active", [
        (datetime(2023, 12, 31, 23, 59), False),
        (datetime(2024, 1, 1, 0, 0), True),
        (datetime(2024, 12, 31, 23, 59), True),
        (datetime(2025, 1, 1, 0, 0), False),
    ])
    def test_window_boundaries(self, compiler, now, active):
        report = compiler.compile(now=now)
        assert bool(report.play_triggers) is active

    def test_inverted_window(self, manager, player, write_schedule, spring):
        spring.update(starts="2024-12-31", ends="2024-01-01")
        compiler = ScheduleCompiler(manager, player, write_schedule([spring]))

        for now in (datetime(2024, 1, 1), JUNE_2024, datetime(2024, 12, 31)):
            assert compiler.compile(now=now).play_triggers == []

    def test_every_event_armed_once(self, manager, player, write_schedule, spring):
        spring["days"] = [
            {"name": "Monday", "events": [
                {"time": "08:00", "sound": "start.mp3"},
                {"time": "12:30", "sound": "lunch.mp3"},
            ]},
            {"name": "friday", "events": [{"time": "16:45", "sound": "end.mp3"}]},
        ]
        report = ScheduleCompiler(manager, player, write_schedule([spring])).compile(now=JUNE_2024)

        assert _triples(report.play_triggers) == {
            (0, 8, "MON", PLAY, "start.mp3"),
            (30, 12, "MON", PLAY, "lunch.mp3"),
            (45, 16, "FRI", PLAY, "end.mp3"),
        }

    def test_idempotent(self, compiler):
        first = compiler.compile(now=JUNE_2024)
        second = compiler.compile(now=JUNE_2024)

        assert _triples(first.triggers) == _triples(second.triggers)


class TestSkips:
    def test_bad_time_skips_only_that_event(self, manager, player, write_schedule, spring):
        spring["days"] = [
            {"name": "Monday", "events": [
                {"time": "aa:bb", "sound": "bad.mp3"},
                {"time": "09:00", "sound": "good.mp3"},
            ]},
            {"name": "Tuesday", "events": [{"time": "10:00", "sound": "tue.mp3"}]},
        ]
        report = ScheduleCompiler(manager, player, write_schedule([spring])).compile(now=JUNE_2024)

        assert _triples(report.play_triggers) == {
            (0, 9, "MON", PLAY, "good.mp3"),
            (0, 10, "TUE", PLAY, "tue.mp3"),
        }

    def test_bad_weekday_skips_only_that_day(self, manager, player, write_schedule, spring):
        spring["days"].insert(0, {"name": "Someday", "events": [{"time": "07:00", "sound": "x.mp3"}]})
        report = ScheduleCompiler(manager, player, write_schedule([spring])).compile(now=JUNE_2024)

        assert _triples(report.play_triggers) == {(0, 8, "MON", PLAY, "chime.mp3")}

    def test_bad_date_skips_only_that_schedule(self, manager, player, write_schedule, spring):
        broken = dict(spring, name="Broken", starts="2024-1-1")
        path = write_schedule([broken, spring])

        report = ScheduleCompiler(manager, player, path).compile(now=JUNE_2024)

        assert report.active == ["Spring"]
        assert report.skipped == ["Broken"]
        assert len(report.play_triggers) == 1


class TestScheduleFileErrors:
    def test_missing_file(self, manager, player, tmp_path):
        with pytest.raises(ScheduleFileError):
            ScheduleCompiler(manager, player, tmp_path / "missing.json").compile()
        assert manager.current is None

    def test_malformed_file_keeps_current_triggers(self, compiler, manager, write_schedule):
        compiler.compile(now=JUNE_2024)
        active = manager.current

        write_schedule("not json")
        compiler.recompile()

        assert manager.current is active
        assert active.running


class TestCallbacks:
    def test_play_trigger_calls_player(self, compiler, manager, player):
        compiler.compile(now=JUNE_2024)
        jobs = {job.name: job for job in manager.current._scheduler.get_jobs()}

        jobs["play 0 8 * * MON"].func()

        assert player.played == ["chime.mp3"]

    def test_recompile_trigger_rebuilds(self, compiler, manager):
        compiler.compile(now=JUNE_2024)
        first = manager.current
        jobs = {job.name: job for job in first._scheduler.get_jobs()}

        jobs["recompile 30 1 0 * * *"].func()

        assert manager.current is not first
        assert not first.running


class TestRecompileTiming:
    def test_rebuild_runs_after_plays_due_in_the_same_minute(self, manager, player, write_schedule, spring):
        spring["days"] = [{"name": "Monday", "events": [{"time": "00:01", "sound": "midnight.mp3"}]}]
        report = ScheduleCompiler(manager, player, write_schedule([spring])).compile(now=JUNE_2024)
        play = report.play_triggers[0].expression.to_cron_trigger()
        rebuild = RECOMPILE_EXPRESSION.to_cron_trigger()
        # Monday 2024-06-03, just before the shared minute
        now = datetime(2024, 6, 3, 0, 0, 59, tzinfo=rebuild.timezone)

        play_at = play.get_next_fire_time(None, now)
        rebuild_at = rebuild.get_next_fire_time(None, now)

        assert (play_at.hour, play_at.minute, play_at.second) == (0, 1, 0)
        assert (rebuild_at.hour, rebuild_at.minute, rebuild_at.second) == (0, 1, 30)
        assert play_at < rebuild_at
