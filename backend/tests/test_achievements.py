from datetime import timedelta

from runmetrics.schemas.story import Story
from runmetrics.services.achievements import (
    ACHIEVEMENTS,
    ACHIEVEMENTS_BY_ID,
    AchievementData,
    AchievementTracker,
    check_achievements,
)

from helpers import T0, make_run


def _data(runs=(), **kwargs):
    return AchievementData(runs=list(runs), tz_name="UTC", **kwargs)


def test_ids_are_unique():
    assert len(ACHIEVEMENTS_BY_ID) == len(ACHIEVEMENTS)


def test_nothing_for_empty_history():
    assert check_achievements(_data(), []) == []


def test_first_run():
    assert check_achievements(_data([make_run("a.gpx")]), []) == ["first-steps"]


def test_already_unlocked_not_reported():
    assert check_achievements(_data([make_run("a.gpx")]), ["first-steps"]) == []


def test_streak_and_distance():
    runs = [make_run(f"{i}.gpx", start=T0 + timedelta(days=i), distance_m=5000) for i in range(4)]
    unlocked = check_achievements(_data(runs), [])
    assert "3-day-streak" in unlocked
    assert "10-miles" in unlocked
    assert "7-day-streak" not in unlocked


def test_early_bird_and_night_owl():
    early = make_run("early.gpx", start=T0.replace(hour=5, minute=30))
    late = make_run("late.gpx", start=T0.replace(hour=22) + timedelta(days=1))
    unlocked = check_achievements(_data([early, late]), [])
    assert "early-bird" in unlocked
    assert "night-owl" in unlocked


def test_weekend_warrior():
    saturdays = [make_run(f"{i}.gpx", start=T0 + timedelta(days=5 + 7 * i)) for i in range(10)]
    assert "weekend-warrior" in check_achievements(_data(saturdays), [])
    assert "weekend-warrior" not in check_achievements(_data(saturdays[:9]), [])


def test_stories_and_goals():
    story = Story(id="s1", title="Race day", created_at=T0, updated_at=T0)
    assert check_achievements(_data(stories=[story], completed_goals=1), []) == ["storyteller", "goal-crusher"]


def test_single_run_distance():
    unlocked = check_achievements(_data([make_run("half.gpx", distance_m=21100, duration_s=7200)]), [])
    assert "half-marathoner" in unlocked
    assert "marathoner" not in unlocked


def test_tracker_is_append_only(store):
    tracker = AchievementTracker(store)
    assert tracker.evaluate(_data([make_run("a.gpx")])) == ["first-steps"]
    assert tracker.evaluate(_data([make_run("a.gpx")])) == []
    # Losing the run does not revoke the achievement
    assert tracker.evaluate(_data()) == []

    reloaded = AchievementTracker(store)
    assert reloaded.unlocked_ids == ["first-steps"]
    listed = {a.id: a.unlocked for a in reloaded.list()}
    assert len(listed) == len(ACHIEVEMENTS)
    assert listed["first-steps"] is True
    assert listed["storyteller"] is False
