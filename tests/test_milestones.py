"""Unit tests for streak milestones and reminders"""

from datetime import date, datetime

import pytest

from telesales_reports.milestones import (
    StreakTracker,
    Urgency,
    get_exact_milestone,
    get_next_milestone,
    hours_until_end_of_day,
    is_streak_at_risk,
    reminder_urgency,
    unseen_milestones,
)


def test_exact_and_next_milestones():
    """Test milestone lookup around the thresholds"""
    assert get_exact_milestone(7).title == "Week Warrior"
    assert get_exact_milestone(8) is None
    assert get_next_milestone(7).days == 30
    assert get_next_milestone(0).days == 7
    assert get_next_milestone(100) is None


def test_unseen_milestones_skip_celebrated_ones():
    """Test only reached and not yet seen milestones are returned"""
    assert [m.days for m in unseen_milestones(35, seen=["streak-7"])] == [30]
    assert unseen_milestones(5, seen=[]) == []


@pytest.mark.parametrize(
    "hours,expected",
    [(0.5, Urgency.CRITICAL), (2, Urgency.HIGH), (5, Urgency.MEDIUM), (8, Urgency.LOW)],
)
def test_reminder_urgency(hours, expected):
    """Test urgency thresholds at 1, 3 and 6 hours"""
    assert reminder_urgency(hours) == expected


def test_streak_at_risk():
    """Test a live streak without today's login is at risk late in the day"""
    assert is_streak_at_risk(streak=3, logged_in_today=False, hours_remaining=4)
    assert not is_streak_at_risk(streak=3, logged_in_today=True, hours_remaining=4)
    assert not is_streak_at_risk(streak=0, logged_in_today=False, hours_remaining=4)
    assert not is_streak_at_risk(streak=3, logged_in_today=False, hours_remaining=14)


def test_hours_until_end_of_day():
    """Test the remaining time is measured to midnight"""
    assert hours_until_end_of_day(datetime(2024, 1, 5, 21, 30)) == 2.5


def test_tracker_dismissal_lasts_one_day(memory_store):
    """Test a dismissed reminder comes back the next day"""
    tracker = StreakTracker(memory_store)
    evening = datetime(2024, 1, 5, 22, 0)

    reminder = tracker.reminder(streak=4, logged_in_today=False, now=evening)
    assert reminder.urgency == Urgency.HIGH

    tracker.dismiss_reminder(date(2024, 1, 5))
    assert tracker.reminder(streak=4, logged_in_today=False, now=evening) is None
    assert StreakTracker(memory_store).reminder(
        streak=4, logged_in_today=False, now=datetime(2024, 1, 6, 23, 30)
    ).urgency == Urgency.CRITICAL


def test_tracker_celebrates_each_milestone_once(memory_store):
    """Test a celebrated milestone is remembered"""
    tracker = StreakTracker(memory_store)
    [milestone] = tracker.pending_celebrations(7)

    tracker.mark_celebrated(milestone)

    assert StreakTracker(memory_store).pending_celebrations(7) == []
