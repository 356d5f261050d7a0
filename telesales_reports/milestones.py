"""Login streak milestones and the end-of-day streak reminder."""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import StrEnum
from typing import Final, Iterable

from .storage import DailyFlag, KeyValueStore, SeenSet

SEEN_MILESTONES_KEY: Final[str] = "login-streak-milestones-seen"
REMINDER_DISMISSED_KEY: Final[str] = "login-streak-reminder-dismissed"
AT_RISK_HOURS: Final[float] = 12


class Rarity(StrEnum):
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class Urgency(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Milestone:
    days: int
    title: str
    rarity: Rarity

    @property
    def id(self) -> str:
        return f"streak-{self.days}"


STREAK_MILESTONES: Final[tuple[Milestone, ...]] = (
    Milestone(7, "Week Warrior", Rarity.RARE),
    Milestone(30, "Monthly Master", Rarity.EPIC),
    Milestone(100, "Century Legend", Rarity.LEGENDARY),
)


def get_exact_milestone(streak: int) -> Milestone | None:
    """Return the milestone reached exactly at ``streak`` days, if any."""
    return next((m for m in STREAK_MILESTONES if m.days == streak), None)


def get_next_milestone(streak: int) -> Milestone | None:
    """Return the first milestone still ahead of ``streak``, if any."""
    return next((m for m in STREAK_MILESTONES if m.days > streak), None)


def unseen_milestones(streak: int, seen: Iterable[str]) -> list[Milestone]:
    """Milestones reached by ``streak`` that have not been celebrated yet."""
    seen_ids = set(seen)
    return [m for m in STREAK_MILESTONES if m.days <= streak and m.id not in seen_ids]


def hours_until_end_of_day(now: datetime) -> float:
    end_of_day = datetime.combine(now.date() + timedelta(days=1), time.min, tzinfo=now.tzinfo)
    return (end_of_day - now).total_seconds() / 3600


def reminder_urgency(hours_remaining: float) -> Urgency:
    if hours_remaining < 1:
        return Urgency.CRITICAL
    if hours_remaining < 3:
        return Urgency.HIGH
    if hours_remaining < 6:
        return Urgency.MEDIUM
    return Urgency.LOW


def is_streak_at_risk(*, streak: int, logged_in_today: bool, hours_remaining: float) -> bool:
    """A live streak is at risk when today's login is missing late in the day."""
    return streak > 0 and not logged_in_today and hours_remaining < AT_RISK_HOURS


@dataclass(frozen=True)
class StreakReminder:
    streak: int
    hours_remaining: float
    urgency: Urgency


class StreakTracker:
    """Milestone celebrations and reminder dismissal for one user.

    State is kept in a KeyValueStore: seen milestone ids as a list and the
    dismissed reminder flag keyed by the day it was dismissed.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.seen = SeenSet(store, SEEN_MILESTONES_KEY)
        self.dismissed = DailyFlag(store, REMINDER_DISMISSED_KEY)

    def pending_celebrations(self, streak: int) -> list[Milestone]:
        return unseen_milestones(streak, self.seen.ids)

    def mark_celebrated(self, milestone: Milestone) -> None:
        self.seen.add(milestone.id)

    def reminder(
        self, *, streak: int, logged_in_today: bool, now: datetime
    ) -> StreakReminder | None:
        """Return the reminder to show, or None when it is not needed or was dismissed today."""
        if self.dismissed.is_set(now.date()):
            return None
        hours = hours_until_end_of_day(now)
        if not is_streak_at_risk(
            streak=streak, logged_in_today=logged_in_today, hours_remaining=hours
        ):
            return None
        return StreakReminder(streak=streak, hours_remaining=hours, urgency=reminder_urgency(hours))

    def dismiss_reminder(self, today: date) -> None:
        self.dismissed.set(today)
