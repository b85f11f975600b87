import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from ..models import Vibe
from ..schemas import Milestone, NextMilestone, StreakOut
from .vibes import utc_today

STREAK_MILESTONES = [
    (7, "Week Warrior"),
    (14, "Fortnight Fighter"),
    (30, "Monthly Master"),
    (50, "Fifty Fire"),
    (100, "Century Club"),
    (365, "Year of Vibes"),
]


@dataclass
class Streak:
    current: int
    longest: int
    last_post_date: Optional[date]


def compute_streak(vibe_dates: Iterable[date], today: date) -> Streak:
    """Derive streak figures from the dates a user posted on.

    The current streak is the run of consecutive days ending at the latest
    post, and only counts while that post is from today or yesterday.
    """
    days = sorted(set(vibe_dates))
    if not days:
        return Streak(current=0, longest=0, last_post_date=None)

    longest = run = 1
    for prev, day in zip(days, days[1:]):
        run = run + 1 if day - prev == timedelta(days=1) else 1
        longest = max(longest, run)

    last = days[-1]
    # run now holds the length of the trailing run
    current = run if today - last <= timedelta(days=1) else 0
    return Streak(current=current, longest=longest, last_post_date=last)


def milestone_for(streak: int) -> Optional[Milestone]:
    reached = [Milestone(days=d, name=n) for d, n in STREAK_MILESTONES if streak >= d]
    return reached[-1] if reached else None


def next_milestone(streak: int) -> Optional[NextMilestone]:
    for d, n in STREAK_MILESTONES:
        if streak < d:
            return NextMilestone(days=d, name=n, daysRemaining=d - streak)
    return None


async def get_streak(db: AsyncSession, user_id: uuid.UUID, today: Optional[date] = None) -> StreakOut:
    dates = (await db.scalars(select(Vibe.vibe_date).where(Vibe.user_id == user_id))).all()
    streak = compute_streak(dates, today or utc_today())
    return StreakOut(
        currentStreak=streak.current,
        longestStreak=streak.longest,
        lastPostDate=streak.last_post_date,
        milestone=milestone_for(streak.current),
        nextMilestone=next_milestone(streak.current),
    )
