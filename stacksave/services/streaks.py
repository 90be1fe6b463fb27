#!/usr/bin/env python3
"""
Deposit streaks.

A streak counts consecutive calendar days with at least one deposit.
The state machine is pure (StreakState in, StreakState out) so the same
decision logic serves the deposit path, the read path and the tests.
Decay is lazy: nothing runs in the background, a stale streak is zeroed
the next time it is looked at.
"""
import logging
from dataclasses import dataclass, asdict, replace
from datetime import date
from typing import Optional, Dict, Any, Callable

from stacksave.errors import NotFoundError

logger = logging.getLogger("stacksave.streaks")


@dataclass(frozen=True)
class StreakState:
    current_streak: int = 0
    longest_streak: int = 0
    last_deposit_date: Optional[date] = None
    total_deposits: int = 0

    @classmethod
    def from_row(cls, row) -> 'StreakState':
        return cls(
            current_streak=row['current_streak'] or 0,
            longest_streak=row['longest_streak'] or 0,
            last_deposit_date=row['last_deposit_date'],
            total_deposits=row['total_deposits'] or 0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def day_gap(last: date, today: date) -> int:
    """Whole days between two dates."""
    return (today - last).days


def compute_streak_view(state: StreakState, today: date) -> StreakState:
    """Streak as it should be seen on `today`.

    More than one day without a deposit breaks the streak. Only
    current_streak decays; longest_streak and total_deposits never move here.
    """
    if state.last_deposit_date is None or state.current_streak <= 0:
        return state
    if day_gap(state.last_deposit_date, today) > 1:
        return replace(state, current_streak=0)
    return state


def advance_streak(state: StreakState, today: date) -> Optional[StreakState]:
    """Apply a deposit made on `today`.

    Returns None when nothing changes: a second deposit on the same day, or
    a last_deposit_date in the future (clock skew) which is never rewound.
    """
    if state.last_deposit_date is None:
        current = 1
    else:
        gap = day_gap(state.last_deposit_date, today)
        if gap <= 0:
            return None
        current = state.current_streak + 1 if gap == 1 else 1

    return StreakState(
        current_streak=current,
        longest_streak=max(state.longest_streak, current),
        last_deposit_date=today,
        total_deposits=state.total_deposits + 1,
    )


def reset_streak(state: StreakState) -> StreakState:
    return replace(state, current_streak=0)


class StreakService:
    """Store-backed streak reads and manual operations."""

    def __init__(self, db, today: Callable[[], date] = date.today):
        self.db = db
        self.today = today

    def get_streak(self, user_id) -> Dict[str, Any]:
        """Current streak for a user, applying (and persisting) lazy decay."""
        with self.db.transaction() as conn:
            self.db.lock_user(conn, user_id)
            row = self.db.get_streak_row(conn, user_id)
            if row is None:
                row = self.db.insert_streak_row(conn, user_id)

            stored = StreakState.from_row(row)
            view = compute_streak_view(stored, self.today())
            if view != stored:
                self.db.save_streak_row(conn, user_id, view)
                logger.info(f"[Streaks] User {user_id} streak lapsed ({stored.current_streak} -> 0)")

            result = dict(row)
            result.update(view.to_dict())
            return result

    def check_streak(self, user_id) -> Dict[str, Any]:
        """Advance the streak for today outside the deposit path."""
        with self.db.transaction() as conn:
            row = self.db.get_streak_row(conn, user_id)
            if row is None:
                raise NotFoundError("Streak record not found", user_id=user_id)

            today = self.today()
            stored = compute_streak_view(StreakState.from_row(row), today)
            advanced = advance_streak(stored, today)
            if advanced is None:
                return {'updated': False, **stored.to_dict()}

            self.db.save_streak_row(conn, user_id, advanced)
            return {'updated': True, **advanced.to_dict()}

    def reset_streak(self, user_id) -> Dict[str, Any]:
        with self.db.transaction() as conn:
            row = self.db.get_streak_row(conn, user_id)
            if row is None:
                raise NotFoundError("Streak record not found", user_id=user_id)

            state = reset_streak(StreakState.from_row(row))
            self.db.save_streak_row(conn, user_id, state)
            logger.info(f"[Streaks] User {user_id} streak reset")
            return state.to_dict()
