"""Progression state value type shared by the engine and the stores."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any


class CounterKind(str, Enum):
    """Activity counters tracked per user."""
    FLASHCARDS_CREATED = "flashcards_created"
    DECKS_CREATED = "decks_created"
    QUIZZES_TAKEN = "quizzes_taken"
    PERFECT_QUIZZES = "perfect_quizzes"
    COMMENTS_POSTED = "comments_posted"


def zero_counters() -> dict[CounterKind, int]:
    return {kind: 0 for kind in CounterKind}


@dataclass
class ProgressionState:
    """Snapshot of one user's progression.

    Instances handed out by a store are private copies: mutating one never
    touches stored data. Use ``copy()`` before building a working state.
    """

    user_id: int
    xp: int = 0
    level: int = 1
    streak_current: int = 0
    streak_longest: int = 0
    last_activity_date: date | None = None
    counters: dict[CounterKind, int] = field(default_factory=zero_counters)
    badges: set[str] = field(default_factory=set)
    version: int = 0

    def copy(self) -> "ProgressionState":
        return ProgressionState(
            user_id=self.user_id,
            xp=self.xp,
            level=self.level,
            streak_current=self.streak_current,
            streak_longest=self.streak_longest,
            last_activity_date=self.last_activity_date,
            counters=dict(self.counters),
            badges=set(self.badges),
            version=self.version,
        )

    def counter(self, kind: CounterKind) -> int:
        return self.counters.get(kind, 0)

    def increment(self, kind: CounterKind, amount: int = 1) -> None:
        self.counters[kind] = self.counter(kind) + amount

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation (badges sorted for stable output)."""
        return {
            "user_id": self.user_id,
            "xp": self.xp,
            "level": self.level,
            "streak_current": self.streak_current,
            "streak_longest": self.streak_longest,
            "last_activity_date": (
                self.last_activity_date.isoformat() if self.last_activity_date else None
            ),
            "counters": {kind.value: self.counter(kind) for kind in CounterKind},
            "badges": sorted(self.badges),
            "version": self.version,
        }

    @classmethod
    def from_storage(
        cls,
        user_id: int,
        xp: int,
        level: int,
        streak_current: int,
        streak_longest: int,
        last_activity_date: date | None,
        counters: dict[str, int] | None,
        badges: list[str] | None,
        version: int,
    ) -> "ProgressionState":
        """Rebuild a state from raw column values, ignoring unknown counters."""
        parsed = zero_counters()
        for key, value in (counters or {}).items():
            try:
                parsed[CounterKind(key)] = int(value)
            except ValueError:
                continue
        return cls(
            user_id=user_id,
            xp=xp,
            level=level,
            streak_current=streak_current,
            streak_longest=streak_longest,
            last_activity_date=last_activity_date,
            counters=parsed,
            badges=set(badges or []),
            version=version,
        )
