"""Progression engine - turns user actions into atomic progression updates.

Each call loads the user's state, computes the next state entirely in memory
(event delta, streak, level, badge cascade) and commits it with one
compare-and-swap. A lost race discards the computed state and starts over
from a fresh load with the same event. Event deltas are absolute increments,
so re-applying them to newer state never double counts or loses an update.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Any, Awaitable, Callable, TypeVar

from studyhub.core.config import Settings, settings as default_settings
from studyhub.core.exceptions import (
    ConcurrentUpdateExceeded,
    ProgressionNotFound,
    VersionConflict,
)
from studyhub.services.badges import BadgeCatalog
from studyhub.services.events import EventKind, ProgressionEvent, validate_event
from studyhub.services.levels import LevelTable
from studyhub.services.retry import RetryPolicy
from studyhub.services.state import CounterKind, ProgressionState
from studyhub.services.store import ProgressionStore
from studyhub.services.streaks import StreakPolicy, activity_day

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# XP RULES
# =============================================================================

@dataclass(frozen=True)
class XPRules:
    """Direct XP per event kind (badge rewards and streak bonus come on top)."""

    flashcard_created: int = 10
    deck_created: int = 25
    quiz_max: int = 30
    comment_posted: int = 5

    def __post_init__(self):
        for name in ("flashcard_created", "deck_created", "quiz_max", "comment_posted"):
            if getattr(self, name) < 0:
                raise ValueError(f"XP for {name} cannot be negative")

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "XPRules":
        config = config or default_settings
        return cls(
            flashcard_created=config.xp_flashcard_created,
            deck_created=config.xp_deck_created,
            quiz_max=config.xp_quiz_max,
            comment_posted=config.xp_comment_posted,
        )

    def quiz_xp(self, correct: int, total: int) -> int:
        """``quiz_max`` scaled by the score, rounded half up."""
        return (2 * correct * self.quiz_max + total) // (2 * total)


# =============================================================================
# OUTCOME
# =============================================================================

@dataclass(frozen=True)
class Outcome:
    """What one committed apply() changed, for toasts and level-up banners."""

    user_id: int
    new_badges: tuple[str, ...]
    xp_gained: int
    leveled_up: bool
    previous_level: int
    new_level: int
    new_streak_current: int
    badge_xp: int
    version: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "new_badges": list(self.new_badges),
            "xp_gained": self.xp_gained,
            "leveled_up": self.leveled_up,
            "previous_level": self.previous_level,
            "new_level": self.new_level,
            "new_streak_current": self.new_streak_current,
            "badge_xp": self.badge_xp,
            "version": self.version,
        }


# =============================================================================
# ENGINE
# =============================================================================

class ProgressionEngine:
    """Applies progression events with optimistic concurrency.

    The engine keeps no mutable state of its own, so one instance can serve
    any number of concurrent callers, including several for the same user.
    """

    def __init__(
        self,
        store: ProgressionStore,
        catalog: BadgeCatalog,
        level_table: LevelTable | None = None,
        streak_policy: StreakPolicy | None = None,
        retry_policy: RetryPolicy | None = None,
        xp_rules: XPRules | None = None,
        tz: tzinfo | None = None,
        default_timeout: float | None = None,
    ):
        self.store = store
        self.catalog = catalog
        self.level_table = level_table or LevelTable()
        self.streak_policy = streak_policy or StreakPolicy()
        self.retry_policy = retry_policy or RetryPolicy()
        self.xp_rules = xp_rules or XPRules()
        self.tz = tz or default_settings.tzinfo
        self.default_timeout = default_timeout

    @classmethod
    def from_settings(
        cls,
        store: ProgressionStore,
        catalog: BadgeCatalog,
        config: Settings | None = None,
    ) -> "ProgressionEngine":
        config = config or default_settings
        return cls(
            store=store,
            catalog=catalog,
            streak_policy=StreakPolicy(bonus_xp=config.streak_bonus_xp),
            retry_policy=RetryPolicy.from_settings(config),
            xp_rules=XPRules.from_settings(config),
            tz=config.tzinfo,
            default_timeout=config.apply_timeout_seconds,
        )

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def apply(self, event: ProgressionEvent, timeout: float | None = None) -> Outcome:
        """
        Apply one event and commit the resulting state.

        Raises:
            InvalidEvent: unknown kind or bad payload (nothing is read or written).
            OutOfOrderEvent: activity date before the last recorded one.
            ProgressionNotFound: user has no progression record.
            ConcurrentUpdateExceeded: every attempt lost to a concurrent writer.
            StorageUnavailable: the store failed.
            TimeoutError: ``timeout`` elapsed; nothing was written unless the
                final swap had already completed.
        """
        event = validate_event(event)
        return await self._bounded(
            self._commit_with_retry(
                event.user_id,
                lambda state: self._transition(state, event),
                operation=event.kind.value,
            ),
            timeout,
        )

    async def reconcile(self, user_id: int, timeout: float | None = None) -> Outcome:
        """Re-run the badge cascade without an event.

        Picks up badges added to the catalog after a user already qualified.
        Writes nothing when the user is already up to date.
        """

        def recompute(state: ProgressionState) -> ProgressionState | None:
            working = state.copy()
            working.level = self.level_table.level_for(working.xp)
            self._cascade(working)
            if working.badges == state.badges and working.level == state.level:
                return None
            return working

        return await self._bounded(
            self._commit_with_retry(user_id, recompute, operation="reconcile"),
            timeout,
        )

    async def get_state(self, user_id: int) -> ProgressionState:
        """Read-only snapshot of a user's progression."""
        state, _ = await self.store.load(user_id)
        return state

    def transition(self, state: ProgressionState, event: ProgressionEvent) -> ProgressionState:
        """Pure next-state function (no I/O). ``state`` is left untouched."""
        return self._transition(state, validate_event(event))

    # -------------------------------------------------------------------------
    # State transition
    # -------------------------------------------------------------------------

    def _transition(self, state: ProgressionState, event: ProgressionEvent) -> ProgressionState:
        working = state.copy()
        kind = event.kind

        if kind == EventKind.FLASHCARD_CREATED:
            working.increment(CounterKind.FLASHCARDS_CREATED)
            working.xp += self.xp_rules.flashcard_created
        elif kind == EventKind.DECK_CREATED:
            working.increment(CounterKind.DECKS_CREATED)
            working.xp += self.xp_rules.deck_created
        elif kind == EventKind.QUIZ_COMPLETED:
            correct = event.payload["correct"]
            total = event.payload["total"]
            working.increment(CounterKind.QUIZZES_TAKEN)
            working.xp += self.xp_rules.quiz_xp(correct, total)
            if correct == total:
                working.increment(CounterKind.PERFECT_QUIZZES)
        elif kind == EventKind.COMMENT_POSTED:
            working.increment(CounterKind.COMMENTS_POSTED)
            working.xp += self.xp_rules.comment_posted
        elif kind == EventKind.ACTIVITY_ON_DATE:
            today = self._activity_date(event)
            streak = self.streak_policy.transition(
                working.last_activity_date,
                working.streak_current,
                working.streak_longest,
                today,
            )
            working.streak_current = streak.current
            working.streak_longest = streak.longest
            working.last_activity_date = today
            working.xp += streak.bonus_xp

        working.level = self.level_table.level_for(working.xp)
        self._cascade(working)
        return working

    def _activity_date(self, event: ProgressionEvent) -> date:
        explicit = event.payload.get("date")
        if explicit is None:
            return activity_day(event.occurred_at, self.tz)
        if isinstance(explicit, datetime):
            return activity_day(explicit, self.tz)
        return explicit

    def _cascade(self, working: ProgressionState) -> None:
        """Unlock badges until none qualify.

        Rewards can cross a level threshold or satisfy another badge, so keep
        evaluating. Terminates: every pass adds at least one badge from a
        finite catalog.
        """
        while True:
            newly_earned = self.catalog.evaluate_newly_earned(working)
            if not newly_earned:
                return
            for badge in newly_earned:
                working.badges.add(badge.id)
                working.xp += badge.xp_reward
                working.level = self.level_table.level_for(working.xp)

    # -------------------------------------------------------------------------
    # Commit loop
    # -------------------------------------------------------------------------

    async def _bounded(self, coro: Awaitable[T], timeout: float | None) -> T:
        timeout = timeout if timeout is not None else self.default_timeout
        if timeout is None:
            return await coro
        return await asyncio.wait_for(coro, timeout)

    async def _commit_with_retry(
        self,
        user_id: int,
        compute: Callable[[ProgressionState], ProgressionState | None],
        operation: str,
    ) -> Outcome:
        max_attempts = self.retry_policy.max_attempts

        for attempt in range(1, max_attempts + 1):
            try:
                before, version = await self.store.load(user_id)
            except ProgressionNotFound:
                logger.error(
                    "Progression record missing for user %d during %s", user_id, operation
                )
                raise

            after = compute(before)
            if after is None:
                return self._outcome(before, before)

            try:
                after.version = await self.store.compare_and_swap(user_id, version, after)
            except VersionConflict:
                logger.debug(
                    "Version conflict for user %d during %s (attempt %d/%d)",
                    user_id, operation, attempt, max_attempts,
                )
                if attempt < max_attempts:
                    await self.retry_policy.wait(attempt)
                continue

            outcome = self._outcome(before, after)
            logger.info(
                "Progression %s: user=%d xp=+%d level=%d->%d badges=%s version=%d",
                operation, user_id, outcome.xp_gained, outcome.previous_level,
                outcome.new_level, ",".join(outcome.new_badges) or "-", outcome.version,
            )
            return outcome

        logger.warning(
            "Giving up %s for user %d after %d conflicting attempts",
            operation, user_id, max_attempts,
        )
        raise ConcurrentUpdateExceeded(user_id, max_attempts)

    def _outcome(self, before: ProgressionState, after: ProgressionState) -> Outcome:
        gained = after.badges - before.badges
        new_badges = tuple(badge.id for badge in self.catalog if badge.id in gained)
        return Outcome(
            user_id=after.user_id,
            new_badges=new_badges,
            xp_gained=after.xp - before.xp,
            leveled_up=after.level > before.level,
            previous_level=before.level,
            new_level=after.level,
            new_streak_current=after.streak_current,
            badge_xp=sum(self.catalog.get(badge_id).xp_reward for badge_id in new_badges),
            version=after.version,
        )
