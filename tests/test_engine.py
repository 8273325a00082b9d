"""Tests for the progression engine.

Covers:
  - Per-event XP, counters and first-time badges
  - Streak updates through activity events (continue, reset, out of order)
  - Level-up at exact thresholds
  - Badge cascade across level thresholds
  - Quiz XP rounding and perfect-score tracking
  - Invalid events rejected before any store access
  - reconcile, get_state, pure transition
  - Timeouts leave stored state untouched
"""
import asyncio
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest

from studyhub.core.config import Settings
from studyhub.core.exceptions import InvalidEvent, OutOfOrderEvent, ProgressionNotFound
from studyhub.services.badges import BADGE_DEFINITIONS, BadgeCatalog, BadgeCategory, threshold_badge
from studyhub.services.engine import ProgressionEngine, XPRules
from studyhub.services.events import ProgressionEvent
from studyhub.services.retry import RetryPolicy
from studyhub.services.state import CounterKind, ProgressionState
from studyhub.services.store import InMemoryProgressionStore
from tests.conftest import make_state


# =============================================================================
# SINGLE EVENTS
# =============================================================================

class TestFlashcardCreated:

    async def test_first_flashcard(self, engine, store):
        """New user creates a flashcard: 10 XP plus the First Steps reward."""
        await store.create(1)

        outcome = await engine.apply(ProgressionEvent.flashcard_created(1))

        assert outcome.new_badges == ("first_flashcard",)
        assert outcome.xp_gained == 20
        assert outcome.badge_xp == 10
        assert outcome.leveled_up is False
        assert outcome.version == 1

        state = await engine.get_state(1)
        assert state.xp == 20
        assert state.level == 1
        assert state.counter(CounterKind.FLASHCARDS_CREATED) == 1
        assert state.badges == {"first_flashcard"}

    async def test_second_flashcard_no_badge(self, engine, store):
        await store.create(1)
        await engine.apply(ProgressionEvent.flashcard_created(1))

        outcome = await engine.apply(ProgressionEvent.flashcard_created(1))

        assert outcome.new_badges == ()
        assert outcome.xp_gained == 10
        assert outcome.badge_xp == 0
        assert outcome.version == 2


class TestOtherEvents:

    async def test_deck_created(self, engine, store):
        await store.create(1)
        outcome = await engine.apply(ProgressionEvent.deck_created(1))
        assert outcome.new_badges == ("first_deck",)
        assert outcome.xp_gained == 50

    async def test_comment_posted(self, engine, store):
        await store.create(1)
        outcome = await engine.apply(ProgressionEvent.comment_posted(1))
        assert outcome.new_badges == ()
        assert outcome.xp_gained == 5

        state = await engine.get_state(1)
        assert state.counter(CounterKind.COMMENTS_POSTED) == 1

    async def test_fifth_comment_unlocks_social_butterfly(self, engine, store):
        store.seed(make_state(xp=20, counters={"comments_posted": 4}))
        outcome = await engine.apply(ProgressionEvent.comment_posted(1))
        assert outcome.new_badges == ("social_butterfly",)
        assert outcome.xp_gained == 55

    async def test_unknown_user(self, engine):
        with pytest.raises(ProgressionNotFound):
            await engine.apply(ProgressionEvent.flashcard_created(404))


class TestQuizCompleted:

    async def test_perfect_quiz(self, engine, store):
        """30 XP, then first_quiz (15) and perfect_score (200) in catalog order."""
        await store.create(1)

        outcome = await engine.apply(ProgressionEvent.quiz_completed(1, correct=10, total=10))

        assert outcome.new_badges == ("first_quiz", "perfect_score")
        assert outcome.xp_gained == 245
        assert outcome.badge_xp == 215
        assert outcome.leveled_up is True
        assert outcome.new_level == 2

        state = await engine.get_state(1)
        assert state.counter(CounterKind.QUIZZES_TAKEN) == 1
        assert state.counter(CounterKind.PERFECT_QUIZZES) == 1

    async def test_partial_quiz(self, engine, store):
        await store.create(1)

        outcome = await engine.apply(ProgressionEvent.quiz_completed(1, correct=7, total=10))

        assert outcome.new_badges == ("first_quiz",)
        assert outcome.xp_gained == 21 + 15
        state = await engine.get_state(1)
        assert state.counter(CounterKind.PERFECT_QUIZZES) == 0

    @pytest.mark.parametrize(
        "correct,total,expected",
        [
            (0, 5, 0),
            (1, 3, 10),
            (2, 3, 20),
            (1, 4, 8),   # 7.5 rounds half up
            (1, 8, 4),   # 3.75
            (1, 16, 2),  # 1.875
            (3, 7, 13),  # 12.857
            (5, 5, 30),
        ],
    )
    def test_quiz_xp_rounding(self, correct, total, expected):
        assert XPRules().quiz_xp(correct, total) == expected

    async def test_invalid_quiz_rejected_before_load(self, catalog):
        store = AsyncMock()
        engine = ProgressionEngine(store, catalog, retry_policy=RetryPolicy.immediate())

        with pytest.raises(InvalidEvent):
            await engine.apply(ProgressionEvent.quiz_completed(1, correct=3, total=0))

        store.load.assert_not_called()
        store.compare_and_swap.assert_not_called()


class TestInvalidEvents:

    async def test_unknown_kind(self, engine, store):
        """Validation happens before the load, so even a missing user gets InvalidEvent."""
        with pytest.raises(InvalidEvent):
            await engine.apply(ProgressionEvent("badge_granted", 1))
        assert store.commits == 0

    async def test_bad_quiz_leaves_state_untouched(self, engine, store):
        await store.create(1)
        with pytest.raises(InvalidEvent):
            await engine.apply(ProgressionEvent.quiz_completed(1, correct=11, total=10))

        state = await engine.get_state(1)
        assert state.version == 0
        assert state.counter(CounterKind.QUIZZES_TAKEN) == 0


# =============================================================================
# STREAKS
# =============================================================================

class TestStreaks:

    async def test_continue_then_reset(self, engine, store):
        """Jan 1 -> Jan 2 extends with a bonus; Jan 2 -> Jan 4 resets."""
        store.seed(make_state(last_activity_date=date(2026, 1, 1), streak_current=1, streak_longest=1))

        outcome = await engine.apply(ProgressionEvent.activity_on(1, date(2026, 1, 2)))
        assert outcome.new_streak_current == 2
        assert outcome.xp_gained == 5

        state = await engine.get_state(1)
        assert (state.streak_current, state.streak_longest, state.xp) == (2, 2, 5)

        outcome = await engine.apply(ProgressionEvent.activity_on(1, date(2026, 1, 4)))
        assert outcome.new_streak_current == 1
        assert outcome.xp_gained == 0

        state = await engine.get_state(1)
        assert (state.streak_current, state.streak_longest, state.xp) == (1, 2, 5)
        assert state.last_activity_date == date(2026, 1, 4)

    async def test_first_activity(self, engine, store):
        await store.create(1)
        outcome = await engine.apply(ProgressionEvent.activity_on(1, date(2026, 1, 1)))
        assert outcome.new_streak_current == 1
        assert outcome.xp_gained == 0

    async def test_same_day_twice(self, engine, store):
        await store.create(1)
        await engine.apply(ProgressionEvent.activity_on(1, date(2026, 1, 1)))
        outcome = await engine.apply(ProgressionEvent.activity_on(1, date(2026, 1, 1)))
        assert outcome.new_streak_current == 1
        assert outcome.xp_gained == 0

    async def test_third_day_unlocks_streak_badge(self, engine, store):
        store.seed(make_state(last_activity_date=date(2026, 1, 2), streak_current=2, streak_longest=2, xp=5))
        outcome = await engine.apply(ProgressionEvent.activity_on(1, date(2026, 1, 3)))
        assert outcome.new_badges == ("streak_3",)
        assert outcome.xp_gained == 5 + 30

    async def test_out_of_order_rejected(self, engine, store):
        """Earlier date than the last activity: error, and nothing is written."""
        seeded = make_state(last_activity_date=date(2026, 1, 5), streak_current=3, streak_longest=3, xp=80)
        store.seed(seeded)

        with pytest.raises(OutOfOrderEvent):
            await engine.apply(ProgressionEvent.activity_on(1, date(2026, 1, 3)))

        state = await engine.get_state(1)
        assert state.to_dict() == seeded.to_dict()
        assert store.commits == 0

    async def test_day_from_timestamp_in_engine_timezone(self, catalog, store):
        """03:00 UTC on Jan 2 counts as Jan 1 for a New York deployment."""
        engine = ProgressionEngine(
            store, catalog, retry_policy=RetryPolicy.immediate(), tz=ZoneInfo("America/New_York")
        )
        await store.create(1)
        moment = datetime(2026, 1, 2, 3, 0, tzinfo=timezone.utc)

        await engine.apply(ProgressionEvent.activity_on(1, occurred_at=moment))

        state = await engine.get_state(1)
        assert state.last_activity_date == date(2026, 1, 1)

    async def test_explicit_timestamp_uses_engine_timezone(self, catalog, store):
        """A timestamp in the date field lands on the same local day as occurred_at."""
        engine = ProgressionEngine(
            store, catalog, retry_policy=RetryPolicy.immediate(), tz=ZoneInfo("America/New_York")
        )
        store.seed(make_state(last_activity_date=date(2025, 12, 31), streak_current=1, streak_longest=1))
        moment = datetime(2026, 1, 2, 3, 0, tzinfo=timezone.utc)

        outcome = await engine.apply(ProgressionEvent.activity_on(1, moment))

        state = await engine.get_state(1)
        assert state.last_activity_date == date(2026, 1, 1)
        assert outcome.new_streak_current == 2
        assert outcome.xp_gained == 5


# =============================================================================
# LEVELS AND CASCADE
# =============================================================================

class TestLevels:

    async def test_exact_threshold_levels_up(self, engine, store):
        """95 XP + 5 streak bonus = exactly 100 XP: level 2."""
        store.seed(make_state(xp=95, last_activity_date=date(2026, 1, 1), streak_current=1, streak_longest=1))

        outcome = await engine.apply(ProgressionEvent.activity_on(1, date(2026, 1, 2)))

        assert outcome.leveled_up is True
        assert outcome.previous_level == 1
        assert outcome.new_level == 2
        state = await engine.get_state(1)
        assert state.xp == 100
        assert state.level == 2

    async def test_cascade_crosses_level_and_unlocks_level_badge(self, engine, store):
        """Fifth flashcard: 810 XP, +50 reward crosses 850 (level 5), which unlocks level_5."""
        store.seed(make_state(
            xp=800,
            level=4,
            counters={"flashcards_created": 4},
            badges={"first_flashcard"},
        ))

        outcome = await engine.apply(ProgressionEvent.flashcard_created(1))

        assert outcome.new_badges == ("flashcard_creator_5", "level_5")
        assert outcome.xp_gained == 60
        assert outcome.badge_xp == 50
        assert outcome.previous_level == 4
        assert outcome.new_level == 5

        state = await engine.get_state(1)
        assert state.xp == 860
        assert state.level == 5

    async def test_cascade_chain_with_custom_catalog(self, store):
        """A reward can satisfy an XP badge, whose reward satisfies the next."""
        catalog = BadgeCatalog([
            threshold_badge("first", "First", "", 40, BadgeCategory.FLASHCARDS, "flashcards_created", 1),
            threshold_badge("xp_50", "Fifty", "", 100, BadgeCategory.LEVEL, "xp", 50),
            threshold_badge("xp_150", "One-fifty", "", 0, BadgeCategory.LEVEL, "xp", 150),
        ])
        engine = ProgressionEngine(store, catalog, retry_policy=RetryPolicy.immediate())
        await store.create(1)

        outcome = await engine.apply(ProgressionEvent.flashcard_created(1))

        assert outcome.new_badges == ("first", "xp_50", "xp_150")
        assert outcome.xp_gained == 150
        assert outcome.new_level == 2

    async def test_invariants_hold_over_mixed_sequence(self, engine, store):
        """level == level_for(xp) after every event, badges only grow."""
        await store.create(1)
        events = []
        for day in range(1, 15):
            events.append(ProgressionEvent.activity_on(1, date(2026, 1, day)))
            events.append(ProgressionEvent.flashcard_created(1))
            events.append(ProgressionEvent.quiz_completed(1, correct=day % 6, total=5))
            if day % 3 == 0:
                events.append(ProgressionEvent.deck_created(1))
                events.append(ProgressionEvent.comment_posted(1))

        previous_badges: set[str] = set()
        previous_xp = 0
        for event in events:
            await engine.apply(event)
            state = await engine.get_state(1)
            assert state.level == engine.level_table.level_for(state.xp)
            assert previous_badges <= state.badges
            assert state.xp >= previous_xp
            assert state.streak_current <= state.streak_longest
            assert engine.catalog.evaluate_newly_earned(state) == []
            previous_badges = set(state.badges)
            previous_xp = state.xp

        state = await engine.get_state(1)
        assert state.streak_longest == 14
        assert {"streak_3", "streak_7"} <= state.badges


# =============================================================================
# RECONCILE / STATE / TRANSITION
# =============================================================================

class TestReconcile:

    async def test_awards_missing_badges(self, engine, store):
        store.seed(make_state(xp=10, counters={"flashcards_created": 1}))

        outcome = await engine.reconcile(1)

        assert outcome.new_badges == ("first_flashcard",)
        assert outcome.xp_gained == 10
        assert outcome.version == 1
        state = await engine.get_state(1)
        assert state.xp == 20

    async def test_noop_writes_nothing(self, engine, store):
        store.seed(make_state(xp=20, counters={"flashcards_created": 1}, badges={"first_flashcard"}))

        outcome = await engine.reconcile(1)

        assert outcome.new_badges == ()
        assert outcome.xp_gained == 0
        assert outcome.version == 0
        assert store.commits == 0

    async def test_badge_added_to_catalog_later(self, store):
        """Users who already qualify get newly defined badges on reconcile."""
        store.seed(make_state(xp=300, level=3, counters={"decks_created": 3}, badges={"first_deck"}))
        extended = BadgeCatalog(BADGE_DEFINITIONS + (
            threshold_badge("deck_creator_3", "Deck Trio", "", 20, BadgeCategory.DECKS, "decks_created", 3),
        ))
        engine = ProgressionEngine(store, extended, retry_policy=RetryPolicy.immediate())

        outcome = await engine.reconcile(1)

        assert outcome.new_badges == ("deck_creator_3",)
        assert (await engine.get_state(1)).xp == 320

    async def test_unknown_user(self, engine):
        with pytest.raises(ProgressionNotFound):
            await engine.reconcile(99)


class TestGetState:

    async def test_returns_private_copy(self, engine, store):
        await store.create(1)
        state = await engine.get_state(1)
        state.xp = 9999
        state.badges.add("hacked")

        fresh = await engine.get_state(1)
        assert fresh.xp == 0
        assert fresh.badges == set()

    async def test_missing(self, engine):
        with pytest.raises(ProgressionNotFound):
            await engine.get_state(1)


class TestTransition:

    def test_pure(self, engine):
        state = ProgressionState(user_id=1)
        result = engine.transition(state, ProgressionEvent.flashcard_created(1))

        assert result.xp == 20
        assert result.badges == {"first_flashcard"}
        assert state.xp == 0
        assert state.badges == set()
        assert state.counter(CounterKind.FLASHCARDS_CREATED) == 0

    def test_validates(self, engine):
        with pytest.raises(InvalidEvent):
            engine.transition(ProgressionState(user_id=1), ProgressionEvent("nope", 1))


# =============================================================================
# TIMEOUTS AND SETTINGS
# =============================================================================

class SlowStore(InMemoryProgressionStore):
    """Loads take far longer than any test timeout."""

    async def load(self, user_id):
        await asyncio.sleep(5)
        return await super().load(user_id)


class TestTimeout:

    async def test_timeout_leaves_state_untouched(self, catalog):
        store = SlowStore()
        store.seed(ProgressionState(user_id=1))
        engine = ProgressionEngine(store, catalog, retry_policy=RetryPolicy.immediate())

        with pytest.raises(asyncio.TimeoutError):
            await engine.apply(ProgressionEvent.flashcard_created(1), timeout=0.01)

        assert store.commits == 0

    async def test_default_timeout(self, catalog):
        store = SlowStore()
        store.seed(ProgressionState(user_id=1))
        engine = ProgressionEngine(
            store, catalog, retry_policy=RetryPolicy.immediate(), default_timeout=0.01
        )

        with pytest.raises(asyncio.TimeoutError):
            await engine.reconcile(1)

    async def test_generous_timeout_succeeds(self, engine, store):
        await store.create(1)
        outcome = await engine.apply(ProgressionEvent.flashcard_created(1), timeout=5)
        assert outcome.version == 1


class TestFromSettings:

    async def test_custom_xp_values(self, store, catalog):
        config = Settings(xp_flashcard_created=7, streak_bonus_xp=9, retry_max_attempts=2)
        engine = ProgressionEngine.from_settings(store, catalog, config)

        assert engine.xp_rules.flashcard_created == 7
        assert engine.streak_policy.bonus_xp == 9
        assert engine.retry_policy.max_attempts == 2

        await store.create(1)
        outcome = await engine.apply(ProgressionEvent.flashcard_created(1))
        assert outcome.xp_gained == 7 + 10
