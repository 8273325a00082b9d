"""Badge catalog - immutable badge definitions and their unlock predicates.

A catalog is built once at startup and injected into the engine. Predicates
are pure and monotone: once a badge qualifies it keeps qualifying as counters,
XP and the longest streak grow, so the engine only ever tests badges the user
has not earned yet.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Iterator

from studyhub.core.exceptions import CatalogConfigurationError
from studyhub.services.state import CounterKind, ProgressionState


class BadgeCategory(str, Enum):
    """Badge groupings for display."""
    FLASHCARDS = "flashcards"
    DECKS = "decks"
    STREAK = "streak"
    QUIZ = "quiz"
    COMMUNITY = "community"
    LEVEL = "level"


# =============================================================================
# METRICS
# =============================================================================

Metric = Callable[[ProgressionState], int]


def _counter_metric(kind: CounterKind) -> Metric:
    return lambda state: state.counter(kind)


# Values badges are measured against. Every metric is non-decreasing over a
# user's lifetime, which is what keeps threshold predicates monotone.
METRICS: dict[str, Metric] = {
    **{kind.value: _counter_metric(kind) for kind in CounterKind},
    "streak_longest": lambda state: state.streak_longest,
    "level": lambda state: state.level,
    "xp": lambda state: state.xp,
}


@dataclass(frozen=True)
class BadgeDefinition:
    """Static badge definition, shared by all users."""

    id: str
    name: str
    description: str
    xp_reward: int
    predicate: Callable[[ProgressionState], bool]
    category: BadgeCategory | None = None
    metric_type: str | None = None
    threshold: int | None = None
    progress: Callable[[ProgressionState], int] | None = None

    def is_earned_by(self, state: ProgressionState) -> bool:
        return bool(self.predicate(state))

    def progress_for(self, state: ProgressionState) -> int:
        """Progress toward this badge, 0-100."""
        if self.id in state.badges:
            return 100
        if self.progress is not None:
            return max(0, min(100, int(self.progress(state))))
        return 100 if self.is_earned_by(state) else 0


def threshold_badge(
    badge_id: str,
    name: str,
    description: str,
    xp_reward: int,
    category: BadgeCategory,
    metric_type: str,
    threshold: int,
) -> BadgeDefinition:
    """Build a badge that unlocks once ``metric_type`` reaches ``threshold``."""
    if metric_type not in METRICS:
        raise CatalogConfigurationError(
            f"Unknown badge metric: {metric_type!r}",
            details={"badge_id": badge_id, "metric_type": metric_type},
        )
    if threshold <= 0:
        raise CatalogConfigurationError(
            "Badge threshold must be positive",
            details={"badge_id": badge_id, "threshold": threshold},
        )
    metric = METRICS[metric_type]

    def predicate(state: ProgressionState) -> bool:
        return metric(state) >= threshold

    def progress(state: ProgressionState) -> int:
        return round(metric(state) / threshold * 100)

    return BadgeDefinition(
        id=badge_id,
        name=name,
        description=description,
        xp_reward=xp_reward,
        predicate=predicate,
        category=category,
        metric_type=metric_type,
        threshold=threshold,
        progress=progress,
    )


# =============================================================================
# DEFAULT DEFINITIONS
# =============================================================================

BADGE_DEFINITIONS: tuple[BadgeDefinition, ...] = (
    # Flashcard creation
    threshold_badge("first_flashcard", "First Steps", "Create your first flashcard",
                    10, BadgeCategory.FLASHCARDS, "flashcards_created", 1),
    threshold_badge("flashcard_creator_5", "Flashcard Novice", "Create 5 flashcards",
                    50, BadgeCategory.FLASHCARDS, "flashcards_created", 5),
    threshold_badge("flashcard_creator_25", "Flashcard Expert", "Create 25 flashcards",
                    150, BadgeCategory.FLASHCARDS, "flashcards_created", 25),
    threshold_badge("flashcard_creator_100", "Flashcard Master", "Create 100 flashcards",
                    500, BadgeCategory.FLASHCARDS, "flashcards_created", 100),

    # Deck creation
    threshold_badge("first_deck", "Deck Builder", "Create your first deck",
                    25, BadgeCategory.DECKS, "decks_created", 1),
    threshold_badge("deck_creator_5", "Deck Collector", "Create 5 decks",
                    100, BadgeCategory.DECKS, "decks_created", 5),
    threshold_badge("deck_creator_20", "Deck Legend", "Create 20 decks",
                    400, BadgeCategory.DECKS, "decks_created", 20),

    # Streaks (longest streak, so a broken streak never un-earns a badge)
    threshold_badge("streak_3", "Getting Started", "Maintain a 3-day streak",
                    30, BadgeCategory.STREAK, "streak_longest", 3),
    threshold_badge("streak_7", "Week Warrior", "Maintain a 7-day streak",
                    75, BadgeCategory.STREAK, "streak_longest", 7),
    threshold_badge("streak_30", "Monthly Master", "Maintain a 30-day streak",
                    300, BadgeCategory.STREAK, "streak_longest", 30),
    threshold_badge("streak_100", "Centurion", "Maintain a 100-day streak",
                    1000, BadgeCategory.STREAK, "streak_longest", 100),

    # Quizzes
    threshold_badge("first_quiz", "Quiz Starter", "Complete your first quiz",
                    15, BadgeCategory.QUIZ, "quizzes_taken", 1),
    threshold_badge("quiz_taker_10", "Quiz Enthusiast", "Complete 10 quizzes",
                    100, BadgeCategory.QUIZ, "quizzes_taken", 10),
    threshold_badge("quiz_taker_50", "Quiz Master", "Complete 50 quizzes",
                    350, BadgeCategory.QUIZ, "quizzes_taken", 50),
    threshold_badge("perfect_score", "Perfectionist", "Score 100% on a quiz",
                    200, BadgeCategory.QUIZ, "perfect_quizzes", 1),
    threshold_badge("perfect_score_10", "Flawless", "Score 100% on 10 quizzes",
                    600, BadgeCategory.QUIZ, "perfect_quizzes", 10),

    # Community
    threshold_badge("social_butterfly", "Community Member", "Post 5 comments",
                    50, BadgeCategory.COMMUNITY, "comments_posted", 5),
    threshold_badge("community_helper", "Helpful Member", "Post 25 comments",
                    200, BadgeCategory.COMMUNITY, "comments_posted", 25),
    threshold_badge("discussion_leader", "Discussion Leader", "Post 100 comments",
                    500, BadgeCategory.COMMUNITY, "comments_posted", 100),

    # Levels
    threshold_badge("level_5", "Rising Star", "Reach level 5",
                    0, BadgeCategory.LEVEL, "level", 5),
    threshold_badge("level_10", "Elite Learner", "Reach level 10",
                    0, BadgeCategory.LEVEL, "level", 10),
    threshold_badge("level_20", "Learning Legend", "Reach level 20",
                    0, BadgeCategory.LEVEL, "level", 20),
)


# =============================================================================
# CATALOG
# =============================================================================

@dataclass(frozen=True)
class BadgeStatus:
    """A badge as seen by one user."""
    id: str
    name: str
    description: str
    category: str | None
    xp_reward: int
    earned: bool
    progress: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "xp_reward": self.xp_reward,
            "earned": self.earned,
            "progress": self.progress,
        }


class BadgeCatalog:
    """Ordered, immutable set of badge definitions."""

    def __init__(self, definitions: Iterable[BadgeDefinition] = BADGE_DEFINITIONS):
        definitions = tuple(definitions)
        seen: set[str] = set()
        for definition in definitions:
            if definition.id in seen:
                raise CatalogConfigurationError(
                    f"Duplicate badge id: {definition.id!r}",
                    details={"badge_id": definition.id},
                )
            if definition.xp_reward < 0:
                raise CatalogConfigurationError(
                    f"Badge {definition.id!r} has a negative XP reward",
                    details={"badge_id": definition.id, "xp_reward": definition.xp_reward},
                )
            seen.add(definition.id)
        self._definitions = definitions
        self._by_id = {d.id: d for d in definitions}

    def __iter__(self) -> Iterator[BadgeDefinition]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, badge_id: object) -> bool:
        return badge_id in self._by_id

    def get(self, badge_id: str) -> BadgeDefinition | None:
        return self._by_id.get(badge_id)

    def evaluate_newly_earned(self, state: ProgressionState) -> list[BadgeDefinition]:
        """Badges not yet in ``state.badges`` whose predicate holds, in catalog order."""
        return [
            definition
            for definition in self._definitions
            if definition.id not in state.badges and definition.is_earned_by(state)
        ]

    def describe(self, state: ProgressionState) -> list[BadgeStatus]:
        """Every badge with the user's earned flag and progress."""
        return [
            BadgeStatus(
                id=definition.id,
                name=definition.name,
                description=definition.description,
                category=definition.category.value if definition.category else None,
                xp_reward=definition.xp_reward,
                earned=definition.id in state.badges,
                progress=definition.progress_for(state),
            )
            for definition in self._definitions
        ]
