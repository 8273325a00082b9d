from studyhub.services.badges import BadgeCatalog, BadgeDefinition
from studyhub.services.engine import Outcome, ProgressionEngine, XPRules
from studyhub.services.events import EventKind, ProgressionEvent
from studyhub.services.levels import LevelTable
from studyhub.services.retry import RetryPolicy
from studyhub.services.state import CounterKind, ProgressionState
from studyhub.services.store import (
    InMemoryProgressionStore,
    ProgressionStore,
    SqlAlchemyProgressionStore,
)
from studyhub.services.streaks import StreakPolicy

__all__ = [
    "BadgeCatalog",
    "BadgeDefinition",
    "CounterKind",
    "EventKind",
    "InMemoryProgressionStore",
    "LevelTable",
    "Outcome",
    "ProgressionEngine",
    "ProgressionEvent",
    "ProgressionState",
    "ProgressionStore",
    "RetryPolicy",
    "SqlAlchemyProgressionStore",
    "StreakPolicy",
    "XPRules",
]
