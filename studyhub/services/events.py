"""
Progression events emitted by flashcard, deck, quiz and comment features.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from studyhub.core.exceptions import InvalidEvent


class EventKind(str, Enum):
    """Kinds of user action the engine understands."""
    FLASHCARD_CREATED = "flashcard_created"
    DECK_CREATED = "deck_created"
    QUIZ_COMPLETED = "quiz_completed"
    COMMENT_POSTED = "comment_posted"
    ACTIVITY_ON_DATE = "activity_on_date"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProgressionEvent:
    """One user action. Transient: the engine never persists events."""

    kind: EventKind | str
    user_id: int
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def flashcard_created(cls, user_id: int, occurred_at: datetime | None = None) -> "ProgressionEvent":
        return cls(EventKind.FLASHCARD_CREATED, user_id, {}, occurred_at or _utcnow())

    @classmethod
    def deck_created(cls, user_id: int, occurred_at: datetime | None = None) -> "ProgressionEvent":
        return cls(EventKind.DECK_CREATED, user_id, {}, occurred_at or _utcnow())

    @classmethod
    def quiz_completed(
        cls,
        user_id: int,
        correct: int,
        total: int,
        occurred_at: datetime | None = None,
    ) -> "ProgressionEvent":
        return cls(
            EventKind.QUIZ_COMPLETED,
            user_id,
            {"correct": correct, "total": total},
            occurred_at or _utcnow(),
        )

    @classmethod
    def comment_posted(cls, user_id: int, occurred_at: datetime | None = None) -> "ProgressionEvent":
        return cls(EventKind.COMMENT_POSTED, user_id, {}, occurred_at or _utcnow())

    @classmethod
    def activity_on(
        cls,
        user_id: int,
        day: date | None = None,
        occurred_at: datetime | None = None,
    ) -> "ProgressionEvent":
        """Daily activity marker. Without ``day`` the date comes from ``occurred_at``."""
        payload = {"date": day} if day is not None else {}
        return cls(EventKind.ACTIVITY_ON_DATE, user_id, payload, occurred_at or _utcnow())


def _require_int(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key)
    # bool is an int subclass; True/False are never valid counts
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidEvent(
            f"Payload field {key!r} must be an integer",
            details={"field": key, "value": repr(value)},
        )
    return value


def _parse_date(value: Any) -> date:
    # datetimes pass through; the engine cuts them to a day in its timezone
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    raise InvalidEvent(
        "Payload field 'date' must be a calendar date",
        details={"field": "date", "value": repr(value)},
    )


def validate_event(event: ProgressionEvent) -> ProgressionEvent:
    """Check kind and payload, returning a normalized copy.

    The returned event always has an ``EventKind`` kind; quiz payloads carry
    ints with ``0 <= correct <= total`` and ``total > 0``; explicit activity
    dates are ``date`` or ``datetime`` objects.

    Raises:
        InvalidEvent: for unknown kinds or malformed payloads.
    """
    try:
        kind = EventKind(event.kind)
    except ValueError:
        raise InvalidEvent(
            f"Unknown event kind: {event.kind!r}",
            details={"kind": str(event.kind), "allowed": [k.value for k in EventKind]},
        )

    if isinstance(event.user_id, bool) or not isinstance(event.user_id, int):
        raise InvalidEvent("user_id must be an integer", details={"user_id": repr(event.user_id)})

    if not isinstance(event.occurred_at, datetime):
        raise InvalidEvent("occurred_at must be a datetime")

    payload = dict(event.payload or {})

    if kind == EventKind.QUIZ_COMPLETED:
        correct = _require_int(payload, "correct")
        total = _require_int(payload, "total")
        if total <= 0:
            raise InvalidEvent("Quiz total must be positive", details={"total": total})
        if correct < 0 or correct > total:
            raise InvalidEvent(
                "Quiz correct count must be between 0 and total",
                details={"correct": correct, "total": total},
            )
        payload = {"correct": correct, "total": total}
    elif kind == EventKind.ACTIVITY_ON_DATE:
        if payload.get("date") is not None:
            payload = {"date": _parse_date(payload["date"])}
        else:
            payload = {}
    else:
        payload = {}

    return ProgressionEvent(kind, event.user_id, payload, event.occurred_at)
