"""Durable progression record, one row per user."""

from datetime import date, datetime

from sqlalchemy import JSON, CheckConstraint, Date, DateTime, Integer, func
from sqlalchemy.orm import Mapped, mapped_column

from studyhub.models.base import Base


class ProgressionRecord(Base):
    """Per-user XP, level, streak, counters and earned badges.

    ``version`` is the optimistic-concurrency token: every successful write
    bumps it by one, and writers only succeed when it still matches the value
    they loaded.
    """

    __tablename__ = "progression_states"
    __table_args__ = (
        CheckConstraint("xp >= 0", name="ck_progression_xp_non_negative"),
        CheckConstraint("level >= 1", name="ck_progression_level_positive"),
        CheckConstraint("streak_current <= streak_longest", name="ck_progression_streak_bounded"),
    )

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    xp: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    streak_current: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    streak_longest: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_activity_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # {"flashcards_created": 3, ...}
    counters: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    # Sorted list of badge ids
    badges: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<ProgressionRecord(user_id={self.user_id}, xp={self.xp}, "
            f"level={self.level}, version={self.version})>"
        )
