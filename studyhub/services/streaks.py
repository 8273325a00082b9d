"""Daily streak rules."""

from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo

from studyhub.core.exceptions import OutOfOrderEvent

DEFAULT_STREAK_BONUS_XP = 5


def activity_day(moment: datetime, tz: tzinfo) -> date:
    """Truncate a timestamp to its calendar day in ``tz``.

    Naive timestamps are taken to be UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()


@dataclass(frozen=True)
class StreakTransition:
    current: int
    longest: int
    bonus_xp: int


class StreakPolicy:
    """Compute streak continuation, reset and bonus from two calendar days."""

    def __init__(self, bonus_xp: int = DEFAULT_STREAK_BONUS_XP):
        if bonus_xp < 0:
            raise ValueError("Streak bonus XP cannot be negative")
        self.bonus_xp = bonus_xp

    def transition(
        self,
        last_date: date | None,
        current: int,
        longest: int,
        today: date,
    ) -> StreakTransition:
        """
        Next streak values after activity on ``today``.

        - first ever activity starts a streak of 1
        - same day again changes nothing
        - the following day extends the streak and earns the bonus
        - any longer gap restarts at 1

        Raises:
            OutOfOrderEvent: if ``today`` is before ``last_date``.
        """
        if last_date is None:
            new_current, bonus = 1, 0
        else:
            diff = (today - last_date).days
            if diff < 0:
                raise OutOfOrderEvent(last_date, today)
            if diff == 0:
                new_current, bonus = current, 0
            elif diff == 1:
                new_current, bonus = current + 1, self.bonus_xp
            else:
                new_current, bonus = 1, 0

        return StreakTransition(
            current=new_current,
            longest=max(longest, new_current),
            bonus_xp=bonus,
        )
