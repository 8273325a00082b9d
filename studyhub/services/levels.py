"""Level table - maps cumulative XP to a level."""

from bisect import bisect_right
from dataclasses import dataclass
from typing import Any, Sequence


# =============================================================================
# CONSTANTS
# =============================================================================

# Cumulative XP needed to reach each level (index 0 = level 1)
XP_LEVELS: tuple[int, ...] = (
    0,      # Level 1
    100,    # Level 2
    250,    # Level 3
    500,    # Level 4
    850,    # Level 5
    1300,   # Level 6
    1850,   # Level 7
    2500,   # Level 8
    3250,   # Level 9
    4100,   # Level 10
    5000,   # Level 11
    6000,   # Level 12
    7200,   # Level 13
    8600,   # Level 14
    10200,  # Level 15
    12000,  # Level 16
    14000,  # Level 17
    16500,  # Level 18
    19500,  # Level 19
    23000,  # Level 20
)


@dataclass(frozen=True)
class LevelProgress:
    """Where a given XP total sits inside its level."""
    level: int
    current_level_xp: int
    next_level_xp: int | None
    xp_to_next_level: int
    progress: float  # 0-100

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "current_level_xp": self.current_level_xp,
            "next_level_xp": self.next_level_xp,
            "xp_to_next_level": self.xp_to_next_level,
            "progress": self.progress,
        }


# =============================================================================
# LEVEL TABLE
# =============================================================================

class LevelTable:
    """Immutable ascending threshold table.

    ``level_for(xp)`` is ``1 + max i where xp >= thresholds[i]``. Reaching a
    threshold exactly promotes immediately, and XP beyond the last threshold
    stays at the top level.
    """

    def __init__(self, thresholds: Sequence[int] = XP_LEVELS):
        thresholds = tuple(thresholds)
        if not thresholds:
            raise ValueError("Level table needs at least one threshold")
        if thresholds[0] != 0:
            raise ValueError("First level threshold must be 0")
        for previous, current in zip(thresholds, thresholds[1:]):
            if current <= previous:
                raise ValueError(
                    f"Level thresholds must be strictly increasing ({previous} -> {current})"
                )
        self._thresholds = thresholds

    @property
    def thresholds(self) -> tuple[int, ...]:
        return self._thresholds

    @property
    def max_level(self) -> int:
        return len(self._thresholds)

    def level_for(self, xp: int) -> int:
        """Calculate level from total XP."""
        if xp < 0:
            raise ValueError(f"XP cannot be negative: {xp}")
        return bisect_right(self._thresholds, xp)

    def xp_for_level(self, level: int) -> int:
        """Total XP needed to reach a level."""
        if level < 1 or level > self.max_level:
            raise ValueError(f"Level must be between 1 and {self.max_level}, got {level}")
        return self._thresholds[level - 1]

    def progress(self, xp: int) -> LevelProgress:
        """Get progress within the current level."""
        level = self.level_for(xp)
        current_level_xp = self._thresholds[level - 1]

        if level == self.max_level:
            return LevelProgress(
                level=level,
                current_level_xp=current_level_xp,
                next_level_xp=None,
                xp_to_next_level=0,
                progress=100.0,
            )

        next_level_xp = self._thresholds[level]
        span = next_level_xp - current_level_xp
        return LevelProgress(
            level=level,
            current_level_xp=current_level_xp,
            next_level_xp=next_level_xp,
            xp_to_next_level=next_level_xp - xp,
            progress=round((xp - current_level_xp) / span * 100, 2),
        )

    def __repr__(self) -> str:
        return f"LevelTable(max_level={self.max_level}, top={self._thresholds[-1]})"
