"""StudyHub progression engine: XP, levels, streaks and badges."""

__version__ = "0.1.0"
