from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App settings
    app_name: str = "StudyHub Progression"
    version: str = "0.1.0"
    debug: bool = False

    # Database
    database_url: str = "postgresql+asyncpg://localhost:5432/studyhub"

    # Calendar days for streaks are cut in this timezone
    timezone: str = "UTC"

    # XP sources
    xp_flashcard_created: int = 10
    xp_deck_created: int = 25
    xp_quiz_max: int = 30  # awarded for a perfect score, scaled down otherwise
    xp_comment_posted: int = 5
    streak_bonus_xp: int = 5

    # Compare-and-swap retry
    retry_max_attempts: int = 5
    retry_base_delay_ms: int = 10
    retry_backoff_factor: float = 2.0
    retry_max_delay_ms: int = 200
    retry_jitter_ms: int = 5

    # Upper bound for a single apply() call, None = no limit
    apply_timeout_seconds: float | None = None

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "STUDYHUB_",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def validate_progression_settings(self) -> "Settings":
        """Reject settings the engine cannot run with."""
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {self.timezone!r}")
        if self.retry_max_attempts < 1:
            raise ValueError("retry_max_attempts must be at least 1")
        if self.retry_backoff_factor < 1:
            raise ValueError("retry_backoff_factor must be >= 1")
        for name in (
            "xp_flashcard_created",
            "xp_deck_created",
            "xp_quiz_max",
            "xp_comment_posted",
            "streak_bonus_xp",
            "retry_base_delay_ms",
            "retry_max_delay_ms",
            "retry_jitter_ms",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        return self

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


settings = Settings()
