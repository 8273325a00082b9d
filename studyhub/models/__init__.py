from studyhub.models.base import Base
from studyhub.models.progression import ProgressionRecord

__all__ = ["Base", "ProgressionRecord"]
