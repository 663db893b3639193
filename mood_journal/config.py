"""
Runtime settings for the Mood Journal service.
"""

from pathlib import Path

from pydantic import BaseModel, Field

DEFAULT_DATA_DIR = Path.home() / ".mood_journal"
DEFAULT_FILE_NAME = "MoodEntries.json"


class Settings(BaseModel):
    """Settings built once at the composition root."""

    data_dir: Path = Field(DEFAULT_DATA_DIR, description="Private data directory")
    file_name: str = Field(DEFAULT_FILE_NAME, description="Entry snapshot file")
    notification_delay: float = Field(
        1.0, ge=0, description="Seconds before a notification fires"
    )
    grant_notifications: bool = Field(
        True, description="Whether the local notification center grants permission"
    )
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "info"

    @property
    def entries_path(self) -> Path:
        return self.data_dir / self.file_name
