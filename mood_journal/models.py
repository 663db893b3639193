"""
Shared data models for the Mood Journal.

This module defines the core domain models used across multiple layers
of the application (store, notifications, CLI, API).
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

# label, glyph, color, notification title, notification body
_CATEGORY_TABLE: dict[str, tuple[str, str, str, str, str]] = {
    "happy": (
        "Happy",
        "😄",
        "yellow",
        "Congratulations!",
        "Your mood is excellent today. Enjoy this special day!",
    ),
    "joyful": (
        "Joyful",
        "😊",
        "green",
        "Wonderful!",
        "Glad to see you are feeling good today. Keep it up!",
    ),
    "neutral": (
        "Neutral",
        "😐",
        "gray",
        "Hello",
        "You logged a neutral mood. "
        "Maybe a pleasant activity could brighten your day?",
    ),
    "sad": (
        "Sad",
        "😢",
        "blue",
        "Rough day?",
        "You logged that you feel sad. Try talking to someone you love "
        "or doing something that usually makes you happy.",
    ),
    "angry": (
        "Angry",
        "😡",
        "red",
        "Feeling frustrated?",
        "You logged that you feel angry. Try taking a break and doing "
        "something relaxing to calm your emotions.",
    ),
    "anxious": (
        "Anxious",
        "😰",
        "purple",
        "Feeling anxious?",
        "You logged that you feel anxious. "
        "Try breathing exercises or a short walk outside.",
    ),
}


class MoodCategory(str, Enum):
    """One of the six fixed mood classifications."""

    HAPPY = "happy"
    JOYFUL = "joyful"
    NEUTRAL = "neutral"
    SAD = "sad"
    ANGRY = "angry"
    ANXIOUS = "anxious"

    @property
    def label(self) -> str:
        return _CATEGORY_TABLE[self.value][0]

    @property
    def glyph(self) -> str:
        return _CATEGORY_TABLE[self.value][1]

    @property
    def color(self) -> str:
        return _CATEGORY_TABLE[self.value][2]

    @property
    def notification_title(self) -> str:
        return _CATEGORY_TABLE[self.value][3]

    @property
    def notification_body(self) -> str:
        return _CATEGORY_TABLE[self.value][4]


class MoodEntry(BaseModel):
    """Represents one logged mood."""

    id: UUID = Field(
        default_factory=uuid4, frozen=True, description="Unique entry identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.now, description="When the mood applies"
    )
    category: MoodCategory = Field(
        MoodCategory.NEUTRAL, description="The mood classification"
    )
    notes: str = Field("", description="Free-text notes, may be empty")

    @property
    def local_day(self) -> date:
        """Calendar day of the timestamp in the local time zone."""
        if self.timestamp.tzinfo is None:
            return self.timestamp.date()
        return self.timestamp.astimezone().date()

    def matches(self, keyword: str) -> bool:
        """Case-insensitive match against the notes or the category label."""
        needle = keyword.lower()
        return needle in self.notes.lower() or needle in self.category.label.lower()


class NotificationRequest(BaseModel):
    """A one-shot local notification handed to the notification center."""

    identifier: str = Field(..., description="Unique request identifier")
    title: str
    body: str
    delay: float = Field(..., ge=0, description="Seconds until delivery")
    repeats: bool = False
    sound: str | None = "default"


class DeliveredNotification(NotificationRequest):
    """A notification that has been shown."""

    delivered_at: datetime
