"""
Pydantic models for everything the client keeps on disk or sends
through the offline queue.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

BOT_AUTHOR = "Bot"


def utcnow() -> datetime:
    """Aware UTC wall-clock time."""
    return datetime.now(timezone.utc)


def _not_blank(value: str, field: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{field} cannot be empty")
    return value


# ---------------------------------------------------------------------------
# Chat and diary
# ---------------------------------------------------------------------------


class MessageStatus(str, Enum):
    """Delivery state of a chat message."""

    NONE = "none"
    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    ERROR = "error"


class Message(BaseModel):
    """A single chat message, authored by a user id or the bot."""

    author: str
    text: str
    timestamp: datetime = Field(default_factory=utcnow)
    status: MessageStatus = MessageStatus.NONE

    @field_validator("author")
    @classmethod
    def _author_not_blank(cls, v: str) -> str:
        return _not_blank(v, "author")

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, v: str) -> str:
        return _not_blank(v, "text")

    @property
    def is_user_message(self) -> bool:
        return self.author != BOT_AUTHOR


class DiaryEntry(BaseModel):
    """A diary note with optional tags and mood emoji."""

    title: str
    content: str
    date: datetime = Field(default_factory=utcnow)
    tags: list[str] = Field(default_factory=list)
    emoji: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v: str) -> str:
        return _not_blank(v, "title")

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, v: str) -> str:
        return _not_blank(v, "content")


class ChatParams(BaseModel):
    """Generation parameters sent with every chat completion."""

    language: str = "en"
    custom_prompt: Optional[str] = None
    temperature: float = 0.7
    top_p: float = 0.9
    max_response_length: int = 200
    model: Optional[str] = None


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


class UserProfile(BaseModel):
    """Local profile stored under profile_<userId>."""

    user_id: str
    name: str
    created_at: datetime = Field(default_factory=utcnow)
    avatar_path: Optional[str] = None


class UserData(BaseModel):
    """The set of known user ids, kept at the well-known user_data key."""

    user_ids: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Storage envelopes
# ---------------------------------------------------------------------------


class StoredRecord(BaseModel):
    """Envelope written (encrypted) to each record file."""

    key: str
    saved_at: datetime = Field(default_factory=utcnow)
    data: Any = None


class CacheEntry(BaseModel):
    """A cached value with an optional absolute UTC expiry."""

    data: Any = None
    expiry: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expiry is not None and now >= self.expiry


# ---------------------------------------------------------------------------
# Offline queue payloads
# ---------------------------------------------------------------------------


class SendMessagePayload(BaseModel):
    """Queued chat message awaiting a reply from the server."""

    action: Literal["SendMessage"] = "SendMessage"
    user_id: str
    text: str
    history: Optional[list[Message]] = None
    params: ChatParams = Field(default_factory=ChatParams)

    @field_validator("user_id", "text")
    @classmethod
    def _required(cls, v: str) -> str:
        return _not_blank(v, "field")


class SendAudioPayload(BaseModel):
    """Queued voice message (path of the recorded file)."""

    action: Literal["SendAudio"] = "SendAudio"
    user_id: str
    file_path: str


class CreateDiaryEntryPayload(BaseModel):
    """Queued diary entry to mirror on the server."""

    action: Literal["CreateDiaryEntry"] = "CreateDiaryEntry"
    user_id: str
    entry: DiaryEntry


QueuePayload = Annotated[
    Union[SendMessagePayload, SendAudioPayload, CreateDiaryEntryPayload],
    Field(discriminator="action"),
]

QUEUE_ACTIONS = ("SendMessage", "SendAudio", "CreateDiaryEntry")


class OfflineQueueItem(BaseModel):
    """One pending remote operation, persisted in FIFO order."""

    item_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    action: str
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)
    attempts: int = 0


class DrainReport(BaseModel):
    """Outcome of one drain_and_sync pass."""

    sent: int = 0
    failed: int = 0
    dropped: int = 0
    remaining: int = 0
    cancelled: bool = False


# ---------------------------------------------------------------------------
# Mood tracking
# ---------------------------------------------------------------------------


class SessionRating(BaseModel):
    """A user's score for one chat session, kept per UTC day."""

    day: date
    score: int


class EmotionAnalysisResult(BaseModel):
    """Dominant emotion detected in a piece of text."""

    emotion: str
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    is_sarcasm: bool = False
    source: str = "lexicon"


class EmotionLog(BaseModel):
    """A stored EmotionAnalysisResult with its time and owner."""

    user_id: str
    logged_at: datetime
    emotion: str
    confidence: float
    is_sarcasm: bool
    source: str
