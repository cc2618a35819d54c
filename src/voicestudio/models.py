"""
Defines the core Pydantic data models for the application.

These models serve as the formal, validated data contract between all other pillars,
aligning with conventions from industry-standard libraries like the OpenAI SDK.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --- Constants ---
USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
SYSTEM_ROLE = "system"
Role = Literal["user", "assistant", "system"]

DEFAULT_SESSION_TITLE = "New Chat"
EMPTY_RESPONSE_FALLBACK = "No response from model."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _epoch_millis() -> int:
    return int(time.time() * 1000)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# --- Chat ---
class ChatMessage(BaseModel):
    """Represents a single message within a session."""

    role: Role
    content: str


class Session(BaseModel):
    """Represents one independent conversation thread."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), min_length=1)
    title: str = DEFAULT_SESSION_TITLE
    messages: List[ChatMessage] = Field(default_factory=list)
    last_modified: datetime = Field(default_factory=_utcnow)

    @field_validator("last_modified")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class EngineResult(BaseModel):
    """Outcome of a single send, edit or regenerate action."""

    session_id: Optional[str] = None
    messages: List[ChatMessage] = Field(default_factory=list)
    reply: Optional[ChatMessage] = None
    error: Optional[str] = None
    accepted: bool = True

    @property
    def ok(self) -> bool:
        return self.accepted and self.error is None


# --- Artifacts ---
class Handle(BaseModel):
    """A transient, revocable reference to a binary payload.

    Handles are issued by :class:`voicestudio.handles.HandleRegistry` and are
    never written to durable storage.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    size: int = 0


class AudioTrack(BaseModel):
    """A generated speech clip.

    ``payload`` is the durable form of the audio. ``handle`` is a view over it
    rebuilt on every read and excluded from serialization.
    """

    id: Union[int, str] = Field(default_factory=_epoch_millis)
    text: str
    voice: str
    payload: Optional[bytes] = Field(default=None, exclude=True, repr=False)
    handle: Optional[Handle] = Field(default=None, exclude=True)
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class TranscriptSegment(BaseModel):
    """A timed slice of a transcript, offsets in seconds."""

    start: float
    end: float
    text: str


class Transcription(BaseModel):
    """A persisted transcription of an uploaded or recorded audio file."""

    id: Union[int, str] = Field(default_factory=_epoch_millis)
    text: str
    segments: Optional[List[TranscriptSegment]] = None
    file_name: str
    model: str
    duration: Optional[float] = None
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)
