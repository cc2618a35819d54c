"""Plain-text renderings of chats and transcripts for download."""

from typing import Sequence

from .exceptions import InvalidInputError
from .models import ChatMessage, Transcription


def format_chat(messages: Sequence[ChatMessage]) -> str:
    if not messages:
        raise InvalidInputError("No chat to export")
    return "\n---\n\n".join(f"{m.role.upper()}:\n{m.content}\n" for m in messages)


def format_timestamp(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes:02d}:{secs:02d}"


def format_transcript(transcription: Transcription) -> str:
    """The transcript text, one ``[mm:ss] text`` line per segment when timed."""
    if not transcription.segments:
        return transcription.text
    return "\n".join(
        f"[{format_timestamp(s.start)}] {s.text.strip()}" for s in transcription.segments
    )
