"""Concrete implementations for speech synthesis and transcription providers."""

import io
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .config import DEFAULT_SPEECH_MODEL, DEFAULT_TRANSCRIPTION_MODEL, GROQ_BASE_URL
from .exceptions import ProviderError
from .models import TranscriptSegment

PLAYAI_VOICES = [
    "Angelo-PlayAI", "Aaliyah-PlayAI", "Adelaide-PlayAI", "Arista-PlayAI", "Atlas-PlayAI",
    "Basil-PlayAI", "Briggs-PlayAI", "Calum-PlayAI", "Celeste-PlayAI", "Cheyenne-PlayAI",
    "Chip-PlayAI", "Cillian-PlayAI", "Deedee-PlayAI", "Eleanor-PlayAI", "Fritz-PlayAI",
    "Gail-PlayAI", "Indigo-PlayAI", "Jennifer-PlayAI", "Judy-PlayAI", "Mamaw-PlayAI",
    "Mason-PlayAI", "Mikail-PlayAI", "Mitch-PlayAI", "Nia-PlayAI", "Quinn-PlayAI",
    "Ruby-PlayAI", "Thunder-PlayAI",
]
DEFAULT_VOICE = PLAYAI_VOICES[0]
MAX_SPEECH_CHARS = 1000


class Speech(ABC):
    """Interface for text-to-speech providers."""

    @abstractmethod
    def synthesize(self, text: str, voice: str, model: Optional[str] = None) -> bytes:
        """Returns encoded audio (mp3) for ``text`` spoken by ``voice``."""
        pass


class Transcriber(ABC):
    """Interface for speech-to-text providers."""

    @abstractmethod
    def transcribe(
        self, file_name: str, data: bytes, model: Optional[str] = None
    ) -> Dict[str, Any]:
        """Transcribes an audio file.

        Returns
        -------
        Dict[str, Any]
            ``text`` (str), ``segments`` (list of :class:`TranscriptSegment` or
            None), ``duration`` (float or None) and ``model`` (str).
        """
        pass


def _groq_client(api_key: Optional[str]):
    from openai import OpenAI

    return OpenAI(api_key=api_key or os.getenv("GROQ_API_KEY"), base_url=GROQ_BASE_URL)


class GroqSpeech(Speech):
    def __init__(self, default_model: str = DEFAULT_SPEECH_MODEL, api_key: Optional[str] = None):
        self.client = _groq_client(api_key)
        self.model = default_model

    def synthesize(self, text: str, voice: str, model: Optional[str] = None) -> bytes:
        from openai import OpenAIError

        try:
            response = self.client.audio.speech.create(
                model=model or self.model,
                input=text,
                voice=voice,
                response_format="mp3",
            )
            return response.read()
        except OpenAIError as e:
            raise ProviderError(f"Speech generation failed: {e}") from e


class GroqTranscriber(Transcriber):
    def __init__(
        self, default_model: str = DEFAULT_TRANSCRIPTION_MODEL, api_key: Optional[str] = None
    ):
        self.client = _groq_client(api_key)
        self.model = default_model

    def transcribe(
        self, file_name: str, data: bytes, model: Optional[str] = None
    ) -> Dict[str, Any]:
        from openai import OpenAIError

        model = model or self.model
        try:
            response = self.client.audio.transcriptions.create(
                file=(file_name, io.BytesIO(data)),
                model=model,
                response_format="verbose_json",
                language="en",
                temperature=0.0,
            )
        except OpenAIError as e:
            raise ProviderError(f"Transcription failed: {e}") from e
        return {
            "text": response.text,
            "segments": _parse_segments(getattr(response, "segments", None)),
            "duration": getattr(response, "duration", None),
            "model": model,
        }


def _parse_segments(raw: Optional[List[Any]]) -> Optional[List[TranscriptSegment]]:
    if not raw:
        return None
    segments = []
    for item in raw:
        data = item if isinstance(item, dict) else item.model_dump()
        segments.append(
            TranscriptSegment(start=data["start"], end=data["end"], text=data["text"])
        )
    return segments


class EchoSpeech(Speech):
    """Offline provider that returns the UTF-8 text as the "audio" bytes."""

    def __init__(self, default_model: str = "echo-tts"):
        self.model = default_model

    def synthesize(self, text: str, voice: str, model: Optional[str] = None) -> bytes:
        return f"{voice}:{text}".encode("utf-8")


class EchoTranscriber(Transcriber):
    """Offline provider that decodes the audio bytes as UTF-8 text."""

    def __init__(self, default_model: str = "echo-whisper"):
        self.model = default_model

    def transcribe(
        self, file_name: str, data: bytes, model: Optional[str] = None
    ) -> Dict[str, Any]:
        text = data.decode("utf-8", errors="replace")
        return {
            "text": text,
            "segments": [TranscriptSegment(start=0.0, end=1.0, text=text)] if text else None,
            "duration": 1.0,
            "model": model or self.model,
        }
