"""Configuration and directory management for VoiceStudio."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_DATA_DIR = Path.home() / ".voicestudio"
GROQ_BASE_URL = "https://api.groq.com/openai/v1"

DEFAULT_CHAT_MODEL = "moonshotai/kimi-k2-instruct-0905"
DEFAULT_TRANSCRIPTION_MODEL = "whisper-large-v3"
DEFAULT_SPEECH_MODEL = "playai-tts"


@dataclass
class Settings:
    """Centralized application settings.

    Use :meth:`from_env` to build an instance from environment variables so
    the rest of the package depends on typed attributes rather than calling
    ``os.getenv`` directly.
    """

    data_dir: Path = DEFAULT_DATA_DIR
    api_key: Optional[str] = None
    # None means "use the provider's default model".
    chat_model: Optional[str] = None
    transcription_model: Optional[str] = None
    speech_model: Optional[str] = None
    # Prepended to every request, never stored in a session.
    system_prompt: str = ""
    context_window: int = 10
    temperature: float = 0.7

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            data_dir=Path(os.getenv("VOICESTUDIO_DATA_DIR", str(DEFAULT_DATA_DIR))),
            api_key=os.getenv("GROQ_API_KEY"),
            chat_model=os.getenv("VOICESTUDIO_CHAT_MODEL"),
            transcription_model=os.getenv("VOICESTUDIO_TRANSCRIPTION_MODEL"),
            speech_model=os.getenv("VOICESTUDIO_SPEECH_MODEL"),
            system_prompt=os.getenv("VOICESTUDIO_SYSTEM_PROMPT", ""),
            context_window=int(os.getenv("VOICESTUDIO_CONTEXT_WINDOW", "10")),
            temperature=float(os.getenv("VOICESTUDIO_TEMPERATURE", "0.7")),
        )

