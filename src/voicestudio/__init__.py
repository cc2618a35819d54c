"""
The main entrypoint for the VoiceStudio package.

This module contains the VoiceStudio class, which wires together the
extensible pillars: the persistence store, the LLM provider, the chat engine
and the speech and transcription providers. Each pillar is an abstract base
class with concrete implementations, so any of them can be swapped out.
"""

import logging
import warnings
from typing import Dict, List, Optional, Union

from .artifacts import TrackStore, TranscriptionStore
from .audio import (
    DEFAULT_VOICE,
    MAX_SPEECH_CHARS,
    PLAYAI_VOICES,
    EchoSpeech,
    EchoTranscriber,
    Speech,
    Transcriber,
)
from .config import Settings
from .engine import Engine, Synchronous
from .exceptions import InvalidInputError, StorageError
from .export import format_chat, format_transcript
from .handles import HandleRegistry
from .llm import LLM, Echo
from .models import AudioTrack, EngineResult, Handle, Transcription
from .sessions import SessionStore
from .store import File, Store

__all__ = ["VoiceStudio", "Settings"]

logger = logging.getLogger(__name__)


class VoiceStudio:
    """
    The central orchestrator for chat sessions and generated audio artifacts.

    All state lives in the injected :class:`~voicestudio.store.Store`; there is
    no server. Chat actions go through the engine, artifact generation goes
    through the speech and transcription providers and is persisted in the
    track and transcription stores.
    """

    def __init__(
        self,
        store: Optional[Store] = None,
        llm: Optional[LLM] = None,
        engine: Optional[Engine] = None,
        speech: Optional[Speech] = None,
        transcriber: Optional[Transcriber] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        """
        Initialize VoiceStudio with configurable pillars.

        Parameters
        ----------
        store : store.Store, optional
            Persistence substrate shared by sessions, tracks and transcriptions.
            Defaults to store.File(settings.data_dir).
        llm : llm.LLM, optional
            Chat completion provider. Defaults to llm.Groq() when an API key is
            configured and the 'openai' package is installed, else llm.Echo().
        engine : engine.Engine, optional
            Chat orchestration engine. Defaults to engine.Synchronous().
        speech : audio.Speech, optional
            Text-to-speech provider. Defaults like ``llm``.
        transcriber : audio.Transcriber, optional
            Speech-to-text provider. Defaults like ``llm``.
        settings : config.Settings, optional
            Defaults to Settings.from_env().

        Examples
        --------
        >>> studio = VoiceStudio(store=InMemory(), llm=Echo())
        >>> studio.send("Hello!").reply.role
        'assistant'
        """
        self.settings = settings if settings is not None else Settings.from_env()
        self.store = store if store is not None else File(str(self.settings.data_dir))

        self.llm = llm if llm is not None else self._default_provider("llm")
        self.speech = speech if speech is not None else self._default_provider("speech")
        self.transcriber = (
            transcriber if transcriber is not None else self._default_provider("transcriber")
        )

        self.handles = HandleRegistry()
        self.sessions = SessionStore(self.store)
        self.tracks = TrackStore(self.store, self.handles)
        self.transcriptions = TranscriptionStore(self.store)
        self._issued_handles: Dict[str, List[Handle]] = {}

        self.engine = engine if engine is not None else Synchronous()
        self.engine.app = self

    def _default_provider(self, kind: str):
        fallbacks = {"llm": Echo, "speech": EchoSpeech, "transcriber": EchoTranscriber}
        if not self.settings.api_key:
            warnings.warn(
                f"VoiceStudio is running with {fallbacks[kind].__name__} because no "
                "GROQ_API_KEY is configured.",
                UserWarning,
            )
            return fallbacks[kind]()
        try:
            if kind == "llm":
                from .llm import Groq

                return Groq(api_key=self.settings.api_key)
            if kind == "speech":
                from .audio import GroqSpeech

                return GroqSpeech(api_key=self.settings.api_key)
            from .audio import GroqTranscriber

            return GroqTranscriber(api_key=self.settings.api_key)
        except ImportError:
            warnings.warn(
                f"VoiceStudio is running with {fallbacks[kind].__name__} because the "
                "'openai' package is not installed. Install it with: pip install openai",
                UserWarning,
            )
            return fallbacks[kind]()

    # --- Chat ---

    def new_chat(self) -> str:
        return self.sessions.create_session()

    def select_chat(self, session_id: str) -> None:
        self.sessions.select_session(session_id)

    def rename_chat(self, session_id: str, title: str):
        return self.sessions.rename_session(session_id, title)

    def delete_chat(self, session_id: str) -> bool:
        return self.sessions.delete_session(session_id)

    def send(self, user_input: str, session_id: Optional[str] = None) -> EngineResult:
        return self.engine.send(user_input, session_id)

    def edit(
        self, index: int, new_content: str, session_id: Optional[str] = None
    ) -> EngineResult:
        return self.engine.edit(index, new_content, session_id)

    def regenerate(self, session_id: Optional[str] = None) -> EngineResult:
        return self.engine.regenerate(session_id)

    def export_chat(self, session_id: Optional[str] = None) -> str:
        if session_id is None:
            session = self.sessions.get_current_session()
        else:
            session = self.sessions.get_session(session_id)
        if session is None:
            raise InvalidInputError(f"No chat to export: {session_id}")
        return format_chat(session.messages)

    # --- Speech ---

    def synthesize(self, text: str, voice: Optional[str] = None) -> AudioTrack:
        """Generates speech for ``text`` and saves it to the track history."""
        voice = voice or DEFAULT_VOICE
        if not text or not text.strip():
            raise InvalidInputError("Please enter some text")
        if len(text) > MAX_SPEECH_CHARS:
            raise InvalidInputError(f"Text exceeds {MAX_SPEECH_CHARS} characters")
        if voice not in PLAYAI_VOICES:
            raise InvalidInputError(f"Unknown voice: {voice}")

        payload = self.speech.synthesize(text, voice, model=self.settings.speech_model)
        handle = self.handles.create(payload)
        track = AudioTrack(text=text, voice=voice, handle=handle)
        try:
            self.tracks.put(track)
        except StorageError:
            self.handles.revoke(handle)
            raise
        self._remember(track)
        return track

    def load_tracks(self) -> List[AudioTrack]:
        """Reads the track history, newest first, each with a fresh handle.

        Handles issued for a track by earlier calls are revoked, so only the
        newest one per track stays live.
        """
        tracks = self.tracks.get_all()
        for track in tracks:
            self.release_track(track.id)
            self._remember(track)
        return tracks

    def release_track(self, track_id: Union[int, str]) -> int:
        """Revokes every handle handed out for a track. Returns how many."""
        handles = self._issued_handles.pop(str(track_id), [])
        return sum(1 for handle in handles if self.handles.revoke(handle))

    def delete_track(self, track_id: Union[int, str]) -> bool:
        deleted = self.tracks.delete(track_id)
        self.release_track(track_id)
        return deleted

    def _remember(self, track: AudioTrack) -> None:
        if track.handle is not None:
            self._issued_handles.setdefault(str(track.id), []).append(track.handle)

    # --- Transcription ---

    def transcribe(self, file_name: str, data: bytes) -> Transcription:
        """Transcribes an audio file and saves it to the transcription history."""
        if not data:
            raise InvalidInputError("Please upload an audio or video file.")
        result = self.transcriber.transcribe(
            file_name, data, model=self.settings.transcription_model
        )
        transcription = Transcription(
            text=result["text"],
            segments=result.get("segments"),
            file_name=file_name,
            model=result["model"],
            duration=result.get("duration"),
        )
        self.transcriptions.put(transcription)
        return transcription

    def load_transcriptions(self) -> List[Transcription]:
        return self.transcriptions.get_all()

    def delete_transcription(self, transcription_id: Union[int, str]) -> bool:
        return self.transcriptions.delete(transcription_id)

    def export_transcript(self, transcription_id: Union[int, str]) -> str:
        transcription = self.transcriptions.get(transcription_id)
        if transcription is None:
            raise InvalidInputError(f"No transcript to export: {transcription_id}")
        return format_transcript(transcription)

    # --- Lifecycle ---

    def close(self) -> None:
        """Stops background work and releases every live handle."""
        if hasattr(self.engine, "shutdown"):
            self.engine.shutdown()
        released = self.handles.revoke_all()
        self._issued_handles.clear()
        if hasattr(self.store, "close"):
            self.store.close()
        logger.debug("Closed VoiceStudio, released %d handles", released)
