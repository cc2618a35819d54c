"""Orchestrates send, edit and regenerate against the session store and LLM."""

import logging
import threading
from abc import ABC, abstractmethod
from concurrent import futures
from typing import Any, List, Optional

from .context import build_context_window, to_payload
from .exceptions import InvalidInputError, SessionNotFoundError
from .models import ASSISTANT_ROLE, USER_ROLE, ChatMessage, EngineResult

logger = logging.getLogger(__name__)


class Engine(ABC):
    """Interface for the chat orchestration engine.

    The engine reaches the other pillars through ``app`` (``app.sessions``,
    ``app.llm``, ``app.settings``), which may be bound after construction.
    """

    def __init__(self, app: Optional[Any] = None):
        self.app = app

    @abstractmethod
    def send(self, user_input: str, session_id: Optional[str] = None) -> EngineResult:
        """Appends a user message and requests a reply."""
        pass

    @abstractmethod
    def edit(
        self, index: int, new_content: str, session_id: Optional[str] = None
    ) -> EngineResult:
        """Replaces the message at ``index`` and everything after it."""
        pass

    @abstractmethod
    def regenerate(self, session_id: Optional[str] = None) -> EngineResult:
        """Replaces the last assistant reply with a new one."""
        pass


class Synchronous(Engine):
    """Runs each completion on the calling thread.

    Operations on the same session are serialized by the session's lock,
    held from the optimistic write until the reply is persisted. Title
    generation for a new session runs in a background thread pool.

    Subclasses can hook into the flow by overriding ``_before_llm_call``,
    ``_after_llm_call`` and ``_before_save``.
    """

    def __init__(self, app: Optional[Any] = None, max_background_workers: int = 2):
        super().__init__(app)
        self._busy = 0
        self._busy_lock = threading.Lock()
        self._executor = futures.ThreadPoolExecutor(
            max_workers=max_background_workers, thread_name_prefix="voicestudio-title"
        )
        self._background: List[futures.Future] = []

    # --- Public API ---

    @property
    def is_busy(self) -> bool:
        """Advisory flag: True while at least one completion is in flight."""
        with self._busy_lock:
            return self._busy > 0

    def send(self, user_input: str, session_id: Optional[str] = None) -> EngineResult:
        sessions = self.app.sessions
        if not user_input or not user_input.strip():
            existing = sessions.get_session(session_id) if session_id else None
            return EngineResult(
                session_id=session_id,
                messages=existing.messages if existing else [],
                error="Message cannot be empty",
                accepted=False,
            )

        session_id = self._resolve_session_id(session_id, create=True)
        with sessions.session_lock(session_id):
            session = self._load(session_id)
            is_first_message = not session.messages
            base = session.messages + [ChatMessage(role=USER_ROLE, content=user_input)]
            sessions.set_messages(session_id, base)
            sessions.draft = ""
            if is_first_message:
                self._schedule_title(session_id, user_input)
            return self._complete(session_id, base)

    def edit(
        self, index: int, new_content: str, session_id: Optional[str] = None
    ) -> EngineResult:
        if not new_content or not new_content.strip():
            raise InvalidInputError("Message cannot be empty")
        session_id = self._resolve_session_id(session_id, create=False)
        if session_id is None:
            raise InvalidInputError(f"No message at index {index}")

        sessions = self.app.sessions
        with sessions.session_lock(session_id):
            messages = self._load(session_id).messages
            if isinstance(index, bool) or not 0 <= index < len(messages):
                raise InvalidInputError(f"No message at index {index}")
            base = messages[:index] + [ChatMessage(role=USER_ROLE, content=new_content)]
            sessions.set_messages(session_id, base)
            return self._complete(session_id, base)

    def regenerate(self, session_id: Optional[str] = None) -> EngineResult:
        session_id = self._resolve_session_id(session_id, create=False)
        if session_id is None:
            return EngineResult(accepted=False)

        sessions = self.app.sessions
        with sessions.session_lock(session_id):
            messages = self._load(session_id).messages
            if not messages or messages[-1].role != ASSISTANT_ROLE:
                return EngineResult(session_id=session_id, messages=messages, accepted=False)
            base = messages[:-1]
            if not base or base[-1].role != USER_ROLE:
                return EngineResult(session_id=session_id, messages=messages, accepted=False)
            sessions.set_messages(session_id, base)
            return self._complete(session_id, base)

    def wait_for_background_tasks(self, timeout: Optional[float] = None) -> bool:
        """Blocks until pending title requests finish. Returns False on timeout."""
        with self._busy_lock:
            pending = list(self._background)
        _, not_done = futures.wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    # --- Hooks ---

    def _before_llm_call(self, messages: List[ChatMessage]) -> None:
        """Called with the context window just before it is sent."""
        pass

    def _after_llm_call(self, llm_response: Any) -> None:
        """Called with the provider's raw response."""
        pass

    def _before_save(self, session_id: str, messages: List[ChatMessage]) -> None:
        """Called with the final message list just before it is persisted."""
        pass

    # --- Internals ---

    def _resolve_session_id(self, session_id: Optional[str], create: bool) -> Optional[str]:
        sessions = self.app.sessions
        if session_id is not None:
            if sessions.get_session(session_id) is None:
                raise SessionNotFoundError(session_id)
            return session_id
        if create:
            return sessions.get_current_session().id
        current = sessions.current_session_id
        if current is None or sessions.get_session(current) is None:
            return None
        return current

    def _load(self, session_id: str):
        session = self.app.sessions.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def _complete(self, session_id: str, base: List[ChatMessage]) -> EngineResult:
        app = self.app
        settings = app.settings
        with self._busy_lock:
            self._busy += 1
        try:
            window = build_context_window(
                base, settings.system_prompt, settings.context_window
            )
            self._before_llm_call(window)
            try:
                response = app.llm.generate_response(
                    to_payload(window),
                    model=settings.chat_model,
                    temperature=settings.temperature,
                )
            except Exception as e:
                # The optimistic write stands; no placeholder goes into the transcript.
                logger.exception("Completion failed for session %s", session_id)
                return EngineResult(session_id=session_id, messages=base, error=str(e))

            self._after_llm_call(response)
            reply = app.llm.create_assistant_message(response)

            # Appended to the stored list, so a rename that landed mid-flight is kept.
            try:
                saved = app.sessions.append_message(
                    session_id, reply, before_save=self._before_save
                )
            except SessionNotFoundError:
                logger.warning("Session %s was deleted before its reply arrived", session_id)
                return EngineResult(
                    session_id=session_id,
                    messages=base,
                    reply=reply,
                    error="Session was deleted",
                )
            return EngineResult(session_id=session_id, messages=saved.messages, reply=reply)
        finally:
            with self._busy_lock:
                self._busy -= 1

    def _schedule_title(self, session_id: str, user_text: str) -> None:
        try:
            future = self._executor.submit(self._generate_title, session_id, user_text)
        except RuntimeError:
            # Pool already shut down; the session keeps its default title.
            logger.warning(
                "Title generation skipped for session %s", session_id, exc_info=True
            )
            return
        with self._busy_lock:
            self._background = [f for f in self._background if not f.done()]
            self._background.append(future)

    def _generate_title(self, session_id: str, user_text: str) -> None:
        try:
            title = self.app.llm.generate_title(
                user_text, model=self.app.settings.chat_model
            )
            if title and title.strip():
                self.app.sessions.rename_session(session_id, title)
        except Exception:
            logger.warning(
                "Title generation failed for session %s", session_id, exc_info=True
            )
