"""The ordered collection of chat sessions and the current-session pointer."""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .exceptions import InvalidInputError, SessionNotFoundError, StorageError
from .models import ChatMessage, Session
from .store import Entry, Store

logger = logging.getLogger(__name__)

SESSIONS_COLLECTION = "sessions"
STATE_KEY = "state"


class SessionStore:
    """Owns session creation, rename, deletion and persistence.

    The whole collection and the current-session pointer are written as one
    document after every mutation, so a reload never observes a state older
    than the last completed operation. Sessions are kept in insertion order
    (newest first); :meth:`list_sessions` re-sorts by ``last_modified``.

    Every returned :class:`Session` is a copy. Mutate through the store.
    """

    def __init__(self, store: Store):
        self.store = store
        self.draft = ""
        self._lock = threading.RLock()
        self._session_locks: Dict[str, threading.Lock] = {}
        self._sessions, self._current_id = self._load()

    def _load(self) -> Tuple[List[Session], Optional[str]]:
        entry = self.store.get(SESSIONS_COLLECTION, STATE_KEY)
        if entry is None:
            return [], None
        sessions = [
            Session.model_validate(data) for data in entry.document.get("sessions", [])
        ]
        return sessions, entry.document.get("current_session_id")

    def _persist(self) -> None:
        document = {
            "sessions": [s.model_dump(mode="json") for s in self._sessions],
            "current_session_id": self._current_id,
        }
        try:
            self.store.put(SESSIONS_COLLECTION, Entry(STATE_KEY, document))
        except StorageError:
            logger.error("Failed to persist %d sessions", len(self._sessions))
            raise

    def _index(self, session_id: str) -> Optional[int]:
        for i, session in enumerate(self._sessions):
            if session.id == session_id:
                return i
        return None

    def _require(self, session_id: str) -> Session:
        i = self._index(session_id)
        if i is None:
            raise SessionNotFoundError(session_id)
        return self._sessions[i]

    # --- Queries ---

    @property
    def current_session_id(self) -> Optional[str]:
        with self._lock:
            return self._current_id

    def list_sessions(self) -> List[Session]:
        """Most-recently-modified first; ties keep insertion order."""
        with self._lock:
            ordered = sorted(self._sessions, key=lambda s: s.last_modified, reverse=True)
            return [s.model_copy(deep=True) for s in ordered]

    def get_session(self, session_id: str) -> Optional[Session]:
        with self._lock:
            i = self._index(session_id)
            return self._sessions[i].model_copy(deep=True) if i is not None else None

    def get_current_session(self) -> Session:
        """Returns the current session, creating or selecting one if needed."""
        with self._lock:
            if self._current_id is not None and self._index(self._current_id) is not None:
                return self.get_session(self._current_id)
            if self._sessions:
                self._current_id = self._sessions[0].id
                self._persist()
                return self.get_session(self._current_id)
            return self.get_session(self.create_session())

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    # --- Mutations ---

    def create_session(self) -> str:
        with self._lock:
            session = Session()
            while self._index(session.id) is not None:
                session = Session()
            self._sessions.insert(0, session)
            self._current_id = session.id
            self.draft = ""
            self._persist()
        logger.debug("Created session %s", session.id)
        return session.id

    def select_session(self, session_id: str) -> None:
        with self._lock:
            self._require(session_id)
            self._current_id = session_id
            self._persist()

    def set_messages(self, session_id: str, messages: Sequence[ChatMessage]) -> Session:
        """Replaces a session's message list and bumps ``last_modified``."""
        with self._lock:
            session = self._require(session_id)
            session.messages = [m.model_copy() for m in messages]
            session.last_modified = datetime.now(timezone.utc)
            self._persist()
            return session.model_copy(deep=True)

    def append_message(
        self,
        session_id: str,
        message: ChatMessage,
        before_save: Optional[Callable[[str, List[ChatMessage]], None]] = None,
    ) -> Session:
        """Appends ``message`` to the stored list in one step.

        Reading the current messages, running ``before_save`` and writing all
        happen under the store lock, so a concurrent delete either lands first
        (and this raises :class:`SessionNotFoundError`) or after the write.
        """
        with self._lock:
            session = self._require(session_id)
            messages = [m.model_copy() for m in session.messages] + [message]
            if before_save is not None:
                before_save(session_id, messages)
            return self.set_messages(session_id, messages)

    def rename_session(self, session_id: str, title: str) -> Session:
        title = (title or "").strip()
        if not title:
            raise InvalidInputError("Session title cannot be empty")
        with self._lock:
            session = self._require(session_id)
            session.title = title
            self._persist()
        logger.debug("Renamed session %s to %r", session_id, title)
        return session.model_copy(deep=True)

    def delete_session(self, session_id: str) -> bool:
        """Removes a session.

        If it was current, the first remaining session becomes current, or
        the pointer is cleared when none remain. The next call to
        :meth:`get_current_session` then creates a fresh one.
        """
        with self._lock:
            i = self._index(session_id)
            if i is None:
                return False
            del self._sessions[i]
            self._session_locks.pop(session_id, None)
            if self._current_id == session_id:
                self._current_id = self._sessions[0].id if self._sessions else None
            self._persist()
        logger.debug("Deleted session %s", session_id)
        return True

    def session_lock(self, session_id: str) -> threading.Lock:
        """The lock that serializes send/edit/regenerate on one session."""
        with self._lock:
            return self._session_locks.setdefault(session_id, threading.Lock())
