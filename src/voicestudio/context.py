"""Builds the bounded message sequence sent to the LLM for one request."""

from typing import Any, Dict, List, Optional, Sequence

from .models import SYSTEM_ROLE, ChatMessage

DEFAULT_WINDOW_SIZE = 10


def build_context_window(
    messages: Sequence[ChatMessage],
    system_prompt: Optional[str] = None,
    window_size: int = DEFAULT_WINDOW_SIZE,
) -> List[ChatMessage]:
    """Selects the messages that go into a completion request.

    Parameters
    ----------
    messages : Sequence[ChatMessage]
        The full, unbounded history of a session.
    system_prompt : str, optional
        Instruction prepended as a system message when non-blank. It does not
        count against ``window_size`` and is never written back to the session.
    window_size : int, default=10
        Maximum number of session messages to include.

    Returns
    -------
    List[ChatMessage]
        The last ``window_size`` messages in their original order, preceded
        by the system message if one was configured.
    """
    if window_size < 0:
        raise ValueError("window_size must be non-negative")
    recent = list(messages[-window_size:]) if window_size else []
    if system_prompt and system_prompt.strip():
        return [ChatMessage(role=SYSTEM_ROLE, content=system_prompt)] + recent
    return recent


def to_payload(messages: Sequence[ChatMessage]) -> List[Dict[str, Any]]:
    """Converts messages to the plain dicts LLM SDKs expect."""
    return [msg.model_dump() for msg in messages]
