"""Exception hierarchy shared by all pillars."""


class VoiceStudioError(Exception):
    """Base class for every error raised by VoiceStudio."""


class InvalidInputError(VoiceStudioError, ValueError):
    """Input was rejected before any state was mutated."""


class SessionNotFoundError(VoiceStudioError, KeyError):
    """No session exists with the requested id."""

    def __init__(self, session_id: str):
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f"Session not found: {self.session_id!r}"


class StorageError(VoiceStudioError):
    """The persistence substrate failed to read or write."""


class ProviderError(VoiceStudioError):
    """A remote generation provider returned an error or was unreachable."""


class HandleError(VoiceStudioError, LookupError):
    """A transient handle is unknown or has been revoked."""
