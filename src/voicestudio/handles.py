"""Transient handles over binary payloads.

A handle plays the role a ``blob:`` URL plays in a browser: a cheap,
revocable reference that playback or download code can open, while the
owning store keeps the raw bytes. Handles live only as long as the registry
that issued them and must be revoked once nothing displays them.
"""

import io
import threading
import uuid
from typing import Dict, Union

from .exceptions import HandleError
from .models import Handle

HANDLE_SCHEME = "blob:"


class HandleRegistry:
    """Issues, resolves and revokes :class:`Handle` objects."""

    def __init__(self):
        self._payloads: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def create(self, payload: bytes) -> Handle:
        url = f"{HANDLE_SCHEME}{uuid.uuid4()}"
        with self._lock:
            self._payloads[url] = bytes(payload)
        return Handle(url=url, size=len(payload))

    def resolve(self, handle: Union[Handle, str]) -> bytes:
        """Returns the bytes behind a live handle."""
        url = _url_of(handle)
        with self._lock:
            try:
                return self._payloads[url]
            except KeyError:
                raise HandleError(f"Unknown or revoked handle: {url}") from None

    def open(self, handle: Union[Handle, str]) -> io.BytesIO:
        """Returns a fresh readable stream over the handle's payload."""
        return io.BytesIO(self.resolve(handle))

    def is_live(self, handle: Union[Handle, str]) -> bool:
        with self._lock:
            return _url_of(handle) in self._payloads

    def revoke(self, handle: Union[Handle, str]) -> bool:
        with self._lock:
            return self._payloads.pop(_url_of(handle), None) is not None

    def revoke_all(self) -> int:
        with self._lock:
            count = len(self._payloads)
            self._payloads.clear()
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._payloads)


def _url_of(handle: Union[Handle, str]) -> str:
    return handle.url if isinstance(handle, Handle) else str(handle)
