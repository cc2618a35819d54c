"""Persistence for generated artifacts (speech tracks and transcriptions).

Artifacts live outside any chat session. Each kind gets its own collection
in the shared :class:`~voicestudio.store.Store`, keyed by the record id.
"""

import logging
from typing import Generic, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel

from .exceptions import InvalidInputError
from .handles import HandleRegistry
from .models import AudioTrack, Transcription
from .store import Entry, Store

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)
RecordId = Union[int, str]


class RecordStore(Generic[RecordT]):
    """Key-value persistence for one kind of artifact record.

    Records are upserted by ``id`` and always read back newest-first by
    ``created_at``. Storage failures surface as
    :class:`~voicestudio.exceptions.StorageError`.
    """

    collection: str = ""
    record_type: Type[RecordT]

    def __init__(self, store: Store):
        self.store = store

    def put(self, record: RecordT) -> RecordT:
        self.store.put(self.collection, self._to_entry(record))
        logger.debug("Saved %s record %s", self.collection, record.id)
        return record

    def get_all(self) -> List[RecordT]:
        records = [self._from_entry(e) for e in self.store.get_all(self.collection)]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    def get(self, record_id: RecordId) -> Optional[RecordT]:
        entry = self.store.get(self.collection, str(record_id))
        return self._from_entry(entry) if entry else None

    def delete(self, record_id: RecordId) -> bool:
        deleted = self.store.delete(self.collection, str(record_id))
        logger.debug("Deleted %s record %s: %s", self.collection, record_id, deleted)
        return deleted

    def _to_entry(self, record: RecordT) -> Entry:
        return Entry(str(record.id), record.model_dump(mode="json"))

    def _from_entry(self, entry: Entry) -> RecordT:
        return self.record_type.model_validate(entry.document)


class TranscriptionStore(RecordStore[Transcription]):
    """Text-only transcription history."""

    collection = "transcriptions"
    record_type = Transcription


class TrackStore(RecordStore[AudioTrack]):
    """Speech tracks with binary audio payloads.

    On write, a track that only carries a transient handle is resolved to its
    raw bytes first; the handle itself is never stored. On every read each
    track gets a brand-new handle over its stored payload. Callers own those
    handles and revoke them when the track is no longer displayed.
    """

    collection = "tracks"
    record_type = AudioTrack

    def __init__(self, store: Store, handles: Optional[HandleRegistry] = None):
        super().__init__(store)
        self.handles = handles if handles is not None else HandleRegistry()

    def _to_entry(self, record: AudioTrack) -> Entry:
        payload = record.payload
        if payload is None:
            if record.handle is None:
                raise InvalidInputError(f"Track {record.id} has no audio payload")
            payload = self.handles.resolve(record.handle)
        return Entry(str(record.id), record.model_dump(mode="json"), payload)

    def _from_entry(self, entry: Entry) -> AudioTrack:
        track = super()._from_entry(entry)
        if entry.payload is None:
            return track
        return track.model_copy(
            update={
                "payload": entry.payload,
                "handle": self.handles.create(entry.payload),
            }
        )
