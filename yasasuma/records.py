"""
Ordered, persisted collections of limited records.

Each collection owns one snapshot key in the key-value store and rewrites
the whole ordered list after every mutation. Collections are small (tens of
records), so snapshots are preferred over incremental logs.

Observers are called once per successful mutation, after the snapshot has
been written.
"""

import logging
from datetime import date, datetime
from typing import Callable, Generic, Iterable, Iterator, List, Optional, Type, TypeVar
from uuid import UUID, uuid4

from pydantic import ValidationError

from yasasuma import config
from yasasuma.errors import DuplicateRecordError, RecordError
from yasasuma.models import Contact, Destination, Event, LimitedRecord, RecordCategory
from yasasuma.observers import ObserverRegistry
from yasasuma.storage import KeyValueStore

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=LimitedRecord)


def local_day(moment: datetime) -> date:
    """Calendar day of moment on the device's local clock."""
    if moment.tzinfo is not None:
        moment = moment.astimezone()
    return moment.date()


class RecordCollection(Generic[R]):
    """Ordered collection of records with unique ids."""

    category: RecordCategory
    model: Type[R]

    def __init__(self, storage: KeyValueStore, key: Optional[str] = None) -> None:
        self._storage = storage
        self._key = key or config.storage_key(self.category.value)
        self._records: List[R] = []
        self._observers: ObserverRegistry[List[R]] = ObserverRegistry()
        self._load()

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[R]:
        return iter(list(self._records))

    @property
    def records(self) -> List[R]:
        return list(self._records)

    def get(self, record_id: UUID) -> Optional[R]:
        return next((r for r in self._records if r.id == record_id), None)

    def subscribe(self, observer: Callable[[List[R]], None]) -> Callable[[], None]:
        return self._observers.subscribe(observer)

    def add(self, record: R) -> R:
        """Append record, assigning a fresh id when it has none."""
        if not isinstance(record, self.model):
            raise RecordError(f"{self.category.value} cannot hold {type(record).__name__}")
        if record.id is None:
            record = record.model_copy(update={"id": uuid4()})
        elif self.get(record.id) is not None:
            raise DuplicateRecordError(str(record.id))

        self._records.append(record)
        self._commit()
        return record

    def update(self, record_id: UUID, **changes) -> bool:
        """Apply field changes to the record with record_id; False when absent."""
        if "id" in changes:
            raise RecordError("record id cannot be changed")

        index = self._index_of(record_id)
        if index is None:
            return False

        current = self._records[index]
        try:
            updated = self.model.model_validate({**current.model_dump(), **changes})
        except ValidationError as e:
            raise RecordError(f"invalid update for {record_id}: {e}") from e

        self._records[index] = updated
        self._commit()
        return True

    def delete(self, record_id: UUID) -> bool:
        index = self._index_of(record_id)
        if index is None:
            return False
        del self._records[index]
        self._commit()
        return True

    def delete_many(self, record_ids: Iterable[UUID]) -> int:
        """Remove every record whose id is in record_ids; one snapshot write."""
        doomed = set(record_ids)
        kept = [r for r in self._records if r.id not in doomed]
        removed = len(self._records) - len(kept)
        if removed:
            self._records = kept
            self._commit()
        return removed

    def _index_of(self, record_id: UUID) -> Optional[int]:
        for i, record in enumerate(self._records):
            if record.id == record_id:
                return i
        return None

    def _commit(self) -> None:
        snapshot = [r.model_dump(mode="json") for r in self._records]
        self._storage.set(self._key, snapshot)
        self._observers.notify(self.records)

    def _load(self) -> None:
        raw = self._storage.get(self._key)
        if raw is None:
            return
        if not isinstance(raw, list):
            logger.warning("Ignoring malformed snapshot", extra={"key": self._key})
            return

        records: List[R] = []
        seen = set()
        for item in raw:
            try:
                record = self.model.model_validate(item)
            except ValidationError as e:
                logger.warning("Skipping unreadable record", extra={"key": self._key, "error": str(e)})
                continue
            if record.id is None or record.id in seen:
                logger.warning("Skipping record without unique id", extra={"key": self._key})
                continue
            seen.add(record.id)
            records.append(record)
        self._records = records


class EventCollection(RecordCollection[Event]):
    category = RecordCategory.EVENTS
    model = Event

    def events_on(self, day) -> List[Event]:
        """Events on the local calendar day of ``day``, sorted by time."""
        target = local_day(day) if isinstance(day, datetime) else day
        return sorted(
            (e for e in self._records if local_day(e.date) == target),
            key=lambda e: e.date,
        )

    def sorted_by_date(self) -> List[Event]:
        return sorted(self._records, key=lambda e: e.date)


class ContactCollection(RecordCollection[Contact]):
    category = RecordCategory.CONTACTS
    model = Contact


class DestinationCollection(RecordCollection[Destination]):
    category = RecordCategory.DESTINATIONS
    model = Destination

    def reorder(self, from_index: int, to_index: int) -> None:
        """Move the record at from_index so that it ends up at to_index."""
        size = len(self._records)
        if not 0 <= from_index < size or not 0 <= to_index < size:
            raise IndexError(f"reorder indices out of range: {from_index} -> {to_index}")
        if from_index == to_index:
            return
        record = self._records.pop(from_index)
        self._records.insert(to_index, record)
        self._commit()
