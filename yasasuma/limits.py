"""
Free tier limit rules.

Pure functions over an entitlement snapshot and a collection snapshot. They
never touch storage or the UI, so the paywall decision can be tested in
isolation.

Free tier:
- contacts: at most 2
- destinations: at most 2
- events: at most 1 per local calendar day (not a rolling 24 hours)

Unlocked users (any plan, including the legacy unlock) have no limits.
"""

from datetime import datetime
from typing import Iterable, Optional, Sequence
from uuid import UUID

from yasasuma import config
from yasasuma.models import Event, EntitlementState, RecordCategory, LimitedRecord
from yasasuma.records import local_day


def count_events_on_same_day(
    events: Iterable[Event],
    target_date: datetime,
    exclude_id: Optional[UUID] = None,
) -> int:
    target_day = local_day(target_date)
    return sum(
        1
        for event in events
        if local_day(event.date) == target_day and (exclude_id is None or event.id != exclude_id)
    )


def can_add_contact(entitlement: EntitlementState, contacts: Sequence[LimitedRecord]) -> bool:
    return entitlement.is_unlocked or len(contacts) < config.FREE_CONTACT_LIMIT


def can_add_destination(entitlement: EntitlementState, destinations: Sequence[LimitedRecord]) -> bool:
    return entitlement.is_unlocked or len(destinations) < config.FREE_DESTINATION_LIMIT


def can_add_event(entitlement: EntitlementState, events: Iterable[Event], target_date: datetime) -> bool:
    if entitlement.is_unlocked:
        return True
    return count_events_on_same_day(events, target_date) < config.FREE_EVENTS_PER_DAY


def can_edit_event(
    entitlement: EntitlementState,
    events: Iterable[Event],
    edited_event_id: UUID,
    new_date: datetime,
) -> bool:
    """Editing must not create a second event on new_date's day.

    The edited event itself is excluded from the count, so changing only the
    time of a day's single event is always allowed.
    """
    if entitlement.is_unlocked:
        return True
    return count_events_on_same_day(events, new_date, exclude_id=edited_event_id) < config.FREE_EVENTS_PER_DAY


def can_add(
    category: RecordCategory,
    entitlement: EntitlementState,
    records: Sequence[LimitedRecord],
    target_date: Optional[datetime] = None,
) -> bool:
    """Dispatch to the per-category rule."""
    if category == RecordCategory.CONTACTS:
        return can_add_contact(entitlement, records)
    if category == RecordCategory.DESTINATIONS:
        return can_add_destination(entitlement, records)
    if category == RecordCategory.EVENTS:
        if target_date is None:
            raise ValueError("target_date is required for events")
        return can_add_event(entitlement, records, target_date)
    raise ValueError(f"unknown category: {category!r}")
