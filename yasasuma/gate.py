"""
Gates that sit in front of user actions.

GateController decides, once per add-button press, whether the add form or
the paywall is shown. Editing and deleting are never blocked by the free
limit, except that an event edit may not move a second event onto a day.

PasscodeGate protects the settings screens with a 4 digit passcode. It fails
open when the lock is disabled or the stored passcode is malformed.

Usage:
    gate = GateController(entitlements=store, events=events, contacts=contacts,
                          destinations=destinations, review=review_manager)
    sheet = gate.request_add(RecordCategory.CONTACTS)
    if isinstance(sheet, AddForm):
        gate.complete_add(RecordCategory.CONTACTS, Contact(name="自宅", phone="0312345678"))
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union
from uuid import UUID

from yasasuma import config, limits
from yasasuma.entitlement_store import EntitlementStore, PurchaseOutcome
from yasasuma.errors import RecordError
from yasasuma.models import LimitedRecord, Plan, RecordCategory
from yasasuma.records import (
    ContactCollection,
    DestinationCollection,
    EventCollection,
    RecordCollection,
)
from yasasuma.review import ReviewPromptManager, ReviewTrigger
from yasasuma.settings import PasscodeSettingsStore, digits_only, sanitize_passcode_input

logger = logging.getLogger(__name__)

PASSCODE_MISMATCH_MESSAGE = "パスコードがちがいます。もう一度おためしください。"

_MILESTONE_TRIGGERS = {
    RecordCategory.EVENTS: ReviewTrigger.ADDED_EVENTS,
    RecordCategory.CONTACTS: ReviewTrigger.ADDED_FAVORITE_CONTACTS,
    RecordCategory.DESTINATIONS: ReviewTrigger.ADDED_DESTINATIONS,
}


@dataclass(frozen=True)
class AddForm:
    category: RecordCategory
    target_date: Optional[datetime] = None


@dataclass(frozen=True)
class EditForm:
    category: RecordCategory
    record_id: UUID


@dataclass(frozen=True)
class Paywall:
    category: Optional[RecordCategory] = None


@dataclass(frozen=True)
class NoSheet:
    pass


Sheet = Union[AddForm, EditForm, Paywall, NoSheet]


class AddGateState(str, Enum):
    IDLE = "idle"
    PENDING_DECISION = "pending_decision"
    ALLOWED = "allowed"
    DENIED = "denied"


class GateController:
    def __init__(
        self,
        *,
        entitlements: EntitlementStore,
        events: EventCollection,
        contacts: ContactCollection,
        destinations: DestinationCollection,
        review: Optional[ReviewPromptManager] = None,
    ) -> None:
        self._entitlements = entitlements
        self._collections = {
            RecordCategory.EVENTS: events,
            RecordCategory.CONTACTS: contacts,
            RecordCategory.DESTINATIONS: destinations,
        }
        self._events = events
        self._review = review
        self.state = AddGateState.IDLE

    def collection_for(self, category: RecordCategory) -> RecordCollection:
        return self._collections[category]

    def request_add(self, category: RecordCategory, target_date: Optional[datetime] = None) -> Sheet:
        """Evaluate the free limit against the collection as it is right now."""
        self.state = AddGateState.PENDING_DECISION
        allowed = limits.can_add(
            category,
            self._entitlements.state,
            self.collection_for(category).records,
            target_date=target_date,
        )
        if allowed:
            self.state = AddGateState.ALLOWED
            return AddForm(category=category, target_date=target_date)

        self.state = AddGateState.DENIED
        logger.info("Free limit reached, showing paywall", extra={
            "category": category.value,
            "count": len(self.collection_for(category)),
        })
        return Paywall(category=category)

    def request_edit(self, category: RecordCategory, record_id: UUID) -> Sheet:
        if self.collection_for(category).get(record_id) is None:
            return NoSheet()
        return EditForm(category=category, record_id=record_id)

    def complete_add(self, category: RecordCategory, record: LimitedRecord) -> LimitedRecord:
        """Save a record from the add form. The limit is not re-checked here."""
        collection = self.collection_for(category)
        added = collection.add(record)
        self.state = AddGateState.IDLE
        if self._review is not None and len(collection) >= config.REVIEW_MILESTONE_RECORD_COUNT:
            self._review.maybe_request_review(_MILESTONE_TRIGGERS[category])
        return added

    def commit_event_edit(self, event_id: UUID, new_date: datetime, **changes) -> Sheet:
        """Save an event edit unless it would put a second event on a day."""
        if "date" in changes:
            raise RecordError("pass the new date as new_date")
        if not limits.can_edit_event(self._entitlements.state, self._events.records, event_id, new_date):
            logger.info("Event edit would exceed daily limit", extra={"event_id": str(event_id)})
            return Paywall(category=RecordCategory.EVENTS)
        self._events.update(event_id, date=new_date, **changes)
        return NoSheet()

    def dismiss(self) -> None:
        self.state = AddGateState.IDLE

    async def purchase(self, plan: Plan) -> PurchaseOutcome:
        outcome = await self._entitlements.purchase(plan)
        if outcome == PurchaseOutcome.COMPLETED and self._entitlements.is_unlocked:
            self.state = AddGateState.IDLE
            if self._review is not None:
                self._review.maybe_request_review(ReviewTrigger.PURCHASED_PRO)
        return outcome


class PasscodeGateState(str, Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class PasscodeGate:
    """Session lock in front of the settings screens."""

    def __init__(self, settings: PasscodeSettingsStore) -> None:
        self._settings = settings
        self.unlocked_this_session = False
        self.error_message: Optional[str] = None

    @property
    def state(self) -> PasscodeGateState:
        if self.unlocked_this_session or not self._settings.is_lock_active:
            return PasscodeGateState.UNLOCKED
        return PasscodeGateState.LOCKED

    def enter(self) -> PasscodeGateState:
        """Fresh navigation into the gated screen; forgets earlier unlocks."""
        self.unlocked_this_session = False
        self.error_message = None
        return self.state

    def submit(self, raw_input: str) -> bool:
        if self.state == PasscodeGateState.UNLOCKED:
            return True

        entered = sanitize_passcode_input(raw_input)
        stored = digits_only(self._settings.value)
        if len(stored) == config.PASSCODE_LENGTH and entered == stored:
            self.unlocked_this_session = True
            self.error_message = None
            return True

        self.error_message = PASSCODE_MISMATCH_MESSAGE
        return False

    def reset(self) -> PasscodeGateState:
        """Forgotten passcode: disable the lock entirely and let the user in."""
        self._settings.clear()
        self.unlocked_this_session = True
        self.error_message = None
        logger.info("Passcode gate reset by user")
        return self.state
