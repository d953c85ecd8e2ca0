"""
Core of the Yasasuma launcher: freemium entitlements, free tier record
limits, add/paywall gating, the settings passcode lock and review prompts.

This module provides:
- EntitlementStore: purchase state recomputed from the billing collaborator
- RecordCollection: persisted event / contact / destination collections
- limits: pure free tier rules (2 contacts, 2 destinations, 1 event per day)
- GateController: add button -> add form or paywall
- PasscodeGate: 4 digit lock in front of settings
- ReviewPromptManager: windowed store review prompts
"""

from yasasuma.billing import (
    BillingClient,
    BillingClientError,
    EntitlementRecord,
    EntitlementUpdate,
    HttpBillingClient,
    TransactionResult,
    TransactionStatus,
)
from yasasuma.entitlement_store import EntitlementStore, PurchaseOutcome
from yasasuma.errors import (
    BillingUnavailableError,
    DuplicateRecordError,
    InvalidPasscodeError,
    ProductNotFoundError,
    PurchaseError,
    RecordError,
    VerificationFailedError,
    YasasumaError,
)
from yasasuma.gate import (
    AddForm,
    AddGateState,
    EditForm,
    GateController,
    NoSheet,
    PasscodeGate,
    PasscodeGateState,
    Paywall,
    Sheet,
)
from yasasuma.models import (
    PLAN_CATALOG,
    Contact,
    Destination,
    EntitlementState,
    Event,
    Plan,
    PlanDefinition,
    RecordCategory,
    ReviewPromptState,
)
from yasasuma.records import (
    ContactCollection,
    DestinationCollection,
    EventCollection,
    RecordCollection,
)
from yasasuma.review import ReviewPromptManager, ReviewTrigger, record_prompt, should_prompt
from yasasuma.settings import HomeApp, HomeAppsSettings, PasscodeSettingsStore
from yasasuma.storage import KeyValueStore

__all__ = [
    # Billing
    "BillingClient",
    "BillingClientError",
    "EntitlementRecord",
    "EntitlementUpdate",
    "HttpBillingClient",
    "TransactionResult",
    "TransactionStatus",
    # Entitlements
    "EntitlementStore",
    "PurchaseOutcome",
    # Errors
    "YasasumaError",
    "PurchaseError",
    "VerificationFailedError",
    "ProductNotFoundError",
    "BillingUnavailableError",
    "RecordError",
    "DuplicateRecordError",
    "InvalidPasscodeError",
    # Gates
    "GateController",
    "AddGateState",
    "Sheet",
    "AddForm",
    "EditForm",
    "Paywall",
    "NoSheet",
    "PasscodeGate",
    "PasscodeGateState",
    # Models
    "PLAN_CATALOG",
    "Plan",
    "PlanDefinition",
    "EntitlementState",
    "RecordCategory",
    "Event",
    "Contact",
    "Destination",
    "ReviewPromptState",
    # Records
    "RecordCollection",
    "EventCollection",
    "ContactCollection",
    "DestinationCollection",
    # Review
    "ReviewPromptManager",
    "ReviewTrigger",
    "should_prompt",
    "record_prompt",
    # Settings
    "PasscodeSettingsStore",
    "HomeApp",
    "HomeAppsSettings",
    # Storage
    "KeyValueStore",
]
