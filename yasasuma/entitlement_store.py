"""
Entitlement store: the single owner of purchase state.

State is recomputed from the billing collaborator (purchase, restore, pushed
updates, periodic sync) and persisted on every change. Recomputation always
overwrites the whole state; nothing is merged incrementally.

Usage:
    store = EntitlementStore(storage=kv, billing=billing_client)
    store.load()

    outcome = await store.purchase(Plan.YEARLY)
    await store.restore()
    store.start_listening()
"""

import asyncio
import logging
from enum import Enum
from typing import AsyncIterator, Callable, Dict, Mapping, Optional

from yasasuma import config
from yasasuma.billing import (
    BillingClient,
    BillingClientError,
    EntitlementUpdate,
    TransactionStatus,
)
from yasasuma.errors import (
    BillingUnavailableError,
    ProductNotFoundError,
    VerificationFailedError,
)
from yasasuma.models import PLAN_CATALOG, EntitlementState, Plan, PlanDefinition
from yasasuma.observers import ObserverRegistry
from yasasuma.storage import KeyValueStore

logger = logging.getLogger(__name__)

STATE_KEY = config.storage_key("entitlement")
LEGACY_UNLOCK_KEY = config.storage_key("isProUnlocked")

# When several plans are active at once, the longer one is reported.
_PLAN_PRIORITY = (Plan.YEARLY, Plan.MONTHLY)


class PurchaseOutcome(str, Enum):
    """Non-error results of a purchase request."""
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    PENDING = "pending"


class EntitlementStore:
    def __init__(
        self,
        *,
        storage: KeyValueStore,
        billing: BillingClient,
        catalog: Optional[Mapping[Plan, PlanDefinition]] = None,
        stream_retry_seconds: Optional[float] = None,
    ) -> None:
        self._storage = storage
        self._billing = billing
        self._catalog = catalog or PLAN_CATALOG
        self._plans_by_product_id: Dict[str, Plan] = {
            definition.product_id: plan for plan, definition in self._catalog.items()
        }
        self._state = EntitlementState()
        self._observers: ObserverRegistry[EntitlementState] = ObserverRegistry()
        self._listener_task: Optional[asyncio.Task] = None
        self._stream_retry_seconds = (
            stream_retry_seconds if stream_retry_seconds is not None else config.ENTITLEMENT_STREAM_RETRY_SECONDS
        )

    @property
    def state(self) -> EntitlementState:
        return self._state

    @property
    def is_unlocked(self) -> bool:
        return self._state.is_unlocked

    @property
    def active_plan(self) -> Optional[Plan]:
        return self._state.active_plan

    def subscribe(self, observer: Callable[[EntitlementState], None]) -> Callable[[], None]:
        return self._observers.subscribe(observer)

    def plan_for_product(self, product_id: str) -> Optional[Plan]:
        return self._plans_by_product_id.get(product_id)

    def product_id_for(self, plan: Plan) -> str:
        return self._catalog[plan].product_id

    def load(self) -> EntitlementState:
        """Read persisted state; absent keys load as the free tier."""
        raw = self._storage.get(STATE_KEY)
        state = EntitlementState()
        if isinstance(raw, dict):
            try:
                state = EntitlementState.from_dict(raw)
            except ValueError as e:
                logger.warning("Ignoring unreadable entitlement state: %s", e)
        elif self._storage.get(LEGACY_UNLOCK_KEY) is True:
            state = EntitlementState(is_unlocked=True, active_plan=None)
            logger.info("Loaded legacy unlock without a plan")

        self._state = state
        return state

    async def purchase(self, plan: Plan) -> PurchaseOutcome:
        """
        Buy plan through the billing collaborator.

        Raises:
            ProductNotFoundError: the catalog does not offer the plan's product
            VerificationFailedError: the store could not verify the transaction
            BillingUnavailableError: the collaborator failed
        """
        product_id = self.product_id_for(plan)

        try:
            available = await self._billing.products([product_id])
        except BillingClientError as e:
            raise BillingUnavailableError(str(e), product_id=product_id) from e
        if product_id not in available:
            logger.error("Plan product missing from billing catalog", extra={
                "plan": plan.value,
                "product_id": product_id,
            })
            raise ProductNotFoundError(f"product {product_id} not found", product_id=product_id)

        try:
            result = await self._billing.purchase(product_id)
        except BillingClientError as e:
            raise BillingUnavailableError(str(e), product_id=product_id) from e

        if result.status == TransactionStatus.USER_CANCELLED:
            logger.info("Purchase cancelled by user", extra={"product_id": product_id})
            return PurchaseOutcome.CANCELLED
        if result.status == TransactionStatus.PENDING:
            logger.info("Purchase pending approval", extra={"product_id": product_id})
            return PurchaseOutcome.PENDING
        if result.status == TransactionStatus.UNVERIFIED:
            logger.warning("Purchase verification failed", extra={
                "product_id": product_id,
                "transaction_id": result.transaction_id,
            })
            raise VerificationFailedError("transaction could not be verified", product_id=product_id)

        await self.refresh_entitlements()
        logger.info("Purchase completed", extra={
            "plan": plan.value,
            "transaction_id": result.transaction_id,
            "is_unlocked": self._state.is_unlocked,
        })
        return PurchaseOutcome.COMPLETED

    async def restore(self) -> EntitlementState:
        """Re-sync purchases with the store, then recompute."""
        try:
            await self._billing.sync()
        except BillingClientError as e:
            raise BillingUnavailableError(str(e)) from e
        return await self.refresh_entitlements()

    async def refresh_entitlements(self) -> EntitlementState:
        """Recompute state from every currently valid entitlement."""
        try:
            records = await self._billing.current_entitlements()
        except BillingClientError as e:
            raise BillingUnavailableError(str(e)) from e

        active = set()
        for record in records:
            if not record.verified:
                continue
            plan = self._plans_by_product_id.get(record.product_id)
            if plan is None:
                continue
            active.add(plan)

        active_plan = next((p for p in _PLAN_PRIORITY if p in active), None)
        self._apply(EntitlementState(is_unlocked=active_plan is not None, active_plan=active_plan))
        return self._state

    async def listen(self, updates: AsyncIterator[EntitlementUpdate]) -> None:
        """Refresh whenever the update stream names a known product."""
        try:
            async for update in updates:
                if update.product_id not in self._plans_by_product_id:
                    logger.debug("Ignoring update for unknown product", extra={"product_id": update.product_id})
                    continue
                try:
                    await self.refresh_entitlements()
                except BillingUnavailableError as e:
                    logger.warning("Entitlement refresh after update failed", extra={
                        "product_id": update.product_id,
                        "error": e.message,
                    })
        except BillingClientError as e:
            logger.warning("Entitlement update stream failed", extra={"error": str(e), "code": e.code})

    async def _listen_forever(self) -> None:
        while True:
            await self.listen(self._billing.entitlement_updates())
            await asyncio.sleep(self._stream_retry_seconds)

    def start_listening(self) -> asyncio.Task:
        """Observe the billing update stream in a background task, reconnecting after a pause."""
        if self._listener_task is None or self._listener_task.done():
            self._listener_task = asyncio.get_running_loop().create_task(self._listen_forever())
            self._listener_task.add_done_callback(_log_listener_exit)
        return self._listener_task

    async def stop_listening(self) -> None:
        task, self._listener_task = self._listener_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _apply(self, new_state: EntitlementState) -> None:
        previous = self._state
        self._state = new_state
        if new_state == previous:
            return
        self._storage.set(STATE_KEY, new_state.to_dict())
        logger.info("Entitlement state changed", extra={
            "is_unlocked": new_state.is_unlocked,
            "active_plan": new_state.active_plan.value if new_state.active_plan else None,
        })
        self._observers.notify(new_state)


def _log_listener_exit(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Entitlement listener stopped", exc_info=exc)
