"""
EntitlementStore: load defaults, legacy unlock, purchase outcomes, restore,
full-overwrite refresh, pushed updates, persistence and notification.
"""

import asyncio
import json

import httpx
import pytest

from yasasuma.billing import EntitlementUpdate, HttpBillingClient, TransactionStatus
from yasasuma.entitlement_store import LEGACY_UNLOCK_KEY, STATE_KEY, EntitlementStore, PurchaseOutcome
from yasasuma.errors import BillingUnavailableError, ProductNotFoundError, VerificationFailedError
from yasasuma.models import EntitlementState, Plan

from tests.conftest import MONTHLY_ID, YEARLY_ID, FakeBilling


def _store(storage, billing):
    store = EntitlementStore(storage=storage, billing=billing)
    store.load()
    return store


# ----- Load -----

def test_load_defaults_to_free(storage, billing):
    store = _store(storage, billing)
    assert store.state == EntitlementState(is_unlocked=False, active_plan=None)


def test_load_reads_persisted_state(storage, billing):
    storage.set(STATE_KEY, {"is_unlocked": True, "active_plan": "monthly"})
    store = _store(storage, billing)
    assert store.is_unlocked is True
    assert store.active_plan == Plan.MONTHLY


def test_load_legacy_unlock_has_no_plan(storage, billing):
    storage.set(LEGACY_UNLOCK_KEY, True)
    store = _store(storage, billing)
    assert store.is_unlocked is True
    assert store.active_plan is None
    assert store.state.is_legacy_unlock is True


def test_load_ignores_unknown_plan(storage, billing):
    storage.set(STATE_KEY, {"is_unlocked": True, "active_plan": "lifetime"})
    store = _store(storage, billing)
    assert store.state == EntitlementState()


def test_plan_requires_unlock():
    with pytest.raises(ValueError):
        EntitlementState(is_unlocked=False, active_plan=Plan.MONTHLY)


# ----- Purchase -----

@pytest.mark.asyncio
async def test_purchase_success_refreshes_and_persists(storage, billing, fake_redis):
    store = _store(storage, billing)
    changes = []
    store.subscribe(changes.append)

    outcome = await store.purchase(Plan.YEARLY)

    assert outcome == PurchaseOutcome.COMPLETED
    assert store.state == EntitlementState(is_unlocked=True, active_plan=Plan.YEARLY)
    assert billing.purchases == [YEARLY_ID]
    assert storage.get(STATE_KEY) == {"is_unlocked": True, "active_plan": "yearly"}
    assert changes == [store.state]


@pytest.mark.asyncio
@pytest.mark.parametrize("status,expected", [
    (TransactionStatus.USER_CANCELLED, PurchaseOutcome.CANCELLED),
    (TransactionStatus.PENDING, PurchaseOutcome.PENDING),
])
async def test_purchase_cancel_and_pending_are_not_errors(storage, billing, status, expected):
    billing.next_status = status
    store = _store(storage, billing)

    assert await store.purchase(Plan.MONTHLY) == expected
    assert store.is_unlocked is False
    assert billing.entitlement_queries == 0


@pytest.mark.asyncio
async def test_purchase_unverified_raises(storage, billing):
    billing.next_status = TransactionStatus.UNVERIFIED
    store = _store(storage, billing)

    with pytest.raises(VerificationFailedError) as exc:
        await store.purchase(Plan.MONTHLY)
    assert exc.value.to_dict()["error"] == "VERIFICATION_FAILED"
    assert store.is_unlocked is False


@pytest.mark.asyncio
async def test_purchase_missing_product_raises(storage):
    billing = FakeBilling(catalog=[MONTHLY_ID])
    store = _store(storage, billing)

    with pytest.raises(ProductNotFoundError) as exc:
        await store.purchase(Plan.YEARLY)
    assert exc.value.product_id == YEARLY_ID
    assert billing.purchases == []


@pytest.mark.asyncio
async def test_purchase_billing_failure(storage, billing):
    billing.fail = True
    store = _store(storage, billing)
    with pytest.raises(BillingUnavailableError):
        await store.purchase(Plan.MONTHLY)


# ----- Restore / refresh -----

@pytest.mark.asyncio
async def test_restore_syncs_then_refreshes(storage, billing):
    billing.grant(MONTHLY_ID)
    store = _store(storage, billing)

    state = await store.restore()

    assert billing.sync_calls == 1
    assert state == EntitlementState(is_unlocked=True, active_plan=Plan.MONTHLY)


@pytest.mark.asyncio
async def test_refresh_ignores_unverified_and_unknown(storage, billing):
    billing.grant(MONTHLY_ID, verified=False)
    billing.grant("com.other.app.pro")
    store = _store(storage, billing)

    state = await store.refresh_entitlements()
    assert state == EntitlementState()


@pytest.mark.asyncio
async def test_refresh_prefers_yearly_when_both_active(storage, billing):
    billing.grant(MONTHLY_ID)
    billing.grant(YEARLY_ID)
    store = _store(storage, billing)
    assert (await store.refresh_entitlements()).active_plan == Plan.YEARLY


@pytest.mark.asyncio
async def test_refresh_overwrites_rather_than_merges(storage, billing):
    storage.set(LEGACY_UNLOCK_KEY, True)
    store = _store(storage, billing)
    assert store.is_unlocked is True

    await store.refresh_entitlements()

    assert store.state == EntitlementState()
    assert storage.get(STATE_KEY) == {"is_unlocked": False, "active_plan": None}


@pytest.mark.asyncio
async def test_refresh_without_change_does_not_notify(storage, billing):
    store = _store(storage, billing)
    changes = []
    store.subscribe(changes.append)
    await store.refresh_entitlements()
    assert changes == []


@pytest.mark.asyncio
async def test_refresh_failure_keeps_state(storage, billing):
    billing.grant(MONTHLY_ID)
    store = _store(storage, billing)
    await store.refresh_entitlements()

    billing.fail = True
    with pytest.raises(BillingUnavailableError):
        await store.refresh_entitlements()
    assert store.active_plan == Plan.MONTHLY


# ----- Pushed updates -----

@pytest.mark.asyncio
async def test_listen_refreshes_on_known_product_only(storage, billing):
    store = _store(storage, billing)

    billing.grant(YEARLY_ID)
    await billing.updates.put(EntitlementUpdate(product_id="com.other.app"))
    await billing.updates.put(EntitlementUpdate(product_id=YEARLY_ID))
    await billing.updates.put(None)

    await store.listen(billing.entitlement_updates())

    assert billing.entitlement_queries == 1
    assert store.active_plan == Plan.YEARLY


@pytest.mark.asyncio
async def test_listen_survives_refresh_failure(storage, billing):
    store = _store(storage, billing)
    billing.fail = True
    await billing.updates.put(EntitlementUpdate(product_id=MONTHLY_ID))
    await billing.updates.put(None)

    await store.listen(billing.entitlement_updates())
    assert store.is_unlocked is False


@pytest.mark.asyncio
async def test_background_listener_handles_revocation(storage, billing):
    billing.grant(MONTHLY_ID)
    store = _store(storage, billing)
    await store.refresh_entitlements()

    store.start_listening()
    billing.revoke_all()
    await billing.updates.put(EntitlementUpdate(product_id=MONTHLY_ID))
    for _ in range(10):
        await asyncio.sleep(0)
        if not store.is_unlocked:
            break
    await store.stop_listening()

    assert store.state == EntitlementState()


@pytest.mark.asyncio
async def test_listen_returns_when_stream_fails(storage):
    client = HttpBillingClient(
        base_url="http://bridge.test",
        transport=httpx.MockTransport(lambda r: httpx.Response(503)),
    )
    store = _store(storage, client)
    async with client:
        await store.listen(client.entitlement_updates())
    assert store.state == EntitlementState()


@pytest.mark.asyncio
async def test_background_listener_reconnects_after_stream_error(storage):
    stream_calls = []

    def handler(request: httpx.Request):
        if request.url.path == "/entitlements/updates":
            stream_calls.append(request)
            if len(stream_calls) == 1:
                return httpx.Response(503)
            if len(stream_calls) == 2:
                return httpx.Response(200, content=json.dumps({"product_id": MONTHLY_ID}).encode() + b"\n")
            return httpx.Response(200, content=b"")
        return httpx.Response(200, json={"entitlements": [{"product_id": MONTHLY_ID, "verified": True}]})

    client = HttpBillingClient(base_url="http://bridge.test", transport=httpx.MockTransport(handler))
    store = EntitlementStore(storage=storage, billing=client, stream_retry_seconds=0.01)
    store.load()

    task = store.start_listening()
    for _ in range(50):
        await asyncio.sleep(0.01)
        if store.is_unlocked:
            break

    assert not task.done()
    await store.stop_listening()
    await client.close()

    assert len(stream_calls) >= 2
    assert store.state == EntitlementState(is_unlocked=True, active_plan=Plan.MONTHLY)
