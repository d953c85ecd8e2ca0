import pytest

from workers.entitlement_sync_job import run_entitlement_sync_cycle
from yasasuma.entitlement_store import EntitlementStore
from yasasuma.models import Plan

from tests.conftest import MONTHLY_ID


@pytest.mark.asyncio
async def test_cycle_picks_up_renewal(storage, billing):
    store = EntitlementStore(storage=storage, billing=billing)
    store.load()
    billing.grant(MONTHLY_ID)

    stats = await run_entitlement_sync_cycle(store)

    assert stats.state_changed is True
    assert stats.is_unlocked is True
    assert stats.errors == 0
    assert stats.completed_at is not None
    assert store.active_plan == Plan.MONTHLY


@pytest.mark.asyncio
async def test_cycle_counts_errors_without_raising(storage, billing):
    store = EntitlementStore(storage=storage, billing=billing)
    store.load()
    billing.fail = True

    stats = await run_entitlement_sync_cycle(store)

    assert stats.errors == 1
    assert stats.state_changed is False
    assert stats.is_unlocked is False
