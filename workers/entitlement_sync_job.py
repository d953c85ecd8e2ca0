from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from yasasuma import config
from yasasuma.entitlement_store import EntitlementStore
from yasasuma.errors import BillingUnavailableError


@dataclass
class SyncStats:
    started_at: str
    completed_at: Optional[str] = None
    state_changed: bool = False
    is_unlocked: bool = False
    errors: int = 0


async def run_entitlement_sync_cycle(store: EntitlementStore) -> SyncStats:
    """Background drift reconciliation.

    Catches renewals or revocations the push stream missed (e.g. while the
    app was suspended) by recomputing entitlements from the store.
    """

    stats = SyncStats(started_at=datetime.now(timezone.utc).isoformat())
    before = store.state

    try:
        after = await store.refresh_entitlements()
        stats.state_changed = after != before
    except BillingUnavailableError:
        stats.errors += 1

    stats.is_unlocked = store.is_unlocked
    stats.completed_at = datetime.now(timezone.utc).isoformat()
    return stats


async def run_forever(
    store: EntitlementStore,
    interval_seconds: int = config.ENTITLEMENT_SYNC_INTERVAL_SECONDS,
) -> None:
    while True:
        await run_entitlement_sync_cycle(store)
        await asyncio.sleep(interval_seconds)
