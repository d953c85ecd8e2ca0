from __future__ import annotations

import asyncio
from typing import Dict, Iterable, List, Optional

import pytest

from yasasuma.billing import (
    BillingClientError,
    EntitlementRecord,
    TransactionResult,
    TransactionStatus,
)
from yasasuma.models import PLAN_CATALOG, Plan
from yasasuma.storage import KeyValueStore

MONTHLY_ID = PLAN_CATALOG[Plan.MONTHLY].product_id
YEARLY_ID = PLAN_CATALOG[Plan.YEARLY].product_id


class FakeRedis:
    def __init__(self):
        self.store: Dict[str, str] = {}
        self.fail_writes = False

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value):
        if self.fail_writes:
            raise ConnectionError("redis down")
        self.store[key] = value

    def delete(self, key):
        self.store.pop(key, None)


class FakeBilling:
    """In-process billing collaborator."""

    def __init__(self, catalog: Optional[Iterable[str]] = None):
        self.catalog: List[str] = list(catalog if catalog is not None else [MONTHLY_ID, YEARLY_ID])
        self.entitlements: List[EntitlementRecord] = []
        self.next_status = TransactionStatus.SUCCESS
        self.purchases: List[str] = []
        self.sync_calls = 0
        self.entitlement_queries = 0
        self.fail = False
        self._updates: "Optional[asyncio.Queue]" = None

    @property
    def updates(self) -> "asyncio.Queue":
        if self._updates is None:
            self._updates = asyncio.Queue()
        return self._updates

    async def products(self, product_ids):
        self._maybe_fail()
        return [p for p in product_ids if p in self.catalog]

    async def purchase(self, product_id):
        self._maybe_fail()
        self.purchases.append(product_id)
        if self.next_status == TransactionStatus.SUCCESS:
            self.grant(product_id)
        return TransactionResult(status=self.next_status, product_id=product_id, transaction_id="txn-1")

    async def sync(self):
        self._maybe_fail()
        self.sync_calls += 1

    async def current_entitlements(self):
        self._maybe_fail()
        self.entitlement_queries += 1
        return list(self.entitlements)

    async def entitlement_updates(self):
        while True:
            update = await self.updates.get()
            if update is None:
                return
            yield update

    def grant(self, product_id, verified=True):
        self.entitlements.append(EntitlementRecord(product_id=product_id, verified=verified))

    def revoke_all(self):
        self.entitlements = []

    def _maybe_fail(self):
        if self.fail:
            raise BillingClientError("billing unavailable")


class FakeReviewer:
    def __init__(self, foreground: bool = True):
        self.foreground = foreground
        self.requests = 0

    def request_review(self) -> bool:
        if not self.foreground:
            return False
        self.requests += 1
        return True


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def storage(fake_redis):
    kv = KeyValueStore(redis_url="")
    kv._redis = fake_redis
    return kv


@pytest.fixture
def billing():
    return FakeBilling()


@pytest.fixture
def reviewer():
    return FakeReviewer()
