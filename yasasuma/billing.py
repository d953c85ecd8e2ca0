"""
Billing collaborator for in-app purchases.

The core never verifies transactions itself. It consumes:
- products(ids): which product ids the store catalog currently offers
- purchase(product_id): a TransactionResult (success, cancelled, pending, unverified)
- sync(): re-sync purchases with the store (restore)
- current_entitlements(): every entitlement the store knows, with its verification flag
- entitlement_updates(): a push stream of renewals / revocations

HttpBillingClient talks to the billing bridge over HTTP. Tests substitute
an in-process fake implementing the same protocol.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Protocol

import httpx

from yasasuma import config

logger = logging.getLogger(__name__)


class TransactionStatus(str, Enum):
    SUCCESS = "success"
    USER_CANCELLED = "user_cancelled"
    PENDING = "pending"
    UNVERIFIED = "unverified"


@dataclass(frozen=True)
class TransactionResult:
    """Outcome of a purchase request."""
    status: TransactionStatus
    product_id: str
    transaction_id: Optional[str] = None


@dataclass(frozen=True)
class EntitlementRecord:
    """One entitlement as reported by the store."""
    product_id: str
    verified: bool


@dataclass(frozen=True)
class EntitlementUpdate:
    """Pushed notification that an entitlement changed."""
    product_id: str


class BillingClientError(Exception):
    """Error from the billing collaborator."""

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict] = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}


class BillingClient(Protocol):
    async def products(self, product_ids: Iterable[str]) -> List[str]: ...

    async def purchase(self, product_id: str) -> TransactionResult: ...

    async def sync(self) -> None: ...

    async def current_entitlements(self) -> List[EntitlementRecord]: ...

    def entitlement_updates(self) -> AsyncIterator[EntitlementUpdate]: ...


class HttpBillingClient:
    """
    Client for the platform billing bridge.

    The bridge wraps the device's store API and exposes it as JSON over HTTP.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or config.BILLING_API_URL).rstrip("/")
        api_key = api_key or config.BILLING_API_KEY

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout if timeout is not None else config.BILLING_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def close(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("Billing bridge HTTP error", extra={
                "path": path,
                "status_code": e.response.status_code,
                "response": e.response.text[:500],
            })
            raise BillingClientError(
                f"Billing bridge error: {e.response.status_code}",
                code=str(e.response.status_code),
            )
        except httpx.RequestError as e:
            logger.error("Billing bridge unreachable", extra={"path": path, "error": str(e)})
            raise BillingClientError(f"Billing bridge unreachable: {e}")

        if not response.content:
            return {}
        data = response.json()
        if isinstance(data, dict) and data.get("error"):
            raise BillingClientError(str(data["error"]), details=data)
        return data

    async def products(self, product_ids: Iterable[str]) -> List[str]:
        data = await self._request("GET", "/products", params={"ids": ",".join(product_ids)})
        return [str(p["product_id"]) for p in data.get("products", [])]

    async def purchase(self, product_id: str) -> TransactionResult:
        data = await self._request("POST", "/purchases", json={"product_id": product_id})
        try:
            status = TransactionStatus(data.get("status"))
        except ValueError:
            raise BillingClientError(
                f"Unknown transaction status: {data.get('status')!r}",
                details=data,
            )
        return TransactionResult(
            status=status,
            product_id=str(data.get("product_id", product_id)),
            transaction_id=data.get("transaction_id"),
        )

    async def sync(self) -> None:
        await self._request("POST", "/sync")

    async def current_entitlements(self) -> List[EntitlementRecord]:
        data = await self._request("GET", "/entitlements")
        return [
            EntitlementRecord(product_id=str(e["product_id"]), verified=bool(e.get("verified", False)))
            for e in data.get("entitlements", [])
        ]

    async def entitlement_updates(self) -> AsyncIterator[EntitlementUpdate]:
        """Stream newline-delimited JSON notifications from the bridge."""
        path = "/entitlements/updates"
        try:
            async with self._client.stream("GET", path, timeout=None) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        payload = json.loads(line)
                    except ValueError:
                        logger.warning("Skipping malformed entitlement update", extra={"line": line[:200]})
                        continue
                    product_id = payload.get("product_id")
                    if product_id:
                        yield EntitlementUpdate(product_id=str(product_id))
        except httpx.HTTPStatusError as e:
            logger.error("Billing bridge HTTP error", extra={
                "path": path,
                "status_code": e.response.status_code,
            })
            raise BillingClientError(
                f"Billing bridge error: {e.response.status_code}",
                code=str(e.response.status_code),
            )
        except httpx.RequestError as e:
            logger.error("Billing bridge unreachable", extra={"path": path, "error": str(e)})
            raise BillingClientError(f"Billing bridge unreachable: {e}")
