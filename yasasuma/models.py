from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from yasasuma import config


class Plan(str, Enum):
    """The two paid offerings."""
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass(frozen=True)
class PlanDefinition:
    """Catalog entry for a plan."""

    plan: Plan
    product_id: str
    price_yen: int
    period_months: int

    def __post_init__(self) -> None:
        product_id = self.product_id.strip()
        if not product_id:
            raise ValueError("product_id is required")
        if self.period_months <= 0:
            raise ValueError("period_months must be positive")
        object.__setattr__(self, "product_id", product_id)


def build_plan_catalog(
    monthly_product_id: str = config.MONTHLY_PRODUCT_ID,
    yearly_product_id: str = config.YEARLY_PRODUCT_ID,
) -> Mapping[Plan, PlanDefinition]:
    catalog = {
        Plan.MONTHLY: PlanDefinition(Plan.MONTHLY, monthly_product_id, price_yen=480, period_months=1),
        Plan.YEARLY: PlanDefinition(Plan.YEARLY, yearly_product_id, price_yen=3900, period_months=12),
    }
    if catalog[Plan.MONTHLY].product_id == catalog[Plan.YEARLY].product_id:
        raise ValueError("monthly and yearly plans must use distinct product ids")
    return MappingProxyType(catalog)


PLAN_CATALOG = build_plan_catalog()


@dataclass(frozen=True)
class EntitlementState:
    """Current purchase state.

    ``is_unlocked`` with no ``active_plan`` is the legacy unlock path and
    carries the same limits as a recognised plan.
    """

    is_unlocked: bool = False
    active_plan: Optional[Plan] = None

    def __post_init__(self) -> None:
        if self.active_plan is not None and not self.is_unlocked:
            raise ValueError("active_plan requires is_unlocked")

    @property
    def is_legacy_unlock(self) -> bool:
        return self.is_unlocked and self.active_plan is None

    def to_dict(self) -> dict:
        return {
            "is_unlocked": self.is_unlocked,
            "active_plan": self.active_plan.value if self.active_plan else None,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> "EntitlementState":
        plan_value = raw.get("active_plan")
        plan = Plan(plan_value) if plan_value else None
        return cls(is_unlocked=bool(raw.get("is_unlocked", False)) or plan is not None, active_plan=plan)


class RecordCategory(str, Enum):
    """Resource types limited on the free tier."""
    EVENTS = "events"
    CONTACTS = "contacts"
    DESTINATIONS = "destinations"


class LimitedRecord(BaseModel):
    """Shared shape of records owned by a RecordCollection."""

    model_config = ConfigDict(frozen=True)

    id: Optional[UUID] = Field(None, description="Assigned when the record is added")


class Event(LimitedRecord):
    date: datetime
    title: str


class Contact(LimitedRecord):
    name: str
    phone: str


class Destination(LimitedRecord):
    name: str
    detail: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass(frozen=True)
class ReviewPromptState:
    """Persisted counters behind the review prompt decision."""

    launch_count: int = 0
    first_launch_date: Optional[datetime] = None
    last_prompt_date: Optional[datetime] = None
    prompt_count_this_year: int = 0
    last_prompt_year: int = 0
    prompt_disabled: bool = False

    def evolve(self, **changes) -> "ReviewPromptState":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "launch_count": self.launch_count,
            "first_launch_date": self.first_launch_date.isoformat() if self.first_launch_date else None,
            "last_prompt_date": self.last_prompt_date.isoformat() if self.last_prompt_date else None,
            "prompt_count_this_year": self.prompt_count_this_year,
            "last_prompt_year": self.last_prompt_year,
            "prompt_disabled": self.prompt_disabled,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> "ReviewPromptState":
        first = raw.get("first_launch_date")
        last = raw.get("last_prompt_date")
        return cls(
            launch_count=int(raw.get("launch_count", 0)),
            first_launch_date=datetime.fromisoformat(first) if first else None,
            last_prompt_date=datetime.fromisoformat(last) if last else None,
            prompt_count_this_year=int(raw.get("prompt_count_this_year", 0)),
            last_prompt_year=int(raw.get("last_prompt_year", 0)),
            prompt_disabled=bool(raw.get("prompt_disabled", False)),
        )
