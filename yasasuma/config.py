"""
Runtime configuration for the Yasasuma core.

Values come from the environment so that a device build, a staging build and
the test suite can point at different billing backends and storage.
"""

import os
from typing import Optional

# Persistence
REDIS_URL: Optional[str] = os.getenv("REDIS_URL") or None
KEY_PREFIX = os.getenv("YASASUMA_KEY_PREFIX", "yasasuma_")

# Billing collaborator
BILLING_API_URL = os.getenv("YASASUMA_BILLING_API_URL", "http://localhost:8080")
BILLING_API_KEY: Optional[str] = os.getenv("YASASUMA_BILLING_API_KEY") or None
BILLING_TIMEOUT_SECONDS = float(os.getenv("YASASUMA_BILLING_TIMEOUT_SECONDS", "30"))

# Store product identifiers for the two plans
MONTHLY_PRODUCT_ID = os.getenv("YASASUMA_MONTHLY_PRODUCT_ID", "yasasuma.premium.monthly")
YEARLY_PRODUCT_ID = os.getenv("YASASUMA_YEARLY_PRODUCT_ID", "yasasuma.premium.yearly")

# Free tier limits
FREE_CONTACT_LIMIT = 2
FREE_DESTINATION_LIMIT = 2
FREE_EVENTS_PER_DAY = 1

# Collections reaching this size trigger a review milestone
REVIEW_MILESTONE_RECORD_COUNT = 3

# Review prompt thresholds
REVIEW_MIN_DAYS_SINCE_FIRST_LAUNCH = 3
REVIEW_MIN_LAUNCH_COUNT = 3
REVIEW_MAX_PROMPTS_PER_YEAR = 4
REVIEW_MIN_DAYS_BETWEEN_PROMPTS = 30

# Passcode
PASSCODE_LENGTH = 4

# Sync worker
ENTITLEMENT_SYNC_INTERVAL_SECONDS = int(os.getenv("YASASUMA_ENTITLEMENT_SYNC_INTERVAL", "3600"))
ENTITLEMENT_STREAM_RETRY_SECONDS = float(os.getenv("YASASUMA_ENTITLEMENT_STREAM_RETRY_SECONDS", "30"))


def storage_key(name: str) -> str:
    """Return the namespaced key-value key for a stored blob."""
    return f"{KEY_PREFIX}{name}"
