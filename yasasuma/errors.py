"""
Error hierarchy for the Yasasuma core.

Provides:
- PurchaseError: base for billing failures surfaced to the paywall
- VerificationFailedError: store could not verify a transaction (retry later)
- ProductNotFoundError: plan's product id missing from the catalog (config bug)
- BillingUnavailableError: billing collaborator could not be reached
- RecordError / DuplicateRecordError: collection invariant violations
- InvalidPasscodeError: passcode settings rejected on save

None of these are fatal: callers leave state unchanged and inform the user.
"""

from typing import Optional


class YasasumaError(Exception):
    """Base exception for core failures."""

    error_code = "YASASUMA_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.error_code, "message": self.message}


class PurchaseError(YasasumaError):
    """Base for purchase, restore and entitlement refresh failures."""

    error_code = "PURCHASE_FAILED"
    user_message = "購入できませんでした。しばらくしてからもう一度おためしください。"

    def __init__(self, message: str, product_id: Optional[str] = None):
        self.product_id = product_id
        super().__init__(message)

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["user_message"] = self.user_message
        if self.product_id is not None:
            d["product_id"] = self.product_id
        return d


class VerificationFailedError(PurchaseError):
    """The store's verification of a transaction failed."""

    error_code = "VERIFICATION_FAILED"
    user_message = "購入を確認できませんでした。しばらくしてからもう一度おためしください。"


class ProductNotFoundError(PurchaseError):
    """The plan's product id is absent from the billing catalog."""

    error_code = "PRODUCT_NOT_FOUND"
    user_message = "商品が見つかりませんでした。アプリを再起動してからおためしください。"


class BillingUnavailableError(PurchaseError):
    """The billing collaborator failed or could not be reached."""

    error_code = "BILLING_UNAVAILABLE"


class RecordError(YasasumaError):
    """Base for record collection failures."""

    error_code = "RECORD_ERROR"


class DuplicateRecordError(RecordError):
    """Raised when a record id is already present in its collection."""

    error_code = "DUPLICATE_RECORD"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"record {record_id} already exists")


class InvalidPasscodeError(YasasumaError):
    """Raised when a passcode to save is not exactly four digits."""

    error_code = "INVALID_PASSCODE"

    def __init__(self, message: str = "passcode must be exactly 4 digits"):
        super().__init__(message)
