"""
Payment verification models and schemas.

Handles App Store receipt verification requests, Apple responses and
the normalized verification result.
"""
from pydantic import BaseModel, ConfigDict, Field, StrictStr
from typing import Optional, List, Dict, Any
from enum import Enum, IntEnum


# ========== Enums ==========

class Environment(str, Enum):
    """Apple verification environment that answered a request."""
    PRODUCTION = "production"
    SANDBOX = "sandbox"


class VerificationStatus(str, Enum):
    """Receipt verification status reported by the API."""
    VERIFIED = "verified"
    INVALID = "invalid"
    ERROR = "error"


class ReceiptField(str, Enum):
    """Receipt and transaction fields the verifier knows how to read."""
    PRODUCT_ID = "product_id"
    TRANSACTION_ID = "transaction_id"
    BID = "bid"
    BUNDLE_ID = "bundle_id"


# Apple returns 0 for a valid receipt
APPLE_STATUS_OK = 0


class AppleStatus(IntEnum):
    """Non-zero status codes documented for the verifyReceipt endpoint."""
    INVALID_JSON = 21000
    MALFORMED_RECEIPT_DATA = 21002
    NOT_AUTHENTICATED = 21003
    SHARED_SECRET_MISMATCH = 21004
    SERVER_UNAVAILABLE = 21005
    SUBSCRIPTION_EXPIRED = 21006
    SANDBOX_RECEIPT = 21007
    PRODUCTION_RECEIPT = 21008

    @property
    def message(self) -> str:
        return APPLE_STATUS_MESSAGES[self]

    @property
    def is_environment_routing(self) -> bool:
        """True when the receipt was sent to the wrong environment."""
        return self in (AppleStatus.SANDBOX_RECEIPT, AppleStatus.PRODUCTION_RECEIPT)


APPLE_STATUS_MESSAGES: Dict[AppleStatus, str] = {
    AppleStatus.INVALID_JSON: (
        "The App Store could not read the JSON object you provided."
    ),
    AppleStatus.MALFORMED_RECEIPT_DATA: (
        "The data in the receipt-data property was malformed or missing."
    ),
    AppleStatus.NOT_AUTHENTICATED: (
        "The receipt could not be authenticated."
    ),
    AppleStatus.SHARED_SECRET_MISMATCH: (
        "The shared secret you provided does not match the shared secret "
        "on file for your account."
    ),
    AppleStatus.SERVER_UNAVAILABLE: (
        "The receipt server is not currently available."
    ),
    AppleStatus.SUBSCRIPTION_EXPIRED: (
        "This receipt is valid but the subscription has expired. When this "
        "status code is returned to your server, the receipt data is also "
        "decoded and returned as part of the response."
    ),
    AppleStatus.SANDBOX_RECEIPT: (
        "This receipt is from the test environment, but it was sent to the "
        "production service for verification. Send it to the test "
        "environment service instead."
    ),
    AppleStatus.PRODUCTION_RECEIPT: (
        "This receipt is from the production receipt, but it was sent to the "
        "test environment service for verification. Send it to the "
        "production environment service instead."
    ),
}


def status_message(status: int) -> str:
    """Human readable message for an Apple status code."""
    try:
        return AppleStatus(status).message
    except ValueError:
        return f"Unknown status code: {status}"


# ========== Apple Receipt Models ==========

class Transaction(BaseModel):
    """
    One purchase event from a receipt's in_app or latest_receipt_info list.

    Values are kept as Apple sent them; lookups skip the ones that are not
    strings.
    """
    model_config = ConfigDict(extra="allow", frozen=True)

    product_id: Optional[Any] = None
    transaction_id: Optional[Any] = None
    bid: Optional[Any] = None
    bundle_id: Optional[Any] = None


class Receipt(BaseModel):
    """
    Receipt decoded by Apple.

    Single purchases carry their fields at the top level, subscription
    receipts carry them on the in_app transactions instead.
    """
    model_config = ConfigDict(extra="allow")

    product_id: Optional[Any] = None
    transaction_id: Optional[Any] = None
    bid: Optional[Any] = None
    bundle_id: Optional[Any] = None
    in_app: Optional[List[Optional[Transaction]]] = None


class AppleVerificationResponse(BaseModel):
    """Apple verifyReceipt response body."""
    status: int
    receipt: Optional[Receipt] = None
    latest_receipt_info: Optional[List[Transaction]] = None


# ========== Verification Request ==========

class PaymentClaim(BaseModel):
    """Purchase asserted by a client, to be checked against Apple."""
    receipt: StrictStr = Field(
        description="Raw or base64-encoded App Store receipt"
    )
    secret: Optional[StrictStr] = Field(
        default=None,
        description="Shared secret for auto-renewable subscriptions"
    )
    product_id: Optional[StrictStr] = Field(
        default=None,
        description="Product ID the client claims to have bought"
    )
    package_name: Optional[StrictStr] = Field(
        default=None,
        description="Bundle ID the client claims the receipt belongs to"
    )


# ========== Verification Result ==========

class VerificationResult(BaseModel):
    """Normalized outcome of a receipt verification."""
    receipt: Optional[Receipt] = None
    latest_receipt_info: Optional[List[Transaction]] = None
    product_id: Optional[Any] = None
    transaction_id: Optional[Any] = None
    environment: Optional[Environment] = None


class VerifyPaymentResponse(BaseModel):
    """Response from the payment verification endpoint."""
    status: VerificationStatus
    message: str
    environment: Optional[Environment] = None
    product_id: Optional[str] = None
    transaction_id: Optional[str] = None
    apple_status: Optional[int] = None
