"""
Payment verification service.

Verifies App Store receipts and checks them against what the client
claims to have bought.
"""
import base64
import re
import structlog
from typing import Optional, Dict, Any

from app.payments.exceptions import (
    BundleMismatchError,
    PaymentVerificationError,
    ProductMismatchError,
    ReconciliationError,
    StatusError
)
from app.payments.models import (
    PaymentClaim,
    ReceiptField,
    VerificationResult,
    VerificationStatus,
    VerifyPaymentResponse
)
from app.payments.verifiers.apple_verifier import AppleReceiptVerifier
from app.payments.verifiers.receipt_fields import get_field, get_field_value_set
from app.config import settings


logger = structlog.get_logger()


BASE64_LIKE = re.compile(r"^[a-zA-Z0-9/+]+={0,2}$")


def is_base64_like(value: str) -> bool:
    """Check whether a receipt already looks base64-encoded."""
    return BASE64_LIKE.match(value) is not None


def encode_receipt(receipt: str) -> str:
    """Base64-encode a raw receipt, leaving encoded ones untouched."""
    if is_base64_like(receipt):
        return receipt
    return base64.b64encode(receipt.encode("utf-8")).decode("ascii")


def _as_text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def build_request_body(claim: PaymentClaim) -> Dict[str, Any]:
    """
    Build the verifyReceipt request body for a claim.

    Args:
        claim: Purchase claim from the client

    Returns:
        JSON body with receipt-data and, if any, the shared secret
    """
    payload = {"receipt-data": encode_receipt(claim.receipt)}

    secret = claim.secret if claim.secret is not None else settings.apple_shared_secret
    if secret is not None:
        payload["password"] = secret

    return payload


class PaymentService:
    """
    Service for verifying App Store purchase claims.

    Receipts are verified by Apple, then the product and bundle IDs the
    client claims are checked against the verified receipt.
    """

    def __init__(self, apple_verifier: Optional[AppleReceiptVerifier] = None):
        """
        Initialize payment service.

        Args:
            apple_verifier: Apple receipt verifier
        """
        self.apple_verifier = apple_verifier or AppleReceiptVerifier()

    async def verify_payment(self, claim: PaymentClaim) -> VerificationResult:
        """
        Verify a purchase claim.

        Args:
            claim: Purchase claim from the client

        Returns:
            VerificationResult tagged with the environment that answered

        Raises:
            PaymentVerificationError: If Apple rejects the receipt or the
                receipt does not match the claim. httpx failures are not
                raised as-is: they arrive as AppStoreConnectionError, with
                the httpx exception as original and __cause__
        """
        payload = build_request_body(claim)
        result = await self.apple_verifier.verify_across_environments(payload)
        self._reconcile(claim, result)
        return result

    def _reconcile(self, claim: PaymentClaim, result: VerificationResult) -> None:
        """
        Check the claim against the verified receipt.

        Args:
            claim: Purchase claim from the client
            result: Verified receipt

        Raises:
            ProductMismatchError: If the claimed product is not on the receipt
            BundleMismatchError: If the claimed bundle ID differs
        """
        receipt = result.receipt

        if claim.product_id is not None:
            product_ids = get_field_value_set(receipt, ReceiptField.PRODUCT_ID)
            if claim.product_id not in product_ids:
                logger.warning(
                    "payment_claim_product_mismatch",
                    environment=result.environment.value,
                    product_id=claim.product_id,
                    receipt_product_ids=sorted(product_ids)
                )
                raise ProductMismatchError(claim.product_id, product_ids, result)

        # Apple has used both names for the bundle ID
        bundle_id = get_field(receipt, ReceiptField.BID)
        if bundle_id is None:
            bundle_id = get_field(receipt, ReceiptField.BUNDLE_ID)

        if claim.package_name is not None and claim.package_name != bundle_id:
            logger.warning(
                "payment_claim_bundle_mismatch",
                environment=result.environment.value,
                package_name=claim.package_name,
                receipt_bundle_id=bundle_id
            )
            raise BundleMismatchError(claim.package_name, bundle_id, result)

    async def verify_and_describe(self, claim: PaymentClaim) -> VerifyPaymentResponse:
        """
        Verify a purchase claim and describe the outcome for API clients.

        Args:
            claim: Purchase claim from the client

        Returns:
            VerifyPaymentResponse with verification status
        """
        try:
            result = await self.verify_payment(claim)

        except PaymentVerificationError as e:
            status = e.status if isinstance(e, StatusError) else None
            rejected = isinstance(e, (StatusError, ReconciliationError))
            result = e.result or VerificationResult()

            return VerifyPaymentResponse(
                status=VerificationStatus.INVALID if rejected else VerificationStatus.ERROR,
                message=e.message,
                environment=e.environment,
                product_id=_as_text(result.product_id),
                transaction_id=_as_text(result.transaction_id),
                apple_status=status
            )

        return VerifyPaymentResponse(
            status=VerificationStatus.VERIFIED,
            message="Purchase verified",
            environment=result.environment,
            product_id=_as_text(result.product_id),
            transaction_id=_as_text(result.transaction_id)
        )
