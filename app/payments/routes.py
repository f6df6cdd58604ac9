"""
Payment verification API routes.

Handles App Store receipt verification for backend clients.
"""
from fastapi import APIRouter, Depends
import structlog

from app.payments.models import PaymentClaim, VerifyPaymentResponse
from app.payments.service import PaymentService


logger = structlog.get_logger()
router = APIRouter(prefix="/payments", tags=["payments"])


def get_payment_service() -> PaymentService:
    """Dependency to get payment service."""
    return PaymentService()


# ========== Receipt Verification ==========

@router.post("/apple/verify", response_model=VerifyPaymentResponse)
async def verify_apple_payment(
    claim: PaymentClaim,
    payment_service: PaymentService = Depends(get_payment_service)
):
    """
    Verify an App Store receipt against a purchase claim.

    **Flow:**
    1. Receipt is sent to Apple's production verifyReceipt endpoint
    2. Sandbox receipts (status 21007) are retried against sandbox
    3. Claimed product ID must appear on the verified receipt
    4. Claimed package name must equal the receipt's bundle ID

    **Responses:**
    - 200 with status "verified": Receipt is authentic and matches the claim
    - 200 with status "invalid": Apple rejected the receipt or it does not
      match the claim
    - 200 with status "error": Apple could not be reached or answered badly
    - 422: Invalid request
    """
    result = await payment_service.verify_and_describe(claim)

    logger.info(
        "payment_verification_attempt",
        product_id=claim.product_id,
        package_name=claim.package_name,
        status=result.status.value,
        environment=result.environment.value if result.environment else None
    )

    return result
