"""
Apple App Store receipt verification.

Uses Apple's verifyReceipt endpoint with automatic sandbox fallback.
"""
import httpx
import structlog
from pydantic import ValidationError
from typing import Optional, Dict, Any

from app.payments.exceptions import (
    AppStoreConnectionError,
    HttpStatusError,
    MalformedResponseError,
    PaymentVerificationError,
    StatusError
)
from app.payments.models import (
    APPLE_STATUS_OK,
    AppleStatus,
    AppleVerificationResponse,
    Environment,
    ReceiptField,
    VerificationResult
)
from app.payments.verifiers.receipt_fields import get_field
from app.config import settings


logger = structlog.get_logger()


def parse_result(body: str) -> VerificationResult:
    """
    Interpret a verifyReceipt response body.

    Args:
        body: Raw JSON body returned by Apple

    Returns:
        VerificationResult without an environment tag

    Raises:
        StatusError: If Apple reported a non-zero status
        MalformedResponseError: If the body cannot be interpreted
    """
    try:
        response = AppleVerificationResponse.model_validate_json(body)
    except ValidationError as e:
        raise MalformedResponseError(f"Unable to read Apple response: {e}") from e

    if response.status != APPLE_STATUS_OK:
        raise StatusError(response.status)

    if response.receipt is None:
        raise MalformedResponseError("Apple response has no receipt")

    product_id = get_field(response.receipt, ReceiptField.PRODUCT_ID)
    transaction_id = get_field(response.receipt, ReceiptField.TRANSACTION_ID)
    latest_receipt_info = None

    # Subscription renewals: the highest transaction ID is authoritative
    if response.latest_receipt_info:
        try:
            latest_receipt_info = sorted(
                response.latest_receipt_info,
                key=lambda transaction: int(str(transaction.transaction_id))
            )
        except (TypeError, ValueError) as e:
            raise MalformedResponseError(
                f"Invalid transaction_id in latest_receipt_info: {e}"
            ) from e

        latest = latest_receipt_info[-1]
        product_id = latest.product_id
        transaction_id = latest.transaction_id

    return VerificationResult(
        receipt=response.receipt,
        latest_receipt_info=latest_receipt_info,
        product_id=product_id,
        transaction_id=transaction_id
    )


class AppleReceiptVerifier:
    """
    Verifies Apple App Store receipts.

    Tries production first and falls back to sandbox once when Apple
    reports a sandbox receipt.
    """

    def __init__(
        self,
        production_url: Optional[str] = None,
        sandbox_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize Apple receipt verifier.

        Args:
            production_url: Production verifyReceipt URL
            sandbox_url: Sandbox verifyReceipt URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.production_url = production_url or settings.apple_production_url
        self.sandbox_url = sandbox_url or settings.apple_sandbox_url
        self.timeout = timeout if timeout is not None else settings.apple_request_timeout
        self.transport = transport

    async def verify(self, url: str, payload: Dict[str, Any]) -> VerificationResult:
        """
        Call one Apple verification endpoint.

        Args:
            url: Apple verification URL (production or sandbox)
            payload: JSON request body

        Returns:
            VerificationResult

        Raises:
            httpx.RequestError: If Apple could not be reached or the
                response could not be read
            HttpStatusError: If Apple answered with a non-200 status
            StatusError: If Apple rejected the receipt
        """
        async with httpx.AsyncClient(transport=self.transport) as client:
            response = await client.post(
                url,
                json=payload,
                timeout=self.timeout
            )

        if response.status_code != 200:
            logger.warning(
                "apple_receipt_http_error",
                url=url,
                status_code=response.status_code
            )
            raise HttpStatusError(response.status_code, response.text)

        return parse_result(response.text)

    async def verify_across_environments(
        self,
        payload: Dict[str, Any]
    ) -> VerificationResult:
        """
        Verify a receipt against production, then sandbox if needed.

        Args:
            payload: JSON request body

        Returns:
            VerificationResult tagged with the environment that answered

        Raises:
            PaymentVerificationError: Tagged with the environment that failed.
                httpx request failures are raised as AppStoreConnectionError
                with the httpx exception as original and __cause__
        """
        environment = Environment.PRODUCTION

        try:
            try:
                result = await self.verify(self.production_url, payload)
            except StatusError as e:
                if e.status != AppleStatus.SANDBOX_RECEIPT:
                    raise

                logger.info("apple_receipt_is_sandbox_retrying")
                environment = Environment.SANDBOX
                result = await self.verify(self.sandbox_url, payload)

        except PaymentVerificationError as e:
            e.tag(environment)
            logger.warning(
                "apple_receipt_verification_failed",
                environment=environment.value,
                error_type=type(e).__name__,
                status=getattr(e, "status", None)
            )
            raise

        except httpx.RequestError as e:
            error = AppStoreConnectionError(e)
            error.tag(environment)
            logger.error(
                "apple_receipt_connection_error",
                environment=environment.value,
                error=str(e)
            )
            raise error from e

        result.environment = environment

        logger.info(
            "apple_receipt_verified",
            environment=environment.value,
            product_id=result.product_id,
            transaction_id=result.transaction_id
        )

        return result
