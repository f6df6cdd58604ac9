"""
Exception classes for receipt verification.

Every failure carries the environment that answered (None when Apple was
never reached) and the partial verification result.
"""
from typing import Any, Optional, Set

from app.payments.models import (
    AppleStatus,
    Environment,
    VerificationResult,
    status_message
)


class PaymentVerificationError(Exception):
    """Base exception for all receipt verification errors."""

    def __init__(
        self,
        message: str,
        result: Optional[VerificationResult] = None
    ) -> None:
        self.message = message
        self.result = result
        super().__init__(message)

    @property
    def environment(self) -> Optional[Environment]:
        return self.result.environment if self.result else None

    def tag(self, environment: Environment) -> None:
        """Record which environment produced this failure."""
        if self.result is None:
            self.result = VerificationResult()
        self.result.environment = environment


class AppStoreConnectionError(PaymentVerificationError):
    """
    Raised when an httpx request to Apple fails.

    Covers connection, DNS and timeout errors as well as responses that
    cannot be read. The httpx exception is kept as original.
    """

    def __init__(
        self,
        original: Exception,
        result: Optional[VerificationResult] = None
    ) -> None:
        self.original = original
        super().__init__(str(original) or type(original).__name__, result)


class HttpStatusError(PaymentVerificationError):
    """Raised when Apple answers with a non-200 HTTP status."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Received {status_code} status code with body: {body}")


class MalformedResponseError(PaymentVerificationError):
    """Raised when Apple's response body cannot be interpreted."""

    pass


class StatusError(PaymentVerificationError):
    """Raised when Apple reports a non-zero receipt status."""

    def __init__(self, status: int) -> None:
        self.status = status
        super().__init__(status_message(status))

    @property
    def is_environment_routing(self) -> bool:
        try:
            return AppleStatus(self.status).is_environment_routing
        except ValueError:
            return False


class ReconciliationError(PaymentVerificationError):
    """Raised when a verified receipt does not match the client's claim."""

    pass


class ProductMismatchError(ReconciliationError):
    """Raised when the claimed product ID is not on the receipt."""

    def __init__(
        self,
        expected: str,
        observed: Set[str],
        result: Optional[VerificationResult] = None
    ) -> None:
        self.expected = expected
        self.observed = observed
        super().__init__(
            f"Wrong product ID: {expected} (expected one of: {sorted(observed)})",
            result
        )


class BundleMismatchError(ReconciliationError):
    """Raised when the claimed bundle ID differs from the receipt's."""

    def __init__(
        self,
        expected: str,
        observed: Any,
        result: Optional[VerificationResult] = None
    ) -> None:
        self.expected = expected
        self.observed = observed
        super().__init__(
            f"Wrong bundle ID: {expected} (expected: {observed})",
            result
        )
