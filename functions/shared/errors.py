"""
Error taxonomy for billing operations and their API responses.
"""

from typing import Optional


class BillingError(Exception):
    """Base class for billing errors surfaced to API callers."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 422,
        details: Optional[dict] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_response(self, origin: Optional[str] = None) -> dict:
        """Convert to API Gateway response format."""
        from .response_utils import error_response

        return error_response(self.status_code, self.code, self.message, origin=origin)


class ValidationError(BillingError):
    """Raised for malformed or missing caller input."""

    def __init__(self, message: str, code: str = "invalid_request", details: Optional[dict] = None):
        super().__init__(code=code, message=message, status_code=422, details=details)


class CustomerNotFoundError(BillingError):
    """Raised when an email has no local subscription record."""

    def __init__(self, email: str):
        super().__init__(
            code="customer_not_found",
            message=f'Email does not exist "{email}"',
            status_code=422,
            details={"email": email},
        )


class UpstreamError(BillingError):
    """Raised when Stripe or DynamoDB fails on a caller-facing path.

    The response never carries the upstream detail; it is kept on the
    exception for logging only.
    """

    def __init__(self, service: str, detail: str = ""):
        super().__init__(
            code="internal_error",
            message="Internal Server Error",
            status_code=500,
            details={"service": service},
        )
        self.service = service
        self.detail = detail

    def __str__(self) -> str:
        return f"{self.service} failure: {self.detail}" if self.detail else f"{self.service} failure"


class DuplicateRecordError(Exception):
    """Raised when a write would violate email or customer uniqueness."""

    def __init__(self, email: Optional[str] = None, customer_id: Optional[str] = None):
        self.email = email
        self.customer_id = customer_id
        super().__init__(
            f"Subscription record already exists (email={email!r}, customer_id={customer_id!r})"
        )


class PlanStateError(ValueError):
    """Raised when a write touches only part of the plan-state group."""


class WebhookVerificationError(Exception):
    """Raised when an inbound webhook fails signature checks."""
