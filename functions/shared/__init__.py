# Shared utilities package
from .errors import (
    BillingError,
    CustomerNotFoundError,
    DuplicateRecordError,
    PlanStateError,
    UpstreamError,
    ValidationError,
)
from .response_utils import error_response, success_response

__all__ = [
    "BillingError",
    "CustomerNotFoundError",
    "DuplicateRecordError",
    "PlanStateError",
    "UpstreamError",
    "ValidationError",
    "error_response",
    "success_response",
]
