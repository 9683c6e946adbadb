"""
Pay Invoices Endpoint - POST /pay-invoices

Pays a customer's open invoices created (or due) within a date window, one
at a time in Stripe's pagination order.
"""

import logging
import time

from billing.invoice_settlement import settle_invoices
from shared import stripe_client
from shared.constants import SEARCH_STRATEGIES
from shared.errors import BillingError, ValidationError
from shared.logging_utils import configure_structured_logging, log_api_request, set_request_id
from shared.request_utils import get_origin, parse_json_body
from shared.response_utils import error_response, internal_error_response, success_response
from shared.validation import is_valid_date, is_valid_email, parse_iso_timestamp

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def handler(event, context):
    """
    Lambda handler for POST /pay-invoices.

    Request body:
    {
        "email": "user@example.com",
        "startDate": "2023-02-01T00:00:00Z",
        "endDate": "2023-02-15T00:00:00Z",
        "searchStrategy": "created"      // or "due_date"
    }

    Returns:
    {
        "total": 2,
        "paidInvoices": [...],
        "failedInvoices": [{"invoice_id": "in_...", "error": "..."}]
    }
    """
    configure_structured_logging()
    set_request_id(event, context)
    start_time = time.time()

    response = _handle(event)

    log_api_request(logger, "POST", "/pay-invoices", response["statusCode"], (time.time() - start_time) * 1000)
    return response


def _handle(event) -> dict:
    origin = get_origin(event)

    try:
        body = parse_json_body(event)
    except ValidationError as e:
        return e.to_response(origin)

    email = body.get("email")
    start_date = body.get("startDate")
    end_date = body.get("endDate")
    strategy = body.get("searchStrategy")

    if not email or not start_date or not end_date or not strategy:
        return error_response(
            422,
            "missing_fields",
            'Missing "email", "startDate", "endDate" or "searchStrategy"',
            origin=origin,
        )

    if not is_valid_email(email):
        return error_response(422, "invalid_email", f'Invalid email "{email}"', origin=origin)

    if not is_valid_date(start_date) or not is_valid_date(end_date):
        return error_response(
            422,
            "invalid_date",
            'Invalid "startDate" or "endDate". example date "2023-02-15T00:00:00Z"',
            origin=origin,
        )

    if strategy not in SEARCH_STRATEGIES:
        return error_response(
            422,
            "invalid_search_strategy",
            f'Supplied strategy "{strategy}" must be one of "{", ".join(SEARCH_STRATEGIES)}"',
            origin=origin,
        )

    start = parse_iso_timestamp(start_date)
    end = parse_iso_timestamp(end_date)
    if start > end:
        return error_response(
            422, "invalid_date_range", '"startDate" must not be after "endDate"', origin=origin
        )

    if not stripe_client.configure_stripe():
        return error_response(500, "stripe_not_configured", "Payment system not configured", origin=origin)

    try:
        result = settle_invoices(email, start, end, strategy)
    except BillingError as e:
        if e.status_code >= 500:
            logger.error(f"Invoice settlement failed for {email}: {e}")
        return e.to_response(origin)
    except Exception as e:
        logger.error(f"Error settling invoices for {email}: {e}", exc_info=True)
        return internal_error_response(origin=origin)

    return success_response(result.to_dict(), origin=origin)
