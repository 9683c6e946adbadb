"""
Active Subscription Endpoint - POST /get-active-subscription

Reports whether the customer behind an email has an active Stripe
subscription. Unknown emails are reported inactive without calling Stripe.
"""

import logging
import time

from billing.subscription_query import resolve_active_subscription
from shared import stripe_client
from shared.errors import BillingError, ValidationError
from shared.logging_utils import configure_structured_logging, log_api_request, set_request_id
from shared.request_utils import get_origin, parse_json_body
from shared.response_utils import error_response, internal_error_response, success_response

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def handler(event, context):
    """
    Lambda handler for POST /get-active-subscription.

    Request body:
    {
        "email": "user@example.com"
    }

    Returns:
    {
        "isActive": true,
        "subscription": {...}
    }
    """
    configure_structured_logging()
    set_request_id(event, context)
    start_time = time.time()

    response = _handle(event)

    log_api_request(
        logger, "POST", "/get-active-subscription", response["statusCode"], (time.time() - start_time) * 1000
    )
    return response


def _handle(event) -> dict:
    origin = get_origin(event)

    try:
        body = parse_json_body(event)
    except ValidationError as e:
        return e.to_response(origin)

    email = body.get("email")
    if not email or not isinstance(email, str):
        return error_response(422, "missing_fields", 'Missing "email"', origin=origin)

    if not stripe_client.configure_stripe():
        return error_response(500, "stripe_not_configured", "Payment system not configured", origin=origin)

    try:
        status = resolve_active_subscription(email)
    except BillingError as e:
        logger.error(f"Active subscription lookup failed for {email}: {e}")
        return e.to_response(origin)
    except Exception as e:
        logger.error(f"Error resolving subscription for {email}: {e}", exc_info=True)
        return internal_error_response(origin=origin)

    return success_response(status.to_dict(), origin=origin)
