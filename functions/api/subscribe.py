"""
Subscribe Endpoint - POST /subscribe

Creates a Stripe customer, attaches a test payment method and subscribes the
customer to the first recurring price. The local record is written later by
the customer.created / customer.subscription.created webhooks.
"""

import logging
import time

import stripe
from botocore.exceptions import ClientError

from shared import stripe_client
from shared.constants import SUBSCRIBE_PRICE_TYPE
from shared.errors import ValidationError
from shared.logging_utils import configure_structured_logging, log_api_request, set_request_id
from shared.request_utils import get_origin, parse_json_body
from shared.response_utils import error_response, internal_error_response, success_response
from shared.subscription_store import SubscriptionStore
from shared.validation import is_valid_email, normalize_email

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def handler(event, context):
    """
    Lambda handler for POST /subscribe.

    Request body:
    {
        "email": "user@example.com",
        "name": "Jane Doe"
    }

    Returns:
    {
        "customer": {...},
        "subscription": {...},
        "paymentMethod": {...}
    }
    """
    configure_structured_logging()
    set_request_id(event, context)
    start_time = time.time()

    response = _handle(event)

    log_api_request(logger, "POST", "/subscribe", response["statusCode"], (time.time() - start_time) * 1000)
    return response


def _handle(event) -> dict:
    origin = get_origin(event)

    try:
        body = parse_json_body(event)
    except ValidationError as e:
        return e.to_response(origin)

    email = body.get("email")
    name = body.get("name")

    if not email or not name:
        return error_response(422, "missing_fields", 'Missing "email" or "name"', origin=origin)

    if not is_valid_email(email):
        return error_response(422, "invalid_email", f'Invalid email "{email}"', origin=origin)

    email = normalize_email(email)

    if not stripe_client.configure_stripe():
        return error_response(500, "stripe_not_configured", "Payment system not configured", origin=origin)

    try:
        if SubscriptionStore().find_one(email=email):
            logger.warning(f"Subscribe rejected, email {email} already exists")
            return error_response(422, "email_exists", f'Email "{email}" already exists', origin=origin)

        prices = stripe_client.list_prices(SUBSCRIBE_PRICE_TYPE)
        if not prices:
            logger.error("No recurring price available to subscribe to")
            return internal_error_response(origin=origin)

        price = prices[0]
        customer = stripe_client.create_customer(name, email)
        # Test-mode card so the subscription can be charged
        payment_method = stripe_client.attach_test_payment_method(customer["id"])
        subscription = stripe_client.create_subscription(customer["id"], price["id"])

    except stripe.StripeError as e:
        logger.error(f"Stripe error subscribing {email}: {e}")
        return internal_error_response(origin=origin)
    except ClientError as e:
        logger.error(f"DynamoDB error subscribing {email}: {e}")
        return internal_error_response(origin=origin)
    except Exception as e:
        logger.error(f"Error subscribing {email}: {e}", exc_info=True)
        return internal_error_response(origin=origin)

    logger.info(f"Subscribed customer {customer['id']} to price {price['id']}")

    return success_response(
        {
            "customer": customer,
            "subscription": subscription,
            "paymentMethod": payment_method,
        },
        origin=origin,
    )
