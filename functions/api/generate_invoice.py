"""
Generate Invoice Endpoint - POST /generate-invoice

Creates and finalizes a one-off send_invoice invoice for a known customer.
"""

import logging
import time

import stripe
from botocore.exceptions import ClientError

from shared import stripe_client
from shared.constants import MIN_INVOICE_AMOUNT
from shared.errors import ValidationError
from shared.logging_utils import configure_structured_logging, log_api_request, set_request_id
from shared.request_utils import get_origin, parse_json_body
from shared.response_utils import error_response, internal_error_response, success_response
from shared.subscription_store import SubscriptionStore
from shared.validation import is_valid_email

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def handler(event, context):
    """
    Lambda handler for POST /generate-invoice.

    Request body:
    {
        "email": "user@example.com",
        "invoiceAmount": 1500        // cents, >= 50
    }

    Returns:
    {
        "invoice": {...}
    }
    """
    configure_structured_logging()
    set_request_id(event, context)
    start_time = time.time()

    response = _handle(event)

    log_api_request(logger, "POST", "/generate-invoice", response["statusCode"], (time.time() - start_time) * 1000)
    return response


def _handle(event) -> dict:
    origin = get_origin(event)

    try:
        body = parse_json_body(event)
    except ValidationError as e:
        return e.to_response(origin)

    email = body.get("email")
    amount = body.get("invoiceAmount")

    if not email or amount is None:
        return error_response(422, "missing_fields", 'Missing "email" or "invoiceAmount"', origin=origin)

    if not is_valid_email(email):
        return error_response(422, "invalid_email", f'Invalid email "{email}"', origin=origin)

    # bool is an int subclass; reject it explicitly
    if not isinstance(amount, int) or isinstance(amount, bool) or amount < MIN_INVOICE_AMOUNT:
        return error_response(
            422,
            "invalid_invoice_amount",
            f'"invoiceAmount" must be an integer number of cents >= {MIN_INVOICE_AMOUNT}',
            origin=origin,
        )

    if not stripe_client.configure_stripe():
        return error_response(500, "stripe_not_configured", "Payment system not configured", origin=origin)

    try:
        record = SubscriptionStore().find_one(email=email)
        if not record:
            return error_response(422, "customer_not_found", f'Email does not exist "{email}"', origin=origin)

        invoice = stripe_client.create_invoice(record["customer_id"], amount)

    except stripe.StripeError as e:
        logger.error(f"Stripe error generating invoice for {email}: {e}")
        return internal_error_response(origin=origin)
    except ClientError as e:
        logger.error(f"DynamoDB error generating invoice for {email}: {e}")
        return internal_error_response(origin=origin)
    except Exception as e:
        logger.error(f"Error generating invoice for {email}: {e}", exc_info=True)
        return internal_error_response(origin=origin)

    logger.info(f"Generated invoice {invoice['id']} for {record['customer_id']}")
    return success_response({"invoice": invoice}, origin=origin)
