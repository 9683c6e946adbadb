"""
Thin wrapper over the Stripe SDK.

Every outbound call goes through ``_call`` so latency and failures land in
the structured logs. Stripe errors propagate to the caller unchanged;
callers decide whether they are contained (webhook handlers) or surfaced
(API endpoints).
"""

import json
import logging
import os
import time
from typing import Iterator, Optional

import stripe

from .aws_clients import get_secretsmanager
from .constants import (
    INVOICE_CURRENCY,
    INVOICE_DAYS_UNTIL_DUE,
    SEARCH_STRATEGIES,
    SECRETS_CACHE_TTL,
    SUBSCRIBE_PRICE_TYPE,
)
from .errors import WebhookVerificationError
from .logging_utils import log_external_call

logger = logging.getLogger(__name__)

STRIPE_SECRET_ARN = os.environ.get("STRIPE_SECRET_ARN")
STRIPE_WEBHOOK_SECRET_ARN = os.environ.get("STRIPE_WEBHOOK_SECRET_ARN")

# Cached secrets with TTL
_api_key_cache: Optional[str] = None
_api_key_cache_time = 0.0
_webhook_secret_cache: Optional[str] = None
_webhook_secret_cache_time = 0.0


def _read_secret(secret_arn: str, json_field: str) -> Optional[str]:
    """Read a secret stored either as JSON ``{json_field: ...}`` or a raw string."""
    try:
        response = get_secretsmanager().get_secret_value(SecretId=secret_arn)
    except Exception as e:
        logger.error(f"Failed to retrieve secret {secret_arn}: {e}")
        return None

    secret_value = response.get("SecretString", "")
    try:
        secret_json = json.loads(secret_value)
    except json.JSONDecodeError:
        return secret_value or None

    if isinstance(secret_json, dict):
        return secret_json.get(json_field) or None
    return secret_value or None


def get_stripe_api_key() -> Optional[str]:
    """Retrieve the Stripe API key (Secrets Manager, cached; env fallback)."""
    global _api_key_cache, _api_key_cache_time

    if _api_key_cache and (time.time() - _api_key_cache_time) < SECRETS_CACHE_TTL:
        return _api_key_cache

    if not STRIPE_SECRET_ARN:
        return os.environ.get("STRIPE_API_KEY") or None

    api_key = _read_secret(STRIPE_SECRET_ARN, "key")
    if api_key:
        _api_key_cache = api_key
        _api_key_cache_time = time.time()
    return api_key


def get_webhook_secret() -> Optional[str]:
    """Retrieve the webhook signing secret (cached). None when unconfigured."""
    global _webhook_secret_cache, _webhook_secret_cache_time

    if _webhook_secret_cache and (time.time() - _webhook_secret_cache_time) < SECRETS_CACHE_TTL:
        return _webhook_secret_cache

    if not STRIPE_WEBHOOK_SECRET_ARN:
        return None

    secret = _read_secret(STRIPE_WEBHOOK_SECRET_ARN, "secret")
    if secret:
        _webhook_secret_cache = secret
        _webhook_secret_cache_time = time.time()
    return secret


def reset_secret_cache() -> None:
    """Clear cached secrets. Used in tests."""
    global _api_key_cache, _api_key_cache_time, _webhook_secret_cache, _webhook_secret_cache_time
    _api_key_cache = None
    _api_key_cache_time = 0.0
    _webhook_secret_cache = None
    _webhook_secret_cache_time = 0.0


def configure_stripe() -> bool:
    """Set ``stripe.api_key``. Returns False when no key is available."""
    api_key = get_stripe_api_key()
    if not api_key:
        logger.error("Stripe API key not configured")
        return False
    stripe.api_key = api_key
    return True


def _call(operation: str, func, *args, **kwargs):
    start = time.time()
    try:
        result = func(*args, **kwargs)
    except stripe.StripeError as e:
        latency_ms = (time.time() - start) * 1000
        log_external_call(logger, "stripe", operation, False, latency_ms, error=str(e))
        raise
    log_external_call(logger, "stripe", operation, True, (time.time() - start) * 1000)
    return result


# ===========================================
# Customers
# ===========================================


def create_customer(name: str, email: str):
    logger.info(f"Creating Stripe customer with email {email}")
    return _call("customer.create", stripe.Customer.create, name=name, email=email)


def update_customer(customer_id: str, **fields):
    return _call("customer.modify", stripe.Customer.modify, customer_id, **fields)


def retrieve_customer(customer_id: str):
    return _call("customer.retrieve", stripe.Customer.retrieve, customer_id)


# ===========================================
# Subscriptions
# ===========================================


def create_subscription(customer_id: str, price_id: str):
    """Subscribe a customer (with a default payment method) to a price."""
    logger.info(f"Creating Stripe subscription for customer {customer_id}")
    return _call(
        "subscription.create",
        stripe.Subscription.create,
        customer=customer_id,
        items=[{"price": price_id}],
        expand=["latest_invoice.payment_intent"],
    )


def retrieve_subscription(subscription_id: str):
    return _call("subscription.retrieve", stripe.Subscription.retrieve, subscription_id)


def get_active_subscription(customer_id: str):
    """Return the customer's first active subscription, or None."""
    result = _call(
        "subscription.list",
        stripe.Subscription.list,
        customer=customer_id,
        status="active",
        limit=1,
    )
    data = result["data"]
    return data[0] if data else None


# ===========================================
# Catalogue
# ===========================================


def list_prices(price_type: str = SUBSCRIBE_PRICE_TYPE) -> list:
    # First page only; the catalogue is small
    return _call("price.list", stripe.Price.list, type=price_type)["data"]


def list_products() -> list:
    return _call("product.list", stripe.Product.list)["data"]


def get_product(product_id: str):
    """Default product resolver for subscription reconciliation."""
    return _call("product.retrieve", stripe.Product.retrieve, product_id)


def get_plan_by_price_id(price_id: str):
    return _call("plan.retrieve", stripe.Plan.retrieve, price_id)


def attach_test_payment_method(customer_id: str):
    """
    Attach Stripe's test Visa card to a customer and make it the default.

    Only meaningful against test-mode keys.
    """
    logger.info(f"Attaching test payment method to customer {customer_id}")
    payment_method = _call(
        "payment_method.create",
        stripe.PaymentMethod.create,
        type="card",
        card={"token": "tok_visa"},
    )
    _call("payment_method.attach", stripe.PaymentMethod.attach, payment_method["id"], customer=customer_id)
    _call(
        "customer.modify",
        stripe.Customer.modify,
        customer_id,
        invoice_settings={"default_payment_method": payment_method["id"]},
    )
    return payment_method


# ===========================================
# Invoices
# ===========================================


def create_invoice(customer_id: str, amount: int):
    """
    Create, itemise and finalize a send_invoice invoice.

    Args:
        customer_id: Stripe customer id
        amount: Amount in cents (100 = $1)

    Returns:
        The finalized Stripe invoice
    """
    logger.info(f"Generating an invoice for {amount} cents for customer {customer_id}")
    invoice = _call(
        "invoice.create",
        stripe.Invoice.create,
        customer=customer_id,
        collection_method="send_invoice",
        days_until_due=INVOICE_DAYS_UNTIL_DUE,
    )
    _call(
        "invoice_item.create",
        stripe.InvoiceItem.create,
        customer=customer_id,
        amount=amount,
        currency=INVOICE_CURRENCY,
        invoice=invoice["id"],
    )
    return _call("invoice.finalize", stripe.Invoice.finalize_invoice, invoice["id"])


def list_invoices(
    customer_id: str,
    start_timestamp: int = 0,
    end_timestamp: Optional[int] = None,
    strategy: str = "created",
    status: str = "open",
) -> Iterator:
    """
    Lazily iterate a customer's invoices within a time window.

    Args:
        customer_id: Stripe customer id
        start_timestamp: Window start, epoch seconds (inclusive)
        end_timestamp: Window end, epoch seconds (inclusive); defaults to now
        strategy: Filter on ``created`` or ``due_date``
        status: Invoice status filter

    Returns:
        Auto-paginating iterator over invoices, in Stripe's page order
    """
    if strategy not in SEARCH_STRATEGIES:
        raise ValueError(f"Unknown search strategy {strategy!r}")

    if end_timestamp is None:
        end_timestamp = int(time.time())

    date_range = {"gte": int(start_timestamp), "lte": int(end_timestamp)}
    page = _call(
        "invoice.list",
        stripe.Invoice.list,
        customer=customer_id,
        status=status,
        **{strategy: date_range},
    )
    return page.auto_paging_iter()


def pay_invoice(invoice_id: str):
    return _call("invoice.pay", stripe.Invoice.pay, invoice_id)


# ===========================================
# Webhooks
# ===========================================


def construct_webhook_event(payload: str, sig_header: Optional[str]) -> dict:
    """
    Verify an inbound webhook and return its envelope as a plain dict.

    With a signing secret configured the Stripe signature is verified.
    Without one only the presence of the signature header is checked.

    Raises:
        WebhookVerificationError: signature missing/invalid or payload not JSON
    """
    if not sig_header:
        raise WebhookVerificationError("Missing Stripe signature")

    webhook_secret = get_webhook_secret()
    if webhook_secret:
        try:
            stripe.Webhook.construct_event(payload, sig_header, webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise WebhookVerificationError(f"Invalid signature: {e}") from e
        except ValueError as e:
            raise WebhookVerificationError(f"Invalid payload: {e}") from e

    try:
        envelope = json.loads(payload)
    except (json.JSONDecodeError, TypeError) as e:
        raise WebhookVerificationError(f"Invalid payload: {e}") from e

    if not isinstance(envelope, dict):
        raise WebhookVerificationError("Webhook payload must be a JSON object")
    return envelope
