"""
Health Check Endpoint - GET /health

Reports liveness plus the configuration this deployment runs with: the
subscriptions table, whether a Stripe key can be loaded, and whether
webhooks are handed off to the queue or dispatched inline.
No authentication required.
"""

import json
import os
import time
from datetime import datetime, timezone

from shared.logging_utils import configure_structured_logging, set_request_id, log_api_request
from shared.stripe_client import get_stripe_api_key
from shared.subscription_store import SUBSCRIPTIONS_TABLE

SERVICE_NAME = "subsync"
SERVICE_VERSION = "1.0.0"

logger = configure_structured_logging()


def _webhook_mode() -> str:
    return "queue" if os.environ.get("WEBHOOK_QUEUE_URL") else "inline"


def handler(event, context):
    """
    Lambda handler for health check.

    Returns:
        200 with status and configuration; status is "degraded" when no
        Stripe key is available
    """
    start_time = time.time()
    set_request_id(event, context)

    stripe_configured = bool(get_stripe_api_key())

    body = {
        "status": "healthy" if stripe_configured else "degraded",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "subscriptionsTable": SUBSCRIPTIONS_TABLE,
        "stripeConfigured": stripe_configured,
        "webhookMode": _webhook_mode(),
    }

    latency_ms = (time.time() - start_time) * 1000
    log_api_request(logger, "GET", "/health", 200, latency_ms)

    return {
        "statusCode": 200,
        "headers": {
            "Content-Type": "application/json",
            "Cache-Control": "no-cache",
        },
        "body": json.dumps(body),
    }
