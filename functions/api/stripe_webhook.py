"""
Stripe Webhook Endpoint - POST /webhook

Verifies the inbound event and hands it to the webhook queue; the webhook
worker applies it to the subscription store. Without a configured queue the
event is dispatched inline.

Stripe always gets an empty 200, whatever happens here: processing failures
are contained and logged, never retried through Stripe.
"""

import json
import logging
import os
import time

from billing.dispatcher import EventKind, dispatch_event
from shared import stripe_client
from shared.aws_clients import get_sqs
from shared.errors import WebhookVerificationError
from shared.logging_utils import configure_structured_logging, log_api_request, set_request_id
from shared.metrics import emit_metric
from shared.request_utils import get_header, get_raw_body
from shared.response_utils import empty_response

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

WEBHOOK_QUEUE_URL = os.environ.get("WEBHOOK_QUEUE_URL")


def handler(event, context):
    """Lambda handler for Stripe webhooks."""
    configure_structured_logging()
    set_request_id(event, context)
    start_time = time.time()

    try:
        _handle(event)
    except Exception as e:
        logger.error(f"Webhook intake failed: {e}", exc_info=True)

    log_api_request(logger, "POST", "/webhook", 200, (time.time() - start_time) * 1000)
    return empty_response(200)


def _handle(event) -> None:
    try:
        payload = get_raw_body(event)
    except ValueError as e:
        logger.warning(f"Undecodable webhook body: {e}")
        emit_metric("WebhookEventsInvalid")
        return

    sig_header = get_header(event, "stripe-signature")

    try:
        envelope = stripe_client.construct_webhook_event(payload, sig_header)
    except WebhookVerificationError as e:
        logger.warning(f"Rejected webhook: {e}")
        emit_metric("WebhookEventsInvalid")
        return

    event_type = envelope.get("type")
    logger.info(f"Received Stripe event: {event_type} (id={envelope.get('id')})")

    if EventKind.from_type(event_type) is None:
        logger.info(f"Ignoring unhandled event type: {event_type}")
        emit_metric("WebhookEventsIgnored")
        return

    if WEBHOOK_QUEUE_URL:
        get_sqs().send_message(
            QueueUrl=WEBHOOK_QUEUE_URL,
            MessageBody=json.dumps(envelope),
        )
        emit_metric("WebhookEventsQueued", dimensions={"EventType": event_type})
        return

    # No queue configured: process in this invocation
    if not stripe_client.configure_stripe():
        logger.warning("Stripe not configured, product lookups will fail")
    dispatch_event(envelope)
    emit_metric("WebhookEventsDispatched", dimensions={"EventType": event_type})
