"""
Webhook Worker - Applies queued Stripe events to the subscription store.

Triggered by the SQS webhook queue that POST /webhook feeds. Records are
processed sequentially in batch order. Reconciliation handlers contain their
own failures, so no record is ever handed back to SQS for retry; a message
that is not a JSON object is dropped as permanently invalid.
"""

import json
import logging

from billing.dispatcher import dispatch_event
from billing.reconciliation import ReconciliationHandlers
from shared import stripe_client
from shared.logging_utils import configure_structured_logging, set_request_id
from shared.metrics import emit_batch_metrics

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def handler(event, context):
    """Process a batch of queued webhook envelopes."""
    configure_structured_logging()
    set_request_id(event, context)

    if not stripe_client.configure_stripe():
        logger.warning("Stripe not configured, product lookups will fail")

    handlers = ReconciliationHandlers()
    dispatched = 0
    ignored = 0
    invalid = 0

    for record in event.get("Records", []):
        message_id = record.get("messageId")
        try:
            envelope = json.loads(record["body"])
        except (KeyError, TypeError, json.JSONDecodeError) as e:
            logger.error(f"Dropping invalid webhook message {message_id}: {e}")
            invalid += 1
            continue

        if not isinstance(envelope, dict):
            logger.error(f"Dropping non-object webhook message {message_id}")
            invalid += 1
            continue

        if dispatch_event(envelope, handlers) is None:
            ignored += 1
        else:
            dispatched += 1

    emit_batch_metrics(
        [
            {"metric_name": "WebhookEventsDispatched", "value": dispatched},
            {"metric_name": "WebhookEventsIgnored", "value": ignored},
            {"metric_name": "WebhookEventsInvalid", "value": invalid},
        ]
    )

    logger.info(f"Processed webhook batch: {dispatched} dispatched, {ignored} ignored, {invalid} invalid")

    return {
        "statusCode": 200,
        "body": json.dumps(
            {
                "dispatched": dispatched,
                "ignored": ignored,
                "invalid": invalid,
            }
        ),
    }
