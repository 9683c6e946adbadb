"""
Event dispatcher for Stripe webhook envelopes.

Maps the envelope ``type`` onto one of the six reconciliation handlers.
Unrecognised kinds are ignored so that new Stripe event types never break
intake. ``dispatch_event`` never raises.
"""

import logging
from enum import Enum
from typing import Optional

from .reconciliation import ReconciliationHandlers

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    CUSTOMER_CREATED = "customer.created"
    CUSTOMER_UPDATED = "customer.updated"
    CUSTOMER_DELETED = "customer.deleted"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"

    @classmethod
    def from_type(cls, event_type) -> Optional["EventKind"]:
        """Return the kind for a Stripe event type, or None if unrecognised."""
        if not isinstance(event_type, str):
            return None
        try:
            return cls(event_type)
        except ValueError:
            return None


def dispatch_event(envelope, handlers: Optional[ReconciliationHandlers] = None) -> Optional[EventKind]:
    """
    Route one webhook envelope to its reconciliation handler.

    Args:
        envelope: ``{"type": ..., "data": {"object": {...}}}``
        handlers: Handler set to use (default: store + Stripe product lookup)

    Returns:
        The EventKind dispatched, or None when the event was ignored
    """
    if not isinstance(envelope, dict):
        logger.warning(f"Ignoring malformed webhook envelope of type {type(envelope).__name__}")
        return None

    event_type = envelope.get("type")
    kind = EventKind.from_type(event_type)
    if kind is None:
        logger.info(f"Ignoring unhandled event type: {event_type}")
        return None

    data = envelope.get("data")
    payload = data.get("object") if isinstance(data, dict) else None
    if not isinstance(payload, dict):
        logger.warning(f"Ignoring {event_type} event without data.object (id={envelope.get('id')})")
        return None

    logger.info(f"Dispatching Stripe event: {event_type} (id={envelope.get('id')})")

    try:
        if handlers is None:
            handlers = ReconciliationHandlers()

        if kind is EventKind.CUSTOMER_CREATED:
            handlers.create_customer(payload)

        elif kind is EventKind.CUSTOMER_UPDATED:
            handlers.update_customer(payload)

        elif kind is EventKind.CUSTOMER_DELETED:
            handlers.delete_customer(payload)

        elif kind is EventKind.SUBSCRIPTION_CREATED or kind is EventKind.SUBSCRIPTION_UPDATED:
            handlers.upsert_subscription(payload)

        elif kind is EventKind.SUBSCRIPTION_DELETED:
            handlers.clear_subscription(payload)

    except Exception as e:
        # Handlers contain their own failures; this only catches wiring errors
        logger.error(f"Dispatch of {event_type} failed: {e}", exc_info=True)

    return kind
