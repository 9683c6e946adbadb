"""
Active-subscription lookup.

The local store only decides whether the email is known. For a known
customer, Stripe's list of active subscriptions is authoritative, even when
local plan fields disagree (a missed webhook leaves the store stale).
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import stripe
from botocore.exceptions import ClientError

from shared import stripe_client
from shared.errors import UpstreamError
from shared.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)


@dataclass
class SubscriptionStatus:
    is_active: bool
    subscription: Optional[Any] = None

    def to_dict(self) -> dict:
        body = {"isActive": self.is_active}
        if self.subscription is not None:
            body["subscription"] = self.subscription
        return body


def resolve_active_subscription(
    email: str,
    store: Optional[SubscriptionStore] = None,
    client=stripe_client,
) -> SubscriptionStatus:
    """
    Resolve whether the customer behind ``email`` has an active subscription.

    No local record means inactive, without asking Stripe.

    Raises:
        UpstreamError: the store or Stripe failed; never reported as inactive
    """
    store = store or SubscriptionStore()

    try:
        record = store.find_one(email=email)
    except ClientError as e:
        logger.error(f"Subscription store lookup failed for {email}: {e}")
        raise UpstreamError("dynamodb", str(e)) from e

    if record is None:
        logger.info(f"No local record for {email}, reporting inactive")
        return SubscriptionStatus(is_active=False)

    try:
        subscription = client.get_active_subscription(record["customer_id"])
    except stripe.StripeError as e:
        logger.error(f"Stripe subscription lookup failed for {record['customer_id']}: {e}")
        raise UpstreamError("stripe", str(e)) from e

    return SubscriptionStatus(is_active=subscription is not None, subscription=subscription)
