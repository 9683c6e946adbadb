"""
Tests for the active-subscription resolver.
"""

from unittest.mock import MagicMock

import pytest
import stripe
from botocore.exceptions import ClientError

from billing.subscription_query import SubscriptionStatus, resolve_active_subscription
from shared.errors import UpstreamError


class TestResolveActiveSubscription:
    """Tests for resolve_active_subscription()."""

    def test_local_miss_is_inactive_without_remote_call(self, store):
        """Unknown emails are inactive and Stripe is never asked."""
        client = MagicMock()

        status = resolve_active_subscription("nobody@example.com", store=store, client=client)

        assert status.is_active is False
        assert status.subscription is None
        client.get_active_subscription.assert_not_called()

    def test_local_hit_returns_remote_subscription(self, seeded_store):
        """A known customer with an active Stripe subscription is active."""
        client = MagicMock()
        client.get_active_subscription.return_value = {"id": "sub_live", "status": "active"}

        status = resolve_active_subscription("alice@example.com", store=seeded_store, client=client)

        assert status.is_active is True
        assert status.subscription["id"] == "sub_live"
        client.get_active_subscription.assert_called_once_with("cus_alice")

    def test_remote_answer_overrides_stale_local_plan(self, seeded_store):
        """Local plan fields are ignored in favour of Stripe's answer."""
        seeded_store.update_one(
            "cus_alice",
            {
                "subscription_id": "sub_old",
                "price_id": "price_basic",
                "product_id": "prod_basic",
                "plan_name": "Basic",
                "plan_price": 1000,
            },
        )
        client = MagicMock()
        client.get_active_subscription.return_value = None

        status = resolve_active_subscription("alice@example.com", store=seeded_store, client=client)

        assert status.is_active is False

    def test_remote_failure_is_upstream_error(self, seeded_store):
        """A Stripe failure is an error, never reported as inactive."""
        client = MagicMock()
        client.get_active_subscription.side_effect = stripe.APIConnectionError("network down")

        with pytest.raises(UpstreamError) as exc_info:
            resolve_active_subscription("alice@example.com", store=seeded_store, client=client)

        assert exc_info.value.status_code == 500
        assert exc_info.value.service == "stripe"

    def test_store_failure_is_upstream_error(self):
        """A DynamoDB failure surfaces as an upstream error."""
        store = MagicMock()
        store.find_one.side_effect = ClientError(
            {"Error": {"Code": "InternalServerError", "Message": "boom"}}, "GetItem"
        )

        with pytest.raises(UpstreamError) as exc_info:
            resolve_active_subscription("alice@example.com", store=store, client=MagicMock())

        assert exc_info.value.service == "dynamodb"


class TestSubscriptionStatus:
    """Tests for SubscriptionStatus.to_dict()."""

    def test_inactive_omits_subscription(self):
        assert SubscriptionStatus(is_active=False).to_dict() == {"isActive": False}

    def test_active_includes_subscription(self):
        body = SubscriptionStatus(is_active=True, subscription={"id": "sub_1"}).to_dict()

        assert body == {"isActive": True, "subscription": {"id": "sub_1"}}
