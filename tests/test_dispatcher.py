"""
Tests for the webhook event dispatcher.
"""

from unittest.mock import MagicMock

import pytest

from billing.dispatcher import EventKind, dispatch_event
from billing.reconciliation import ReconciliationHandlers
from conftest import customer_object, envelope, subscription_object
from shared.constants import PLAN_STATE_FIELDS


class TestEventKind:
    """Tests for EventKind.from_type()."""

    @pytest.mark.parametrize("kind", list(EventKind))
    def test_recognises_all_six_kinds(self, kind):
        assert EventKind.from_type(kind.value) is kind

    def test_exactly_six_kinds(self):
        assert len(EventKind) == 6

    @pytest.mark.parametrize("event_type", ["invoice.paid", "customer.source.created", "", None, 42])
    def test_unknown_types_resolve_to_none(self, event_type):
        assert EventKind.from_type(event_type) is None


class TestRouting:
    """Tests that each kind reaches the right handler."""

    @pytest.mark.parametrize(
        "event_type, method",
        [
            ("customer.created", "create_customer"),
            ("customer.updated", "update_customer"),
            ("customer.deleted", "delete_customer"),
            ("customer.subscription.created", "upsert_subscription"),
            ("customer.subscription.updated", "upsert_subscription"),
            ("customer.subscription.deleted", "clear_subscription"),
        ],
    )
    def test_routes_to_handler(self, event_type, method):
        """The payload passed on is the envelope's data.object."""
        handlers = MagicMock(spec=ReconciliationHandlers)
        payload = {"id": "obj_1"}

        kind = dispatch_event(envelope(event_type, payload), handlers)

        assert kind is EventKind(event_type)
        getattr(handlers, method).assert_called_once_with(payload)

    def test_unknown_kind_is_ignored(self):
        """Unknown kinds call no handler and return None."""
        handlers = MagicMock(spec=ReconciliationHandlers)

        assert dispatch_event(envelope("invoice.paid", {"id": "in_1"}), handlers) is None
        assert handlers.method_calls == []

    @pytest.mark.parametrize(
        "bad_envelope",
        [
            None,
            "customer.created",
            {"type": "customer.created"},
            {"type": "customer.created", "data": None},
            {"type": "customer.created", "data": {"object": "cus_1"}},
        ],
    )
    def test_malformed_envelope_is_ignored(self, bad_envelope):
        """Malformed envelopes never raise."""
        handlers = MagicMock(spec=ReconciliationHandlers)

        assert dispatch_event(bad_envelope, handlers) is None
        assert handlers.method_calls == []

    def test_handler_exception_does_not_escape(self):
        """Even an uncontained handler error stays inside the dispatcher."""
        handlers = MagicMock(spec=ReconciliationHandlers)
        handlers.create_customer.side_effect = RuntimeError("boom")

        kind = dispatch_event(envelope("customer.created", customer_object()), handlers)

        assert kind is EventKind.CUSTOMER_CREATED


class TestLifecycle:
    """End-to-end event sequences against the mocked store."""

    @pytest.fixture
    def handlers(self, store, product_catalogue):
        return ReconciliationHandlers(store=store, product_resolver=product_catalogue)

    def test_created_then_subscription_deleted_then_deleted(self, handlers, store):
        """customer.created -> subscription.deleted -> customer.deleted."""
        dispatch_event(
            envelope("customer.created", {"id": "cus_1", "email": "a@b.com", "name": "A"}),
            handlers,
        )
        records = list(store.scan_records())
        assert len(records) == 1
        assert records[0]["customer_id"] == "cus_1"
        assert records[0]["email"] == "a@b.com"

        dispatch_event(envelope("customer.subscription.deleted", {"customer": "cus_1"}), handlers)
        record = store.find_one(customer_id="cus_1")
        assert all(record[field] is None for field in PLAN_STATE_FIELDS)

        dispatch_event(envelope("customer.deleted", {"id": "cus_1"}), handlers)
        assert store.find_one(customer_id="cus_1") is None

    def test_plan_group_never_mixed(self, handlers, store):
        """After every lifecycle event the plan group is all set or all null."""
        events = [
            envelope("customer.created", customer_object()),
            envelope("customer.subscription.created", subscription_object()),
            envelope("customer.subscription.updated", subscription_object(product_id="prod_missing")),
            envelope("customer.subscription.updated", subscription_object(product_id="prod_pro", amount=2500)),
            envelope("customer.subscription.deleted", {"customer": "cus_alice"}),
        ]

        for event in events:
            dispatch_event(event, handlers)
            record = store.find_one(customer_id="cus_alice")
            values = [record[field] for field in PLAN_STATE_FIELDS]
            assert all(v is None for v in values) or all(v is not None for v in values)

    def test_unknown_event_mutates_nothing(self, handlers, seeded_store):
        """An unrecognised event leaves the store untouched."""
        before = seeded_store.find_one(customer_id="cus_alice")

        dispatch_event(envelope("invoice.payment_succeeded", {"id": "in_1", "customer": "cus_alice"}), handlers)

        assert seeded_store.find_one(customer_id="cus_alice") == before

    def test_update_before_create_is_noop(self, handlers, store):
        """Out-of-order subscription.updated for an unknown customer is ignored."""
        kind = dispatch_event(envelope("customer.subscription.updated", subscription_object()), handlers)

        assert kind is EventKind.SUBSCRIPTION_UPDATED
        assert list(store.scan_records()) == []
