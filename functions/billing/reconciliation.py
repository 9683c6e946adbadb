"""
Webhook reconciliation handlers.

Each handler receives the ``data.object`` payload of one Stripe event and
writes the final state it implies to the subscription store. Events may
arrive late, twice, or out of order, so handlers only ever "set final
state" and treat a missing record as a no-op.

Handlers contain their own failures: anything raised is logged under the
handler name and reported as ``False``. Nothing propagates to the webhook
intake, which must always acknowledge.
"""

import functools
import logging
from typing import Any, Callable, Mapping, Optional

from shared import stripe_client
from shared.constants import PLAN_STATE_FIELDS
from shared.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)

# product_id -> product mapping exposing at least "name"
ProductResolver = Callable[[str], Mapping[str, Any]]


class StaticProductResolver:
    """Resolve products from a fixed catalogue keyed by product id."""

    def __init__(self, products: Mapping[str, Mapping[str, Any]]):
        self._products = dict(products)

    def __call__(self, product_id: str) -> Mapping[str, Any]:
        try:
            return self._products[product_id]
        except KeyError:
            raise LookupError(f"Unknown product {product_id}") from None


def _get(obj, key, default=None):
    # Stripe objects and plain dicts both support .get()
    if obj is None:
        return default
    return obj.get(key, default)


def _id_of(value) -> Optional[str]:
    """Return the id of an expandable field (bare id string or expanded object)."""
    if value is None or isinstance(value, str):
        return value
    return _get(value, "id")


def empty_plan_state() -> dict:
    """Plan-state group with every field cleared."""
    return {field: None for field in PLAN_STATE_FIELDS}


def project_subscription(subscription: Mapping[str, Any], product_resolver: ProductResolver) -> dict:
    """
    Project a Stripe subscription onto the plan-state group.

    Uses the legacy ``plan`` attribute when present, otherwise the price of
    the first subscription item.

    Raises:
        ValueError: the subscription carries neither a plan nor a priced item
    """
    plan = _get(subscription, "plan")
    if plan:
        price_id = _get(plan, "id")
        product = _get(plan, "product")
        amount = _get(plan, "amount")
    else:
        items = _get(_get(subscription, "items"), "data") or []
        price = _get(items[0], "price") if items else None
        if not price:
            raise ValueError(f"Subscription {_get(subscription, 'id')} has no plan or priced item")
        price_id = _get(price, "id")
        product = _get(price, "product")
        amount = _get(price, "unit_amount")

    product_id = _id_of(product)
    if isinstance(product, str) or product is None or not _get(product, "name"):
        product = product_resolver(product_id)

    return {
        "subscription_id": _get(subscription, "id"),
        "price_id": price_id,
        "product_id": product_id,
        "plan_name": _get(product, "name"),
        "plan_price": int(amount) if amount is not None else None,
    }


def _fault_contained(func):
    """Log and swallow any failure of a handler; report success as a bool."""

    @functools.wraps(func)
    def wrapper(self, payload, *args, **kwargs) -> bool:
        try:
            func(self, payload, *args, **kwargs)
        except Exception as e:
            logger.error(
                f"[webhook.{func.__name__}] {e}",
                extra={"handler": func.__name__, "object_id": _get(payload, "id") if isinstance(payload, Mapping) else None},
            )
            return False
        return True

    return wrapper


class ReconciliationHandlers:
    """The six webhook handlers, bound to a store and a product resolver."""

    def __init__(
        self,
        store: Optional[SubscriptionStore] = None,
        product_resolver: Optional[ProductResolver] = None,
    ):
        self.store = store or SubscriptionStore()
        self.product_resolver = product_resolver or stripe_client.get_product

    @_fault_contained
    def create_customer(self, customer):
        """customer.created: insert {customer_id, email, name}."""
        self.store.create(
            {
                "customer_id": customer["id"],
                "email": customer.get("email"),
                "name": customer.get("name"),
            }
        )

    @_fault_contained
    def update_customer(self, customer):
        """customer.updated: set email and name on the matching record."""
        fields = {"name": customer.get("name")}
        if customer.get("email"):
            fields["email"] = customer["email"]

        if not self.store.update_one(customer["id"], fields):
            logger.info(f"[webhook.update_customer] no record for {customer['id']}")

    @_fault_contained
    def delete_customer(self, customer):
        """customer.deleted: delete the matching record."""
        if not self.store.delete_one(customer["id"]):
            logger.info(f"[webhook.delete_customer] no record for {customer['id']}")

    @_fault_contained
    def upsert_subscription(self, subscription):
        """customer.subscription.created / .updated: write the full plan group."""
        customer_id = _id_of(subscription["customer"])
        plan_state = project_subscription(subscription, self.product_resolver)

        if not self.store.update_one(customer_id, plan_state):
            logger.info(f"[webhook.upsert_subscription] no record for {customer_id}")

    @_fault_contained
    def clear_subscription(self, subscription):
        """customer.subscription.deleted: remove every plan field in one write."""
        customer_id = _id_of(subscription["customer"])

        if not self.store.update_one(customer_id, empty_plan_state()):
            logger.info(f"[webhook.clear_subscription] no record for {customer_id}")
