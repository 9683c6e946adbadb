#!/usr/bin/env python3
"""
Re-sync local subscription records with Stripe.

Scans every subscription record, looks up the customer's live active
subscription in Stripe and writes the resulting plan state (or its absence)
back onto the record, using the same projection as the webhook handlers.

Run after webhook downtime to repair records that missed events.

Usage:
    # Dry run (shows what would change)
    python scripts/resync_subscriptions.py --dry-run

    # Actually perform updates
    python scripts/resync_subscriptions.py
"""

import argparse
import os
import sys
import time

import stripe

# Add functions directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../functions"))

from billing.reconciliation import empty_plan_state, project_subscription  # noqa: E402
from shared import stripe_client  # noqa: E402
from shared.constants import PLAN_STATE_FIELDS  # noqa: E402
from shared.subscription_store import SubscriptionStore  # noqa: E402

# Rate limiting for Stripe API (25 req/sec is safe)
STRIPE_REQUESTS_PER_SECOND = 10
STRIPE_REQUEST_INTERVAL = 1.0 / STRIPE_REQUESTS_PER_SECOND


def desired_plan_state(customer_id, product_resolver=stripe_client.get_product):
    """Plan state Stripe says the customer should have right now."""
    subscription = stripe_client.get_active_subscription(customer_id)
    if subscription is None:
        return empty_plan_state()
    return project_subscription(subscription, product_resolver)


def resync_record(record, store, product_resolver=stripe_client.get_product, dry_run=False):
    """
    Bring one record in line with Stripe.

    Returns:
        "unchanged", "updated", "cleared" or "error"
    """
    customer_id = record["customer_id"]
    try:
        desired = desired_plan_state(customer_id, product_resolver)
    except (stripe.StripeError, LookupError, ValueError) as e:
        print(f"  Error fetching subscription for {customer_id}: {e}")
        return "error"

    current = {field: record.get(field) for field in PLAN_STATE_FIELDS}
    if current == desired:
        return "unchanged"

    outcome = "cleared" if desired["subscription_id"] is None else "updated"
    if dry_run:
        verb = "clear" if outcome == "cleared" else "update"
        print(f"  Would {verb} {customer_id}: {current['subscription_id']} -> {desired['subscription_id']}")
        return outcome

    try:
        store.update_one(customer_id, desired)
    except Exception as e:
        print(f"  Error updating {customer_id}: {e}")
        return "error"

    print(f"  {outcome.capitalize()} {customer_id}: {current['subscription_id']} -> {desired['subscription_id']}")
    return outcome


def main():
    parser = argparse.ArgumentParser(description="Re-sync subscription records with Stripe")
    parser.add_argument("--dry-run", action="store_true", help="Show what would change without making changes")
    args = parser.parse_args()

    if args.dry_run:
        print("=== DRY RUN MODE - No changes will be made ===\n")

    if not stripe_client.configure_stripe():
        print("Set STRIPE_API_KEY or STRIPE_SECRET_ARN to a valid Stripe key.")
        sys.exit(1)
    print(f"Stripe API initialized (key ending in ...{stripe.api_key[-4:]})\n")

    store = SubscriptionStore()
    counts = {"unchanged": 0, "updated": 0, "cleared": 0, "error": 0}

    for record in store.scan_records():
        counts[resync_record(record, store, dry_run=args.dry_run)] += 1
        time.sleep(STRIPE_REQUEST_INTERVAL)

    print("\n=== Summary ===")
    for outcome, count in counts.items():
        print(f"  {outcome}: {count}")

    if counts["error"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
