"""
Shared constants for SubSync.
"""

# Plan-state group: written together on activation, removed together on cancel
PLAN_STATE_FIELDS = (
    "subscription_id",
    "price_id",
    "product_id",
    "plan_name",
    "plan_price",
)

# Fields a reconciliation update may touch (customer_id is the key)
MUTABLE_FIELDS = ("email", "name") + PLAN_STATE_FIELDS

# Invoice search strategies accepted by POST /pay-invoices
SEARCH_STRATEGIES = ("created", "due_date")

# Invoices
MIN_INVOICE_AMOUNT = 50  # cents; Stripe rejects charges below $0.50
INVOICE_CURRENCY = "usd"
INVOICE_DAYS_UNTIL_DUE = 30

# Price type offered to new subscribers
SUBSCRIBE_PRICE_TYPE = "recurring"

# Secrets Manager cache TTL (seconds)
SECRETS_CACHE_TTL = 300
