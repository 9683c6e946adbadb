"""
Sequential invoice settlement.

Walks a customer's open invoices in Stripe's pagination order and pays them
one at a time. A payment failure is recorded against its invoice and the
walk continues; a failure to list invoices aborts the whole settlement.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import stripe
from botocore.exceptions import ClientError

from shared import stripe_client
from shared.constants import SEARCH_STRATEGIES
from shared.errors import CustomerNotFoundError, UpstreamError, ValidationError
from shared.metrics import emit_batch_metrics
from shared.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)


@dataclass
class SettlementResult:
    paid: list[Any] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.paid)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "paidInvoices": self.paid,
            "failedInvoices": self.failed,
        }


def settle_invoices(
    email: str,
    start: int,
    end: int,
    strategy: str,
    store: Optional[SubscriptionStore] = None,
    client=stripe_client,
) -> SettlementResult:
    """
    Pay every open invoice of the customer within [start, end].

    Args:
        email: Customer email (resolved through the local store)
        start: Window start, epoch seconds
        end: Window end, epoch seconds
        strategy: ``created`` or ``due_date``

    Raises:
        ValidationError: unknown strategy or inverted window
        CustomerNotFoundError: email has no local record
        UpstreamError: store lookup or invoice listing failed
    """
    if strategy not in SEARCH_STRATEGIES:
        raise ValidationError(
            f'Supplied strategy "{strategy}" must be one of "{", ".join(SEARCH_STRATEGIES)}"',
            code="invalid_search_strategy",
        )
    if start > end:
        raise ValidationError('"startDate" must not be after "endDate"', code="invalid_date_range")

    store = store or SubscriptionStore()
    try:
        record = store.find_one(email=email)
    except ClientError as e:
        raise UpstreamError("dynamodb", str(e)) from e

    if record is None:
        raise CustomerNotFoundError(email)

    customer_id = record["customer_id"]
    result = SettlementResult()

    try:
        for invoice in client.list_invoices(customer_id, start, end, strategy, status="open"):
            invoice_id = invoice["id"]
            try:
                paid_invoice = client.pay_invoice(invoice_id)
            except stripe.StripeError as e:
                logger.warning(f"Failed to pay invoice {invoice_id} for {customer_id}: {e}")
                result.failed.append({"invoice_id": invoice_id, "error": str(e)})
                continue

            result.paid.append(paid_invoice)
            logger.info(
                f"Paid invoice {invoice_id} for {customer_id}",
                extra={"invoice_id": invoice_id, "amount_due": invoice.get("amount_due")},
            )
    except stripe.StripeError as e:
        logger.error(
            f"Listing invoices failed for {customer_id} after {result.total} payments: {e}"
        )
        raise UpstreamError("stripe", str(e)) from e
    finally:
        emit_batch_metrics(
            [
                {"metric_name": "InvoicesPaid", "value": len(result.paid)},
                {"metric_name": "InvoicePaymentFailures", "value": len(result.failed)},
            ]
        )

    logger.info(
        f"Settled {result.total} invoices for {customer_id} ({len(result.failed)} failed)"
    )
    return result
