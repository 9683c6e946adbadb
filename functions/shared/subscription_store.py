"""
DynamoDB-backed store for subscription records.

One item per billing identity (``pk = customer_id``, ``sk = "SUBSCRIPTION"``)
plus one email lock item per record (``pk = "email#<email>"``,
``sk = "EMAIL_LOCK"``). The lock is written in the same transaction as the
record so that two records can never share an email.

Plan-state fields (see ``PLAN_STATE_FIELDS``) are written all together or
not at all; a null plan state is stored by removing the attributes.
"""

import logging
import os
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterator, Optional

from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from .aws_clients import get_dynamodb
from .constants import MUTABLE_FIELDS, PLAN_STATE_FIELDS
from .errors import DuplicateRecordError, PlanStateError
from .types import SubscriptionRecord
from .validation import normalize_email

logger = logging.getLogger(__name__)

SUBSCRIPTIONS_TABLE = os.environ.get("SUBSCRIPTIONS_TABLE", "subsync-subscriptions")

RECORD_SK = "SUBSCRIPTION"
EMAIL_LOCK_SK = "EMAIL_LOCK"

_RECORD_FIELDS = ("customer_id", "email", "name") + PLAN_STATE_FIELDS + ("created_at", "updated_at")


def _email_lock_key(email: str) -> dict:
    return {"pk": f"email#{email}", "sk": EMAIL_LOCK_SK}


def _record_key(customer_id: str) -> dict:
    return {"pk": customer_id, "sk": RECORD_SK}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _cancellation_reasons(error: ClientError) -> list[str]:
    """Per-item cancellation codes of a TransactionCanceledException."""
    reasons = error.response.get("CancellationReasons") or []
    return [(reason or {}).get("Code", "None") for reason in reasons]


def _is_transaction_cancelled(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") == "TransactionCanceledException"


def _condition_failed_at(error: ClientError, index: int) -> bool:
    """True when the transaction item at ``index`` failed its condition."""
    reasons = _cancellation_reasons(error)
    if reasons:
        return index < len(reasons) and reasons[index] == "ConditionalCheckFailed"
    # No per-item reasons returned: fall back to the error message
    return "ConditionalCheckFailed" in error.response.get("Error", {}).get("Message", "")


def _to_record(item: dict) -> SubscriptionRecord:
    record = {field: item.get(field) for field in _RECORD_FIELDS}
    if isinstance(record["plan_price"], Decimal):
        record["plan_price"] = int(record["plan_price"])
    return record


def validate_fields(fields: dict) -> None:
    """
    Reject writes the store must never perform.

    Raises:
        ValueError: unknown field, or email set to null
        PlanStateError: only part of the plan-state group is written, or
            the group mixes null and non-null values
    """
    unknown = set(fields) - set(MUTABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown subscription fields: {sorted(unknown)}")

    if "email" in fields and not fields["email"]:
        raise ValueError("email is required")

    touched = [f for f in PLAN_STATE_FIELDS if f in fields]
    if not touched:
        return
    if len(touched) != len(PLAN_STATE_FIELDS):
        missing = [f for f in PLAN_STATE_FIELDS if f not in fields]
        raise PlanStateError(f"Partial plan-state write, missing {missing}")

    nulls = [f for f in PLAN_STATE_FIELDS if fields[f] is None]
    if nulls and len(nulls) != len(PLAN_STATE_FIELDS):
        raise PlanStateError(f"Plan-state group mixes null and set values, null: {nulls}")


def _build_update(fields: dict) -> tuple[str, dict, dict]:
    """Build an UpdateExpression that SETs non-null fields and REMOVEs nulls."""
    names = {"#updated_at": "updated_at"}
    values = {":updated_at": _now_iso()}
    set_parts = ["#updated_at = :updated_at"]
    remove_parts = []

    for field, value in fields.items():
        names[f"#{field}"] = field
        if value is None:
            remove_parts.append(f"#{field}")
        else:
            set_parts.append(f"#{field} = :{field}")
            values[f":{field}"] = value

    expression = "SET " + ", ".join(set_parts)
    if remove_parts:
        expression += " REMOVE " + ", ".join(remove_parts)
    return expression, names, values


class SubscriptionStore:
    """Record store keyed by Stripe customer id, unique on email."""

    def __init__(self, table=None):
        self._table = table

    @property
    def table(self):
        if self._table is None:
            self._table = get_dynamodb().Table(SUBSCRIPTIONS_TABLE)
        return self._table

    @property
    def _client(self):
        # The resource's client serializes native Python values
        return self.table.meta.client

    def find_one(
        self,
        email: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> Optional[SubscriptionRecord]:
        """
        Return the record matching email or customer_id, or None.

        Exactly one lookup key is used; customer_id wins when both are given.
        """
        if customer_id is None and email is None:
            raise ValueError("find_one requires email or customer_id")

        if customer_id is None:
            email = normalize_email(email)
            lock = self.table.get_item(Key=_email_lock_key(email), ConsistentRead=True).get("Item")
            if not lock:
                return None
            customer_id = lock["customer_id"]

        item = self.table.get_item(Key=_record_key(customer_id), ConsistentRead=True).get("Item")
        if not item:
            return None

        if email is not None and item.get("email") != email:
            # Lock and record disagree mid-transaction; treat as absent
            logger.warning(f"Email lock for {email} points at {customer_id} with a different email")
            return None

        return _to_record(item)

    def create(self, fields: dict) -> SubscriptionRecord:
        """
        Insert a new record and its email lock in one transaction.

        Raises:
            DuplicateRecordError: customer_id or email already present
        """
        customer_id = fields.get("customer_id")
        if not customer_id:
            raise ValueError("customer_id is required")

        data = {k: v for k, v in fields.items() if k != "customer_id"}
        validate_fields(data)
        if not data.get("email"):
            raise ValueError("email is required")

        email = normalize_email(data["email"])
        now = _now_iso()
        item = {
            **_record_key(customer_id),
            "customer_id": customer_id,
            "created_at": now,
            "updated_at": now,
        }
        for field, value in data.items():
            if value is not None:
                item[field] = value
        item["email"] = email

        try:
            self._client.transact_write_items(
                TransactItems=[
                    {
                        "Put": {
                            "TableName": self.table.name,
                            "Item": item,
                            "ConditionExpression": "attribute_not_exists(pk)",
                        }
                    },
                    {
                        "Put": {
                            "TableName": self.table.name,
                            "Item": {**_email_lock_key(email), "customer_id": customer_id},
                            "ConditionExpression": "attribute_not_exists(pk)",
                        }
                    },
                ]
            )
        except ClientError as e:
            if _is_transaction_cancelled(e):
                raise DuplicateRecordError(email=email, customer_id=customer_id) from e
            raise

        logger.info(f"Created subscription record for {customer_id}")
        return _to_record(item)

    def update_one(self, customer_id: str, fields: dict) -> bool:
        """
        Apply the final state of ``fields`` to the record for customer_id.

        Returns:
            True if a record was updated, False if none matched

        Raises:
            DuplicateRecordError: the new email belongs to another record
        """
        validate_fields(fields)
        if not fields:
            return False

        fields = dict(fields)
        if "email" in fields:
            fields["email"] = normalize_email(fields["email"])
            current = self.table.get_item(Key=_record_key(customer_id), ConsistentRead=True).get("Item")
            if not current:
                return False
            if current.get("email") != fields["email"]:
                return self._update_with_email_change(customer_id, current["email"], fields)

        expression, names, values = _build_update(fields)
        try:
            self.table.update_item(
                Key=_record_key(customer_id),
                UpdateExpression=expression,
                ConditionExpression="attribute_exists(pk)",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                logger.info(f"No subscription record for {customer_id}, skipping update")
                return False
            raise

        return True

    def _update_with_email_change(self, customer_id: str, old_email: str, fields: dict) -> bool:
        """Update the record and move its email lock atomically."""
        new_email = fields["email"]
        expression, names, values = _build_update(fields)
        values[":old_email"] = old_email

        try:
            self._client.transact_write_items(
                TransactItems=[
                    {
                        "Update": {
                            "TableName": self.table.name,
                            "Key": _record_key(customer_id),
                            "UpdateExpression": expression,
                            "ConditionExpression": "attribute_exists(pk) AND #email = :old_email",
                            "ExpressionAttributeNames": names,
                            "ExpressionAttributeValues": values,
                        }
                    },
                    {
                        "Delete": {
                            "TableName": self.table.name,
                            "Key": _email_lock_key(old_email),
                        }
                    },
                    {
                        "Put": {
                            "TableName": self.table.name,
                            "Item": {**_email_lock_key(new_email), "customer_id": customer_id},
                            "ConditionExpression": "attribute_not_exists(pk)",
                        }
                    },
                ]
            )
        except ClientError as e:
            if not _is_transaction_cancelled(e):
                raise
            if _condition_failed_at(e, 2):
                raise DuplicateRecordError(email=new_email, customer_id=customer_id) from e
            logger.warning(f"Record {customer_id} changed during email update, skipping")
            return False

        logger.info(f"Moved email lock for {customer_id}")
        return True

    def delete_one(self, customer_id: str) -> bool:
        """Delete the record and its email lock. Returns False if absent."""
        item = self.table.get_item(Key=_record_key(customer_id), ConsistentRead=True).get("Item")
        if not item:
            return False

        email = item["email"]
        try:
            self._client.transact_write_items(
                TransactItems=[
                    {
                        "Delete": {
                            "TableName": self.table.name,
                            "Key": _record_key(customer_id),
                            "ConditionExpression": "attribute_exists(pk) AND #email = :email",
                            "ExpressionAttributeNames": {"#email": "email"},
                            "ExpressionAttributeValues": {":email": email},
                        }
                    },
                    {
                        "Delete": {
                            "TableName": self.table.name,
                            "Key": _email_lock_key(email),
                        }
                    },
                ]
            )
        except ClientError as e:
            if _is_transaction_cancelled(e):
                logger.info(f"Subscription record for {customer_id} changed or vanished, skipping delete")
                return False
            raise

        logger.info(f"Deleted subscription record for {customer_id}")
        return True

    def scan_records(self) -> Iterator[SubscriptionRecord]:
        """Yield every subscription record (paginated scan)."""
        scan_kwargs = {"FilterExpression": Attr("sk").eq(RECORD_SK)}
        while True:
            response = self.table.scan(**scan_kwargs)
            for item in response.get("Items", []):
                yield _to_record(item)

            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            scan_kwargs["ExclusiveStartKey"] = last_key
