"""
Shared pytest fixtures for SubSync tests.
"""

import json
import os
import sys

import boto3
import pytest
from moto import mock_aws

# Add functions directory to Python path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "functions"))

SUBSCRIPTIONS_TABLE = "subsync-subscriptions"


def pytest_configure(config):
    """Set AWS credentials before test collection.

    This runs before test collection starts, ensuring boto3 resource
    creation during imports doesn't fail with NoRegionError.
    """
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
    os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
    os.environ.setdefault("AWS_REGION", "us-east-1")
    os.environ.setdefault("SUBSCRIPTIONS_TABLE", SUBSCRIPTIONS_TABLE)


@pytest.fixture(autouse=True)
def aws_credentials():
    """Set fake AWS credentials for all tests."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
    os.environ["AWS_REGION"] = "us-east-1"


@pytest.fixture(autouse=True)
def reset_aws_clients():
    """Reset shared AWS client singletons between tests."""
    yield
    try:
        from shared.aws_clients import reset_clients
        reset_clients()
    except ImportError:
        pass


@pytest.fixture(autouse=True)
def stripe_test_key(monkeypatch):
    """Configure a fake Stripe key and clear cached secrets between tests."""
    monkeypatch.setenv("STRIPE_API_KEY", "sk_test_fake1234")

    from shared import stripe_client

    stripe_client.reset_secret_cache()
    yield
    stripe_client.reset_secret_cache()


def create_dynamodb_tables(dynamodb):
    """Create the subscriptions table.

    Args:
        dynamodb: boto3 DynamoDB resource
    """
    dynamodb.create_table(
        TableName=SUBSCRIPTIONS_TABLE,
        KeySchema=[
            {"AttributeName": "pk", "KeyType": "HASH"},   # customer_id or email#<email>
            {"AttributeName": "sk", "KeyType": "RANGE"},  # SUBSCRIPTION or EMAIL_LOCK
        ],
        AttributeDefinitions=[
            {"AttributeName": "pk", "AttributeType": "S"},
            {"AttributeName": "sk", "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )


@pytest.fixture
def mock_dynamodb():
    """Provide mocked AWS (DynamoDB, SQS, CloudWatch) with tables."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")
        create_dynamodb_tables(dynamodb)
        yield dynamodb


@pytest.fixture
def subscriptions_table(mock_dynamodb):
    return mock_dynamodb.Table(SUBSCRIPTIONS_TABLE)


@pytest.fixture
def store(subscriptions_table):
    """SubscriptionStore bound to the mocked table."""
    from shared.subscription_store import SubscriptionStore

    return SubscriptionStore(subscriptions_table)


@pytest.fixture
def seeded_store(store):
    """Store holding one customer with no subscription."""
    store.create({"customer_id": "cus_alice", "email": "alice@example.com", "name": "Alice"})
    return store


@pytest.fixture
def webhook_queue(mock_dynamodb):
    """SQS queue for webhook handoff; returns the queue URL."""
    sqs = boto3.client("sqs", region_name="us-east-1")
    return sqs.create_queue(QueueName="subsync-webhook-events")["QueueUrl"]


@pytest.fixture
def api_gateway_event():
    """Base API Gateway event for Lambda handler tests."""
    return {
        "httpMethod": "POST",
        "headers": {},
        "pathParameters": {},
        "queryStringParameters": {},
        "body": None,
        "requestContext": {
            "identity": {"sourceIp": "127.0.0.1"},
        },
    }


@pytest.fixture
def product_catalogue():
    """Fixed product catalogue for subscription reconciliation."""
    from billing.reconciliation import StaticProductResolver

    return StaticProductResolver(
        {
            "prod_basic": {"id": "prod_basic", "name": "Basic"},
            "prod_pro": {"id": "prod_pro", "name": "Pro"},
        }
    )


# ===========================================
# Stripe payload builders
# ===========================================


def customer_object(customer_id="cus_alice", email="alice@example.com", name="Alice"):
    return {"id": customer_id, "object": "customer", "email": email, "name": name}


def subscription_object(
    subscription_id="sub_1",
    customer_id="cus_alice",
    price_id="price_basic",
    product_id="prod_basic",
    amount=1000,
):
    return {
        "id": subscription_id,
        "object": "subscription",
        "customer": customer_id,
        "status": "active",
        "plan": {"id": price_id, "object": "plan", "product": product_id, "amount": amount},
    }


def open_invoices(count, start="2023-02-01T00:00:00Z", end="2023-02-15T00:00:00Z", seed=42, customer_id="cus_alice"):
    """Open invoices spread across [start, end], oldest first."""
    import random

    from shared.validation import random_timestamps

    stamps = random_timestamps(start, end, count, rng=random.Random(seed))
    return [
        {
            "id": f"in_{i}",
            "object": "invoice",
            "customer": customer_id,
            "status": "open",
            "created": created,
            "amount_due": 100 * i,
        }
        for i, created in enumerate(stamps, start=1)
    ]


def envelope(event_type, obj, event_id="evt_test"):
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


def webhook_event(api_event, payload, signature="t=1,v1=fakesignature"):
    """Turn a base API Gateway event into a signed webhook request."""
    api_event["body"] = payload if isinstance(payload, str) else json.dumps(payload)
    if signature is not None:
        api_event["headers"]["Stripe-Signature"] = signature
    return api_event
