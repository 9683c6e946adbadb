"""
Shared Type Definitions for Lambda Handlers.

Provides TypedDict definitions for AWS Lambda events, responses and the
records kept in the subscriptions table.
"""

from typing import TypedDict, Optional, Any


class APIGatewayEvent(TypedDict, total=False):
    """API Gateway proxy event structure."""

    httpMethod: str
    headers: dict[str, str]
    pathParameters: Optional[dict[str, str]]
    queryStringParameters: Optional[dict[str, str]]
    body: Optional[str]
    requestContext: dict[str, Any]
    resource: str
    path: str
    isBase64Encoded: bool


class LambdaContext:
    """Lambda context object (simplified type hints)."""

    function_name: str
    function_version: str
    invoked_function_arn: str
    memory_limit_in_mb: int
    aws_request_id: str
    log_group_name: str
    log_stream_name: str

    def get_remaining_time_in_millis(self) -> int:
        """Get remaining execution time in milliseconds."""
        ...


class LambdaResponse(TypedDict):
    """Standard Lambda response structure."""

    statusCode: int
    headers: dict[str, str]
    body: str


class SQSRecord(TypedDict):
    """SQS record from event."""

    messageId: str
    receiptHandle: str
    body: str
    attributes: dict[str, str]
    messageAttributes: dict[str, Any]
    md5OfBody: str
    eventSource: str
    eventSourceARN: str
    awsRegion: str


class SQSEvent(TypedDict):
    """SQS event structure."""

    Records: list[SQSRecord]


class WebhookEnvelope(TypedDict, total=False):
    """Inbound Stripe event: {"type": ..., "data": {"object": {...}}}."""

    id: str
    type: str
    data: dict[str, Any]
    created: int
    livemode: bool


class SubscriptionRecord(TypedDict):
    """One billing identity as returned by the subscription store."""

    customer_id: str
    email: str
    name: Optional[str]
    subscription_id: Optional[str]
    price_id: Optional[str]
    product_id: Optional[str]
    plan_name: Optional[str]
    plan_price: Optional[int]
    created_at: str
    updated_at: str
