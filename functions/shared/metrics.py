"""
CloudWatch Metrics Helper

Emits the webhook and settlement counters. Metric failures are logged and
never propagate into the calling handler.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .aws_clients import get_cloudwatch

logger = logging.getLogger(__name__)

NAMESPACE = os.environ.get("CLOUDWATCH_NAMESPACE", "SubSync")

# CloudWatch allows up to 20 metrics per PutMetricData request
_MAX_METRICS_PER_CALL = 20


def _metric_datum(
    metric_name: str,
    value: float,
    unit: str,
    dimensions: Optional[Dict[str, str]],
) -> Dict[str, Any]:
    data = {
        "MetricName": metric_name,
        "Value": value,
        "Unit": unit,
        "Timestamp": datetime.now(timezone.utc),
    }
    if dimensions:
        data["Dimensions"] = [{"Name": k, "Value": v} for k, v in dimensions.items()]
    return data


def emit_metric(
    metric_name: str,
    value: float = 1.0,
    unit: str = "Count",
    dimensions: Optional[Dict[str, str]] = None,
) -> None:
    """
    Emit a custom metric to CloudWatch.

    Example:
        emit_metric("WebhookEventsQueued")
        emit_metric("InvoicesPaid", 3, dimensions={"Strategy": "created"})
    """
    try:
        get_cloudwatch().put_metric_data(
            Namespace=NAMESPACE,
            MetricData=[_metric_datum(metric_name, value, unit, dimensions)],
        )
        logger.debug(
            f"Emitted metric: {metric_name}={value} {unit}",
            extra={"dimensions": dimensions},
        )
    except Exception as e:
        # Don't fail the Lambda if metrics fail
        logger.warning(f"Failed to emit metric {metric_name}: {e}")


def emit_batch_metrics(metrics: list[Dict[str, Any]]) -> None:
    """
    Emit multiple metrics, chunked to the PutMetricData limit.

    Args:
        metrics: List of dicts with ``metric_name`` and optional ``value``,
            ``unit`` and ``dimensions``
    """
    try:
        metric_data = [
            _metric_datum(
                metric["metric_name"],
                metric.get("value", 1.0),
                metric.get("unit", "Count"),
                metric.get("dimensions"),
            )
            for metric in metrics
        ]

        cloudwatch = get_cloudwatch()
        for i in range(0, len(metric_data), _MAX_METRICS_PER_CALL):
            cloudwatch.put_metric_data(
                Namespace=NAMESPACE,
                MetricData=metric_data[i : i + _MAX_METRICS_PER_CALL],
            )

        logger.debug(f"Emitted {len(metric_data)} metrics in batch")

    except Exception as e:
        logger.warning(f"Failed to emit batch metrics: {e}")
