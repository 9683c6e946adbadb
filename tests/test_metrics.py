"""
Tests for CloudWatch metrics helpers.
"""

from unittest.mock import MagicMock, patch

from shared import metrics


class TestEmitMetric:
    """Tests for emit_metric()."""

    def test_puts_single_metric(self):
        cloudwatch = MagicMock()
        with patch.object(metrics, "get_cloudwatch", return_value=cloudwatch):
            metrics.emit_metric("WebhookEventsQueued", dimensions={"EventType": "customer.created"})

        kwargs = cloudwatch.put_metric_data.call_args.kwargs
        assert kwargs["Namespace"] == metrics.NAMESPACE
        datum = kwargs["MetricData"][0]
        assert datum["MetricName"] == "WebhookEventsQueued"
        assert datum["Value"] == 1.0
        assert datum["Dimensions"] == [{"Name": "EventType", "Value": "customer.created"}]

    def test_failure_is_swallowed(self):
        """Metric failures never fail the caller."""
        cloudwatch = MagicMock()
        cloudwatch.put_metric_data.side_effect = RuntimeError("throttled")
        with patch.object(metrics, "get_cloudwatch", return_value=cloudwatch):
            metrics.emit_metric("InvoicesPaid")


class TestEmitBatchMetrics:
    """Tests for emit_batch_metrics()."""

    def test_chunks_to_twenty(self):
        cloudwatch = MagicMock()
        batch = [{"metric_name": f"M{i}", "value": i} for i in range(45)]

        with patch.object(metrics, "get_cloudwatch", return_value=cloudwatch):
            metrics.emit_batch_metrics(batch)

        sizes = [len(c.kwargs["MetricData"]) for c in cloudwatch.put_metric_data.call_args_list]
        assert sizes == [20, 20, 5]

    def test_defaults_unit_to_count(self):
        cloudwatch = MagicMock()
        with patch.object(metrics, "get_cloudwatch", return_value=cloudwatch):
            metrics.emit_batch_metrics([{"metric_name": "InvoicePaymentFailures", "value": 2}])

        datum = cloudwatch.put_metric_data.call_args.kwargs["MetricData"][0]
        assert datum["Unit"] == "Count"
        assert "Dimensions" not in datum

    def test_works_against_mocked_cloudwatch(self, mock_dynamodb):
        metrics.emit_batch_metrics([{"metric_name": "WebhookEventsDispatched", "value": 3}])
