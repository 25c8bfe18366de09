"""
Metrics Collection for message delivery.

Counts sends, fanout deliveries and the reasons a live delivery did not
happen. Values are surfaced by the health endpoint.
"""

from typing import Dict, Any
from collections import defaultdict
from datetime import datetime, timezone
import threading


class MetricsCollector:
    """Collects and manages delivery metrics."""

    def __init__(self):
        self.metrics = defaultdict(int)
        self.lock = threading.Lock()

        # Initialize counters
        for name in (
            "messages_sent_total",
            "messages_published_total",
            "channel_deliveries_total",
            "direct_deliveries_total",
            "delivery_failures_total",
            "recipient_offline_total",
            "recipient_lookup_failures_total",
        ):
            self.metrics[name] = 0

    def increment_counter(self, metric_name: str, value: int = 1):
        """Increment a counter metric."""
        with self.lock:
            self.metrics[metric_name] += value

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics values."""
        with self.lock:
            return {
                "counters": dict(self.metrics),
                "timestamp": datetime.now(timezone.utc).isoformat()
            }

    def message_sent(self):
        """Record that a message was persisted."""
        self.increment_counter("messages_sent_total")

    def message_published(self, channel_deliveries: int, direct_delivered: bool, failures: int):
        """Record the outcome of one fanout."""
        with self.lock:
            self.metrics["messages_published_total"] += 1
            self.metrics["channel_deliveries_total"] += channel_deliveries
            self.metrics["direct_deliveries_total"] += int(direct_delivered)
            self.metrics["delivery_failures_total"] += failures

    def recipient_offline(self):
        self.increment_counter("recipient_offline_total")

    def recipient_lookup_failed(self):
        self.increment_counter("recipient_lookup_failures_total")


# Global metrics instance
metrics_collector = MetricsCollector()
