"""
Explorer Metrics Collection

Prometheus metrics for the message lifecycle engine: settlement outcomes,
resubmissions, counter failures and batch operation latency.

Author: Ayodele Oladeji
Date: 2026-10-14
"""

from typing import Optional

from prometheus_client import (
    Counter,
    Histogram,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
)


class ExplorerMetrics:
    """
    Prometheus metrics collector for console operations.

    Entity labels use the entity path (``queue`` or ``topic/Subscriptions/sub``).
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize metrics collectors.

        Args:
            registry: Prometheus registry (a private one if None)
        """
        self.registry = registry if registry is not None else CollectorRegistry()

        self.messages_completed_total = Counter(
            'sbexplorer_messages_completed_total',
            'Messages completed (removed) by console operations',
            ['entity', 'sub_queue', 'operation'],
            registry=self.registry
        )

        self.messages_abandoned_total = Counter(
            'sbexplorer_messages_abandoned_total',
            'Messages abandoned by console operations',
            ['entity', 'sub_queue', 'reason'],
            registry=self.registry
        )

        self.messages_resubmitted_total = Counter(
            'sbexplorer_messages_resubmitted_total',
            'Dead-lettered messages sent back to their entity',
            ['entity'],
            registry=self.registry
        )

        self.message_failures_total = Counter(
            'sbexplorer_message_failures_total',
            'Per-message failures recovered inside a batch operation',
            ['operation', 'error_type'],
            registry=self.registry
        )

        self.counter_failures_total = Counter(
            'sbexplorer_counter_failures_total',
            'Runtime counter fetches that failed during inventory',
            ['entity_type'],
            registry=self.registry
        )

        self.batch_operations_total = Counter(
            'sbexplorer_batch_operations_total',
            'Batch operations by outcome',
            ['operation', 'outcome'],
            registry=self.registry
        )

        self.batch_duration_seconds = Histogram(
            'sbexplorer_batch_duration_seconds',
            'Batch operation duration',
            ['operation'],
            buckets=[0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0],
            registry=self.registry
        )

    def track_message_completed(self, entity: str, sub_queue: str, operation: str) -> None:
        self.messages_completed_total.labels(entity=entity, sub_queue=sub_queue, operation=operation).inc()

    def track_message_abandoned(self, entity: str, sub_queue: str, reason: str) -> None:
        """
        Track an abandon.

        Args:
            entity: Entity path
            sub_queue: Sub-queue the message was received from
            reason: ``unmatched`` (not a target) or ``failed`` (action failed)
        """
        self.messages_abandoned_total.labels(entity=entity, sub_queue=sub_queue, reason=reason).inc()

    def track_message_resubmitted(self, entity: str) -> None:
        self.messages_resubmitted_total.labels(entity=entity).inc()

    def track_message_failure(self, operation: str, error_type: str) -> None:
        self.message_failures_total.labels(operation=operation, error_type=error_type).inc()

    def track_counter_failure(self, entity_type: str) -> None:
        self.counter_failures_total.labels(entity_type=entity_type).inc()

    def track_batch_operation(self, operation: str, outcome: str, duration: float) -> None:
        self.batch_operations_total.labels(operation=operation, outcome=outcome).inc()
        self.batch_duration_seconds.labels(operation=operation).observe(duration)

    def generate_metrics(self) -> bytes:
        """
        Generate Prometheus metrics output.

        Returns:
            Metrics in Prometheus text format
        """
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST


# Global metrics instance
_metrics: Optional[ExplorerMetrics] = None


def get_metrics() -> ExplorerMetrics:
    """
    Get global metrics instance (singleton).

    Returns:
        ExplorerMetrics instance
    """
    global _metrics
    if _metrics is None:
        _metrics = ExplorerMetrics()
    return _metrics


def reset_metrics() -> None:
    """Reset global metrics instance (for testing)."""
    global _metrics
    _metrics = None
