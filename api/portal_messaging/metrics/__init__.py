"""Prometheus metrics for the conversation aggregation pipeline.

Usage:
    from portal_messaging.metrics.messaging_metrics import aggregation_runs_total
"""

from portal_messaging.metrics import messaging_metrics

__all__ = ["messaging_metrics"]
