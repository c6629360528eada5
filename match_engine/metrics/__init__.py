"""Engine rollups and health checks."""

from .metrics_aggregator import MetricsAggregator

__all__ = ['MetricsAggregator']
