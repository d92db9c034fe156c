"""
This package provides the counters and event emission of the context selector.

`SelectionMetrics` holds the process-wide hit/miss and token counters, and
`SelectionMetricsEmitter` broadcasts individual events to the log or a Redis
stream.
"""
from .emitter import SelectionMetricsEmitter
from .selection_metrics import MetricsSnapshot, SelectionMetrics, TokenUsage

__all__ = ["SelectionMetricsEmitter", "SelectionMetrics", "MetricsSnapshot", "TokenUsage"]
