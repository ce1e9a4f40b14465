"""Orchestrator package - the monitoring loop."""
from .core import UploadMonitor
from .retention import RetentionSweeper
from .retry import DispatchResult, RetryPolicy, dispatch_with_retry

__all__ = ["UploadMonitor", "RetentionSweeper", "DispatchResult", "RetryPolicy", "dispatch_with_retry"]
