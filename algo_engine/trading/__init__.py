"""Trading: lifecycle tracking, reconciliation, execution pipeline, scheduled jobs."""

from algo_engine.trading.reconciler import PositionReconciler, FillResult, SyncReport
from algo_engine.trading.lifecycle import OrderLifecycleTracker, PollReport
from algo_engine.trading.service import TradingService, ExecutionReport
from algo_engine.trading.engine import TradingEngine, JobResult
from algo_engine.trading.monitor import JobMonitor

__all__ = [
    "PositionReconciler",
    "FillResult",
    "SyncReport",
    "OrderLifecycleTracker",
    "PollReport",
    "TradingService",
    "ExecutionReport",
    "TradingEngine",
    "JobResult",
    "JobMonitor",
]
