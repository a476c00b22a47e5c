"""
Scheduled jobs. Each method is one short, stateless invocation meant to be fired by an
external scheduler; all coordination lives in the store. Failures are isolated per
strategy, trade or portfolio and reported in the JobResult.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from algo_engine.alerts.events import AlertChannel
from algo_engine.core.config import Config
from algo_engine.core.types import PortfolioSnapshot, utcnow
from algo_engine.execution.base import BrokerClient
from algo_engine.execution.factory import create_broker_client
from algo_engine.persistence.repositories import Store
from algo_engine.strategies.evaluator import HistoryProvider, StrategyEvaluator
from algo_engine.trading.lifecycle import OrderLifecycleTracker
from algo_engine.trading.monitor import MAX_CONSECUTIVE_FAILURES, JobMonitor
from algo_engine.trading.reconciler import PositionReconciler
from algo_engine.trading.service import TradingService
from algo_engine.utils.market_hours import is_market_open

logger = logging.getLogger("algo_engine.engine")

STRATEGY_EXECUTION = "strategy_execution"
ORDER_STATUS_POLL = "order_status_poll"
POSITION_SYNC = "position_sync"
PORTFOLIO_SNAPSHOT = "portfolio_snapshot"
JOBS = (STRATEGY_EXECUTION, ORDER_STATUS_POLL, POSITION_SYNC, PORTFOLIO_SNAPSHOT)


@dataclass
class JobResult:
    job: str
    processed: int = 0
    succeeded: int = 0
    errors: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)
    skipped: bool = False
    execution_id: Optional[str] = None

    @property
    def failed(self) -> int:
        return self.processed - self.succeeded


class TradingEngine:
    """Wires store, broker, alerts and components; exposes one method per scheduled job."""

    def __init__(
        self,
        store: Store,
        broker: BrokerClient,
        alerts: Optional[AlertChannel] = None,
        evaluator: Optional[StrategyEvaluator] = None,
        clock: Callable = utcnow,
        stale_pending_after: timedelta = timedelta(minutes=10),
        price_tolerance: float = 0.01,
        market_hours_only: bool = False,
        max_job_failures: int = MAX_CONSECUTIVE_FAILURES,
    ):
        self.store = store
        self.broker = broker
        self.alerts = alerts if alerts is not None else AlertChannel()
        self.evaluator = evaluator if evaluator is not None else StrategyEvaluator()
        self.clock = clock
        self.market_hours_only = market_hours_only
        self.reconciler = PositionReconciler(store, broker, self.alerts, clock, price_tolerance)
        self.tracker = OrderLifecycleTracker(store, broker, self.alerts, self.reconciler, clock, stale_pending_after)
        self.service = TradingService(store, broker, self.alerts, self.tracker, self.evaluator, clock)
        self.monitor = JobMonitor(store, clock, max_job_failures)

    @classmethod
    def from_config(
        cls,
        config: Config,
        store: Store,
        broker: Optional[BrokerClient] = None,
        alerts: Optional[AlertChannel] = None,
    ) -> "TradingEngine":
        engine = cls(
            store=store,
            broker=broker if broker is not None else create_broker_client(config),
            alerts=alerts,
            evaluator=StrategyEvaluator(config.signal_threshold),
            stale_pending_after=timedelta(minutes=config.stale_pending_minutes),
            price_tolerance=config.reconcile_price_tolerance,
            market_hours_only=config.market_hours_only,
            max_job_failures=config.max_job_failures,
        )
        for job in JOBS:
            engine.monitor.set_enabled(job, job not in config.disabled_jobs)
        return engine

    def _market_closed(self, job: str, force: bool) -> Optional[JobResult]:
        if force or not self.market_hours_only or is_market_open(self.clock()):
            return None
        logger.info("%s skipped: market closed", job)
        return JobResult(job=job, skipped=True, details={"reason": "market closed"})

    def _monitored(self, job: str, body: Callable[[], JobResult]) -> JobResult:
        """
        Run a job body under the job monitor. The run counts as failed when the body
        raises or when every item it processed failed.
        """
        held = self.monitor.should_run(job)
        if held:
            return JobResult(job=job, skipped=True, details={"reason": held})
        execution = self.monitor.start(job)
        try:
            result = body()
        except Exception as e:
            logger.exception("Job %s failed", job)
            self.monitor.fail(execution, str(e))
            return JobResult(job=job, errors=[str(e)], execution_id=execution.id)
        result.execution_id = execution.id
        summary = {"processed": result.processed, "succeeded": result.succeeded, "errors": result.errors[:20]}
        if result.processed and not result.succeeded:
            self.monitor.fail(execution, "; ".join(result.errors[:3]) or "every item failed", summary)
        else:
            self.monitor.complete(execution, summary)
        return result

    def run_strategy_execution(self, history_provider: HistoryProvider, force: bool = False) -> JobResult:
        """Evaluate and execute every enabled strategy."""
        closed = self._market_closed(STRATEGY_EXECUTION, force)
        if closed is not None:
            return closed
        return self._monitored(STRATEGY_EXECUTION, lambda: self._execute_strategies(history_provider))

    def _execute_strategies(self, history_provider: HistoryProvider) -> JobResult:
        result = JobResult(job=STRATEGY_EXECUTION)
        for strategy in self.store.strategies.list_enabled():
            result.processed += 1
            try:
                report = self.service.execute_strategy(strategy, history_provider)
            except Exception as e:
                logger.exception("Strategy %s failed", strategy.id)
                result.errors.append(f"{strategy.id}: {e}")
                continue
            result.details[strategy.id] = {
                "signals": {s.symbol: s.type.value for s in report.signals},
                "trades": len(report.trades),
                "rejected": report.rejected,
                "skipped": report.skipped,
            }
            if report.ok:
                result.succeeded += 1
            else:
                result.errors.extend(f"{strategy.id}/{sym or '-'}: {msg}" for sym, msg in report.errors)
        return result

    def run_order_status_poll(self, force: bool = False) -> JobResult:
        closed = self._market_closed(ORDER_STATUS_POLL, force)
        if closed is not None:
            return closed
        return self._monitored(ORDER_STATUS_POLL, self._poll_orders)

    def _poll_orders(self) -> JobResult:
        report = self.tracker.poll()
        return JobResult(
            job=ORDER_STATUS_POLL,
            processed=report.checked,
            succeeded=report.checked - len(report.errors),
            errors=[f"{tid}: {msg}" for tid, msg in report.errors],
            details={"updated": report.updated},
        )

    def run_position_sync(self, force: bool = False) -> JobResult:
        closed = self._market_closed(POSITION_SYNC, force)
        if closed is not None:
            return closed
        return self._monitored(POSITION_SYNC, self._sync_positions)

    def _sync_positions(self) -> JobResult:
        result = JobResult(job=POSITION_SYNC)
        for portfolio in self.store.portfolios.list():
            result.processed += 1
            try:
                report = self.reconciler.sync_with_broker(portfolio.id)
            except Exception as e:
                logger.exception("Position sync failed for %s", portfolio.id)
                result.errors.append(f"{portfolio.id}: {e}")
                continue
            result.succeeded += 1
            result.details[portfolio.id] = {
                "corrected": report.corrected, "created": report.created,
                "removed": report.removed, "skipped": report.skipped,
            }
        return result

    def run_portfolio_snapshot(self) -> JobResult:
        """End-of-day valuation per portfolio. Runs regardless of market hours."""
        return self._monitored(PORTFOLIO_SNAPSHOT, self._snapshot_all)

    def _snapshot_all(self) -> JobResult:
        result = JobResult(job=PORTFOLIO_SNAPSHOT)
        for portfolio in self.store.portfolios.list():
            result.processed += 1
            try:
                snapshot = self.snapshot_portfolio(portfolio.id)
            except Exception as e:
                logger.exception("Snapshot failed for %s", portfolio.id)
                result.errors.append(f"{portfolio.id}: {e}")
                continue
            result.succeeded += 1
            result.details[portfolio.id] = {
                "total_value": snapshot.total_value,
                "daily_return_percent": snapshot.daily_return_percent,
            }
        return result

    def snapshot_portfolio(self, portfolio_id: str) -> PortfolioSnapshot:
        self.reconciler.refresh_prices(portfolio_id)
        portfolio = self.store.portfolios.get(portfolio_id)
        positions = self.store.positions.list(portfolio_id)
        positions_value = sum(p.market_value for p in positions)
        total = portfolio.cash_balance + positions_value
        previous = self.store.snapshots.latest(portfolio_id)
        daily_return = total - previous.total_value if previous else 0.0
        daily_pct = daily_return / previous.total_value * 100 if previous and previous.total_value else 0.0
        snapshot = PortfolioSnapshot(
            portfolio_id=portfolio_id,
            timestamp=self.clock(),
            total_value=total,
            cash_balance=portfolio.cash_balance,
            positions_value=positions_value,
            position_count=len(positions),
            daily_return=daily_return,
            daily_return_percent=daily_pct,
        )
        self.store.snapshots.add(snapshot)
        logger.info("Snapshot %s: value %.2f (%+.2f%%)", portfolio_id, total, daily_pct)
        return snapshot
