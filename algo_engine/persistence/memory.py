"""
In-memory Store. A single re-entrant lock serializes transactions; records are
copied on the way in and out so callers never share mutable state with the store.

Transactions are not rolled back on error: callers re-read and validate inside the
transaction before writing anything.
"""

from __future__ import annotations
import copy
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from algo_engine.core.errors import ConflictError, NotFoundError
from algo_engine.core.types import (
    JobExecution,
    Portfolio,
    PortfolioSnapshot,
    Position,
    ScheduledJob,
    Strategy,
    Trade,
)
from algo_engine.persistence.repositories import (
    JobRepository,
    PortfolioRepository,
    PositionRepository,
    SnapshotRepository,
    Store,
    StrategyRepository,
    TradeRepository,
)


class _MemoryPortfolios(PortfolioRepository):
    def __init__(self, lock: threading.RLock):
        self._lock = lock
        self._rows: Dict[str, Portfolio] = {}

    def get(self, portfolio_id: str) -> Portfolio:
        with self._lock:
            if portfolio_id not in self._rows:
                raise NotFoundError("portfolio", portfolio_id)
            return copy.deepcopy(self._rows[portfolio_id])

    def list(self) -> List[Portfolio]:
        with self._lock:
            return [copy.deepcopy(p) for p in self._rows.values()]

    def save(self, portfolio: Portfolio) -> None:
        with self._lock:
            self._rows[portfolio.id] = copy.deepcopy(portfolio)


class _MemoryPositions(PositionRepository):
    def __init__(self, lock: threading.RLock):
        self._lock = lock
        self._rows: Dict[Tuple[str, str], Position] = {}

    def get(self, portfolio_id: str, symbol: str) -> Optional[Position]:
        with self._lock:
            p = self._rows.get((portfolio_id, symbol))
            return copy.deepcopy(p) if p else None

    def list(self, portfolio_id: str) -> List[Position]:
        with self._lock:
            return [copy.deepcopy(p) for (pid, _), p in sorted(self._rows.items()) if pid == portfolio_id]

    def upsert(self, position: Position) -> None:
        if position.quantity <= 0:
            raise ValueError(f"open position must have positive quantity: {position.symbol} {position.quantity}")
        with self._lock:
            self._rows[(position.portfolio_id, position.symbol)] = copy.deepcopy(position)

    def delete(self, portfolio_id: str, symbol: str) -> None:
        with self._lock:
            self._rows.pop((portfolio_id, symbol), None)


class _MemoryTrades(TradeRepository):
    def __init__(self, lock: threading.RLock):
        self._lock = lock
        self._rows: Dict[str, Trade] = {}

    def get(self, trade_id: str) -> Trade:
        with self._lock:
            if trade_id not in self._rows:
                raise NotFoundError("trade", trade_id)
            return copy.deepcopy(self._rows[trade_id])

    def insert_if_none_in_flight(self, trade: Trade) -> Trade:
        with self._lock:
            for existing in self._rows.values():
                if existing.blocks(trade):
                    raise ConflictError(
                        f"trade {existing.id} already in flight for {existing.in_flight_key}",
                        details={"existing_trade_id": existing.id},
                    )
            if trade.id in self._rows:
                raise ConflictError(f"trade {trade.id} already exists")
            self._rows[trade.id] = copy.deepcopy(trade)
            return copy.deepcopy(trade)

    def save(self, trade: Trade) -> None:
        with self._lock:
            self._rows[trade.id] = copy.deepcopy(trade)

    def list(self, portfolio_id: Optional[str] = None) -> List[Trade]:
        with self._lock:
            rows = [t for t in self._rows.values() if portfolio_id is None or t.portfolio_id == portfolio_id]
            return [copy.deepcopy(t) for t in sorted(rows, key=lambda t: t.created_at)]

    def list_open(self, portfolio_id: Optional[str] = None) -> List[Trade]:
        return [t for t in self.list(portfolio_id) if not t.status.is_terminal]

    def list_filled_since(self, portfolio_id: str, since: datetime) -> List[Trade]:
        return [
            t for t in self.list(portfolio_id)
            if t.filled_quantity > 0 and t.executed_at is not None and t.executed_at >= since
        ]


class _MemoryStrategies(StrategyRepository):
    def __init__(self, lock: threading.RLock):
        self._lock = lock
        self._rows: Dict[str, Strategy] = {}

    def get(self, strategy_id: str) -> Strategy:
        with self._lock:
            if strategy_id not in self._rows:
                raise NotFoundError("strategy", strategy_id)
            return copy.deepcopy(self._rows[strategy_id])

    def list_enabled(self) -> List[Strategy]:
        with self._lock:
            return [copy.deepcopy(s) for s in self._rows.values() if s.enabled]

    def save(self, strategy: Strategy) -> None:
        with self._lock:
            self._rows[strategy.id] = copy.deepcopy(strategy)


class _MemorySnapshots(SnapshotRepository):
    def __init__(self, lock: threading.RLock):
        self._lock = lock
        self._rows: List[PortfolioSnapshot] = []

    def add(self, snapshot: PortfolioSnapshot) -> None:
        with self._lock:
            self._rows.append(copy.deepcopy(snapshot))

    def list(self, portfolio_id: str) -> List[PortfolioSnapshot]:
        with self._lock:
            rows = [s for s in self._rows if s.portfolio_id == portfolio_id]
            return [copy.deepcopy(s) for s in sorted(rows, key=lambda s: s.timestamp)]


class _MemoryJobs(JobRepository):
    def __init__(self, lock: threading.RLock):
        self._lock = lock
        self._jobs: Dict[str, ScheduledJob] = {}
        self._executions: Dict[str, JobExecution] = {}

    def get_job(self, job: str) -> Optional[ScheduledJob]:
        with self._lock:
            found = self._jobs.get(job)
            return copy.deepcopy(found) if found else None

    def save_job(self, job: ScheduledJob) -> None:
        with self._lock:
            self._jobs[job.job] = copy.deepcopy(job)

    def list_jobs(self) -> List[ScheduledJob]:
        with self._lock:
            return [copy.deepcopy(j) for _, j in sorted(self._jobs.items())]

    def save_execution(self, execution: JobExecution) -> None:
        with self._lock:
            self._executions[execution.id] = copy.deepcopy(execution)

    def history(self, job: str, limit: int = 10) -> List[JobExecution]:
        with self._lock:
            rows = [e for e in self._executions.values() if e.job == job]
            rows.sort(key=lambda e: e.started_at, reverse=True)
            return [copy.deepcopy(e) for e in rows[:limit]]


class InMemoryStore(Store):
    """Thread-safe reference Store for tests, demos and single-process deployments."""

    def __init__(self):
        self._lock = threading.RLock()
        self.portfolios = _MemoryPortfolios(self._lock)
        self.positions = _MemoryPositions(self._lock)
        self.trades = _MemoryTrades(self._lock)
        self.strategies = _MemoryStrategies(self._lock)
        self.snapshots = _MemorySnapshots(self._lock)
        self.jobs = _MemoryJobs(self._lock)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            yield
