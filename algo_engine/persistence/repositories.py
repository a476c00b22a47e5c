"""Repository interfaces consumed by the engine. A Store bundles them with a transaction scope."""

from __future__ import annotations
from abc import ABC, abstractmethod
from datetime import datetime
from typing import ContextManager, List, Optional

from algo_engine.core.types import (
    JobExecution,
    Portfolio,
    PortfolioSnapshot,
    Position,
    ScheduledJob,
    Strategy,
    Trade,
)


class PortfolioRepository(ABC):
    @abstractmethod
    def get(self, portfolio_id: str) -> Portfolio:
        """Raises NotFoundError."""

    @abstractmethod
    def list(self) -> List[Portfolio]:
        pass

    @abstractmethod
    def save(self, portfolio: Portfolio) -> None:
        pass


class PositionRepository(ABC):
    @abstractmethod
    def get(self, portfolio_id: str, symbol: str) -> Optional[Position]:
        pass

    @abstractmethod
    def list(self, portfolio_id: str) -> List[Position]:
        pass

    @abstractmethod
    def upsert(self, position: Position) -> None:
        """Insert or replace the position keyed by (portfolio_id, symbol)."""

    @abstractmethod
    def delete(self, portfolio_id: str, symbol: str) -> None:
        pass


class TradeRepository(ABC):
    @abstractmethod
    def get(self, trade_id: str) -> Trade:
        """Raises NotFoundError."""

    @abstractmethod
    def insert_if_none_in_flight(self, trade: Trade) -> Trade:
        """
        Atomically insert `trade` unless a non-terminal trade exists for the same
        (portfolio_id, symbol, strategy_id), or `trade` is a SELL and any SELL for
        (portfolio_id, symbol) is still in flight. Raises ConflictError in that case.
        """

    @abstractmethod
    def save(self, trade: Trade) -> None:
        pass

    @abstractmethod
    def list(self, portfolio_id: Optional[str] = None) -> List[Trade]:
        pass

    @abstractmethod
    def list_open(self, portfolio_id: Optional[str] = None) -> List[Trade]:
        """Trades not yet in a terminal state, oldest first."""

    @abstractmethod
    def list_filled_since(self, portfolio_id: str, since: datetime) -> List[Trade]:
        """Trades with any fill executed at or after `since`."""


class StrategyRepository(ABC):
    @abstractmethod
    def get(self, strategy_id: str) -> Strategy:
        """Raises NotFoundError."""

    @abstractmethod
    def list_enabled(self) -> List[Strategy]:
        pass

    @abstractmethod
    def save(self, strategy: Strategy) -> None:
        pass


class SnapshotRepository(ABC):
    @abstractmethod
    def add(self, snapshot: PortfolioSnapshot) -> None:
        pass

    @abstractmethod
    def list(self, portfolio_id: str) -> List[PortfolioSnapshot]:
        """Oldest first."""

    def latest(self, portfolio_id: str) -> Optional[PortfolioSnapshot]:
        snapshots = self.list(portfolio_id)
        return snapshots[-1] if snapshots else None


class JobRepository(ABC):
    @abstractmethod
    def get_job(self, job: str) -> Optional[ScheduledJob]:
        """None when the job has never run and was never configured."""

    @abstractmethod
    def save_job(self, job: ScheduledJob) -> None:
        pass

    @abstractmethod
    def list_jobs(self) -> List[ScheduledJob]:
        pass

    @abstractmethod
    def save_execution(self, execution: JobExecution) -> None:
        """Insert or replace by id."""

    @abstractmethod
    def history(self, job: str, limit: int = 10) -> List[JobExecution]:
        """Most recent first."""


class Store(ABC):
    """All repositories plus an atomic scope for multi-record updates."""

    portfolios: PortfolioRepository
    positions: PositionRepository
    trades: TradeRepository
    strategies: StrategyRepository
    snapshots: SnapshotRepository
    jobs: JobRepository

    @abstractmethod
    def transaction(self) -> ContextManager[None]:
        """Everything inside commits together and is isolated from concurrent transactions."""
