"""Persistence: repository interfaces and the in-memory store."""

from algo_engine.persistence.repositories import (
    PortfolioRepository,
    PositionRepository,
    TradeRepository,
    StrategyRepository,
    SnapshotRepository,
    JobRepository,
    Store,
)
from algo_engine.persistence.memory import InMemoryStore

__all__ = [
    "PortfolioRepository",
    "PositionRepository",
    "TradeRepository",
    "StrategyRepository",
    "SnapshotRepository",
    "JobRepository",
    "Store",
    "InMemoryStore",
]
