"""
Backtest engine: replays one symbol bar by bar with the live strategy evaluator and
risk sizing. Signals use closed bars only; entries fill at the next bar's open.
Long-only, one position at a time, slippage and fees in basis points.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import pandas as pd

from algo_engine.analytics.metrics import PerformanceMetrics, compute_metrics
from algo_engine.core.types import PriceBar, SignalType, Strategy
from algo_engine.risk.manager import RiskManager
from algo_engine.strategies.evaluator import StrategyEvaluator
from algo_engine.utils.data import bars_from_frame

logger = logging.getLogger("algo_engine.backtest")


@dataclass
class ClosedTrade:
    """Round trip for analytics."""
    symbol: str
    quantity: int
    entry_price: float
    exit_price: float
    pnl: float
    pnl_pct: float
    entry_time: datetime
    exit_time: datetime
    exit_reason: str  # "stop_loss" | "take_profit" | "signal" | "end_of_data"
    fees: float = 0.0


@dataclass
class BacktestResult:
    trades: List[ClosedTrade] = field(default_factory=list)
    equity_curve: List[float] = field(default_factory=list)
    metrics: Optional[PerformanceMetrics] = None


@dataclass
class _Open:
    quantity: int
    entry_price: float
    entry_time: datetime
    stop: float
    target: Optional[float]


class BacktestEngine:
    def __init__(
        self,
        strategy: Strategy,
        evaluator: Optional[StrategyEvaluator] = None,
        initial_capital: float = 10000.0,
        slippage_bps: float = 5.0,
        fee_bps: float = 0.0,
        warmup_bars: int = 2,
    ):
        self.strategy = strategy
        self.evaluator = evaluator if evaluator is not None else StrategyEvaluator()
        self.risk = RiskManager(strategy.risk_management)
        self.initial_capital = initial_capital
        self.slippage_bps = slippage_bps
        self.fee_bps = fee_bps
        self.warmup_bars = warmup_bars

    def _fee(self, notional: float) -> float:
        return notional * self.fee_bps / 10000.0

    def _close(self, pos: _Open, symbol: str, price: float, when: datetime, reason: str) -> ClosedTrade:
        exit_price = price / (1 + self.slippage_bps / 10000.0)
        fees = self._fee(pos.quantity * pos.entry_price) + self._fee(pos.quantity * exit_price)
        pnl = (exit_price - pos.entry_price) * pos.quantity - fees
        return ClosedTrade(
            symbol=symbol,
            quantity=pos.quantity,
            entry_price=pos.entry_price,
            exit_price=exit_price,
            pnl=pnl,
            pnl_pct=pnl / (pos.quantity * pos.entry_price) * 100,
            entry_time=pos.entry_time,
            exit_time=when,
            exit_reason=reason,
            fees=fees,
        )

    def run(self, data: pd.DataFrame | List[PriceBar], symbol: Optional[str] = None) -> BacktestResult:
        """Run over an OHLCV frame (time, open, high, low, close, volume) or a list of PriceBars."""
        bars = bars_from_frame(data) if isinstance(data, pd.DataFrame) else list(data)
        symbol = symbol or (self.strategy.stock_universe[0] if self.strategy.stock_universe else "SYMBOL")
        self.evaluator.validate(self.strategy)
        cash = self.initial_capital
        equity_curve = [cash]
        trades: List[ClosedTrade] = []
        pos: Optional[_Open] = None
        slip = 1 + self.slippage_bps / 10000.0

        for i in range(max(1, self.warmup_bars), len(bars)):
            bar = bars[i]
            # Signal from closed bars only (up to i-1), acted on at this bar's open.
            signal = self.evaluator.evaluate(self.strategy, symbol, bars[:i])

            if pos is not None and signal.type == SignalType.SELL:
                closed = self._close(pos, symbol, bar.open, bar.timestamp, "signal")
                cash += closed.quantity * closed.exit_price - self._fee(closed.quantity * closed.exit_price)
                trades.append(closed)
                pos = None
            elif pos is None and signal.type == SignalType.BUY:
                entry = bar.open * slip
                qty = self.risk.size_position(cash, entry, cash - self.strategy.risk_management.min_cash_reserve)
                if qty >= 1:
                    rm = self.strategy.risk_management
                    cash -= qty * entry + self._fee(qty * entry)
                    pos = _Open(
                        quantity=qty,
                        entry_price=entry,
                        entry_time=bar.timestamp,
                        stop=entry * (1 - rm.stop_loss_percent),
                        target=entry * (1 + rm.take_profit_percent) if rm.take_profit_percent else None,
                    )

            # Stop-loss first when both levels are inside the bar's range.
            if pos is not None:
                exit_price, reason = None, ""
                if bar.low <= pos.stop:
                    exit_price, reason = min(pos.stop, bar.open), "stop_loss"
                elif pos.target is not None and bar.high >= pos.target:
                    exit_price, reason = max(pos.target, bar.open), "take_profit"
                if exit_price is not None:
                    closed = self._close(pos, symbol, exit_price, bar.timestamp, reason)
                    cash += closed.quantity * closed.exit_price - self._fee(closed.quantity * closed.exit_price)
                    trades.append(closed)
                    pos = None

            equity_curve.append(cash + (pos.quantity * bar.close if pos else 0.0))

        if pos is not None and bars:
            last = bars[-1]
            closed = self._close(pos, symbol, last.close, last.timestamp, "end_of_data")
            cash += closed.quantity * closed.exit_price - self._fee(closed.quantity * closed.exit_price)
            trades.append(closed)
            equity_curve[-1] = cash

        metrics = compute_metrics([t.pnl for t in trades], equity_curve)
        logger.info("Backtest %s on %s: %d trades, return %.2f%%", self.strategy.id, symbol, len(trades), metrics.total_return_pct)
        return BacktestResult(trades=trades, equity_curve=equity_curve, metrics=metrics)
