#!/usr/bin/env python3
"""
Algo Engine CLI: tick | backtest
Usage:
  python main.py tick [--config config.yaml] [--prices DIR] [--force]
  python main.py backtest --symbol AAPL [--prices DIR] [--strategy ID] [--config config.yaml]
"""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path

# Project root
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from algo_engine.alerts.events import AlertChannel
from algo_engine.alerts.telegram import TelegramNotifier
from algo_engine.backtesting.engine import BacktestEngine
from algo_engine.core.config import Config, load_config
from algo_engine.core.errors import AppError
from algo_engine.core.logger import setup_logging
from algo_engine.core.types import Portfolio
from algo_engine.execution.factory import create_broker_client
from algo_engine.execution.simulated import SimulatedBrokerClient
from algo_engine.persistence.memory import InMemoryStore
from algo_engine.strategies.evaluator import StrategyEvaluator
from algo_engine.trading.engine import JobResult, TradingEngine
from algo_engine.utils.cadence import cadence_minutes
from algo_engine.utils.data import HistoryLoader

logger = logging.getLogger("algo_engine")


def seed_store(config: Config) -> InMemoryStore:
    """In-memory store holding the configured portfolio and strategies."""
    store = InMemoryStore()
    store.portfolios.save(Portfolio(id=config.portfolio_id, name=config.portfolio_name, cash_balance=config.initial_cash))
    for strategy in config.strategies:
        store.strategies.save(strategy)
    return store


def print_job(result: JobResult) -> None:
    status = "skipped" if result.skipped else f"{result.succeeded}/{result.processed} ok"
    print(f"[{result.job}] {status}")
    for key, value in result.details.items():
        print(f"  {key}: {value}")
    for err in result.errors:
        print(f"  ERROR {err}")


def run_tick(config_path: Path | None, prices: Path | None, force: bool) -> int:
    """Run every scheduled job once against a freshly seeded store."""
    config = load_config(config_path, ROOT)
    setup_logging(config.log_level, config.log_dir, config.log_file, secrets=config.secrets)
    if not config.strategies:
        logger.error("No strategies configured in %s", config_path or ROOT / "config.yaml")
        return 1
    history = HistoryLoader(prices)
    broker = create_broker_client(config)
    if isinstance(broker, SimulatedBrokerClient):
        # Quote the simulated market at the latest close of the loaded history.
        for strategy in config.strategies:
            for symbol in strategy.stock_universe:
                bars = history(symbol)
                if bars:
                    broker.set_price(symbol, bars[-1].close)
    alerts = AlertChannel()
    engine = TradingEngine.from_config(config, seed_store(config), broker=broker, alerts=alerts)
    logger.info(
        "Cadences (min): strategy=%d orders=%d sync=%d snapshot=%d",
        cadence_minutes(config.strategy_cadence), cadence_minutes(config.order_status_cadence),
        cadence_minutes(config.position_sync_cadence), cadence_minutes(config.snapshot_cadence),
    )
    results = [
        engine.run_strategy_execution(history, force=force),
        engine.run_order_status_poll(force=force),
        engine.run_position_sync(force=force),
        engine.run_portfolio_snapshot(),
    ]
    for result in results:
        print_job(result)
    for job in engine.monitor.stats():
        status = job.last_status.value if job.last_status else "never run"
        print(f"[job] {job.job}: {status}, runs={job.run_count} failures={job.failure_count} enabled={job.enabled}")
    events = alerts.peek()
    if events:
        print("\n--- Alerts ---")
        for event in events:
            print(event.render())
            print()
    TelegramNotifier(config.telegram_bot_token, config.telegram_chat_id).flush(alerts)
    return 1 if any(r.errors for r in results) else 0


def run_backtest(config_path: Path | None, prices: Path | None, symbol: str, strategy_id: str | None) -> int:
    """Replay a configured strategy over one symbol's history and print metrics."""
    config = load_config(config_path, ROOT)
    setup_logging(config.log_level, config.log_dir, config.log_file, secrets=config.secrets)
    strategies = [s for s in config.strategies if strategy_id in (None, s.id)]
    if not strategies:
        logger.error("Strategy %s not found in config", strategy_id)
        return 1
    loader = HistoryLoader(prices, limit=100000, synthetic_bars=500)
    engine = BacktestEngine(
        strategy=strategies[0],
        evaluator=StrategyEvaluator(config.signal_threshold),
        initial_capital=config.backtest_initial_capital,
        slippage_bps=config.slippage_bps,
        fee_bps=config.fee_bps,
    )
    result = engine.run(loader.frame(symbol.upper()), symbol=symbol.upper())
    m = result.metrics
    if m:
        print("\n--- Backtest Results ---")
        print(f"Strategy: {strategies[0].name} | Symbol: {symbol.upper()}")
        print(f"Total trades: {m.total_trades} (wins: {m.winning_trades}, losses: {m.losing_trades})")
        print(f"Total return: {m.total_return_pct:.2f}%")
        print(f"Sharpe ratio: {m.sharpe_ratio:.2f}")
        print(f"Sortino ratio: {m.sortino_ratio:.2f}")
        print(f"Max drawdown: {m.max_drawdown_pct:.2f}%")
        print(f"Win rate: {m.win_rate*100:.1f}%")
        print(f"Profit factor: {m.profit_factor:.2f}")
        print(f"Expectancy: {m.expectancy:.2f} USD/trade")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Algo Engine CLI")
    parser.add_argument("mode", choices=["tick", "backtest"], help="Run one scheduler tick or a backtest")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    parser.add_argument("--prices", type=Path, default=None, help="Directory of <SYMBOL>.csv price files")
    parser.add_argument("--force", action="store_true", help="Ignore market hours")
    parser.add_argument("--symbol", default=None, help="Symbol to backtest")
    parser.add_argument("--strategy", default=None, help="Strategy id to backtest (default: first)")
    args = parser.parse_args()
    try:
        if args.mode == "backtest":
            if not args.symbol:
                parser.error("backtest needs --symbol")
            return run_backtest(args.config, args.prices, args.symbol, args.strategy)
        return run_tick(args.config, args.prices, args.force)
    except AppError as e:
        logger.error("%s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
