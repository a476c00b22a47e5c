"""
Check that .env exists and broker credentials resolve (without printing secrets).
Run: python test_api.py
"""

from pathlib import Path

from algo_engine.core.config import load_config
from algo_engine.execution.factory import create_broker_client


def main():
    root = Path(__file__).resolve().parent
    env_path = root / ".env"
    print("Project root:", root)
    print(".env path:", env_path)
    print(".env exists:", env_path.exists())
    if not env_path.exists():
        print("Create .env from .env.example and add Alpaca API keys (or run with the simulated broker).")
    config = load_config(project_root=root)
    print("ALPACA_BASE_URL:", config.alpaca_base_url, "->", "PAPER" if "paper" in config.alpaca_base_url else "LIVE")
    print("API key:", "SET" if config.alpaca_api_key else "NOT SET")
    print("API secret:", "SET" if config.alpaca_api_secret else "NOT SET")
    broker = create_broker_client(config)
    print("Broker:", type(broker).__name__)
    if config.has_broker_credentials:
        quote = broker.get_latest_quote("SPY")
        print("SPY quote:", quote.bid, "/", quote.ask)
    telegram = config.telegram_bot_token and config.telegram_chat_id
    print("Telegram alerts:", "SET" if telegram else "NOT SET")


if __name__ == "__main__":
    main()
