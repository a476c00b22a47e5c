"""Pick the live or simulated broker once, from configured credentials."""

from __future__ import annotations
import logging
from typing import Optional

import requests

from algo_engine.core.config import Config
from algo_engine.execution.alpaca import AlpacaBrokerClient
from algo_engine.execution.base import BrokerClient
from algo_engine.execution.simulated import SimulatedBrokerClient

logger = logging.getLogger("algo_engine.execution")


def create_broker_client(config: Config, session: Optional[requests.Session] = None) -> BrokerClient:
    """Alpaca when both credentials resolve (and are not placeholders), simulated otherwise."""
    if config.has_broker_credentials:
        return AlpacaBrokerClient(
            config.alpaca_api_key,
            config.alpaca_api_secret,
            base_url=config.alpaca_base_url,
            data_url=config.alpaca_data_url,
            timeout=config.broker_timeout_seconds,
            session=session,
        )
    logger.warning("No broker credentials configured: using simulated broker")
    return SimulatedBrokerClient()
