"""Execution: brokerage abstraction, Alpaca and simulated implementations, order status mapping."""

from algo_engine.execution.base import BrokerClient, BrokerOrder, BrokerPosition, Quote
from algo_engine.execution.status import ORDER_STATUS_MAP, ALLOWED_TRANSITIONS, map_order_status, can_transition
from algo_engine.execution.alpaca import AlpacaBrokerClient
from algo_engine.execution.simulated import SimulatedBrokerClient
from algo_engine.execution.factory import create_broker_client

__all__ = [
    "BrokerClient",
    "BrokerOrder",
    "BrokerPosition",
    "Quote",
    "ORDER_STATUS_MAP",
    "ALLOWED_TRANSITIONS",
    "map_order_status",
    "can_transition",
    "AlpacaBrokerClient",
    "SimulatedBrokerClient",
    "create_broker_client",
]
