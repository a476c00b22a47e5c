"""Risk: sizing, daily loss breaker, exits."""

from algo_engine.risk.manager import RiskManager, RiskDecision, RejectionReason, ExitIntent

__all__ = ["RiskManager", "RiskDecision", "RejectionReason", "ExitIntent"]
