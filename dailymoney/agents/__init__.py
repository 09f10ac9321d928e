"""AI agents package."""

from dailymoney.agents.classifier import TransactionClassifierAgent, extract_json

__all__ = ["TransactionClassifierAgent", "extract_json"]
