"""Authoritative completion ledger: store interface, shared rules and backends."""

from fuelpoints.modules.ledger.interface import CompletionStore, SubmissionResult, TodayStats
from fuelpoints.modules.ledger.memory import InMemoryCompletionStore
from fuelpoints.modules.ledger.rules import CompletionRules, Evaluation, StreamHistory
from fuelpoints.modules.ledger.sql import SqlCompletionStore

__all__ = [
    "CompletionStore",
    "SubmissionResult",
    "TodayStats",
    "InMemoryCompletionStore",
    "SqlCompletionStore",
    "CompletionRules",
    "Evaluation",
    "StreamHistory",
]
