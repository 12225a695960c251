"""
Durable outputs of a fuzzing run.

Usage:
    from storage import ResultStore, StatsRecorder

    store = ResultStore("results")
    stats = StatsRecorder("stats")
"""

from .atomic import atomic_write
from .result_store import ResultStore, operation_slug
from .stats_recorder import StatsRecorder

__all__ = [
    "ResultStore",
    "StatsRecorder",
    "atomic_write",
    "operation_slug",
]
