"""
Battles.

Discovery of new battles, the bounded work queue, the aggregation engine
and the worker that turns a queued battle into stored rollups.
"""

from .discovery import BattleDiscovery, BattleDiscoveryTask, DiscoveryStats
from .queue import BattleWorkQueue, WorkItem
from .worker import BattleResults, BattleWorker, build_battle_results

__all__ = [
    "BattleDiscovery",
    "BattleDiscoveryTask",
    "BattleResults",
    "BattleWorkQueue",
    "BattleWorker",
    "DiscoveryStats",
    "WorkItem",
    "build_battle_results",
]
