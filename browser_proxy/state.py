"""
In-memory request counters.
Nothing here is persisted; the health endpoint reads it.
"""

import time
from collections import defaultdict


started_at: float = time.time()
counters: defaultdict = defaultdict(int)


def increment(name: str, amount: int = 1) -> int:
    counters[name] += amount
    return counters[name]


def snapshot() -> dict:
    stats = dict(counters)
    stats["uptime_seconds"] = round(time.time() - started_at, 3)
    return stats


def reset() -> None:
    global started_at
    counters.clear()
    started_at = time.time()
