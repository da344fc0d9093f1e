"""Total order over waiting visits.

Emergency-flagged visits first, then higher priority tier, then earlier arrival.
The visit id breaks exact timestamp ties so the order never depends on how the
store happened to return rows. Positions are derived on every call; nothing
here is cached.
"""
import math
from datetime import datetime
from typing import Iterable, Protocol, Sequence, TypeVar

from clinic_queue.core.base import as_utc

PRIORITY_TIER = {"low": 0, "medium": 1, "high": 2, "emergency": 3}

class Rankable(Protocol):
    id: object
    emergency_flag: bool
    priority: str
    created_at: datetime

R = TypeVar("R", bound=Rankable)

def tier(priority: str) -> int:
    return PRIORITY_TIER.get(priority, 0)

def rank_key(visit: Rankable) -> tuple:
    return (not visit.emergency_flag, -tier(visit.priority), as_utc(visit.created_at), str(visit.id))

def rank(visits: Iterable[R]) -> list[R]:
    return sorted(visits, key=rank_key)

def queue_position(visit: Rankable, waiting: Iterable[Rankable]) -> int | None:
    """1-based queue number of ``visit`` among ``waiting``.

    None means the visit is not (or no longer) waiting; callers should re-fetch
    rather than show a position.
    """
    key = rank_key(visit)
    present = False
    ahead = 0
    for other in waiting:
        if str(other.id) == str(visit.id):
            present = True
            continue
        if rank_key(other) < key:
            ahead += 1
    return ahead + 1 if present else None

def paginate(ranked: Sequence[R], page: int, limit: int) -> list[tuple[int, R]]:
    """Slice an already ranked sequence, pairing each item with its absolute position."""
    start = (page - 1) * limit
    return [(start + i + 1, v) for i, v in enumerate(ranked[start:start + limit])]

def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0
