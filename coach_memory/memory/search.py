"""
Criteria search over a user's memory collection.

Always re-reads the collection from the store; there is no cache layer.
"""

from datetime import datetime
from typing import List, Optional

from .schemas import Memory, SearchCriteria, as_utc, utcnow
from .store import MemoryStore


def filter_memories(
    memories: List[Memory],
    criteria: SearchCriteria,
    now: Optional[datetime] = None,
) -> List[Memory]:
    """
    Apply criteria to an already loaded collection.

    Filters run in order (type, tags, date range, minimum relevance,
    not-expired), all AND-combined. Results are sorted by descending
    relevance; the sort is stable, so ties keep insertion order. The
    limit is applied last: None means unlimited and 0 returns nothing.

    Args:
        memories: Collection in insertion order
        criteria: Search criteria
        now: Reference time for the expiry check

    Returns:
        Matching memories
    """
    types = criteria.type_set()
    if types is not None:
        memories = [m for m in memories if m.type in types]

    if criteria.tags:
        wanted = set(criteria.tags)
        memories = [m for m in memories if wanted.intersection(m.tags)]

    if criteria.from_date is not None:
        memories = [m for m in memories if m.timestamp >= criteria.from_date]
    if criteria.to_date is not None:
        memories = [m for m in memories if m.timestamp <= criteria.to_date]

    if criteria.min_relevance is not None:
        memories = [m for m in memories if m.relevance >= criteria.min_relevance]

    if criteria.not_expired:
        now = as_utc(now) if now else utcnow()
        memories = [m for m in memories if not m.is_expired(now)]

    memories = sorted(memories, key=lambda m: m.relevance, reverse=True)

    if criteria.limit is not None:
        memories = memories[:criteria.limit]

    return memories


def search_memories(
    store: MemoryStore,
    criteria: SearchCriteria,
    now: Optional[datetime] = None,
) -> List[Memory]:
    """
    Load a user's memories and filter them.

    Args:
        store: Memory store
        criteria: Search criteria; ``user_id`` is required
        now: Reference time for the expiry check

    Returns:
        Matching memories, highest relevance first

    Raises:
        ValueError: If criteria has no user_id
    """
    if not criteria.user_id:
        raise ValueError("userId is required for memory search")

    return filter_memories(store.load_all(criteria.user_id), criteria, now=now)
