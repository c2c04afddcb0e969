"""Test configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import pytest

from coach_memory.memory.schemas import NewMemory
from coach_memory.memory.store import MemoryStore


NOW = datetime(2025, 9, 5, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    """Fixed reference time for date-dependent tests."""
    return NOW


@pytest.fixture
def store(tmp_path) -> MemoryStore:
    """Create MemoryStore instance in a temporary directory."""
    return MemoryStore(tmp_path / "memories")


def _content_for(mem_type: str, now: datetime) -> Dict[str, Any]:
    if mem_type == "learning_progress":
        return {"date": now, "subject": "vocabulary", "achievement": "単語を100個覚えた"}
    if mem_type == "learning_challenge":
        return {"date": now, "category": "grammar", "description": "文法の時制が難しいです"}
    if mem_type == "commitment":
        return {"date": now, "deadline": now + timedelta(days=1), "task": "リスニングの宿題"}
    if mem_type == "emotional_state":
        return {"date": now, "emotion": "anxious", "intensity": 4}
    if mem_type == "milestone":
        return {"dateMentioned": now, "eventDate": now + timedelta(days=10), "event": "英検", "importance": "high"}
    return {"note": "free form"}


@pytest.fixture
def make_memory(now) -> Callable[..., NewMemory]:
    """
    Factory for NewMemory records with sensible content per type.

    Keyword arguments override top-level fields; ``content`` is merged
    into the default payload.
    """

    def _make(
        mem_type: str = "commitment",
        user_id: str = "student_001",
        content: Optional[Dict[str, Any]] = None,
        **fields: Any,
    ) -> NewMemory:
        payload = _content_for(mem_type, now)
        payload.update(content or {})
        return NewMemory(user_id=user_id, type=mem_type, content=payload, **fields)

    return _make
