"""
Shared fixtures for memory unit tests.
"""
import pytest

from coach_memory.memory.recall import MemoryRecall


@pytest.fixture
def recall(store):
    """Create a MemoryRecall over the temporary store."""
    return MemoryRecall(store)
