"""
Memory subsystem for the coaching agent.

Provides:
- Typed memory records persisted as one JSONL file per user
- Criteria search over a user's collection
- Save decisions from keyword rules and an optional LLM judge
- Context-aware recall of relevant memories
"""

from .schemas import (
    Memory,
    NewMemory,
    MemoryType,
    SearchCriteria,
    SaveDecision,
    RetrievalResult,
    MemoryStats,
)
from .codec import encode_memory, decode_memory
from .store import MemoryStore
from .search import search_memories
from .policy import SavePolicy
from .recall import MemoryRecall
from .integrate import MemoryIntegration, create_memory_integration

__all__ = [
    "Memory",
    "NewMemory",
    "MemoryType",
    "SearchCriteria",
    "SaveDecision",
    "RetrievalResult",
    "MemoryStats",
    "encode_memory",
    "decode_memory",
    "MemoryStore",
    "search_memories",
    "SavePolicy",
    "MemoryRecall",
    "MemoryIntegration",
    "create_memory_integration",
]
