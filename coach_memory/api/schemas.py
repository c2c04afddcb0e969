"""
Pydantic schemas for FastAPI endpoints.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from coach_memory.memory.schemas import (
    CamelModel,
    Memory,
    MemoryStats,
    MemoryType,
    SaveDecision,
)


class ClassifyRequest(CamelModel):
    """Request model for /memory/classify."""

    message: str = Field(..., min_length=1, description="Chat message to classify")
    user_id: str = Field(..., min_length=1, description="Owning user")
    use_llm: Optional[bool] = Field(None, description="Override the configured classification mode")
    recent_context: List[str] = Field(default_factory=list, description="Recent conversation lines")


class RememberRequest(ClassifyRequest):
    """Request model for /memory/remember (classify and save)."""

    session_id: str = Field("default", description="Conversation session")
    force_type: Optional[MemoryType] = Field(None, description="Store as this type without classifying")


class RememberResponse(CamelModel):
    """Response model for /memory/remember."""

    decision: SaveDecision
    memory: Optional[Memory] = None


class RetrieveRequest(CamelModel):
    """Request model for /memory/retrieve."""

    message: str = Field(..., description="Incoming chat message")
    user_id: str = Field(..., min_length=1, description="Owning user")
    now: Optional[datetime] = Field(None, description="Reference time (default: server time)")
    touch: bool = Field(False, description="Record an access on every returned memory")


class RetrieveResponse(CamelModel):
    """Response model for /memory/retrieve."""

    memories: List[Memory]
    scores: Dict[str, float]
    reason: str
    context: str = Field("", description="Prompt-ready rendering of the memories")


class MemoryRef(CamelModel):
    """Identifies one memory of one user."""

    user_id: str = Field(..., min_length=1)
    memory_id: str = Field(..., min_length=1)


class MemoryUpdateResponse(CamelModel):
    """Response for touch/expire."""

    ok: bool
    memory: Optional[Memory] = None


class DeleteMemoryResponse(CamelModel):
    """Response after deleting a memory."""

    deleted: bool = Field(..., description="Whether the memory was deleted")
    message: str = Field(..., description="Status message")


class CleanupRequest(CamelModel):
    """Request model for /memory/cleanup."""

    user_id: str = Field(..., min_length=1)
    retention_days: Optional[int] = Field(None, ge=0, description="Age threshold (default: configured)")


class CleanupResponse(CamelModel):
    """Response model for /memory/cleanup."""

    removed: int


class SearchMemoryResponse(CamelModel):
    """Response with matched memories."""

    memories: List[Memory] = Field(..., description="Matched memories, highest relevance first")
    count: int = Field(..., description="Number of results returned")


class ListMemoryResponse(CamelModel):
    """Response for listing a user's memories."""

    memories: List[Memory]
    stats: MemoryStats


class HealthResponse(CamelModel):
    """Response model for /health."""

    status: str
    version: str
    components: Dict[str, bool]
