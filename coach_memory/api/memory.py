"""
Memory API endpoints.

One endpoint per operation of the memory core; JSON bodies use the same
camelCase field names as the stored records.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from coach_memory.memory.integrate import MemoryIntegration, create_memory_integration
from coach_memory.memory.schemas import (
    MemoryStats,
    MemoryType,
    NewMemory,
    Memory,
    SaveDecision,
    SearchCriteria,
)
from coach_memory.telemetry import get_logger
from .schemas import (
    CleanupRequest,
    CleanupResponse,
    ClassifyRequest,
    DeleteMemoryResponse,
    ListMemoryResponse,
    MemoryRef,
    MemoryUpdateResponse,
    RememberRequest,
    RememberResponse,
    RetrieveRequest,
    RetrieveResponse,
    SearchMemoryResponse,
)


logger = get_logger(__name__)

router = APIRouter(prefix="/memory", tags=["memory"])


# Default integration instance (overridable through dependency_overrides)
_integration: Optional[MemoryIntegration] = None


def get_memory_integration() -> MemoryIntegration:
    """Get or create the memory integration singleton."""
    global _integration
    if _integration is None:
        _integration = create_memory_integration()
    return _integration


def _bad_request(e: ValueError) -> HTTPException:
    return HTTPException(status_code=400, detail=str(e))


def _storage_error(e: OSError) -> HTTPException:
    logger.error("memory_storage_error", error=str(e))
    return HTTPException(status_code=500, detail=f"Memory storage failed: {e}")


# ============================================================================
# API Endpoints
# ============================================================================

@router.post("/classify", response_model=SaveDecision)
def classify_message(request: ClassifyRequest, memory: MemoryIntegration = Depends(get_memory_integration)):
    """
    Decide whether a message is worth remembering.

    Never fails because of the LLM judge; a judge problem yields the
    keyword decision instead.
    """
    return memory.classify(
        request.message,
        request.user_id,
        use_llm=request.use_llm,
        recent_context=request.recent_context or None,
    )


@router.post("/save", response_model=Memory)
def save_memory(request: NewMemory, memory: MemoryIntegration = Depends(get_memory_integration)):
    """
    Store a fully specified memory.

    The server assigns id, timestamp, and accessed=0.
    """
    try:
        return memory.save(request)
    except ValueError as e:
        raise _bad_request(e)
    except OSError as e:
        raise _storage_error(e)


@router.post("/remember", response_model=RememberResponse)
def remember_message(request: RememberRequest, memory: MemoryIntegration = Depends(get_memory_integration)):
    """
    Classify a message and store it when worth remembering.

    Example:
        POST /memory/remember
        {"userId": "student_001", "sessionId": "t1", "message": "明日までにリスニングの宿題をやる"}

        Response:
        {"decision": {"shouldSave": true, "type": "commitment", ...}, "memory": {...}}
    """
    try:
        result = memory.remember(
            request.message,
            request.user_id,
            session_id=request.session_id,
            use_llm=request.use_llm,
            force_type=request.force_type,
            recent_context=request.recent_context or None,
        )
    except ValueError as e:
        raise _bad_request(e)
    except OSError as e:
        raise _storage_error(e)

    return RememberResponse(decision=result["decision"], memory=result["memory"])


@router.post("/retrieve", response_model=RetrieveResponse)
def retrieve_memories(request: RetrieveRequest, memory: MemoryIntegration = Depends(get_memory_integration)):
    """Select up to three memories relevant to a message."""
    try:
        if request.touch:
            result = memory.recall(request.message, request.user_id, now=request.now)
        else:
            result = memory.retrieve(request.message, request.user_id, now=request.now)
    except ValueError as e:
        raise _bad_request(e)
    except OSError as e:
        raise _storage_error(e)

    return RetrieveResponse(
        memories=result.memories,
        scores=result.scores,
        reason=result.reason,
        context=memory.format_context(result),
    )


@router.post("/touch", response_model=MemoryUpdateResponse)
def touch_memory(request: MemoryRef, memory: MemoryIntegration = Depends(get_memory_integration)):
    """Record one access on a memory. Unknown ids are a no-op."""
    try:
        updated = memory.touch(request.user_id, request.memory_id)
    except ValueError as e:
        raise _bad_request(e)
    except OSError as e:
        raise _storage_error(e)
    return MemoryUpdateResponse(ok=updated is not None, memory=updated)


@router.post("/expire", response_model=MemoryUpdateResponse)
def expire_memory(request: MemoryRef, memory: MemoryIntegration = Depends(get_memory_integration)):
    """Flag a memory as expired. Unknown ids are a no-op."""
    try:
        updated = memory.expire(request.user_id, request.memory_id)
    except ValueError as e:
        raise _bad_request(e)
    except OSError as e:
        raise _storage_error(e)
    return MemoryUpdateResponse(ok=updated is not None, memory=updated)


@router.post("/search", response_model=SearchMemoryResponse)
def search_memory(criteria: SearchCriteria, memory: MemoryIntegration = Depends(get_memory_integration)):
    """
    Filter a user's memories.

    userId is required; results are sorted by descending relevance.
    """
    try:
        memories = memory.search(criteria)
    except ValueError as e:
        raise _bad_request(e)
    return SearchMemoryResponse(memories=memories, count=len(memories))


@router.post("/cleanup", response_model=CleanupResponse)
def cleanup_memories(request: CleanupRequest, memory: MemoryIntegration = Depends(get_memory_integration)):
    """Remove old, low-relevance, rarely used memories (never milestones)."""
    try:
        removed = memory.cleanup(request.user_id, retention_days=request.retention_days)
    except ValueError as e:
        raise _bad_request(e)
    except OSError as e:
        raise _storage_error(e)
    return CleanupResponse(removed=removed)


@router.get("/stats/{user_id}", response_model=MemoryStats)
def memory_stats(user_id: str, memory: MemoryIntegration = Depends(get_memory_integration)):
    """Totals, per-type counts, expired count, and recent accesses."""
    try:
        return memory.stats(user_id)
    except ValueError as e:
        raise _bad_request(e)


@router.get("/{user_id}", response_model=ListMemoryResponse)
def list_memories(
    user_id: str,
    limit: int = 20,
    type: Optional[MemoryType] = None,
    memory: MemoryIntegration = Depends(get_memory_integration),
):
    """
    List a user's non-expired memories with collection stats.

    Query Parameters:
        limit: Maximum results (default: 20)
        type: Only this memory type
    """
    try:
        memories = memory.search(SearchCriteria(user_id=user_id, type=type, limit=limit, not_expired=True))
        stats = memory.stats(user_id)
    except ValueError as e:
        raise _bad_request(e)
    return ListMemoryResponse(memories=memories, stats=stats)


@router.delete("/{user_id}/{memory_id}", response_model=DeleteMemoryResponse)
def delete_memory(user_id: str, memory_id: str, memory: MemoryIntegration = Depends(get_memory_integration)):
    """Permanently remove a memory."""
    try:
        deleted = memory.delete(user_id, memory_id)
    except ValueError as e:
        raise _bad_request(e)
    except OSError as e:
        raise _storage_error(e)

    if deleted:
        return DeleteMemoryResponse(deleted=True, message="Memory deleted successfully")
    return DeleteMemoryResponse(deleted=False, message=f"Memory {memory_id} not found")
