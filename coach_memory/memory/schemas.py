"""
Memory system data models.

Defines the Memory record, its typed content variants, and the
request/response shapes used by search, classification, and retrieval.
Field names serialize in camelCase so the JSONL files and the HTTP API
share one vocabulary.
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union, get_args

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so comparisons never mix naive and aware."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]

# Type aliases
MemoryType = Literal[
    "learning_progress",
    "learning_challenge",
    "commitment",
    "emotional_state",
    "milestone",
    "custom",
]
MEMORY_TYPES = get_args(MemoryType)

Subject = Literal["vocabulary", "listening", "reading", "writing", "grammar", "speaking"]
ChallengeCategory = Literal[
    "grammar",
    "vocabulary",
    "time_management",
    "motivation",
    "comprehension",
    "pronunciation",
    "test_performance",
]
Frequency = Literal["daily", "weekly", "once", "custom"]
Emotion = Literal[
    "anxious",
    "motivated",
    "frustrated",
    "confident",
    "tired",
    "excited",
    "stressed",
    "sad",
    "depressed",
    "angry",
]
Importance = Literal["critical", "high", "medium", "low"]


class CamelModel(BaseModel):
    """Base model accepting snake_case or camelCase and dumping camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Content variants
# ============================================================================

class _ContentBase(CamelModel):
    original_message: Optional[str] = None


class LearningProgressContent(_ContentBase):
    """A reported learning achievement."""

    type: Literal["learning_progress"] = "learning_progress"
    date: UtcDatetime
    subject: Subject
    achievement: str
    score: Optional[float] = None
    time_spent: Optional[int] = Field(None, ge=0, description="Minutes")
    context: Optional[str] = None


class LearningChallengeContent(_ContentBase):
    """A difficulty or weak area the learner raised."""

    type: Literal["learning_challenge"] = "learning_challenge"
    date: UtcDatetime
    category: ChallengeCategory
    description: str
    resolved: bool = False
    resolved_date: Optional[UtcDatetime] = None
    attempted_solutions: Optional[List[str]] = None


class CommitmentContent(_ContentBase):
    """Homework, a promise, or a recurring practice task."""

    type: Literal["commitment"] = "commitment"
    date: UtcDatetime
    deadline: UtcDatetime
    task: str
    frequency: Frequency = "once"
    completed: bool = False
    completed_date: Optional[UtcDatetime] = None
    notes: Optional[str] = None


class EmotionalStateContent(_ContentBase):
    """Mood or motivation expressed during a session."""

    type: Literal["emotional_state"] = "emotional_state"
    date: UtcDatetime
    emotion: Emotion
    intensity: int = Field(3, ge=1, le=5)
    trigger: Optional[str] = None
    support_provided: Optional[str] = None


class MilestoneContent(_ContentBase):
    """An upcoming exam, presentation, or other dated event."""

    type: Literal["milestone"] = "milestone"
    date_mentioned: UtcDatetime
    event_date: UtcDatetime
    event: str
    importance: Importance = "medium"
    preparation: Optional[List[str]] = None
    completed: Optional[bool] = None


class CustomContent(_ContentBase):
    """Free-form payload; any extra keys are kept as-is."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    type: Literal["custom"] = "custom"


MemoryContent = Annotated[
    Union[
        LearningProgressContent,
        LearningChallengeContent,
        CommitmentContent,
        EmotionalStateContent,
        MilestoneContent,
        CustomContent,
    ],
    Field(discriminator="type"),
]


_EXTRA_ADAPTER = TypeAdapter(Dict[str, Any])


def _inject_content_type(data: Any) -> Any:
    """Copy the record type into a content payload that omits it."""
    if isinstance(data, dict):
        content = data.get("content")
        mem_type = data.get("type")
        if isinstance(content, dict) and "type" not in content and mem_type:
            data = {**data, "content": {**content, "type": mem_type}}
    return data


# ============================================================================
# Memory record
# ============================================================================

class NewMemory(CamelModel):
    """
    A memory before the store assigns id, timestamp, and access count.

    This is what the classification pipeline (or an API caller) hands to
    MemoryStore.append().
    """

    user_id: str = Field(..., min_length=1)
    session_id: str = "default"
    type: MemoryType
    content: MemoryContent
    relevance: float = Field(0.5, ge=0.0, le=1.0)
    tags: List[str] = Field(default_factory=list)
    expired: bool = False
    expires_at: Optional[UtcDatetime] = None

    @model_validator(mode="before")
    @classmethod
    def _fill_content_type(cls, data: Any) -> Any:
        return _inject_content_type(data)

    @model_validator(mode="after")
    def _check_type_matches_content(self):
        if self.content.type != self.type:
            raise ValueError(
                f"content type '{self.content.type}' does not match memory type '{self.type}'"
            )
        return self


class Memory(NewMemory):
    """
    A persisted memory record.

    ``id`` and ``timestamp`` are assigned once by the store and never
    change; ``accessed`` only grows through MemoryStore.touch().
    """

    id: str
    timestamp: UtcDatetime
    accessed: int = Field(0, ge=0)
    last_accessed: Optional[UtcDatetime] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "mem_3f2a9c0d4b5e4f6a8b7c6d5e4f3a2b1c",
                "userId": "student_001",
                "sessionId": "thread_42",
                "type": "commitment",
                "content": {
                    "type": "commitment",
                    "date": "2025-09-05T10:00:00Z",
                    "deadline": "2025-09-06T10:00:00Z",
                    "task": "明日までにリスニングの宿題をやる",
                    "frequency": "once",
                    "completed": False,
                },
                "timestamp": "2025-09-05T10:00:00Z",
                "relevance": 0.9,
                "accessed": 0,
                "tags": ["commitment", "once"],
                "expired": False,
            }
        },
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True if flagged expired or past its expiresAt deadline."""
        if self.expired:
            return True
        if self.expires_at is not None:
            return self.expires_at < (as_utc(now) if now else utcnow())
        return False

    def mark_accessed(self, now: Optional[datetime] = None) -> None:
        """Record one retrieval hit."""
        self.accessed += 1
        self.last_accessed = as_utc(now) if now else utcnow()

    def to_storage_dict(self) -> Dict[str, Any]:
        """Convert to a camelCase JSON-ready dict for storage."""
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        # Unset declared fields are omitted; free-form custom keys are kept, nulls included
        if self.content.model_extra:
            data["content"].update(_EXTRA_ADAPTER.dump_python(self.content.model_extra, mode="json"))
        return data

    @classmethod
    def from_storage_dict(cls, data: Dict[str, Any]) -> "Memory":
        """Load from storage dict."""
        return cls.model_validate(data)


# ============================================================================
# Search / classification / retrieval shapes
# ============================================================================

class SearchCriteria(CamelModel):
    """Filter parameters for MemoryStore search."""

    user_id: Optional[str] = None
    type: Optional[Union[MemoryType, List[MemoryType]]] = None
    tags: List[str] = Field(default_factory=list, description="Filter by tags (OR logic)")
    from_date: Optional[UtcDatetime] = None
    to_date: Optional[UtcDatetime] = None
    min_relevance: Optional[float] = None
    not_expired: bool = False
    limit: Optional[int] = Field(None, ge=0)

    def type_set(self) -> Optional[List[str]]:
        """Normalize ``type`` to a list, or None when unfiltered."""
        if self.type is None:
            return None
        if isinstance(self.type, list):
            return list(self.type)
        return [self.type]


class SaveDecision(CamelModel):
    """Outcome of the save-or-skip classification for one message."""

    should_save: bool
    type: Optional[MemoryType] = None
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    reason: Optional[str] = None
    suggested_tags: List[str] = Field(default_factory=list)


class RetrievalResult(CamelModel):
    """Memories selected for a message, with the score each one earned."""

    memories: List[Memory] = Field(default_factory=list)
    scores: Dict[str, float] = Field(default_factory=dict)
    reason: str = ""


class MemoryStats(CamelModel):
    """Per-user collection statistics."""

    total: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)
    expired: int = 0
    recently_accessed: int = 0
