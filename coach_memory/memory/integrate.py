"""
Memory integration hooks for the coaching agent.

Provides the operations the orchestration layer calls: classify and
remember a message, recall memories for a reply, and the bookkeeping and
query operations around them.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from coach_memory.config.settings import Settings
from coach_memory.generation.judge import create_judge
from coach_memory.telemetry import get_logger
from . import patterns
from .policy import SavePolicy
from .recall import MemoryRecall
from .schemas import (
    Memory,
    MemoryStats,
    NewMemory,
    RetrievalResult,
    SaveDecision,
    SearchCriteria,
    as_utc,
    utcnow,
)
from .search import search_memories
from .store import MemoryStore


logger = get_logger(__name__)

DEFAULT_COMMITMENT_DAYS = 7
DEFAULT_MILESTONE_DAYS = 30
DEFAULT_INTENSITY = 3


class MemoryIntegration:
    """
    Integration layer between the memory core and the agent.

    Provides:
    - Save pipeline: classify a message, build a typed memory, append it
    - Recall pipeline: select relevant memories and mark them accessed
    - Direct store access: touch, expire, delete, search, stats, cleanup
    """

    def __init__(
        self,
        store: MemoryStore,
        recall: MemoryRecall,
        policy: SavePolicy,
        use_llm: bool = True,
        retention_days: int = 30,
    ):
        """
        Initialize memory integration.

        Args:
            store: Memory store
            recall: Memory recall system
            policy: Save policy
            use_llm: Default for classify(); False forces keyword rules
            retention_days: Default age threshold for cleanup()
        """
        self.store = store
        self.recall_engine = recall
        self.policy = policy
        self.use_llm = use_llm
        self.retention_days = retention_days

    # ------------------------------------------------------------------
    # Inbound contract
    # ------------------------------------------------------------------

    def classify(
        self,
        message: str,
        user_id: str,
        use_llm: Optional[bool] = None,
        recent_context: Optional[List[str]] = None,
    ) -> SaveDecision:
        """
        Decide whether a message should be remembered.

        Args:
            message: Raw chat message
            user_id: Owning user
            use_llm: Override the configured mode for this call
            recent_context: Recent conversation lines for the judge

        Returns:
            SaveDecision
        """
        if use_llm is None:
            use_llm = self.use_llm
        if use_llm:
            return self.policy.decide_hybrid(message, user_id, recent_context)
        return self.policy.decide_by_keywords(message)

    def save(self, new_memory: NewMemory) -> Memory:
        """Append a fully specified memory."""
        return self.store.append(new_memory)

    def retrieve(self, message: str, user_id: str, now: Optional[datetime] = None) -> RetrievalResult:
        """Select relevant memories without touching them."""
        return self.recall_engine.decide(message, user_id, now=now)

    def touch(self, user_id: str, memory_id: str) -> Optional[Memory]:
        return self.store.touch(user_id, memory_id)

    def expire(self, user_id: str, memory_id: str) -> Optional[Memory]:
        return self.store.expire(user_id, memory_id)

    def delete(self, user_id: str, memory_id: str) -> bool:
        return self.store.delete(user_id, memory_id)

    def search(self, criteria: SearchCriteria) -> List[Memory]:
        return search_memories(self.store, criteria)

    def stats(self, user_id: str) -> MemoryStats:
        return self.store.stats(user_id)

    def cleanup(self, user_id: str, retention_days: Optional[int] = None) -> int:
        days = self.retention_days if retention_days is None else retention_days
        return self.store.cleanup(user_id, retention_days=days)

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    def remember(
        self,
        message: str,
        user_id: str,
        session_id: str = "default",
        use_llm: Optional[bool] = None,
        force_type: Optional[str] = None,
        recent_context: Optional[List[str]] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Classify a message and store it when worth remembering.

        Args:
            message: Raw chat message
            user_id: Owning user
            session_id: Conversation session
            use_llm: Override the configured classification mode
            force_type: Skip classification and store as this type
            recent_context: Recent conversation lines for the judge
            now: Reference time (default: current UTC time)

        Returns:
            Dict with the ``decision`` and the saved ``memory`` (or None)
        """
        if not user_id or not message:
            raise ValueError("userId and message are required")

        if force_type:
            decision = self.policy.forced_decision(force_type)
        else:
            decision = self.classify(message, user_id, use_llm=use_llm, recent_context=recent_context)

        if not decision.should_save:
            logger.info("memory_skip", user_id=user_id, reason=decision.reason)
            return {"decision": decision, "memory": None}

        new_memory = build_memory(decision, message, user_id, session_id, now=now)
        memory = self.store.append(new_memory, now=now)
        return {"decision": decision, "memory": memory}

    def recall(self, message: str, user_id: str, now: Optional[datetime] = None) -> RetrievalResult:
        """
        Retrieve relevant memories and record the access on each.

        Returns:
            RetrievalResult whose memories reflect the updated access counts
        """
        result = self.recall_engine.decide(message, user_id, now=now)
        touched = []
        for memory in result.memories:
            updated = self.store.touch(user_id, memory.id, now=now)
            touched.append(updated if updated is not None else memory)
        result.memories = touched
        return result

    def format_context(self, result: RetrievalResult) -> str:
        return self.recall_engine.format_memory_context(result)


def build_memory(
    decision: SaveDecision,
    message: str,
    user_id: str,
    session_id: str = "default",
    now: Optional[datetime] = None,
) -> NewMemory:
    """
    Turn a save decision into a typed memory.

    The detail label (subject, category, frequency, emotion, importance)
    comes from the decision's second tag, or is re-detected from the
    message. Commitment deadlines and milestone dates come from a date
    expression in the message, defaulting to +7 and +30 days. When the
    payload cannot be typed the memory is stored as ``custom``.

    Args:
        decision: A decision with should_save=True
        message: Raw chat message
        user_id: Owning user
        session_id: Conversation session
        now: Reference time

    Returns:
        NewMemory ready for MemoryStore.append()
    """
    now = as_utc(now) if now else utcnow()
    text = message.lower()
    tags = list(decision.suggested_tags)
    detail = tags[1] if len(tags) > 1 else None
    mem_type = decision.type or "custom"
    when = patterns.resolve_date(message, now)

    content: Dict[str, Any] = {"type": mem_type, "originalMessage": message}

    if mem_type == "learning_progress":
        content.update(date=now, achievement=message,
                       subject=_pick(detail, patterns.PROGRESS_SUBJECTS) or patterns.detect_subject(text))
    elif mem_type == "learning_challenge":
        content.update(date=now, description=message, resolved=False,
                       category=_pick(detail, patterns.CHALLENGE_CATEGORIES) or patterns.detect_category(text))
    elif mem_type == "commitment":
        content.update(date=now, task=message, completed=False,
                       frequency=_pick(detail, patterns.COMMITMENT_FREQUENCIES) or patterns.detect_frequency(text) or "once",
                       deadline=when or now + timedelta(days=DEFAULT_COMMITMENT_DAYS))
    elif mem_type == "emotional_state":
        content.update(date=now, intensity=DEFAULT_INTENSITY,
                       emotion=_pick(detail, patterns.EMOTIONS) or patterns.detect_emotion(text))
    elif mem_type == "milestone":
        content.update(dateMentioned=now, event=message,
                       importance=_pick(detail, patterns.MILESTONE_IMPORTANCE) or patterns.detect_importance(text) or "medium",
                       eventDate=when or now + timedelta(days=DEFAULT_MILESTONE_DAYS))

    fields = dict(
        user_id=user_id,
        session_id=session_id or "default",
        relevance=decision.confidence,
        tags=tags,
    )

    try:
        return NewMemory(type=mem_type, content=content, **fields)
    except ValidationError as e:
        logger.warning("memory_untyped", user_id=user_id, intended_type=mem_type, errors=e.error_count())
        return NewMemory(
            type="custom",
            content={"type": "custom", "originalMessage": message, "intendedType": mem_type, "date": now.isoformat()},
            **fields,
        )


def _pick(label: Optional[str], table: Dict[str, List[str]]) -> Optional[str]:
    """Return label if the table knows it."""
    return label if label in table else None


def create_memory_integration(settings: Optional[Settings] = None) -> MemoryIntegration:
    """
    Factory function to create memory integration.

    Args:
        settings: Application settings (default: Settings.from_env())

    Returns:
        MemoryIntegration wired to the configured store and judge
    """
    settings = settings or Settings.from_env()

    store = MemoryStore(settings.paths.memory_dir)
    recall = MemoryRecall(store)
    judge = create_judge(settings.classifier)
    policy = SavePolicy(judge=judge, timeout=settings.classifier.timeout)

    return MemoryIntegration(
        store,
        recall,
        policy,
        use_llm=settings.classifier.use_llm,
        retention_days=settings.retention.retention_days,
    )
