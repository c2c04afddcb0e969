"""
Memory recall for an incoming message.

Selects up to three stored memories worth bringing into the reply, using
time-based passes (upcoming commitments and milestones) and keyword-based
passes (related challenges, continuing emotions), with a fallback to the
most recent memories.
"""

import math
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from coach_memory.telemetry import get_logger
from . import patterns
from .schemas import Memory, RetrievalResult, SearchCriteria, as_utc, utcnow
from .search import filter_memories
from .store import MemoryStore


logger = get_logger(__name__)

MAX_RESULTS = 3

COMMITMENT_SCORE = 0.9
CHALLENGE_SCORE = 0.8
EMOTION_SCORE = 0.7
FALLBACK_SCORE = 0.3
MILESTONE_SCORES = {"critical": 1.0, "high": 0.9}
MILESTONE_DEFAULT_SCORE = 0.8

# Windows in days relative to now, inclusive
COMMITMENT_WINDOW = (-1, 3)
MILESTONE_WINDOW = (0, 14)
EMOTION_LOOKBACK_DAYS = 7


def days_until(target: datetime, now: datetime) -> int:
    """Whole days from now to target, rounded up."""
    return math.ceil((target - now).total_seconds() / 86400)


class MemoryRecall:
    """
    Retrieves relevant memories for a message.

    Passes (each yields memory/score pairs):
    - Upcoming commitments: open, deadline within [-1, +3] days -> 0.9
    - Related challenges: unresolved, sharing >= 2 words with message -> 0.8
    - Emotional continuity: same emotion within 7 days -> 0.7
    - Approaching milestones: event within [0, 14] days -> 1.0/0.9/0.8
    Duplicates keep their highest score; the top three are returned.
    """

    def __init__(self, store: MemoryStore):
        """
        Initialize recall system.

        Args:
            store: MemoryStore instance
        """
        self.store = store

    def _upcoming_commitments(self, memories: List[Memory], user_id: str, now: datetime) -> List[Tuple[Memory, float]]:
        criteria = SearchCriteria(user_id=user_id, type="commitment", not_expired=True)
        found = []
        for memory in filter_memories(memories, criteria, now=now):
            content = memory.content
            if content.completed:
                continue
            days = days_until(content.deadline, now)
            if COMMITMENT_WINDOW[0] <= days <= COMMITMENT_WINDOW[1]:
                found.append((memory, COMMITMENT_SCORE))
        return found

    def _related_challenges(self, memories: List[Memory], user_id: str, text: str, now: datetime) -> List[Tuple[Memory, float]]:
        if not patterns.contains_pattern(text, patterns.CHALLENGE_KEYWORDS):
            return []
        criteria = SearchCriteria(user_id=user_id, type="learning_challenge", not_expired=True)
        found = []
        for memory in filter_memories(memories, criteria, now=now):
            content = memory.content
            if not content.resolved and patterns.is_related_content(text, content.description):
                found.append((memory, CHALLENGE_SCORE))
        return found

    def _continuing_emotions(self, memories: List[Memory], user_id: str, text: str, now: datetime) -> List[Tuple[Memory, float]]:
        current = patterns.detect_emotion(text)
        if not current:
            return []
        criteria = SearchCriteria(
            user_id=user_id,
            type="emotional_state",
            from_date=now - timedelta(days=EMOTION_LOOKBACK_DAYS),
            not_expired=True,
        )
        return [
            (memory, EMOTION_SCORE)
            for memory in filter_memories(memories, criteria, now=now)
            if patterns.emotions_match(current, memory.content.emotion)
        ]

    def _approaching_milestones(self, memories: List[Memory], user_id: str, now: datetime) -> List[Tuple[Memory, float]]:
        criteria = SearchCriteria(user_id=user_id, type="milestone", not_expired=True)
        found = []
        for memory in filter_memories(memories, criteria, now=now):
            content = memory.content
            days = days_until(content.event_date, now)
            if MILESTONE_WINDOW[0] <= days <= MILESTONE_WINDOW[1]:
                found.append((memory, MILESTONE_SCORES.get(content.importance, MILESTONE_DEFAULT_SCORE)))
        return found

    def decide(self, message: str, user_id: str, now: Optional[datetime] = None) -> RetrievalResult:
        """
        Select memories relevant to a new message.

        Args:
            message: Incoming chat message
            user_id: Owning user
            now: Reference time (default: current UTC time)

        Returns:
            RetrievalResult with at most three memories, a score per id,
            and a short reason. Falls back to the three most recently
            stored non-expired memories (score 0.3) when no pass matches.
        """
        now = as_utc(now) if now else utcnow()
        text = message.lower()
        memories = self.store.load_all(user_id)

        candidates = (
            self._upcoming_commitments(memories, user_id, now)
            + self._related_challenges(memories, user_id, text, now)
            + self._continuing_emotions(memories, user_id, text, now)
            + self._approaching_milestones(memories, user_id, now)
        )

        best: Dict[str, Tuple[Memory, float]] = {}
        for memory, score in candidates:
            current = best.get(memory.id)
            if current is None or score > current[1]:
                best[memory.id] = (memory, score)

        ranked = sorted(best.values(), key=lambda pair: pair[1], reverse=True)[:MAX_RESULTS]

        if ranked:
            reason = f"{len(ranked)}件の関連メモリーを取得"
        else:
            recent = [m for m in reversed(memories) if not m.is_expired(now)][:MAX_RESULTS]
            ranked = [(memory, FALLBACK_SCORE) for memory in recent]
            reason = f"関連メモリーなし。最新{len(ranked)}件を返却"

        logger.info("memory_recall", user_id=user_id, returned=len(ranked), fallback=not best)

        return RetrievalResult(
            memories=[memory for memory, _ in ranked],
            scores={memory.id: score for memory, score in ranked},
            reason=reason,
        )

    def format_memory_context(self, result: RetrievalResult) -> str:
        """
        Format retrieved memories for injection into the coach prompt.

        Args:
            result: Output of decide()

        Returns:
            Formatted context string, or "" when nothing was retrieved
        """
        if not result.memories:
            return ""

        lines = [f"[MEMORY NOTES] {result.reason}"]
        for index, memory in enumerate(result.memories, start=1):
            score = result.scores.get(memory.id, 0.0)
            lines.append(f"{index}. [{memory.type}] {summarize_memory(memory)} (関連度: {round(score * 100)}%)")
        lines.append("")

        return "\n".join(lines)


def summarize_memory(memory: Memory) -> str:
    """One-line human summary of a memory's content."""
    content = memory.content
    if memory.type == "learning_progress":
        return f"{content.date.date().isoformat()} - {content.subject}で{content.achievement}"
    if memory.type == "learning_challenge":
        return f"{content.category}の課題: {content.description}"
    if memory.type == "commitment":
        return f"約束: {content.task} (期限: {content.deadline.date().isoformat()})"
    if memory.type == "emotional_state":
        return f"感情: {content.emotion} (強度: {content.intensity}/5)"
    if memory.type == "milestone":
        return f"イベント: {content.event} ({content.event_date.date().isoformat()})"
    return content.model_dump_json(by_alias=True, exclude_none=True)[:100]
