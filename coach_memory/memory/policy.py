"""
Memory save policy.

Decides whether a chat message is worth remembering, and as what, by
combining keyword rules with an optional LLM judge.
"""

import json
import re
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from coach_memory.generation.judge import BaseJudge
from coach_memory.telemetry import get_logger
from . import patterns
from .schemas import MEMORY_TYPES, SaveDecision


logger = get_logger(__name__)

# Keyword rule confidences
PROGRESS_CONFIDENCE = 0.8
CHALLENGE_CONFIDENCE = 0.85
COMMITMENT_CONFIDENCE = 0.9
EMOTION_CONFIDENCE = 0.75
MILESTONE_CONFIDENCE = 0.95

# Hybrid reconciliation
OVERRIDE_FACTOR = 0.6
OVERRIDE_CAP = 0.6
CONTEXT_BOOST = 1.1

_FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```")

_judge_pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="memory-judge")


class KeywordHints(BaseModel):
    """Keyword evidence computed for a message without branching on it."""

    learning_progress: bool = False
    learning_challenge: bool = False
    commitment: bool = False
    emotional_state: Optional[str] = None
    milestone: bool = False
    subject: Optional[str] = None
    category: Optional[str] = None

    def any_fired(self) -> bool:
        """True if any category hint matched (subject/category alone do not count)."""
        return bool(
            self.learning_progress
            or self.learning_challenge
            or self.commitment
            or self.emotional_state
            or self.milestone
        )


class LLMVerdict(BaseModel):
    """JSON shape the judge is asked to answer with."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    should_save: bool
    type: Optional[str] = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    reason: str = ""
    suggested_tags: List[str] = Field(default_factory=list)

    @field_validator("reason", mode="before")
    @classmethod
    def _none_reason(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("suggested_tags", mode="before")
    @classmethod
    def _none_tags(cls, v: Any) -> Any:
        return [] if v is None else v


class SavePolicy:
    """
    Policy engine for memory creation.

    Modes:
    - keywords: deterministic rule cascade over the keyword tables
    - hybrid: LLM judge informed by keyword hints, reconciled with them,
      falling back to keywords on any judge failure
    """

    def __init__(self, judge: Optional[BaseJudge] = None, timeout: float = 10.0):
        """
        Initialize save policy.

        Args:
            judge: LLM judge; None disables the hybrid path
            timeout: Seconds to wait for the judge before falling back
        """
        self.judge = judge
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Keyword rules
    # ------------------------------------------------------------------

    def keyword_hints(self, message: str) -> KeywordHints:
        """Compute every keyword hint for a message."""
        text = message.lower()
        return KeywordHints(
            learning_progress=patterns.contains_pattern(text, patterns.PROGRESS_KEYWORDS),
            learning_challenge=patterns.contains_pattern(text, patterns.CHALLENGE_KEYWORDS),
            commitment=patterns.contains_pattern(text, patterns.COMMITMENT_KEYWORDS),
            emotional_state=patterns.detect_emotion(text),
            milestone=(
                patterns.contains_pattern(text, patterns.MILESTONE_KEYWORDS)
                and patterns.contains_date(text)
            ),
            subject=patterns.detect_subject(text),
            category=patterns.detect_category(text),
        )

    def decide_by_keywords(self, message: str) -> SaveDecision:
        """
        Classify a message with the keyword rule cascade.

        Priority: learning progress (needs a subject), learning challenge
        (needs a category), commitment, emotional state, milestone (needs
        a date expression). The first matching rule wins.

        Args:
            message: Raw chat message

        Returns:
            SaveDecision; shouldSave=False with confidence 0 if nothing matched
        """
        text = message.lower()

        if patterns.contains_pattern(text, patterns.PROGRESS_KEYWORDS):
            subject = patterns.detect_subject(text)
            if subject:
                return SaveDecision(
                    should_save=True,
                    type="learning_progress",
                    confidence=PROGRESS_CONFIDENCE,
                    reason="学習成果の報告を検出",
                    suggested_tags=["progress", subject],
                )

        if patterns.contains_pattern(text, patterns.CHALLENGE_KEYWORDS):
            category = patterns.detect_category(text)
            if category:
                return SaveDecision(
                    should_save=True,
                    type="learning_challenge",
                    confidence=CHALLENGE_CONFIDENCE,
                    reason="学習上の困難を検出",
                    suggested_tags=["challenge", category],
                )

        if patterns.contains_pattern(text, patterns.COMMITMENT_KEYWORDS):
            frequency = patterns.detect_frequency(text)
            return SaveDecision(
                should_save=True,
                type="commitment",
                confidence=COMMITMENT_CONFIDENCE,
                reason="約束や宿題を検出",
                suggested_tags=["commitment", frequency or "once"],
            )

        emotion = patterns.detect_emotion(text)
        if emotion:
            return SaveDecision(
                should_save=True,
                type="emotional_state",
                confidence=EMOTION_CONFIDENCE,
                reason="感情表現を検出",
                suggested_tags=["emotion", emotion],
            )

        if patterns.contains_pattern(text, patterns.MILESTONE_KEYWORDS) and patterns.contains_date(text):
            importance = patterns.detect_importance(text)
            return SaveDecision(
                should_save=True,
                type="milestone",
                confidence=MILESTONE_CONFIDENCE,
                reason="重要イベントを検出",
                suggested_tags=["milestone", importance or "medium"],
            )

        return SaveDecision(
            should_save=False,
            confidence=0.0,
            reason="保存対象のパターンが見つかりません",
        )

    def forced_decision(self, force_type: str) -> SaveDecision:
        """
        Decision for a caller-specified memory type.

        Args:
            force_type: One of the memory types

        Returns:
            SaveDecision with confidence 1.0
        """
        if force_type not in MEMORY_TYPES:
            raise ValueError(f"Unknown memory type: {force_type}")
        head, _, tail = force_type.partition("_")
        return SaveDecision(
            should_save=True,
            type=force_type,
            confidence=1.0,
            reason="手動指定による保存",
            suggested_tags=[head, tail or "general"],
        )

    # ------------------------------------------------------------------
    # Hybrid
    # ------------------------------------------------------------------

    def build_prompt(
        self,
        message: str,
        hints: KeywordHints,
        recent_context: Optional[List[str]] = None,
    ) -> str:
        """Assemble the judge prompt from the message, context, and hints."""

        def level(flag: bool) -> str:
            return "高（キーワード検出）" if flag else "低"

        context = "\n".join(recent_context) if recent_context else "なし"
        emotion = f"検出（{hints.emotional_state}）" if hints.emotional_state else "なし"

        return f"""あなたは学習記憶管理システムです。学習コーチングの文脈で、以下のメッセージを分析し、長期記憶として保存すべきか判断してください。

【分析対象メッセージ】
"{message}"

【最近の会話文脈】
{context}

【検出されたキーワードヒント】
- 学習進捗の可能性: {level(hints.learning_progress)}
- 学習課題の可能性: {level(hints.learning_challenge)}
- 約束事の可能性: {level(hints.commitment)}
- 感情表現: {emotion}
- マイルストーン: {"高（キーワード+日付検出）" if hints.milestone else "低"}
- 学習分野: {hints.subject or "なし"}
- 課題カテゴリ: {hints.category or "なし"}

【保存判定基準】
1. 学習進捗: 成果、理解度向上、スキル習得、テスト結果など
2. 学習課題: 困難、苦手分野、理解できない点、不安など
3. 約束事: 宿題、課題、目標設定、次回までの取り組みなど
4. 感情状態: 学習に関連する感情、モチベーション、ストレス、疲労、眠気、楽しさなど
5. マイルストーン: 試験日、発表日、重要イベントなど

以下のJSON形式のみで回答してください：
{{
  "shouldSave": true/false,
  "type": "learning_progress" | "learning_challenge" | "commitment" | "emotional_state" | "milestone" | null,
  "confidence": 0.0-1.0,
  "reason": "判定理由（30文字以内）",
  "suggestedTags": ["tag1", "tag2"]
}}"""

    def parse_verdict(self, text: str) -> LLMVerdict:
        """
        Parse the judge's reply.

        Raises:
            ValueError: If the reply is not a valid verdict object
        """
        cleaned = _FENCE_RE.sub("", text).strip()
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as e:
            raise ValueError(f"Judge reply is not JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("Judge reply is not a JSON object")
        try:
            return LLMVerdict.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Judge reply failed validation: {e.error_count()} error(s)") from e

    def _call_judge(self, prompt: str) -> str:
        future = _judge_pool.submit(self.judge.judge, prompt)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout:
            future.cancel()
            raise TimeoutError(f"Judge did not answer within {self.timeout}s")

    def reconcile(self, verdict: LLMVerdict, hints: KeywordHints) -> SaveDecision:
        """
        Blend the judge verdict with keyword evidence.

        - Judge says skip but a keyword fired: save anyway with confidence
          min(conf * 0.6, 0.6).
        - Judge says save and no keyword fired: confidence * 1.1, capped at 1.0.
        - Otherwise the verdict stands.
        Tags are then reinforced from the hints for the final type.
        """
        should_save = verdict.should_save
        confidence = verdict.confidence
        reason = verdict.reason
        fired = hints.any_fired()

        if not should_save and fired:
            logger.info("hybrid_keyword_override", llm_confidence=confidence)
            should_save = True
            confidence = min(confidence * OVERRIDE_FACTOR, OVERRIDE_CAP)
            reason = f"{reason}（キーワード検出）"
        elif should_save and not fired:
            logger.info("hybrid_context_boost", llm_confidence=confidence)
            confidence = min(confidence * CONTEXT_BOOST, 1.0)

        mem_type = verdict.type if verdict.type in MEMORY_TYPES else None
        if should_save and mem_type is None:
            mem_type = _hinted_type(hints) or "custom"

        tags = list(verdict.suggested_tags)
        if hints.emotional_state and mem_type == "emotional_state":
            tags = ["emotion", hints.emotional_state]
        if hints.subject and mem_type == "learning_progress":
            tags = ["progress", hints.subject]
        if hints.category and mem_type == "learning_challenge":
            tags = ["challenge", hints.category]

        return SaveDecision(
            should_save=should_save,
            type=mem_type,
            confidence=confidence,
            reason=reason,
            suggested_tags=tags,
        )

    def decide_hybrid(
        self,
        message: str,
        user_id: Optional[str] = None,
        recent_context: Optional[List[str]] = None,
    ) -> SaveDecision:
        """
        Classify a message with the LLM judge, guided by keyword hints.

        Any judge problem (none configured, timeout, transport error,
        malformed reply) falls back to decide_by_keywords().

        Args:
            message: Raw chat message
            user_id: Owning user (log context only)
            recent_context: Recent conversation lines shown to the judge

        Returns:
            SaveDecision
        """
        if self.judge is None:
            return self.decide_by_keywords(message)

        hints = self.keyword_hints(message)
        prompt = self.build_prompt(message, hints, recent_context)

        try:
            reply = self._call_judge(prompt)
            verdict = self.parse_verdict(reply)
        except Exception as e:
            logger.warning("judge_failed_fallback", user_id=user_id, error=str(e))
            return self.decide_by_keywords(message)

        decision = self.reconcile(verdict, hints)
        logger.info(
            "hybrid_decision",
            user_id=user_id,
            should_save=decision.should_save,
            type=decision.type,
            confidence=decision.confidence,
        )
        return decision


def _hinted_type(hints: KeywordHints) -> Optional[str]:
    """First memory type whose hint fired, in cascade order."""
    order: Dict[str, Any] = {
        "learning_progress": hints.learning_progress,
        "learning_challenge": hints.learning_challenge,
        "commitment": hints.commitment,
        "emotional_state": hints.emotional_state,
        "milestone": hints.milestone,
    }
    for mem_type, fired in order.items():
        if fired:
            return mem_type
    return None
