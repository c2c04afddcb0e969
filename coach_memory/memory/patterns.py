"""
Keyword tables and text heuristics for the memory classifier.

All tables are plain data: ordered mappings from a label to the
substrings that signal it. Detection scans a table in order and the
first label with a matching substring wins, so table order is priority.
"""

import re
import unicodedata
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from .schemas import as_utc


# ============================================================================
# Keyword tables
# ============================================================================

PROGRESS_KEYWORDS: List[str] = [
    "覚えた", "理解した", "取れた", "点", "スコア", "合格",
    "できるようになった", "上達", "向上", "成長",
]

PROGRESS_SUBJECTS: Dict[str, List[str]] = {
    "vocabulary": ["単語", "語彙", "ボキャブラリー"],
    "listening": ["リスニング", "聞き取り", "ヒアリング"],
    "reading": ["読解", "リーディング", "長文"],
    "writing": ["ライティング", "作文", "エッセイ"],
    "grammar": ["文法", "グラマー"],
    "speaking": ["スピーキング", "会話", "発音"],
}

CHALLENGE_KEYWORDS: List[str] = [
    "難しい", "苦手", "わからない", "困っ", "できない", "課題", "問題",
    "悩み", "つらい", "大変", "点数低い", "点数悪い", "成績", "失敗",
]

CHALLENGE_CATEGORIES: Dict[str, List[str]] = {
    "grammar": ["文法", "時制", "関係詞", "仮定法"],
    "vocabulary": ["単語", "語彙", "覚えられない"],
    "time_management": ["時間", "間に合わない", "足りない"],
    "motivation": ["やる気", "モチベーション", "続かない"],
    "comprehension": ["理解", "意味", "わからない"],
    "pronunciation": ["発音", "音", "聞き取れない"],
    "test_performance": ["点数", "スコア", "テスト", "試験", "成績"],
}

COMMITMENT_KEYWORDS: List[str] = [
    "宿題", "課題", "約束", "までに", "次回", "練習", "毎日", "週",
]

COMMITMENT_FREQUENCIES: Dict[str, List[str]] = {
    "daily": ["毎日", "日々", "デイリー"],
    "weekly": ["週", "毎週", "ウィークリー"],
    "once": ["一回", "一度", "次回まで"],
}

EMOTIONS: Dict[str, List[str]] = {
    "anxious": ["不安", "心配", "緊張", "ドキドキ"],
    "motivated": ["やる気", "がんばる", "頑張", "モチベーション"],
    "frustrated": ["イライラ", "うまくいかない", "もどかしい", "腹立つ", "むかつく", "ムカつく"],
    "confident": ["自信", "大丈夫", "できる"],
    "tired": ["疲れ", "つかれ", "しんどい", "眠い", "ねむい", "眠く", "ねむく"],
    "excited": ["楽しい", "ワクワク", "楽しみ", "楽しい話", "面白い話", "おもしろい話", "楽しく", "面白く"],
    "stressed": ["ストレス", "プレッシャー", "焦"],
    "sad": ["悲しい", "辛い", "つらい", "泣きそう", "泣いた"],
    "depressed": ["落ち込", "へこん", "テンション下が", "憂鬱", "ゆううつ", "嫌なこと"],
    "angry": ["怒", "腹立", "むかつ", "ムカつ", "頭にくる", "頭きた"],
}

# Emotions treated as the same state when checking continuity
EQUIVALENT_EMOTIONS: Dict[str, List[str]] = {
    "anxious": ["stressed"],
    "stressed": ["anxious"],
}

MILESTONE_KEYWORDS: List[str] = [
    "試験", "テスト", "本番", "受験", "イベント", "予定", "月", "日",
]

MILESTONE_IMPORTANCE: Dict[str, List[str]] = {
    "critical": ["本番", "受験", "最終", "決定"],
    "high": ["重要", "大切", "大事"],
    "medium": ["予定", "計画"],
}

DATE_PATTERNS: List[re.Pattern] = [
    re.compile(r"\d{1,2}月\d{1,2}日"),
    re.compile(r"\d{4}年\d{1,2}月"),
    re.compile(r"来週|今週|来月|今月|明日|今日|昨日"),
    re.compile(r"\d+日後|週間後|ヶ月後"),
]

# Words ignored when comparing messages for shared content
STOPWORDS = frozenset({
    "は", "が", "を", "に", "で", "と", "の", "です", "ます", "した",
    "こと", "もの", "ため", "よう", "それ", "これ", "あれ", "今日",
    "the", "and", "for", "are", "was", "were", "with", "this", "that",
    "have", "has", "but", "not", "you", "can",
})

# Kanji runs, katakana runs, or latin/digit runs; hiragana (particles,
# okurigana) and punctuation act as separators.
_TOKEN_RE = re.compile(r"[一-鿿々]+|[゠-ヿー]+|[a-z0-9]+")


# ============================================================================
# Detection helpers
# ============================================================================

def contains_pattern(text: str, patterns: Sequence[str]) -> bool:
    """True if any pattern occurs as a substring of text."""
    return any(pattern in text for pattern in patterns)


def detect_label(text: str, table: Dict[str, List[str]]) -> Optional[str]:
    """
    Return the first label in table whose keywords occur in text.

    Args:
        text: Lowercased message
        table: Ordered label -> keywords mapping

    Returns:
        Matching label or None
    """
    for label, keywords in table.items():
        if contains_pattern(text, keywords):
            return label
    return None


def detect_subject(text: str) -> Optional[str]:
    return detect_label(text, PROGRESS_SUBJECTS)


def detect_category(text: str) -> Optional[str]:
    return detect_label(text, CHALLENGE_CATEGORIES)


def detect_frequency(text: str) -> Optional[str]:
    return detect_label(text, COMMITMENT_FREQUENCIES)


def detect_emotion(text: str) -> Optional[str]:
    return detect_label(text, EMOTIONS)


def detect_importance(text: str) -> Optional[str]:
    return detect_label(text, MILESTONE_IMPORTANCE)


def emotions_match(current: str, previous: str) -> bool:
    """Same emotion, or one of the pairs treated as equivalent."""
    return current == previous or previous in EQUIVALENT_EMOTIONS.get(current, [])


# ============================================================================
# Dates
# ============================================================================

def contains_date(text: str) -> bool:
    """True if text has a recognizable date expression."""
    text = unicodedata.normalize("NFKC", text)
    return any(pattern.search(text) for pattern in DATE_PATTERNS)


def _count(match: Optional[str]) -> int:
    return int(match) if match else 1


def resolve_date(text: str, now: datetime) -> Optional[datetime]:
    """
    Turn the first recognizable date expression into a datetime.

    Handles absolute dates (M月D日, YYYY年M月[D日]), counted offsets
    (N日後, N週間後, Nヶ月後; a missing N means 1), and relative words
    (今日, 明日, 明後日, 昨日, 今週, 来週, 今月, 来月). Months count as
    30 days.

    Args:
        text: Message text
        now: Reference time

    Returns:
        Resolved datetime, or None when no expression is found
    """
    now = as_utc(now)
    text = unicodedata.normalize("NFKC", text)

    m = re.search(r"(\d{4})年(\d{1,2})月(?:(\d{1,2})日)?", text)
    if m:
        try:
            return now.replace(year=int(m.group(1)), month=int(m.group(2)), day=int(m.group(3) or 1))
        except ValueError:
            return None

    m = re.search(r"(\d{1,2})月(\d{1,2})日", text)
    if m:
        try:
            candidate = now.replace(month=int(m.group(1)), day=int(m.group(2)))
            # A date already well behind us refers to next year
            if candidate < now - timedelta(days=1):
                candidate = candidate.replace(year=candidate.year + 1)
        except ValueError:
            # 2月29日 with no leap day in the resolved year
            return None
        return candidate

    m = re.search(r"(\d+)?日後", text)
    if m:
        return now + timedelta(days=_count(m.group(1)))
    m = re.search(r"(\d+)?週間後", text)
    if m:
        return now + timedelta(weeks=_count(m.group(1)))
    m = re.search(r"(\d+)?[ヶかカケ]月後", text)
    if m:
        return now + timedelta(days=30 * _count(m.group(1)))

    relative = [
        ("明後日", timedelta(days=2)),
        ("明日", timedelta(days=1)),
        ("昨日", timedelta(days=-1)),
        ("今日", timedelta(0)),
        ("来週", timedelta(weeks=1)),
        ("今週", timedelta(0)),
        ("来月", timedelta(days=30)),
        ("今月", timedelta(0)),
    ]
    for word, offset in relative:
        if word in text:
            return now + offset

    return None


# ============================================================================
# Content overlap
# ============================================================================

def extract_keywords(text: str, limit: int = 10) -> List[str]:
    """
    Extract significant words from text.

    Args:
        text: Message or stored description
        limit: Maximum number of words kept, in order of appearance

    Returns:
        Distinct tokens longer than one character, stopwords removed
    """
    tokens: List[str] = []
    for token in _TOKEN_RE.findall(unicodedata.normalize("NFKC", text).lower()):
        if len(token) > 1 and token not in STOPWORDS and token not in tokens:
            tokens.append(token)
    return tokens[:limit]


def is_related_content(text: str, previous: str, min_shared: int = 2) -> bool:
    """True if the two texts share at least ``min_shared`` significant words."""
    shared = set(extract_keywords(text)) & set(extract_keywords(previous))
    return len(shared) >= min_shared
