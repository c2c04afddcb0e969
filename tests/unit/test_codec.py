"""
Unit tests for the JSONL record codec.

Tests:
- encode_memory(): one camelCase JSON object per line
- decode_memory(): every content variant, and rejection of bad lines
- decode_lines(): blank and malformed lines are skipped
"""

import json

import pytest

from coach_memory.memory.codec import decode_lines, decode_memory, encode_memory
from coach_memory.memory.schemas import (
    CommitmentContent,
    CustomContent,
    Memory,
    MilestoneContent,
)


def _finalize(new_memory, now, memory_id="mem_test"):
    return Memory(**new_memory.model_dump(), id=memory_id, timestamp=now, accessed=0)


@pytest.mark.parametrize("mem_type,content", [
    ("learning_progress", None),
    ("learning_challenge", None),
    ("commitment", None),
    ("emotional_state", None),
    ("milestone", None),
    ("custom", None),
    ("custom", {"note": "x", "score": None, "nested": {"when": None}}),
])
def test_every_variant_decodes_to_same_record(make_memory, now, mem_type, content):
    """Each content variant survives encode/decode unchanged."""
    memory = _finalize(make_memory(mem_type, content=content, tags=[mem_type]), now)

    decoded = decode_memory(encode_memory(memory))

    assert decoded == memory
    assert decoded.content.type == mem_type


def test_encode_uses_camel_case_keys(make_memory, now):
    memory = _finalize(make_memory("milestone", content={"originalMessage": "英検があります"}), now)

    data = json.loads(encode_memory(memory))

    assert data["userId"] == "student_001"
    assert data["sessionId"] == "default"
    assert data["content"]["eventDate"].startswith("2025-09-15T10:00:00")
    assert data["content"]["originalMessage"] == "英検があります"
    assert "user_id" not in data


def test_encode_omits_unset_optional_fields(make_memory, now):
    data = json.loads(encode_memory(_finalize(make_memory("commitment"), now)))

    assert "expiresAt" not in data
    assert "lastAccessed" not in data
    assert "completedDate" not in data["content"]


def test_encode_is_single_line_with_embedded_newlines(make_memory, now):
    memory = _finalize(make_memory("commitment", content={"task": "宿題\n次の行"}), now)

    line = encode_memory(memory)

    assert "\n" not in line
    assert decode_memory(line).content.task == "宿題\n次の行"


def test_decode_keeps_japanese_text_readable(make_memory, now):
    line = encode_memory(_finalize(make_memory("commitment"), now))
    assert "リスニングの宿題" in line


def test_decode_content_variant_classes(make_memory, now):
    commitment = decode_memory(encode_memory(_finalize(make_memory("commitment"), now)))
    milestone = decode_memory(encode_memory(_finalize(make_memory("milestone"), now)))
    custom = decode_memory(encode_memory(_finalize(make_memory("custom"), now)))

    assert isinstance(commitment.content, CommitmentContent)
    assert isinstance(milestone.content, MilestoneContent)
    assert isinstance(custom.content, CustomContent)
    assert custom.content.model_dump()["note"] == "free form"


def test_decode_naive_timestamp_is_utc():
    line = json.dumps({
        "id": "mem_1",
        "userId": "u1",
        "sessionId": "s1",
        "type": "emotional_state",
        "content": {"type": "emotional_state", "date": "2025-09-05T10:00:00", "emotion": "tired"},
        "timestamp": "2025-09-05T10:00:00",
        "relevance": 0.75,
        "accessed": 0,
        "tags": [],
    })

    memory = decode_memory(line)

    assert memory.timestamp.tzinfo is not None
    assert memory.content.intensity == 3


@pytest.mark.parametrize("line", [
    "not json",
    "[1, 2, 3]",
    '{"id": "mem_1"}',
    '{"id": "mem_1", "userId": "u1", "type": "commitment", "content": {"type": "milestone"},'
    ' "timestamp": "2025-09-05T10:00:00Z"}',
])
def test_decode_rejects_bad_lines(line):
    with pytest.raises(ValueError):
        decode_memory(line)


def test_decode_rejects_type_mismatch(make_memory, now):
    data = json.loads(encode_memory(_finalize(make_memory("commitment"), now)))
    data["type"] = "milestone"

    with pytest.raises(ValueError):
        decode_memory(json.dumps(data))


def test_decode_lines_skips_blank_and_malformed(make_memory, now):
    good_a = encode_memory(_finalize(make_memory("commitment"), now, "mem_a"))
    good_b = encode_memory(_finalize(make_memory("milestone"), now, "mem_b"))

    decoded = list(decode_lines([good_a + "\n", "\n", "{broken\n", good_b + "\n"]))

    assert [m.id for m in decoded] == ["mem_a", "mem_b"]


def test_custom_null_values_are_written(make_memory, now):
    memory = _finalize(make_memory("custom", content={"score": None}), now)

    data = json.loads(encode_memory(memory))

    assert data["content"]["score"] is None
    assert "originalMessage" not in data["content"]
