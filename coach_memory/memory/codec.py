"""
Line codec for memory records.

Each record is one self-contained JSON object on its own line, with
camelCase keys and ISO-8601 timestamps.
"""

import json
from typing import Iterable, Iterator

from pydantic import ValidationError

from coach_memory.telemetry import get_logger
from .schemas import Memory


logger = get_logger(__name__)


def encode_memory(memory: Memory) -> str:
    """
    Serialize a memory to a single JSONL line (without trailing newline).

    Args:
        memory: Record to encode

    Returns:
        JSON text with no embedded newlines
    """
    # json.dumps escapes control characters, so the result is always one line
    return json.dumps(memory.to_storage_dict(), ensure_ascii=False)


def decode_memory(line: str) -> Memory:
    """
    Parse one JSONL line back into a Memory.

    Args:
        line: Encoded record

    Returns:
        Decoded Memory

    Raises:
        ValueError: If the line is not valid JSON or not a valid record
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")

    try:
        return Memory.from_storage_dict(data)
    except ValidationError as e:
        raise ValueError(f"Invalid memory record: {e.error_count()} validation error(s)") from e


def decode_lines(lines: Iterable[str], source: str = "<memory>") -> Iterator[Memory]:
    """
    Decode a stream of lines, skipping blanks and malformed records.

    Args:
        lines: Raw lines (trailing newlines allowed)
        source: Label used in log events (usually the file path)

    Yields:
        Successfully decoded memories in input order
    """
    for lineno, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line:
            continue
        try:
            yield decode_memory(line)
        except ValueError as e:
            logger.warning("memory_line_skipped", source=source, line=lineno, error=str(e))
