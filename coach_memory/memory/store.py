"""
Memory persistence layer using one JSONL file per user.

Appends are a single line write; access bookkeeping, expiry, deletion,
and cleanup rewrite the user's whole file through a temp file.
"""

import os
import re
import tempfile
import threading
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Union

from coach_memory.telemetry import get_logger
from .codec import decode_lines, encode_memory
from .schemas import Memory, MemoryStats, NewMemory, utcnow, as_utc


logger = get_logger(__name__)

# Cleanup keep-conditions
KEEP_RELEVANCE = 0.7
KEEP_ACCESS_COUNT = 3
RECENT_ACCESS_DAYS = 7

_USER_ID_RE = re.compile(r"^[A-Za-z0-9_\-][A-Za-z0-9_.\-]*$")


class MemoryStore:
    """
    Persistent storage for memory records.

    Layout: ``<memory_dir>/<user_id>.jsonl``, oldest record first.

    Features:
    - O(1) append of new records
    - Tolerant loading (malformed lines skipped and logged)
    - Rewrite-based touch/expire/delete/cleanup
    - One lock per user; different users never block each other

    Locks are created on first use and kept for the life of the store
    (one small RLock per user id seen), so every caller for a user
    always serializes on the same lock.
    """

    def __init__(self, memory_dir: Optional[Union[str, Path]] = None):
        """
        Initialize memory store.

        Args:
            memory_dir: Directory for per-user files (default: data/memories)
        """
        if memory_dir is None:
            memory_dir = Path("data/memories")

        self.memory_dir = Path(memory_dir)
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Paths and locking
    # ------------------------------------------------------------------

    def _user_path(self, user_id: str) -> Path:
        """Return the JSONL path for a user, validating the id."""
        if not user_id:
            raise ValueError("userId is required")
        if not _USER_ID_RE.match(user_id):
            raise ValueError(f"Invalid userId: {user_id!r}")
        return self.memory_dir / f"{user_id}.jsonl"

    def _lock_for(self, user_id: str) -> threading.RLock:
        """Return the lock for a user, creating it once; never evicted."""
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[user_id] = lock
            return lock

    def _rewrite(self, user_id: str, memories: List[Memory]) -> None:
        """
        Replace a user's file with the given records.

        Writes to a temp file in the same directory and renames it over
        the original, so readers see either the old or the new collection.
        An empty collection removes the file.
        """
        path = self._user_path(user_id)

        if not memories:
            if path.exists():
                path.unlink()
            return

        self.memory_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(self.memory_dir), prefix=f".{user_id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                for memory in memories:
                    f.write(encode_memory(memory))
                    f.write("\n")
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def append(self, new_memory: NewMemory, now: Optional[datetime] = None) -> Memory:
        """
        Store a new memory.

        Assigns ``id``, ``timestamp`` and ``accessed=0`` and appends one line.

        Args:
            new_memory: Record without server-assigned fields
            now: Creation time (default: current UTC time)

        Returns:
            The finalized Memory

        Raises:
            ValueError: If the userId is missing or unsafe
            OSError: If the file cannot be written
        """
        path = self._user_path(new_memory.user_id)

        memory = Memory(
            **new_memory.model_dump(),
            id=f"mem_{uuid.uuid4().hex}",
            timestamp=as_utc(now) if now else utcnow(),
            accessed=0,
        )

        with self._lock_for(new_memory.user_id):
            self.memory_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(encode_memory(memory) + "\n")

        logger.info("memory_saved", user_id=memory.user_id, memory_id=memory.id, type=memory.type)
        return memory

    def load_all(self, user_id: str) -> List[Memory]:
        """
        Load every memory for a user, oldest first.

        A missing file is an empty collection; malformed lines are skipped.

        Args:
            user_id: Owning user

        Returns:
            List of Memory objects
        """
        path = self._user_path(user_id)

        if not path.exists():
            return []

        with open(path, "r", encoding="utf-8") as f:
            memories = list(decode_lines(f, source=str(path)))

        # A record written under another user's name never belongs here
        return [m for m in memories if m.user_id == user_id]

    def get(self, user_id: str, memory_id: str) -> Optional[Memory]:
        """Return one memory by id, or None."""
        for memory in self.load_all(user_id):
            if memory.id == memory_id:
                return memory
        return None

    def touch(self, user_id: str, memory_id: str, now: Optional[datetime] = None) -> Optional[Memory]:
        """
        Record a retrieval hit: ``accessed += 1`` and ``lastAccessed = now``.

        Args:
            user_id: Owning user
            memory_id: Memory identifier
            now: Access time (default: current UTC time)

        Returns:
            The updated Memory, or None if the id was not found
        """
        with self._lock_for(user_id):
            memories = self.load_all(user_id)
            target = next((m for m in memories if m.id == memory_id), None)

            if target is None:
                logger.warning("memory_not_found", op="touch", user_id=user_id, memory_id=memory_id)
                return None

            target.mark_accessed(now)
            self._rewrite(user_id, memories)

        logger.info("memory_touched", user_id=user_id, memory_id=memory_id, accessed=target.accessed)
        return target

    def expire(self, user_id: str, memory_id: str) -> Optional[Memory]:
        """
        Flag a memory as expired.

        Args:
            user_id: Owning user
            memory_id: Memory identifier

        Returns:
            The updated Memory, or None if the id was not found
        """
        with self._lock_for(user_id):
            memories = self.load_all(user_id)
            target = next((m for m in memories if m.id == memory_id), None)

            if target is None:
                logger.warning("memory_not_found", op="expire", user_id=user_id, memory_id=memory_id)
                return None

            target.expired = True
            self._rewrite(user_id, memories)

        logger.info("memory_expired", user_id=user_id, memory_id=memory_id)
        return target

    def delete(self, user_id: str, memory_id: str) -> bool:
        """
        Delete a memory.

        Args:
            user_id: Owning user
            memory_id: Memory identifier

        Returns:
            True if deleted, False if not found
        """
        with self._lock_for(user_id):
            memories = self.load_all(user_id)
            remaining = [m for m in memories if m.id != memory_id]

            if len(remaining) == len(memories):
                logger.warning("memory_not_found", op="delete", user_id=user_id, memory_id=memory_id)
                return False

            self._rewrite(user_id, remaining)

        logger.info("memory_deleted", user_id=user_id, memory_id=memory_id, remaining=len(remaining))
        return True

    def cleanup(self, user_id: str, retention_days: int = 30, now: Optional[datetime] = None) -> int:
        """
        Remove old, low-value, rarely used memories.

        A memory survives if any of these hold: relevance >= 0.7, created
        within ``retention_days``, accessed >= 3 times, or type milestone.

        Args:
            user_id: Owning user
            retention_days: Age threshold in days
            now: Reference time (default: current UTC time)

        Returns:
            Number of memories removed
        """
        cutoff = (as_utc(now) if now else utcnow()) - timedelta(days=retention_days)

        with self._lock_for(user_id):
            memories = self.load_all(user_id)
            keep = [
                m for m in memories
                if m.relevance >= KEEP_RELEVANCE
                or m.timestamp > cutoff
                or m.accessed >= KEEP_ACCESS_COUNT
                or m.type == "milestone"
            ]
            removed = len(memories) - len(keep)

            if removed > 0:
                self._rewrite(user_id, keep)

        if removed > 0:
            logger.info("memory_cleanup", user_id=user_id, removed=removed, kept=len(keep))
        return removed

    def stats(self, user_id: str, now: Optional[datetime] = None) -> MemoryStats:
        """
        Summarize a user's collection.

        Args:
            user_id: Owning user
            now: Reference time (default: current UTC time)

        Returns:
            MemoryStats with totals, per-type counts, expired count, and
            records accessed in the last 7 days
        """
        now = as_utc(now) if now else utcnow()
        recent_threshold = now - timedelta(days=RECENT_ACCESS_DAYS)

        stats = MemoryStats()
        for memory in self.load_all(user_id):
            stats.total += 1
            stats.by_type[memory.type] = stats.by_type.get(memory.type, 0) + 1
            if memory.is_expired(now):
                stats.expired += 1
            if memory.last_accessed is not None and memory.last_accessed > recent_threshold:
                stats.recently_accessed += 1

        return stats

    def list_users(self) -> List[str]:
        """Return user ids that currently have a memory file."""
        if not self.memory_dir.exists():
            return []
        return sorted(p.stem for p in self.memory_dir.glob("*.jsonl"))
