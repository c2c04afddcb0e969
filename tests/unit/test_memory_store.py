"""
Unit tests for MemoryStore (per-user JSONL persistence).

Tests:
- append(): server-assigned fields, one line per record
- load_all(): ordering, missing files, malformed lines
- touch()/expire()/delete(): rewrite-based mutations
- cleanup(): keep-if-valuable/recent/used policy, milestones never removed
- stats(): per-type counts and recent accesses
"""

import json
import threading
from datetime import timedelta

import pytest

from coach_memory.memory.store import MemoryStore


# ============================================================================
# Append Tests
# ============================================================================

def test_append_assigns_server_fields(store, make_memory, now):
    memory = store.append(make_memory("commitment"), now=now)

    assert memory.id.startswith("mem_")
    assert memory.timestamp == now
    assert memory.accessed == 0
    assert memory.user_id == "student_001"


def test_append_generates_unique_ids(store, make_memory):
    ids = {store.append(make_memory("emotional_state")).id for _ in range(5)}
    assert len(ids) == 5


def test_append_writes_one_line_per_record(store, make_memory):
    for _ in range(3):
        store.append(make_memory("commitment"))

    path = store.memory_dir / "student_001.jsonl"
    lines = path.read_text(encoding="utf-8").splitlines()

    assert len(lines) == 3
    assert all(json.loads(line)["userId"] == "student_001" for line in lines)


def test_append_only_grows_the_file(store, make_memory):
    store.append(make_memory("commitment"))
    path = store.memory_dir / "student_001.jsonl"
    before = path.read_text(encoding="utf-8")

    store.append(make_memory("milestone"))

    assert path.read_text(encoding="utf-8").startswith(before)


@pytest.mark.parametrize("user_id", ["../escape", "a/b", ".hidden"])
def test_append_rejects_unsafe_user_ids(store, make_memory, user_id):
    with pytest.raises(ValueError):
        store.append(make_memory("commitment", user_id=user_id))


# ============================================================================
# Load Tests
# ============================================================================

def test_load_all_missing_user_is_empty(store):
    assert store.load_all("nobody") == []


def test_load_all_returns_oldest_first(store, make_memory, now):
    first = store.append(make_memory("commitment"), now=now - timedelta(days=2))
    second = store.append(make_memory("milestone"), now=now - timedelta(days=1))
    third = store.append(make_memory("emotional_state"), now=now)

    assert [m.id for m in store.load_all("student_001")] == [first.id, second.id, third.id]


def test_load_all_skips_malformed_lines(store, make_memory):
    kept = store.append(make_memory("commitment"))
    path = store.memory_dir / "student_001.jsonl"
    with open(path, "a", encoding="utf-8") as f:
        f.write("{not valid json\n")
        f.write("\n")
    later = store.append(make_memory("milestone"))

    assert [m.id for m in store.load_all("student_001")] == [kept.id, later.id]


def test_load_all_drops_records_of_other_users(store, make_memory):
    store.append(make_memory("commitment"))
    foreign = store.append(make_memory("commitment", user_id="other"))
    other_line = (store.memory_dir / "other.jsonl").read_text(encoding="utf-8")
    with open(store.memory_dir / "student_001.jsonl", "a", encoding="utf-8") as f:
        f.write(other_line)

    assert foreign.id not in [m.id for m in store.load_all("student_001")]


def test_users_are_isolated(store, make_memory):
    store.append(make_memory("commitment", user_id="alice"))
    store.append(make_memory("commitment", user_id="bob"))

    assert len(store.load_all("alice")) == 1
    assert len(store.load_all("bob")) == 1
    assert store.list_users() == ["alice", "bob"]


def test_get_by_id(store, make_memory):
    memory = store.append(make_memory("milestone"))

    assert store.get("student_001", memory.id).id == memory.id
    assert store.get("student_001", "mem_missing") is None


# ============================================================================
# Touch / Expire Tests
# ============================================================================

def test_touch_increments_access(store, make_memory, now):
    memory = store.append(make_memory("commitment"), now=now)

    updated = store.touch("student_001", memory.id, now=now + timedelta(hours=1))

    assert updated.accessed == 1
    assert updated.last_accessed == now + timedelta(hours=1)
    reloaded = store.get("student_001", memory.id)
    assert reloaded.accessed == 1
    assert reloaded.timestamp == now


def test_touch_twice_counts_twice(store, make_memory):
    memory = store.append(make_memory("commitment"))

    store.touch("student_001", memory.id)
    store.touch("student_001", memory.id)

    assert store.get("student_001", memory.id).accessed == 2


def test_touch_unknown_id_is_noop(store, make_memory):
    memory = store.append(make_memory("commitment"))

    assert store.touch("student_001", "mem_missing") is None
    assert store.get("student_001", memory.id).accessed == 0


def test_touch_preserves_order(store, make_memory):
    ids = [store.append(make_memory("commitment")).id for _ in range(3)]

    store.touch("student_001", ids[1])

    assert [m.id for m in store.load_all("student_001")] == ids


def test_expire_sets_flag(store, make_memory):
    memory = store.append(make_memory("commitment"))

    updated = store.expire("student_001", memory.id)

    assert updated.expired is True
    assert store.get("student_001", memory.id).is_expired()


def test_expire_unknown_id_is_noop(store):
    assert store.expire("student_001", "mem_missing") is None


# ============================================================================
# Delete Tests
# ============================================================================

def test_delete_removes_record(store, make_memory):
    keep = store.append(make_memory("commitment"))
    gone = store.append(make_memory("milestone"))

    assert store.delete("student_001", gone.id) is True
    assert [m.id for m in store.load_all("student_001")] == [keep.id]


def test_delete_last_record_removes_file(store, make_memory):
    memory = store.append(make_memory("commitment"))

    assert store.delete("student_001", memory.id) is True
    assert not (store.memory_dir / "student_001.jsonl").exists()
    assert store.load_all("student_001") == []


def test_delete_unknown_returns_false(store, make_memory):
    store.append(make_memory("commitment"))
    assert store.delete("student_001", "mem_missing") is False


def test_rewrite_leaves_no_temp_files(store, make_memory):
    memory = store.append(make_memory("commitment"))
    store.append(make_memory("milestone"))

    store.touch("student_001", memory.id)

    assert sorted(p.name for p in store.memory_dir.iterdir()) == ["student_001.jsonl"]


# ============================================================================
# Cleanup Tests
# ============================================================================

def test_cleanup_removes_only_stale_records(store, make_memory, now):
    old = now - timedelta(days=40)
    stale = store.append(make_memory("commitment", relevance=0.5), now=old)
    valuable = store.append(make_memory("commitment", relevance=0.7), now=old)
    recent = store.append(make_memory("commitment", relevance=0.1), now=now - timedelta(days=5))
    milestone = store.append(make_memory("milestone", relevance=0.1), now=old)
    used = store.append(make_memory("emotional_state", relevance=0.1), now=old)
    for _ in range(3):
        store.touch("student_001", used.id, now=old)

    removed = store.cleanup("student_001", retention_days=30, now=now)

    remaining = {m.id for m in store.load_all("student_001")}
    assert removed == 1
    assert stale.id not in remaining
    assert remaining == {valuable.id, recent.id, milestone.id, used.id}


def test_cleanup_nothing_to_remove(store, make_memory, now):
    store.append(make_memory("commitment", relevance=0.2), now=now)
    assert store.cleanup("student_001", retention_days=30, now=now) == 0


def test_cleanup_missing_user(store):
    assert store.cleanup("nobody") == 0


# ============================================================================
# Stats Tests
# ============================================================================

def test_stats(store, make_memory, now):
    a = store.append(make_memory("commitment"), now=now)
    store.append(make_memory("commitment"), now=now)
    b = store.append(make_memory("milestone"), now=now)
    c = store.append(make_memory("emotional_state"), now=now)
    store.expire("student_001", b.id)
    store.touch("student_001", a.id, now=now - timedelta(days=1))
    store.touch("student_001", c.id, now=now - timedelta(days=10))

    stats = store.stats("student_001", now=now)

    assert stats.total == 4
    assert stats.by_type == {"commitment": 2, "milestone": 1, "emotional_state": 1}
    assert stats.expired == 1
    assert stats.recently_accessed == 1


def test_stats_counts_past_expires_at(store, make_memory, now):
    store.append(make_memory("commitment", expires_at=now - timedelta(hours=1)), now=now)
    assert store.stats("student_001", now=now).expired == 1


def test_stats_empty_user(store):
    stats = store.stats("nobody")
    assert stats.total == 0
    assert stats.by_type == {}


# ============================================================================
# Concurrency Tests
# ============================================================================

def test_lock_is_stable_per_user(store):
    assert store._lock_for("alice") is store._lock_for("alice")
    assert store._lock_for("alice") is not store._lock_for("bob")


def test_concurrent_touches_are_not_lost(store, make_memory):
    memory = store.append(make_memory("commitment"))

    threads = [
        threading.Thread(target=store.touch, args=("student_001", memory.id))
        for _ in range(20)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert store.get("student_001", memory.id).accessed == 20


def test_concurrent_appends_for_different_users(tmp_path, make_memory):
    store = MemoryStore(tmp_path)

    def worker(user_id):
        for _ in range(10):
            store.append(make_memory("emotional_state", user_id=user_id))

    threads = [threading.Thread(target=worker, args=(f"user_{i}",)) for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert all(len(store.load_all(f"user_{i}")) == 10 for i in range(4))
