"""Unit tests for NodeCache change detection and the reader/writer lock."""

import threading
import time
from typing import List, Optional

from dnsscale.cache import NodeCache, ReadWriteLock
from dnsscale.models import ChangeKey, Node


def make_node(
    node_id: str,
    name: str = "",
    addresses: Optional[List[str]] = None,
    tags: Optional[List[str]] = None,
    online: bool = True,
) -> Node:
    return Node(
        id=node_id,
        name=name or f"node-{node_id}",
        addresses=["100.64.0.1"] if addresses is None else addresses,
        tags=tags or [],
        online=online,
    )


# =============================================================================
# Change Detection
# =============================================================================


def test_new_nodes_emit_upsert_keys() -> None:
    cache = NodeCache()

    changes = cache.apply_snapshot([make_node("1"), make_node("2")])

    assert changes == [ChangeKey("1"), ChangeKey("2")]
    assert len(cache) == 2
    assert cache.get("1") == make_node("1")


def test_unchanged_snapshot_emits_nothing() -> None:
    cache = NodeCache()
    cache.apply_snapshot([make_node("1"), make_node("2")])

    assert cache.apply_snapshot([make_node("1"), make_node("2")]) == []


def test_tag_only_changes_emit_nothing() -> None:
    cache = NodeCache()
    cache.apply_snapshot([make_node("1", tags=["tag:a"]), make_node("2")])

    changes = cache.apply_snapshot(
        [make_node("1", tags=["tag:b"]), make_node("2", tags=["tag:x", "tag:y"])]
    )

    assert changes == []
    # The cached copy is not refreshed for tag-only changes.
    assert cache.get("1").tags == ["tag:a"]


def test_material_change_emits_upsert_and_replaces_cache_entry() -> None:
    cache = NodeCache()
    cache.apply_snapshot([make_node("1", addresses=["100.64.0.1"])])

    changes = cache.apply_snapshot([make_node("1", addresses=["100.64.0.9"])])

    assert changes == [ChangeKey("1")]
    assert cache.get("1").addresses == ["100.64.0.9"]


def test_online_flip_is_a_material_change() -> None:
    cache = NodeCache()
    cache.apply_snapshot([make_node("1", online=True)])

    assert cache.apply_snapshot([make_node("1", online=False)]) == [ChangeKey("1")]


def test_address_reordering_is_a_material_change() -> None:
    cache = NodeCache()
    cache.apply_snapshot([make_node("1", addresses=["100.64.0.1", "fd7a::1"])])

    changes = cache.apply_snapshot([make_node("1", addresses=["fd7a::1", "100.64.0.1"])])

    assert changes == [ChangeKey("1")]


def test_missing_node_emits_exactly_one_deletion_key() -> None:
    cache = NodeCache()
    cache.apply_snapshot([make_node("1"), make_node("2")])

    changes = cache.apply_snapshot([make_node("2")])

    assert changes == [ChangeKey("1", delete=True)]
    assert "1" not in cache
    assert "2" in cache
    # Gone for good: the next identical snapshot emits nothing more.
    assert cache.apply_snapshot([make_node("2")]) == []


def test_empty_snapshot_deletes_everything() -> None:
    cache = NodeCache()
    cache.apply_snapshot([make_node("1"), make_node("2")])

    changes = cache.apply_snapshot([])

    assert sorted(changes, key=str) == [
        ChangeKey("1", delete=True),
        ChangeKey("2", delete=True),
    ]
    assert len(cache) == 0


def test_snapshot_returns_copy() -> None:
    cache = NodeCache()
    cache.apply_snapshot([make_node("1")])

    copy = cache.snapshot()
    copy.clear()

    assert len(cache) == 1


# =============================================================================
# ReadWriteLock
# =============================================================================


def test_readers_share_the_lock() -> None:
    lock = ReadWriteLock()
    inside = threading.Barrier(2, timeout=2.0)
    errors: List[Exception] = []

    def reader() -> None:
        with lock.read():
            try:
                inside.wait()
            except threading.BrokenBarrierError as e:
                errors.append(e)

    threads = [threading.Thread(target=reader) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(3.0)

    assert errors == []


def test_writer_excludes_readers() -> None:
    lock = ReadWriteLock()
    events: List[str] = []
    writer_in = threading.Event()

    def writer() -> None:
        with lock.write():
            writer_in.set()
            time.sleep(0.1)
            events.append("writer-done")

    def reader() -> None:
        writer_in.wait(2.0)
        with lock.read():
            events.append("reader")

    w = threading.Thread(target=writer)
    r = threading.Thread(target=reader)
    w.start()
    r.start()
    w.join(2.0)
    r.join(2.0)

    assert events == ["writer-done", "reader"]
