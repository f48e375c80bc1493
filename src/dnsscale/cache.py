"""Node cache and change detection."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Sequence

from .models import ChangeKey, Node, nodes_equal

logger = logging.getLogger(__name__)

# =============================================================================
# Locking
# =============================================================================


class ReadWriteLock:
    """Many concurrent readers or one writer.

    Waiting writers block new readers so a steady stream of reconcile lookups
    cannot starve the poller.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


# =============================================================================
# Node Cache
# =============================================================================


class NodeCache:
    """Node id -> last processed Node."""

    def __init__(self):
        self.lock = ReadWriteLock()
        self._nodes: Dict[str, Node] = {}

    def __len__(self) -> int:
        with self.lock.read():
            return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        with self.lock.read():
            return node_id in self._nodes

    def get(self, node_id: str) -> Optional[Node]:
        with self.lock.read():
            return self._nodes.get(node_id)

    def snapshot(self) -> Dict[str, Node]:
        with self.lock.read():
            return dict(self._nodes)

    def apply_snapshot(self, nodes: Sequence[Node]) -> List[ChangeKey]:
        """Diff ``nodes`` against the cache, update it, and return the change keys.

        New or materially changed nodes yield upsert keys; cached ids missing from
        ``nodes`` are dropped and yield deletion keys. The whole pass runs under
        the write lock.
        """
        changes: List[ChangeKey] = []
        with self.lock.write():
            current_ids = set()

            for node in nodes:
                current_ids.add(node.id)
                existing = self._nodes.get(node.id)
                if existing is not None and nodes_equal(existing, node):
                    continue
                self._nodes[node.id] = node
                changes.append(ChangeKey(node.id))
                logger.info(
                    f"Queuing node for reconciliation: {node.name} (id={node.id}, "
                    f"online={node.online}, addresses={node.addresses})"
                )

            for node_id in [i for i in self._nodes if i not in current_ids]:
                del self._nodes[node_id]
                changes.append(ChangeKey(node_id, delete=True))
                logger.info(f"Queuing node for deletion: id={node_id}")

        return changes
