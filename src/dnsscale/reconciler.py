"""Reconciliation engine.

A poller thread diffs Tailscale snapshots against the node cache and queues
change keys; worker threads drain the queue and push the resulting records to
the DNS provider.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterable, List, Optional

from .cache import NodeCache
from .models import (
    RECORD_TTL,
    RECORD_TYPE_TXT,
    ChangeKey,
    DNSProviderError,
    DNSRecord,
    Node,
    NodeNotFoundError,
    SnapshotError,
    is_ownership_record,
    ownership_value,
    record_name_for,
    record_type_for_address,
)
from .providers.base import DEFAULT_TIMEOUT, DNSProvider
from .tailscale import NodeSource
from .workqueue import RateLimitingQueue

logger = logging.getLogger(__name__)


class DNSReconciler:
    """Keeps DNS records for tailnet nodes in sync with the tailnet."""

    def __init__(
        self,
        *,
        source: NodeSource,
        dns_provider: DNSProvider,
        domain: str,
        poll_interval: float = 30.0,
        required_tags: Optional[Iterable[str]] = None,
        queue: Optional[RateLimitingQueue] = None,
        cache: Optional[NodeCache] = None,
        snapshot_timeout: float = DEFAULT_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self.dns_provider = dns_provider
        self.domain = domain
        self.poll_interval = poll_interval
        self.required_tags = set(required_tags or ())
        self.queue = queue or RateLimitingQueue()
        self.cache = cache or NodeCache()
        self.snapshot_timeout = snapshot_timeout
        self._clock = clock

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def run(self, stop_event: threading.Event, workers: int = 2) -> None:
        """Run the poller and ``workers`` worker threads until ``stop_event`` is set.

        Returns after every worker has finished the item it was processing.
        """
        logger.info(
            f"Starting DNS reconciler (workers={workers}, domain={self.domain}, "
            f"poll_interval={self.poll_interval}s, provider={self.dns_provider.name})"
        )

        threads: List[threading.Thread] = [
            threading.Thread(
                target=self.watch, args=(stop_event,), name="dnsscale-poller", daemon=True
            )
        ]
        for worker_id in range(workers):
            threads.append(
                threading.Thread(
                    target=self.worker,
                    args=(worker_id,),
                    name=f"dnsscale-worker-{worker_id}",
                    daemon=True,
                )
            )
        for thread in threads:
            thread.start()

        try:
            while not stop_event.wait(1.0):
                pass
        finally:
            logger.info("Shutting down reconciler")
            stop_event.set()
            self.queue.shut_down()
            for thread in threads:
                thread.join()
            logger.info("Reconciler stopped")

    def watch(self, stop_event: threading.Event) -> None:
        """Poll the node source immediately, then every ``poll_interval`` seconds.

        Ticks are fixed-rate: time spent syncing counts against the interval, and
        ticks missed by a slow sync are skipped rather than run back to back.
        """
        next_tick = self._clock()
        while not stop_event.is_set():
            try:
                self.sync_nodes()
            except Exception as e:
                logger.error(f"Unexpected error while syncing nodes: {e}", exc_info=True)

            now = self._clock()
            next_tick += self.poll_interval
            if next_tick < now:
                missed = int((now - next_tick) // self.poll_interval) + 1
                next_tick += missed * self.poll_interval
            if stop_event.wait(next_tick - now):
                break

    def worker(self, worker_id: int = 0) -> None:
        logger.debug(f"Starting worker {worker_id}")
        while self.process_next_item():
            pass
        logger.debug(f"Worker {worker_id} stopped")

    # -------------------------------------------------------------------------
    # Change detection
    # -------------------------------------------------------------------------

    def sync_nodes(self) -> List[ChangeKey]:
        """Fetch a snapshot, diff it against the cache and queue the changes.

        A failed fetch leaves the cache untouched and queues nothing.
        """
        try:
            nodes = self.source.list_authorized_nodes(timeout=self.snapshot_timeout)
        except SnapshotError as e:
            logger.error(f"Error listing Tailscale nodes: {e}")
            return []

        logger.debug(f"Syncing {len(nodes)} node(s)")
        changes = self.cache.apply_snapshot(nodes)
        for key in changes:
            self.queue.add(key)
        return changes

    # -------------------------------------------------------------------------
    # Work queue processing
    # -------------------------------------------------------------------------

    def process_next_item(self) -> bool:
        """Reconcile one queued key. Returns False once the queue shuts down."""
        key, shutting_down = self.queue.get()
        if shutting_down:
            return False

        try:
            self.reconcile(key)
        except Exception as e:
            logger.error(
                f"Error reconciling {key} (requeues={self.queue.num_requeues(key)}): {e}",
                exc_info=not isinstance(e, (DNSProviderError, NodeNotFoundError)),
            )
            self.queue.add_rate_limited(key)
        else:
            self.queue.forget(key)
        finally:
            self.queue.done(key)
        return True

    def reconcile(self, key: ChangeKey) -> None:
        if key.delete:
            self.delete_node_records(key.node_id)
        else:
            self.reconcile_node(key.node_id)

    # -------------------------------------------------------------------------
    # Upsert path
    # -------------------------------------------------------------------------

    def reconcile_node(self, node_id: str) -> None:
        """Publish address records and the ownership marker for a cached node.

        Raises:
            NodeNotFoundError: The node left the cache after being queued.
            DNSProviderError: An address record could not be published.
        """
        node = self.cache.get(node_id)
        if node is None:
            raise NodeNotFoundError(f"node {node_id} not found in cache")

        if not self.should_manage_node(node):
            logger.debug(f"Skipping node {node.name} due to tag filters (tags={node.tags})")
            return

        record_name = record_name_for(node, self.domain)

        for address in node.addresses:
            record = DNSRecord(
                name=record_name,
                type=record_type_for_address(address),
                value=address,
                ttl=RECORD_TTL,
            )
            try:
                self.dns_provider.update_record(self.domain, record)
            except DNSProviderError as e:
                raise DNSProviderError(f"failed to update DNS record: {e}") from e
            logger.info(
                f"Updated DNS record: {record.type} {record.name} -> {address} (node={node.name})"
            )

        txt_record = DNSRecord(
            name=record_name,
            type=RECORD_TYPE_TXT,
            value=ownership_value(node.id),
            ttl=RECORD_TTL,
        )
        try:
            self.dns_provider.update_record(self.domain, txt_record)
        except DNSProviderError as e:
            # Address records are already published; ownership is best-effort.
            logger.warning(f"Failed to create TXT ownership record {txt_record.name}: {e}")
        else:
            logger.info(f"Updated TXT ownership record: {txt_record.name} -> {txt_record.value}")

    def should_manage_node(self, node: Node) -> bool:
        if not self.required_tags:
            return True
        return any(tag in self.required_tags for tag in node.tags)

    # -------------------------------------------------------------------------
    # Deletion path
    # -------------------------------------------------------------------------

    def delete_node_records(self, node_id: str) -> None:
        """Delete every record sharing a name with the node's ownership marker.

        Records without a matching marker are never touched. Individual delete
        failures are logged and do not fail the key.
        """
        records = self.dns_provider.list_records(self.domain)

        marker = next((r for r in records if is_ownership_record(r, node_id)), None)
        if marker is None:
            logger.debug(f"No dnsscale-managed records found for node {node_id}")
            return

        record_name = marker.name
        logger.info(f"Found dnsscale-managed records to delete: {record_name} (node_id={node_id})")

        for record in records:
            if record.name != record_name:
                continue
            try:
                self.dns_provider.delete_record(self.domain, record)
            except DNSProviderError as e:
                logger.error(f"Failed to delete DNS record {record.type} {record.name}: {e}")
            else:
                logger.info(f"Deleted DNS record: {record.type} {record.name} -> {record.value}")
