"""Event Loader - Bounded, batched discovery of the reply/quote graph.

Starting from seed events, each batch expands up to ``batch_size`` queued
nodes: outgoing references are classified and added as edges right away
(even before the target event is known), the referenced events are
fetched, and relays are asked for events that reply to or quote the node.
Newly found events are queued one hop deeper. Edge endpoints that have no
node yet are tracked as missing and retried between batches.

Only one batch runs at a time. After a batch the next one is scheduled as a
separate task, so the event loop is never held for longer than one batch.
"""

import asyncio
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass

import structlog

from ..ingestion import EventSource
from ..ingestion.nostr_event import TEXT_NOTE_KIND, EventFilter, NostrEvent
from .classifier import classify_outgoing, is_quote_of, is_reply_to
from .store import EdgeType, EventNode, GraphStore

logger = structlog.get_logger()


@dataclass
class TraversalStats:
    """Counters for one traversal, reset by load_initial_events."""

    batches: int = 0
    events_expanded: int = 0
    fetches: int = 0
    fetch_failures: int = 0
    missing_requested: int = 0
    missing_found: int = 0
    stale_results: int = 0


class EventLoader:
    """Drive graph discovery from a set of seed events into a GraphStore."""

    def __init__(
        self,
        source: EventSource,
        store: GraphStore | None = None,
        max_depth: int | None = None,
        max_nodes: int | None = None,
        batch_size: int | None = None,
        missing_batch_size: int | None = None,
        batch_delay: float | None = None,
    ):
        from ..config import BATCH_DELAY, BATCH_SIZE, MAX_DEPTH, MAX_NODES, MISSING_BATCH_SIZE

        if store is None:
            store = GraphStore(
                max_nodes=MAX_NODES if max_nodes is None else max_nodes,
                max_depth=MAX_DEPTH if max_depth is None else max_depth,
            )
        elif (max_depth is not None and max_depth != store.max_depth) or (
            max_nodes is not None and max_nodes != store.max_nodes
        ):
            raise ValueError(
                f"Bounds max_depth={max_depth}, max_nodes={max_nodes} disagree with "
                f"the store's max_depth={store.max_depth}, max_nodes={store.max_nodes}"
            )

        self.source = source
        self.store = store
        self.batch_size = batch_size or BATCH_SIZE
        self.missing_batch_size = missing_batch_size or MISSING_BATCH_SIZE
        self.batch_delay = BATCH_DELAY if batch_delay is None else batch_delay
        self.stats = TraversalStats()

        self._queue: deque[str] = deque()
        self._queued: set[str] = set()
        self._missing: dict[str, None] = {}  # Insertion-ordered set
        self._is_processing = False
        self._cancelled = False
        self._epoch: int | None = None
        self._next_batch: asyncio.Task | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def missing_ids(self) -> frozenset[str]:
        """Referenced ids that have no node and are awaiting a retry."""
        return frozenset(self._missing)

    @property
    def max_depth(self) -> int:
        return self.store.max_depth

    @property
    def max_nodes(self) -> int:
        return self.store.max_nodes

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    async def load_initial_events(self, events: Iterable[NostrEvent]) -> None:
        """Start a new traversal from ``events``, replacing any previous one.

        Seeds are added at depth 0 and the first batch runs before this
        returns; later batches continue in the background.
        """
        self.cancel()
        self._cancelled = False
        self._queue.clear()
        self._queued.clear()
        self._missing.clear()
        self.stats = TraversalStats()
        self._idle.clear()

        seeds = 0
        with self.store.batch_updates():
            self.store.reset()
            self._epoch = self.store.epoch
            for event in events:
                if self.store.add_node(event, 0):
                    self._enqueue(event.id)
                    seeds += 1

        logger.info(
            "loading_initial_events",
            seeds=seeds,
            max_depth=self.max_depth,
            max_nodes=self.max_nodes,
        )
        await self.process_next_batch()

    async def process_next_batch(self) -> None:
        """Expand the next batch of queued nodes.

        A call made while another batch is in flight, or after ``cancel``,
        does nothing. Store listeners are notified once, when the batch ends.
        """
        if self._is_processing or self._cancelled:
            return
        if not self._queue:
            self._update_idle()
            return

        self._is_processing = True
        self._idle.clear()
        epoch = self._epoch
        with self.store.batch_updates():
            try:
                batch = []
                while self._queue and len(batch) < self.batch_size:
                    node_id = self._queue.popleft()
                    self._queued.discard(node_id)
                    batch.append(node_id)

                nodes = []
                for node_id in batch:
                    node = self.store.get_node(node_id)
                    if node is None or node.is_processed or node.depth >= self.max_depth:
                        continue
                    nodes.append(node)

                await asyncio.gather(*(self._process_node(node, epoch) for node in nodes))
                self.stats.batches += 1

                logger.debug(
                    "processed_batch",
                    batch=len(batch),
                    expanded=len(nodes),
                    queued=len(self._queue),
                    missing=len(self._missing),
                    nodes=len(self.store.nodes),
                )

                if self._missing and self._is_current(epoch) and not self._cancelled:
                    await self._try_fetch_missing_events(epoch)
            finally:
                self._is_processing = False

        if self._cancelled:
            self._update_idle()
            logger.info("traversal_cancelled", queued=len(self._queue))
        elif self._queue:
            self._schedule_next_batch()
        else:
            self._update_idle()
            if self._is_current(epoch):
                logger.info("traversal_idle", missing=len(self._missing), **self.store.stats())

    async def wait_until_idle(self, timeout: float | None = None) -> None:
        """Wait until the queue is drained and no batch is running or scheduled.

        Raises:
            asyncio.TimeoutError: if ``timeout`` elapses first
        """
        await asyncio.wait_for(self._idle.wait(), timeout)

    def cancel(self) -> None:
        """Stop the traversal.

        The scheduled continuation is dropped. A batch already in flight
        finishes, but schedules nothing after it. The next
        ``load_initial_events`` starts afresh.
        """
        self._cancelled = True
        if self._next_batch is not None and not self._next_batch.done():
            self._next_batch.cancel()
        self._next_batch = None
        self._update_idle()

    close = cancel

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    def _enqueue(self, node_id: str) -> None:
        if node_id in self._queued:
            return
        self._queue.append(node_id)
        self._queued.add(node_id)

    def _is_current(self, epoch: int | None) -> bool:
        """Whether results for ``epoch`` still belong to the live traversal."""
        return epoch is not None and epoch == self._epoch == self.store.epoch

    def _schedule_next_batch(self) -> None:
        if self._next_batch is not None and not self._next_batch.done():
            return
        self._next_batch = asyncio.get_running_loop().create_task(self._run_after_delay())

    async def _run_after_delay(self) -> None:
        await asyncio.sleep(self.batch_delay)
        self._next_batch = None
        await self.process_next_batch()

    def _update_idle(self) -> None:
        pending = self._next_batch is not None and not self._next_batch.done()
        drained = not self._queue or self._cancelled
        if not self._is_processing and drained and not pending:
            self._idle.set()

    # -------------------------------------------------------------------------
    # Expansion
    # -------------------------------------------------------------------------

    async def _process_node(self, node: EventNode, epoch: int | None) -> None:
        try:
            await self._process_event(node, epoch)
        except Exception as e:
            logger.error("process_event_failed", event_id=node.id, error=str(e))

        if self._is_current(epoch):
            self.store.mark_processed(node.id)

    async def _process_event(self, node: EventNode, epoch: int | None) -> None:
        depth = node.depth + 1
        if depth > self.max_depth:
            return
        if not self._is_current(epoch):
            self.stats.stale_results += 1
            return

        await asyncio.gather(
            self._process_outgoing_connections(node.event, depth, epoch),
            self._process_incoming_connections(node.event, depth, epoch),
        )

        if self._is_current(epoch):
            self._check_for_missing_events()
            self.stats.events_expanded += 1

    async def _process_outgoing_connections(
        self, event: NostrEvent, depth: int, epoch: int | None
    ) -> None:
        """Add edges for the references ``event`` makes, then fetch their targets."""
        if not self._is_current(epoch):
            self.stats.stale_results += 1
            return

        refs = classify_outgoing(event)

        for target in refs.replies:
            self._add_speculative_edge(event.id, target, EdgeType.REPLY)
        for target in refs.quotes:
            self._add_speculative_edge(event.id, target, EdgeType.QUOTE)

        if refs.mentions:
            logger.debug("ignored_mentions", event_id=event.id, count=len(refs.mentions))

        targets = refs.targets
        if not targets:
            return

        found = await self._fetch_by_ids(targets)
        if not self._is_current(epoch):
            self.stats.stale_results += 1
            return

        for referenced in found:
            self._add_discovered(referenced, depth)

    async def _process_incoming_connections(
        self, event: NostrEvent, depth: int, epoch: int | None
    ) -> None:
        """Find events that reply to or quote ``event``."""
        replying, quoting = await asyncio.gather(
            self._fetch_by_filter(EventFilter(kinds=[TEXT_NOTE_KIND], e_refs=[event.id])),
            self._fetch_by_filter(EventFilter(kinds=[TEXT_NOTE_KIND], q_refs=[event.id])),
        )
        if not self._is_current(epoch):
            self.stats.stale_results += 1
            return

        for candidate in replying:
            if candidate.id != event.id and is_reply_to(candidate, event.id):
                self._add_discovered(candidate, depth)
                self.store.add_edge(candidate.id, event.id, EdgeType.REPLY)

        for candidate in quoting:
            if candidate.id != event.id and is_quote_of(candidate, event.id):
                self._add_discovered(candidate, depth)
                self.store.add_edge(candidate.id, event.id, EdgeType.QUOTE)

    def _add_speculative_edge(self, source: str, target: str, edge_type: EdgeType) -> None:
        self.store.add_edge(source, target, edge_type)
        if not self.store.has_node(target):
            self._missing[target] = None

    def _add_discovered(self, event: NostrEvent, depth: int) -> None:
        if self.store.add_node(event, depth):
            self._enqueue(event.id)
        if self.store.has_node(event.id):
            self._missing.pop(event.id, None)

    def _check_for_missing_events(self) -> None:
        for node_id in self.store.dangling_node_ids():
            self._missing[node_id] = None

    async def _try_fetch_missing_events(self, epoch: int | None) -> None:
        """Retry a bounded slice of the missing ids.

        The slice leaves the missing set up front, so ids are not retried
        twice in one cycle; those still unresolved afterwards go back to the
        end of the set. Found events are placed one hop short of
        the depth limit rather than re-measured from a seed.
        """
        batch = list(self._missing)[: self.missing_batch_size]
        for node_id in batch:
            del self._missing[node_id]

        events = await self._fetch_by_ids(batch)
        if not self._is_current(epoch):
            self.stats.stale_results += 1
            return

        depth = max(self.max_depth - 1, 0)
        for event in events:
            self._add_discovered(event, depth)

        # Still dangling: back of the line for a later cycle
        for node_id in batch:
            if not self.store.has_node(node_id):
                self._missing[node_id] = None

        self.stats.missing_requested += len(batch)
        self.stats.missing_found += len(events)
        logger.info("fetched_missing_events", found=len(events), requested=len(batch))

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    async def _fetch_by_ids(self, ids: list[str]) -> list[NostrEvent]:
        self.stats.fetches += 1
        try:
            return await self.source.fetch_by_ids(ids)
        except Exception as e:
            self.stats.fetch_failures += 1
            logger.warning("fetch_events_failed", ids=len(ids), error=str(e))
            return []

    async def _fetch_by_filter(self, event_filter: EventFilter) -> list[NostrEvent]:
        self.stats.fetches += 1
        try:
            return await self.source.fetch_by_filter(event_filter)
        except Exception as e:
            self.stats.fetch_failures += 1
            logger.warning(
                "fetch_events_failed", filter=event_filter.to_dict(), error=str(e)
            )
            return []
