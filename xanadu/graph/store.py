"""Graph Store - In-memory nodes, edges and view state for a discovery session."""

from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum
from types import MappingProxyType
from typing import Any

import structlog

from ..ingestion.nostr_event import NostrEvent

logger = structlog.get_logger()


class EdgeType(Enum):
    """Kind of reference an edge represents."""

    REPLY = "reply"
    QUOTE = "quote"


@dataclass
class EventNode:
    """A discovered event in the graph."""

    id: str
    event: NostrEvent
    depth: int  # Hops from the nearest seed at discovery time
    is_processed: bool = False
    x: float | None = None  # Layout coordinates, owned by the renderer
    y: float | None = None


@dataclass(frozen=True)
class EventEdge:
    """A directed reply/quote relationship. Endpoints may not be nodes yet."""

    source: str
    target: str
    type: EdgeType


@dataclass(frozen=True)
class GraphSnapshot:
    """Read-only view of the store handed to subscribers."""

    nodes: Mapping[str, EventNode]
    edges: tuple[EventEdge, ...]
    selected_node_id: str | None
    open_card_ids: frozenset[str]
    epoch: int


Listener = Callable[[GraphSnapshot], None]


class GraphStore:
    """Authoritative store of discovered nodes and edges.

    Every mutation is idempotent and never raises: adding an existing node
    or edge, or touching an unknown id, is a no-op. Callers can therefore
    write speculatively without checking first.
    """

    def __init__(self, max_nodes: int = 1000, max_depth: int = 5):
        self.max_nodes = max_nodes
        self.max_depth = max_depth
        self._nodes: dict[str, EventNode] = {}
        self._edges: list[EventEdge] = []
        self._edge_keys: set[tuple[str, str, EdgeType]] = set()
        self._selected_node_id: str | None = None
        self._open_card_ids: set[str] = set()
        self._listeners: list[Listener] = []
        self._held = 0
        self._dirty = False
        self._capacity_logged = False
        self.epoch = 0

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def add_node(self, event: NostrEvent, depth: int) -> bool:
        """Add a node for ``event`` at ``depth``.

        Returns True if a node was created. Existing ids, a full store and
        depths beyond max_depth are silently ignored.
        """
        if event.id in self._nodes:
            return False
        if depth < 0 or depth > self.max_depth:
            return False
        if len(self._nodes) >= self.max_nodes:
            if not self._capacity_logged:
                logger.debug("graph_capacity_reached", max_nodes=self.max_nodes)
                self._capacity_logged = True
            return False

        self._nodes[event.id] = EventNode(id=event.id, event=event, depth=depth)
        self._notify()
        return True

    def add_edge(self, source: str, target: str, edge_type: EdgeType) -> bool:
        """Add an edge unless the exact (source, target, type) already exists."""
        key = (source, target, edge_type)
        if key in self._edge_keys:
            return False

        self._edge_keys.add(key)
        self._edges.append(EventEdge(source=source, target=target, type=edge_type))
        self._notify()
        return True

    def set_position(self, node_id: str, x: float, y: float) -> None:
        node = self._nodes.get(node_id)
        if node is None:
            return
        node.x = x
        node.y = y
        self._notify()

    def mark_processed(self, node_id: str) -> None:
        node = self._nodes.get(node_id)
        if node is None or node.is_processed:
            return
        node.is_processed = True
        self._notify()

    def select_node(self, node_id: str | None) -> None:
        self._selected_node_id = node_id
        self._notify()

    def toggle_open_card(self, node_id: str) -> None:
        """Open the detail card for a node, or close it if already open."""
        if node_id in self._open_card_ids:
            self._open_card_ids.discard(node_id)
        else:
            self._open_card_ids.add(node_id)
        self._notify()

    def reset(self) -> None:
        """Drop all graph and view state.

        Bumps ``epoch`` so that traversals started before the reset can tell
        their pending results are stale.
        """
        self._nodes = {}
        self._edges = []
        self._edge_keys = set()
        self._selected_node_id = None
        self._open_card_ids = set()
        self._capacity_logged = False
        self.epoch += 1
        logger.debug("graph_store_reset", epoch=self.epoch)
        self._notify()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def nodes(self) -> Mapping[str, EventNode]:
        """Nodes keyed by id, in insertion order."""
        return MappingProxyType(self._nodes)

    @property
    def edges(self) -> tuple[EventEdge, ...]:
        return tuple(self._edges)

    @property
    def selected_node_id(self) -> str | None:
        return self._selected_node_id

    @property
    def open_card_ids(self) -> frozenset[str]:
        return frozenset(self._open_card_ids)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def get_node(self, node_id: str) -> EventNode | None:
        return self._nodes.get(node_id)

    def has_edge(self, source: str, target: str, edge_type: EdgeType) -> bool:
        return (source, target, edge_type) in self._edge_keys

    def edges_for(self, node_id: str) -> list[EventEdge]:
        """Edges where ``node_id`` is either endpoint."""
        return [e for e in self._edges if node_id in (e.source, e.target)]

    def unprocessed_nodes(self) -> list[EventNode]:
        return [node for node in self._nodes.values() if not node.is_processed]

    def dangling_node_ids(self) -> set[str]:
        """Edge endpoints that have no node."""
        dangling = set()
        for edge in self._edges:
            if edge.source not in self._nodes:
                dangling.add(edge.source)
            if edge.target not in self._nodes:
                dangling.add(edge.target)
        return dangling

    def stats(self) -> dict[str, int]:
        """Counts for progress reporting."""
        return {
            "nodes": len(self._nodes),
            "processed": sum(1 for n in self._nodes.values() if n.is_processed),
            "edges": len(self._edges),
            "reply_edges": sum(1 for e in self._edges if e.type is EdgeType.REPLY),
            "quote_edges": sum(1 for e in self._edges if e.type is EdgeType.QUOTE),
            "dangling": len(self.dangling_node_ids()),
        }

    def to_dict(self) -> dict[str, Any]:
        """Node-link representation for force-layout renderers."""
        return {
            "nodes": [
                {
                    "id": node.id,
                    "depth": node.depth,
                    "processed": node.is_processed,
                    "pubkey": node.event.pubkey,
                    "created_at": node.event.created_at,
                    "content": node.event.content,
                    "x": node.x,
                    "y": node.y,
                }
                for node in self._nodes.values()
            ],
            "links": [
                {"source": e.source, "target": e.target, "type": e.type.value}
                for e in self._edges
            ],
        }

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def snapshot(self) -> GraphSnapshot:
        return GraphSnapshot(
            nodes=MappingProxyType({k: replace(v) for k, v in self._nodes.items()}),
            edges=tuple(self._edges),
            selected_node_id=self._selected_node_id,
            open_card_ids=frozenset(self._open_card_ids),
            epoch=self.epoch,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with a fresh snapshot after every change.

        Inside ``batch_updates`` the changes are coalesced into one call.

        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @contextmanager
    def batch_updates(self) -> Iterator["GraphStore"]:
        """Hold listener notifications inside the block.

        Listeners get one snapshot when the outermost block exits, and only
        if something changed. Blocks may nest.
        """
        self._held += 1
        try:
            yield self
        finally:
            self._held -= 1
            if not self._held and self._dirty:
                self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        if self._held:
            self._dirty = True
            return
        self._dirty = False
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.warning("graph_listener_failed", error=str(e))
