"""Graph module - reply/quote graph store, reference classification and traversal."""

from .classifier import ClassifiedReferences, classify_outgoing, is_quote_of, is_reply_to
from .event_loader import EventLoader, TraversalStats
from .store import EdgeType, EventEdge, EventNode, GraphSnapshot, GraphStore

__all__ = [
    "ClassifiedReferences",
    "EdgeType",
    "EventEdge",
    "EventLoader",
    "EventNode",
    "GraphSnapshot",
    "GraphStore",
    "TraversalStats",
    "classify_outgoing",
    "is_quote_of",
    "is_reply_to",
]
