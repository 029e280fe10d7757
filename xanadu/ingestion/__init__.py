"""Event ingestion -- relay access and the content-item types it yields."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .nostr_event import TEXT_NOTE_KIND, EventFilter, InvalidEventError, NostrEvent
from .relay_client import RelayClient, RelayError


# ---------------------------------------------------------------------------
# Protocol the traversal consumes (RelayClient satisfies it)
# ---------------------------------------------------------------------------
@runtime_checkable
class EventSource(Protocol):
    """Best-effort event lookup. Missing events are absent, not errors."""

    async def fetch_by_ids(self, ids: list[str]) -> list[NostrEvent]: ...
    async def fetch_by_filter(self, event_filter: EventFilter) -> list[NostrEvent]: ...


# ---------------------------------------------------------------------------
# Factory -- reads from config (env vars) unless caller overrides
# ---------------------------------------------------------------------------
def create_relay_client(
    relay_urls: list[str] | None = None,
    timeout: float | None = None,
    max_retries: int | None = None,
) -> RelayClient:
    """Create a RelayClient; omitted arguments fall back to xanadu.config."""
    from ..config import RELAY_MAX_RETRIES, RELAY_TIMEOUT, RELAY_URLS

    return RelayClient(
        relay_urls=relay_urls or RELAY_URLS,
        timeout=timeout if timeout is not None else RELAY_TIMEOUT,
        max_retries=max_retries if max_retries is not None else RELAY_MAX_RETRIES,
    )


__all__ = [
    "EventFilter",
    "EventSource",
    "InvalidEventError",
    "NostrEvent",
    "RelayClient",
    "RelayError",
    "TEXT_NOTE_KIND",
    "create_relay_client",
]
