"""Shared test fixtures for the xanadu graph explorer."""

import asyncio

import pytest

from xanadu.ingestion.nostr_event import TEXT_NOTE_KIND, EventFilter, NostrEvent


def make_event(
    event_id: str,
    tags: list[list[str]] | None = None,
    kind: int = TEXT_NOTE_KIND,
    pubkey: str = "npub-alice",
    content: str = "",
    created_at: int = 1_700_000_000,
) -> NostrEvent:
    """Build a text note with the given tags."""
    return NostrEvent(
        id=event_id,
        pubkey=pubkey,
        created_at=created_at,
        kind=kind,
        content=content or f"note {event_id}",
        tags=tags or [],
    )


class FakeEventSource:
    """In-memory relay network.

    Filters are matched the way a relay would: kinds, authors, ids and
    ``#e`` / ``#q`` tag references.
    """

    def __init__(self, events: list[NostrEvent] | None = None):
        self.events: dict[str, NostrEvent] = {e.id: e for e in events or []}
        self.id_calls: list[list[str]] = []
        self.filter_calls: list[EventFilter] = []
        self.fail_filters = False
        self.fail_all = False
        self.fail_once_ids: set[str] = set()
        self.gate: asyncio.Event | None = None
        self.started: asyncio.Event | None = None

    def add(self, *events: NostrEvent) -> None:
        for event in events:
            self.events[event.id] = event

    async def _wait_for_gate(self) -> None:
        if self.started is not None:
            self.started.set()
        if self.gate is not None:
            await self.gate.wait()

    async def fetch_by_ids(self, ids: list[str]) -> list[NostrEvent]:
        self.id_calls.append(list(ids))
        await self._wait_for_gate()
        if self.fail_all:
            raise ConnectionError("relay unreachable")
        flaky = self.fail_once_ids.intersection(ids)
        if flaky:
            self.fail_once_ids -= flaky
            raise ConnectionError("relay timed out")
        return [self.events[i] for i in ids if i in self.events]

    async def fetch_by_filter(self, event_filter: EventFilter) -> list[NostrEvent]:
        self.filter_calls.append(event_filter)
        await self._wait_for_gate()
        if self.fail_all or self.fail_filters:
            raise ConnectionError("relay unreachable")
        matches = [e for e in self.events.values() if _matches(e, event_filter)]
        if event_filter.limit is not None:
            matches = matches[: event_filter.limit]
        return matches


def _matches(event: NostrEvent, event_filter: EventFilter) -> bool:
    if event_filter.ids is not None and event.id not in event_filter.ids:
        return False
    if event_filter.kinds is not None and event.kind not in event_filter.kinds:
        return False
    if event_filter.authors is not None and event.pubkey not in event_filter.authors:
        return False
    if event_filter.e_refs is not None and not any(
        len(t) >= 2 and t[1] in event_filter.e_refs for t in event.get_matching_tags("e")
    ):
        return False
    if event_filter.q_refs is not None and not any(
        len(t) >= 2 and t[1] in event_filter.q_refs for t in event.get_matching_tags("q")
    ):
        return False
    return True


@pytest.fixture
def network():
    """Empty in-memory relay network; tests add events to it."""
    return FakeEventSource()


@pytest.fixture
def thread_events():
    """A small, fully resolvable thread.

    Graph structure:
        A --reply(root)--> R
        B --reply(root)--> R, B --reply--> A
        Q --quote--> A
    """
    return {
        "R": make_event("R"),
        "A": make_event("A", tags=[["e", "R", "", "root"]]),
        "B": make_event("B", tags=[["e", "R", "", "root"], ["e", "A", "", "reply"]]),
        "Q": make_event("Q", tags=[["q", "A"]]),
    }


@pytest.fixture
def event_factory():
    """The make_event builder, for tests that need ad-hoc events."""
    return make_event
