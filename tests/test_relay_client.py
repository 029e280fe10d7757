"""Tests for the HTTP relay gateway client.

Requests are served by httpx.MockTransport, so no network access is needed.
"""

import asyncio
import json

import httpx
import pytest

from xanadu.ingestion import EventFilter, EventSource, RelayClient, RelayError


def raw_event(event_id: str, tags=None) -> dict:
    return {
        "id": event_id,
        "pubkey": "npub-alice",
        "created_at": 1_700_000_000,
        "kind": 1,
        "content": f"note {event_id}",
        "tags": tags or [],
        "sig": "00",
    }


def make_client(handler, relays=("https://relay-a.test", "https://relay-b.test"), **kwargs):
    kwargs.setdefault("retry_delay", 0)
    return RelayClient(list(relays), transport=httpx.MockTransport(handler), **kwargs)


def run(coro):
    return asyncio.run(coro)


class TestFetchByIds:
    """Tests for id lookups across relays."""

    def test_merges_and_deduplicates(self):
        """Events from all relays are merged, one copy per id."""
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "relay-a.test":
                return httpx.Response(200, json=[raw_event("a"), raw_event("b")])
            return httpx.Response(200, json=[raw_event("b"), raw_event("c")])

        async def go():
            async with make_client(handler) as client:
                return await client.fetch_by_ids(["a", "b", "c"])

        events = run(go())
        assert sorted(e.id for e in events) == ["a", "b", "c"]

    def test_unrequested_ids_dropped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[raw_event("a"), raw_event("zzz")])

        async def go():
            async with make_client(handler, relays=["https://relay-a.test"]) as client:
                return await client.fetch_by_ids(["a"])

        assert [e.id for e in run(go())] == ["a"]

    def test_empty_ids_skip_network(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async def go():
            async with make_client(handler) as client:
                return await client.fetch_by_ids([])

        assert run(go()) == []

    def test_large_lookups_are_chunked(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            bodies.append(body)
            return httpx.Response(200, json=[raw_event(i) for i in body[0]["ids"]])

        async def go():
            async with make_client(
                handler, relays=["https://relay-a.test"], max_ids_per_request=2
            ) as client:
                return await client.fetch_by_ids(["a", "b", "c", "d", "e"])

        events = run(go())
        assert len(events) == 5
        assert [b[0]["ids"] for b in bodies] == [["a", "b"], ["c", "d"], ["e"]]


class TestFetchByFilter:
    """Tests for filter queries."""

    def test_request_shape(self):
        """Filters are posted to /req as a JSON array in NIP-01 form."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path, json.loads(request.content)))
            return httpx.Response(200, json=[raw_event("r", tags=[["e", "X"]])])

        async def go():
            async with make_client(handler, relays=["https://relay-a.test/"]) as client:
                return await client.fetch_by_filter(EventFilter(kinds=[1], e_refs=["X"]))

        events = run(go())
        assert seen == [("POST", "/req", [{"kinds": [1], "#e": ["X"]}])]
        assert events[0].tags == [["e", "X"]]

    def test_invalid_events_skipped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json=[raw_event("ok"), {"content": "no id"}, "garbage"]
            )

        async def go():
            async with make_client(handler, relays=["https://relay-a.test"]) as client:
                return await client.fetch_by_filter(EventFilter(kinds=[1]))

        assert [e.id for e in run(go())] == ["ok"]


class TestFailures:
    """Tests for retries and relay failures."""

    def test_one_failing_relay_is_tolerated(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "relay-a.test":
                return httpx.Response(400, json={"error": "bad filter"})
            return httpx.Response(200, json=[raw_event("b")])

        async def go():
            async with make_client(handler) as client:
                return await client.fetch_by_ids(["b"])

        assert [e.id for e in run(go())] == ["b"]

    def test_all_relays_failing_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        async def go():
            async with make_client(handler) as client:
                await client.fetch_by_ids(["a"])

        with pytest.raises(RelayError):
            run(go())

    def test_server_errors_are_retried(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            if len(attempts) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json=[raw_event("a")])

        async def go():
            async with make_client(
                handler, relays=["https://relay-a.test"], max_retries=3
            ) as client:
                return await client.fetch_by_ids(["a"])

        assert [e.id for e in run(go())] == ["a"]
        assert len(attempts) == 3

    def test_gives_up_after_max_retries(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            return httpx.Response(429)

        async def go():
            async with make_client(
                handler, relays=["https://relay-a.test"], max_retries=2
            ) as client:
                await client.fetch_by_ids(["a"])

        with pytest.raises(RelayError):
            run(go())
        assert len(attempts) == 2

    def test_requires_context_manager(self):
        client = RelayClient(["https://relay-a.test"])

        with pytest.raises(RelayError):
            run(client.fetch_by_ids(["a"]))

    def test_requires_relays(self):
        with pytest.raises(ValueError):
            RelayClient([])


class TestProtocol:
    def test_satisfies_event_source(self):
        assert isinstance(RelayClient(["https://relay-a.test"]), EventSource)
