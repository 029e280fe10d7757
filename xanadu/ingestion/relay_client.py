"""Relay Client - Async client for HTTP gateways in front of Nostr relays."""

import asyncio
from typing import Any

import httpx
import structlog

from .nostr_event import EventFilter, InvalidEventError, NostrEvent

logger = structlog.get_logger()


class RelayError(RuntimeError):
    """Raised when no relay could answer a query."""


class RelayClient:
    """Async client that queries one or more relay gateways over HTTP.

    Each gateway accepts ``POST {relay_url}/req`` with a JSON array of
    NIP-01 filters and answers with a JSON array of events. This client
    handles:
    - Fan-out to all configured relays, merging results by event id
    - Retries with backoff on 429 and 5xx responses
    - Chunking of large id lookups
    """

    def __init__(
        self,
        relay_urls: list[str],
        timeout: float = 10.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        max_ids_per_request: int = 100,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not relay_urls:
            raise ValueError("At least one relay URL is required")
        self.relay_urls = [url.rstrip("/") for url in relay_urls]
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.max_ids_per_request = max_ids_per_request
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "RelayClient":
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _post(self, url: str, payload: Any) -> Any:
        """Make a POST request with retries."""
        if not self._client:
            raise RelayError("Client not initialized. Use async with.")

        for attempt in range(self.max_retries):
            try:
                response = await self._client.post(url, json=payload)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as e:
                if e.response.status_code == 429:
                    wait_time = (2 ** attempt) * self.retry_delay
                    logger.warning(
                        "rate_limited",
                        url=url,
                        attempt=attempt + 1,
                        wait_time=wait_time,
                    )
                    await asyncio.sleep(wait_time)
                elif e.response.status_code >= 500:
                    logger.warning(
                        "relay_server_error",
                        url=url,
                        status_code=e.response.status_code,
                        attempt=attempt + 1,
                    )
                    await asyncio.sleep(self.retry_delay * (attempt + 1))
                else:
                    raise RelayError(
                        f"Relay {url} rejected query with status {e.response.status_code}"
                    ) from e
            except httpx.RequestError as e:
                logger.warning(
                    "relay_request_error",
                    url=url,
                    error=str(e),
                    attempt=attempt + 1,
                )
                await asyncio.sleep(self.retry_delay * (attempt + 1))

        raise RelayError(f"Failed to query {url} after {self.max_retries} attempts")

    async def query_relay(
        self, relay_url: str, filters: list[EventFilter]
    ) -> list[NostrEvent]:
        """Run filters against a single relay and parse the events it returns."""
        data = await self._post(
            f"{relay_url}/req", [f.to_dict() for f in filters]
        )
        if not isinstance(data, list):
            raise RelayError(f"Relay {relay_url} returned {type(data).__name__}, expected list")

        events = []
        for raw in data:
            try:
                events.append(NostrEvent.from_dict(raw))
            except InvalidEventError as e:
                logger.debug("skipped_invalid_event", relay=relay_url, error=str(e))
        return events

    async def fetch_events(self, filters: list[EventFilter]) -> list[NostrEvent]:
        """Query every relay concurrently and merge the results.

        Events are deduplicated by id, keeping the first copy seen. A relay
        that fails is logged and skipped; RelayError is raised only if every
        relay failed.
        """
        results = await asyncio.gather(
            *(self.query_relay(url, filters) for url in self.relay_urls),
            return_exceptions=True,
        )

        merged: dict[str, NostrEvent] = {}
        failures = 0
        for url, result in zip(self.relay_urls, results):
            if isinstance(result, BaseException):
                failures += 1
                logger.warning("relay_query_failed", relay=url, error=str(result))
                continue
            for event in result:
                merged.setdefault(event.id, event)

        if failures == len(self.relay_urls):
            raise RelayError(f"All {failures} relays failed")

        logger.debug(
            "fetched_events",
            relays=len(self.relay_urls),
            failed_relays=failures,
            count=len(merged),
        )
        return list(merged.values())

    async def fetch_by_ids(self, ids: list[str]) -> list[NostrEvent]:
        """Fetch events by id. Ids no relay knows are simply absent."""
        wanted = list(dict.fromkeys(i for i in ids if i))
        if not wanted:
            return []

        events: list[NostrEvent] = []
        for start in range(0, len(wanted), self.max_ids_per_request):
            chunk = wanted[start:start + self.max_ids_per_request]
            found = await self.fetch_events([EventFilter(ids=chunk)])
            chunk_ids = set(chunk)
            events.extend(e for e in found if e.id in chunk_ids)
        return events

    async def fetch_by_filter(self, event_filter: EventFilter) -> list[NostrEvent]:
        """Fetch events matching a single filter."""
        return await self.fetch_events([event_filter])
