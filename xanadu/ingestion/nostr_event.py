"""Nostr events and relay filters in the NIP-01 JSON shape."""

from dataclasses import dataclass, field
from typing import Any

TEXT_NOTE_KIND = 1


class InvalidEventError(ValueError):
    """Raised when a relay payload cannot be read as a Nostr event."""


@dataclass
class NostrEvent:
    """A single content item as published to relays."""
    id: str
    pubkey: str  # Author public key (hex)
    created_at: int  # Unix seconds
    kind: int
    content: str
    tags: list[list[str]] = field(default_factory=list)
    sig: str | None = None

    def get_matching_tags(self, name: str) -> list[list[str]]:
        """Return all tags whose first element is ``name`` (e.g. "e", "q")."""
        return [tag for tag in self.tags if tag and tag[0] == name]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NostrEvent":
        """Parse a relay JSON event.

        Raises:
            InvalidEventError: if a required field is missing or mistyped
        """
        if not isinstance(data, dict):
            raise InvalidEventError(f"event must be an object, got {type(data).__name__}")

        event_id = data.get("id")
        if not isinstance(event_id, str) or not event_id:
            raise InvalidEventError("event has no id")

        try:
            tags = [[str(value) for value in tag] for tag in data.get("tags") or []]
            return cls(
                id=event_id,
                pubkey=str(data.get("pubkey", "")),
                created_at=int(data.get("created_at", 0)),
                kind=int(data.get("kind", TEXT_NOTE_KIND)),
                content=str(data.get("content", "")),
                tags=tags,
                sig=data.get("sig"),
            )
        except (TypeError, ValueError) as e:
            raise InvalidEventError(f"malformed event {event_id}: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "content": self.content,
            "tags": [list(tag) for tag in self.tags],
        }
        if self.sig is not None:
            data["sig"] = self.sig
        return data


@dataclass
class EventFilter:
    """A relay query.

    ``e_refs`` and ``q_refs`` select events carrying an ``e`` / ``q`` tag that
    points at one of the listed ids ("#e" / "#q" in the wire format).
    """
    ids: list[str] | None = None
    authors: list[str] | None = None
    kinds: list[int] | None = None
    e_refs: list[str] | None = None
    q_refs: list[str] | None = None
    since: int | None = None
    until: int | None = None
    limit: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Wire representation; unset fields are omitted."""
        data: dict[str, Any] = {}
        if self.ids is not None:
            data["ids"] = list(self.ids)
        if self.authors is not None:
            data["authors"] = list(self.authors)
        if self.kinds is not None:
            data["kinds"] = list(self.kinds)
        if self.e_refs is not None:
            data["#e"] = list(self.e_refs)
        if self.q_refs is not None:
            data["#q"] = list(self.q_refs)
        if self.since is not None:
            data["since"] = self.since
        if self.until is not None:
            data["until"] = self.until
        if self.limit is not None:
            data["limit"] = self.limit
        return data
