"""Reference Classifier - Decide which event tags become reply/quote edges.

Reply detection follows the marker convention: an ``e`` tag whose fourth
element is "reply" or "root" is a reply reference. Older clients emitted a
single unmarked ``e`` tag for replies, so when an event carries no markers
at all and exactly one ``e`` tag, that tag is treated as the reply. Two or
more unmarked tags are mentions, not replies. Every ``q`` tag is a quote.
"""

from dataclasses import dataclass, field

from ..ingestion.nostr_event import NostrEvent

REPLY_TAG = "e"
QUOTE_TAG = "q"
REPLY_MARKER = "reply"
ROOT_MARKER = "root"


@dataclass
class ClassifiedReferences:
    """Outgoing references of one event, split by how they enter the graph."""

    replies: list[str] = field(default_factory=list)
    quotes: list[str] = field(default_factory=list)
    mentions: list[str] = field(default_factory=list)  # Not materialized as edges

    @property
    def targets(self) -> list[str]:
        """Ids that will become edge targets, replies first, without repeats."""
        return list(dict.fromkeys([*self.replies, *self.quotes]))


def _valid_tags(event: NostrEvent, name: str) -> list[list[str]]:
    """Tags named ``name`` that actually carry a target id."""
    return [tag for tag in event.get_matching_tags(name) if len(tag) >= 2 and tag[1]]


def _marker(tag: list[str]) -> str | None:
    return tag[3] if len(tag) >= 4 else None


def classify_outgoing(event: NostrEvent) -> ClassifiedReferences:
    """Classify the references ``event`` makes to other events."""
    e_tags = _valid_tags(event, REPLY_TAG)

    reply_tags = [tag for tag in e_tags if _marker(tag) == REPLY_MARKER]
    root_tags = [tag for tag in e_tags if _marker(tag) == ROOT_MARKER]
    implicit_tags = e_tags if not reply_tags and not root_tags and len(e_tags) == 1 else []

    reply_ids = [tag[1] for tag in (*reply_tags, *root_tags, *implicit_tags)]
    replies = list(dict.fromkeys(reply_ids))
    mentions = list(dict.fromkeys(tag[1] for tag in e_tags if tag[1] not in replies))
    quotes = list(dict.fromkeys(tag[1] for tag in _valid_tags(event, QUOTE_TAG)))

    return ClassifiedReferences(replies=replies, quotes=quotes, mentions=mentions)


def is_reply_to(event: NostrEvent, target_id: str) -> bool:
    """Whether ``event`` replies to ``target_id``.

    True for a reply or root marker on a tag pointing at the target, or when
    the target is the event's only ``e`` tag.
    """
    e_tags = _valid_tags(event, REPLY_TAG)
    for tag in e_tags:
        if tag[1] == target_id and _marker(tag) in (REPLY_MARKER, ROOT_MARKER):
            return True
    return len(e_tags) == 1 and e_tags[0][1] == target_id


def is_quote_of(event: NostrEvent, target_id: str) -> bool:
    return any(tag[1] == target_id for tag in _valid_tags(event, QUOTE_TAG))
