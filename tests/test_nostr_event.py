"""Tests for Nostr event parsing and relay filters."""

import pytest

from xanadu.ingestion import EventFilter, InvalidEventError, NostrEvent


class TestNostrEvent:
    """Tests for the content-item model."""

    def test_from_dict(self):
        event = NostrEvent.from_dict({
            "id": "abc",
            "pubkey": "npub-alice",
            "created_at": 1700000000,
            "kind": 1,
            "content": "gm",
            "tags": [["e", "parent", "wss://relay", "reply"], ["p", "npub-bob"]],
            "sig": "ff",
        })

        assert event.id == "abc"
        assert event.get_matching_tags("e") == [["e", "parent", "wss://relay", "reply"]]
        assert event.get_matching_tags("q") == []

    def test_to_dict_roundtrip_shape(self):
        data = {
            "id": "abc",
            "pubkey": "npub-alice",
            "created_at": 1,
            "kind": 1,
            "content": "",
            "tags": [["q", "x"]],
        }

        assert NostrEvent.from_dict(data).to_dict() == data

    def test_missing_id_rejected(self):
        with pytest.raises(InvalidEventError):
            NostrEvent.from_dict({"content": "no id"})

    def test_bad_field_rejected(self):
        with pytest.raises(InvalidEventError):
            NostrEvent.from_dict({"id": "abc", "created_at": "yesterday"})

    def test_non_object_rejected(self):
        with pytest.raises(InvalidEventError):
            NostrEvent.from_dict(["not", "an", "event"])

    def test_empty_tags_ignored_by_matching(self):
        event = NostrEvent.from_dict({"id": "abc", "tags": [[], ["e", "x"]]})
        assert event.get_matching_tags("e") == [["e", "x"]]


class TestEventFilter:
    """Tests for the wire form of relay filters."""

    def test_unset_fields_omitted(self):
        assert EventFilter().to_dict() == {}

    def test_tag_references_use_hash_keys(self):
        f = EventFilter(kinds=[1], e_refs=["a"], q_refs=["b"], limit=20)

        assert f.to_dict() == {"kinds": [1], "#e": ["a"], "#q": ["b"], "limit": 20}

    def test_author_seed_filter(self):
        f = EventFilter(kinds=[1], authors=["npub-alice"], since=10, until=20)

        assert f.to_dict() == {
            "authors": ["npub-alice"],
            "kinds": [1],
            "since": 10,
            "until": 20,
        }
