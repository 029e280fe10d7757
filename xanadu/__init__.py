"""Xanadu - incremental reply/quote graph discovery over Nostr relays."""

__version__ = "0.1.0"
