"""Moderation case ledger: cases, warnings, escalations and a read-through cache."""

__version__ = "0.1.0"
