"""Waterfall sales commission engine with an idempotent ledger."""

__version__ = "0.1.0"
