"""HTTP API for the commission engine."""
