"""Ingest layer: protocol adapters and observation sources."""
