"""
Service Organization
====================
Services are organized by their lifecycle:

**pipeline/**
  Long-lived runtime services, one instance per application: the aggregation
  engine, the sink dispatcher, the archive timer and the runtime that wires
  them to the ingest queue.
"""
