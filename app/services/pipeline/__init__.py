"""Runtime services: aggregation, delivery and lifecycle."""
