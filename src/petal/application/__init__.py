"""Application layer: sync services."""
