"""Read-only, cache-fronted query helpers."""
