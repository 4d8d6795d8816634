"""Transcript aggregation, scoring and caching."""
