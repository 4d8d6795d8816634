"""Command-line interface for tripstats."""
