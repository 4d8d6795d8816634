"""
Tripstats - session analytics for AI coding-assistant transcripts.

Reads a session transcript (line-delimited JSON), aggregates token usage,
estimates cost, scores session health and caches the result so a status
line can be refreshed cheaply.

Quick Start:
    pip install -e .
    echo '{"session_id": "...", "transcript_path": "..."}' | tripstats
    tripstats trip
"""

__version__ = "0.13.6"

__all__ = ["__version__"]
