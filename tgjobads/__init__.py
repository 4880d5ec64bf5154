"""Near-duplicate detection and salary/level enrichment for chat job ads."""

__version__ = "0.4.0"
