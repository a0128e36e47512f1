"""Client-side synchronization layer for paginated thread feeds."""

__version__ = "0.1.0"
