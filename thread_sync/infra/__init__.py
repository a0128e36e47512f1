"""Infrastructure adapters: cache, realtime push, logging and metrics."""
