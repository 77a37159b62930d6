"""Client library for a brokerage API: HTTP client, watchlists and live event streams."""

__version__ = "0.1.0"

__all__ = ["core", "streaming", "streaming_events", "watchlist"]