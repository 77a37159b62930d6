"""Watchlist management: listing, creating, editing and deleting watchlists."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol

from .core import ApiError, Response, ValidationError, as_list, join_symbols, parse_json


class _Client(Protocol):
    def get(self, endpoint: str, params: Any = None) -> Response: ...

    def post(self, endpoint: str, params: Any = None) -> Response: ...

    def put(self, endpoint: str, params: Any = None) -> Response: ...

    def delete(self, endpoint: str, params: Any = None) -> Response: ...


@dataclass
class WatchlistItem:
    """One symbol held in a watchlist."""

    symbol: str = ""
    id: str = ""


@dataclass
class WatchlistSummary:
    """The identifying fields of a watchlist, without its items."""

    name: str = ""
    id: str = ""
    public_id: str = ""


@dataclass
class Watchlist:
    """A watchlist together with its items."""

    name: str = ""
    id: str = ""
    public_id: str = ""
    items: list[WatchlistItem] = field(default_factory=list)

    @property
    def symbols(self) -> list[str]:
        """The symbols of the items, in order."""
        return [item.symbol for item in self.items]


def _text(data: Any, key: str) -> str:
    if not isinstance(data, dict):
        return ""
    value = data.get(key)
    if value is None:
        return ""
    return str(value)


def _nested(data: Any, outer: str, inner: str) -> list:
    container = data.get(outer) if isinstance(data, dict) else None
    if not isinstance(container, dict):
        return []
    return [entry for entry in as_list(container.get(inner)) if isinstance(entry, dict)]


def _parse_summaries(data: Any) -> list[WatchlistSummary]:
    return [
        WatchlistSummary(
            name=_text(entry, "name"),
            id=_text(entry, "id"),
            public_id=_text(entry, "public_id"),
        )
        for entry in _nested(data, "watchlists", "watchlist")
    ]


def _parse_watchlist(data: Any, error_message: str) -> Watchlist:
    if not isinstance(data, dict) or "watchlist" not in data:
        raise ApiError(400, error_message)
    body = data["watchlist"]
    return Watchlist(
        name=_text(body, "name"),
        id=_text(body, "id"),
        public_id=_text(body, "public_id"),
        items=[
            WatchlistItem(symbol=_text(entry, "symbol"), id=_text(entry, "id"))
            for entry in _nested(body, "items", "item")
        ],
    )


def _require(value: str, message: str) -> None:
    if not value:
        raise ValidationError(message)


def _check(response: Response, action: str) -> None:
    if not response.success():
        raise ApiError(response.status, f"Failed to {action}: {response.body}")


class WatchlistService:
    """Operations on the account's watchlists."""

    def __init__(self, client: _Client) -> None:
        self.client = client

    def get_watchlists(self) -> list[WatchlistSummary]:
        """Return a summary of every watchlist."""
        response = self.client.get("/watchlists")
        _check(response, "get watchlists")
        return _parse_summaries(parse_json(response))

    def get_watchlist(self, watchlist_id: str) -> Watchlist:
        """Return one watchlist with its items."""
        _require(watchlist_id, "Watchlist ID cannot be empty")
        response = self.client.get(f"/watchlists/{watchlist_id}")
        _check(response, "get watchlist")
        return _parse_watchlist(parse_json(response), "Invalid watchlist response format")

    def create_watchlist(self, name: str, symbols: Iterable[str] = ()) -> Watchlist:
        """Create a watchlist, optionally seeded with symbols."""
        _require(name, "Watchlist name cannot be empty")
        params = {"name": name}
        symbol_list = list(symbols)
        if symbol_list:
            params["symbols"] = join_symbols(symbol_list)
        response = self.client.post("/watchlists", params)
        _check(response, "create watchlist")
        return _parse_watchlist(
            parse_json(response), "Invalid watchlist creation response format"
        )

    def update_watchlist(
        self, watchlist_id: str, name: str, symbols: Iterable[str] = ()
    ) -> Watchlist:
        """Rename a watchlist and optionally replace its symbols."""
        _require(watchlist_id, "Watchlist ID cannot be empty")
        _require(name, "Watchlist name cannot be empty")
        params = {"name": name}
        symbol_list = list(symbols)
        if symbol_list:
            params["symbols"] = join_symbols(symbol_list)
        response = self.client.put(f"/watchlists/{watchlist_id}", params)
        _check(response, "update watchlist")
        return _parse_watchlist(
            parse_json(response), "Invalid watchlist update response format"
        )

    def delete_watchlist(self, watchlist_id: str) -> list[WatchlistSummary]:
        """Delete a watchlist and return the ones that remain."""
        _require(watchlist_id, "Watchlist ID cannot be empty")
        response = self.client.delete(f"/watchlists/{watchlist_id}")
        _check(response, "delete watchlist")
        return _parse_summaries(parse_json(response))

    def add_symbols(self, watchlist_id: str, symbols: Iterable[str]) -> Watchlist:
        """Add symbols to a watchlist."""
        _require(watchlist_id, "Watchlist ID cannot be empty")
        symbol_list = list(symbols)
        if not symbol_list:
            raise ValidationError("Symbols list cannot be empty")
        response = self.client.post(
            f"/watchlists/{watchlist_id}/symbols",
            {"symbols": join_symbols(symbol_list)},
        )
        _check(response, "add symbols to watchlist")
        return _parse_watchlist(parse_json(response), "Invalid add symbols response format")

    def remove_symbol(self, watchlist_id: str, symbol: str) -> Watchlist:
        """Remove one symbol from a watchlist."""
        _require(watchlist_id, "Watchlist ID cannot be empty")
        _require(symbol, "Symbol cannot be empty")
        response = self.client.delete(f"/watchlists/{watchlist_id}/symbols/{symbol}")
        _check(response, "remove symbol from watchlist")
        return _parse_watchlist(
            parse_json(response), "Invalid remove symbol response format"
        )