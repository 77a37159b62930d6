"""Streaming data model: configuration, statistics, events and message routing."""

from __future__ import annotations

import json
import re
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

_NUMBER_PREFIX = re.compile(r"\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


@dataclass
class StreamingConfig:
    """Connection behaviour of a streaming session; times are in milliseconds."""

    auto_reconnect: bool = True
    reconnect_delay: int = 5000
    max_reconnect_attempts: int = 10
    heartbeat_interval: int = 30000
    filter_duplicates: bool = True


@dataclass(frozen=True)
class StatisticsSnapshot:
    """A copy of the stream counters taken at one moment."""

    messages_received: int = 0
    messages_processed: int = 0
    errors: int = 0
    reconnects: int = 0
    last_message: Optional[datetime] = None
    connection_start: Optional[datetime] = None


@dataclass
class StreamStatistics:
    """Running counters of a stream."""

    messages_received: int = 0
    messages_processed: int = 0
    errors: int = 0
    reconnects: int = 0
    last_message: Optional[datetime] = None
    connection_start: Optional[datetime] = None

    def reset(self) -> None:
        """Set every counter back to zero and forget the timestamps."""
        self.messages_received = 0
        self.messages_processed = 0
        self.errors = 0
        self.reconnects = 0
        self.last_message = None
        self.connection_start = None

    def snapshot(self) -> StatisticsSnapshot:
        """Return an immutable copy of the current counters."""
        return StatisticsSnapshot(
            messages_received=self.messages_received,
            messages_processed=self.messages_processed,
            errors=self.errors,
            reconnects=self.reconnects,
            last_message=self.last_message,
            connection_start=self.connection_start,
        )


@dataclass
class StreamSession:
    """A streaming session granted by the API."""

    url: str = ""
    session_id: str = ""
    is_active: bool = False


@dataclass
class TradeEvent:
    """A trade print."""

    type: str = ""
    symbol: str = ""
    exchange: str = ""
    price: float = 0.0
    size: int = 0
    cvol: int = 0
    last: float = 0.0
    date: str = ""


@dataclass
class QuoteEvent:
    """A change of the best bid or offer."""

    type: str = ""
    symbol: str = ""
    bid: float = 0.0
    ask: float = 0.0
    bid_size: int = 0
    ask_size: int = 0
    bid_exchange: str = ""
    bid_date: str = ""
    ask_exchange: str = ""
    ask_date: str = ""


@dataclass
class SummaryEvent:
    """The session's open, high, low and previous close."""

    type: str = ""
    symbol: str = ""
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    prev_close: float = 0.0


@dataclass
class TimesaleEvent:
    """A time-and-sales record."""

    type: str = ""
    symbol: str = ""
    exchange: str = ""
    bid: float = 0.0
    ask: float = 0.0
    last: float = 0.0
    size: int = 0
    seq: int = 0
    date: str = ""
    flag: str = ""
    cancel: bool = False
    correction: bool = False
    session: str = ""


@dataclass
class AccountOrderEvent:
    """A change to an order in the account."""

    order_id: int = 0
    event: str = ""
    status: str = ""
    account: str = ""
    symbol: str = ""
    quantity: float = 0.0
    price: float = 0.0
    side: str = ""
    type: str = ""


@dataclass
class AccountPositionEvent:
    """A change to a position in the account."""

    account: str = ""
    symbol: str = ""
    quantity: float = 0.0
    cost_basis: float = 0.0


def parse_numeric_field(data: Any, key: str, default: float = 0.0) -> float:
    """Read a number that may arrive as a JSON number or a numeric string."""
    if not isinstance(data, dict):
        return default
    value = data.get(key)
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        if not value:
            return default
        match = _NUMBER_PREFIX.match(value)
        if match:
            return float(match.group(0))
        try:
            return float(value)
        except ValueError:
            return default
    return default


def _text(data: dict, key: str, default: str = "") -> str:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise TypeError(f"field '{key}' must be a string, not {type(value).__name__}")
    return value


def _flag(data: dict, key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise TypeError(f"field '{key}' must be a boolean, not {type(value).__name__}")
    return value


class EventRouter:
    """Decodes stream messages, applies filters and calls the matching handler."""

    def __init__(self, statistics: Optional[StreamStatistics] = None) -> None:
        self.statistics = statistics if statistics is not None else StreamStatistics()
        self.trade_handler: Optional[Callable[[TradeEvent], Any]] = None
        self.quote_handler: Optional[Callable[[QuoteEvent], Any]] = None
        self.summary_handler: Optional[Callable[[SummaryEvent], Any]] = None
        self.timesale_handler: Optional[Callable[[TimesaleEvent], Any]] = None
        self.order_handler: Optional[Callable[[AccountOrderEvent], Any]] = None
        self.position_handler: Optional[Callable[[AccountPositionEvent], Any]] = None
        self.error_handler: Optional[Callable[[str], Any]] = None
        self._symbol_filter: frozenset[str] = frozenset()
        self._exchange_filter: frozenset[str] = frozenset()
        self._lock = threading.Lock()

    def _report(self, message: str) -> None:
        if self.error_handler is not None:
            self.error_handler(message)

    def handle_message(self, message: str) -> None:
        """Count, decode and dispatch one raw message."""
        stats = self.statistics
        stats.messages_received += 1
        stats.last_message = datetime.now(timezone.utc)
        try:
            self.process_event(json.loads(message))
            stats.messages_processed += 1
        except Exception as exc:
            stats.errors += 1
            self._report(f"Message parsing error: {exc}")

    def process_event(self, data: Any) -> None:
        """Dispatch one decoded event to its handler unless a filter drops it."""
        if not isinstance(data, dict) or "type" not in data:
            return
        event_type = data["type"]
        if not isinstance(event_type, str):
            raise TypeError("field 'type' must be a string")
        symbol = _text(data, "symbol")

        with self._lock:
            symbol_filter = self._symbol_filter
            exchange_filter = self._exchange_filter

        if symbol_filter and symbol not in symbol_filter:
            return
        if exchange_filter and "exch" in data:
            exchange = data["exch"]
            if not isinstance(exchange, str):
                raise TypeError("field 'exch' must be a string")
            if exchange not in exchange_filter:
                return

        try:
            self._dispatch(event_type, symbol, data)
        except Exception as exc:
            self._report(f"Event processing error: {exc}")

    def _dispatch(self, event_type: str, symbol: str, data: dict) -> None:
        if event_type == "trade" and self.trade_handler is not None:
            self.trade_handler(
                TradeEvent(
                    type=event_type,
                    symbol=symbol,
                    exchange=_text(data, "exch"),
                    price=parse_numeric_field(data, "price"),
                    size=int(parse_numeric_field(data, "size")),
                    cvol=int(parse_numeric_field(data, "cvol")),
                    last=parse_numeric_field(data, "last"),
                    date=_text(data, "date"),
                )
            )
        elif event_type == "quote" and self.quote_handler is not None:
            self.quote_handler(
                QuoteEvent(
                    type=event_type,
                    symbol=symbol,
                    bid=parse_numeric_field(data, "bid"),
                    ask=parse_numeric_field(data, "ask"),
                    bid_size=int(parse_numeric_field(data, "bidsz")),
                    ask_size=int(parse_numeric_field(data, "asksz")),
                    bid_exchange=_text(data, "bidexch"),
                    bid_date=_text(data, "biddate"),
                    ask_exchange=_text(data, "askexch"),
                    ask_date=_text(data, "askdate"),
                )
            )
        elif event_type == "summary" and self.summary_handler is not None:
            self.summary_handler(
                SummaryEvent(
                    type=event_type,
                    symbol=symbol,
                    open=parse_numeric_field(data, "open"),
                    high=parse_numeric_field(data, "high"),
                    low=parse_numeric_field(data, "low"),
                    prev_close=parse_numeric_field(data, "prevClose"),
                )
            )
        elif event_type == "timesale" and self.timesale_handler is not None:
            self.timesale_handler(
                TimesaleEvent(
                    type=event_type,
                    symbol=symbol,
                    exchange=_text(data, "exch"),
                    bid=parse_numeric_field(data, "bid"),
                    ask=parse_numeric_field(data, "ask"),
                    last=parse_numeric_field(data, "last"),
                    size=int(parse_numeric_field(data, "size")),
                    seq=int(parse_numeric_field(data, "seq")),
                    date=_text(data, "date"),
                    flag=_text(data, "flag"),
                    cancel=_flag(data, "cancel"),
                    correction=_flag(data, "correction"),
                    session=_text(data, "session"),
                )
            )

    def set_symbol_filter(self, symbols: Iterable[str]) -> None:
        """Only pass events for these symbols; an empty set passes all."""
        with self._lock:
            self._symbol_filter = frozenset(symbols)

    def set_exchange_filter(self, exchanges: Iterable[str]) -> None:
        """Only pass events from these exchanges; an empty set passes all."""
        with self._lock:
            self._exchange_filter = frozenset(exchanges)

    def clear_filters(self) -> None:
        """Remove the symbol and exchange filters."""
        with self._lock:
            self._symbol_filter = frozenset()
            self._exchange_filter = frozenset()

    def copy_config(self, config: StreamingConfig) -> StreamingConfig:
        """Return an independent copy of a streaming configuration."""
        return replace(config)