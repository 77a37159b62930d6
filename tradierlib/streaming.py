"""Streaming sessions: websocket connection, subscriptions and heartbeats."""

from __future__ import annotations

import itertools
import json
import logging
import threading
import time
from dataclasses import replace
from typing import Any, Callable, Iterable, Optional, Protocol

import websocket

from .core import ApiError, Response, TradierError, parse_json
from .streaming_events import (
    AccountOrderEvent,
    AccountPositionEvent,
    EventRouter,
    QuoteEvent,
    StatisticsSnapshot,
    StreamingConfig,
    StreamSession,
    StreamStatistics,
    SummaryEvent,
    TimesaleEvent,
    TradeEvent,
)

logger = logging.getLogger(__name__)

_MAX_HEARTBEAT_FAILURES = 3
_HEARTBEAT_SILENCE_LIMIT = 300.0


class _Client(Protocol):
    def post(self, endpoint: str, params: Any = None) -> Response: ...


class _Connection(Protocol):
    def send(self, text: str) -> None: ...

    def close(self) -> None: ...


Connector = Callable[[str, str, Callable[[str], None]], _Connection]


class ThreadManager:
    """Starts worker threads and joins them all when stopped."""

    def __init__(self) -> None:
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()
        self._ids = itertools.count()

    def _run(self, func: Callable[[], Any], thread_id: int) -> None:
        logger.debug("ThreadManager: thread %d started", thread_id)
        try:
            func()
        except Exception:
            logger.exception("ThreadManager: thread %d raised", thread_id)
        logger.debug("ThreadManager: thread %d finished", thread_id)

    def add_thread(self, func: Callable[[], Any]) -> bool:
        """Start func in a new thread; False once the manager is stopping."""
        if self._stop_event.is_set():
            logger.warning("ThreadManager: attempt to add thread while stopping")
            return False
        with self._lock:
            if self._stop_event.is_set():
                return False
            thread_id = next(self._ids)
            thread = threading.Thread(
                target=self._run,
                args=(func, thread_id),
                name=f"tradierlib-worker-{thread_id}",
                daemon=True,
            )
            try:
                thread.start()
            except RuntimeError as exc:
                logger.error("ThreadManager: failed to create thread: %s", exc)
                return False
            self._threads.append(thread)
            logger.info(
                "ThreadManager: added thread %d (total: %d)", thread_id, len(self._threads)
            )
            return True

    def stop(self) -> None:
        """Signal every thread to stop and wait for them to finish."""
        with self._lock:
            if self._stop_event.is_set():
                return
            self._stop_event.set()
            threads = list(self._threads)
            self._threads.clear()
        logger.info("ThreadManager: initiating shutdown")
        current = threading.current_thread()
        joined = 0
        for thread in threads:
            if thread is current:
                continue
            thread.join()
            joined += 1
        logger.info("ThreadManager: shutdown complete - joined: %d", joined)

    def should_stop(self) -> bool:
        """True once stop() has been called."""
        return self._stop_event.is_set()

    def thread_count(self) -> int:
        """Number of threads started and not yet collected by stop()."""
        with self._lock:
            return len(self._threads)

    def _wait(self, seconds: float) -> bool:
        """Sleep up to seconds; True if stop was requested meanwhile."""
        return self._stop_event.wait(seconds)


class _WebSocketConnection:
    """A websocket with a reader thread that hands each message to a callback."""

    def __init__(
        self, url: str, access_token: str, on_message: Callable[[str], None]
    ) -> None:
        self._ws = websocket.create_connection(
            url, header=[f"Authorization: Bearer {access_token}"]
        )
        self._on_message = on_message
        self._closed = threading.Event()
        self._send_lock = threading.Lock()
        self._reader = threading.Thread(
            target=self._read, name="tradierlib-ws-reader", daemon=True
        )
        self._reader.start()

    def _read(self) -> None:
        while not self._closed.is_set():
            try:
                message = self._ws.recv()
            except (websocket.WebSocketException, OSError):
                break
            if not message:
                continue
            if isinstance(message, bytes):
                message = message.decode("utf-8", errors="replace")
            self._on_message(message)

    def send(self, text: str) -> None:
        with self._send_lock:
            self._ws.send(text)

    def close(self) -> None:
        self._closed.set()
        try:
            self._ws.close()
        except (websocket.WebSocketException, OSError):
            pass
        if self._reader is not threading.current_thread():
            self._reader.join(timeout=5)


def _parse_session(data: Any, kind: str) -> StreamSession:
    stream = data.get("stream") if isinstance(data, dict) else None
    if not isinstance(stream, dict):
        raise TradierError(f"Failed to parse {kind} session response")
    url = str(stream.get("url") or "")
    session_id = str(stream.get("sessionid") or "")
    return StreamSession(url=url, session_id=session_id, is_active=bool(url and session_id))


class StreamingService:
    """Opens streaming sessions and routes live events to handlers."""

    def __init__(
        self,
        client: _Client,
        access_token: str = "",
        connector: Optional[Connector] = None,
    ) -> None:
        self.client = client
        self.access_token = access_token
        self._connector: Connector = connector or _WebSocketConnection
        self._config = StreamingConfig()
        self._stats = StreamStatistics()
        self._router = EventRouter(self._stats)
        self._subscribed: set[str] = set()
        self._lock = threading.Lock()
        self._threads = ThreadManager()
        self._connection: Optional[_Connection] = None
        self._connected = False
        self._current_session = StreamSession()

    @property
    def config(self) -> StreamingConfig:
        """A copy of the streaming configuration."""
        return replace(self._config)

    @config.setter
    def config(self, value: StreamingConfig) -> None:
        self._config = replace(value)

    def _report(self, message: str) -> None:
        handler = self._router.error_handler
        if handler is not None:
            handler(message)

    def _create_session(self, endpoint: str, kind: str) -> StreamSession:
        response = self.client.post(endpoint)
        if not response.success():
            raise ApiError(
                response.status, f"Failed to create {kind} session: {response.body}"
            )
        session = _parse_session(parse_json(response), kind)
        self._current_session = session
        return session

    def create_market_session(self) -> StreamSession:
        """Ask for a market data streaming session and make it current."""
        return self._create_session("/markets/events/session", "market")

    def create_account_session(self) -> StreamSession:
        """Ask for an account events streaming session and make it current."""
        return self._create_session("/accounts/events/session", "account")

    def renew_session(self, session: StreamSession) -> StreamSession:
        """Create a fresh session of the same kind; the old one if that fails."""
        try:
            if "markets" in session.url:
                return self.create_market_session()
            return self.create_account_session()
        except TradierError as exc:
            logger.warning("StreamingService: session renewal failed: %s", exc)
            return session

    def _subscribe(
        self,
        session: StreamSession,
        channel: str,
        symbols: Optional[list[str]],
        report_errors: bool,
    ) -> bool:
        if not self._connected:
            self.connect()
        connection = self._connection
        if connection is None:
            return False
        message: dict[str, Any] = {"type": "subscribe", "to": channel}
        if symbols is not None:
            message["symbols"] = symbols
        try:
            connection.send(json.dumps(message))
        except Exception as exc:
            if report_errors:
                self._report(f"Subscription error: {exc}")
            return False
        return True

    def _subscribe_symbols(
        self,
        session: StreamSession,
        symbols: Iterable[str],
        channel: str,
        attribute: str,
        handler: Callable[[Any], Any],
        report_errors: bool,
    ) -> bool:
        symbol_list = list(symbols)
        if not session.is_active or not symbol_list:
            return False
        setattr(self._router, attribute, handler)
        with self._lock:
            self._subscribed.update(symbol_list)
        return self._subscribe(session, channel, symbol_list, report_errors)

    def subscribe_to_trades(
        self,
        session: StreamSession,
        symbols: Iterable[str],
        handler: Callable[[TradeEvent], Any],
    ) -> bool:
        """Receive trade events for the symbols."""
        return self._subscribe_symbols(
            session, symbols, "trade", "trade_handler", handler, True
        )

    def subscribe_to_quotes(
        self,
        session: StreamSession,
        symbols: Iterable[str],
        handler: Callable[[QuoteEvent], Any],
    ) -> bool:
        """Receive quote events for the symbols."""
        return self._subscribe_symbols(
            session, symbols, "quote", "quote_handler", handler, True
        )

    def subscribe_to_summary(
        self,
        session: StreamSession,
        symbols: Iterable[str],
        handler: Callable[[SummaryEvent], Any],
    ) -> bool:
        """Receive summary events for the symbols."""
        return self._subscribe_symbols(
            session, symbols, "summary", "summary_handler", handler, False
        )

    def subscribe_to_timesales(
        self,
        session: StreamSession,
        symbols: Iterable[str],
        handler: Callable[[TimesaleEvent], Any],
    ) -> bool:
        """Receive time-and-sales events for the symbols."""
        return self._subscribe_symbols(
            session, symbols, "timesale", "timesale_handler", handler, False
        )

    def subscribe_to_order_events(
        self, session: StreamSession, handler: Callable[[AccountOrderEvent], Any]
    ) -> bool:
        """Receive order events of the account."""
        if not session.is_active:
            return False
        self._router.order_handler = handler
        return self._subscribe(session, "order", None, False)

    def subscribe_to_position_events(
        self, session: StreamSession, handler: Callable[[AccountPositionEvent], Any]
    ) -> bool:
        """Receive position events of the account."""
        if not session.is_active:
            return False
        self._router.position_handler = handler
        return self._subscribe(session, "position", None, False)

    def add_symbols(self, symbols: Iterable[str]) -> bool:
        """Record symbols as subscribed."""
        with self._lock:
            self._subscribed.update(symbols)
        return True

    def remove_symbols(self, symbols: Iterable[str]) -> bool:
        """Forget subscribed symbols."""
        with self._lock:
            self._subscribed.difference_update(symbols)
        return True

    def subscribed_symbols(self) -> list[str]:
        """The subscribed symbols, sorted."""
        with self._lock:
            return sorted(self._subscribed)

    def connect(self) -> None:
        """Open the websocket of the current session, if one is active."""
        if self._connected or not self._current_session.is_active:
            return
        try:
            self._connection = self._connector(
                self._current_session.url, self.access_token, self._router.handle_message
            )
        except Exception as exc:
            self._report(f"Connection error: {exc}")
            self._connected = False
            return
        self._connected = True
        self._stats.connection_start = _now()
        self._start_heartbeat()

    def _start_heartbeat(self) -> None:
        threads = self._threads
        if not threads.add_thread(lambda: self._heartbeat(threads)):
            logger.error("StreamingService: failed to start heartbeat thread")
            self._report("Failed to start heartbeat thread")

    def _heartbeat(self, threads: ThreadManager) -> None:
        interval = self._config.heartbeat_interval / 1000.0
        sent = 0
        failures = 0
        last_success = time.monotonic()
        while self._connected and not threads.should_stop():
            if threads._wait(interval) or not self._connected:
                break
            connection = self._connection
            if connection is None:
                logger.warning("StreamingService: no connection available for heartbeat")
                break
            message = {"type": "heartbeat", "timestamp": int(time.time() * 1000)}
            try:
                connection.send(json.dumps(message))
            except Exception as exc:
                failures += 1
                logger.error("StreamingService: heartbeat error #%d: %s", failures, exc)
                self._report(f"Heartbeat error: {exc}")
                if failures >= _MAX_HEARTBEAT_FAILURES:
                    logger.error("StreamingService: too many heartbeat failures")
                    break
                if time.monotonic() - last_success > _HEARTBEAT_SILENCE_LIMIT:
                    logger.error("StreamingService: no successful heartbeat for 5 minutes")
                    break
                continue
            sent += 1
            failures = 0
            last_success = time.monotonic()
        logger.debug("StreamingService: heartbeat finished sent=%d errors=%d", sent, failures)

    def disconnect(self) -> None:
        """Stop the heartbeat and close the websocket."""
        self._connected = False
        self._threads.stop()
        self._threads = ThreadManager()
        connection, self._connection = self._connection, None
        if connection is not None:
            connection.close()

    def is_connected(self) -> bool:
        """True while the websocket is open."""
        return self._connected

    def reconnect(self) -> None:
        """Disconnect, wait the configured delay and connect again."""
        self.disconnect()
        time.sleep(self._config.reconnect_delay / 1000.0)
        self.connect()

    def connection_status(self) -> str:
        """"Connected" or "Disconnected"."""
        return "Connected" if self._connected else "Disconnected"

    def set_error_handler(self, handler: Callable[[str], Any]) -> None:
        """Set the callback that receives error descriptions."""
        self._router.error_handler = handler

    def statistics(self) -> StatisticsSnapshot:
        """A snapshot of the stream counters."""
        return self._stats.snapshot()

    def reset_statistics(self) -> None:
        """Zero the stream counters."""
        self._stats.reset()

    def set_symbol_filter(self, symbols: Iterable[str]) -> None:
        """Only deliver events for these symbols."""
        self._router.set_symbol_filter(symbols)

    def set_exchange_filter(self, exchanges: Iterable[str]) -> None:
        """Only deliver events from these exchanges."""
        self._router.set_exchange_filter(exchanges)

    def clear_filters(self) -> None:
        """Deliver events for every symbol and exchange."""
        self._router.clear_filters()

    def __enter__(self) -> "StreamingService":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.disconnect()


def _now():
    from datetime import datetime, timezone

    return datetime.now(timezone.utc)