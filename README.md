# tradierlib

A Python client for a brokerage HTTP API and its event stream. It provides:

- **`tradierlib.core`** – an authenticated `HttpClient`, the `Response` type,
  the error classes and small helpers for building request parameters.
- **`tradierlib.watchlist`** – `WatchlistService` for listing, creating,
  updating and deleting watchlists and their symbols.
- **`tradierlib.streaming_events`** – the streaming data model: configuration,
  statistics, session and event dataclasses, and the `EventRouter` that
  decodes stream messages and calls handlers.
- **`tradierlib.streaming`** – `StreamingService`, which creates streaming
  sessions, opens the websocket, sends subscriptions and heartbeats, and
  routes incoming events.

## Installation

```
pip install tradierlib
```

Python 3.10 or later is required. The package depends on `requests` and
`websocket-client`.

## The HTTP client

`HttpClient` takes the base URL, the access token and a timeout in seconds
(30 by default). It sends `Authorization: Bearer <token>` and
`Accept: application/json` with every request. `get` and `delete` send their
parameters in the query string; `post` and `put` send them as form data.
Each returns a `Response` with `status`, `body` and `headers`;
`Response.success()` is true for a 2xx status.

```python
from tradierlib.core import HttpClient

with HttpClient("https://sandbox.example.com/v1", "token", 30) as client:
    response = client.get("/watchlists")
    print(response.status, response.success())
```

Helpers in `tradierlib.core`:

- `join_symbols(["AAPL", "MSFT"])` gives `"AAPL,MSFT"`.
- `bool_param(True)` gives `"true"`.
- `format_number(100.0)` gives `"100"`; `format_number(3.14)` gives `"3.14"`.
- `as_list(value)` turns `None` or `"null"` into `[]`, a single object into a
  one-element list and leaves a list as it is.
- `parse_json(response)` decodes the body of a successful response and raises
  `ApiError` for an error status or invalid JSON.

## Watchlists

```python
from tradierlib.watchlist import WatchlistService

watchlists = WatchlistService(client)

created = watchlists.create_watchlist("Tech", ["AAPL", "MSFT"])
watchlists.add_symbols(created.id, ["GOOGL"])
current = watchlists.remove_symbol(created.id, "MSFT")
print(current.symbols)

for summary in watchlists.get_watchlists():
    print(summary.name, summary.id, summary.public_id)

remaining = watchlists.delete_watchlist(created.id)
```

`get_watchlist`, `create_watchlist`, `update_watchlist`, `add_symbols` and
`remove_symbol` return a `Watchlist` (name, id, public id and a list of
`WatchlistItem`). `get_watchlists` and `delete_watchlist` return a list of
`WatchlistSummary`. The API may send a single object where a list is
expected; both forms are accepted.

## Streaming

```python
from tradierlib.streaming import StreamingService

streaming = StreamingService(client, "token", None)
streaming.set_error_handler(print)

session = streaming.create_market_session()
streaming.subscribe_to_quotes(
    session, ["AAPL"], lambda quote: print(quote.symbol, quote.bid, quote.ask)
)

print(streaming.connection_status())
print(streaming.statistics())

streaming.disconnect()
```

- `create_market_session` and `create_account_session` post to the session
  endpoints and return a `StreamSession`; it is active when both its URL and
  session id are present, and it becomes the session that `connect` uses.
  `renew_session` asks for a new session of the same kind and returns the old
  one if that fails.
- `subscribe_to_trades`, `subscribe_to_quotes`, `subscribe_to_summary` and
  `subscribe_to_timesales` record the handler and the symbols, connect if
  needed and send a subscription message. They return `False` for an inactive
  session, an empty symbol list or a failed send.
- `subscribe_to_order_events` and `subscribe_to_position_events` send the
  subscription message and record the handler. The event router delivers
  only trade, quote, summary and timesale events, so these handlers are not
  called by incoming messages.
- While connected, a heartbeat message is sent every
  `config.heartbeat_interval` milliseconds; the heartbeat stops after three
  consecutive send failures.
- `add_symbols`, `remove_symbols` and `subscribed_symbols` maintain the set of
  subscribed symbols locally.
- `set_symbol_filter` and `set_exchange_filter` drop events that do not match;
  an empty filter passes everything; `clear_filters` removes both.
- `statistics()` returns a `StatisticsSnapshot` of messages received and
  processed, errors and reconnects; `reset_statistics()` zeroes them.
- `reconnect()` disconnects, waits `config.reconnect_delay` milliseconds and
  connects again.
- `config` is a `StreamingConfig`; reading or assigning it copies the value.

By default the websocket is opened with `websocket-client`. A different
transport can be given as the `connector`: a callable taking the URL, the
access token and a message callback and returning an object with `send(text)`
and `close()`.

`EventRouter` can also be used on its own: `handle_message` decodes a JSON
message, counts it in a `StreamStatistics` and dispatches it to the matching
handler as a `TradeEvent`, `QuoteEvent`, `SummaryEvent` or `TimesaleEvent`.
Numeric fields may arrive as numbers or numeric strings
(`parse_numeric_field`).

## Errors

Invalid arguments, such as an empty watchlist id or an empty symbol list,
raise `tradierlib.core.ValidationError` (also a `ValueError`) before any
request is sent. A response outside the success range raises
`tradierlib.core.ApiError`, which carries the HTTP status. A failed network
request raises `tradierlib.core.TradierError`, the base of both.

## What this package does not do

It has no services for market data requests (quotes, option chains, history,
fundamentals) or for placing, previewing, modifying or cancelling orders. The
streaming service delivers market events only; account order and position
events are not dispatched. There is no command-line program.

## Running the tests

```
pip install -e ".[test]"
pytest
```