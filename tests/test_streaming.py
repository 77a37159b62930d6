import json
import threading
import time

import pytest

from tradierlib.core import ApiError, Response, TradierError
from tradierlib.streaming import StreamingService, ThreadManager
from tradierlib.streaming_events import StreamingConfig, StreamSession

MARKET_BODY = json.dumps(
    {"stream": {"url": "wss://ws.example.com/v1/markets/events", "sessionid": "abc"}}
)
ACCOUNT_BODY = json.dumps(
    {"stream": {"url": "wss://ws.example.com/v1/accounts/events", "sessionid": "def"}}
)


class FakeClient:
    def __init__(self, responses=None):
        self.responses = responses or {
            "/markets/events/session": Response(200, MARKET_BODY),
            "/accounts/events/session": Response(200, ACCOUNT_BODY),
        }
        self.calls = []

    def post(self, endpoint, params=None):
        self.calls.append(endpoint)
        return self.responses.get(endpoint, Response(404, "Not Found"))


class FakeConnection:
    def __init__(self, url, token, on_message, fail_send=False):
        self.url = url
        self.token = token
        self.on_message = on_message
        self.sent = []
        self.closed = False
        self.fail_send = fail_send

    def send(self, text):
        if self.fail_send:
            raise OSError("broken pipe")
        self.sent.append(json.loads(text))

    def close(self):
        self.closed = True


class FakeConnector:
    def __init__(self, fail_send=False):
        self.connections = []
        self.fail_send = fail_send

    def __call__(self, url, token, on_message):
        connection = FakeConnection(url, token, on_message, self.fail_send)
        self.connections.append(connection)
        return connection


def make_service(connector=None, client=None):
    return StreamingService(client or FakeClient(), "token", connector or FakeConnector())


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def test_default_config():
    config = make_service().config
    assert config.auto_reconnect is True
    assert config.reconnect_delay == 5000
    assert config.max_reconnect_attempts == 10
    assert config.heartbeat_interval == 30000
    assert config.filter_duplicates is True


def test_service_creation_state():
    service = make_service()
    assert service.is_connected() is False
    assert service.connection_status() == "Disconnected"
    stats = service.statistics()
    assert (stats.messages_received, stats.messages_processed, stats.errors, stats.reconnects) == (0, 0, 0, 0)


def test_config_management():
    service = make_service()
    service.config = StreamingConfig(
        auto_reconnect=False,
        reconnect_delay=10000,
        max_reconnect_attempts=5,
        heartbeat_interval=60000,
        filter_duplicates=False,
    )
    config = service.config
    assert config.auto_reconnect is False
    assert config.reconnect_delay == 10000
    assert config.max_reconnect_attempts == 5
    assert config.heartbeat_interval == 60000
    assert config.filter_duplicates is False


def test_symbol_management():
    service = make_service()
    assert service.add_symbols(["AAPL", "MSFT"]) is True
    assert service.add_symbols(["GOOGL", "TSLA"]) is True
    assert len(service.subscribed_symbols()) == 4
    assert service.remove_symbols(["MSFT"]) is True
    assert service.subscribed_symbols() == ["AAPL", "GOOGL", "TSLA"]


def test_create_market_session():
    client = FakeClient()
    service = make_service(client=client)
    session = service.create_market_session()
    assert session == StreamSession("wss://ws.example.com/v1/markets/events", "abc", True)
    assert client.calls == ["/markets/events/session"]


def test_create_account_session():
    session = make_service().create_account_session()
    assert session.session_id == "def"
    assert session.is_active is True


def test_session_error_status_raises():
    client = FakeClient({"/markets/events/session": Response(401, "Unauthorized")})
    with pytest.raises(ApiError) as info:
        make_service(client=client).create_market_session()
    assert info.value.status == 401


def test_session_bad_body_raises():
    client = FakeClient({"/markets/events/session": Response(200, "{}")})
    with pytest.raises(TradierError):
        make_service(client=client).create_market_session()


def test_session_without_id_is_inactive():
    body = json.dumps({"stream": {"url": "wss://ws.example.com/v1/markets/events"}})
    client = FakeClient({"/markets/events/session": Response(200, body)})
    assert make_service(client=client).create_market_session().is_active is False


def test_renew_session_picks_kind():
    client = FakeClient()
    service = make_service(client=client)
    old = StreamSession("wss://ws.example.com/v1/markets/events", "old", True)
    assert service.renew_session(old).session_id == "abc"
    other = StreamSession("wss://ws.example.com/v1/accounts/events", "old", True)
    assert service.renew_session(other).session_id == "def"
    assert client.calls == ["/markets/events/session", "/accounts/events/session"]


def test_renew_session_failure_keeps_old():
    client = FakeClient({})
    old = StreamSession("wss://ws.example.com/v1/markets/events", "old", True)
    assert make_service(client=client).renew_session(old) is old


def test_subscribe_inactive_session_returns_false():
    service = make_service()
    assert service.subscribe_to_trades(StreamSession(), ["AAPL"], lambda e: None) is False
    assert service.subscribed_symbols() == []


def test_subscribe_empty_symbols_returns_false():
    service = make_service()
    session = service.create_market_session()
    assert service.subscribe_to_quotes(session, [], lambda e: None) is False


def test_subscribe_trades_connects_and_routes():
    connector = FakeConnector()
    service = make_service(connector)
    session = service.create_market_session()
    trades = []
    try:
        assert service.subscribe_to_trades(session, ["AAPL"], trades.append) is True
        assert service.connection_status() == "Connected"
        connection = connector.connections[0]
        assert connection.url == session.url
        assert connection.token == "token"
        assert connection.sent[0] == {"type": "subscribe", "to": "trade", "symbols": ["AAPL"]}
        connection.on_message(json.dumps({"type": "trade", "symbol": "AAPL", "price": "150.5", "size": 100}))
        assert len(trades) == 1
        assert trades[0].price == 150.5
        assert trades[0].size == 100
        assert service.statistics().messages_processed == 1
        assert service.subscribed_symbols() == ["AAPL"]
    finally:
        service.disconnect()


def test_order_and_position_subscriptions():
    connector = FakeConnector()
    service = make_service(connector)
    session = service.create_account_session()
    try:
        assert service.subscribe_to_order_events(session, lambda e: None) is True
        assert service.subscribe_to_position_events(session, lambda e: None) is True
        assert connector.connections[0].sent == [
            {"type": "subscribe", "to": "order"},
            {"type": "subscribe", "to": "position"},
        ]
        assert len(connector.connections) == 1
    finally:
        service.disconnect()


def test_symbol_filter_drops_events():
    connector = FakeConnector()
    service = make_service(connector)
    session = service.create_market_session()
    quotes = []
    try:
        service.subscribe_to_quotes(session, ["AAPL", "MSFT"], quotes.append)
        service.set_symbol_filter(["AAPL"])
        deliver = connector.connections[0].on_message
        deliver(json.dumps({"type": "quote", "symbol": "MSFT", "bid": 1}))
        assert quotes == []
        service.clear_filters()
        deliver(json.dumps({"type": "quote", "symbol": "MSFT", "bid": 1}))
        assert [q.symbol for q in quotes] == ["MSFT"]
    finally:
        service.disconnect()


def test_exchange_filter_drops_events():
    connector = FakeConnector()
    service = make_service(connector)
    session = service.create_market_session()
    trades = []
    try:
        service.subscribe_to_trades(session, ["AAPL"], trades.append)
        service.set_exchange_filter(["Q"])
        connector.connections[0].on_message(json.dumps({"type": "trade", "symbol": "AAPL", "exch": "N"}))
        assert trades == []
    finally:
        service.disconnect()


def test_send_failure_reports_error():
    service = make_service(FakeConnector(fail_send=True))
    errors = []
    service.set_error_handler(errors.append)
    session = service.create_market_session()
    try:
        assert service.subscribe_to_trades(session, ["AAPL"], lambda e: None) is False
        assert errors and errors[0].startswith("Subscription error:")
    finally:
        service.disconnect()


def test_connection_error_reported():
    def failing(url, token, on_message):
        raise OSError("refused")

    service = StreamingService(FakeClient(), "token", failing)
    errors = []
    service.set_error_handler(errors.append)
    session = service.create_market_session()
    assert service.subscribe_to_trades(session, ["AAPL"], lambda e: None) is False
    assert errors == ["Connection error: refused"]
    assert service.is_connected() is False


def test_connect_without_session_does_nothing():
    connector = FakeConnector()
    service = make_service(connector)
    service.connect()
    assert connector.connections == []
    assert service.is_connected() is False


def test_disconnect_closes_connection():
    connector = FakeConnector()
    service = make_service(connector)
    service.create_market_session()
    service.connect()
    assert service.is_connected() is True
    service.disconnect()
    assert connector.connections[0].closed is True
    assert service.connection_status() == "Disconnected"


def test_heartbeat_is_sent():
    connector = FakeConnector()
    service = make_service(connector)
    config = service.config
    config.heartbeat_interval = 10
    service.config = config
    service.create_market_session()
    try:
        service.connect()
        sent = connector.connections[0].sent
        assert wait_for(lambda: any(m.get("type") == "heartbeat" for m in sent))
        beat = next(m for m in sent if m["type"] == "heartbeat")
        assert beat["timestamp"] > 0
    finally:
        service.disconnect()


def test_reconnect_opens_new_connection():
    connector = FakeConnector()
    service = make_service(connector)
    config = service.config
    config.reconnect_delay = 0
    service.config = config
    service.create_market_session()
    try:
        service.connect()
        service.reconnect()
        assert len(connector.connections) == 2
        assert connector.connections[0].closed is True
        assert service.is_connected() is True
    finally:
        service.disconnect()


def test_reset_statistics():
    connector = FakeConnector()
    service = make_service(connector)
    session = service.create_market_session()
    try:
        service.subscribe_to_trades(session, ["AAPL"], lambda e: None)
        connector.connections[0].on_message("not json")
        assert service.statistics().errors == 1
        service.reset_statistics()
        assert service.statistics().errors == 0
        assert service.statistics().messages_received == 0
    finally:
        service.disconnect()


def test_thread_manager_runs_and_stops():
    manager = ThreadManager()
    release = threading.Event()
    ran = []

    def worker():
        release.wait(2)
        ran.append(True)

    assert manager.add_thread(worker) is True
    assert manager.thread_count() == 1
    release.set()
    manager.stop()
    assert ran == [True]
    assert manager.thread_count() == 0
    assert manager.should_stop() is True


def test_thread_manager_rejects_after_stop():
    manager = ThreadManager()
    manager.stop()
    assert manager.add_thread(lambda: None) is False
    assert manager.thread_count() == 0


def test_thread_manager_survives_exception():
    manager = ThreadManager()
    ran = []

    def boom():
        ran.append(True)
        raise RuntimeError("boom")

    assert manager.add_thread(boom) is True
    manager.stop()
    assert ran == [True]
    assert manager.should_stop() is True