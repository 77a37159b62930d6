"""HTTP plumbing, errors and small helpers shared by the service modules."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import requests

DEFAULT_TIMEOUT = 30


class TradierError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(TradierError, ValueError):
    """An argument was rejected before any request was made."""


class ApiError(TradierError):
    """The API answered with an error status or an unusable body."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message

    def __str__(self) -> str:
        return f"API error {self.status}: {self.message}"


@dataclass
class Response:
    """A received HTTP response."""

    status: int = 0
    body: str = ""
    headers: dict[str, str] = field(default_factory=dict)

    def success(self) -> bool:
        """True for a 2xx status."""
        return 200 <= self.status < 300


class HttpClient:
    """Sends authenticated requests to the REST API and wraps the answers."""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            }
        )

    def _url(self, endpoint: str) -> str:
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint
        return self.base_url + endpoint

    def _send(
        self,
        method: str,
        endpoint: str,
        *,
        params: Mapping[str, str] | None = None,
        data: Mapping[str, str] | None = None,
    ) -> Response:
        try:
            reply = self._session.request(
                method,
                self._url(endpoint),
                params=dict(params) if params else None,
                data=dict(data) if data else None,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TradierError(f"{method} {endpoint} failed: {exc}") from exc
        return Response(
            status=reply.status_code,
            body=reply.text,
            headers=dict(reply.headers),
        )

    def get(self, endpoint: str, params: Mapping[str, str] | None = None) -> Response:
        """Issue a GET with query parameters."""
        return self._send("GET", endpoint, params=params)

    def post(self, endpoint: str, params: Mapping[str, str] | None = None) -> Response:
        """Issue a POST with form parameters."""
        return self._send("POST", endpoint, data=params)

    def put(self, endpoint: str, params: Mapping[str, str] | None = None) -> Response:
        """Issue a PUT with form parameters."""
        return self._send("PUT", endpoint, data=params)

    def delete(self, endpoint: str, params: Mapping[str, str] | None = None) -> Response:
        """Issue a DELETE with query parameters."""
        return self._send("DELETE", endpoint, params=params)

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def join_symbols(symbols: Iterable[str]) -> str:
    """Join symbols into the comma-separated form the API expects."""
    return ",".join(symbols)


def bool_param(value: bool) -> str:
    """Render a flag as the API's "true"/"false"."""
    return "true" if value else "false"


def format_number(value: Any) -> str:
    """Render a number without a trailing ".0" for whole values."""
    if isinstance(value, bool):
        return bool_param(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def as_list(value: Any) -> list:
    """Normalise a field that may hold one object, a list of them, or nothing."""
    if value is None or value == "null":
        return []
    if isinstance(value, list):
        return value
    return [value]


def parse_json(response: Response) -> Any:
    """Decode a successful response body, raising on errors or bad JSON."""
    if not response.success():
        raise ApiError(response.status, response.body)
    try:
        return json.loads(response.body)
    except json.JSONDecodeError as exc:
        raise ApiError(response.status, f"Invalid JSON in response: {exc}") from exc