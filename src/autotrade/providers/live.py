"""HTTP market data and execution providers for a venue gateway.

The gateway exposes:

    GET  /bars?instrument=&interval=&start=&end=&limit=   -> [{timestamp, open, high, low, close, volume}]
    GET  /price?instrument=                               -> {"price": float | null}
    POST /orders                                          -> {order_id, executed_price, executed_at, fees}

Reads are retried with exponential backoff; order submission is never
retried so an order cannot be executed twice.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import requests
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from autotrade.config.models import VenueConfig
from autotrade.errors import TransientExecutionFailure
from autotrade.providers.base import Fill
from autotrade.providers.historical import parse_timestamp
from autotrade.strategies.base import Bar, Order

logger = logging.getLogger(__name__)


class _RetryableError(Exception):
    """Connection problem or 5xx response worth retrying."""


class VenueClient:
    """Thin JSON-over-HTTP client shared by the live providers.

    Args:
        config: Venue connection settings
        session: Optional pre-configured requests session
        wait: tenacity wait strategy between read retries
    """

    def __init__(
        self,
        config: VenueConfig | None = None,
        session: requests.Session | None = None,
        wait: wait_base | None = None,
    ) -> None:
        self.config = config or VenueConfig()
        self.session = session or requests.Session()
        if self.config.api_key:
            self.session.headers["X-API-Key"] = self.config.api_key
        self._wait = wait or wait_exponential(multiplier=1, min=2, max=10)

    def _url(self, path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _send(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        try:
            response = self.session.request(
                method, self._url(path), timeout=self.config.timeout_seconds, **kwargs
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise _RetryableError(f"{method} {path} failed: {exc}") from exc
        if response.status_code >= 500:
            raise _RetryableError(f"{method} {path} returned HTTP {response.status_code}")
        return response

    def get(self, path: str, params: dict[str, Any] | None = None) -> requests.Response:
        """GET with retries. Raises TransientExecutionFailure once retries are exhausted."""
        retrying = Retrying(
            stop=stop_after_attempt(self.config.max_retries),
            wait=self._wait,
            retry=retry_if_exception_type(_RetryableError),
            reraise=True,
        )
        try:
            return retrying(self._send, "GET", path, params=params)
        except _RetryableError as exc:
            raise TransientExecutionFailure(str(exc)) from exc

    def post(self, path: str, payload: dict[str, Any]) -> requests.Response:
        """POST once. Raises TransientExecutionFailure on connection errors or 5xx."""
        try:
            return self._send("POST", path, json=payload)
        except _RetryableError as exc:
            raise TransientExecutionFailure(str(exc)) from exc


def _json(response: requests.Response, what: str) -> Any:
    try:
        response.raise_for_status()
        return response.json()
    except (requests.HTTPError, ValueError) as exc:
        raise TransientExecutionFailure(f"Invalid {what} response: {exc}") from exc


class HttpMarketDataProvider:
    """Market data provider backed by the venue gateway."""

    def __init__(self, client: VenueClient) -> None:
        self.client = client

    def fetch_bars(
        self,
        instrument: str,
        interval: str,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[Bar]:
        params: dict[str, Any] = {"instrument": instrument, "interval": interval}
        if start is not None:
            params["start"] = start.isoformat()
        if end is not None:
            params["end"] = end.isoformat()
        if limit is not None:
            params["limit"] = limit

        response = self.client.get("/bars", params=params)
        if response.status_code == 404:
            return []
        rows = _json(response, "bars")
        try:
            bars = [
                Bar(
                    timestamp=parse_timestamp(row["timestamp"]),
                    open=float(row["open"]),
                    high=float(row["high"]),
                    low=float(row["low"]),
                    close=float(row["close"]),
                    volume=float(row["volume"]),
                )
                for row in rows
            ]
        except (KeyError, TypeError, ValueError) as exc:
            raise TransientExecutionFailure(f"Malformed bar data for {instrument}: {exc}") from exc
        bars.sort(key=lambda b: b.timestamp)
        return bars

    def latest_price(self, instrument: str) -> float | None:
        response = self.client.get("/price", params={"instrument": instrument})
        if response.status_code == 404:
            return None
        data = _json(response, "price")
        price = data.get("price") if isinstance(data, dict) else None
        return float(price) if price is not None else None


class HttpExecutionProvider:
    """Execution provider that forwards orders to the venue gateway.

    The gateway performs custody and signing; this class only records what
    it reports back.
    """

    def __init__(self, client: VenueClient) -> None:
        self.client = client

    def submit_order(self, order: Order, reference_price: float | None = None) -> Fill:
        payload = {
            "instrument": order.instrument,
            "side": order.side,
            "quantity": order.quantity,
            "order_kind": order.order_kind,
            "limit_price": order.limit_price,
            "reference_price": reference_price,
        }
        response = self.client.post("/orders", payload)
        data = _json(response, "order")
        try:
            executed_at = (
                parse_timestamp(data["executed_at"])
                if data.get("executed_at")
                else datetime.now(timezone.utc)
            )
            fill = Fill(
                order=order,
                executed_price=float(data["executed_price"]),
                executed_at=executed_at,
                fees=float(data.get("fees", 0.0)),
                venue_order_id=str(data.get("order_id", "")),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise TransientExecutionFailure(f"Malformed fill for {order.instrument}: {exc}") from exc
        logger.info(
            f"Venue filled {order.side} {order.quantity} {order.instrument} "
            f"@ {fill.executed_price} (order {fill.venue_order_id})"
        )
        return fill


__all__ = ["VenueClient", "HttpMarketDataProvider", "HttpExecutionProvider"]
