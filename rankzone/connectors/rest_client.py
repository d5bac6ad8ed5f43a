"""Async client for the public Binance USD-M Futures market data endpoints."""

from __future__ import annotations

import asyncio
import time
from typing import Any

import httpx
import structlog

from rankzone.config.settings import BinanceConfig, MonitoringConfig

log = structlog.get_logger(__name__)


class RateLimitTracker:
    """Client-side request weight budget over a rolling one-minute window.

    Requests that would push usage past 80% of the budget wait for the window
    to roll over. The exchange's own ``X-MBX-USED-WEIGHT-1M`` figure is kept
    for observability.
    """

    WINDOW_SEC = 60.0
    HEADROOM = 0.8

    def __init__(self, max_weight_per_minute: int = 2400) -> None:
        self.max_weight = max_weight_per_minute
        self.used_weight = 0
        self.window_ends = time.monotonic() + self.WINDOW_SEC
        self.server_weight: int | None = None

    def _roll(self, now: float) -> None:
        self.used_weight = 0
        self.window_ends = now + self.WINDOW_SEC

    async def consume(self, weight: int) -> None:
        now = time.monotonic()
        if now >= self.window_ends:
            self._roll(now)
        if self.used_weight + weight > self.max_weight * self.HEADROOM:
            wait = max(0.0, self.window_ends - now)
            log.warning("rate_limit_throttled", used_weight=self.used_weight, wait_sec=round(wait, 2))
            await asyncio.sleep(wait)
            self._roll(time.monotonic())
        self.used_weight += weight

    def observe_headers(self, headers: httpx.Headers) -> None:
        raw = headers.get("x-mbx-used-weight-1m")
        if raw and raw.isdigit():
            self.server_weight = int(raw)

    @property
    def current_weight(self) -> int:
        return self.server_weight if self.server_weight is not None else self.used_weight


def kline_weight(limit: int) -> int:
    """Request weight of ``/fapi/v1/klines`` for a given ``limit``."""
    if limit < 100:
        return 1
    if limit < 500:
        return 2
    if limit <= 1000:
        return 5
    return 10


class BinanceMarketClient:
    """Unsigned market data requests with weight tracking and retries.

    Only public endpoints are exposed; nothing here signs requests or touches
    an account.
    """

    RETRY_STATUS = {418, 429, 500, 502, 503, 504}

    def __init__(
        self,
        config: BinanceConfig,
        monitoring: MonitoringConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        max_attempts: int = 3,
    ) -> None:
        self.config = config
        self.log_http = monitoring.log_http if monitoring else False
        self.max_attempts = max(1, max_attempts)
        self.http = httpx.AsyncClient(
            base_url=config.market_data_base_url,
            timeout=config.request_timeout_sec,
            transport=transport,
        )
        self.rate_limiter = RateLimitTracker(config.max_weight_per_minute)

    async def close(self) -> None:
        await self.http.aclose()

    async def get_exchange_info(self) -> dict[str, Any]:
        return await self._get("/fapi/v1/exchangeInfo", weight=1)

    async def get_24h_tickers(self) -> list[dict[str, Any]]:
        return await self._get("/fapi/v1/ticker/24hr", weight=40)

    async def get_klines(
        self,
        symbol: str,
        interval: str,
        limit: int = 500,
        start_time: int | None = None,
        end_time: int | None = None,
    ) -> list[list[Any]]:
        params: dict[str, Any] = {"symbol": symbol, "interval": interval, "limit": limit}
        if start_time is not None:
            params["startTime"] = start_time
        if end_time is not None:
            params["endTime"] = end_time
        return await self._get("/fapi/v1/klines", params=params, weight=kline_weight(limit))

    async def _get(self, path: str, params: dict[str, Any] | None = None, weight: int = 1) -> Any:
        await self.rate_limiter.consume(weight)
        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._send(path, params, attempt)
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status not in self.RETRY_STATUS:
                    log.error(
                        "market_data_http_error",
                        path=path,
                        status_code=status,
                        body=exc.response.text[:500],
                    )
                    raise
                last_error = exc
                log.warning("market_data_retrying", path=path, status_code=status, attempt=attempt)
            except httpx.RequestError as exc:
                last_error = exc
                log.warning("market_data_retrying", path=path, error=str(exc), attempt=attempt)
            if attempt < self.max_attempts:
                await asyncio.sleep(2 ** (attempt - 1))
        raise last_error

    async def _send(self, path: str, params: dict[str, Any] | None, attempt: int) -> Any:
        started = time.perf_counter()
        response = await self.http.get(path, params=params)
        response.raise_for_status()
        self.rate_limiter.observe_headers(response.headers)
        if self.log_http:
            log.info(
                "market_data_response",
                path=path,
                params=params,
                attempt=attempt,
                status_code=response.status_code,
                latency_ms=round((time.perf_counter() - started) * 1000, 2),
                used_weight=self.rate_limiter.current_weight,
            )
        return response.json()
