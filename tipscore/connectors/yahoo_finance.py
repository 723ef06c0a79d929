"""Yahoo Finance chart API connector for current prices."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import quote

import httpx

from tipscore.config import settings
from tipscore.connectors.rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Exchange code -> Yahoo ticker suffix
EXCHANGE_SUFFIX: dict[str, str] = {
    "NYSE": "",
    "NASDAQ": "",
    "TSX": ".TO",
    "LSE": ".L",
    "XETRA": ".DE",
    "EURONEXT": ".PA",
    "NSE": ".NS",
    "BSE": ".BO",
    "TSE": ".T",
    "HKEX": ".HK",
    "ASX": ".AX",
    "KRX": ".KS",
    "SGX": ".SI",
    "MCX": ".NS",
    "CRYPTO": "-USD",
    "INDEX": "",
}

_limiter = SlidingWindowRateLimiter(
    max_requests=settings.price_rate_limit_requests,
    window_seconds=settings.price_rate_limit_window_sec,
)


@dataclass(frozen=True)
class PriceQuote:
    symbol: str
    price: float
    timestamp: datetime
    change: float = 0.0
    change_pct: float = 0.0


def to_yahoo_symbol(symbol: str, exchange: str) -> str:
    """Map (symbol, exchange) to a Yahoo ticker, e.g. RELIANCE/NSE -> RELIANCE.NS."""
    symbol = symbol.strip().upper()
    exchange = (exchange or "").strip().upper()
    # 指数 (^NSEI 等) と既にサフィックス付きのものはそのまま
    if symbol.startswith("^"):
        return symbol
    suffix = EXCHANGE_SUFFIX.get(exchange, "")
    if suffix and symbol.endswith(suffix):
        return symbol
    return f"{symbol}{suffix}"


def _parse_chart(symbol: str, data: dict) -> PriceQuote | None:
    chart = data.get("chart") or {}
    if chart.get("error"):
        logger.warning(
            "Yahoo chart error for %s: %s",
            symbol,
            (chart["error"] or {}).get("description", chart["error"]),
        )
        return None
    results = chart.get("result") or []
    if not results:
        logger.warning("No chart data returned for %s", symbol)
        return None

    meta = results[0].get("meta") or {}
    try:
        price = float(meta["regularMarketPrice"])
    except (KeyError, TypeError, ValueError):
        logger.warning("Chart payload for %s has no regularMarketPrice", symbol)
        return None
    if price <= 0:
        logger.warning("Non-positive price %.4f for %s, ignoring", price, symbol)
        return None

    market_time = meta.get("regularMarketTime")
    try:
        ts = datetime.fromtimestamp(int(market_time), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        ts = datetime.now(timezone.utc)

    prev_close = meta.get("previousClose") or meta.get("chartPreviousClose") or price
    try:
        prev_close = float(prev_close)
    except (TypeError, ValueError):
        prev_close = price
    change = price - prev_close
    change_pct = change / prev_close * 100 if prev_close > 0 else 0.0

    return PriceQuote(
        symbol=symbol,
        price=price,
        timestamp=ts,
        change=change,
        change_pct=change_pct,
    )


def get_current_price(
    symbol: str,
    exchange: str = "NYSE",
    *,
    limiter: SlidingWindowRateLimiter | None = None,
    timeout: float | None = None,
) -> PriceQuote | None:
    """Fetch the latest quote. Returns None when no price is available.

    Unknown symbols, HTTP errors, timeouts and malformed payloads are all
    "unavailable" for this cycle and are logged, not raised.
    """
    yahoo_symbol = to_yahoo_symbol(symbol, exchange)
    (limiter or _limiter).acquire()

    try:
        resp = httpx.get(
            f"{settings.yahoo_chart_url}/{quote(yahoo_symbol, safe='')}",
            params={"range": "1d", "interval": "1d"},
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            timeout=timeout if timeout is not None else settings.price_timeout_sec,
        )
    except httpx.TimeoutException:
        logger.warning("Yahoo chart request timed out for %s", yahoo_symbol)
        return None
    except httpx.HTTPError as e:
        logger.warning("Yahoo chart request failed for %s: %s", yahoo_symbol, e)
        return None

    if resp.status_code != 200:
        logger.warning("Yahoo chart returned %d for %s", resp.status_code, yahoo_symbol)
        return None

    try:
        data = resp.json()
    except ValueError:
        logger.warning("Yahoo chart returned non-JSON body for %s", yahoo_symbol)
        return None

    quote_ = _parse_chart(symbol, data)
    if quote_ is not None:
        logger.debug("Quote %s (%s): %.4f", symbol, yahoo_symbol, quote_.price)
    return quote_
