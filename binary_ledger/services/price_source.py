"""
Price sources for binary trade entry and exit prices.

CoinGeckoPriceSource reads the public markets endpoint with retry,
a circuit breaker and a short TTL cache. StaticPriceSource serves fixed
configured prices for paper mode and tests. Both also back the markets
listing (price, rank and 24h change per coin).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from binary_ledger.config import Settings
from binary_ledger.core.clock import Clock, utc_now
from binary_ledger.core.exceptions import PriceUnavailableError, UnknownInstrumentError, ValidationError
from binary_ledger.core.retry import CircuitBreaker, CircuitOpenError, retry_async


logger = logging.getLogger(__name__)

QUOTE_ASSET = "USDT"

MARKET_SORT_KEYS = (
    "market_cap_rank",
    "current_price",
    "price_change_percentage_24h",
    "market_cap",
    "name",
)


@dataclass(frozen=True)
class PriceQuote:
    """A price observation for one instrument."""
    symbol: str
    price: Decimal
    as_of: datetime


@dataclass(frozen=True)
class MarketInfo:
    """One row of the markets listing. Optional fields are None when the feed omits them."""
    symbol: str
    name: str
    current_price: Decimal
    market_cap: Decimal | None
    market_cap_rank: int | None
    price_change_percentage_24h: Decimal | None
    as_of: datetime

    @property
    def pair(self) -> str:
        return f"{self.symbol}-{QUOTE_ASSET}"

    def to_quote(self) -> PriceQuote:
        return PriceQuote(symbol=self.symbol, price=self.current_price, as_of=self.as_of)


def sort_markets(
    markets: list[MarketInfo],
    sort_by: str = "market_cap_rank",
    descending: bool = False,
) -> list[MarketInfo]:
    """
    Orders a markets listing. Rows missing the sort field go last
    in either direction.

    Raises:
        ValidationError: If sort_by is not a supported key
    """
    if sort_by not in MARKET_SORT_KEYS:
        raise ValidationError(
            f"Unsupported sort key: {sort_by}",
            details={"allowed": list(MARKET_SORT_KEYS)},
        )

    present = [m for m in markets if getattr(m, sort_by) is not None]
    missing = [m for m in markets if getattr(m, sort_by) is None]
    if sort_by == "name":
        present.sort(key=lambda m: m.name.lower(), reverse=descending)
    else:
        present.sort(key=lambda m: getattr(m, sort_by), reverse=descending)
    return present + missing

def normalize_symbol(pair: str) -> str:
    """
    Reduces a trading pair to its base symbol.

    "BTC-USDT", "btc/usdt", "BTCUSDT" and "btc" all become "BTC".

    Raises:
        UnknownInstrumentError: If nothing usable is left
    """
    symbol = (pair or "").strip().upper()
    for separator in ("-", "/", "_"):
        if separator in symbol:
            base, _, quote = symbol.partition(separator)
            if quote and quote != QUOTE_ASSET:
                raise UnknownInstrumentError(
                    f"Unsupported quote asset in {pair!r}",
                    details={"pair": pair, "quote": QUOTE_ASSET},
                )
            symbol = base
            break
    else:
        if symbol.endswith(QUOTE_ASSET) and len(symbol) > len(QUOTE_ASSET):
            symbol = symbol[: -len(QUOTE_ASSET)]

    if not symbol.isalnum():
        raise UnknownInstrumentError(f"Unknown instrument: {pair!r}", details={"pair": pair})
    return symbol


class PriceSource(ABC):
    """Interface shared by every price feed."""

    @abstractmethod
    async def get_quote(self, symbol: str, use_cache: bool = True) -> PriceQuote:
        """
        Returns the current price of an instrument.

        Raises:
            UnknownInstrumentError: If the symbol is not quoted by this feed
            PriceUnavailableError: If the feed cannot answer right now
        """

    @abstractmethod
    async def list_markets(self) -> list[MarketInfo]:
        """
        Every instrument this feed quotes, in feed order.

        Raises:
            PriceUnavailableError: If the feed cannot answer right now
        """

    async def get_current_price(self, symbol: str) -> Decimal:
        quote = await self.get_quote(symbol)
        return quote.price

    async def close(self) -> None:
        """Release network resources, if any."""


class StaticPriceSource(PriceSource):
    """Fixed prices, adjustable at runtime for paper trading and tests."""

    def __init__(self, prices: dict[str, Decimal], clock: Clock = utc_now):
        self._prices = {normalize_symbol(s): Decimal(p) for s, p in prices.items()}
        self._clock = clock

    def set_price(self, symbol: str, price: Decimal) -> None:
        self._prices[normalize_symbol(symbol)] = Decimal(price)

    async def get_quote(self, symbol: str, use_cache: bool = True) -> PriceQuote:
        base = normalize_symbol(symbol)
        if base not in self._prices:
            raise UnknownInstrumentError(f"Unknown instrument: {symbol}", details={"symbol": base})
        return PriceQuote(symbol=base, price=self._prices[base], as_of=self._clock())

    async def list_markets(self) -> list[MarketInfo]:
        # Configuration order doubles as rank
        now = self._clock()
        return [
            MarketInfo(
                symbol=symbol,
                name=symbol,
                current_price=price,
                market_cap=None,
                market_cap_rank=rank,
                price_change_percentage_24h=None,
                as_of=now,
            )
            for rank, (symbol, price) in enumerate(self._prices.items(), start=1)
        ]


def _optional_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


class CoinGeckoPriceSource(PriceSource):
    """
    Live prices from the CoinGecko /coins/markets endpoint.

    One request returns the top markets by capitalization; the parsed
    snapshot is cached for cache_ttl_seconds and shared by every symbol
    and by the markets listing. Settlement bypasses the cache with
    use_cache=False.
    """

    def __init__(
        self,
        base_url: str,
        quote_currency: str = "usd",
        markets_limit: int = 100,
        cache_ttl_seconds: int = 5,
        client: httpx.AsyncClient | None = None,
        max_retries: int = 2,
        retry_base_delay: float = 0.5,
        clock: Clock = utc_now,
    ):
        self.base_url = base_url.rstrip("/")
        self.quote_currency = quote_currency
        self.markets_limit = markets_limit
        self.cache_ttl = timedelta(seconds=cache_ttl_seconds)
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self._clock = clock
        self._client = client or httpx.AsyncClient(timeout=10.0)
        self._owns_client = client is None
        self._circuit = CircuitBreaker(failure_threshold=5, recovery_timeout=30)
        self._snapshot: dict[str, MarketInfo] = {}
        self._snapshot_at: datetime | None = None
        self._lock = asyncio.Lock()

    def _snapshot_fresh(self) -> bool:
        if self._snapshot_at is None:
            return False
        return self._clock() - self._snapshot_at < self.cache_ttl

    async def _fetch_markets(self) -> dict[str, MarketInfo]:
        url = f"{self.base_url}/coins/markets"
        params = {
            "vs_currency": self.quote_currency,
            "order": "market_cap_desc",
            "per_page": self.markets_limit,
            "page": 1,
            "sparkline": "false",
        }
        try:
            response = await retry_async(
                self._client.get,
                url,
                params=params,
                max_retries=self.max_retries,
                base_delay=self.retry_base_delay,
                max_delay=5.0,
                circuit_breaker=self._circuit,
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, asyncio.TimeoutError, CircuitOpenError, ValueError) as e:
            logger.warning(f"Price feed request failed: {type(e).__name__}: {e}")
            raise PriceUnavailableError(details={"feed": "coingecko", "reason": str(e)}) from e

        if not isinstance(payload, list):
            raise PriceUnavailableError(details={"feed": "coingecko", "reason": "unexpected payload"})

        fetched_at = self._clock()
        markets: dict[str, MarketInfo] = {}
        for coin in payload:
            symbol = str(coin.get("symbol") or "").upper()
            raw_price = coin.get("current_price")
            # Markets are ordered by cap, so the first listing of a ticker wins
            if not symbol or raw_price is None or symbol in markets:
                continue
            price = _optional_decimal(raw_price)
            if price is None:
                logger.debug(f"Skipping {symbol}: unparseable price {raw_price!r}")
                continue
            if price <= 0:
                continue
            markets[symbol] = MarketInfo(
                symbol=symbol,
                name=str(coin.get("name") or symbol),
                current_price=price,
                market_cap=_optional_decimal(coin.get("market_cap")),
                market_cap_rank=_optional_int(coin.get("market_cap_rank")),
                price_change_percentage_24h=_optional_decimal(coin.get("price_change_percentage_24h")),
                as_of=fetched_at,
            )

        logger.debug(f"Fetched {len(markets)} market prices")
        return markets

    async def _markets(self, use_cache: bool) -> dict[str, MarketInfo]:
        async with self._lock:
            if not (use_cache and self._snapshot_fresh()):
                self._snapshot = await self._fetch_markets()
                self._snapshot_at = self._clock()
            return self._snapshot

    async def get_quote(self, symbol: str, use_cache: bool = True) -> PriceQuote:
        base = normalize_symbol(symbol)
        market = (await self._markets(use_cache)).get(base)
        if market is None:
            raise UnknownInstrumentError(f"Unknown instrument: {symbol}", details={"symbol": base})
        return market.to_quote()

    async def list_markets(self) -> list[MarketInfo]:
        return list((await self._markets(use_cache=True)).values())

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def build_price_source(settings: Settings) -> PriceSource:
    """Creates the configured price feed."""
    if settings.price_feed == "static":
        return StaticPriceSource(settings.static_prices_map)
    return CoinGeckoPriceSource(
        base_url=settings.coingecko_api_url,
        quote_currency=settings.coingecko_quote_currency,
        markets_limit=settings.coingecko_markets_limit,
        cache_ttl_seconds=settings.price_cache_ttl_seconds,
    )
