from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, Generic, List, Optional, Tuple, TypeVar

import httpx

from tamic.trading.models import AssetClass
from tamic.trading.settlement import IPriceSource
from tamic.util.net import build_http_client

logger = logging.getLogger(__name__)

ALPHA_VANTAGE_BASE = "https://www.alphavantage.co"
COINGECKO_BASE = "https://api.coingecko.com"

STOCK_CACHE_TTL_S = 5 * 60
CRYPTO_CACHE_TTL_S = 2 * 60

# total width of the random perturbation applied to the base price
STOCK_FALLBACK_SPREAD = 0.03
CRYPTO_FALLBACK_SPREAD = 0.08

STOCK_BASE_PRICES: Dict[str, float] = {
    "AAPL": 178.50, "MSFT": 378.25, "GOOGL": 141.80, "AMZN": 178.90,
    "TSLA": 248.50, "META": 505.75, "NVDA": 875.30, "JPM": 195.40,
    "V": 278.60, "JNJ": 156.80, "WMT": 165.20, "PG": 158.90,
}

# coingecko id -> (symbol, name, base price)
CRYPTO_ASSETS: Dict[str, Tuple[str, str, float]] = {
    "bitcoin": ("BTC", "Bitcoin", 67500), "ethereum": ("ETH", "Ethereum", 3450),
    "tether": ("USDT", "Tether", 1), "binancecoin": ("BNB", "BNB", 605),
    "solana": ("SOL", "Solana", 175), "ripple": ("XRP", "XRP", 0.52),
    "usd-coin": ("USDC", "USD Coin", 1), "staked-ether": ("STETH", "Lido Staked Ether", 3440),
    "cardano": ("ADA", "Cardano", 0.45), "dogecoin": ("DOGE", "Dogecoin", 0.12),
    "tron": ("TRX", "TRON", 0.11), "avalanche-2": ("AVAX", "Avalanche", 35),
    "the-open-network": ("TON", "Toncoin", 6.5), "shiba-inu": ("SHIB", "Shiba Inu", 0.000022),
    "chainlink": ("LINK", "Chainlink", 14.5), "polkadot": ("DOT", "Polkadot", 7.2),
    "bitcoin-cash": ("BCH", "Bitcoin Cash", 455), "near": ("NEAR", "NEAR Protocol", 5.8),
    "stellar": ("XLM", "Stellar", 0.11), "matic-network": ("MATIC", "Polygon", 0.58),
    "litecoin": ("LTC", "Litecoin", 72), "uniswap": ("UNI", "Uniswap", 9.5),
    "dai": ("DAI", "Dai", 1), "internet-computer": ("ICP", "Internet Computer", 12.5),
    "ethereum-classic": ("ETC", "Ethereum Classic", 26), "aptos": ("APT", "Aptos", 9.2),
    "hedera-hashgraph": ("HBAR", "Hedera", 0.085), "filecoin": ("FIL", "Filecoin", 5.8),
    "cosmos": ("ATOM", "Cosmos", 8.5), "arbitrum": ("ARB", "Arbitrum", 0.95),
    "immutable-x": ("IMX", "Immutable", 2.1), "crypto-com-chain": ("CRO", "Cronos", 0.12),
    "vechain": ("VET", "VeChain", 0.035), "mantle": ("MNT", "Mantle", 1.05),
    "optimism": ("OP", "Optimism", 2.3), "render-token": ("RNDR", "Render", 8.5),
    "maker": ("MKR", "Maker", 2850), "injective-protocol": ("INJ", "Injective", 28),
    "the-graph": ("GRT", "The Graph", 0.22), "sui": ("SUI", "Sui", 1.35),
    "aave": ("AAVE", "Aave", 165), "theta-token": ("THETA", "Theta Network", 1.85),
    "fantom": ("FTM", "Fantom", 0.72), "thorchain": ("RUNE", "THORChain", 5.2),
    "lido-dao": ("LDO", "Lido DAO", 1.85), "algorand": ("ALGO", "Algorand", 0.18),
    "flow": ("FLOW", "Flow", 0.72), "quant-network": ("QNT", "Quant", 95),
    "the-sandbox": ("SAND", "The Sandbox", 0.42), "axie-infinity": ("AXS", "Axie Infinity", 7.5),
}


@dataclass(frozen=True)
class Quote:
    symbol: str
    price: float
    change: float
    change_percent: float
    volume: float
    name: str = ""
    market_cap: float = 0.0
    simulated: bool = False


K = TypeVar("K")
V = TypeVar("V")


class TTLCache(Generic[K, V]):
    def __init__(self, ttl_s: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl_s = ttl_s
        self._clock = clock
        self._items: Dict[K, Tuple[float, V]] = {}
        self._lock = threading.Lock()

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            hit = self._items.get(key)
            if hit is None:
                return None
            stored_at, value = hit
            if self._clock() - stored_at >= self._ttl_s:
                del self._items[key]
                return None
            return value

    def set(self, key: K, value: V) -> None:
        with self._lock:
            self._items[key] = (self._clock(), value)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()


class FallbackQuoteGenerator:
    """Simulated quotes around a hard-coded base price table.

    Pass a seeded ``random.Random`` for reproducible output.
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def stock(self, symbol: str) -> Quote:
        base = STOCK_BASE_PRICES.get(symbol, 100.0)
        change = (self._rng.random() - 0.5) * base * STOCK_FALLBACK_SPREAD
        return Quote(
            symbol=symbol,
            price=round(base + change, 2),
            change=round(change, 2),
            change_percent=round(change / base * 100, 2),
            volume=self._rng.randrange(1_000_000, 51_000_000),
            simulated=True,
        )

    def crypto(self, symbol: str, name: str = "", base: Optional[float] = None) -> Quote:
        if base is None:
            base = next((b for s, _, b in CRYPTO_ASSETS.values() if s == symbol), 10.0)
        change = (self._rng.random() - 0.5) * base * CRYPTO_FALLBACK_SPREAD
        places = 6 if base < 1 else 2
        return Quote(
            symbol=symbol,
            name=name or symbol,
            price=round(base + change, places),
            change=round(change, places),
            change_percent=round(change / base * 100, 2),
            volume=self._rng.randrange(100_000_000, 10_100_000_000),
            market_cap=self._rng.randrange(1_000_000_000, 501_000_000_000),
            simulated=True,
        )

    def crypto_list(self) -> List[Quote]:
        return [self.crypto(sym, name, base) for sym, name, base in CRYPTO_ASSETS.values()]


class AlphaVantageStockProvider:
    def __init__(
        self,
        api_key: str = "",
        client: Optional[httpx.Client] = None,
        fallback: Optional[FallbackQuoteGenerator] = None,
        cache: Optional[TTLCache[str, Quote]] = None,
        timeout_s: float = 7.0,
    ) -> None:
        self._api_key = api_key
        self._client = client or build_http_client(ALPHA_VANTAGE_BASE, timeout_s)
        self._fallback = fallback or FallbackQuoteGenerator()
        self._cache: TTLCache[str, Quote] = cache or TTLCache(STOCK_CACHE_TTL_S)
        self._lock = threading.Lock()

    def fetch(self, symbols: List[str]) -> Dict[str, Quote]:
        if not self._api_key:
            logger.warning("ALPHA_VANTAGE_API_KEY not configured, using simulated stock quotes")
            return {s: self._fallback.stock(s) for s in symbols}
        out: Dict[str, Quote] = {}
        for sym in symbols:
            cached = self._cache.get(sym)
            if cached is not None:
                out[sym] = cached
                continue
            quote = self._fetch_one(sym)
            if quote is None:
                out[sym] = self._fallback.stock(sym)
            else:
                self._cache.set(sym, quote)
                out[sym] = quote
        return out

    def _fetch_one(self, symbol: str) -> Optional[Quote]:
        try:
            with self._lock:
                r = self._client.get(
                    "/query",
                    params={"function": "GLOBAL_QUOTE", "symbol": symbol, "apikey": self._api_key},
                )
            r.raise_for_status()
            item = r.json().get("Global Quote") or {}
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching {symbol}: {e}")
            return None
        if not item:
            # rate limit reached or unknown symbol
            logger.info(f"No data for {symbol}, using fallback")
            return None
        try:
            return Quote(
                symbol=item.get("01. symbol") or symbol,
                price=float(item.get("05. price") or 0.0),
                change=float(item.get("09. change") or 0.0),
                change_percent=float((item.get("10. change percent") or "0").replace("%", "")),
                volume=int(item.get("06. volume") or 0),
            )
        except ValueError as e:
            logger.error(f"Malformed quote for {symbol}: {e}")
            return None


class CoinGeckoCryptoProvider:
    CACHE_KEY = "all-cryptos"

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        fallback: Optional[FallbackQuoteGenerator] = None,
        cache: Optional[TTLCache[str, List[Quote]]] = None,
        timeout_s: float = 7.0,
    ) -> None:
        self._client = client or build_http_client(COINGECKO_BASE, timeout_s)
        self._fallback = fallback or FallbackQuoteGenerator()
        self._cache: TTLCache[str, List[Quote]] = cache or TTLCache(CRYPTO_CACHE_TTL_S)
        self._lock = threading.Lock()

    def fetch_all(self) -> List[Quote]:
        cached = self._cache.get(self.CACHE_KEY)
        if cached is not None:
            return cached
        params = {
            "vs_currency": "usd",
            "ids": ",".join(CRYPTO_ASSETS),
            "order": "market_cap_desc",
            "per_page": "50",
            "page": "1",
            "sparkline": "false",
            "price_change_percentage": "24h",
        }
        try:
            with self._lock:
                r = self._client.get("/api/v3/coins/markets", params=params, headers={"Accept": "application/json"})
            r.raise_for_status()
            data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"CoinGecko request failed, using fallback: {e}")
            return self._fallback.crypto_list()
        if not isinstance(data, list):
            logger.error(f"Unexpected CoinGecko payload, using fallback: {str(data)[:200]}")
            return self._fallback.crypto_list()
        out: List[Quote] = []
        for coin in data:
            try:
                known = CRYPTO_ASSETS.get(coin.get("id", ""))
                symbol = known[0] if known else str(coin.get("symbol", "")).upper()
                name = known[1] if known else coin.get("name", symbol)
                out.append(Quote(
                    symbol=symbol,
                    name=name,
                    price=float(coin.get("current_price") or 0.0),
                    change=float(coin.get("price_change_24h") or 0.0),
                    change_percent=float(coin.get("price_change_percentage_24h") or 0.0),
                    volume=float(coin.get("total_volume") or 0.0),
                    market_cap=float(coin.get("market_cap") or 0.0),
                ))
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed CoinGecko entry: {e}")
        if not out:
            return self._fallback.crypto_list()
        self._cache.set(self.CACHE_KEY, out)
        return out

    def fetch(self, symbols: List[str]) -> Dict[str, Quote]:
        by_symbol = {q.symbol: q for q in self.fetch_all()}
        out: Dict[str, Quote] = {}
        for sym in symbols:
            out[sym] = by_symbol.get(sym) or self._fallback.crypto(sym)
        return out


class MarketDataService:
    """Quotes for equities and crypto, never raising on provider trouble."""

    def __init__(
        self,
        stocks: Optional[AlphaVantageStockProvider] = None,
        crypto: Optional[CoinGeckoCryptoProvider] = None,
    ) -> None:
        self._stocks = stocks or AlphaVantageStockProvider()
        self._crypto = crypto or CoinGeckoCryptoProvider()

    def get_quotes(self, symbols: List[str], asset_class: AssetClass = AssetClass.EQUITY) -> Dict[str, Quote]:
        norm = [s.strip().upper() for s in symbols]
        if asset_class is AssetClass.CRYPTO:
            return self._crypto.fetch(norm)
        return self._stocks.fetch(norm)

    def get_quote(self, symbol: str, asset_class: AssetClass = AssetClass.EQUITY) -> Quote:
        sym = symbol.strip().upper()
        return self.get_quotes([sym], asset_class)[sym]

    def top_crypto(self) -> List[Quote]:
        return list(self._crypto.fetch_all())


class MarketPriceSource(IPriceSource):
    """Adapts MarketDataService to the settlement price lookup.

    ``pin`` fixes the price of a symbol to what the user was shown, so a
    trade settles at the displayed quote.
    """

    def __init__(self, service: MarketDataService, asset_class: AssetClass) -> None:
        self._service = service
        self._asset_class = asset_class
        self._pinned: Dict[str, Decimal] = {}

    def pin(self, symbol: str, price: Decimal) -> None:
        self._pinned[symbol.upper()] = price

    def unpin(self, symbol: str) -> None:
        self._pinned.pop(symbol.upper(), None)

    def get_current_price(self, symbol: str) -> Optional[Decimal]:
        pinned = self._pinned.get(symbol.upper())
        if pinned is not None:
            return pinned
        quote = self._service.get_quote(symbol, self._asset_class)
        if quote.price <= 0:
            return None
        return Decimal(str(quote.price))
