"""
Application configuration management using Pydantic settings.
Loads configuration from environment variables with validation.
"""

from decimal import Decimal
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    All sensitive values should be set via environment variables,
    not hardcoded in this file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "binary-ledger"
    debug: bool = False
    secret_key: str

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        """
        Validates that secret_key is long enough to sign JWTs safely.
        The identity provider signs user tokens with the same key.
        """
        if len(v) < 32:
            raise ValueError(
                "SECRET_KEY must be at least 32 characters. "
                "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
            )
        return v

    # Database
    database_url: str

    # JWT verification
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # CORS Configuration
    # Comma-separated list of allowed origins, or "*" for all
    cors_allowed_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:5173"
    cors_allow_credentials: bool = True
    cors_allow_methods: str = "GET,POST,OPTIONS"
    cors_allow_headers: str = "Authorization,Content-Type,X-Correlation-ID"

    @property
    def cors_origins_list(self) -> list[str]:
        """
        Parses comma-separated CORS origins into a list.
        Returns ["*"] if cors_allowed_origins is set to "*".
        """
        if self.cors_allowed_origins.strip() == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_allowed_origins.split(",") if origin.strip()]

    @property
    def cors_methods_list(self) -> list[str]:
        """Parses comma-separated CORS methods into a list."""
        if self.cors_allow_methods.strip() == "*":
            return ["*"]
        return [method.strip() for method in self.cors_allow_methods.split(",") if method.strip()]

    @property
    def cors_headers_list(self) -> list[str]:
        """Parses comma-separated CORS headers into a list."""
        if self.cors_allow_headers.strip() == "*":
            return ["*"]
        return [header.strip() for header in self.cors_allow_headers.split(",") if header.strip()]

    # Price feed
    # "coingecko" for the live market feed, "static" for fixed paper-mode prices
    price_feed: str = "coingecko"
    coingecko_api_url: str = "https://api.coingecko.com/api/v3"
    coingecko_quote_currency: str = "usd"
    coingecko_markets_limit: int = 100
    price_cache_ttl_seconds: int = 5
    # Comma-separated SYMBOL=PRICE pairs used when price_feed == "static"
    static_prices: str = "BTC=108740.19,ETH=2547.7,XRP=2.27416,LTC=87.56,ADA=0.58486,TRX=0.285657"

    @field_validator("price_feed")
    @classmethod
    def validate_price_feed(cls, v: str) -> str:
        """Only the known feed implementations are accepted."""
        v = v.strip().lower()
        if v not in ("coingecko", "static"):
            raise ValueError("PRICE_FEED must be 'coingecko' or 'static'")
        return v

    # Payout schedule
    buy_profit_rate: Decimal = Decimal("0.85")
    # Comma-separated MAX_SECONDS:RATE tiers, ascending; the last tier
    # applies to every longer duration
    sell_profit_tiers: str = "60:0.08,300:0.20,*:0.40"
    commission_rate: Decimal = Decimal("0.01")
    min_commission_usdt: Decimal = Decimal("0")
    # Comma-separated list of supported durations in seconds
    trade_durations: str = "100,200,300,600"

    @property
    def trade_durations_list(self) -> list[int]:
        """Parses the supported duration menu into sorted integers."""
        return sorted(int(d.strip()) for d in self.trade_durations.split(",") if d.strip())

    @property
    def sell_profit_tiers_list(self) -> list[tuple[int | None, Decimal]]:
        """
        Parses sell tiers into (max_seconds, rate) tuples.
        A max_seconds of None marks the open-ended final tier.
        """
        tiers: list[tuple[int | None, Decimal]] = []
        for chunk in self.sell_profit_tiers.split(","):
            if not chunk.strip():
                continue
            bound, rate = chunk.split(":", 1)
            bound = bound.strip()
            tiers.append((None if bound == "*" else int(bound), Decimal(rate.strip())))
        return tiers

    @property
    def static_prices_map(self) -> dict[str, Decimal]:
        """Parses SYMBOL=PRICE pairs for the static price feed."""
        prices: dict[str, Decimal] = {}
        for chunk in self.static_prices.split(","):
            if "=" not in chunk:
                continue
            symbol, price = chunk.split("=", 1)
            prices[symbol.strip().upper()] = Decimal(price.strip())
        return prices

    # Ledger
    # 0 disables the limit
    max_active_trades_per_user: int = 1

    # Settlement
    settlement_retry_base_delay: float = 1.0
    settlement_retry_max_delay: float = 30.0
    settlement_sweep_interval_seconds: int = 15

    @property
    def async_database_url(self) -> str:
        """
        Ensures the database URL uses an async driver.
        Converts postgresql:// to postgresql+asyncpg:// and
        sqlite:// to sqlite+aiosqlite:// if needed.
        """
        url = self.database_url
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif url.startswith("sqlite://"):
            url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url


@lru_cache
def get_settings() -> Settings:
    """
    Returns cached settings instance.
    Uses lru_cache to avoid reading .env file on every call.
    """
    return Settings()
