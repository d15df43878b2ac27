from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = Field("sqlite:///bot_engine.db", env="DATABASE_URL")

    # Market data (Binance public REST)
    MARKET_DATA_BASE_URL: str = Field("https://api.binance.com", env="MARKET_DATA_BASE_URL")
    MARKET_DATA_TIMEOUT_SEC: float = Field(10.0, env="MARKET_DATA_TIMEOUT_SEC")

    # Wallets
    QUOTE_ASSET: str = Field("USDT", env="QUOTE_ASSET")
    WALLET_TYPE: str = Field("virtual", env="WALLET_TYPE")
    INITIAL_BALANCE: float = Field(10000.0, env="INITIAL_BALANCE")  # drawdown equity seed

    # Risk / sizing
    MINIMUM_BALANCE: float = Field(1.0, env="MINIMUM_BALANCE")
    DEFAULT_FIXED_AMOUNT: float = Field(100.0, env="DEFAULT_FIXED_AMOUNT")
    DEFAULT_PERCENTAGE: float = Field(10.0, env="DEFAULT_PERCENTAGE")
    FALLBACK_REQUIRED_AMOUNT: float = Field(10.0, env="FALLBACK_REQUIRED_AMOUNT")
    MIN_QUANTITY: float = Field(0.000001, env="MIN_QUANTITY")

    # Scheduler cadence
    ENTRY_EXIT_INTERVAL_SEC: int = Field(60, env="ENTRY_EXIT_INTERVAL_SEC")
    STATISTICS_INTERVAL_SEC: int = Field(300, env="STATISTICS_INTERVAL_SEC")
    SL_TP_INTERVAL_SEC: int = Field(15, env="SL_TP_INTERVAL_SEC")
    SCHEDULER_TICK_SEC: float = Field(1.0, env="SCHEDULER_TICK_SEC")
    STARTUP_DELAY_SEC: int = Field(5, env="STARTUP_DELAY_SEC")

    # Evaluation
    SL_TP_CANDLE_TIMEFRAME: str = Field("1m", env="SL_TP_CANDLE_TIMEFRAME")
    EXIT_LOOKBACK_BARS: int = Field(100, env="EXIT_LOOKBACK_BARS")
    RECENT_TRADE_WINDOW_FAST_SEC: int = Field(30, env="RECENT_TRADE_WINDOW_FAST_SEC")
    RECENT_TRADE_WINDOW_SEC: int = Field(300, env="RECENT_TRADE_WINDOW_SEC")
    SCHEDULE_TIMEZONE: str = Field("UTC", env="SCHEDULE_TIMEZONE")

    # Notifications
    NOTIFIER_WEBHOOK: str = Field("", env="NOTIFIER_WEBHOOK")

    # Application
    APP_PORT: int = Field(8000, env="APP_PORT")
    AUTO_START_ENGINE: bool = Field(False, env="AUTO_START_ENGINE")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8"
    }

settings = Settings()
