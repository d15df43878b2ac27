"""Engine exception hierarchy."""


class EngineError(Exception):
    """Base class for engine failures."""


class MarketDataError(EngineError):
    """Raised inside the market-data client; never escapes it."""


class PersistenceError(EngineError):
    pass


class InvalidBotConfig(EngineError):
    def __init__(self, bot_id: str, reason: str):
        super().__init__(f"bot {bot_id}: {reason}")
        self.bot_id = bot_id
        self.reason = reason
