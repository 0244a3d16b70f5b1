class EngineError(Exception):
    """Base class for errors the engine surfaces to its caller."""


class BotNotFoundError(EngineError):
    def __init__(self, bot_id: str) -> None:
        super().__init__(f"Bot not found: {bot_id}")
        self.bot_id = bot_id


class InvalidUtteranceError(EngineError, ValueError):
    pass


class CapabilityMissingError(EngineError):
    """An optional provider (embedder, vector store) is required but not configured."""


class ProviderError(Exception):
    """Raised inside provider adapters; never crosses the router boundary."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason
