from .errors import BotNotFoundError, EngineError, InvalidUtteranceError
from .router import ResponseRouter
from .types import AIMode, Bot, BotConfig, RouterResult, Source

__all__ = [
    "AIMode",
    "Bot",
    "BotConfig",
    "BotNotFoundError",
    "EngineError",
    "InvalidUtteranceError",
    "ResponseRouter",
    "RouterResult",
    "Source",
]
