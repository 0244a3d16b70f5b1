from typing import Any

from .errors import InvalidUtteranceError

MAX_UTTERANCE_CHARS = 4000


def validate_utterance(utterance: Any, max_chars: int = MAX_UTTERANCE_CHARS) -> str:
    if not isinstance(utterance, str):
        raise InvalidUtteranceError("Message must be a string")
    if not utterance.strip():
        raise InvalidUtteranceError("Message is required")
    if len(utterance) > max_chars:
        raise InvalidUtteranceError(f"Message exceeds {max_chars} characters")
    return utterance
