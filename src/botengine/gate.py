from .types import RouterResult, Source

LLM_MIN_CONFIDENCE = 0.5


def accepts_deterministic(result: RouterResult, threshold: float) -> bool:
    """Hybrid mode keeps an intent/knowledge answer only above the bot's threshold."""
    if result.source is Source.FALLBACK:
        return False
    return result.confidence >= threshold


def accepts_generation(confidence: float, fallback_to_intent: bool, min_confidence: float = LLM_MIN_CONFIDENCE) -> bool:
    if not fallback_to_intent:
        return True
    return confidence >= min_confidence
