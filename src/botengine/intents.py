import random
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .text import normalize_text, phrase_match_score
from .types import Intent

EXACT_CONFIDENCE = 1.0
SUBSTRING_CONFIDENCE = 0.9
FUZZY_INTENT_THRESHOLD = 0.5
# fuzzy matches stay below the literal-match range
FUZZY_CONFIDENCE_CAP = 0.88

NO_RESPONSE_TEXT = "No response configured."


@dataclass
class IntentMatch:
    intent: Intent
    confidence: float
    response_text: str


class IntentResolver:
    def __init__(
        self,
        fuzzy_threshold: float = FUZZY_INTENT_THRESHOLD,
        fuzzy_cap: float = FUZZY_CONFIDENCE_CAP,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.fuzzy_threshold = fuzzy_threshold
        self.fuzzy_cap = fuzzy_cap
        self.rng = rng or random.Random()

    def resolve(self, intents: Iterable[Intent], normalized_input: str) -> Optional[IntentMatch]:
        if not normalized_input:
            return None

        best: Optional[Intent] = None
        best_confidence = 0.0
        for intent in order_by_priority(intents):
            for phrase in intent.training_phrases:
                phrase_norm = normalize_text(phrase)
                if not phrase_norm:
                    continue
                if phrase_norm == normalized_input or phrase_norm in normalized_input or normalized_input in phrase_norm:
                    confidence = EXACT_CONFIDENCE if phrase_norm == normalized_input else SUBSTRING_CONFIDENCE
                    if best is None or confidence > best_confidence:
                        best, best_confidence = intent, confidence
                    break

                score = phrase_match_score(normalized_input, phrase_norm)
                if score < self.fuzzy_threshold:
                    continue
                confidence = min(score, self.fuzzy_cap)
                if best is None or confidence > best_confidence:
                    best, best_confidence = intent, confidence

        if best is None:
            return None
        return IntentMatch(intent=best, confidence=best_confidence, response_text=self.pick_response(best))

    def pick_response(self, intent: Intent) -> str:
        if not intent.responses:
            return NO_RESPONSE_TEXT
        primary = intent.responses[0]
        if primary.variations:
            return self.rng.choice([primary.text, *primary.variations])
        return primary.text


def order_by_priority(intents: Iterable[Intent]) -> List[Intent]:
    active = [intent for intent in intents if intent.is_active]
    return sorted(active, key=lambda intent: intent.priority, reverse=True)
