import re
from typing import List

NON_WORD_RE = re.compile(r"[^\w\s]")
SPACE_RE = re.compile(r"\s+")

# min similarity for a word to count as matched (e.g. cources -> courses)
FUZZY_WORD_THRESHOLD = 0.75

STOPWORDS = frozenset(
    "a an are be do does did the this that those these is it its of or and for to in on at by with from as".split()
)


def normalize_text(text: str) -> str:
    normalized = NON_WORD_RE.sub(" ", text.lower())
    return SPACE_RE.sub(" ", normalized).strip()


def get_words(normalized: str, min_len: int = 1, drop_stopwords: bool = False) -> List[str]:
    words = [w for w in normalized.split() if len(w) >= min_len]
    if drop_stopwords:
        words = [w for w in words if w not in STOPWORDS]
    return words


def levenshtein(a: str, b: str) -> int:
    if not a:
        return len(b)
    if not b:
        return len(a)
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Edit-distance ratio in [0, 1]; 1 means identical."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return 1.0 - levenshtein(a, b) / max(len(a), len(b))


def has_similar_word(word: str, candidates: List[str], threshold: float = FUZZY_WORD_THRESHOLD) -> bool:
    return any(similarity(word, c) >= threshold for c in candidates)


def word_overlap_score(input_words: List[str], phrase_words: List[str]) -> float:
    """Fraction of input words that have a close-enough word in the phrase."""
    if not input_words:
        return 0.0
    matched = sum(1 for w in input_words if has_similar_word(w, phrase_words))
    return matched / len(input_words)


def phrase_match_score(normalized_input: str, normalized_phrase: str) -> float:
    """Best of content-word overlap and whole-string similarity.

    Content words drop stopwords so that a short query such as
    "cources availabe" still scores well against "what courses are available".
    """
    input_words = get_words(normalized_input, 2, drop_stopwords=True)
    if input_words:
        overlap = word_overlap_score(input_words, get_words(normalized_phrase, 2, drop_stopwords=True))
    else:
        overlap = word_overlap_score(get_words(normalized_input, 2), get_words(normalized_phrase, 2))
    return max(overlap, similarity(normalized_input, normalized_phrase))
