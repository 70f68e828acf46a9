"""Stage 1: Keyword Generation - Derive search keywords from the reference title.

Deterministic tokenization only:
- Lower-case, split on whitespace
- Drop tokens of two characters or fewer and common stop words
- Primary keyword = every remaining token, secondary = the first four
"""

from decision_trail.pipelines.competitor.errors import ReferenceValidationError
from decision_trail.pipelines.competitor.models import KeywordSet

STOP_WORDS = frozenset({
    "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
})

MIN_TOKEN_LENGTH = 3
MAX_SECONDARY_TOKENS = 4


def tokenize_title(title: str) -> list[str]:
    return [
        word for word in title.lower().split()
        if len(word) >= MIN_TOKEN_LENGTH and word not in STOP_WORDS
    ]


def generate_keywords(title: str) -> KeywordSet:
    """Build primary and secondary keywords from a product title.

    Raises:
        ReferenceValidationError: If no usable token survives filtering.
    """
    tokens = tokenize_title(title or "")
    if not tokens:
        raise ReferenceValidationError(
            f"No usable keywords in product title {title!r}: every token is a stop word "
            f"or shorter than {MIN_TOKEN_LENGTH} characters"
        )

    return KeywordSet(
        tokens=tokens,
        primary=" ".join(tokens),
        secondary=" ".join(tokens[:MAX_SECONDARY_TOKENS]),
    )
