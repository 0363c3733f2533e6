"""Ordered match strategies.

Each strategy looks at one candidate pair and either declines (``None``) or
returns a :class:`MatchDecision`. The scheduler tries them in order and the
first decision wins, so the tie-break order is the order of the list.
Category equality is a gate applied before any strategy runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Protocol, Sequence

from ..models.item import Item
from .similarity import cosine_similarity, keyword_overlap

MATCH_TYPE_AI = "AI"
MATCH_TYPE_DESCRIPTION = "Category+Description"
MATCH_TYPE_CATEGORY = "Category"

# Categories common enough that sharing one is a meaningful signal by itself
GENERIC_CATEGORIES = frozenset({
    "phone", "wallet", "keys", "bag", "book", "laptop",
    "charger", "mouse", "keyboard", "bracelet", "watch", "glasses",
})


def normalize_category(category: str | None) -> str:
    return (category or "").strip().lower()


def same_category(a: Item, b: Item) -> bool:
    ca = normalize_category(a.category)
    return bool(ca) and ca == normalize_category(b.category)


@dataclass(frozen=True)
class MatchDecision:
    match_type: str
    score: float
    # Rendered with the recipient's own item: {item_type}, {category}, {match_type}
    owner_template: str
    counterpart_template: str

    def render(self, template: str, item: Item) -> str:
        return template.format(
            item_type=(item.item_type or "").lower(),
            category=item.category,
            match_type=self.match_type,
        )

    def owner_message(self, item: Item) -> str:
        return self.render(self.owner_template, item)

    def counterpart_message(self, item: Item) -> str:
        return self.render(self.counterpart_template, item)


class MatchStrategy(Protocol):
    name: str

    def evaluate(self, a: Item, b: Item) -> Optional[MatchDecision]:
        ...


class EmbeddingSimilarityStrategy:
    """Visual match: cosine similarity of the two image embeddings above a threshold."""

    name = "embedding"
    owner_template = "A potential match for your {item_type} {category} was found!"
    counterpart_template = "Someone reported an item that looks similar to your {item_type} {category}."

    def __init__(self, threshold: float = 0.60):
        self.threshold = threshold

    def evaluate(self, a: Item, b: Item) -> Optional[MatchDecision]:
        if not a.image_embedding or not b.image_embedding:
            return None
        score = cosine_similarity(a.image_embedding, b.image_embedding)
        if score > self.threshold:
            return MatchDecision(MATCH_TYPE_AI, score, self.owner_template, self.counterpart_template)
        return None


class KeywordFallbackStrategy:
    """Lexical match on descriptions, or a shared generic category."""

    name = "keyword"
    owner_template = "A possible match ({match_type}) for your {item_type} {category} was reported nearby."
    counterpart_template = "Someone nearby reported an item that may be your {item_type} {category} ({match_type} match)."

    def __init__(self, min_overlap: float = 0.20, generic_categories: Iterable[str] = GENERIC_CATEGORIES):
        self.min_overlap = min_overlap
        self.generic_categories = frozenset(normalize_category(c) for c in generic_categories)

    def evaluate(self, a: Item, b: Item) -> Optional[MatchDecision]:
        overlap = keyword_overlap(a.description, b.description)
        if overlap >= self.min_overlap:
            return MatchDecision(MATCH_TYPE_DESCRIPTION, overlap, self.owner_template, self.counterpart_template)
        if normalize_category(a.category) in self.generic_categories:
            return MatchDecision(MATCH_TYPE_CATEGORY, overlap, self.owner_template, self.counterpart_template)
        return None


def default_strategies(similarity_threshold: float = 0.60) -> list[MatchStrategy]:
    return [EmbeddingSimilarityStrategy(similarity_threshold), KeywordFallbackStrategy()]


def evaluate_pair(strategies: Sequence[MatchStrategy], a: Item, b: Item) -> Optional[MatchDecision]:
    for strategy in strategies:
        decision = strategy.evaluate(a, b)
        if decision is not None:
            return decision
    return None


__all__ = [
    "MatchDecision",
    "MatchStrategy",
    "EmbeddingSimilarityStrategy",
    "KeywordFallbackStrategy",
    "GENERIC_CATEGORIES",
    "MATCH_TYPE_AI",
    "MATCH_TYPE_DESCRIPTION",
    "MATCH_TYPE_CATEGORY",
    "default_strategies",
    "evaluate_pair",
    "same_category",
    "normalize_category",
]
