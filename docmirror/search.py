"""
Fuzzy search over titles, cached content and attributes.

Each field is scored independently against the lower-cased query:

- the whole field equal to the query scores 1.0
- the query appearing inside the field scores 0.9
- otherwise the best ``difflib`` similarity between the query and any
  same-length run of words in the field, if it reaches the threshold

Field scores are weighted (title 3, content 2, attributes 1). Items are
ranked by their best weighted field, then by the sum over all fields, so an
exact title hit always beats a fuzzy hit in the body of another item.

Search only reads content that is already resolved; it never fetches.
"""

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from typing import Optional

from .types import Item, flatten_attributes

logger = logging.getLogger(__name__)

TITLE_WEIGHT = 3.0
CONTENT_WEIGHT = 2.0
ATTRIBUTE_WEIGHT = 1.0

DEFAULT_THRESHOLD = 0.6

EXACT_SCORE = 1.0
SUBSTRING_SCORE = 0.9

# Content longer than this is only scanned fuzzily up to this many words;
# substring matching still covers the full text.
MAX_FUZZY_WORDS = 20_000

_WORD_RE = re.compile(r"\w+(?:[-'’.]\w+)*", re.UNICODE)


def normalize(text: str) -> str:
    """Lower-case and collapse whitespace."""
    return " ".join(text.lower().split())


def _words(text: str) -> list[str]:
    return _WORD_RE.findall(text)


@dataclass
class SearchHit:
    """An item with its per-field match scores."""
    item: Item
    score: float
    fields: dict[str, float] = field(default_factory=dict)
    position: int = 0

    @property
    def total(self) -> float:
        return sum(self.fields.values())


class SearchIndex:
    """Ranks items against a free-text query."""

    def __init__(
        self,
        threshold: float = DEFAULT_THRESHOLD,
        *,
        title_weight: float = TITLE_WEIGHT,
        content_weight: float = CONTENT_WEIGHT,
        attribute_weight: float = ATTRIBUTE_WEIGHT,
    ):
        """
        Args:
            threshold: Minimum similarity (0-1) for a fuzzy field match.
                Lower values are more forgiving of typos.
        """
        if not 0.0 < threshold <= 1.0:
            raise ValueError(f"threshold must be in (0, 1], got {threshold}")
        self.threshold = threshold
        self.weights = {
            "title": title_weight,
            "content": content_weight,
            "attributes": attribute_weight,
        }

    # -------------------------------------------------------------------------
    # Field scoring
    # -------------------------------------------------------------------------

    def _fuzzy_score(self, query: str, query_len: int, words: Sequence[str]) -> float:
        """Best similarity between the query and any window of ``query_len`` words."""
        if not words:
            return 0.0
        best = 0.0
        width = min(query_len, len(words))
        matcher = SequenceMatcher(autojunk=False)
        matcher.set_seq2(query)
        for start in range(0, len(words) - width + 1):
            candidate = " ".join(words[start:start + width])
            matcher.set_seq1(candidate)
            # Cheap upper bounds first, as difflib.get_close_matches does
            if matcher.real_quick_ratio() < self.threshold:
                continue
            if matcher.quick_ratio() < self.threshold:
                continue
            ratio = matcher.ratio()
            if ratio > best:
                best = ratio
                if best >= SUBSTRING_SCORE:
                    break
        return best if best >= self.threshold else 0.0

    def score_text(self, query: str, text: str) -> float:
        """Score one text field against a normalized query."""
        if not text:
            return 0.0
        text = normalize(text)
        if text == query:
            return EXACT_SCORE
        if query in text:
            return SUBSTRING_SCORE
        words = _words(text)[:MAX_FUZZY_WORDS]
        query_len = max(1, len(query.split()))
        return min(self._fuzzy_score(query, query_len, words), SUBSTRING_SCORE - 0.01)

    def score_tokens(self, query: str, tokens: Sequence[str]) -> float:
        """Best score of the query against any single attribute token."""
        best = 0.0
        for token in tokens:
            best = max(best, self.score_text(query, token))
            if best >= EXACT_SCORE:
                break
        return best

    def score_item(self, query: str, item: Item, content: str) -> dict[str, float]:
        """Weighted per-field scores (only fields that matched)."""
        scores = {
            "title": self.score_text(query, item.title),
            "content": self.score_text(query, content),
            "attributes": self.score_tokens(query, flatten_attributes(item.attributes)),
        }
        return {name: s * self.weights[name] for name, s in scores.items() if s > 0}

    # -------------------------------------------------------------------------
    # Query
    # -------------------------------------------------------------------------

    def hits(
        self,
        items: Sequence[Item],
        resolved_content: Optional[Mapping[str, str]],
        text: str,
    ) -> list[SearchHit]:
        """Ranked hits with scores; see query()."""
        query = normalize(text or "")
        if not query:
            return [SearchHit(item=item, score=0.0, position=i) for i, item in enumerate(items)]

        resolved_content = resolved_content or {}
        hits = []
        for position, item in enumerate(items):
            content = resolved_content.get(item.id)
            if content is None:
                content = item.content or ""
            fields = self.score_item(query, item, content)
            if not fields:
                continue
            hits.append(SearchHit(
                item=item,
                score=max(fields.values()),
                fields=fields,
                position=position,
            ))

        hits.sort(key=lambda h: (-h.score, -h.total, h.position))
        logger.debug("Search %r matched %d of %d items", query, len(hits), len(items))
        return hits

    def query(
        self,
        items: Sequence[Item],
        resolved_content: Optional[Mapping[str, str]],
        text: str,
    ) -> list[Item]:
        """
        Items matching ``text``, best first.

        An empty query returns every item in its original order.

        Args:
            items: Candidate items
            resolved_content: id -> content for items resolved so far; items
                missing here fall back to ``item.content`` or ""
            text: Free-text query
        """
        return [hit.item for hit in self.hits(items, resolved_content, text)]
