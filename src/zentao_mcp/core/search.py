"""
Client-side relevance search.

The legacy backend has no usable search API, so listings are aggregated and
scored locally:

    title:   exact 100 | contains keyword 80 | token coverage 60 * k/n
    body:    contains keyword 40 | token coverage 20 * k/n
    +10 when the keyword occurs in the module or product name

Entities scoring 0 are dropped. Reported scores are clamped to MAX_SCORE,
but ranking uses the unclamped total; ties rank newest (highest id) first.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import (
    Awaitable,
    Callable,
    Generic,
    Iterable,
    List,
    Optional,
    Sequence,
    TypeVar,
)

from zentao_mcp.models import Entity, parse_opened_date
from zentao_mcp.utils.date_parser import DateLike, parse_natural_date

from .errors import ZentaoError
from .observability import log_event

E = TypeVar("E", bound=Entity)

WORD_RE = re.compile(r"[a-z0-9]+(?:-[a-z0-9]+)*")
CJK_RE = re.compile(r"[\u4e00-\u9fa5]")

TITLE_EXACT = 100.0
TITLE_CONTAINS = 80.0
TITLE_PARTIAL = 60.0
BODY_CONTAINS = 40.0
BODY_PARTIAL = 20.0
AUX_BONUS = 10.0
MAX_SCORE = 130.0

DEEP_SEARCH_LIMIT = 10
DEEP_SEARCH_THRESHOLD = 50.0
DEFAULT_LIMIT = 50


@dataclass
class ScoredEntity(Generic[E]):
    entity: E
    score: float
    # unclamped total; ranking falls back to `score` when unset
    raw_score: Optional[float] = None

    @property
    def rank_score(self) -> float:
        return self.score if self.raw_score is None else self.raw_score


def tokenize(keyword: str) -> List[str]:
    """
    Split a keyword into ASCII words (hyphen-joined runs kept whole) followed
    by single CJK ideographs. Falls back to the whole lower-cased keyword.
    """
    lowered = keyword.lower()
    tokens = WORD_RE.findall(lowered) + CJK_RE.findall(lowered)
    return tokens or [lowered]


def _coverage(text: str, tokens: Sequence[str]) -> float:
    if not tokens:
        return 0.0
    return sum(1 for t in tokens if t in text) / len(tokens)


def raw_score(entity: Entity, keyword: str, tokens: Sequence[str]) -> float:
    kw = keyword.lower()
    title = entity.display_title.lower()
    body = entity.body_text.lower()
    module_name = (entity.module_name or "").lower()
    product_name = (entity.product_name or "").lower()

    total = 0.0
    if title == kw:
        total += TITLE_EXACT
    elif kw in title:
        total += TITLE_CONTAINS
    else:
        total += TITLE_PARTIAL * _coverage(title, tokens)

    if body:
        if kw in body:
            total += BODY_CONTAINS
        else:
            total += BODY_PARTIAL * _coverage(body, tokens)

    if kw and (kw in module_name or kw in product_name):
        total += AUX_BONUS

    return total


def score(entity: Entity, keyword: str, tokens: Sequence[str]) -> float:
    return min(raw_score(entity, keyword, tokens), MAX_SCORE)


def _scored(entity: E, keyword: str, tokens: Sequence[str]) -> ScoredEntity[E]:
    raw = raw_score(entity, keyword, tokens)
    return ScoredEntity(entity, min(raw, MAX_SCORE), raw)


def rank(scored: Iterable[ScoredEntity[E]], limit: int) -> List[ScoredEntity[E]]:
    ordered = sorted(scored, key=lambda s: (-s.rank_score, -s.entity.id))
    return ordered[: max(limit, 0)]


def filter_by_date_range(
    entities: Iterable[E],
    start: Optional[DateLike] = None,
    end: Optional[DateLike] = None,
    *,
    today: Optional[date] = None,
) -> List[E]:
    """
    Keep entities whose creation date (date part only) lies in [start, end].
    With any bound given, entities lacking a parseable date are excluded.
    """
    items = list(entities)
    if start is None and end is None:
        return items

    lo = parse_natural_date(start, today=today) if start is not None else None
    hi = parse_natural_date(end, today=today) if end is not None else None

    kept: List[E] = []
    for entity in items:
        opened = parse_opened_date(entity.opened_date)
        if opened is None:
            continue
        if lo and opened < lo:
            continue
        if hi and opened > hi:
            continue
        kept.append(entity)
    return kept


class SearchEngine:
    def __init__(
        self,
        *,
        deep_search_limit: int = DEEP_SEARCH_LIMIT,
        deep_search_threshold: float = DEEP_SEARCH_THRESHOLD,
        logger: Optional[logging.Logger] = None,
    ):
        self.deep_search_limit = deep_search_limit
        self.deep_search_threshold = deep_search_threshold
        self.log = logger or logging.getLogger("zentao_mcp.search")

    @staticmethod
    def tokenize(keyword: str) -> List[str]:
        return tokenize(keyword)

    @staticmethod
    def score(entity: Entity, keyword: str, tokens: Sequence[str]) -> float:
        return score(entity, keyword, tokens)

    @staticmethod
    def rank(scored: Iterable[ScoredEntity[E]], limit: int) -> List[ScoredEntity[E]]:
        return rank(scored, limit)

    def score_all(
        self, entities: Iterable[E], keyword: str, tokens: Sequence[str]
    ) -> List[ScoredEntity[E]]:
        scored = (_scored(e, keyword, tokens) for e in entities)
        return [s for s in scored if s.score > 0]

    def deep_candidates(
        self, scored: Sequence[ScoredEntity[E]], keyword: str, tokens: Sequence[str]
    ) -> List[ScoredEntity[E]]:
        """
        Weak matches worth re-scoring against the full detail: score below
        the threshold, some token in the title and the keyword absent from
        the (often truncated) listing body. Any title token qualifies, not
        the whole keyword: a whole-keyword title hit already scores 80, so
        requiring it would leave nothing under the threshold.
        """
        kw = keyword.lower()
        picked = [
            s
            for s in scored
            if s.score < self.deep_search_threshold
            and any(t in s.entity.display_title.lower() for t in tokens)
            and kw not in s.entity.body_text.lower()
        ]
        return picked[: self.deep_search_limit]

    async def deep_refine(
        self,
        scored: List[ScoredEntity[E]],
        keyword: str,
        tokens: Sequence[str],
        fetch_detail: Callable[[E], Awaitable[E]],
    ) -> List[ScoredEntity[E]]:
        """
        Re-score candidates against their full detail record and keep the
        new score only when it improves. Detail fetch failures are skipped.
        """
        for item in self.deep_candidates(scored, keyword, tokens):
            try:
                detail = await fetch_detail(item.entity)
            except ZentaoError as exc:
                self.log.debug("Deep search skipped %s: %s", item.entity.id, exc)
                continue
            refreshed = _scored(detail, keyword, tokens)
            if refreshed.rank_score > item.rank_score:
                item.entity = detail
                item.score = refreshed.score
                item.raw_score = refreshed.raw_score
        return scored

    async def search(
        self,
        entities: Iterable[E],
        keyword: str,
        *,
        limit: int = DEFAULT_LIMIT,
        start_date: Optional[DateLike] = None,
        end_date: Optional[DateLike] = None,
        deep_search: bool = False,
        fetch_detail: Optional[Callable[[E], Awaitable[E]]] = None,
    ) -> List[ScoredEntity[E]]:
        if not keyword or not keyword.strip():
            raise ValueError("keyword must not be empty")
        candidates = filter_by_date_range(entities, start_date, end_date)
        tokens = tokenize(keyword)
        scored = self.score_all(candidates, keyword, tokens)

        if deep_search and fetch_detail is not None:
            scored = await self.deep_refine(scored, keyword, tokens, fetch_detail)

        ranked = rank(scored, limit)
        log_event(
            "search_ranked",
            self.log,
            level=logging.DEBUG,
            records=len(candidates),
            succeeded=len(ranked),
        )
        return ranked


__all__ = [
    "SearchEngine",
    "ScoredEntity",
    "tokenize",
    "score",
    "raw_score",
    "rank",
    "filter_by_date_range",
    "MAX_SCORE",
]
