"""Food candidate search: lexical and alias strategies, scoring and reranking."""

import asyncio
import logging
import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Protocol

from nutrition_resolver.domain.candidates import (
    CandidateKind,
    CandidateOptions,
    CandidateSource,
    FoodCandidate,
    SearchResult,
)
from nutrition_resolver.domain.facets import ParsedFacets
from nutrition_resolver.services.aliases import expand_aliases
from nutrition_resolver.services.facets import normalize_query, parse_facets
from nutrition_resolver.services.feature_flags import AI_RERANK_FLAG, FeatureFlagService
from nutrition_resolver.services.llm import MAX_RERANK_CANDIDATES, LlmService
from nutrition_resolver.services.outcomes import attempt
from nutrition_resolver.services.portions import class_for_name

SOURCE_BONUS: dict[CandidateSource, float] = {
    CandidateSource.LEXICAL: 20,
    CandidateSource.ALIAS: 15,
    CandidateSource.EMBEDDING: 10,
    CandidateSource.RERANKED: 25,
}

FACET_WEIGHTS: tuple[tuple[str, float], ...] = (
    ("prep", 5),
    ("protein", 3),
    ("cuisine", 3),
)

SIMILARITY_WEIGHT = 50
FACET_BONUS_CAP = 20
MACRO_BONUS = 2.5
MAX_ALIAS_TERMS = 3
RERANK_PROMOTE = 3

PICKER_MIN_CONFIDENCE = 0.80
PICKER_MIN_GAP = 0.15

CORE_STOP_WORDS = frozenset(
    {
        "a", "an", "the", "and", "or", "with", "of", "in", "on", "to",
        "style", "classic", "premium", "original", "fresh", "organic",
        "grilled", "baked", "fried", "roasted", "boiled", "steamed", "sauteed",
        "bbq", "barbecue", "smoked", "raw", "cooked",
    }
)

_BARCODE_DIGITS = 8

_logger = logging.getLogger(__name__)


class FoodSearch(Protocol):
    """Search capability shared by every candidate strategy."""

    async def search(
        self,
        query: str,
        *,
        max_results: int = 10,
        bypass_guard: bool = False,
    ) -> list[SearchResult]:
        """Return raw search results for ``query``."""


@dataclass(frozen=True)
class CandidateScore:
    """Additive score of one search result, with its explanation."""

    score: float
    confidence: float
    explanation: str


def calculate_similarity(query: str, name: str) -> float:
    """Return a 0.1-1.0 similarity between a query and a result name."""
    left = normalize_query(query)
    right = normalize_query(name)
    if not left or not right:
        return 0.1
    if left == right:
        return 1.0
    if left in right:
        return 0.8
    if right in left:
        return 0.7
    left_words = set(re.findall(r"[a-z0-9]+", left))
    right_words = set(re.findall(r"[a-z0-9]+", right))
    union = left_words | right_words
    overlap = len(left_words & right_words) / len(union) if union else 0.0
    if overlap > 0:
        return 0.4 + 0.3 * overlap
    return 0.1


def score_food_candidate(
    query: str,
    result: SearchResult,
    source: CandidateSource,
    facets: ParsedFacets | None = None,
) -> CandidateScore:
    """Score a raw result: similarity, source, facet and completeness points."""
    similarity = calculate_similarity(query, result.name)
    name = result.name.lower()

    facet_bonus = 0.0
    if facets is not None:
        for facet, weight in FACET_WEIGHTS:
            for token in getattr(facets, facet):
                if token in name:
                    facet_bonus += weight
    facet_bonus = min(facet_bonus, FACET_BONUS_CAP)

    macros = sum(
        value is not None
        for value in (
            result.calories_per_100g,
            result.protein_per_100g,
            result.carbs_per_100g,
            result.fat_per_100g,
        )
    )
    score = (
        similarity * SIMILARITY_WEIGHT
        + SOURCE_BONUS[source]
        + facet_bonus
        + macros * MACRO_BONUS
    )
    confidence = max(0.0, min(score / 100, 1.0))
    explanation = (
        f"{source.value} match, similarity {similarity:.2f}, "
        f"facets +{facet_bonus:g}, {macros}/4 macros"
    )
    return CandidateScore(score=score, confidence=confidence, explanation=explanation)


def classify_item_kind(result: SearchResult) -> CandidateKind:
    """Tell generic foods from branded products."""
    if result.is_generic:
        return CandidateKind.GENERIC
    code = (result.code or "").strip()
    if result.brand or (code.isdigit() and len(code) >= _BARCODE_DIGITS):
        return CandidateKind.BRAND
    return CandidateKind.UNKNOWN


def infer_class_id(name: str, facets: ParsedFacets | None = None) -> str | None:
    """Return the portion class for a candidate name, else for the query's core."""
    class_id = class_for_name(name)
    if class_id is not None or facets is None:
        return class_id
    for token in sorted(facets.core):
        class_id = class_for_name(token)
        if class_id is not None:
            return class_id
    return None


def should_show_candidate_picker(candidates: Sequence[object] | None) -> bool:
    """Return True when the user must choose between candidates.

    Candidates are read in the given order, because the caller auto-selects
    the first one.
    """
    if not candidates:
        return False
    top = _confidence_of(candidates[0])
    if top < PICKER_MIN_CONFIDENCE:
        return True
    return len(candidates) > 1 and top - _confidence_of(candidates[1]) < PICKER_MIN_GAP


def core_noun(text: str | None) -> str:
    """Return the last word of ``text`` that is not a stop or preparation word."""
    words = re.findall(r"[a-z0-9]+", normalize_query(text))
    meaningful = [word for word in words if word not in CORE_STOP_WORDS]
    if meaningful:
        return meaningful[-1]
    return words[-1] if words else ""


def matches_core_token(query: str | None, name: str | None) -> bool:
    """Return True when ``name`` contains the query's last significant word.

    Whole words only, allowing a plural on either side.
    """
    tokens = [
        token for token in re.findall(r"[a-z0-9]+", normalize_query(query)) if len(token) > 2
    ]
    if not tokens:
        return True
    core = tokens[-1]
    pattern = re.compile(rf"(?:{re.escape(core)}|{re.escape(core[:-1])})s?")
    words = re.findall(r"[a-z0-9]+", normalize_query(name))
    return any(pattern.fullmatch(word) for word in words)


def matches_query_core(query: str | None, candidate: FoodCandidate) -> bool:
    """Return True when a candidate names the same core food as the query."""
    query_core = core_noun(query)
    name_core = core_noun(candidate.name)
    if not query_core or not name_core:
        return False
    if query_core in (name_core, f"{name_core}s") or name_core == f"{query_core}s":
        return True
    return bool(candidate.class_id and query_core in candidate.class_id)


def apply_ranking_options(
    query: str, ranked: list[FoodCandidate], options: CandidateOptions
) -> list[FoodCandidate]:
    """Filter and reorder score-sorted candidates by a ranking policy."""
    if options.require_core_token:
        ranked = [item for item in ranked if matches_core_token(query, item.name)]

    if options.prefer_generic and ranked:
        ranked = _promote_generic(query, ranked)
        if options.interleave_brands:
            generics = [item for item in ranked if item.kind is CandidateKind.GENERIC]
            others = [item for item in ranked if item.kind is not CandidateKind.GENERIC]
            ranked = generics + others[: max(options.brand_limit, 0)]

    if options.max_per_family > 0:
        counts: dict[str, int] = {}
        kept: list[FoodCandidate] = []
        for item in ranked:
            family = item.class_id or "unknown"
            if counts.get(family, 0) < options.max_per_family:
                counts[family] = counts.get(family, 0) + 1
                kept.append(item)
        ranked = kept
    return ranked


def _promote_generic(query: str, ranked: list[FoodCandidate]) -> list[FoodCandidate]:
    # A branded top result yields to a close generic runner-up of the same food.
    if len(ranked) < 2:
        return ranked
    top, second = ranked[0], ranked[1]
    if (
        top.kind is CandidateKind.BRAND
        and second.kind is CandidateKind.GENERIC
        and top.confidence - second.confidence < PICKER_MIN_GAP
        and matches_query_core(query, second)
    ):
        return [second, top, *ranked[2:]]
    return ranked


@dataclass
class CandidateSearchService:
    """Runs the search strategies and merges their scored results."""

    search: FoodSearch
    flags: FeatureFlagService
    reranker: LlmService | None = None
    lexical_limit: int = 15
    alias_limit: int = 10

    async def get_food_candidates(
        self,
        query: str | None,
        max_results: int = 6,
        facets: ParsedFacets | None = None,
        options: CandidateOptions | None = None,
    ) -> list[FoodCandidate]:
        """Return up to ``max_results`` unique candidates, best first."""
        try:
            return await self._get_food_candidates(
                query or "", max_results, facets, options or CandidateOptions()
            )
        except Exception:
            _logger.exception("candidates query=%r unexpected failure", query)
            return []

    async def _get_food_candidates(
        self,
        query: str,
        max_results: int,
        facets: ParsedFacets | None,
        options: CandidateOptions,
    ) -> list[FoodCandidate]:
        normalized = normalize_query(query)
        if not normalized or max_results <= 0:
            return []
        facets = facets or parse_facets(query)

        alias_terms = [term for term in expand_aliases(query) if term != normalized]
        alias_terms = alias_terms[:MAX_ALIAS_TERMS]
        per_term = math.ceil(self.alias_limit / len(alias_terms)) if alias_terms else 0

        lexical, *aliased = await asyncio.gather(
            attempt("candidates.lexical", lambda: self._run(query.strip(), self.lexical_limit)),
            *(
                attempt(f"candidates.alias[{term}]", lambda term=term: self._run(term, per_term))
                for term in alias_terms
            ),
        )

        merged: dict[str, FoodCandidate] = {}
        batches = [(CandidateSource.LEXICAL, lexical)]
        batches.extend((CandidateSource.ALIAS, outcome) for outcome in aliased)
        for source, outcome in batches:
            if not outcome.ok:
                continue
            for result in outcome.value or []:
                candidate = _to_candidate(query, result, source, facets)
                current = merged.get(candidate.id)
                if current is None or candidate.score > current.score:
                    merged[candidate.id] = candidate

        ranked = sorted(merged.values(), key=lambda item: (-item.score, item.id))
        ranked = apply_ranking_options(normalized, ranked, options)
        ranked = await self._maybe_rerank(query, ranked)
        _logger.info(
            "candidates query=%r lexical=%s alias_terms=%s merged=%s ranked=%s returned=%s",
            normalized,
            "ok" if lexical.ok else lexical.error,
            len(alias_terms),
            len(merged),
            len(ranked),
            min(len(ranked), max_results),
        )
        return ranked[:max_results]

    async def _run(self, term: str, limit: int) -> list[SearchResult]:
        return await self.search.search(term, max_results=limit, bypass_guard=True)

    async def _maybe_rerank(
        self, query: str, ranked: list[FoodCandidate]
    ) -> list[FoodCandidate]:
        if not ranked or self.reranker is None:
            return ranked
        flag = await attempt(
            "candidates.rerank_flag", lambda: self.flags.is_enabled(AI_RERANK_FLAG)
        )
        if not (flag.ok and flag.value):
            return ranked
        shortlist = ranked[:MAX_RERANK_CANDIDATES]
        order = await attempt(
            "candidates.rerank", lambda: self.reranker.rerank(query, shortlist)
        )
        if not order.ok or not order.value:
            return ranked

        by_id = {candidate.id: candidate for candidate in ranked}
        promoted: list[FoodCandidate] = []
        for candidate_id in order.value:
            if candidate_id in by_id and all(item.id != candidate_id for item in promoted):
                promoted.append(
                    replace(by_id[candidate_id], source=CandidateSource.RERANKED)
                )
            if len(promoted) == RERANK_PROMOTE:
                break
        promoted_ids = {candidate.id for candidate in promoted}
        return promoted + [item for item in ranked if item.id not in promoted_ids]


def _to_candidate(
    query: str,
    result: SearchResult,
    source: CandidateSource,
    facets: ParsedFacets,
) -> FoodCandidate:
    scored = score_food_candidate(query, result, source, facets)
    return FoodCandidate(
        id=result.id,
        name=result.name,
        score=scored.score,
        confidence=scored.confidence,
        source=source,
        explanation=scored.explanation,
        kind=classify_item_kind(result),
        class_id=infer_class_id(result.name, facets),
        calories=result.calories_per_100g,
        protein=result.protein_per_100g,
        carbs=result.carbs_per_100g,
        fat=result.fat_per_100g,
        image_url=result.image_url,
        serving_grams=result.serving_grams,
        serving_text=result.serving_text,
    )


def _confidence_of(candidate: object) -> float:
    value = (
        candidate.get("confidence")
        if isinstance(candidate, Mapping)
        else getattr(candidate, "confidence", None)
    )
    if isinstance(value, bool) or not isinstance(value, int | float):
        return 0.0
    return float(value) if math.isfinite(value) else 0.0
