"""Aggregation engine: dimension scores, final scores and skip-style ranks.

For one country and year::

    dimension_score = sum(score_i * w_i) / sum(w_i)      over the dimension's indicator weights
    final_score     = sum(dim_d * W_d) / sum(W_d)          over the year's dimension weights

Indicators without a submitted score count as 0 (a zero Score row is
persisted), so missing data lowers the result instead of being ignored.

Ranks order final scores descending. A score within ``TIE_EPSILON`` of the
previous one shares its rank, and the next distinct score takes its
1-based position: 90, 85, 85, 80 -> 1, 2, 2, 4.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from django.db import transaction

from .exceptions import BadRequest, Conflict, Internal, NotFound
from .models import Country, DimensionScore, Rank, Score
from .scores import countries_with_scores, find_score, round_half_up, save_score
from .weights import dimension_weights_for_year, indicator_weights_for

logger = logging.getLogger(__name__)

TIE_EPSILON = 1e-7


@dataclass
class SkippedCountry:
    country: Country
    kind: str
    reason: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "country_id": self.country.id,
            "country": self.country.name,
            "kind": self.kind,
            "reason": self.reason,
        }


@dataclass
class RankingRun:
    """Outcome of a generation pass: every ranked country of the year and the countries skipped."""
    year: int
    ranks: List[Rank] = field(default_factory=list)
    skipped: List[SkippedCountry] = field(default_factory=list)


def calculate_dimension_scores_for_country(year: int, country: Country) -> List[DimensionScore]:
    """Compute and persist one DimensionScore per dimension weighted for ``year``."""
    dimension_weights = dimension_weights_for_year(year)
    if not dimension_weights:
        raise NotFound(f"No dimensions weighted for {year}.")

    created = []
    for dimension_weight in dimension_weights:
        dimension = dimension_weight.dimension
        if DimensionScore.objects.filter(country=country, dimension=dimension, year=year).exists():
            raise Conflict(
                f"Dimension score for '{dimension.name}' already exists for {country.name} in {year}."
            )

        indicator_weights = indicator_weights_for(dimension.id, year)
        if not indicator_weights:
            raise NotFound(f"Dimension '{dimension.name}' has no indicators for {year}.")

        weighted_sum = 0.0
        weight_sum = 0
        for indicator_weight in indicator_weights:
            score = find_score(country.id, indicator_weight.indicator_id, year)
            if score is None:
                score = save_score(Score(
                    country=country, indicator=indicator_weight.indicator, year=year, score=0.0,
                ))
                logger.debug(
                    "No score for %s / %s in %s, stored 0",
                    country.name, indicator_weight.indicator.name, year,
                )
            weighted_sum += score.score * indicator_weight.weight
            weight_sum += indicator_weight.weight

        if weight_sum <= 0:
            raise BadRequest(f"Indicator weights of '{dimension.name}' sum to 0 for {year}.")

        created.append(DimensionScore.objects.create(
            country=country,
            dimension=dimension,
            year=year,
            score=round_half_up(weighted_sum / weight_sum, 2),
        ))
    return created


def calculate_final_score_for_country(year: int, country: Country) -> Rank:
    """Compute the dimension scores, then the final weighted score of ``country``.

    The returned Rank carries a placeholder rank; ``generate_ranking``
    assigns the real ordinals once every country is scored.
    """
    calculate_dimension_scores_for_country(year, country)

    final_sum = 0.0
    weight_sum = 0
    for dimension_weight in dimension_weights_for_year(year):
        dimension_score = DimensionScore.objects.filter(
            country=country, dimension_id=dimension_weight.dimension_id, year=year,
        ).first()
        if dimension_score is None:
            raise Internal(
                f"Dimension score for '{dimension_weight.dimension.name}' is missing "
                f"for {country.name} in {year}."
            )
        final_sum += dimension_score.score * dimension_weight.weight
        weight_sum += dimension_weight.weight

    if Rank.objects.filter(country=country, year=year).exists():
        raise Conflict(f"Ranking already exists for {country.name} in {year}.")
    if weight_sum <= 0:
        raise BadRequest(f"Dimension weights sum to 0 for {year}.")

    return Rank.objects.create(country=country, year=year, final_score=final_sum / weight_sum, rank=1)


def generate_final_scores(year: int) -> RankingRun:
    """Score every country that has data for ``year``.

    A country failing with NotFound/Conflict/BadRequest is rolled back to
    its savepoint, logged and reported in ``skipped``; the loop goes on.
    Internal errors abort the whole run.
    """
    if not dimension_weights_for_year(year):
        raise NotFound(f"No dimensions weighted for {year}.")

    run = RankingRun(year=year)
    for country in countries_with_scores(year):
        try:
            with transaction.atomic():
                run.ranks.append(calculate_final_score_for_country(year, country))
        except (NotFound, Conflict, BadRequest) as exc:
            logger.warning("Skipped %s for %s: %s", country.name, year, exc)
            run.skipped.append(SkippedCountry(country=country, kind=exc.kind, reason=exc.message))
    return run


def assign_ranks(ranks: Sequence[Rank]) -> List[Rank]:
    """Sort by final score (descending) and set skip-style ordinals in place."""
    ordered = sorted(ranks, key=lambda r: (-r.final_score, r.country.name))
    last_score = None
    last_position = 0
    for position, rank in enumerate(ordered, start=1):
        if last_score is not None and abs(rank.final_score - last_score) < TIE_EPSILON:
            rank.rank = last_position
        else:
            rank.rank = position
            last_position = position
        last_score = rank.final_score
    return ordered


def generate_ranking(year: int) -> RankingRun:
    """Compute final scores for every eligible country of ``year``, then rank the whole year.

    Ordinals are reassigned over all Rank rows of the year, including
    countries scored by an earlier run and skipped by this one.
    """
    with transaction.atomic():
        run = generate_final_scores(year)
        run.ranks = assign_ranks(list(Rank.objects.select_related("country").filter(year=year)))
        Rank.objects.bulk_update(run.ranks, ["rank"])

    logger.info(
        "Generated ranking for %s: %d countries ranked, %d skipped",
        year, len(run.ranks), len(run.skipped),
    )
    return run


def delete_ranking_by_year(year: int) -> Dict[str, int]:
    """Delete the ranking of ``year`` and its dimension scores, all or nothing."""
    with transaction.atomic():
        if not Rank.objects.filter(year=year).exists():
            raise NotFound(f"No ranking exists for {year}.")
        ranks_deleted, _ = Rank.objects.filter(year=year).delete()
        scores_deleted, _ = DimensionScore.objects.filter(year=year).delete()

    logger.info("Deleted ranking for %s (%d ranks, %d dimension scores)", year, ranks_deleted, scores_deleted)
    return {"ranks": ranks_deleted, "dimension_scores": scores_deleted}


def year_ranking(year: int) -> List[Rank]:
    return list(
        Rank.objects.select_related("country").filter(year=year).order_by("rank", "country__name")
    )


def years_with_ranking() -> List[int]:
    return sorted(set(Rank.objects.values_list("year", flat=True)), reverse=True)
