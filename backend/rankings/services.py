import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from django.db import transaction

from .aggregation import RankingRun, delete_ranking_by_year, generate_ranking
from .exceptions import BadRequest, Conflict, NotFound
from .guard import ranking_exists
from .models import Country, Indicator, Score
from .scores import (
    add_score,
    delete_score_row,
    find_score,
    get_score,
    save_score,
    update_score,
    validate_score_value,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreRow:
    """One (country, indicator, score) triple as returned by the normalization service."""
    country_code: str
    indicator_id: int
    score: float
    country_name: Optional[str] = None


def regenerate_ranking(year: int) -> Optional[RankingRun]:
    """Rebuild the ranking of ``year`` if one exists; return None otherwise."""
    if not ranking_exists(year):
        return None
    logger.info("Scores for %s changed, regenerating its ranking", year)
    delete_ranking_by_year(year)
    return generate_ranking(year)


def add_or_update_score(country_id: int, indicator_id: int, year: int, score) -> Score:
    """Insert or overwrite a score, then refresh the year's ranking if there is one."""
    with transaction.atomic():
        if find_score(country_id, indicator_id, year) is None:
            saved = add_score(country_id, indicator_id, year, score)
        else:
            saved = update_score(country_id, indicator_id, year, score)
        regenerate_ranking(year)
    return saved


def edit_score(score_id: int, score) -> Score:
    with transaction.atomic():
        existing = get_score(score_id)
        existing.score = validate_score_value(score)
        saved = save_score(existing)
        regenerate_ranking(saved.year)
    return saved


def delete_score(score_id: int) -> Score:
    with transaction.atomic():
        deleted = delete_score_row(score_id)
        regenerate_ranking(deleted.year)
    return deleted


def import_validated_scores(year: int, rows: Iterable[ScoreRow]) -> List[Score]:
    """Insert a batch of scores for ``year``.

    The batch is refused as a whole if any (country, indicator) pair
    already has a score for the year; delete the old scores first.
    """
    rows = list(rows)
    if not rows:
        raise BadRequest("No scores to import.")

    resolved = []
    existing_names = []
    countries: Dict[str, Country] = {}
    indicators: Dict[int, Indicator] = {}
    for row in rows:
        code = row.country_code.strip().upper()
        if code not in countries:
            country = Country.objects.filter(code=code).first()
            if country is None:
                raise NotFound(f"Country with code '{code}' not found.")
            countries[code] = country
        if row.indicator_id not in indicators:
            indicator = Indicator.objects.filter(pk=row.indicator_id).first()
            if indicator is None:
                raise NotFound(f"Indicator {row.indicator_id} not found.")
            indicators[row.indicator_id] = indicator
        country, indicator = countries[code], indicators[row.indicator_id]
        if any(c.id == country.id and i.id == indicator.id for c, i, _ in resolved):
            raise BadRequest(f"Duplicate score for {country.name} / {indicator.name} in the batch.")
        if find_score(country.id, indicator.id, year) is not None:
            existing_names.append(country.name)
        resolved.append((country, indicator, validate_score_value(row.score)))

    if existing_names:
        raise Conflict(
            "These countries already have scores for the selected year and indicator; "
            f"delete the old scores before importing: {', '.join(sorted(set(existing_names)))}"
        )

    with transaction.atomic():
        saved = [
            save_score(Score(country=country, indicator=indicator, year=year, score=value))
            for country, indicator, value in resolved
        ]
    logger.info("Imported %d scores for %s", len(saved), year)
    return saved
