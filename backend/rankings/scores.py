"""Score store: raw per-country, per-indicator, per-year values."""
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from django.db import IntegrityError, transaction

from .exceptions import BadRequest, Conflict, NotFound
from .models import Country, Indicator, Score

logger = logging.getLogger(__name__)

SCORE_MIN = 0.0
SCORE_MAX = 100.0


def round_half_up(value: float, places: int = 2) -> float:
    """Round half away from zero on the decimal form of ``value`` (2.345 -> 2.35)."""
    if places < 0:
        raise ValueError("places must be >= 0")
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def validate_score_value(score) -> float:
    try:
        value = float(score)
    except (TypeError, ValueError):
        raise BadRequest(f"Score must be a number between {SCORE_MIN:g} and {SCORE_MAX:g}.")
    if value != value or value < SCORE_MIN or value > SCORE_MAX:
        raise BadRequest(f"Score must be between {SCORE_MIN:g} and {SCORE_MAX:g}, got {score}.")
    return value


def save_score(score: Score) -> Score:
    score.score = round_half_up(score.score, 2)
    score.save()
    return score


def find_score(country_id: int, indicator_id: int, year: int) -> Optional[Score]:
    return Score.objects.filter(country_id=country_id, indicator_id=indicator_id, year=year).first()


def get_score(score_id: int) -> Score:
    score = Score.objects.select_related("country", "indicator").filter(pk=score_id).first()
    if score is None:
        raise NotFound(f"Score {score_id} not found.")
    return score


def scores_for_year(year: int) -> List[Score]:
    return list(
        Score.objects.select_related("country", "indicator")
        .filter(year=year)
        .order_by("country__name", "indicator_id")
    )


def countries_with_scores(year: int) -> List[Country]:
    """Countries holding at least one Score for ``year``; the others are not ranked."""
    return list(Country.objects.filter(score__year=year).distinct().order_by("name"))


def _get_refs(country_id: int, indicator_id: int):
    country = Country.objects.filter(pk=country_id).first()
    if country is None:
        raise NotFound(f"Country {country_id} not found.")
    indicator = Indicator.objects.filter(pk=indicator_id).first()
    if indicator is None:
        raise NotFound(f"Indicator {indicator_id} not found.")
    return country, indicator


def add_score(country_id: int, indicator_id: int, year: int, score, raw_value=None) -> Score:
    value = validate_score_value(score)
    country, indicator = _get_refs(country_id, indicator_id)
    if find_score(country.id, indicator.id, year) is not None:
        raise Conflict(
            f"A score already exists for {country.name} / {indicator.name} in {year}."
        )
    try:
        with transaction.atomic():
            return save_score(Score(
                country=country, indicator=indicator, year=year, score=value, raw_value=raw_value,
            ))
    except IntegrityError as exc:
        # Lost a race with a concurrent insert of the same key
        raise Conflict(
            f"A score already exists for {country.name} / {indicator.name} in {year}."
        ) from exc


def update_score(country_id: int, indicator_id: int, year: int, score) -> Score:
    value = validate_score_value(score)
    existing = find_score(country_id, indicator_id, year)
    if existing is None:
        raise NotFound(f"No score for country {country_id}, indicator {indicator_id} in {year}.")
    existing.score = value
    return save_score(existing)


def delete_score_row(score_id: int) -> Score:
    score = get_score(score_id)
    Score.objects.filter(pk=score_id).delete()
    logger.info("Deleted score %s (%s / %s / %s)", score_id, score.country_id, score.indicator_id, score.year)
    return score
