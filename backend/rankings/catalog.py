"""Country, dimension and indicator management.

Every structural mutation goes through the ranking guard. Deletes spell
out their cascade explicitly since the catalog foreign keys are PROTECT:

- indicator: indicator weights, scores, then the indicator
- dimension: its indicators (as above), its dimension scores, its
  dimension weights, then the dimension
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from django.db import IntegrityError, transaction

from .exceptions import BadRequest, Conflict, NotFound
from .guard import ensure_no_ranking
from .models import (
    Country,
    Dimension,
    DimensionScore,
    DimensionWeight,
    Indicator,
    IndicatorWeight,
    Score,
)
from .weights import (
    find_dimension_weight,
    save_dimension_weight,
    save_indicator_weight,
    validate_dimension_weight_limit,
    validate_indicator_weight_limit,
    validate_percent,
)

logger = logging.getLogger(__name__)

EARLIEST_DEFAULT_YEAR = 2020


# =========================
# Countries
# =========================

def list_countries() -> List[Country]:
    return list(Country.objects.all())


def get_country(country_id: int) -> Country:
    country = Country.objects.filter(pk=country_id).first()
    if country is None:
        raise NotFound(f"Country {country_id} not found.")
    return country


def add_country(code: str, name: str) -> Country:
    code = (code or "").strip().upper()
    name = (name or "").strip()
    if len(code) != 3 or not name:
        raise BadRequest("A country needs a 3-letter ISO code and a name.")
    if Country.objects.filter(code=code).exists() or Country.objects.filter(name=name).exists():
        raise Conflict(f"Country '{name}' ({code}) already exists.")
    return Country.objects.create(code=code, name=name)


def add_countries(records: Iterable[Dict[str, str]]) -> List[Country]:
    """Add several countries at once; any duplicate rejects the whole batch."""
    with transaction.atomic():
        return [add_country(r.get("code"), r.get("name")) for r in records]


# =========================
# Dimensions
# =========================

def get_dimension(dimension_id: int) -> Dimension:
    dimension = Dimension.objects.filter(pk=dimension_id).first()
    if dimension is None:
        raise NotFound(f"Dimension {dimension_id} not found.")
    return dimension


def _dimension_years(dimension: Dimension) -> List[int]:
    years = set(DimensionWeight.objects.filter(dimension=dimension).values_list("year", flat=True))
    years.add(dimension.year)
    return sorted(years)


def create_dimension(
    name: str,
    description: str,
    year: int,
    weight,
    display_order: int = 0,
    force: bool = False,
) -> Dimension:
    weight = validate_percent(weight)
    if Dimension.objects.filter(name=name, year=year).exists():
        raise Conflict(f"A dimension named '{name}' already exists for {year}.")

    with transaction.atomic():
        ensure_no_ranking([year], f"Adding dimension '{name}'", force)
        validate_dimension_weight_limit(year, weight)
        try:
            dimension = Dimension.objects.create(
                name=name, description=description or "", year=year, display_order=display_order,
            )
        except IntegrityError as exc:
            raise Conflict(f"A dimension named '{name}' already exists for {year}.") from exc
        save_dimension_weight(dimension, year, weight)

    logger.info("Created dimension '%s' for %s with weight %d%%", name, year, weight)
    return dimension


def update_dimension(
    dimension_id: int,
    name: str,
    description: str,
    year: int,
    weight,
    display_order: Optional[int] = None,
    force: bool = False,
) -> Dimension:
    """Update a dimension and its weight for ``year``.

    The ranking guard only applies when the year or the weight changes.
    ``display_order`` is left as is when None.
    """
    weight = validate_percent(weight)
    with transaction.atomic():
        dimension = get_dimension(dimension_id)
        current = find_dimension_weight(dimension.id, year)
        year_changed = dimension.year != year
        weight_changed = current is None or current.weight != weight
        if year_changed or weight_changed:
            ensure_no_ranking(
                _dimension_years(dimension) + [year], f"Updating dimension '{dimension.name}'", force,
            )
            validate_dimension_weight_limit(year, weight, exclude_dimension_id=dimension.id)

        clash = Dimension.objects.filter(name=name, year=year).exclude(pk=dimension.id)
        if clash.exists():
            raise Conflict(f"A dimension named '{name}' already exists for {year}.")

        dimension.name = name
        dimension.description = description or ""
        dimension.year = year
        if display_order is not None:
            dimension.display_order = display_order
        dimension.save()
        save_dimension_weight(dimension, year, weight)

    logger.info("Updated dimension %s ('%s', %s, %d%%)", dimension.id, name, year, weight)
    return dimension


def _cascade_delete_indicator(indicator: Indicator) -> None:
    IndicatorWeight.objects.filter(indicator=indicator).delete()
    Score.objects.filter(indicator=indicator).delete()
    indicator.delete()


def _cascade_delete_dimension(dimension: Dimension) -> None:
    for indicator in Indicator.objects.filter(dimension=dimension):
        _cascade_delete_indicator(indicator)
    # Weights of other dimensions' indicators can still point at this dimension's weight rows
    IndicatorWeight.objects.filter(dimension_weight__dimension=dimension).delete()
    DimensionScore.objects.filter(dimension=dimension).delete()
    DimensionWeight.objects.filter(dimension=dimension).delete()
    dimension.delete()


def delete_dimension(dimension_id: int, force: bool = False) -> None:
    with transaction.atomic():
        dimension = get_dimension(dimension_id)
        ensure_no_ranking(_dimension_years(dimension), f"Deleting dimension '{dimension.name}'", force)
        _cascade_delete_dimension(dimension)
    logger.info("Deleted dimension '%s' (ID: %s)", dimension.name, dimension_id)


def bulk_delete_dimensions(dimension_ids: Iterable[int], force: bool = False) -> int:
    """Delete several dimensions; all are checked before any is removed."""
    with transaction.atomic():
        dimensions = [get_dimension(i) for i in dimension_ids]
        years = sorted({y for d in dimensions for y in _dimension_years(d)})
        ensure_no_ranking(years, f"Deleting {len(dimensions)} dimensions", force)
        for dimension in dimensions:
            _cascade_delete_dimension(dimension)
    logger.info("Deleted %d dimensions", len(dimensions))
    return len(dimensions)


# =========================
# Indicators
# =========================

def get_indicator(indicator_id: int) -> Indicator:
    indicator = Indicator.objects.select_related("dimension").filter(pk=indicator_id).first()
    if indicator is None:
        raise NotFound(f"Indicator {indicator_id} not found.")
    return indicator


def _indicator_years(indicator: Indicator) -> List[int]:
    return sorted(set(
        IndicatorWeight.objects.filter(indicator=indicator).values_list("dimension_weight__year", flat=True)
    ))


def _require_dimension_weight(dimension_id: int, year: int) -> DimensionWeight:
    dimension_weight = find_dimension_weight(dimension_id, year)
    if dimension_weight is None:
        raise BadRequest(f"No dimension weight for {year}. Create the dimension for this year first.")
    return dimension_weight


def create_indicator(
    name: str,
    description: str,
    dimension_id: int,
    year: int,
    weight,
    normalization_type: Optional[str] = None,
    force: bool = False,
) -> Indicator:
    """Create an indicator, or attach a new year to an existing one of the same name.

    An indicator named ``name`` already in the same dimension gets a new
    weight row for ``year`` instead of a duplicate row.
    """
    weight = validate_percent(weight)
    with transaction.atomic():
        dimension = get_dimension(dimension_id)
        indicator = Indicator.objects.filter(name=name, dimension=dimension).order_by("id").first()
        if indicator is not None and year in _indicator_years(indicator):
            raise BadRequest(
                f"An indicator named '{name}' already exists for this dimension and {year}."
            )

        ensure_no_ranking([year], f"Adding indicator '{name}'", force)
        validate_indicator_weight_limit(dimension.id, year, weight)
        dimension_weight = _require_dimension_weight(dimension.id, year)

        if indicator is None:
            indicator = Indicator.objects.create(
                name=name,
                description=description or "",
                dimension=dimension,
                normalization_type=normalization_type or Indicator.DEFAULT_NORMALIZATION_TYPE,
            )
            logger.info("Created indicator '%s' for %s", name, year)
        else:
            logger.info("Added %s weight to existing indicator '%s'", year, name)
        save_indicator_weight(indicator, dimension_weight, weight)
    return indicator


def update_indicator(
    indicator_id: int,
    name: str,
    description: str,
    dimension_id: int,
    year: int,
    weight,
    normalization_type: Optional[str] = None,
    force: bool = False,
) -> Indicator:
    weight = validate_percent(weight)
    with transaction.atomic():
        indicator = get_indicator(indicator_id)
        dimension = get_dimension(dimension_id)

        clash = (
            Indicator.objects.filter(name=name, dimension=dimension, indicatorweight__dimension_weight__year=year)
            .exclude(pk=indicator.id)
        )
        if clash.exists():
            raise BadRequest(
                f"An indicator named '{name}' already exists for this dimension and {year}."
            )

        current = IndicatorWeight.objects.filter(indicator=indicator, dimension_weight__year=year).first()
        moved = indicator.dimension_id != dimension.id
        if moved or current is None or current.weight != weight:
            ensure_no_ranking(
                _indicator_years(indicator) + [year], f"Updating indicator '{indicator.name}'", force,
            )
            validate_indicator_weight_limit(dimension.id, year, weight, exclude_indicator_id=indicator.id)

        dimension_weight = _require_dimension_weight(dimension.id, year)
        if current is not None and current.dimension_weight_id != dimension_weight.id:
            current.delete()

        indicator.name = name
        indicator.description = description or ""
        indicator.dimension = dimension
        if normalization_type:
            indicator.normalization_type = normalization_type
        indicator.save()
        save_indicator_weight(indicator, dimension_weight, weight)

    logger.info("Updated indicator %s ('%s', %s, %d%%)", indicator.id, name, year, weight)
    return indicator


def delete_indicator(indicator_id: int, force: bool = False) -> None:
    with transaction.atomic():
        indicator = get_indicator(indicator_id)
        ensure_no_ranking(_indicator_years(indicator), f"Deleting indicator '{indicator.name}'", force)
        _cascade_delete_indicator(indicator)
    logger.info("Deleted indicator '%s' (ID: %s)", indicator.name, indicator_id)


def bulk_delete_indicators(indicator_ids: Iterable[int], force: bool = False) -> int:
    with transaction.atomic():
        indicators = [get_indicator(i) for i in indicator_ids]
        years = sorted({y for i in indicators for y in _indicator_years(i)})
        ensure_no_ranking(years, f"Deleting {len(indicators)} indicators", force)
        for indicator in indicators:
            _cascade_delete_indicator(indicator)
    logger.info("Deleted %d indicators", len(indicators))
    return len(indicators)


# =========================
# Years
# =========================

def available_years() -> List[int]:
    """Years known to the catalog, newest first.

    Falls back to indicator-weight years, then to the current year down to 2020.
    """
    years = set(Dimension.objects.values_list("year", flat=True))
    if not years:
        years = set(IndicatorWeight.objects.values_list("dimension_weight__year", flat=True))
    if not years:
        years = set(range(EARLIEST_DEFAULT_YEAR, datetime.utcnow().year + 1))
    return sorted(years, reverse=True)
