"""Weight store and weight normalizer.

All weights are integer percentages (0-100). For a fixed year the
dimension weights should sum to 100, and for a fixed (dimension, year)
the indicator weights should sum to 100. Nothing in the database enforces
those sums; the normalizer restores them on demand.
"""
import logging
import math
from typing import Callable, Dict, List, Optional, Sequence

from django.db import transaction
from django.db.models import Sum

from .conf import get_setting
from .exceptions import BadRequest, Internal, NotFound, RankingError
from .guard import ensure_no_ranking
from .models import Dimension, DimensionWeight, Indicator, IndicatorWeight

logger = logging.getLogger(__name__)

WEIGHT_TOTAL = 100


# =========================
# Pure helpers
# =========================

def largest_remainder(weights: Sequence[int], total: int = WEIGHT_TOTAL) -> List[int]:
    """Rescale integer ``weights`` so they sum to exactly ``total``.

    Each entry is scaled exactly, floored, and the missing units go to the
    entries with the largest fractional remainders. Equal remainders keep
    their original order. An empty list or a zero sum is returned as is.
    """
    values = [int(w) for w in weights]
    current = sum(values)
    if not values or current <= 0:
        return values

    exact = [w * total / current for w in values]
    floors = [math.floor(x) for x in exact]
    deficit = total - sum(floors)

    # sorted() is stable, also with reverse=True
    order = sorted(range(len(values)), key=lambda i: exact[i] - floors[i], reverse=True)
    result = list(floors)
    for i in order[:deficit]:
        result[i] += 1
    return result


def equal_split(count: int, total: int = WEIGHT_TOTAL) -> List[int]:
    """Split ``total`` into ``count`` integers; the first ``total % count`` get one more."""
    if count <= 0:
        return []
    base, remainder = divmod(total, count)
    return [base + (1 if i < remainder else 0) for i in range(count)]


def validate_percent(weight, label: str = "weight") -> int:
    if isinstance(weight, bool):
        raise BadRequest(f"{label} must be an integer between 0 and {WEIGHT_TOTAL}.")
    try:
        value = int(weight)
    except (TypeError, ValueError):
        raise BadRequest(f"{label} must be an integer between 0 and {WEIGHT_TOTAL}.")
    if value != weight and not isinstance(weight, str):
        raise BadRequest(f"{label} must be an integer between 0 and {WEIGHT_TOTAL}.")
    if value < 0 or value > WEIGHT_TOTAL:
        raise BadRequest(f"{label} must be between 0 and {WEIGHT_TOTAL}, got {value}.")
    return value


# =========================
# Store
# =========================

def find_dimension_weight(dimension_id: int, year: int) -> Optional[DimensionWeight]:
    return (
        DimensionWeight.objects.select_related("dimension")
        .filter(dimension_id=dimension_id, year=year)
        .first()
    )


def dimension_weights_for_year(year: int) -> List[DimensionWeight]:
    return list(DimensionWeight.objects.select_related("dimension").filter(year=year))


def indicator_weights_for(dimension_id: int, year: int) -> List[IndicatorWeight]:
    """Indicator weights of one (dimension, year) scope, in stored order."""
    return list(
        IndicatorWeight.objects.select_related("indicator", "dimension_weight")
        .filter(dimension_weight__dimension_id=dimension_id, dimension_weight__year=year)
        .order_by("id")
    )


def find_indicator_weight(indicator_id: int, year: int) -> Optional[IndicatorWeight]:
    return (
        IndicatorWeight.objects.select_related("dimension_weight")
        .filter(indicator_id=indicator_id, dimension_weight__year=year)
        .first()
    )


def save_dimension_weight(dimension: Dimension, year: int, weight: int) -> DimensionWeight:
    obj, _ = DimensionWeight.objects.update_or_create(
        dimension=dimension, year=year, defaults={"weight": weight},
    )
    return obj


def save_indicator_weight(
    indicator: Indicator, dimension_weight: DimensionWeight, weight: int
) -> IndicatorWeight:
    obj, _ = IndicatorWeight.objects.update_or_create(
        indicator=indicator, dimension_weight=dimension_weight, defaults={"weight": weight},
    )
    return obj


def delete_indicator_weights(dimension_id: int, year: int) -> int:
    deleted, _ = IndicatorWeight.objects.filter(
        dimension_weight__dimension_id=dimension_id, dimension_weight__year=year,
    ).delete()
    return deleted


def delete_dimension_weight(dimension_id: int, year: int, force: bool = False) -> None:
    """Delete the (dimension, year) weight together with its indicator weights."""
    with transaction.atomic():
        dimension_weight = find_dimension_weight(dimension_id, year)
        if dimension_weight is None:
            raise NotFound(f"No weight for dimension {dimension_id} in {year}.")
        ensure_no_ranking([year], f"Removing the weight of dimension '{dimension_weight.dimension.name}'", force)
        removed = delete_indicator_weights(dimension_id, year)
        dimension_weight.delete()
    logger.info(
        "Deleted weight of dimension %s for %s (%d indicator weights removed)",
        dimension_id, year, removed,
    )


# =========================
# Totals and limit checks
# =========================

def get_indicator_weight_total(
    dimension_id: int, year: int, exclude_indicator_id: Optional[int] = None
) -> int:
    qs = IndicatorWeight.objects.filter(
        dimension_weight__dimension_id=dimension_id, dimension_weight__year=year,
    )
    if exclude_indicator_id is not None:
        qs = qs.exclude(indicator_id=exclude_indicator_id)
    return qs.aggregate(total=Sum("weight"))["total"] or 0


def get_year_weight_total(year: int, exclude_dimension_id: Optional[int] = None) -> int:
    qs = DimensionWeight.objects.filter(year=year)
    if exclude_dimension_id is not None:
        qs = qs.exclude(dimension_id=exclude_dimension_id)
    return qs.aggregate(total=Sum("weight"))["total"] or 0


def get_dimension_weight_total(dimension_id: int, year: int) -> Dict[str, int]:
    """Indicator weight total of a dimension/year and the headroom left before 100%."""
    current = get_indicator_weight_total(dimension_id, year)
    return {"current_total": current, "remaining": max(0, WEIGHT_TOTAL - current)}


def _check_weight_limit(current_total: Callable[[], int], new_weight: int, scope: str) -> None:
    # Unexpected failures let the write through unless strict validation is on.
    try:
        with transaction.atomic():
            total = current_total()
        proposed = total + int(new_weight or 0)
        if proposed > WEIGHT_TOTAL:
            raise BadRequest(
                f"Total weight for {scope} cannot exceed {WEIGHT_TOTAL}%. "
                f"Current total: {total}%, maximum allowed: {WEIGHT_TOTAL - total}%."
            )
    except RankingError:
        raise
    except Exception as exc:
        if get_setting("STRICT_WEIGHT_VALIDATION"):
            raise Internal(f"Weight validation failed for {scope}: {exc}") from exc
        logger.exception("Weight validation failed for %s, allowing the write to proceed", scope)


def validate_indicator_weight_limit(
    dimension_id: int, year: int, new_weight: int, exclude_indicator_id: Optional[int] = None
) -> None:
    _check_weight_limit(
        lambda: get_indicator_weight_total(dimension_id, year, exclude_indicator_id),
        new_weight,
        f"dimension {dimension_id} in {year}",
    )


def validate_dimension_weight_limit(
    year: int, new_weight: int, exclude_dimension_id: Optional[int] = None
) -> None:
    _check_weight_limit(
        lambda: get_year_weight_total(year, exclude_dimension_id),
        new_weight,
        f"dimensions of {year}",
    )


# =========================
# Add / update
# =========================

def add_or_update_dimension_weight(
    dimension_id: int, year: int, weight, force: bool = False
) -> DimensionWeight:
    weight = validate_percent(weight)
    dimension = Dimension.objects.filter(pk=dimension_id).first()
    if dimension is None:
        raise NotFound(f"Dimension {dimension_id} not found.")

    with transaction.atomic():
        existing = find_dimension_weight(dimension_id, year)
        if existing is not None and existing.weight == weight:
            return existing
        ensure_no_ranking([year], f"Changing the weight of dimension '{dimension.name}'", force)
        validate_dimension_weight_limit(year, weight, exclude_dimension_id=dimension.id)
        saved = save_dimension_weight(dimension, year, weight)

    logger.info("Dimension '%s' weight for %s set to %d%%", dimension.name, year, weight)
    return saved


def add_or_update_indicator_weight(
    indicator_id: int, dimension_id: int, year: int, weight, force: bool = False
) -> IndicatorWeight:
    weight = validate_percent(weight)
    indicator = Indicator.objects.filter(pk=indicator_id).first()
    if indicator is None:
        raise NotFound(f"Indicator {indicator_id} not found.")
    if indicator.dimension_id != dimension_id:
        raise BadRequest(
            f"Indicator '{indicator.name}' does not belong to dimension {dimension_id}."
        )

    with transaction.atomic():
        dimension_weight = find_dimension_weight(dimension_id, year)
        if dimension_weight is None:
            raise BadRequest(
                f"No dimension weight for {year}. Create the dimension for this year first."
            )
        existing = IndicatorWeight.objects.filter(
            indicator=indicator, dimension_weight=dimension_weight,
        ).first()
        if existing is not None and existing.weight == weight:
            return existing
        ensure_no_ranking([year], f"Changing the weight of indicator '{indicator.name}'", force)
        validate_indicator_weight_limit(dimension_id, year, weight, exclude_indicator_id=indicator.id)
        saved = save_indicator_weight(indicator, dimension_weight, weight)

    logger.info("Indicator '%s' weight for %s set to %d%%", indicator.name, year, weight)
    return saved


# =========================
# Normalization
# =========================

def _normalize_rows(rows, scope: str, year: int, force: bool):
    if not rows:
        logger.warning("No weights found for %s - nothing to normalize", scope)
        return rows
    total = sum(r.weight for r in rows)
    if total <= 0:
        logger.warning("Total weight is 0 for %s - cannot normalize", scope)
        return rows

    normalized = largest_remainder([r.weight for r in rows])
    changed = []
    for row, value in zip(rows, normalized):
        if row.weight != value:
            row.weight = value
            changed.append(row)
    if not changed:
        return rows

    ensure_no_ranking([year], f"Normalizing weights of {scope}", force)
    type(rows[0]).objects.bulk_update(changed, ["weight"])
    logger.info("Normalized weights for %s (total was %d%% -> %d%%)", scope, total, sum(normalized))
    return rows


def normalize_indicator_weights(dimension_id: int, year: int, force: bool = False) -> List[IndicatorWeight]:
    """Rescale the indicator weights of one dimension/year to sum to 100."""
    with transaction.atomic():
        # Row locks serialize concurrent normalizations of the same scope
        rows = list(
            IndicatorWeight.objects.select_for_update(of=("self",))
            .filter(dimension_weight__dimension_id=dimension_id, dimension_weight__year=year)
            .order_by("id")
        )
        return _normalize_rows(rows, f"dimension {dimension_id} year {year}", year, force)


def normalize_dimension_weights(year: int, force: bool = False) -> List[DimensionWeight]:
    """Rescale all dimension weights of a year to sum to 100."""
    with transaction.atomic():
        rows = list(
            DimensionWeight.objects.select_for_update(of=("self",))
            .filter(year=year)
            .order_by("dimension__display_order", "dimension_id")
        )
        return _normalize_rows(rows, f"dimensions of {year}", year, force)


def normalize_all_weights(force: bool = False) -> Dict[str, int]:
    """Normalize every year's dimension weights and every dimension/year indicator scope."""
    with transaction.atomic():
        years = sorted(set(DimensionWeight.objects.values_list("year", flat=True)))
        for year in years:
            normalize_dimension_weights(year, force=force)

        scopes = sorted(set(
            IndicatorWeight.objects.values_list(
                "dimension_weight__dimension_id", "dimension_weight__year",
            )
        ))
        for dimension_id, year in scopes:
            normalize_indicator_weights(dimension_id, year, force=force)

    logger.info("Normalized %d years and %d indicator scopes", len(years), len(scopes))
    return {"years": len(years), "indicator_scopes": len(scopes)}


def set_equal_indicator_weights(dimension_id: int, year: int, force: bool = False) -> List[IndicatorWeight]:
    """Give every indicator of a dimension/year the same share of 100.

    Indicators that already have a weight for the year are redistributed;
    otherwise all indicators of the dimension get an initial weight.
    """
    with transaction.atomic():
        dimension_weight = find_dimension_weight(dimension_id, year)
        if dimension_weight is None:
            raise NotFound(f"No weight for dimension {dimension_id} in {year}.")

        existing = indicator_weights_for(dimension_id, year)
        if existing:
            indicators = []
            for row in existing:
                if row.indicator not in indicators:
                    indicators.append(row.indicator)
        else:
            indicators = list(Indicator.objects.filter(dimension_id=dimension_id).order_by("id"))
            if not indicators:
                raise NotFound(f"No indicators for dimension {dimension_id}.")

        ensure_no_ranking([year], f"Resetting indicator weights of dimension {dimension_id}", force)
        delete_indicator_weights(dimension_id, year)
        created = IndicatorWeight.objects.bulk_create([
            IndicatorWeight(indicator=indicator, dimension_weight=dimension_weight, weight=value)
            for indicator, value in zip(indicators, equal_split(len(indicators)))
        ])

    logger.info("Set equal weights for %d indicators of dimension %s in %s", len(created), dimension_id, year)
    return created


def set_equal_dimension_weights(year: int, force: bool = False) -> List[DimensionWeight]:
    """Give every dimension of a year the same share of 100."""
    with transaction.atomic():
        dimensions = [dw.dimension for dw in dimension_weights_for_year(year)]
        if not dimensions:
            dimensions = list(Dimension.objects.filter(year=year))
        if not dimensions:
            raise NotFound(f"No dimensions for {year}.")

        ensure_no_ranking([year], f"Resetting dimension weights of {year}", force)
        saved = [
            save_dimension_weight(dimension, year, value)
            for dimension, value in zip(dimensions, equal_split(len(dimensions)))
        ]

    logger.info("Set equal weights for %d dimensions in %s", len(saved), year)
    return saved
