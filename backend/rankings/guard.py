"""Ranking invalidation guard.

Structural edits (dimensions, indicators, weights) change what an existing
ranking would compute. Normal calls are refused while a ranking exists for
an affected year; the ``force`` variants go through and only log.
"""
import logging
from typing import Iterable, List

from .exceptions import Conflict
from .models import Rank

logger = logging.getLogger(__name__)

RANKING_EXISTS_WARNING = "RANKING_EXISTS_WARNING:"


def years_with_rankings(years: Iterable[int]) -> List[int]:
    """Return the subset of ``years`` that already have Rank rows, sorted."""
    wanted = {int(y) for y in years if y is not None}
    if not wanted:
        return []
    found = Rank.objects.filter(year__in=wanted).values_list("year", flat=True).distinct()
    return sorted(set(found))


def ranking_exists(year: int) -> bool:
    return Rank.objects.filter(year=year).exists()


def ensure_no_ranking(years: Iterable[int], action: str, force: bool = False) -> None:
    """Refuse ``action`` if a ranking exists for any of ``years``.

    With ``force`` the check still runs so the stale years are logged.
    """
    ranked = years_with_rankings(years)
    if not ranked:
        return
    years_list = ", ".join(str(y) for y in ranked)
    if force:
        logger.warning(
            "Forced %s although rankings exist for %s; those rankings may now be stale",
            action, years_list,
        )
        return
    raise Conflict(
        f"{RANKING_EXISTS_WARNING}{action} would invalidate existing rankings for {years_list}."
    )
