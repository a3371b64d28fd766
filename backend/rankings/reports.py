import logging
import math
from typing import Any, Dict, List

import numpy as np
import pandas as pd

from .models import Dimension, DimensionScore, Rank, Score
from .weights import WEIGHT_TOTAL, find_dimension_weight, get_indicator_weight_total, get_year_weight_total

logger = logging.getLogger(__name__)

# Indicator weight sums within this many points of 100 are accepted
WEIGHT_SUM_TOLERANCE = 1


def _json_sanitize_records(df: pd.DataFrame) -> List[Dict]:
    """Convert a DataFrame to JSON-serializable records by replacing NaN/NA/inf with None."""
    df = df.astype(object)
    df = df.replace({np.inf: None, -np.inf: None})
    df = df.where(pd.notna(df), None)

    records: List[Dict] = df.to_dict(orient="records")
    for rec in records:
        for k, v in rec.items():
            if isinstance(v, float) and (math.isnan(v) or math.isinf(v)):
                rec[k] = None
    return records


def ranking_table(year: int) -> List[Dict[str, Any]]:
    """One record per ranked country: rank, final score and each dimension score.

    Dimension columns are keyed by dimension name; countries without a
    score in a dimension get None there.
    """
    ranks = list(
        Rank.objects.filter(year=year).values(
            "rank", "final_score", "country__code", "country__name",
        )
    )
    if not ranks:
        return []
    table = pd.DataFrame(ranks).rename(columns={
        "country__code": "code",
        "country__name": "country",
    })
    table["final_score"] = table["final_score"].round(2)

    dim_scores = pd.DataFrame(list(
        DimensionScore.objects.filter(year=year).values("country__code", "dimension__name", "score")
    ))
    if not dim_scores.empty:
        pivot = dim_scores.pivot_table(
            index="country__code", columns="dimension__name", values="score", aggfunc="first",
        )
        pivot.columns = [str(c) for c in pivot.columns]
        table = table.merge(pivot, left_on="code", right_index=True, how="left")

    table = table.sort_values(["rank", "country"]).reset_index(drop=True)
    return _json_sanitize_records(table)


def weight_validation_report(year: int) -> Dict[str, Any]:
    """Check whether the weights of ``year`` allow generating a ranking.

    Each dimension of the year needs a weight and indicator weights summing
    to 100 (within one point); the dimension weights must also sum to 100.
    """
    dimensions = list(Dimension.objects.filter(year=year))
    problems: List[str] = []
    dimension_status: Dict[int, Dict[str, Any]] = {}

    for dimension in dimensions:
        status: Dict[str, Any] = {"dimension": dimension.name, "is_valid": True}
        if find_dimension_weight(dimension.id, year) is None:
            status.update(is_valid=False, error="missing dimension weight")
        else:
            indicator_total = get_indicator_weight_total(dimension.id, year)
            status["indicator_weight_total"] = indicator_total
            if indicator_total == 0:
                status.update(is_valid=False, error="no indicator weights")
            elif abs(indicator_total - WEIGHT_TOTAL) > WEIGHT_SUM_TOLERANCE:
                status.update(is_valid=False, error=f"indicator weights sum to {indicator_total}%")
        if not status["is_valid"]:
            problems.append(f"{dimension.name}: {status['error']}")
        dimension_status[dimension.id] = status

    dimension_total = get_year_weight_total(year)
    if not dimensions:
        problems.append(f"no dimensions for {year}")
    elif abs(dimension_total - WEIGHT_TOTAL) > WEIGHT_SUM_TOLERANCE:
        problems.append(f"dimension weights sum to {dimension_total}%")

    score_count = Score.objects.filter(year=year).count()
    report = {
        "year": year,
        "can_generate_ranking": not problems,
        "problems": problems,
        "dimension_status": dimension_status,
        "dimension_weight_total": dimension_total,
        "score_count": score_count,
    }
    logger.debug("Weight validation for %s: %s", year, report)
    return report
