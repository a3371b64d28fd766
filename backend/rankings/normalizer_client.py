"""Client for the external column-detection / normalization service.

The service reads uploaded score files; this module only forwards the file
and turns the confirmed result into ``ScoreRow`` triples.
"""
import json
import logging
import time
from typing import Dict, List, Optional, Sequence

import pandas as pd
import requests

from .conf import get_setting
from .exceptions import BadRequest, Internal
from .models import Indicator
from .services import ScoreRow

logger = logging.getLogger(__name__)

RETRY_STATUSES = (429, 500, 502, 503, 504)
MAX_ATTEMPTS = 3
REQUIRED_COLUMNS = ["countryCode", "indicatorId", "score"]


def _post(path: str, **kwargs) -> requests.Response:
    """POST to the service with a simple retry/backoff on 429 and 5xx."""
    url = f"{str(get_setting('NORMALIZER_URL')).rstrip('/')}{path}"
    timeout = get_setting("NORMALIZER_TIMEOUT")
    resp = None
    for attempt in range(MAX_ATTEMPTS):
        try:
            resp = requests.post(url, timeout=timeout, **kwargs)
        except requests.RequestException as exc:
            logger.warning("Normalization service call to %s failed: %s", url, exc)
            raise Internal("Normalization service unavailable.") from exc
        if resp.status_code in RETRY_STATUSES and attempt < MAX_ATTEMPTS - 1:
            time.sleep(1.0 * (attempt + 1))
            continue
        break
    if resp.status_code != 200:
        logger.warning("Normalization service returned %s for %s", resp.status_code, url)
        raise Internal(f"Normalization service error ({resp.status_code}).")
    return resp


def detect_columns(file_name: str, content: bytes) -> Dict:
    """Ask the service which columns of the file hold countries and indicators."""
    resp = _post("/detect-columns", files={"file": (file_name, content)})
    try:
        return resp.json()
    except ValueError as exc:
        raise Internal("Normalization service returned invalid JSON.") from exc


def _indicator_columns(columns: Sequence[Dict[str, str]], is_normalized: bool) -> List[Dict[str, Optional[str]]]:
    out = []
    for col in columns:
        try:
            indicator_id = int(col["indicatorId"])
        except (KeyError, TypeError, ValueError):
            raise BadRequest(f"Invalid indicatorId: {col.get('indicatorId')!r}")
        normalization = None
        if not is_normalized:
            indicator = Indicator.objects.filter(pk=indicator_id).first()
            if indicator is None:
                raise BadRequest(f"Invalid indicatorId: {indicator_id}")
            normalization = indicator.normalization_type
        out.append({
            "columnName": col.get("columnName"),
            "indicatorId": str(indicator_id),
            "normalization": normalization,
        })
    return out


def _rows_from_payload(payload) -> List[ScoreRow]:
    if not isinstance(payload, list):
        raise Internal("Normalization service returned an unexpected payload.")
    df = pd.DataFrame(payload)
    if df.empty:
        return []
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise Internal(f"Normalization service response lacks columns: {missing}")

    df["score"] = pd.to_numeric(df["score"], errors="coerce")
    df["indicatorId"] = pd.to_numeric(df["indicatorId"], errors="coerce")
    bad = df["score"].isna() | df["indicatorId"].isna() | df["countryCode"].isna()
    if bad.any():
        logger.warning("Dropping %d rows without a numeric score or a key", int(bad.sum()))
        df = df[~bad]

    names = df["countryName"] if "countryName" in df.columns else pd.Series([None] * len(df), index=df.index)
    return [
        ScoreRow(
            country_code=str(code),
            indicator_id=int(indicator_id),
            score=float(score),
            country_name=name if isinstance(name, str) else None,
        )
        for code, indicator_id, score, name in zip(df["countryCode"], df["indicatorId"], df["score"], names)
    ]


def process_confirmed(
    file_name: str,
    content: bytes,
    country_column: str,
    indicator_columns: Sequence[Dict[str, str]],
    is_normalized: bool,
) -> List[ScoreRow]:
    """Send the confirmed column mapping and return the extracted score triples."""
    if not country_column or not indicator_columns:
        raise BadRequest("A country column and at least one indicator column are required.")
    columns = {
        "countryColumn": country_column,
        "indicatorColumns": _indicator_columns(indicator_columns, is_normalized),
    }
    resp = _post(
        "/process-confirmed",
        files={
            "file": (file_name, content),
            "columns": (None, json.dumps(columns), "application/json"),
        },
    )
    try:
        payload = resp.json()
    except ValueError as exc:
        raise Internal("Normalization service returned invalid JSON.") from exc
    return _rows_from_payload(payload)
