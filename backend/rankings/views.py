import json

from django.core.cache import cache
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from . import aggregation, catalog, normalizer_client, reports, services, weights
from .conf import get_setting
from .exceptions import BadRequest
from .models import Dimension, Indicator
from .scores import scores_for_year
from .serializers import (
    CountrySerializer,
    DimensionInput,
    DimensionSerializer,
    DimensionWeightInput,
    IdsInput,
    IndicatorInput,
    IndicatorSerializer,
    IndicatorWeightInput,
    RankSerializer,
    ScoreEditInput,
    ScoreImportInput,
    ScoreInput,
    ScoreSerializer,
    WeightScopeInput,
)


CACHE_KEY_RANKING = "ranking_table:{year}"


class IsRankingAdmin(IsAuthenticated):
    """DRF's ``IsAuthenticated`` when ``RANKINGS["REQUIRE_AUTH"]`` is set, ``AllowAny`` otherwise."""

    def has_permission(self, request, view):
        if not get_setting("REQUIRE_AUTH"):
            return True
        return super().has_permission(request, view)


def _force_flag(request) -> bool:
    return str(request.query_params.get("force", "0")).lower() in ("1", "true", "yes")


def _year_param(request, required: bool = True):
    raw = request.query_params.get("year")
    if raw is None:
        if required:
            raise BadRequest("Query parameter 'year' is required.")
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise BadRequest(f"Invalid year: {raw!r}")


def _validated(serializer_class, data):
    serializer = serializer_class(data=data)
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


def _bust_ranking_cache(year: int) -> None:
    cache.delete(CACHE_KEY_RANKING.format(year=year))


def _run_payload(run) -> dict:
    return {
        "year": run.year,
        "ranking": RankSerializer(run.ranks, many=True).data,
        "skipped": [s.to_dict() for s in run.skipped],
    }


# =========================
# Countries
# =========================

@api_view(["GET", "POST"])
@permission_classes([IsRankingAdmin])
def countries(request):
    if request.method == "GET":
        return Response(CountrySerializer(catalog.list_countries(), many=True).data)
    if isinstance(request.data, list):
        created = catalog.add_countries(request.data)
        return Response(CountrySerializer(created, many=True).data, status=status.HTTP_201_CREATED)
    created = catalog.add_country(request.data.get("code"), request.data.get("name"))
    return Response(CountrySerializer(created).data, status=status.HTTP_201_CREATED)


@api_view(["GET"])
def years(request):
    return Response({"years": catalog.available_years()})


# =========================
# Dimensions
# =========================

@api_view(["GET", "POST"])
@permission_classes([IsRankingAdmin])
def dimensions(request):
    if request.method == "GET":
        qs = Dimension.objects.all()
        year = _year_param(request, required=False)
        if year is not None:
            qs = qs.filter(year=year)
        return Response(DimensionSerializer(qs, many=True).data)

    data = _validated(DimensionInput, request.data)
    dimension = catalog.create_dimension(force=_force_flag(request), **data)
    return Response(DimensionSerializer(dimension).data, status=status.HTTP_201_CREATED)


@api_view(["PUT", "DELETE"])
@permission_classes([IsRankingAdmin])
def dimension_detail(request, dimension_id: int):
    if request.method == "DELETE":
        catalog.delete_dimension(dimension_id, force=_force_flag(request))
        return Response(status=status.HTTP_204_NO_CONTENT)

    data = _validated(DimensionInput, request.data)
    dimension = catalog.update_dimension(
        dimension_id,
        data["name"],
        data["description"],
        data["year"],
        data["weight"],
        display_order=data.get("display_order"),
        force=_force_flag(request),
    )
    return Response(DimensionSerializer(dimension).data)


@api_view(["POST"])
@permission_classes([IsRankingAdmin])
def dimensions_bulk_delete(request):
    data = _validated(IdsInput, request.data)
    deleted = catalog.bulk_delete_dimensions(data["ids"], force=_force_flag(request))
    return Response({"deleted": deleted})


@api_view(["GET"])
def dimension_weight_total(request, dimension_id: int):
    catalog.get_dimension(dimension_id)
    return Response(weights.get_dimension_weight_total(dimension_id, _year_param(request)))


# =========================
# Indicators
# =========================

@api_view(["GET", "POST"])
@permission_classes([IsRankingAdmin])
def indicators(request):
    if request.method == "GET":
        qs = Indicator.objects.all()
        dimension_id = request.query_params.get("dimension_id")
        if dimension_id:
            qs = qs.filter(dimension_id=dimension_id)
        year = _year_param(request, required=False)
        if year is not None:
            qs = qs.filter(indicatorweight__dimension_weight__year=year).distinct()
        return Response(IndicatorSerializer(qs, many=True).data)

    data = _validated(IndicatorInput, request.data)
    indicator = catalog.create_indicator(force=_force_flag(request), **data)
    return Response(IndicatorSerializer(indicator).data, status=status.HTTP_201_CREATED)


@api_view(["PUT", "DELETE"])
@permission_classes([IsRankingAdmin])
def indicator_detail(request, indicator_id: int):
    if request.method == "DELETE":
        catalog.delete_indicator(indicator_id, force=_force_flag(request))
        return Response(status=status.HTTP_204_NO_CONTENT)

    data = _validated(IndicatorInput, request.data)
    indicator = catalog.update_indicator(indicator_id, force=_force_flag(request), **data)
    return Response(IndicatorSerializer(indicator).data)


@api_view(["POST"])
@permission_classes([IsRankingAdmin])
def indicators_bulk_delete(request):
    data = _validated(IdsInput, request.data)
    deleted = catalog.bulk_delete_indicators(data["ids"], force=_force_flag(request))
    return Response({"deleted": deleted})


# =========================
# Weights
# =========================

@api_view(["POST"])
@permission_classes([IsRankingAdmin])
def dimension_weights(request):
    data = _validated(DimensionWeightInput, request.data)
    saved = weights.add_or_update_dimension_weight(
        data["dimension_id"], data["year"], data["weight"], force=_force_flag(request),
    )
    return Response({"dimension_id": saved.dimension_id, "year": saved.year, "weight": saved.weight})


@api_view(["POST"])
@permission_classes([IsRankingAdmin])
def indicator_weights(request):
    data = _validated(IndicatorWeightInput, request.data)
    saved = weights.add_or_update_indicator_weight(
        data["indicator_id"], data["dimension_id"], data["year"], data["weight"],
        force=_force_flag(request),
    )
    return Response({
        "indicator_id": saved.indicator_id,
        "dimension_id": data["dimension_id"],
        "year": data["year"],
        "weight": saved.weight,
    })


@api_view(["POST"])
@permission_classes([IsRankingAdmin])
def normalize_weights(request):
    """Normalize one dimension's indicator weights, or the year's dimension weights."""
    data = _validated(WeightScopeInput, request.data)
    force = _force_flag(request)
    if data["dimension_id"] is not None:
        rows = weights.normalize_indicator_weights(data["dimension_id"], data["year"], force=force)
        result = [{"indicator_id": r.indicator_id, "weight": r.weight} for r in rows]
    else:
        rows = weights.normalize_dimension_weights(data["year"], force=force)
        result = [{"dimension_id": r.dimension_id, "weight": r.weight} for r in rows]
    return Response({"year": data["year"], "weights": result})


@api_view(["POST"])
@permission_classes([IsRankingAdmin])
def normalize_all_weights(request):
    return Response(weights.normalize_all_weights(force=_force_flag(request)))


@api_view(["POST"])
@permission_classes([IsRankingAdmin])
def equal_weights(request):
    data = _validated(WeightScopeInput, request.data)
    force = _force_flag(request)
    if data["dimension_id"] is not None:
        rows = weights.set_equal_indicator_weights(data["dimension_id"], data["year"], force=force)
        result = [{"indicator_id": r.indicator_id, "weight": r.weight} for r in rows]
    else:
        rows = weights.set_equal_dimension_weights(data["year"], force=force)
        result = [{"dimension_id": r.dimension_id, "weight": r.weight} for r in rows]
    return Response({"year": data["year"], "weights": result})


# =========================
# Scores
# =========================

@api_view(["GET", "POST"])
@permission_classes([IsRankingAdmin])
def scores(request):
    if request.method == "GET":
        return Response(ScoreSerializer(scores_for_year(_year_param(request)), many=True).data)

    data = _validated(ScoreInput, request.data)
    saved = services.add_or_update_score(
        data["country_id"], data["indicator_id"], data["year"], data["score"],
    )
    _bust_ranking_cache(saved.year)
    return Response(ScoreSerializer(saved).data)


@api_view(["PUT", "DELETE"])
@permission_classes([IsRankingAdmin])
def score_detail(request, score_id: int):
    if request.method == "DELETE":
        deleted = services.delete_score(score_id)
        _bust_ranking_cache(deleted.year)
        return Response(status=status.HTTP_204_NO_CONTENT)

    data = _validated(ScoreEditInput, request.data)
    saved = services.edit_score(score_id, data["score"])
    _bust_ranking_cache(saved.year)
    return Response(ScoreSerializer(saved).data)


@api_view(["POST"])
@permission_classes([IsRankingAdmin])
def scores_import(request):
    data = _validated(ScoreImportInput, request.data)
    rows = [services.ScoreRow(**row) for row in data["scores"]]
    saved = services.import_validated_scores(data["year"], rows)
    return Response({"imported": len(saved)}, status=status.HTTP_201_CREATED)


# =========================
# Uploads (normalization service)
# =========================

def _uploaded_file(request):
    upload = request.FILES.get("file")
    if upload is None:
        raise BadRequest("A file is required.")
    return upload.name, upload.read()


@api_view(["POST"])
@permission_classes([IsRankingAdmin])
def upload_detect_columns(request):
    name, content = _uploaded_file(request)
    return Response(normalizer_client.detect_columns(name, content))


@api_view(["POST"])
@permission_classes([IsRankingAdmin])
def upload_process_confirmed(request):
    """Forward the confirmed column mapping; the returned rows still need importing."""
    name, content = _uploaded_file(request)
    raw_columns = request.data.get("indicator_columns") or "[]"
    try:
        indicator_columns = json.loads(raw_columns) if isinstance(raw_columns, str) else raw_columns
    except ValueError:
        raise BadRequest("indicator_columns must be a JSON list.")
    is_normalized = str(request.data.get("is_normalized", "false")).lower() in ("1", "true", "yes")
    rows = normalizer_client.process_confirmed(
        name, content, request.data.get("country_column"), indicator_columns, is_normalized,
    )
    return Response([
        {
            "country_code": r.country_code,
            "country_name": r.country_name,
            "indicator_id": r.indicator_id,
            "score": r.score,
        }
        for r in rows
    ])


# =========================
# Ranking
# =========================

@api_view(["GET"])
def ranking_years(request):
    return Response({"years": aggregation.years_with_ranking()})


@api_view(["GET", "DELETE"])
@permission_classes([IsRankingAdmin])
def ranking_detail(request, year: int):
    if request.method == "DELETE":
        deleted = aggregation.delete_ranking_by_year(year)
        _bust_ranking_cache(year)
        return Response(deleted)

    cache_key = CACHE_KEY_RANKING.format(year=year)
    data = cache.get(cache_key)
    if data is None:
        data = reports.ranking_table(year)
        cache.set(cache_key, data, get_setting("RANKING_CACHE_TIMEOUT"))
    return Response(data)


@api_view(["POST"])
@permission_classes([IsRankingAdmin])
def ranking_generate(request, year: int):
    run = aggregation.generate_ranking(year)
    _bust_ranking_cache(year)
    return Response(_run_payload(run), status=status.HTTP_201_CREATED)


@api_view(["GET"])
def weight_report(request, year: int):
    return Response(reports.weight_validation_report(year))
