from django.urls import path

from . import views

app_name = "rankings"

urlpatterns = [
    path("countries/", views.countries, name="countries"),
    path("years/", views.years, name="years"),
    path("dimensions/", views.dimensions, name="dimensions"),
    path("dimensions/bulk-delete/", views.dimensions_bulk_delete, name="dimensions-bulk-delete"),
    path("dimensions/<int:dimension_id>/", views.dimension_detail, name="dimension-detail"),
    path("dimensions/<int:dimension_id>/weight-total/", views.dimension_weight_total, name="dimension-weight-total"),
    path("indicators/", views.indicators, name="indicators"),
    path("indicators/bulk-delete/", views.indicators_bulk_delete, name="indicators-bulk-delete"),
    path("indicators/<int:indicator_id>/", views.indicator_detail, name="indicator-detail"),
    path("dimension-weights/", views.dimension_weights, name="dimension-weights"),
    path("indicator-weights/", views.indicator_weights, name="indicator-weights"),
    path("weights/normalize/", views.normalize_weights, name="normalize-weights"),
    path("weights/normalize-all/", views.normalize_all_weights, name="normalize-all-weights"),
    path("weights/equal/", views.equal_weights, name="equal-weights"),
    path("scores/", views.scores, name="scores"),
    path("scores/import/", views.scores_import, name="scores-import"),
    path("scores/<int:score_id>/", views.score_detail, name="score-detail"),
    path("uploads/detect-columns/", views.upload_detect_columns, name="upload-detect-columns"),
    path("uploads/process-confirmed/", views.upload_process_confirmed, name="upload-process-confirmed"),
    path("ranking/", views.ranking_years, name="ranking-years"),
    path("ranking/<int:year>/", views.ranking_detail, name="ranking-detail"),
    path("ranking/<int:year>/generate/", views.ranking_generate, name="ranking-generate"),
    path("ranking/<int:year>/weight-report/", views.weight_report, name="weight-report"),
]
