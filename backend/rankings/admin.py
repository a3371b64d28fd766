from django.contrib import admin

from .models import Country, Dimension, DimensionScore, DimensionWeight, Indicator, IndicatorWeight, Rank, Score


@admin.register(Country)
class CountryAdmin(admin.ModelAdmin):  # type: ignore[misc]
    list_display = ("code", "name")
    search_fields = ("code", "name")


@admin.register(Dimension)
class DimensionAdmin(admin.ModelAdmin):  # type: ignore[misc]
    list_display = ("name", "year", "display_order")
    list_filter = ("year",)
    search_fields = ("name",)


@admin.register(DimensionWeight)
class DimensionWeightAdmin(admin.ModelAdmin):  # type: ignore[misc]
    list_display = ("dimension", "year", "weight")
    list_filter = ("year",)


@admin.register(Indicator)
class IndicatorAdmin(admin.ModelAdmin):  # type: ignore[misc]
    list_display = ("name", "dimension", "normalization_type")
    search_fields = ("name", "dimension__name")


@admin.register(IndicatorWeight)
class IndicatorWeightAdmin(admin.ModelAdmin):  # type: ignore[misc]
    list_display = ("indicator", "dimension_weight", "weight")
    list_filter = ("dimension_weight__year",)


@admin.register(Score)
class ScoreAdmin(admin.ModelAdmin):  # type: ignore[misc]
    list_display = ("country", "indicator", "year", "score")
    list_filter = ("year",)
    search_fields = ("country__code", "country__name", "indicator__name")


@admin.register(DimensionScore)
class DimensionScoreAdmin(admin.ModelAdmin):  # type: ignore[misc]
    list_display = ("country", "dimension", "year", "score")
    list_filter = ("year",)


@admin.register(Rank)
class RankAdmin(admin.ModelAdmin):  # type: ignore[misc]
    list_display = ("year", "rank", "country", "final_score")
    list_filter = ("year",)
