from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models


PERCENT_VALIDATORS = [MinValueValidator(0), MaxValueValidator(100)]


class Country(models.Model):
    """A country identified by ISO-3 code."""
    code = models.CharField(max_length=3, unique=True, db_index=True)
    name = models.CharField(max_length=255, unique=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code} - {self.name}"


class Dimension(models.Model):
    """Top-level scoring category for a given year."""
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    year = models.IntegerField(db_index=True)
    display_order = models.IntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["name", "year"], name="uniq_dimension_name_year"),
        ]
        ordering = ["display_order", "id"]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.name} ({self.year})"


class DimensionWeight(models.Model):
    """Percent contribution of a dimension to the final score of a year."""
    dimension = models.ForeignKey(Dimension, on_delete=models.PROTECT)
    year = models.IntegerField(db_index=True)
    weight = models.PositiveSmallIntegerField(validators=PERCENT_VALIDATORS)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["dimension", "year"], name="uniq_dimension_weight_year"),
        ]
        ordering = ["dimension__display_order", "dimension_id"]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.dimension_id}/{self.year}: {self.weight}%"


class Indicator(models.Model):
    """Measurable metric under a dimension.

    One row may carry weights for several years; the indicator "for year Y"
    is the IndicatorWeight whose dimension weight is tagged Y.
    """
    DEFAULT_NORMALIZATION_TYPE = "MinMax Normalisation"

    name = models.CharField(max_length=255, db_index=True)
    description = models.TextField(blank=True, default="")
    normalization_type = models.CharField(max_length=64, default=DEFAULT_NORMALIZATION_TYPE)
    dimension = models.ForeignKey(Dimension, on_delete=models.PROTECT)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["id"]

    def __str__(self) -> str:  # pragma: no cover
        return self.name


class IndicatorWeight(models.Model):
    """Percent contribution of an indicator inside its dimension for one year."""
    indicator = models.ForeignKey(Indicator, on_delete=models.PROTECT)
    dimension_weight = models.ForeignKey(DimensionWeight, on_delete=models.PROTECT)
    weight = models.PositiveSmallIntegerField(validators=PERCENT_VALIDATORS)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["indicator", "dimension_weight"], name="uniq_indicator_weight_scope"
            ),
        ]
        ordering = ["id"]

    @property
    def year(self) -> int:
        return self.dimension_weight.year

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.indicator_id}@{self.dimension_weight_id}: {self.weight}%"


class Score(models.Model):
    """Per-country, per-indicator, per-year input value (0-100)."""
    country = models.ForeignKey(Country, on_delete=models.CASCADE)
    indicator = models.ForeignKey(Indicator, on_delete=models.PROTECT)
    year = models.IntegerField(db_index=True)
    score = models.FloatField(validators=PERCENT_VALIDATORS)
    raw_value = models.FloatField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["country", "indicator", "year"], name="uniq_score_country_indicator_year"
            ),
        ]
        indexes = [
            models.Index(fields=["country", "year"], name="idx_score_country_year"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.country_id}/{self.indicator_id}/{self.year}: {self.score}"


class DimensionScore(models.Model):
    """Weighted average of a country's indicator scores within one dimension/year."""
    country = models.ForeignKey(Country, on_delete=models.CASCADE)
    dimension = models.ForeignKey(Dimension, on_delete=models.PROTECT)
    year = models.IntegerField(db_index=True)
    score = models.FloatField()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["country", "dimension", "year"], name="uniq_dimension_score"
            ),
        ]


class Rank(models.Model):
    """Final weighted score and skip-style ordinal of a country for one year."""
    country = models.ForeignKey(Country, on_delete=models.CASCADE)
    year = models.IntegerField(db_index=True)
    final_score = models.FloatField()
    rank = models.PositiveIntegerField(default=1)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["country", "year"], name="uniq_rank_country_year"),
        ]
        ordering = ["year", "rank"]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.year} #{self.rank} {self.country_id}"
