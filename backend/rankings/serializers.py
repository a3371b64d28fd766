from rest_framework import serializers

from .models import Country, Dimension, Indicator, Rank, Score


YEAR_FIELD = dict(min_value=1900, max_value=2100)
PERCENT_FIELD = dict(min_value=0, max_value=100)


class CountrySerializer(serializers.ModelSerializer):
    class Meta:
        model = Country
        fields = ["id", "code", "name"]


class DimensionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Dimension
        fields = ["id", "name", "description", "year", "display_order"]


class IndicatorSerializer(serializers.ModelSerializer):
    class Meta:
        model = Indicator
        fields = ["id", "name", "description", "normalization_type", "dimension"]


class ScoreSerializer(serializers.ModelSerializer):
    country = serializers.CharField(source="country.name", read_only=True)
    indicator = serializers.CharField(source="indicator.name", read_only=True)

    class Meta:
        model = Score
        fields = ["id", "year", "country", "indicator", "score", "raw_value"]


class RankSerializer(serializers.ModelSerializer):
    country = serializers.CharField(source="country.name", read_only=True)
    code = serializers.CharField(source="country.code", read_only=True)

    class Meta:
        model = Rank
        fields = ["country", "code", "year", "final_score", "rank"]


# Request payloads

class DimensionInput(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    year = serializers.IntegerField(**YEAR_FIELD)
    weight = serializers.IntegerField(**PERCENT_FIELD)
    display_order = serializers.IntegerField(required=False)


class IndicatorInput(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    dimension_id = serializers.IntegerField()
    year = serializers.IntegerField(**YEAR_FIELD)
    weight = serializers.IntegerField(**PERCENT_FIELD)
    normalization_type = serializers.CharField(required=False, allow_null=True, default=None)


class DimensionWeightInput(serializers.Serializer):
    dimension_id = serializers.IntegerField()
    year = serializers.IntegerField(**YEAR_FIELD)
    weight = serializers.IntegerField(**PERCENT_FIELD)


class IndicatorWeightInput(DimensionWeightInput):
    indicator_id = serializers.IntegerField()


class WeightScopeInput(serializers.Serializer):
    dimension_id = serializers.IntegerField(required=False, allow_null=True, default=None)
    year = serializers.IntegerField(**YEAR_FIELD)


class ScoreInput(serializers.Serializer):
    country_id = serializers.IntegerField()
    indicator_id = serializers.IntegerField()
    year = serializers.IntegerField(**YEAR_FIELD)
    score = serializers.FloatField(min_value=0, max_value=100)


class ScoreEditInput(serializers.Serializer):
    score = serializers.FloatField(min_value=0, max_value=100)


class ScoreRowInput(serializers.Serializer):
    country_code = serializers.CharField(max_length=3)
    indicator_id = serializers.IntegerField()
    score = serializers.FloatField(min_value=0, max_value=100)


class ScoreImportInput(serializers.Serializer):
    year = serializers.IntegerField(**YEAR_FIELD)
    scores = ScoreRowInput(many=True, allow_empty=False)


class IdsInput(serializers.Serializer):
    ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)
