import json
from unittest.mock import MagicMock, patch

import requests
from django.test import TestCase, override_settings

from rankings import normalizer_client
from rankings.exceptions import BadRequest, Internal
from rankings.models import Dimension, Indicator


def _response(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload
    return resp


@override_settings(RANKINGS={"NORMALIZER_URL": "http://normalizer.test/", "NORMALIZER_TIMEOUT": 5})
class NormalizerClientTests(TestCase):
    def setUp(self):
        dimension = Dimension.objects.create(name="Economy", year=2024)
        self.indicator = Indicator.objects.create(
            name="GDP", dimension=dimension, normalization_type="Z-Score",
        )

    @patch("rankings.normalizer_client.requests.post")
    def test_detect_columns(self, post):
        post.return_value = _response(payload={"countryColumns": ["iso3"], "indicatorColumns": ["gdp"]})

        result = normalizer_client.detect_columns("scores.xlsx", b"data")

        self.assertEqual(result["countryColumns"], ["iso3"])
        args, kwargs = post.call_args
        self.assertEqual(args[0], "http://normalizer.test/detect-columns")
        self.assertEqual(kwargs["timeout"], 5)

    @patch("rankings.normalizer_client.requests.post")
    def test_process_confirmed(self, post):
        post.return_value = _response(payload=[
            {"countryCode": "FRA", "countryName": "France", "indicatorId": str(self.indicator.id), "score": "71.5"},
            {"countryCode": "DEU", "indicatorId": self.indicator.id, "score": 64},
            {"countryCode": "ITA", "indicatorId": self.indicator.id, "score": "n/a"},
        ])

        rows = normalizer_client.process_confirmed(
            "scores.csv", b"data", "iso3",
            [{"columnName": "gdp", "indicatorId": str(self.indicator.id)}],
            is_normalized=False,
        )

        self.assertEqual([(r.country_code, r.score) for r in rows], [("FRA", 71.5), ("DEU", 64.0)])
        self.assertEqual(rows[0].country_name, "France")
        self.assertIsNone(rows[1].country_name)
        self.assertEqual(rows[0].indicator_id, self.indicator.id)

        files = post.call_args[1]["files"]
        columns = json.loads(files["columns"][1])
        self.assertEqual(columns["countryColumn"], "iso3")
        self.assertEqual(columns["indicatorColumns"][0]["normalization"], "Z-Score")

    @patch("rankings.normalizer_client.requests.post")
    def test_normalized_upload_sends_no_method(self, post):
        post.return_value = _response(payload=[])
        normalizer_client.process_confirmed(
            "scores.csv", b"data", "iso3", [{"columnName": "gdp", "indicatorId": "9999"}], is_normalized=True,
        )
        columns = json.loads(post.call_args[1]["files"]["columns"][1])
        self.assertIsNone(columns["indicatorColumns"][0]["normalization"])

    def test_invalid_mapping(self):
        with self.assertRaises(BadRequest):
            normalizer_client.process_confirmed("f.csv", b"", "", [], is_normalized=False)
        with self.assertRaises(BadRequest):
            normalizer_client.process_confirmed(
                "f.csv", b"", "iso3", [{"columnName": "gdp", "indicatorId": "9999"}], is_normalized=False,
            )

    @patch("rankings.normalizer_client.time.sleep")
    @patch("rankings.normalizer_client.requests.post")
    def test_retries_on_server_errors(self, post, sleep):
        post.side_effect = [_response(503), _response(payload={"ok": True})]
        self.assertEqual(normalizer_client.detect_columns("f.csv", b""), {"ok": True})
        self.assertEqual(post.call_count, 2)
        sleep.assert_called_once()

    @patch("rankings.normalizer_client.requests.post")
    def test_service_failures_are_internal(self, post):
        post.return_value = _response(400)
        with self.assertRaises(Internal):
            normalizer_client.detect_columns("f.csv", b"")

        post.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(Internal):
            normalizer_client.detect_columns("f.csv", b"")

    @patch("rankings.normalizer_client.requests.post")
    def test_unexpected_payload(self, post):
        post.return_value = _response(payload=[{"country": "FRA"}])
        with self.assertRaises(Internal):
            normalizer_client.process_confirmed(
                "f.csv", b"", "iso3", [{"columnName": "gdp", "indicatorId": str(self.indicator.id)}], True,
            )
