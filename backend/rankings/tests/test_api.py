from unittest.mock import patch

from django.contrib.auth.models import User
from django.core.cache import cache
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework.permissions import IsAuthenticated
from rest_framework.test import APIClient

from rankings.guard import RANKING_EXISTS_WARNING
from rankings.models import Dimension, Rank
from rankings.scores import find_score
from rankings.services import ScoreRow
from rankings.views import IsRankingAdmin

from .helpers import build_single_dimension


class RankingApiTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.data = build_single_dimension()

    def test_generate_and_read_ranking(self):
        resp = self.client.post(reverse("rankings:ranking-generate", args=[2024]))
        self.assertEqual(resp.status_code, 201)
        body = resp.json()
        self.assertEqual(body["skipped"], [])
        self.assertEqual(body["ranking"][0]["code"], "XLD")
        self.assertEqual(body["ranking"][0]["rank"], 1)

        resp = self.client.get(reverse("rankings:ranking-detail", args=[2024]))
        self.assertEqual(resp.status_code, 200)
        row = resp.json()[0]
        self.assertEqual(row["country"], "Xland")
        self.assertEqual(row["final_score"], 74.0)
        self.assertEqual(row["Dimension D"], 74.0)

    def test_score_edit_busts_the_cached_table(self):
        self.client.post(reverse("rankings:ranking-generate", args=[2024]))
        self.client.get(reverse("rankings:ranking-detail", args=[2024]))
        score = find_score(self.data["country"].id, self.data["a"].id, 2024)

        resp = self.client.put(
            reverse("rankings:score-detail", args=[score.id]), {"score": 100}, format="json",
        )
        self.assertEqual(resp.status_code, 200)

        row = self.client.get(reverse("rankings:ranking-detail", args=[2024])).json()[0]
        self.assertEqual(row["final_score"], 88.0)

    def test_guard_conflict_body(self):
        self.client.post(reverse("rankings:ranking-generate", args=[2024]))
        payload = {"name": "Health", "year": 2024, "weight": 40}

        resp = self.client.post(reverse("rankings:dimensions"), payload, format="json")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["kind"], "Conflict")
        self.assertTrue(resp.json()["detail"].startswith(RANKING_EXISTS_WARNING))

        resp = self.client.post(reverse("rankings:dimensions") + "?force=1", payload, format="json")
        self.assertEqual(resp.status_code, 201)
        self.assertTrue(Dimension.objects.filter(name="Health").exists())

    def test_delete_ranking(self):
        url = reverse("rankings:ranking-detail", args=[2024])
        resp = self.client.delete(url)
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["kind"], "NotFound")

        self.client.post(reverse("rankings:ranking-generate", args=[2024]))
        resp = self.client.delete(url)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"ranks": 1, "dimension_scores": 1})
        self.assertFalse(Rank.objects.exists())

    def test_weight_limit_is_a_bad_request(self):
        resp = self.client.post(
            reverse("rankings:indicator-weights"),
            {"indicator_id": self.data["b"].id, "dimension_id": self.data["dimension"].id, "year": 2024, "weight": 40},
            format="json",
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["kind"], "BadRequest")

    def test_weight_total_and_report(self):
        url = reverse("rankings:dimension-weight-total", args=[self.data["dimension"].id])
        resp = self.client.get(url, {"year": 2024})
        self.assertEqual(resp.json(), {"current_total": 100, "remaining": 0})
        self.assertEqual(self.client.get(url).status_code, 400)

        report = self.client.get(reverse("rankings:weight-report", args=[2024])).json()
        self.assertFalse(report["can_generate_ranking"])
        self.assertIn("dimension weights sum to 60%", report["problems"])

    def test_equal_weights(self):
        resp = self.client.post(
            reverse("rankings:equal-weights"),
            {"dimension_id": self.data["dimension"].id, "year": 2024},
            format="json",
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([w["weight"] for w in resp.json()["weights"]], [50, 50])

    def test_import_scores(self):
        resp = self.client.post(
            reverse("rankings:scores-import"),
            {"year": 2025, "scores": [{"country_code": "XLD", "indicator_id": self.data["a"].id, "score": 50}]},
            format="json",
        )
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json(), {"imported": 1})

        scores = self.client.get(reverse("rankings:scores"), {"year": 2025}).json()
        self.assertEqual(scores[0]["country"], "Xland")

    def test_dimension_update_keeps_display_order(self):
        url = reverse("rankings:dimension-detail", args=[self.data["dimension"].id])
        payload = {"name": "Dimension D", "description": "renamed", "year": 2024, "weight": 60}

        resp = self.client.put(url, dict(payload, display_order=5), format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["display_order"], 5)

        resp = self.client.put(url, payload, format="json")
        self.assertEqual(resp.json()["display_order"], 5)

    def test_serializer_validation(self):
        resp = self.client.post(reverse("rankings:dimensions"), {"name": "Health", "year": 2024, "weight": 140}, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertIn("weight", resp.json())

    def test_upload_needs_a_file(self):
        resp = self.client.post(reverse("rankings:upload-detect-columns"))
        self.assertEqual(resp.status_code, 400)

    @patch("rankings.views.normalizer_client.process_confirmed")
    def test_process_confirmed_upload(self, process_confirmed):
        process_confirmed.return_value = [ScoreRow("XLD", self.data["a"].id, 55.0, "Xland")]
        resp = self.client.post(
            reverse("rankings:upload-process-confirmed"),
            {
                "file": SimpleUploadedFile("scores.csv", b"iso3,gdp\nXLD,55\n"),
                "country_column": "iso3",
                "indicator_columns": '[{"columnName": "gdp", "indicatorId": "%d"}]' % self.data["a"].id,
                "is_normalized": "true",
            },
            format="multipart",
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()[0]["score"], 55.0)
        args = process_confirmed.call_args[0]
        self.assertEqual(args[0], "scores.csv")
        self.assertEqual(args[2], "iso3")
        self.assertTrue(args[4])

    @override_settings(RANKINGS={"REQUIRE_AUTH": True})
    def test_auth_can_be_required(self):
        self.assertTrue(issubclass(IsRankingAdmin, IsAuthenticated))
        resp = self.client.post(reverse("rankings:ranking-generate", args=[2024]))
        self.assertIn(resp.status_code, (401, 403))
        self.assertEqual(self.client.get(reverse("rankings:weight-report", args=[2024])).status_code, 200)

        user = User.objects.create_user("admin", password="secret")
        self.client.force_authenticate(user=user)
        resp = self.client.post(reverse("rankings:ranking-generate", args=[2024]))
        self.assertEqual(resp.status_code, 201)
