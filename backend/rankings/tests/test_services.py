from django.test import TestCase

from rankings import services
from rankings.aggregation import generate_ranking
from rankings.exceptions import BadRequest, Conflict, NotFound
from rankings.models import Rank, Score
from rankings.scores import find_score

from .helpers import build_single_dimension


class ScoreWorkflowTests(TestCase):
    def setUp(self):
        self.data = build_single_dimension()
        self.country = self.data["country"]

    def _final_score(self):
        return Rank.objects.get(country=self.country, year=2024).final_score

    def test_edit_regenerates_ranking(self):
        generate_ranking(2024)
        score = find_score(self.country.id, self.data["a"].id, 2024)

        services.edit_score(score.id, 100)

        # 100*0.7 + 60*0.3
        self.assertAlmostEqual(self._final_score(), 88.0)

    def test_delete_regenerates_ranking(self):
        generate_ranking(2024)
        score = find_score(self.country.id, self.data["b"].id, 2024)

        services.delete_score(score.id)

        # B is scored 0 again when the ranking is rebuilt
        self.assertAlmostEqual(self._final_score(), 56.0)

    def test_upsert_without_ranking_does_not_generate(self):
        services.add_or_update_score(self.country.id, self.data["a"].id, 2024, 90)
        self.assertEqual(find_score(self.country.id, self.data["a"].id, 2024).score, 90.0)
        self.assertFalse(Rank.objects.exists())

    def test_upsert_refreshes_existing_ranking(self):
        generate_ranking(2024)
        services.add_or_update_score(self.country.id, self.data["b"].id, 2024, 100)
        # 80*0.7 + 100*0.3
        self.assertAlmostEqual(self._final_score(), 86.0)

    def test_regenerate_is_skipped_without_ranking(self):
        self.assertIsNone(services.regenerate_ranking(2024))


class ImportScoresTests(TestCase):
    def setUp(self):
        self.data = build_single_dimension()

    def test_import_batch(self):
        Score.objects.all().delete()
        saved = services.import_validated_scores(2024, [
            services.ScoreRow("xld", self.data["a"].id, 12.345),
            services.ScoreRow("XLD", self.data["b"].id, 40),
        ])
        self.assertEqual(len(saved), 2)
        self.assertEqual(find_score(self.data["country"].id, self.data["a"].id, 2024).score, 12.35)

    def test_existing_scores_reject_the_batch(self):
        with self.assertRaises(Conflict) as ctx:
            services.import_validated_scores(2024, [
                services.ScoreRow("XLD", self.data["a"].id, 10),
            ])
        self.assertIn("Xland", ctx.exception.message)
        self.assertEqual(Score.objects.count(), 2)

    def test_unknown_references(self):
        with self.assertRaises(NotFound):
            services.import_validated_scores(2025, [services.ScoreRow("ZZZ", self.data["a"].id, 10)])
        with self.assertRaises(NotFound):
            services.import_validated_scores(2025, [services.ScoreRow("XLD", 9999, 10)])

    def test_invalid_batches(self):
        with self.assertRaises(BadRequest):
            services.import_validated_scores(2025, [])
        with self.assertRaises(BadRequest):
            services.import_validated_scores(2025, [
                services.ScoreRow("XLD", self.data["a"].id, 10),
                services.ScoreRow("XLD", self.data["a"].id, 20),
            ])
        with self.assertRaises(BadRequest):
            services.import_validated_scores(2025, [services.ScoreRow("XLD", self.data["a"].id, 150)])
        self.assertFalse(Score.objects.filter(year=2025).exists())
