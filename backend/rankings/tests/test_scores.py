from django.test import SimpleTestCase, TestCase

from rankings import scores
from rankings.exceptions import BadRequest, Conflict, NotFound
from rankings.models import Country, Dimension, Indicator, Score


class RoundingTests(SimpleTestCase):
    def test_half_up(self):
        self.assertEqual(scores.round_half_up(2.345), 2.35)
        self.assertEqual(scores.round_half_up(2.344), 2.34)
        self.assertEqual(scores.round_half_up(0.125), 0.13)
        self.assertEqual(scores.round_half_up(74), 74.0)

    def test_score_range(self):
        self.assertEqual(scores.validate_score_value("55.5"), 55.5)
        for bad in (-0.1, 100.01, "x", None, float("nan")):
            with self.assertRaises(BadRequest):
                scores.validate_score_value(bad)


class ScoreStoreTests(TestCase):
    def setUp(self):
        self.country = Country.objects.create(code="TST", name="Testland")
        dimension = Dimension.objects.create(name="Economy", year=2024)
        self.indicator = Indicator.objects.create(name="GDP", dimension=dimension)

    def test_saved_score_is_rounded(self):
        saved = scores.add_score(self.country.id, self.indicator.id, 2024, 2.345)
        saved.refresh_from_db()
        self.assertEqual(saved.score, 2.35)

    def test_duplicate_score_is_a_conflict(self):
        scores.add_score(self.country.id, self.indicator.id, 2024, 10)
        with self.assertRaises(Conflict):
            scores.add_score(self.country.id, self.indicator.id, 2024, 20)
        self.assertEqual(Score.objects.count(), 1)

    def test_unknown_references(self):
        with self.assertRaises(NotFound):
            scores.add_score(9999, self.indicator.id, 2024, 10)
        with self.assertRaises(NotFound):
            scores.add_score(self.country.id, 9999, 2024, 10)

    def test_update_missing_score(self):
        with self.assertRaises(NotFound):
            scores.update_score(self.country.id, self.indicator.id, 2024, 10)

    def test_update_and_delete(self):
        scores.add_score(self.country.id, self.indicator.id, 2024, 10)
        updated = scores.update_score(self.country.id, self.indicator.id, 2024, 12.005)
        self.assertEqual(updated.score, 12.01)
        scores.delete_score_row(updated.id)
        self.assertIsNone(scores.find_score(self.country.id, self.indicator.id, 2024))
        with self.assertRaises(NotFound):
            scores.get_score(updated.id)

    def test_countries_with_scores(self):
        Country.objects.create(code="NOP", name="Nope")
        scores.add_score(self.country.id, self.indicator.id, 2024, 10)
        self.assertEqual([c.code for c in scores.countries_with_scores(2024)], ["TST"])
        self.assertEqual(scores.countries_with_scores(2023), [])
