from rankings import catalog
from rankings.scores import add_score


def build_single_dimension(year=2024):
    """Dimension D (60%) with indicators A (70%) and B (30%); Xland scores A=80, B=60."""
    dimension = catalog.create_dimension("Dimension D", "", year, 60)
    a = catalog.create_indicator("A", "", dimension.id, year, 70)
    b = catalog.create_indicator("B", "", dimension.id, year, 30)
    country = catalog.add_country("XLD", "Xland")
    add_score(country.id, a.id, year, 80)
    add_score(country.id, b.id, year, 60)
    return {"dimension": dimension, "a": a, "b": b, "country": country}
