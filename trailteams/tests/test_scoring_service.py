"""
Unit tests for point calculations.
"""

from trailteams.services import scoring_service


def test_book_categories_follow_catalog_order():
    assert scoring_service.get_book_category("peregrino-compostela") == "imprescindible"
    assert scoring_service.get_book_category("dejate-tonterias") == "imprescindible"
    assert scoring_service.get_book_category("caminar-filosofia") == "recomendado"
    assert scoring_service.get_book_category("peregrinatio") == "ficcion"
    assert scoring_service.get_book_category("unknown-book") is None


def test_book_points():
    books = [
        {"book_id": "peregrino-compostela"},  # 75
        {"book_id": "guia-magica-camino"},  # 50
        {"book_id": "iacobus"},  # 0
        {"book_id": "unknown-book"},  # 0
    ]
    assert scoring_service.calculate_book_points(books) == 125


def test_hike_points_from_catalog():
    hikes = [{"hike_id": "etapa-1-hike-1"}, {"hike_id": "etapa-5-hike-26"}, {"hike_id": "nope"}]
    assert scoring_service.calculate_magnolias_hike_points(hikes) == 65


def test_total_km_rounds_to_one_decimal():
    walks = [{"distance_km": 3.14}, {"distance_km": 2.26}]
    assert scoring_service.total_km(walks) == 5.4


def test_total_km_tolerates_missing_distance():
    assert scoring_service.total_km([{"distance_km": None}, {}]) == 0


def test_total_points_combines_every_type():
    total = scoring_service.calculate_total_points(
        walks=[{"distance_km": 5.5}],
        phases=[{"phase_number": 2}, {"phase_number": 3}],
        trails=[{"trail_id": "ruta-1"}],
        books=[{"book_id": "caminar-filosofia"}],
        hikes=[{"hike_id": "etapa-2-hike-10"}],
    )
    # 5.5 + 100 + 20 + 50 + 36
    assert total == 211.5


def test_total_points_empty():
    assert scoring_service.calculate_total_points() == 0


def test_total_points_rounds_fractional_walks_to_one_decimal():
    walks = [{"distance_km": 1.23}, {"distance_km": 2.31}]
    # raw sum 3.54
    assert scoring_service.calculate_total_points(walks=walks) == 3.5
