"""
Point calculations over completion records.

Records are plain mappings (rows from the privileged completions function
or ORM rows converted by the caller).
"""

from typing import Iterable, Mapping, Optional

from trailteams.utils.catalog import (
    BOOK_IDS,
    IMPRESCINDIBLE_COUNT,
    RECOMENDADO_COUNT,
    MAGNOLIAS_HIKE_POINTS,
)
from trailteams.utils.constants import (
    POINTS_PER_KM,
    POINTS_PER_PHASE_UNLOCK,
    POINTS_PER_TRAIL,
    BOOK_CATEGORY_POINTS,
)


def get_book_category(book_id: str) -> Optional[str]:
    """'imprescindible', 'recomendado', 'ficcion', or None for unknown books."""
    try:
        index = BOOK_IDS.index(book_id)
    except ValueError:
        return None
    if index < IMPRESCINDIBLE_COUNT:
        return "imprescindible"
    if index < IMPRESCINDIBLE_COUNT + RECOMENDADO_COUNT:
        return "recomendado"
    return "ficcion"


def get_hike_points(hike_id: str) -> int:
    return MAGNOLIAS_HIKE_POINTS.get(hike_id, 0)


def total_km(walks: Iterable[Mapping]) -> float:
    """Sum of walk distances, rounded to one decimal."""
    return round(sum(float(w.get("distance_km") or 0) for w in walks), 1)


def calculate_walk_points(walks: Iterable[Mapping]) -> float:
    return sum(float(w.get("distance_km") or 0) for w in walks) * POINTS_PER_KM


def calculate_phase_points(phases: Iterable[Mapping]) -> int:
    return len(list(phases)) * POINTS_PER_PHASE_UNLOCK


def calculate_trail_points(trails: Iterable[Mapping]) -> int:
    return len(list(trails)) * POINTS_PER_TRAIL


def calculate_book_points(books: Iterable[Mapping]) -> int:
    total = 0
    for book in books:
        category = get_book_category(book.get("book_id"))
        total += BOOK_CATEGORY_POINTS.get(category, 0)
    return total


def calculate_magnolias_hike_points(hikes: Iterable[Mapping]) -> int:
    return sum(get_hike_points(h.get("hike_id")) for h in hikes)


def calculate_total_points(
    walks: Iterable[Mapping] = (),
    phases: Iterable[Mapping] = (),
    trails: Iterable[Mapping] = (),
    books: Iterable[Mapping] = (),
    hikes: Iterable[Mapping] = (),
) -> float:
    """
    Total score across the five completion types.

    Walks earn 1 point per km, phase unlocks 50, trails 20, books by
    category and Magnolias hikes by their catalog points.

    The sum is rounded to one decimal here rather than in each view, so the
    admin rollups and the API report the same figure. Callers needing the
    raw sum can add the per-type functions themselves.
    """
    total = (
        calculate_walk_points(walks)
        + calculate_phase_points(phases)
        + calculate_trail_points(trails)
        + calculate_book_points(books)
        + calculate_magnolias_hike_points(hikes)
    )
    return round(total, 1)
