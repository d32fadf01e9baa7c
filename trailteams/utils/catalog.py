"""
Static content catalogs referenced by completion records.
"""

# Recommended books in display order. Position decides the category:
# first two imprescindible, next three recomendado, the rest ficción.
BOOK_IDS = [
    "peregrino-compostela",
    "dejate-tonterias",
    "caminar-filosofia",
    "dejate-tonterias-recomendado",
    "guia-magica-camino",
    "peregrinatio",
    "iacobus",
    "ladrona-huesos",
    "alma-piedras",
]

IMPRESCINDIBLE_COUNT = 2
RECOMENDADO_COUNT = 3

# Magnolias group hikes (hike_id -> points), grouped by etapa
MAGNOLIAS_HIKE_POINTS = {
    # Etapa 1
    "etapa-1-hike-1": 30,
    "etapa-1-hike-2": 31,
    "etapa-1-hike-3": 32,
    "etapa-1-hike-4": 33,
    "etapa-1-hike-5": 34,
    "etapa-1-hike-6": 35,
    # Etapa 2
    "etapa-2-hike-7": 34,
    "etapa-2-hike-8": 35,
    "etapa-2-hike-9": 35,
    "etapa-2-hike-10": 36,
    "etapa-2-hike-11": 37,
    "etapa-2-hike-12": 37,
    # Etapa 3
    "etapa-3-hike-13": 38,
    "etapa-3-hike-14": 39,
    "etapa-3-hike-15": 39,
    "etapa-3-hike-16": 40,
    "etapa-3-hike-17": 40,
    "etapa-3-hike-18": 41,
    # Etapa 4
    "etapa-4-hike-19": 37,
    "etapa-4-hike-20": 39,
    "etapa-4-hike-21": 40,
    "etapa-4-hike-22": 41,
    # Etapa 5
    "etapa-5-hike-23": 37,
    "etapa-5-hike-24": 35,
    "etapa-5-hike-25": 35,
    "etapa-5-hike-26": 35,
}
