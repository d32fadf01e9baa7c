"""
Constants used across the team and scoring services.
"""

# Team capacity
MIN_EFFECTIVE_CAPACITY = 14  # Stored max_members below this is raised to it
DEFAULT_MAX_MEMBERS = 14

# Proximity discovery
DEFAULT_SEARCH_RADIUS_MILES = 10
EARTH_RADIUS_MILES = 3958.8

# Admin aggregation
EMAIL_PLACEHOLDER = "N/A"

# Scoring
POINTS_PER_KM = 1
POINTS_PER_PHASE_UNLOCK = 50
POINTS_PER_TRAIL = 20
BOOK_CATEGORY_POINTS = {
    "imprescindible": 75,
    "recomendado": 50,
    "ficcion": 0,
}

# Display
TEAM_LABEL_PREFIX = "Equipo"
TEAM_LABEL_ID_CHARS = 8
