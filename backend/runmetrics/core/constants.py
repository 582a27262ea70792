"""Shared constants for run metrics.

Centralizes values used across parsing, aggregation and evaluation so they
are documented and adjusted in one place.
"""

# Distance of one statute mile in meters
MILE_M = 1609.34

# Mean Earth radius used by the haversine formula (meters)
EARTH_RADIUS_M = 6371000.0

FEET_PER_METER = 3.28084

SECONDS_PER_HOUR = 3600

# Cumulative-distance slack when deciding whether a split threshold was reached.
# Absorbs float error from summing many haversine segments.
SPLIT_TOLERANCE_M = 1e-6

# Heatmap intensity: level n+1 while value/max < INTENSITY_THRESHOLDS[n]
INTENSITY_THRESHOLDS = (0.2, 0.4, 0.7)

# Race distances (meters)
KM_5_M = 5000.0
KM_10_M = 10000.0
HALF_MARATHON_M = 21097.0
MARATHON_M = 42195.0
ULTRA_50_MI_M = 80467.0
LONG_RUN_M = 16093.4  # 10 miles

# Store keys for the independently persisted collections
RUNS_KEY = "runs"
GOALS_KEY = "goals"
ACHIEVEMENTS_KEY = "achievements"
STORIES_KEY = "stories"

DEFAULT_TRACK_NAME = "Unnamed Track"
