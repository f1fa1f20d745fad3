"""
SummitCast Safety Synthesis - Configuration

This module contains the tunable parameters for relevance evaluation, terrain
classification, and risk/confidence scoring. Values are field-tested trip-planning
thresholds for alpine and backcountry objectives.

All parameters live here so they can be revisited without touching the
scoring logic.
"""

# =============================================================================
# GEOGRAPHY
# =============================================================================

EARTH_RADIUS_KM = 6371.0

# Avalanche zone fallback: a nearest zone farther than this is treated as
# outside center coverage (unless a regional override claims the point)
NEAREST_ZONE_COVERAGE_KM = 40.0

# SNOTEL station search radius and the distance beyond which a station is no
# longer representative of the objective
SNOTEL_MAX_STATION_DISTANCE_KM = 140.0
SNOTEL_REPRESENTATIVE_KM = 80.0

FT_PER_METER = 3.28084


# =============================================================================
# PROVIDER / REQUEST WINDOW
# =============================================================================

TRAVEL_WINDOW_MIN_HOURS = 1
TRAVEL_WINDOW_MAX_HOURS = 24

# Trend depth below which the weather chain gap-fills and confidence drops
MIN_TREND_POINTS = 6

# Hourly samples used for the freeze-thaw temperature context
TEMPERATURE_CONTEXT_HOURS = 24

# Alerts are current-state only; beyond this lead they are not forecast-valid
ALERT_MAX_LEAD_HOURS = 48

# Air-quality sample must be within this many minutes of the planned start
AIR_QUALITY_MATCH_MINUTES = 90

# Rainfall rolling windows (hours)
RAINFALL_ROLLING_WINDOWS = (12, 24, 48)
RAINFALL_LOOKBACK_DAYS = 3

MM_PER_INCH = 25.4
CM_PER_INCH = 2.54


# =============================================================================
# AVALANCHE RELEVANCE
# =============================================================================

# Calendar months (1 = January)
AVALANCHE_WINTER_MONTHS = {11, 12, 1, 2, 3, 4}
AVALANCHE_SHOULDER_MONTHS = {5, 6, 10}
AVALANCHE_HIGH_ELEVATION_FT = 8500
AVALANCHE_MID_ELEVATION_FT = 6500
AVALANCHE_HIGH_LATITUDE = 42.0

# Snowpack thresholds (inches)
AVALANCHE_MATERIAL_SNOW_DEPTH_IN = 8.0
AVALANCHE_MATERIAL_SWE_IN = 1.0
AVALANCHE_MEASURABLE_SNOW_DEPTH_IN = 2.0
AVALANCHE_MEASURABLE_SWE_IN = 0.2
LOW_SNOW_DEPTH_IN = 1.0
LOW_SNOW_SWE_IN = 0.25

# Expected travel-window snowfall that makes avalanche hazard relevant
AVALANCHE_EXPECTED_SNOW_IN = 6.0

WINTRY_DESCRIPTION_PATTERN = r"snow|sleet|blizzard|ice|freezing|wintry|graupel|flurr|rime"

AVALANCHE_LEVEL_LABELS = ["No Rating", "Low", "Moderate", "Considerable", "High", "Extreme"]


# =============================================================================
# HAZARD CATEGORIES AND CAPS
# =============================================================================

# Scored categories, in output order
HAZARD_CATEGORIES = ["avalanche", "weather", "surface", "alerts", "air_quality", "fire"]

# Maximum impact any single category can contribute to the aggregate
HAZARD_CAPS = {
    "avalanche": 55,
    "weather": 42,
    "surface": 15,
    "alerts": 24,
    "air_quality": 20,
    "fire": 18,
}


# =============================================================================
# SIGNAL IMPACTS
# =============================================================================

# Avalanche danger level -> impact
AVALANCHE_DANGER_IMPACTS = {5: 55, 4: 52, 3: 34, 2: 15, 1: 4}
AVALANCHE_UNKNOWN_IMPACT = 16
AVALANCHE_PROBLEM_COMPLEXITY_COUNT = 3
AVALANCHE_PROBLEM_COMPLEXITY_IMPACT = 6

# Wind (mph). Each tier: (effective wind >=, sustained wind >=, impact)
WIND_TIERS = [(50, 35, 20), (40, 25, 12), (30, 18, 6)]
SEVERE_WIND_SUSTAINED_MPH = 30
SEVERE_WIND_GUST_MPH = 45
STRONG_WIND_SUSTAINED_MPH = 20
STRONG_WIND_GUST_MPH = 30
PEAK_GUST_IMPACT = 6

# Precipitation chance (%)
PEAK_PRECIP_TIERS = [(80, 12), (60, 8), (40, 4)]
HIGH_PRECIP_CHANCE = 60
MODERATE_PRECIP_CHANCE = 40
CONVECTIVE_PATTERN = r"thunderstorm|lightning|blizzard"
CONVECTIVE_IMPACT = 18
FROZEN_PRECIP_PATTERN = r"snow|sleet|freezing rain|ice"
FROZEN_PRECIP_IMPACT = 10
EXPECTED_RAIN_TIERS = [(0.5, 6), (0.2, 3)]  # inches in travel window
EXPECTED_SNOW_TIERS = [(4.0, 7), (1.5, 3)]

VISIBILITY_PATTERN = r"fog|smoke|haze"
VISIBILITY_IMPACT = 6
# Visibility risk score (0-100) -> impact; the pattern above is used only when
# no visibility score can be derived
VISIBILITY_SCORE_TIERS = [(80, 12), (60, 9), (40, 6), (20, 3)]

# Minimum apparent temperature (F) -> impact
COLD_TIERS = [(-10, 15), (0, 10), (15, 6), (25, 3)]
EXTREME_COLD_HOURS_IMPACT = 6
COLD_EXPOSURE_HOURS_IMPACT = 4

# Heat risk level -> impact
HEAT_LEVEL_IMPACTS = {4: 14, 3: 10, 2: 6, 1: 2}

DARKNESS_IMPACT = 5
VOLATILITY_TEMP_RANGE_F = 18
VOLATILITY_IMPACT = 6

# Forecast lead hours -> uncertainty impact
FORECAST_LEAD_TIERS = [(96, 10), (72, 8), (48, 6), (24, 4), (6, 2)]

# Surface conditions
SURFACE_ZEROED_IMPACT = 4
RAIN_24H_TIERS = [(0.75, 7), (0.3, 4)]
SNOW_24H_TIERS = [(6.0, 8), (2.0, 4)]

# NWS alert severity
ALERT_SEVERITY_RANK = {"unknown": 0, "minor": 1, "moderate": 2, "severe": 3, "extreme": 4}
ALERT_SEVERITY_IMPACTS = {"extreme": 24, "severe": 16, "moderate": 10}
ALERT_DEFAULT_IMPACT = 5

# US AQI -> impact
AQI_TIERS = [(201, 20), (151, 14), (101, 8), (51, 3)]

# Fire risk level -> impact
FIRE_LEVEL_IMPACTS = {4: 16, 3: 10, 2: 5}


# =============================================================================
# CONFIDENCE PENALTIES
# =============================================================================

CONFIDENCE_FLOOR = 20
CONFIDENCE_CEILING = 100

CONFIDENCE_PENALTIES = {
    "weather_zeroed": 30,
    "weather_degraded": 6,
    "weather_issue_time_missing": 8,
    "weather_trend_shallow": 6,
    "avalanche_unknown": 20,
    "avalanche_stale": 6,
    "avalanche_publish_time_missing": 8,
    "alerts_unavailable": 8,
    "alerts_not_forecast_valid": 4,
    "air_quality_unavailable": 6,
    "air_quality_no_data": 3,
    "rainfall_stale": 4,
    "rainfall_degraded": 2,
    "rainfall_zeroed": 8,
    "rainfall_no_data": 3,
    "surface_chain_suppressed": 6,
    "snowpack_unavailable": 3,
    "avalanche_snowpack_chain_suppressed": 4,
    "solar_degraded": 2,
}

# Weather issuance age (hours) -> penalty
WEATHER_AGE_PENALTIES = [(18, 12), (10, 7), (6, 4)]
# Avalanche bulletin age (hours) -> penalty
AVALANCHE_AGE_PENALTIES = [(72, 12), (48, 8), (24, 4)]
# Forecast lead (hours) -> penalty
LEAD_TIME_PENALTIES = [(72, 8), (48, 6), (24, 4)]


# =============================================================================
# HEAT AND FIRE SYNTHESIS
# =============================================================================

# Peak apparent temperature (F) -> heat level
HEAT_FEELS_LIKE_TIERS = [(100, 4), (92, 3), (84, 2)]
HEAT_GUARDED_DAYTIME_F = 76
# (peak temp F >=, humidity % >=, level)
HEAT_HUMIDITY_TIERS = [(92, 55, 4), (86, 55, 3), (80, 45, 2)]
HEAT_LABELS = ["Low", "Guarded", "Elevated", "High", "Extreme"]

# (temp F >=, humidity % <=, wind mph >=, level)
FIRE_WEATHER_TIERS = [(90, 20, 20, 4), (80, 25, 15, 3)]
FIRE_LABELS = ["Low", "Guarded", "Elevated", "High", "Extreme"]


# =============================================================================
# TERRAIN CLASSIFICATION
# =============================================================================

SNOW_COVERAGE_DEPTH_IN = 2.0
SNOW_COVERAGE_SWE_IN = 0.5
FREEZE_THAW_LOW_F = 31
FREEZE_THAW_HIGH_F = 35
SPRING_CYCLE_HIGH_F = 38

# Solar elevation (degrees) above which a segment counts as strongly insolated
STRONG_SUN_ELEVATION_DEG = 30.0


# =============================================================================
# ELEVATION FORECAST BANDS
# =============================================================================

# Standard lapse adjustments per 1000 ft of elevation gain
TEMP_LAPSE_F_PER_1000FT = 3.3
WIND_INCREASE_MPH_PER_1000FT = 2.0
GUST_INCREASE_MPH_PER_1000FT = 2.5

# (minimum objective elevation ft, [(label, offset from objective ft), ...])
ELEVATION_BAND_TEMPLATES = [
    (13000, [("Approach Terrain", -3500), ("Mid Mountain", -2200), ("Near Objective", -1000), ("Objective Elevation", 0)]),
    (9000, [("Approach Terrain", -2800), ("Mid Mountain", -1700), ("Near Objective", -800), ("Objective Elevation", 0)]),
    (6000, [("Lower Terrain", -2000), ("Mid Terrain", -1200), ("Near Objective", -500), ("Objective Elevation", 0)]),
    (0, [("Lower Terrain", -1000), ("Mid Terrain", -500), ("Near Objective", -200), ("Objective Elevation", 0)]),
]
