"""
SummitCast Utility Functions

This module provides utility functions for the safety synthesis pipeline:
- Geographic calculations (Haversine distance, polygon containment, centroids)
- Time and date operations (request parsing, seasons, solar position)
- Weather math (apparent temperature, wind parsing, AQI categories, elevation bands)
"""

# Geographic utilities
from .geo_utils import (
    haversine_distance,
    point_in_geometry,
    geometry_centroid,
    within_bounds,
)

# Time and date utilities
from .time_utils import (
    parse_planning_date,
    parse_start_time,
    clamp_travel_window,
    get_avalanche_season,
    parse_iso_datetime,
    hours_between,
    count_freeze_thaw_cycles,
    celsius_to_fahrenheit,
    fahrenheit_to_celsius,
    solar_elevation,
    solar_events,
    hourly_solar_curve,
)

# Weather math
from .weather_math import (
    parse_number,
    feels_like_f,
    parse_wind_mph,
    classify_us_aqi,
    build_elevation_forecast_bands,
)

__all__ = [
    # Geographic
    "haversine_distance",
    "point_in_geometry",
    "geometry_centroid",
    "within_bounds",
    # Time/Date
    "parse_planning_date",
    "parse_start_time",
    "clamp_travel_window",
    "get_avalanche_season",
    "parse_iso_datetime",
    "hours_between",
    "count_freeze_thaw_cycles",
    "celsius_to_fahrenheit",
    "fahrenheit_to_celsius",
    "solar_elevation",
    "solar_events",
    "hourly_solar_curve",
    # Weather math
    "parse_number",
    "feels_like_f",
    "parse_wind_mph",
    "classify_us_aqi",
    "build_elevation_forecast_bands",
]
