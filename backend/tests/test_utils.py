"""
Tests for the utility layer: request parsing, solar position, polygon
geometry, and the weather math helpers.
"""
import pytest
from datetime import date, datetime, time, timedelta, timezone

from summitcast.errors import RequestValidationFailure
from summitcast.utils import (
    celsius_to_fahrenheit,
    clamp_travel_window,
    classify_us_aqi,
    count_freeze_thaw_cycles,
    feels_like_f,
    fahrenheit_to_celsius,
    geometry_centroid,
    get_avalanche_season,
    haversine_distance,
    hourly_solar_curve,
    parse_iso_datetime,
    parse_number,
    parse_planning_date,
    parse_start_time,
    parse_wind_mph,
    point_in_geometry,
    solar_elevation,
    solar_events,
    within_bounds,
)
from summitcast.utils.weather_math import (
    build_elevation_forecast_bands,
    degrees_to_cardinal,
    finite_values,
    normalize_alert_severity,
    normalize_wind_direction,
)


# ============================================================================
# Request parsing
# ============================================================================


class TestRequestParsing:
    """Tests for date/start/window parsing"""

    def test_parse_planning_date(self):
        assert parse_planning_date("2026-02-14") == date(2026, 2, 14)

    @pytest.mark.parametrize("value", ["2026-02-30", "02/14/2026", "2026-2-14", "", None])
    def test_parse_planning_date_rejects(self, value):
        with pytest.raises(RequestValidationFailure):
            parse_planning_date(value)

    def test_parse_start_time(self):
        assert parse_start_time("06:30") == time(6, 30)
        assert parse_start_time("23:59") == time(23, 59)

    @pytest.mark.parametrize("value", ["24:00", "6:30", "06:60", "noon", None])
    def test_parse_start_time_rejects(self, value):
        with pytest.raises(RequestValidationFailure):
            parse_start_time(value)

    def test_clamp_travel_window(self):
        assert clamp_travel_window(None) == 12
        assert clamp_travel_window(None, default=8) == 8
        assert clamp_travel_window(0) == 1
        assert clamp_travel_window(36) == 24
        assert clamp_travel_window(10) == 10


class TestSeasonsAndTimestamps:
    def test_avalanche_season(self):
        assert get_avalanche_season(1) == "winter"
        assert get_avalanche_season(11) == "winter"
        assert get_avalanche_season(5) == "shoulder"
        assert get_avalanche_season(7) == "summer"
        assert get_avalanche_season(None) == "unknown"

    def test_parse_iso_datetime_variants(self):
        zulu = parse_iso_datetime("2026-02-14T13:30:00Z")
        assert zulu == datetime(2026, 2, 14, 13, 30, tzinfo=timezone.utc)

        naive = parse_iso_datetime("2026-02-14T13:30:00")
        assert naive.tzinfo is not None
        assert naive == zulu

        offset = parse_iso_datetime("2026-02-14T06:30:00-07:00")
        assert offset == zulu

        epoch = parse_iso_datetime(1771075800)
        assert epoch == zulu

    @pytest.mark.parametrize("value", [None, "", "not a date", True, {}])
    def test_parse_iso_datetime_rejects(self, value):
        assert parse_iso_datetime(value) is None

    def test_count_freeze_thaw_cycles_skips_missing(self):
        assert count_freeze_thaw_cycles([30, 34, 30, None, 35]) == 3
        assert count_freeze_thaw_cycles([40, 41, 42]) == 0
        assert count_freeze_thaw_cycles([]) == 0

    def test_temperature_conversions(self):
        assert celsius_to_fahrenheit(0) == 32
        assert celsius_to_fahrenheit(100) == 212
        assert fahrenheit_to_celsius(32) == 0


# ============================================================================
# Solar position
# ============================================================================


class TestSolar:
    def test_summer_solstice_noon_elevation(self):
        noon = datetime(2024, 6, 21, 19, 0, tzinfo=timezone.utc)
        assert solar_elevation(40.0, -105.0, noon) == pytest.approx(73.4, abs=1.0)

    def test_sun_below_horizon_at_local_midnight(self):
        midnight = datetime(2026, 2, 14, 7, 0, tzinfo=timezone.utc)  # 00:00 MST
        assert solar_elevation(39.1, -106.4, midnight) < 0

    def test_solar_events_ordering(self):
        events = solar_events(39.1178, -106.4454, date(2026, 2, 14))
        assert events["polar"] is None
        assert events["sunrise"] < events["solar_noon"] < events["sunset"]
        assert 9 * 3600 < events["day_length_seconds"] < 12 * 3600

    def test_polar_night_and_day(self):
        winter = solar_events(78.2, 15.6, date(2026, 12, 21))
        assert winter["polar"] == "night"
        assert winter["sunrise"] is None and winter["sunset"] is None
        assert winter["day_length_seconds"] == 0

        summer = solar_events(78.2, 15.6, date(2026, 6, 21))
        assert summer["polar"] == "day"
        assert summer["day_length_seconds"] == 86400

    def test_hourly_curve_has_24_local_points(self):
        midnight = datetime(2026, 2, 14, tzinfo=timezone(timedelta(hours=-7)))
        curve = hourly_solar_curve(39.1178, -106.4454, midnight)
        assert len(curve) == 24
        assert curve[0]["time"].startswith("2026-02-14T00:00:00")
        peak = max(curve, key=lambda point: point["elevation_deg"])
        assert peak["time"][11:13] in ("11", "12", "13")


# ============================================================================
# Geometry
# ============================================================================

SQUARE_WITH_HOLE = {
    "type": "Polygon",
    "coordinates": [
        [[0, 0], [0, 4], [4, 4], [4, 0], [0, 0]],
        [[1, 1], [1, 2], [2, 2], [2, 1], [1, 1]],
    ],
}


class TestGeometry:
    def test_haversine_distance(self):
        assert haversine_distance(40.0, -105.0, 40.1, -105.1) == pytest.approx(14.0, abs=0.2)
        assert haversine_distance(40.0, -105.0, 40.0, -105.0) == 0

    def test_point_in_polygon_respects_holes(self):
        assert point_in_geometry(3.0, 3.0, SQUARE_WITH_HOLE) is True
        assert point_in_geometry(1.5, 1.5, SQUARE_WITH_HOLE) is False
        assert point_in_geometry(5.0, 5.0, SQUARE_WITH_HOLE) is False

    def test_point_in_multipolygon(self):
        geometry = {
            "type": "MultiPolygon",
            "coordinates": [
                [[[0, 0], [0, 1], [1, 1], [1, 0], [0, 0]]],
                [[[10, 10], [10, 11], [11, 11], [11, 10], [10, 10]]],
            ],
        }
        assert point_in_geometry(10.5, 10.5, geometry) is True
        assert point_in_geometry(5.0, 5.0, geometry) is False

    @pytest.mark.parametrize("geometry", [None, {}, {"type": "Point", "coordinates": [0, 0]},
                                          {"type": "Polygon", "coordinates": "bad"}])
    def test_malformed_geometry(self, geometry):
        assert point_in_geometry(0.5, 0.5, geometry) is False
        assert geometry_centroid(geometry) is None

    def test_centroid_ignores_closing_vertex(self):
        square = {"type": "Polygon", "coordinates": [[[0, 0], [0, 2], [2, 2], [2, 0], [0, 0]]]}
        assert geometry_centroid(square) == (1.0, 1.0)

    def test_within_bounds(self):
        assert within_bounds(40.0, -105.0, (39.0, 41.0, -106.0, -104.0)) is True
        assert within_bounds(42.0, -105.0, (39.0, 41.0, -106.0, -104.0)) is False


# ============================================================================
# Weather math
# ============================================================================


class TestWeatherMath:
    def test_parse_number_never_invents_zero(self):
        assert parse_number("12.5") == 12.5
        assert parse_number(0) == 0.0
        assert parse_number("") is None
        assert parse_number("  ") is None
        assert parse_number("nan") is None
        assert parse_number(True) is None
        assert parse_number("abc") is None
        assert finite_values([1, None, "2", "x"]) == [1.0, 2.0]

    def test_parse_wind_first_figure_wins(self):
        assert parse_wind_mph("5 to 10 mph") == 5.0
        assert parse_wind_mph("15 mph") == 15.0
        assert parse_wind_mph(12.6) == 13.0
        assert parse_wind_mph("calm") is None
        assert parse_wind_mph(None) is None

    def test_wind_direction_helpers(self):
        assert degrees_to_cardinal(0) == "N"
        assert degrees_to_cardinal(270) == "W"
        assert degrees_to_cardinal(350) == "N"
        assert degrees_to_cardinal(None) is None
        assert normalize_wind_direction("nw") == "NW"
        assert normalize_wind_direction("Variable") == "VRB"
        assert normalize_wind_direction("") is None

    def test_feels_like(self):
        assert feels_like_f(None, 10, 50) is None
        assert feels_like_f(60, 10, 50) == 60
        assert feels_like_f(30, 10, 50) < 30
        assert feels_like_f(30, 2, 50) == 30
        assert feels_like_f(95, 5, 50) > 95

    def test_aqi_categories(self):
        assert classify_us_aqi(None) == "Unknown"
        assert classify_us_aqi(42) == "Good"
        assert classify_us_aqi(120) == "Unhealthy for Sensitive Groups"
        assert classify_us_aqi(350) == "Hazardous"

    def test_alert_severity_normalization(self):
        assert normalize_alert_severity("Severe") == "severe"
        assert normalize_alert_severity(None) == "unknown"
        assert normalize_alert_severity("catastrophic") == "unknown"

    def test_elevation_forecast_bands(self):
        bands = build_elevation_forecast_bands(10000, 20.0, 10.0, 20.0)
        assert [b["elevation_ft"] for b in bands] == [7200, 8300, 9200, 10000]
        lowest, objective = bands[0], bands[-1]
        assert lowest["label"] == "Approach Terrain"
        assert lowest["delta_from_objective_ft"] == -2800
        # 2.8 kft lower: +9.2F, -5.6 mph wind, -7 mph gust
        assert lowest["temp_f"] == 29.0
        assert lowest["wind_mph"] == 4.0
        assert lowest["gust_mph"] == 13.0
        assert objective["label"] == "Objective Elevation"
        assert objective["temp_f"] == 20.0

    def test_elevation_bands_near_sea_level_are_deduplicated(self):
        bands = build_elevation_forecast_bands(150, 50.0, 5.0, None)
        assert [b["elevation_ft"] for b in bands] == [0, 150]
        assert build_elevation_forecast_bands(None, 50.0, 5.0, 10.0) == []
        assert build_elevation_forecast_bands(9000, None, 5.0, 10.0) == []
