"""
Tests for time zone resolution and the derived heat/fire sub-signals.
"""
from datetime import date, time, timedelta
from unittest.mock import patch
from zoneinfo import ZoneInfo

import pytest

from summitcast.errors import RequestValidationFailure, UpstreamTimeout
from summitcast.services.fire_risk import build_fire_risk
from summitcast.services.heat_risk import build_heat_risk, peak_feels_like
from summitcast.services.timezone_service import (
    build_planning_window,
    longitude_offset_zone,
    resolve_timezone,
)


# ============================================================================
# Time zone resolution
# ============================================================================


class TestTimezoneResolution:
    """Tests for resolve_timezone()"""

    @patch('summitcast.services.timezone_service.fetch_json')
    def test_noaa_zone_is_used_and_cached(self, mock_fetch, cache):
        mock_fetch.return_value = {
            "properties": {
                "timeZone": "America/Denver",
                "forecastHourly": "https://api.weather.gov/gridpoints/GJT/170,110/forecast/hourly",
            }
        }

        zone, name, points = resolve_timezone(39.1178, -106.4454, cache)
        assert name == "America/Denver"
        assert zone == ZoneInfo("America/Denver")
        assert points["forecastHourly"].endswith("/forecast/hourly")

        resolve_timezone(39.1178, -106.4454, cache)
        assert mock_fetch.call_count == 1

    @patch('summitcast.services.timezone_service.fetch_json')
    def test_upstream_failure_falls_back_to_longitude(self, mock_fetch, cache):
        mock_fetch.side_effect = UpstreamTimeout("timed out")

        zone, name, points = resolve_timezone(46.85, -121.76, cache)
        assert name == "UTC-08:00"
        assert points is None
        assert zone.utcoffset(None) == timedelta(hours=-8)

    @patch('summitcast.services.timezone_service.fetch_json')
    def test_unknown_zone_name_falls_back(self, mock_fetch, cache):
        mock_fetch.return_value = {"properties": {"timeZone": "Mars/Olympus_Mons"}}

        _, name, points = resolve_timezone(39.1178, -106.4454, cache)
        assert name == "UTC-07:00"
        assert points == {"timeZone": "Mars/Olympus_Mons"}

    def test_longitude_offset_zone(self):
        assert longitude_offset_zone(-105.6)[1] == "UTC-07:00"
        assert longitude_offset_zone(8.6)[1] == "UTC+01:00"
        assert longitude_offset_zone(0.0)[1] == "UTC+00:00"

    def test_planning_window_is_local_wall_clock(self):
        window = build_planning_window(
            date(2026, 7, 4), time(5, 0), 10, ZoneInfo("America/Denver"), "America/Denver"
        )
        assert window.start.isoformat() == "2026-07-04T05:00:00-06:00"
        assert window.start_utc.hour == 11
        assert (window.end_utc - window.start_utc) == timedelta(hours=10)
        assert window.local_midnight.hour == 0

    def test_start_skipped_by_spring_forward_is_rejected(self):
        with pytest.raises(RequestValidationFailure) as exc_info:
            build_planning_window(date(2026, 3, 8), time(2, 30), 8, ZoneInfo("America/Denver"), "America/Denver")
        assert str(exc_info.value) == (
            "start 02:30 does not exist on 2026-03-08 in America/Denver (daylight saving change)"
        )

    def test_repeated_fall_back_start_uses_first_occurrence(self):
        window = build_planning_window(
            date(2026, 11, 1), time(1, 30), 8, ZoneInfo("America/Denver"), "America/Denver"
        )
        assert window.start.isoformat() == "2026-11-01T01:30:00-06:00"

    def test_fixed_offset_zone_never_rejects(self):
        zone, name = longitude_offset_zone(-105.6)
        window = build_planning_window(date(2026, 3, 8), time(2, 30), 8, zone, name)
        assert window.start.isoformat() == "2026-03-08T02:30:00-07:00"


# ============================================================================
# Heat risk
# ============================================================================


class TestHeatRisk:
    def test_peak_uses_each_trend_points_own_feels_like(self):
        # Humid hour 3 (feels 95 at 88F) must win over the hotter but drier hour 6
        weather = {
            "temp_f": 80,
            "feels_like_f": 80,
            "humidity": 20,
            "is_daytime": True,
            "trend": [
                {"temp_f": 82, "feels_like_f": 82},
                {"temp_f": 85, "feels_like_f": 86},
                {"temp_f": 86, "feels_like_f": 89},
                {"temp_f": 88, "feels_like_f": 95},
                {"temp_f": 89, "feels_like_f": 90},
                {"temp_f": 89, "feels_like_f": 89},
                {"temp_f": 90, "feels_like_f": 90},
            ],
        }
        assert peak_feels_like(weather) == 95.0

        heat = build_heat_risk(weather)
        assert heat["status"] == "ok"
        assert heat["level"] == 3
        assert heat["label"] == "High"
        assert heat["metrics"]["peak_feels_like_f"] == 95.0
        assert heat["metrics"]["peak_temp_f"] == 90.0

    def test_missing_point_feels_like_uses_temperature(self):
        weather = {"feels_like_f": 70, "trend": [{"temp_f": 101, "feels_like_f": None}]}
        assert peak_feels_like(weather) == 101.0

    def test_cool_day_is_low(self):
        heat = build_heat_risk({"temp_f": 45, "feels_like_f": 40, "humidity": 30, "trend": []})
        assert heat["level"] == 0
        assert heat["label"] == "Low"

    def test_warm_daytime_is_guarded(self):
        heat = build_heat_risk({"temp_f": 78, "feels_like_f": 78, "humidity": 20, "is_daytime": True, "trend": []})
        assert heat["level"] == 1

    def test_humidity_tier(self):
        heat = build_heat_risk({"temp_f": 87, "feels_like_f": 83, "humidity": 60, "is_daytime": True, "trend": []})
        assert heat["level"] == 3

    def test_unusable_weather_is_unavailable(self):
        heat = build_heat_risk({"temp_f": 100}, weather_usable=False)
        assert heat["status"] == "unavailable"
        assert heat["level"] == 0


# ============================================================================
# Fire risk
# ============================================================================


class TestFireRisk:
    def test_red_flag_warning(self):
        fire = build_fire_risk({"temp_f": 60}, [{"event": "Red Flag Warning", "severity": "Severe"}], None)
        assert fire["level"] == 4
        assert fire["alerts_considered"][0]["event"] == "Red Flag Warning"

    def test_hot_dry_windy(self):
        fire = build_fire_risk({"temp_f": 92, "humidity": 12, "wind_mph": 22}, [], None)
        assert fire["level"] == 4

    def test_breezy_dry(self):
        fire = build_fire_risk({"temp_f": 72, "humidity": 25, "wind_mph": 5, "gust_mph": 24}, [], None)
        assert fire["level"] == 2

    def test_smoke_from_aqi_and_description(self):
        assert build_fire_risk({"description": "Areas of smoke"}, [], None)["level"] == 2
        assert build_fire_risk({}, [], 150)["level"] == 2
        assert build_fire_risk({}, [], 60)["level"] == 1

    def test_quiet_conditions(self):
        fire = build_fire_risk({"temp_f": 50, "humidity": 60, "wind_mph": 5}, [], 20)
        assert fire["level"] == 0
        assert fire["label"] == "Low"
        assert fire["reasons"]
