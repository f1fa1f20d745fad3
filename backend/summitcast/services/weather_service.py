"""
Weather Service - Hourly forecast snapshot for the planned start

Primary source is NOAA/NWS (points metadata -> forecastHourly). Open-Meteo
plays two roles:
- gap filler: when NOAA succeeds but leaves fields empty (issue time, dew
  point, cloud cover, pressure, gusts, wind direction, 24h temperature
  context) or the trend is shallower than 6 hours, only those fields are
  copied over and the result is marked degraded
- replacement: when NOAA fails or no NOAA period covers the planned instant

If both fail the snapshot is explicitly unavailable (all numbers None).

Every snapshot also carries a derived visibility_risk block and lapse-rate
elevation_forecast bands below the objective.

API: https://www.weather.gov/documentation/services-web-api
     https://open-meteo.com/en/docs
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from summitcast.errors import UpstreamError, UpstreamMalformed
from summitcast.services.algorithm_config import (
    FT_PER_METER,
    MIN_TREND_POINTS,
    TEMPERATURE_CONTEXT_HOURS,
)
from summitcast.services.http_client import fetch_json, open_meteo_params, open_meteo_url
from summitcast.services.provider_base import (
    STATUS_DEGRADED,
    STATUS_OK,
    STATUS_ZEROED,
    FetchContext,
    ProviderFetcher,
    ProviderResult,
)
from summitcast.services.timezone_service import fetch_noaa_points
from summitcast.services.visibility_risk import build_visibility_risk
from summitcast.utils.time_utils import celsius_to_fahrenheit, parse_iso_datetime
from summitcast.utils.weather_math import (
    build_elevation_forecast_bands,
    degrees_to_cardinal,
    feels_like_f,
    normalize_wind_direction,
    parse_number,
    parse_wind_mph,
)

# Configure logging
logger = logging.getLogger(__name__)

UNAVAILABLE_DESCRIPTION = "Weather data unavailable"
NOAA_FORECAST_LINK = "https://forecast.weather.gov/MapClick.php?lat={lat:.4f}&lon={lon:.4f}"

OPEN_METEO_WEATHER_HOURLY_FIELDS = [
    "temperature_2m",
    "dew_point_2m",
    "relative_humidity_2m",
    "precipitation_probability",
    "cloud_cover",
    "surface_pressure",
    "weather_code",
    "wind_speed_10m",
    "wind_gusts_10m",
    "wind_direction_10m",
    "is_day",
]

# Snapshot fields Open-Meteo may fill when NOAA leaves them empty
GAP_FILL_FIELDS = [
    "issued_time",
    "timezone",
    "dew_point_f",
    "cloud_cover",
    "pressure_hpa",
    "gust_mph",
    "wind_direction",
    "temperature_context",
]

# Per-hour trend fields filled by matching timestamps
TREND_GAP_FIELDS = ["dew_point_f", "cloud_cover", "pressure_hpa", "gust_mph", "wind_direction"]

OPEN_METEO_CODE_LABELS = {
    0: "Clear",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Rime fog",
    51: "Light drizzle",
    53: "Drizzle",
    55: "Heavy drizzle",
    56: "Freezing drizzle",
    57: "Heavy freezing drizzle",
    61: "Light rain",
    63: "Rain",
    65: "Heavy rain",
    66: "Freezing rain",
    67: "Heavy freezing rain",
    71: "Light snow",
    73: "Snow",
    75: "Heavy snow",
    77: "Snow grains",
    80: "Rain showers",
    81: "Rain showers",
    82: "Violent rain showers",
    85: "Snow showers",
    86: "Heavy snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with hail",
    99: "Severe thunderstorm with hail",
}


def open_meteo_code_to_text(code: Any) -> str:
    """Translate a WMO weather code into a short description."""
    value = parse_number(code)
    if value is None:
        return "Unknown"
    return OPEN_METEO_CODE_LABELS.get(int(value), "Unknown")


def noaa_dew_point_f(field: Any) -> Optional[float]:
    """NOAA quantitative value (degC or degF) -> rounded F."""
    if not isinstance(field, dict):
        return None
    value = parse_number(field.get("value"))
    if value is None:
        return None
    unit = str(field.get("unitCode") or "").lower()
    if "degc" in unit:
        value = celsius_to_fahrenheit(value)
    return float(round(value))


def noaa_pressure_hpa(field: Any) -> Optional[float]:
    """NOAA barometric pressure (Pa or hPa) -> hPa, one decimal."""
    if isinstance(field, dict):
        value = parse_number(field.get("value"))
        unit = str(field.get("unitCode") or "").lower()
    else:
        value = parse_number(field)
        unit = ""
    if value is None:
        return None
    if "hpa" in unit or "mb" in unit:
        return round(value, 1)
    if "pa" in unit or value > 2000:
        return round(value / 100, 1)
    return round(value, 1)


def noaa_cloud_cover(period: Dict[str, Any]) -> Optional[float]:
    """
    Cloud cover percent for one NOAA period.

    Uses skyCover when present, then the icon sky code, then the short
    forecast text.
    """
    sky = period.get("skyCover")
    sky_value = parse_number(sky.get("value")) if isinstance(sky, dict) else None
    if sky_value is not None:
        return float(max(0, min(100, round(sky_value))))

    icon = str(period.get("icon") or "").lower()
    if icon:
        tokens = [t for t in icon.replace("?", "/").replace(",", "/").split("/") if t]
        for prefix, cover in (("ovc", 95.0), ("bkn", 75.0), ("sct", 50.0), ("few", 20.0)):
            if any(token.startswith(prefix) for token in tokens):
                return cover
        if any(token in ("skc", "clr") for token in tokens):
            return 5.0

    text = " ".join(str(period.get("shortForecast") or "").lower().split())
    if not text:
        return None
    if "overcast" in text:
        return 95.0
    if "mostly cloudy" in text:
        return 80.0
    if "partly cloudy" in text or "partly sunny" in text:
        return 50.0
    if "mostly sunny" in text:
        return 25.0
    if "sunny" in text or "clear" in text:
        return 10.0
    if "cloudy" in text:
        return 70.0
    return None


def build_temperature_context(points: List[Dict[str, Any]], window_hours: int = TEMPERATURE_CONTEXT_HOURS) -> Optional[Dict[str, Any]]:
    """
    Min/max plus overnight low and daytime high over the next window_hours.

    Args:
        points: Dicts with "temp_f" and "is_daytime" (bool or None)

    Returns:
        Context dict, or None when no point carries a temperature
    """
    valid = [p for p in points[:window_hours] if p.get("temp_f") is not None]
    if not valid:
        return None
    temps = [p["temp_f"] for p in valid]
    day = [p["temp_f"] for p in valid if p.get("is_daytime") is True]
    night = [p["temp_f"] for p in valid if p.get("is_daytime") is False]
    return {
        "window_hours": window_hours,
        "min_temp_f": min(temps),
        "max_temp_f": max(temps),
        "overnight_low_f": min(night) if night else None,
        "daytime_high_f": max(day) if day else None,
    }


def unavailable_weather_snapshot(latitude: float, longitude: float) -> Dict[str, Any]:
    """Explicit no-data snapshot: every number None, never zero."""
    return {
        "temp_f": None,
        "feels_like_f": None,
        "dew_point_f": None,
        "humidity": None,
        "wind_mph": None,
        "gust_mph": None,
        "wind_direction": None,
        "pressure_hpa": None,
        "cloud_cover": None,
        "precip_chance": None,
        "description": UNAVAILABLE_DESCRIPTION,
        "is_daytime": None,
        "issued_time": None,
        "timezone": None,
        "forecast_start_time": None,
        "forecast_end_time": None,
        "elevation_ft": None,
        "trend": [],
        "temperature_context": None,
        "source": "Unavailable",
        "forecast_link": NOAA_FORECAST_LINK.format(lat=latitude, lon=longitude),
        "gap_filled_fields": [],
    }


def _hour_key(iso_value: Optional[str]) -> Optional[str]:
    parsed = parse_iso_datetime(iso_value)
    if parsed is None:
        return None
    return parsed.astimezone(timezone.utc).strftime("%Y-%m-%dT%H")


def _snapshot_from_points(points: List[Dict[str, Any]], index: int, trend_hours: int) -> Dict[str, Any]:
    """Common snapshot assembly from a normalized hourly point list."""
    selected = points[index]
    trend = points[index:index + trend_hours]
    context = build_temperature_context(points[index:index + TEMPERATURE_CONTEXT_HOURS])
    return {
        "temp_f": selected["temp_f"],
        "feels_like_f": selected["feels_like_f"],
        "dew_point_f": selected["dew_point_f"],
        "humidity": selected["humidity"],
        "wind_mph": selected["wind_mph"],
        "gust_mph": selected["gust_mph"],
        "wind_direction": selected["wind_direction"],
        "pressure_hpa": selected["pressure_hpa"],
        "cloud_cover": selected["cloud_cover"],
        "precip_chance": selected["precip_chance"],
        "description": selected["condition"] or "Unknown",
        "is_daytime": selected["is_daytime"],
        "forecast_start_time": selected["time"],
        "forecast_end_time": selected.get("end_time"),
        "trend": trend,
        "temperature_context": context,
        "gap_filled_fields": [],
    }


def build_noaa_snapshot(
    points_properties: Dict[str, Any],
    hourly_payload: Dict[str, Any],
    planned_start: datetime,
    trend_hours: int,
) -> Dict[str, Any]:
    """
    Build the snapshot from a NOAA forecastHourly payload.

    Raises:
        UpstreamMalformed: No periods, or no period covers the planned start
    """
    properties = hourly_payload["properties"]
    periods = properties.get("periods") or []
    if not periods:
        raise UpstreamMalformed("NOAA hourly forecast has no periods")

    points = []
    selected_index = None
    for period in periods:
        start = parse_iso_datetime(period.get("startTime"))
        end = parse_iso_datetime(period.get("endTime"))
        if start is None:
            continue
        if end is None:
            end = start + timedelta(hours=1)
        if selected_index is None and start <= planned_start < end:
            selected_index = len(points)

        temp = parse_number(period.get("temperature"))
        if temp is not None and str(period.get("temperatureUnit") or "F").upper() == "C":
            temp = celsius_to_fahrenheit(temp)
        wind = parse_wind_mph(period.get("windSpeed"))
        gust = parse_wind_mph(period.get("windGust"))
        humidity_field = period.get("relativeHumidity")
        humidity = parse_number(humidity_field.get("value")) if isinstance(humidity_field, dict) else None
        precip_field = period.get("probabilityOfPrecipitation")
        precip = parse_number(precip_field.get("value")) if isinstance(precip_field, dict) else None
        is_daytime = period.get("isDaytime") if isinstance(period.get("isDaytime"), bool) else None

        points.append({
            "time": period.get("startTime"),
            "end_time": period.get("endTime"),
            "temp_f": temp,
            "feels_like_f": feels_like_f(temp, wind, humidity),
            "wind_mph": wind,
            "gust_mph": max(gust, wind or 0.0) if gust is not None else None,
            "wind_direction": normalize_wind_direction(period.get("windDirection")),
            "precip_chance": precip,
            "humidity": humidity,
            "dew_point_f": noaa_dew_point_f(period.get("dewpoint")),
            "cloud_cover": noaa_cloud_cover(period),
            "pressure_hpa": noaa_pressure_hpa(period.get("barometricPressure")),
            "condition": period.get("shortForecast") or None,
            "is_daytime": is_daytime,
        })

    if selected_index is None:
        raise UpstreamMalformed("No NOAA hourly period covers the planned start")

    snapshot = _snapshot_from_points(points, selected_index, trend_hours)

    elevation_m = None
    for holder in (hourly_payload["properties"], points_properties):
        elevation = holder.get("elevation")
        if isinstance(elevation, dict):
            elevation_m = parse_number(elevation.get("value"))
            if elevation_m is not None:
                break

    snapshot.update({
        "issued_time": properties.get("updateTime") or properties.get("generatedAt") or None,
        "timezone": points_properties.get("timeZone") or None,
        "elevation_ft": round(elevation_m * FT_PER_METER) if elevation_m is not None else None,
        "source": "NOAA",
    })
    return snapshot


def build_open_meteo_snapshot(
    payload: Dict[str, Any],
    planned_start: datetime,
    trend_hours: int,
    issued_time: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Build the snapshot from an Open-Meteo hourly forecast payload.

    Open-Meteo publishes no model issuance time, so issued_time stays None
    unless the caller knows one.

    Raises:
        UpstreamMalformed: No hourly series, or the planned hour is outside
            the forecast horizon
    """
    hourly = payload["hourly"]
    times = hourly.get("time") or []
    if not times:
        raise UpstreamMalformed("Open-Meteo forecast has no hourly time series")
    offset = timedelta(seconds=parse_number(payload.get("utc_offset_seconds")) or 0)
    zone = timezone(offset)

    def series_value(key: str, idx: int) -> Optional[float]:
        series = hourly.get(key) or []
        return parse_number(series[idx]) if idx < len(series) else None

    points = []
    selected_index = None
    for idx, raw_time in enumerate(times):
        try:
            local = datetime.fromisoformat(str(raw_time)).replace(tzinfo=zone)
        except ValueError:
            continue
        if selected_index is None and local <= planned_start < local + timedelta(hours=1):
            selected_index = len(points)

        temp = series_value("temperature_2m", idx)
        wind = series_value("wind_speed_10m", idx)
        gust = series_value("wind_gusts_10m", idx)
        humidity = series_value("relative_humidity_2m", idx)
        dew_point = series_value("dew_point_2m", idx)
        pressure = series_value("surface_pressure", idx)
        is_day = series_value("is_day", idx)

        points.append({
            "time": local.isoformat(),
            "end_time": (local + timedelta(hours=1)).isoformat(),
            "temp_f": float(round(temp)) if temp is not None else None,
            "feels_like_f": feels_like_f(temp, wind, humidity),
            "wind_mph": float(round(wind)) if wind is not None else None,
            "gust_mph": float(max(round(gust), round(wind or 0))) if gust is not None else None,
            "wind_direction": degrees_to_cardinal(series_value("wind_direction_10m", idx)),
            "precip_chance": series_value("precipitation_probability", idx),
            "humidity": humidity,
            "dew_point_f": float(round(dew_point)) if dew_point is not None else None,
            "cloud_cover": series_value("cloud_cover", idx),
            "pressure_hpa": round(pressure, 1) if pressure is not None else None,
            "condition": open_meteo_code_to_text(series_value("weather_code", idx)),
            "is_daytime": (is_day >= 1) if is_day is not None else None,
        })

    if selected_index is None:
        raise UpstreamMalformed("Planned start is outside the Open-Meteo forecast horizon")

    snapshot = _snapshot_from_points(points, selected_index, trend_hours)
    elevation_m = parse_number(payload.get("elevation"))
    snapshot.update({
        "issued_time": issued_time,
        "timezone": payload.get("timezone") or None,
        "elevation_ft": round(elevation_m * FT_PER_METER) if elevation_m is not None else None,
        "source": "Open-Meteo",
    })
    return snapshot


def missing_gap_fields(snapshot: Dict[str, Any]) -> List[str]:
    """Snapshot fields NOAA left empty, plus "trend" when it is too shallow."""
    missing = [key for key in GAP_FILL_FIELDS if snapshot.get(key) in (None, "")]
    if len(snapshot.get("trend") or []) < MIN_TREND_POINTS:
        missing.append("trend")
    return missing


def gap_fill(primary: Dict[str, Any], supplement: Dict[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
    """
    Copy only missing fields from the supplement into the primary snapshot.

    Returns:
        (merged snapshot, list of filled field names)
    """
    merged = dict(primary)
    filled = []
    for key in GAP_FILL_FIELDS:
        if merged.get(key) in (None, "") and supplement.get(key) not in (None, ""):
            merged[key] = supplement[key]
            filled.append(key)

    primary_trend = primary.get("trend") or []
    supplement_trend = supplement.get("trend") or []
    if len(primary_trend) < MIN_TREND_POINTS and len(supplement_trend) > len(primary_trend):
        merged["trend"] = supplement_trend
        filled.append("trend")
    elif primary_trend and supplement_trend:
        by_hour = {_hour_key(p.get("time")): p for p in supplement_trend}
        merged_trend = []
        trend_filled = False
        for point in primary_trend:
            match = by_hour.get(_hour_key(point.get("time")))
            if match is None:
                merged_trend.append(point)
                continue
            patched = dict(point)
            for key in TREND_GAP_FIELDS:
                if patched.get(key) is None and match.get(key) is not None:
                    patched[key] = match[key]
                    trend_filled = True
            merged_trend.append(patched)
        if trend_filled:
            merged["trend"] = merged_trend
            filled.append("trend_points")

    merged["gap_filled_fields"] = filled
    return merged, filled


def with_derived_fields(snapshot: Dict[str, Any]) -> Dict[str, Any]:
    """Attach the visibility-risk block and elevation forecast bands."""
    enriched = dict(snapshot)
    enriched["visibility_risk"] = build_visibility_risk(snapshot)
    enriched["elevation_forecast"] = build_elevation_forecast_bands(
        parse_number(snapshot.get("elevation_ft")),
        parse_number(snapshot.get("temp_f")),
        parse_number(snapshot.get("wind_mph")),
        parse_number(snapshot.get("gust_mph")),
    )
    return enriched


class WeatherFetcher(ProviderFetcher):
    """NOAA hourly forecast with Open-Meteo gap fill and replacement."""

    category = "weather"
    source = "NOAA"

    def result(self, status: str, payload: Dict[str, Any], **kwargs) -> ProviderResult:
        return super().result(status, with_derived_fields(payload), **kwargs)

    def _fetch(self, ctx: FetchContext) -> ProviderResult:
        window = ctx.window
        try:
            noaa = self._fetch_noaa(ctx)
        except (UpstreamError, KeyError, IndexError, ValueError, TypeError) as exc:
            logger.info(f"NOAA forecast unavailable, switching to Open-Meteo: {exc}")
            return self._open_meteo_replacement(ctx, f"NOAA forecast unavailable ({exc})")

        gaps = missing_gap_fields(noaa)
        noaa["missing_fields"] = gaps
        if not gaps:
            return self.result(STATUS_OK, noaa)

        try:
            supplement = self._fetch_open_meteo(ctx)
        except (UpstreamError, KeyError, IndexError, ValueError, TypeError) as exc:
            logger.warning(f"Open-Meteo gap fill failed for {ctx.latitude}, {ctx.longitude}: {exc}")
            return self.result(STATUS_OK, noaa, warning="Some NOAA fields were unavailable and could not be filled.")

        merged, filled = gap_fill(noaa, supplement)
        merged["missing_fields"] = missing_gap_fields(merged)
        if not filled:
            return self.result(STATUS_OK, merged)
        logger.info(f"Weather gap-filled from Open-Meteo ({', '.join(filled)}) for start {window.start.isoformat()}")
        return self.result(
            STATUS_DEGRADED,
            merged,
            warning=f"NOAA forecast supplemented with Open-Meteo for: {', '.join(filled)}.",
            source="NOAA + Open-Meteo",
        )

    def _fetch_noaa(self, ctx: FetchContext) -> Dict[str, Any]:
        points = ctx.hints.get("noaa_points")
        if points is None:
            points = fetch_noaa_points(ctx.latitude, ctx.longitude, ctx.cache, timeout=ctx.call_timeout())
        hourly_url = points.get("forecastHourly")
        if not hourly_url:
            raise UpstreamMalformed("NOAA points metadata has no forecastHourly URL")
        hourly_payload = fetch_json(hourly_url, timeout=ctx.call_timeout())
        snapshot = build_noaa_snapshot(points, hourly_payload, ctx.window.start, ctx.window.travel_window_hours)
        snapshot["forecast_link"] = NOAA_FORECAST_LINK.format(lat=ctx.latitude, lon=ctx.longitude)
        return snapshot

    def _fetch_open_meteo(self, ctx: FetchContext) -> Dict[str, Any]:
        params = open_meteo_params({
            "latitude": ctx.latitude,
            "longitude": ctx.longitude,
            "hourly": ",".join(OPEN_METEO_WEATHER_HOURLY_FIELDS),
            "timezone": "auto",
            "forecast_days": 16,
            "temperature_unit": "fahrenheit",
            "wind_speed_unit": "mph",
        })
        url = open_meteo_url("forecast")
        payload = fetch_json(url, params=params, timeout=ctx.call_timeout())
        snapshot = build_open_meteo_snapshot(
            payload,
            ctx.window.start,
            ctx.window.travel_window_hours,
        )
        snapshot["forecast_link"] = url
        return snapshot

    def _open_meteo_replacement(self, ctx: FetchContext, reason: str) -> ProviderResult:
        try:
            snapshot = self._fetch_open_meteo(ctx)
        except (UpstreamError, KeyError, IndexError, ValueError, TypeError) as exc:
            logger.warning(f"Open-Meteo forecast failed for {ctx.latitude}, {ctx.longitude}: {exc}")
            return self.fallback(ctx, f"{reason}; Open-Meteo unavailable ({exc})")
        return self.result(
            STATUS_DEGRADED,
            snapshot,
            warning=f"{reason}. Using Open-Meteo forecast.",
            source="Open-Meteo",
        )

    def fallback(self, ctx: FetchContext, reason: str) -> ProviderResult:
        return self.result(
            STATUS_ZEROED,
            unavailable_weather_snapshot(ctx.latitude, ctx.longitude),
            warning=f"Weather data unavailable: {reason}",
            source="Unavailable",
        )
