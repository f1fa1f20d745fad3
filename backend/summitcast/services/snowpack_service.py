"""
Snowpack Service - SNOTEL station observations + NOHRSC gridded analysis

Two independent sources:
- NRCS AWDB SNOTEL: nearest active station within 140 km (station list cached
  12 hours), latest daily SWE/depth on or before the target date, plus a
  same-day comparison against the previous 10 years (+/- 7 days)
- NOAA NOHRSC Snow Analysis raster identify: point depth (m) and SWE (mm);
  physically implausible pixels are discarded

Both ok -> ok; one -> degraded (partial); none -> zeroed.
"""
import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from summitcast.errors import UpstreamError, UpstreamMalformed
from summitcast.services.algorithm_config import SNOTEL_MAX_STATION_DISTANCE_KM
from summitcast.services.http_client import fetch_json
from summitcast.services.provider_base import (
    STATUS_DEGRADED,
    STATUS_OK,
    STATUS_ZEROED,
    FetchContext,
    ProviderFetcher,
    ProviderResult,
)
from summitcast.utils.geo_utils import haversine_distance
from summitcast.utils.weather_math import parse_number

# Configure logging
logger = logging.getLogger(__name__)

AWDB_BASE_URL = "https://wcc.sc.egov.usda.gov/awdbRestApi/services/v1"
SNOTEL_NETWORKS = {"SNTL", "SNTLT", "MSNT"}
SNOTEL_STATIONS_CACHE_KEY = "snotel_stations:active"
NOHRSC_IDENTIFY_URL = (
    "https://mapservices.weather.noaa.gov/raster/rest/services/snow/NOHRSC_Snow_Analysis/MapServer/identify"
)
NOHRSC_LINK = "https://www.nohrsc.noaa.gov/nsa/"

HISTORICAL_LOOKBACK_YEARS = 10
HISTORICAL_MATCH_WINDOW_DAYS = 7
HISTORICAL_FETCH_LOOKBACK_DAYS = HISTORICAL_LOOKBACK_YEARS * 366 + HISTORICAL_MATCH_WINDOW_DAYS

MAX_NOHRSC_DEPTH_M = 20
MAX_NOHRSC_SWE_MM = 5000
METERS_TO_INCHES = 39.3701
MM_TO_INCHES = 0.0393701

_FAILURES = (UpstreamError, KeyError, IndexError, ValueError, TypeError)


# ============================================================================
# SNOTEL
# ============================================================================

def find_nearest_station(
    latitude: float,
    longitude: float,
    stations: List[Dict[str, Any]],
    max_distance_km: float = SNOTEL_MAX_STATION_DISTANCE_KM,
) -> Optional[Dict[str, Any]]:
    """
    Nearest SNOTEL station within max_distance_km.

    Returns:
        {"station": station, "distance_km": float} or None
    """
    nearest = None
    nearest_distance = None
    for station in stations:
        lat = parse_number(station.get("latitude"))
        lon = parse_number(station.get("longitude"))
        if lat is None or lon is None:
            continue
        distance = haversine_distance(latitude, longitude, lat, lon)
        if nearest_distance is None or distance < nearest_distance:
            nearest, nearest_distance = station, distance
    if nearest is None or nearest_distance > max_distance_km:
        return None
    return {"station": nearest, "distance_km": nearest_distance}


def _dated_values(values: Any) -> List[Dict[str, Any]]:
    samples = []
    for entry in values if isinstance(values, list) else []:
        if not isinstance(entry, dict):
            continue
        value = parse_number(entry.get("value"))
        try:
            day = date.fromisoformat(str(entry.get("date", ""))[:10])
        except ValueError:
            continue
        if value is not None:
            samples.append({"date": day, "value": value})
    samples.sort(key=lambda s: s["date"])
    return samples


def latest_value(values: Any, target: date) -> Optional[Dict[str, Any]]:
    """Latest sample on or before target (or the latest at all when none precede it)."""
    samples = _dated_values(values)
    if not samples:
        return None
    bounded = [s for s in samples if s["date"] <= target]
    return (bounded or samples)[-1]


def _same_day(year: int, target: date) -> date:
    if target.month == 2 and target.day == 29:
        try:
            return date(year, 2, 29)
        except ValueError:
            return date(year, 2, 28)
    return target.replace(year=year)


def historical_average(values: Any, target: date, lookback_years: int = HISTORICAL_LOOKBACK_YEARS) -> Optional[Dict[str, Any]]:
    """
    Average of the same calendar day over previous years.

    For each year the closest sample at most HISTORICAL_MATCH_WINDOW_DAYS
    before the anniversary is used.
    """
    samples = _dated_values(values)
    if not samples:
        return None
    picked = []
    for year in range(target.year - 1, target.year - lookback_years - 1, -1):
        anniversary = _same_day(year, target)
        best = None
        for sample in samples:
            offset = (anniversary - sample["date"]).days
            if offset < 0 or offset > HISTORICAL_MATCH_WINDOW_DAYS:
                continue
            if best is None or offset < best[0]:
                best = (offset, sample)
        if best is not None:
            picked.append(best)
    if not picked:
        return None
    average = sum(sample["value"] for _, sample in picked) / len(picked)
    return {
        "average": round(average, 2),
        "sample_count": len(picked),
        "max_offset_days": max(offset for offset, _ in picked),
    }


def compare_to_average(current: Optional[float], average: Optional[float]) -> Dict[str, Any]:
    """
    Classify current vs. historical average.

    Example:
        >>> compare_to_average(12.0, 10.0)
        {'status': 'above_average', 'percent_of_average': 120}
    """
    if current is None or average is None or average <= 0:
        return {"status": "unknown", "percent_of_average": None}
    ratio = current / average
    percent = int(round(ratio * 100))
    if ratio >= 1.2:
        return {"status": "above_average", "percent_of_average": percent}
    if ratio <= 0.8:
        return {"status": "below_average", "percent_of_average": percent}
    return {"status": "at_average", "percent_of_average": percent}


# ============================================================================
# NOHRSC
# ============================================================================

def _pixel_value(results: List[Dict[str, Any]], layer_id: int) -> Optional[float]:
    for entry in results:
        if parse_number(entry.get("layerId")) == layer_id:
            attributes = entry.get("attributes") or {}
            return parse_number(attributes.get("Service Pixel Value"))
    return None


def parse_nohrsc(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Convert a NOHRSC identify response into inches.

    Returns:
        Dict with snow_depth_in / swe_in, or None when neither is plausible
    """
    results = payload.get("results") if isinstance(payload, dict) else None
    if not isinstance(results, list):
        raise UpstreamMalformed("NOHRSC identify response has no results")
    results = [r for r in results if isinstance(r, dict)]

    raw_depth = _pixel_value(results, 3)
    raw_swe = _pixel_value(results, 7)
    depth_m = raw_depth if raw_depth is not None and 0 <= raw_depth <= MAX_NOHRSC_DEPTH_M else None
    swe_mm = raw_swe if raw_swe is not None and 0 <= raw_swe <= MAX_NOHRSC_SWE_MM else None
    if depth_m is None and swe_mm is None:
        return None

    discarded = []
    if raw_depth is not None and depth_m is None:
        discarded.append("depth")
    if raw_swe is not None and swe_mm is None:
        discarded.append("SWE")
    return {
        "snow_depth_in": round(depth_m * METERS_TO_INCHES, 1) if depth_m is not None else None,
        "swe_in": round(swe_mm * MM_TO_INCHES, 1) if swe_mm is not None else None,
        "link": NOHRSC_LINK,
        "note": (
            f"Implausible {' + '.join(discarded)} value(s) were discarded."
            if discarded else "Point sample from the NOAA National Snow Analysis raster."
        ),
    }


class SnowpackFetcher(ProviderFetcher):
    """SNOTEL + NOHRSC snowpack observations."""

    category = "snowpack"
    source = "NRCS AWDB / SNOTEL, NOAA NOHRSC"

    def _fetch(self, ctx: FetchContext) -> ProviderResult:
        today = ctx.now().date()
        target = min(ctx.window.local_date, today)

        try:
            snotel = self._fetch_snotel(ctx, target)
        except _FAILURES as exc:
            logger.warning(f"SNOTEL fetch failed for {ctx.latitude}, {ctx.longitude}: {exc}")
            snotel = None
        try:
            nohrsc = self._fetch_nohrsc(ctx)
        except _FAILURES as exc:
            logger.warning(f"NOHRSC fetch failed for {ctx.latitude}, {ctx.longitude}: {exc}")
            nohrsc = None

        if snotel is None and nohrsc is None:
            return self.fallback(ctx, "no SNOTEL station or NOHRSC sample available")

        payload = {
            "snotel": snotel,
            "nohrsc": nohrsc,
            "historical": snotel.get("historical") if snotel else None,
            "target_date": target.isoformat(),
        }
        if snotel is not None and nohrsc is not None:
            return self.result(STATUS_OK, payload)
        missing = "NOHRSC" if nohrsc is None else "SNOTEL"
        return self.result(STATUS_DEGRADED, payload, warning=f"Partial snowpack data ({missing} unavailable).")

    def fallback(self, ctx: FetchContext, reason: str) -> ProviderResult:
        return self.result(
            STATUS_ZEROED,
            {"snotel": None, "nohrsc": None, "historical": None, "target_date": None},
            warning=f"Snowpack observations unavailable ({reason}).",
            source="Unavailable",
        )

    def _stations(self, ctx: FetchContext) -> List[Dict[str, Any]]:
        cached, _, found = ctx.cache.get(SNOTEL_STATIONS_CACHE_KEY)
        if found:
            return cached

        payload = fetch_json(
            f"{AWDB_BASE_URL}/stations",
            params={"elements": "WTEQ,SNWD,PREC", "durations": "DAILY", "activeOnly": "true"},
            timeout=ctx.call_timeout(),
        )
        if not isinstance(payload, list):
            raise UpstreamMalformed("AWDB station metadata is not a list")
        stations = []
        for station in payload:
            if not isinstance(station, dict):
                continue
            if str(station.get("networkCode") or "").upper() not in SNOTEL_NETWORKS:
                continue
            if parse_number(station.get("latitude")) is None or parse_number(station.get("longitude")) is None:
                continue
            stations.append({
                key: station.get(key)
                for key in ("stationTriplet", "stationId", "name", "networkCode", "stateCode",
                            "latitude", "longitude", "elevation")
            })
        ctx.cache.set(SNOTEL_STATIONS_CACHE_KEY, stations)
        logger.info(f"Cached {len(stations)} active SNOTEL stations")
        return stations

    def _fetch_snotel(self, ctx: FetchContext, target: date) -> Optional[Dict[str, Any]]:
        nearest = find_nearest_station(ctx.latitude, ctx.longitude, self._stations(ctx))
        if nearest is None:
            return None
        station = nearest["station"]
        triplet = str(station.get("stationTriplet") or "")
        if not triplet:
            return None

        payload = fetch_json(
            f"{AWDB_BASE_URL}/data",
            params={
                "stationTriplets": triplet,
                "elements": "WTEQ,SNWD,PREC,TOBS",
                "duration": "DAILY",
                "beginDate": (target - timedelta(days=HISTORICAL_FETCH_LOOKBACK_DAYS)).isoformat(),
                "endDate": target.isoformat(),
                "periodRef": "END",
            },
            timeout=ctx.call_timeout(),
        )
        station_data = payload[0] if isinstance(payload, list) and payload else {}
        by_element = {}
        for entry in station_data.get("data") or []:
            code = str((entry.get("stationElement") or {}).get("elementCode") or "").upper()
            if code:
                by_element[code] = entry.get("values") or []

        latest = {code: latest_value(values, target) for code, values in by_element.items()}

        def latest_number(code: str) -> Optional[float]:
            sample = latest.get(code)
            return sample["value"] if sample else None

        depth = latest_number("SNWD")
        swe = latest_number("WTEQ")
        observed = next((latest[c]["date"].isoformat() for c in ("SNWD", "WTEQ", "PREC", "TOBS") if latest.get(c)), None)

        swe_hist = historical_average(by_element.get("WTEQ"), target)
        depth_hist = historical_average(by_element.get("SNWD"), target)
        swe_cmp = compare_to_average(swe, swe_hist["average"] if swe_hist else None)
        depth_cmp = compare_to_average(depth, depth_hist["average"] if depth_hist else None)
        if swe_cmp["status"] != "unknown":
            overall = dict(swe_cmp, metric="SWE")
        elif depth_cmp["status"] != "unknown":
            overall = dict(depth_cmp, metric="Snow Depth")
        else:
            overall = {"status": "unknown", "percent_of_average": None, "metric": None}

        station_id = station.get("stationId")
        return {
            "station_triplet": triplet,
            "station_name": station.get("name") or triplet,
            "distance_km": round(nearest["distance_km"], 1),
            "elevation_ft": parse_number(station.get("elevation")),
            "observed_date": observed,
            "snow_depth_in": depth,
            "swe_in": swe,
            "precip_in": latest_number("PREC"),
            "obs_temp_f": latest_number("TOBS"),
            "link": f"https://wcc.sc.egov.usda.gov/nwcc/site?sitenum={station_id}" if station_id else None,
            "historical": {
                "target_date": target.isoformat(),
                "lookback_years": HISTORICAL_LOOKBACK_YEARS,
                "swe": {"current_in": swe, "average_in": swe_hist["average"] if swe_hist else None, **swe_cmp},
                "depth": {"current_in": depth, "average_in": depth_hist["average"] if depth_hist else None, **depth_cmp},
                "overall": overall,
            },
        }

    def _fetch_nohrsc(self, ctx: FetchContext) -> Optional[Dict[str, Any]]:
        lat, lon = ctx.latitude, ctx.longitude
        pad = 0.6
        payload = fetch_json(
            NOHRSC_IDENTIFY_URL,
            params={
                "f": "pjson",
                "geometry": f"{lon},{lat}",
                "geometryType": "esriGeometryPoint",
                "sr": 4326,
                "tolerance": 2,
                "mapExtent": f"{lon - pad:.4f},{lat - pad:.4f},{lon + pad:.4f},{lat + pad:.4f}",
                "imageDisplay": "800,600,96",
                "returnGeometry": "false",
                "layers": "all:3,7",
            },
            timeout=ctx.call_timeout(),
        )
        return parse_nohrsc(payload)
