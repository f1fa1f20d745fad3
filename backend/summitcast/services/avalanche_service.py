"""
Avalanche Service - Zone resolution and bulletin assembly

Tier chain:
1. avalanche.org map layer (all forecast zones, cached 10 minutes; a stale
   copy is served when a refresh fails)
2. Zone resolution: polygon containment -> nearest zone centroid within
   40 km -> regional override table -> nearest zone at any distance
   (flagged no_center_coverage)
3. Structured forecast product for the resolved zone (danger by elevation
   band, problems, bottom line, issue/expiry times)
4. Only when the structured product is unavailable: the override's JSON
   advisory feed or a scrape of the center's forecast page

Status: ok (structured product, or a map layer that fully describes an
uncovered / off-season zone), degraded (scrape, override feed or map layer
only), stale (stale map layer), zeroed (no map layer at all).
"""
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse, urlunparse

from summitcast.errors import UpstreamError, UpstreamMalformed
from summitcast.services.algorithm_config import AVALANCHE_LEVEL_LABELS, NEAREST_ZONE_COVERAGE_KM
from summitcast.services.avalanche_scraper import (
    build_uac_json_url,
    clean_forecast_text,
    parse_center_page,
    parse_uac_advisory,
)
from summitcast.services.http_client import fetch_json, fetch_text
from summitcast.services.provider_base import (
    STATUS_DEGRADED,
    STATUS_OK,
    STATUS_STALE,
    STATUS_ZEROED,
    FetchContext,
    ProviderFetcher,
    ProviderResult,
)
from summitcast.utils.geo_utils import geometry_centroid, haversine_distance, point_in_geometry, within_bounds
from summitcast.utils.weather_math import parse_number

# Configure logging
logger = logging.getLogger(__name__)

MAP_LAYER_URL = "https://api.avalanche.org/v2/public/products/map-layer"
FORECAST_PRODUCT_URL = "https://api.avalanche.org/v2/public/product"
MAP_LAYER_CACHE_KEY = "avalanche_map:layer"

UNKNOWN_MESSAGE = (
    "No official avalanche center forecast covers this objective. Avalanche terrain can still be "
    "dangerous. Treat conditions as unknown and use conservative terrain choices."
)
OFF_SEASON_MESSAGE = (
    "Local avalanche center is not currently issuing forecasts for this zone (likely off-season). "
    "This does not imply zero risk; assess snow and terrain conditions directly."
)
UNAVAILABLE_MESSAGE = (
    "Avalanche center data could not be retrieved right now. Avalanche terrain can still be "
    "dangerous. Treat risk as unknown and use conservative terrain choices."
)
NO_FORECAST_LANGUAGE = re.compile(
    r"no (current )?avalanche forecast|outside (the )?forecast season|not issuing forecasts"
    r"|forecast season has ended|off[- ]?season"
)
RATED_DANGER_WORD = re.compile(r"low|moderate|considerable|high|extreme")
LIKELIHOOD_LABELS = {1: "unlikely", 2: "possible", 3: "likely", 4: "very likely", 5: "certain"}

_FAILURES = (UpstreamError, KeyError, IndexError, ValueError, TypeError, AttributeError)


# ============================================================================
# LINKS
# ============================================================================

def normalize_external_link(value: Any) -> Optional[str]:
    """Force https and canonicalize a few center hostnames."""
    if not isinstance(value, str) or not value.strip():
        return None
    link = value.strip()
    if link.lower().startswith("http://"):
        link = "https://" + link[7:]
    if not link.lower().startswith("https://"):
        return None
    parsed = urlparse(link)
    host = (parsed.hostname or "").lower()
    if host == "www.nwac.us":
        parsed = parsed._replace(netloc="nwac.us")
    elif host == "mountwashingtonavalanchecenter.org":
        parsed = parsed._replace(netloc="www.mountwashingtonavalanchecenter.org")
    elif host == "avalanche.state.co.us" and parsed.path.lower() == "/home":
        parsed = parsed._replace(path="/")
    return urlunparse(parsed)


def is_avalanche_api_link(value: Optional[str]) -> bool:
    return isinstance(value, str) and re.match(
        r"^https?://api\.avalanche\.(org|state\.co\.us)\b", value.strip(), re.IGNORECASE
    ) is not None


def _mwac_link(link: Optional[str], lat: float, lon: float) -> str:
    if not link or is_avalanche_api_link(link) or len(link) < 30:
        return "https://www.mountwashingtonavalanchecenter.org/forecasts/#/presidential-range"
    return link


def _caic_link(link: Optional[str], lat: float, lon: float) -> str:
    if link:
        parsed = urlparse(link)
        host = (parsed.hostname or "").lower().replace("www.", "", 1)
        query = parse_qs(parsed.query)
        if host == "avalanche.state.co.us":
            if query.get("lat") and (query.get("lng") or query.get("lon")):
                return link
            if parsed.path not in ("", "/"):
                return link
        else:
            return link
    return f"https://avalanche.state.co.us/?lat={lat:.5f}&lng={lon:.5f}"


# ============================================================================
# REGION OVERRIDES
# ============================================================================

@dataclass(frozen=True)
class RegionOverride:
    """
    Center-specific handling applied in one lookup step.

    bounds (min_lat, max_lat, min_lon, max_lon) + zone_search_km widen zone
    resolution to the center's zones; link_transform repairs the forecast link;
    bulletin_source maps a forecast link onto an alternate JSON feed.
    """

    region_id: str
    center_id: str
    bounds: Optional[Tuple[float, float, float, float]] = None
    zone_search_km: Optional[float] = None
    link_transform: Optional[Callable[[Optional[str], float, float], Optional[str]]] = None
    bulletin_source: Optional[Callable[[Optional[str]], Optional[str]]] = None


REGION_OVERRIDES = [
    RegionOverride(
        region_id="utah",
        center_id="UAC",
        bounds=(36.8, 42.3, -114.2, -108.8),
        zone_search_km=90.0,
        bulletin_source=build_uac_json_url,
    ),
    RegionOverride(region_id="presidential_range", center_id="MWAC", link_transform=_mwac_link),
    RegionOverride(region_id="colorado", center_id="CAIC", link_transform=_caic_link),
]


def override_for_center(center_id: Optional[str]) -> Optional[RegionOverride]:
    wanted = str(center_id or "").upper()
    for override in REGION_OVERRIDES:
        if override.center_id == wanted:
            return override
    return None


def resolve_center_link(props: Dict[str, Any], lat: float, lon: float) -> Optional[str]:
    primary = normalize_external_link(props.get("link"))
    secondary = normalize_external_link(props.get("center_link"))
    non_api = next((link for link in (primary, secondary) if link and not is_avalanche_api_link(link)), None)
    link = non_api or primary or secondary
    override = override_for_center(props.get("center_id"))
    if override is not None and override.link_transform is not None:
        return override.link_transform(non_api, lat, lon)
    return link


# ============================================================================
# ZONE RESOLUTION
# ============================================================================

@dataclass(frozen=True)
class ZoneMatch:
    feature: Dict[str, Any]
    method: str  # polygon / nearest / regionOverride
    distance_km: float
    no_center_coverage: bool = False
    region_id: Optional[str] = None


def _center_id(feature: Dict[str, Any]) -> str:
    return str((feature.get("properties") or {}).get("center_id") or "").upper()


def resolve_zone(
    features: List[Dict[str, Any]],
    lat: float,
    lon: float,
    coverage_km: float = NEAREST_ZONE_COVERAGE_KM,
) -> Optional[ZoneMatch]:
    """
    Resolve the forecast zone for a point.

    Order: polygon containment, nearest centroid within coverage_km, regional
    override bounds, nearest centroid at any distance. Returns None only when
    no feature carries usable geometry.
    """
    candidates = [f for f in features if isinstance(f, dict) and isinstance(f.get("geometry"), dict)]
    for feature in candidates:
        if point_in_geometry(lat, lon, feature["geometry"]):
            return ZoneMatch(feature=feature, method="polygon", distance_km=0.0)

    distances = []
    for feature in candidates:
        centroid = geometry_centroid(feature["geometry"])
        if centroid is not None:
            distances.append((haversine_distance(lat, lon, centroid[0], centroid[1]), feature))
    if not distances:
        return None
    distances.sort(key=lambda pair: pair[0])

    nearest_km, nearest = distances[0]
    if nearest_km <= coverage_km:
        return ZoneMatch(feature=nearest, method="nearest", distance_km=nearest_km)

    for override in REGION_OVERRIDES:
        if override.bounds is None or not within_bounds(lat, lon, override.bounds):
            continue
        search_km = max(coverage_km, override.zone_search_km or 0.0)
        for distance, feature in distances:
            if _center_id(feature) == override.center_id and distance <= search_km:
                return ZoneMatch(
                    feature=feature,
                    method="regionOverride",
                    distance_km=distance,
                    region_id=override.region_id,
                )

    return ZoneMatch(feature=nearest, method="nearest", distance_km=nearest_km, no_center_coverage=True)


# ============================================================================
# BULLETIN NORMALIZATION
# ============================================================================

def danger_label(level: Optional[int]) -> str:
    if level is None or not 0 <= level < len(AVALANCHE_LEVEL_LABELS):
        return "Unknown"
    return AVALANCHE_LEVEL_LABELS[level]


def _level(value: Any, default: Optional[int] = None) -> Optional[int]:
    number = parse_number(value)
    if number is None:
        return default
    return min(5, max(0, int(round(number))))


def _bands(below: Optional[int], at: Optional[int], above: Optional[int]) -> Dict[str, Dict[str, Any]]:
    return {
        name: {"level": level, "label": danger_label(level)}
        for name, level in (("below", below), ("at", at), ("above", above))
    }


def normalize_problem_location(value: Any) -> List[str]:
    """
    Flatten a problem's location (string, list or keyed object) into strings.

    Example:
        >>> normalize_problem_location({"north upper": True, "east": ["middle, lower"]})
        ['north upper', 'east', 'middle', 'lower']
    """
    locations: List[str] = []

    def walk(entry: Any) -> None:
        if entry is None or isinstance(entry, bool):
            return
        if isinstance(entry, (list, tuple)):
            for item in entry:
                walk(item)
        elif isinstance(entry, dict):
            for key, nested in entry.items():
                if str(key).strip():
                    locations.append(str(key).strip())
                walk(nested)
        elif isinstance(entry, str):
            locations.extend(part.strip() for part in entry.split(",") if part.strip())
        else:
            locations.append(str(entry))

    walk(value)
    deduped = []
    for location in locations:
        if location not in deduped:
            deduped.append(location)
    return deduped


def normalize_likelihood(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return LIKELIHOOD_LABELS.get(int(round(value)), str(value))
    if isinstance(value, list):
        parts = []
        for entry in value:
            label = normalize_likelihood(entry)
            if label and label not in parts:
                parts.append(label)
        return " to ".join(parts) or None
    if isinstance(value, dict):
        for key in ("label", "name", "text", "display", "value"):
            if isinstance(value.get(key), str) and value[key].strip():
                return value[key].strip()
        low = normalize_likelihood(parse_number(value.get("min", value.get("low"))))
        high = normalize_likelihood(parse_number(value.get("max", value.get("high"))))
        if low and high:
            return f"{low} to {high}"
        return low or high
    text = str(value).strip()
    return text or None


def normalize_problems(raw_problems: Any) -> List[Dict[str, Any]]:
    problems = []
    for index, problem in enumerate(raw_problems if isinstance(raw_problems, list) else []):
        if isinstance(problem, str):
            problem = {"name": problem}
        if not isinstance(problem, dict):
            continue
        name = next(
            (problem[k].strip() for k in ("name", "problem", "problem_name", "problem_type")
             if isinstance(problem.get(k), str) and problem[k].strip()),
            None,
        )
        problem_id = problem.get("id") or problem.get("avalanche_problem_id") or problem.get("problem_id") or index + 1
        location = problem.get("location")
        if location is None:
            location = problem.get("aspect_elevation", problem.get("terrain"))
        discussion = problem.get("discussion")
        problems.append({
            "id": problem_id,
            "name": name or "Avalanche problem",
            "likelihood": normalize_likelihood(
                problem.get("likelihood", problem.get("trigger_likelihood", problem.get("probability")))
            ),
            "location": normalize_problem_location(location),
            "size": problem.get("size"),
            "discussion": clean_forecast_text(discussion) if isinstance(discussion, str) else None,
        })
    return problems


def parse_structured_forecast(payload: Any) -> Optional[Dict[str, Any]]:
    """
    Read danger / problems / bottom line out of an avalanche.org forecast product.

    Returns:
        Detail dict, or None when the product carries nothing useful
    """
    if isinstance(payload, list):
        payload = next((item for item in payload if isinstance(item, dict)), None)
    if not isinstance(payload, dict):
        raise UpstreamMalformed("Avalanche forecast product is not an object")

    bottom_line = None
    for key in ("bottom_line", "bottom_line_summary", "overall_summary", "summary"):
        text = clean_forecast_text(payload.get(key)) if isinstance(payload.get(key), str) else ""
        if len(text) > 20:
            bottom_line = text
            break

    problems = normalize_problems(
        payload.get("forecast_avalanche_problems") or payload.get("avalanche_problems") or payload.get("problems")
    )

    danger = None
    expires = payload.get("expires_time") or payload.get("end_date") or payload.get("expires")
    rows = payload.get("danger") if isinstance(payload.get("danger"), list) else []
    rows = [row for row in rows if isinstance(row, dict)]
    if rows:
        current = next((row for row in rows if row.get("valid_day") == "current"), rows[0])
        danger = {
            "lower": _level(current.get("lower"), 0),
            "middle": _level(current.get("middle"), 0),
            "upper": _level(current.get("upper"), 0),
        }
        expires = expires or current.get("end_time") or current.get("valid_until")

    if bottom_line is None and not problems and danger is None:
        return None
    return {
        "bottom_line": bottom_line,
        "problems": problems,
        "danger": danger,
        "published_time": payload.get("published_time") or payload.get("updated_at"),
        "expires_time": expires,
    }


def unknown_bulletin(coverage_status: str) -> Dict[str, Any]:
    """Bulletin for missing, uncovered or off-season avalanche coverage."""
    centers = {
        "temporarily_unavailable": ("Avalanche Data Unavailable", UNAVAILABLE_MESSAGE),
        "no_active_forecast": ("Avalanche Forecast Off-Season", OFF_SEASON_MESSAGE),
    }
    center, message = centers.get(coverage_status, ("No Avalanche Center Coverage", UNKNOWN_MESSAGE))
    return {
        "center": center,
        "center_id": None,
        "zone": None,
        "zone_id": None,
        "resolution_method": None,
        "distance_km": None,
        "region_override": None,
        "coverage_status": coverage_status,
        "risk": "Unknown",
        "danger_level": 0,
        "danger_unknown": True,
        "danger_by_elevation_band": None,
        "problems": [],
        "bottom_line": message,
        "published_time": None,
        "expires_time": None,
        "link": None,
        "detail_source": None,
    }


def bulletin_from_map_layer(match: ZoneMatch, lat: float, lon: float) -> Dict[str, Any]:
    """Base bulletin from the zone's map-layer properties."""
    feature = match.feature
    props = feature.get("properties") or {}
    main_level = _level(props.get("danger_level"), 0)
    reported_risk = str(props.get("danger") or "").strip()
    travel_advice = str(props.get("travel_advice") or "")
    language = f"{reported_risk.lower()} {travel_advice.lower()}"

    has_window = bool(props.get("start_date") or props.get("end_date"))
    no_rating = main_level <= 0 and not RATED_DANGER_WORD.search(reported_risk.lower())
    no_forecast = props.get("off_season") is True or bool(NO_FORECAST_LANGUAGE.search(language)) or (
        not has_window and no_rating
    )

    if match.no_center_coverage:
        bulletin = unknown_bulletin("no_center_coverage")
    elif no_forecast:
        bulletin = unknown_bulletin("no_active_forecast")
        bulletin["bottom_line"] = clean_forecast_text(travel_advice) or OFF_SEASON_MESSAGE
    else:
        bulletin = unknown_bulletin("reported")
        bulletin.update({
            "risk": reported_risk or "No Rating",
            "danger_level": 0 if no_rating else main_level,
            "danger_unknown": no_rating,
            "bottom_line": clean_forecast_text(travel_advice) or None,
            "published_time": props.get("start_date") or props.get("published_time"),
            "expires_time": props.get("end_date") or props.get("expires"),
        })
        if not no_rating:
            bulletin["danger_by_elevation_band"] = _bands(
                _level(props.get("danger_low"), main_level),
                _level(props.get("danger_mid"), main_level),
                _level(props.get("danger_high"), main_level),
            )

    zone_id = feature.get("id")
    bulletin.update({
        "center": props.get("center") or bulletin["center"],
        "center_id": props.get("center_id"),
        "zone": props.get("name"),
        "zone_id": str(zone_id) if zone_id is not None else None,
        "resolution_method": match.method,
        "distance_km": round(match.distance_km, 1),
        "region_override": match.region_id,
        "link": resolve_center_link(props, lat, lon),
        "detail_source": "map_layer",
    })
    return bulletin


def apply_detail(bulletin: Dict[str, Any], detail: Dict[str, Any], source: str) -> Dict[str, Any]:
    """Overlay forecast detail (structured product, override feed or scrape)."""
    merged = dict(bulletin)
    if detail.get("bottom_line"):
        merged["bottom_line"] = detail["bottom_line"]
    if detail.get("problems"):
        merged["problems"] = normalize_problems(detail["problems"])
    danger = detail.get("danger")
    if danger:
        merged["danger_by_elevation_band"] = _bands(danger.get("lower"), danger.get("middle"), danger.get("upper"))
        merged["danger_unknown"] = False
    if detail.get("published_time"):
        merged["published_time"] = detail["published_time"]
    if detail.get("expires_time"):
        merged["expires_time"] = detail["expires_time"]
    merged["detail_source"] = source
    return derive_overall_danger(merged)


def derive_overall_danger(bulletin: Dict[str, Any]) -> Dict[str, Any]:
    """Overall danger is the highest rated elevation band."""
    bands = bulletin.get("danger_by_elevation_band")
    if bulletin.get("danger_unknown") or not bands:
        return bulletin
    levels = [band["level"] for band in bands.values() if band.get("level")]
    if levels:
        bulletin["danger_level"] = max(levels)
        bulletin["risk"] = danger_label(bulletin["danger_level"])
    return bulletin


class AvalancheFetcher(ProviderFetcher):
    """avalanche.org map layer + forecast product, with center fallbacks."""

    category = "avalanche"
    source = "Avalanche.org"

    def _fetch(self, ctx: FetchContext) -> ProviderResult:
        map_layer, age, stale = self._map_layer(ctx)
        return self._from_map_layer(ctx, map_layer, age, stale, fetch_detail=True)

    def fallback(self, ctx: FetchContext, reason: str) -> ProviderResult:
        cached, age, found = ctx.cache.get_stale(MAP_LAYER_CACHE_KEY)
        if found:
            stale = (age or 0.0) > ctx.cache.ttl_for(MAP_LAYER_CACHE_KEY)
            try:
                result = self._from_map_layer(ctx, cached, age, stale, fetch_detail=False)
                result.warning = result.warning or f"Avalanche forecast detail unavailable ({reason})."
                return result
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                logger.warning(f"Cached avalanche map layer unusable: {exc}")
        return self.result(
            STATUS_ZEROED,
            unknown_bulletin("temporarily_unavailable"),
            warning=f"Avalanche center data unavailable ({reason}).",
            source="Unavailable",
        )

    def _map_layer(self, ctx: FetchContext) -> Tuple[Dict[str, Any], float, bool]:
        cached, age, found = ctx.cache.get(MAP_LAYER_CACHE_KEY)
        if found:
            return cached, age or 0.0, False
        try:
            payload = fetch_json(MAP_LAYER_URL, timeout=ctx.call_timeout())
            if not isinstance(payload, dict) or not isinstance(payload.get("features"), list):
                raise UpstreamMalformed("Map layer response missing features array", url=MAP_LAYER_URL)
        except UpstreamError as exc:
            stale, stale_age, stale_found = ctx.cache.get_stale(MAP_LAYER_CACHE_KEY)
            if not stale_found:
                raise
            logger.info(f"Map layer refresh failed, serving cached copy ({int(stale_age or 0)}s old): {exc}")
            return stale, stale_age or 0.0, True
        ctx.cache.set(MAP_LAYER_CACHE_KEY, payload)
        return payload, 0.0, False

    def _from_map_layer(
        self,
        ctx: FetchContext,
        map_layer: Dict[str, Any],
        age: float,
        stale: bool,
        fetch_detail: bool,
    ) -> ProviderResult:
        match = resolve_zone(map_layer.get("features") or [], ctx.latitude, ctx.longitude)
        if match is None:
            return self.result(
                STATUS_ZEROED,
                unknown_bulletin("temporarily_unavailable"),
                warning="Avalanche map layer has no usable zone geometry.",
                source="Unavailable",
            )

        bulletin = bulletin_from_map_layer(match, ctx.latitude, ctx.longitude)
        logger.info(
            f"Avalanche zone {bulletin['zone']} ({bulletin['center_id']}) via {match.method} "
            f"at {match.distance_km:.1f} km"
        )

        status, warning = STATUS_OK, None
        if bulletin["coverage_status"] == "reported":
            if fetch_detail:
                bulletin, status, warning = self._detail(ctx, bulletin)
            else:
                status, warning = STATUS_DEGRADED, "Showing map-layer avalanche summary only."
        if stale:
            status = STATUS_STALE
            warning = f"Avalanche map layer is stale ({int(age)}s old)."
        return self.result(status, bulletin, age_seconds=age, warning=warning)

    def _detail(self, ctx: FetchContext, bulletin: Dict[str, Any]):
        center_id = bulletin["center_id"]
        zone_id = bulletin["zone_id"]
        if center_id and zone_id:
            try:
                payload = fetch_json(
                    FORECAST_PRODUCT_URL,
                    params={"type": "forecast", "center_id": center_id, "zone_id": zone_id},
                    timeout=ctx.call_timeout(),
                )
                detail = parse_structured_forecast(payload)
                if detail is not None:
                    return apply_detail(bulletin, detail, "structured"), STATUS_OK, None
            except _FAILURES as exc:
                logger.warning(f"Structured avalanche forecast unavailable for {center_id}/{zone_id}: {exc}")

        scraped = self._center_fallback(ctx, bulletin)
        if scraped is not None:
            detail, source = scraped
            return (
                apply_detail(bulletin, detail, source),
                STATUS_DEGRADED,
                "Structured avalanche forecast unavailable; using the center's published page.",
            )
        return derive_overall_danger(bulletin), STATUS_DEGRADED, "Showing map-layer avalanche summary only."

    def _center_fallback(self, ctx: FetchContext, bulletin: Dict[str, Any]):
        override = override_for_center(bulletin["center_id"])
        page_link = bulletin["link"]
        if override is not None and override.bulletin_source is not None:
            feed_url = override.bulletin_source(page_link)
            if feed_url:
                try:
                    advisory = parse_uac_advisory(fetch_json(feed_url, timeout=ctx.call_timeout()))
                    if advisory is not None:
                        return advisory, "center_json"
                except _FAILURES as exc:
                    logger.warning(f"{override.center_id} advisory feed failed: {exc}")

        if not page_link or is_avalanche_api_link(page_link):
            return None
        try:
            scraped = parse_center_page(fetch_text(page_link, timeout=ctx.call_timeout()), bulletin["center_id"])
        except _FAILURES as exc:
            logger.warning(f"Avalanche center page scrape failed for {page_link}: {exc}")
            return None
        return (scraped, "page_scrape") if scraped is not None else None
