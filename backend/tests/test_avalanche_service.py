"""
Tests for avalanche zone resolution, bulletin tiers, and the center page
scraper.
"""
from unittest.mock import patch

import pytest

from summitcast.errors import UpstreamHTTPError, UpstreamTimeout
from summitcast.services.avalanche_scraper import (
    build_uac_json_url,
    parse_center_page,
    parse_uac_advisory,
    pick_best_bottom_line,
)
from summitcast.services.avalanche_service import (
    FORECAST_PRODUCT_URL,
    MAP_LAYER_CACHE_KEY,
    MAP_LAYER_URL,
    AvalancheFetcher,
    normalize_external_link,
    normalize_likelihood,
    normalize_problem_location,
    parse_structured_forecast,
    resolve_zone,
)
from summitcast.services.provider_base import FetchContext


def square(min_lon, min_lat, max_lon, max_lat):
    return {
        "type": "Polygon",
        "coordinates": [[[min_lon, min_lat], [min_lon, max_lat], [max_lon, max_lat], [max_lon, min_lat], [min_lon, min_lat]]],
    }


ASPEN_ZONE = {
    "id": 2717,
    "geometry": square(-106.6, 39.0, -106.3, 39.3),
    "properties": {
        "name": "Aspen",
        "center": "Colorado Avalanche Information Center",
        "center_id": "CAIC",
        "danger": "moderate",
        "danger_level": 2,
        "travel_advice": "Watch for wind-loaded slopes near and above treeline.",
        "start_date": "2026-02-14T00:00:00Z",
        "end_date": "2026-02-15T00:00:00Z",
        "link": "https://avalanche.state.co.us/home",
    },
}

SALT_LAKE_ZONE = {
    "id": 1,
    "geometry": square(-111.9, 40.5, -111.5, 40.8),
    "properties": {
        "name": "Salt Lake",
        "center": "Utah Avalanche Center",
        "center_id": "UAC",
        "danger": "considerable",
        "danger_level": 3,
        "travel_advice": "Dangerous avalanche conditions on steep terrain.",
        "start_date": "2026-02-14T07:00:00Z",
        "end_date": "2026-02-15T07:00:00Z",
        "link": "https://utahavalanchecenter.org/forecast/salt-lake",
    },
}

OFF_SEASON_ZONE = {
    "id": 99,
    "geometry": square(-106.6, 39.0, -106.3, 39.3),
    "properties": {
        "name": "Aspen",
        "center_id": "CAIC",
        "danger": "no rating",
        "danger_level": -1,
        "off_season": True,
        "travel_advice": "",
        "link": "https://avalanche.state.co.us/",
    },
}

MAP_LAYER = {"type": "FeatureCollection", "features": [ASPEN_ZONE, SALT_LAKE_ZONE]}

STRUCTURED_PRODUCT = {
    "published_time": "2026-02-14T06:00:00+00:00",
    "expires_time": "2026-02-15T00:00:00+00:00",
    "bottom_line": "<p>Wind slabs are the primary concern on northerly aspects near and above treeline.</p>",
    "forecast_avalanche_problems": [
        {"id": 7, "name": "Wind Slab", "likelihood": "likely", "location": ["north upper", "east upper"],
         "size": ["1", "2"], "discussion": "<p>Fresh drifts.</p>"},
    ],
    "danger": [
        {"valid_day": "tomorrow", "lower": 1, "middle": 1, "upper": 2},
        {"valid_day": "current", "lower": 1, "middle": 2, "upper": 3},
    ],
}

CENTER_PAGE = """
<html><body>
<div class="field-bottom-line"><p>Wind slabs up to two feet deep remain sensitive to human triggers
on north and east aspects near and above treeline.</p></div>
<script>var forecast = {"avalanche_problem_id": 4, "name": "Wind Slab",
"danger_lower": 1, "danger_middle": 2, "danger_upper": 2};</script>
</body></html>
"""

UAC_ADVISORY = {
    "advisories": [{
        "advisory": {
            "bottom_line": "<p>Considerable danger on steep northerly terrain at upper elevations.</p>",
            "avalanche_problem_1": "Persistent Weak Layer",
            "avalanche_problem_1_description": "<p>Facets near the ground.</p>",
            "date_issued_timestamp": "1771070400",
        }
    }]
}


def avalanche_upstream(map_layer=MAP_LAYER, product=STRUCTURED_PRODUCT, product_error=None,
                       map_error=None, advisory=None):
    def route(url, params=None, timeout=None, **kwargs):
        if url == MAP_LAYER_URL:
            if map_error:
                raise map_error
            return map_layer
        if url == FORECAST_PRODUCT_URL:
            if product_error:
                raise product_error
            return product
        if url.endswith("/json") and advisory is not None:
            return advisory
        raise UpstreamHTTPError("404", url=url, status_code=404)

    return route


# ============================================================================
# Zone resolution
# ============================================================================


class TestResolveZone:
    """Polygon -> nearest -> regional override -> nearest without coverage"""

    def test_polygon_containment(self):
        match = resolve_zone(MAP_LAYER["features"], 39.1178, -106.4454)
        assert match.method == "polygon"
        assert match.feature["properties"]["name"] == "Aspen"
        assert match.distance_km == 0.0
        assert match.no_center_coverage is False

    def test_nearest_zone_within_coverage(self):
        match = resolve_zone(MAP_LAYER["features"], 39.35, -106.45)
        assert match.method == "nearest"
        assert match.feature["properties"]["name"] == "Aspen"
        assert match.distance_km < 40

    def test_regional_override_widens_search(self):
        match = resolve_zone(MAP_LAYER["features"], 40.65, -112.5)
        assert match.method == "regionOverride"
        assert match.region_id == "utah"
        assert match.feature["properties"]["center_id"] == "UAC"
        assert 40 < match.distance_km <= 90

    def test_outside_every_center(self):
        match = resolve_zone(MAP_LAYER["features"], 44.0, -100.0)
        assert match.method == "nearest"
        assert match.no_center_coverage is True

    def test_no_geometry(self):
        assert resolve_zone([{"properties": {}}, "junk"], 39.0, -106.0) is None


# ============================================================================
# AvalancheFetcher tiers
# ============================================================================


@pytest.fixture
def utah_ctx(window, cache, frozen_clock):
    return FetchContext(latitude=40.62, longitude=-111.7, window=window, cache=cache, clock=frozen_clock)


class TestAvalancheFetcher:
    @patch('summitcast.services.avalanche_service.fetch_text')
    @patch('summitcast.services.avalanche_service.fetch_json')
    def test_structured_forecast(self, mock_json, mock_text, fetch_ctx):
        mock_json.side_effect = avalanche_upstream()

        result = AvalancheFetcher().fetch(fetch_ctx)

        assert result.status == "ok"
        bulletin = result.payload
        assert bulletin["zone"] == "Aspen"
        assert bulletin["zone_id"] == "2717"
        assert bulletin["resolution_method"] == "polygon"
        assert bulletin["coverage_status"] == "reported"
        assert bulletin["detail_source"] == "structured"
        assert bulletin["danger_level"] == 3
        assert bulletin["risk"] == "Considerable"
        assert bulletin["danger_unknown"] is False
        assert bulletin["danger_by_elevation_band"]["below"] == {"level": 1, "label": "Low"}
        assert bulletin["problems"][0]["name"] == "Wind Slab"
        assert bulletin["problems"][0]["location"] == ["north upper", "east upper"]
        assert bulletin["bottom_line"].startswith("Wind slabs are the primary concern")
        assert bulletin["link"] == "https://avalanche.state.co.us/?lat=39.11780&lng=-106.44540"
        mock_text.assert_not_called()

        cached, _, found = fetch_ctx.cache.get(MAP_LAYER_CACHE_KEY)
        assert found is True

    @patch('summitcast.services.avalanche_service.fetch_text')
    @patch('summitcast.services.avalanche_service.fetch_json')
    def test_page_scrape_when_structured_product_fails(self, mock_json, mock_text, fetch_ctx):
        mock_json.side_effect = avalanche_upstream(product_error=UpstreamTimeout("timed out"))
        mock_text.return_value = CENTER_PAGE

        result = AvalancheFetcher().fetch(fetch_ctx)

        assert result.status == "degraded"
        assert result.payload["detail_source"] == "page_scrape"
        assert result.payload["problems"][0]["name"] == "Wind Slab"
        assert result.payload["danger_level"] == 2
        assert "Wind slabs up to two feet" in result.payload["bottom_line"]

    @patch('summitcast.services.avalanche_service.fetch_text')
    @patch('summitcast.services.avalanche_service.fetch_json')
    def test_utah_advisory_feed(self, mock_json, mock_text, utah_ctx):
        mock_json.side_effect = avalanche_upstream(product=[], advisory=UAC_ADVISORY)

        result = AvalancheFetcher().fetch(utah_ctx)

        assert result.status == "degraded"
        assert result.payload["center_id"] == "UAC"
        assert result.payload["detail_source"] == "center_json"
        assert result.payload["problems"][0]["name"] == "Persistent Weak Layer"
        assert result.payload["published_time"].startswith("2026-02-14T")
        mock_text.assert_not_called()

    @patch('summitcast.services.avalanche_service.fetch_text')
    @patch('summitcast.services.avalanche_service.fetch_json')
    def test_map_layer_summary_when_all_detail_fails(self, mock_json, mock_text, fetch_ctx):
        mock_json.side_effect = avalanche_upstream(product_error=UpstreamTimeout("timed out"))
        mock_text.side_effect = UpstreamHTTPError("403", status_code=403)

        result = AvalancheFetcher().fetch(fetch_ctx)

        assert result.status == "degraded"
        assert result.payload["detail_source"] == "map_layer"
        assert result.payload["danger_level"] == 2
        assert result.payload["risk"] == "Moderate"

    @patch('summitcast.services.avalanche_service.fetch_json')
    def test_off_season_zone_is_ok_with_unknown_danger(self, mock_json, fetch_ctx):
        mock_json.side_effect = avalanche_upstream(map_layer={"features": [OFF_SEASON_ZONE]})

        result = AvalancheFetcher().fetch(fetch_ctx)

        assert result.status == "ok"
        assert result.payload["coverage_status"] == "no_active_forecast"
        assert result.payload["danger_unknown"] is True
        assert result.payload["danger_level"] == 0

    @patch('summitcast.services.avalanche_service.fetch_json')
    def test_no_center_coverage(self, mock_json, fetch_ctx):
        far_ctx = FetchContext(latitude=44.0, longitude=-100.0, window=fetch_ctx.window, cache=fetch_ctx.cache,
                               clock=fetch_ctx.clock)
        mock_json.side_effect = avalanche_upstream()

        result = AvalancheFetcher().fetch(far_ctx)

        assert result.status == "ok"
        assert result.payload["coverage_status"] == "no_center_coverage"
        assert result.payload["danger_unknown"] is True
        assert result.payload["risk"] == "Unknown"

    @patch('summitcast.services.avalanche_service.fetch_json')
    def test_map_layer_down_without_cache_is_zeroed(self, mock_json, fetch_ctx):
        mock_json.side_effect = avalanche_upstream(map_error=UpstreamTimeout("timed out"))

        result = AvalancheFetcher().fetch(fetch_ctx)

        assert result.status == "zeroed"
        assert result.payload["coverage_status"] == "temporarily_unavailable"
        assert result.payload["danger_unknown"] is True

    @patch('summitcast.services.avalanche_service.fetch_text')
    @patch('summitcast.services.avalanche_service.fetch_json')
    def test_stale_map_layer(self, mock_json, mock_text, fetch_ctx, frozen_clock):
        fetch_ctx.cache.set(MAP_LAYER_CACHE_KEY, MAP_LAYER)
        frozen_clock.advance(20 * 60)
        mock_json.side_effect = avalanche_upstream(map_error=UpstreamTimeout("timed out"))
        mock_text.side_effect = UpstreamTimeout("timed out")

        result = AvalancheFetcher().fetch(fetch_ctx)

        assert result.status == "stale"
        assert result.age_seconds == 20 * 60
        assert result.payload["zone"] == "Aspen"

    def test_deadline_fallback_uses_cached_map_layer(self, fetch_ctx):
        fetch_ctx.cache.set(MAP_LAYER_CACHE_KEY, MAP_LAYER)

        result = AvalancheFetcher().fallback(fetch_ctx, "deadline")

        assert result.status == "degraded"
        assert result.payload["detail_source"] == "map_layer"

    def test_deadline_fallback_without_cache(self, fetch_ctx):
        assert AvalancheFetcher().fallback(fetch_ctx, "deadline").status == "zeroed"


# ============================================================================
# Normalization helpers
# ============================================================================


class TestNormalization:
    def test_structured_forecast_picks_current_day(self):
        detail = parse_structured_forecast(STRUCTURED_PRODUCT)
        assert detail["danger"] == {"lower": 1, "middle": 2, "upper": 3}
        assert detail["problems"][0]["likelihood"] == "likely"
        assert detail["problems"][0]["discussion"] == "Fresh drifts."

    def test_structured_forecast_without_content(self):
        assert parse_structured_forecast({"bottom_line": "short"}) is None

    def test_problem_location_shapes(self):
        assert normalize_problem_location({"north upper": True, "east": ["middle, lower"]}) == [
            "north upper", "east", "middle", "lower"
        ]
        assert normalize_problem_location("north, north") == ["north"]
        assert normalize_problem_location(None) == []

    def test_likelihood_shapes(self):
        assert normalize_likelihood(3) == "likely"
        assert normalize_likelihood(["possible", "likely"]) == "possible to likely"
        assert normalize_likelihood({"min": 2, "max": 4}) == "possible to very likely"
        assert normalize_likelihood({"label": "Unlikely"}) == "Unlikely"
        assert normalize_likelihood(None) is None

    def test_external_links(self):
        assert normalize_external_link("http://nwac.us/x") == "https://nwac.us/x"
        assert normalize_external_link("https://www.nwac.us/forecast") == "https://nwac.us/forecast"
        assert normalize_external_link("ftp://example.test") is None
        assert normalize_external_link("") is None


class TestScraper:
    def test_center_page(self):
        detail = parse_center_page(CENTER_PAGE)
        assert detail["problems"] == ["Wind Slab"]
        assert detail["danger"] == {"lower": 1, "middle": 2, "upper": 2}
        assert detail["bottom_line"].startswith("Wind slabs up to two feet deep")

    def test_center_page_without_content(self):
        assert parse_center_page("<html><body><p>Donate today!</p></body></html>") is None

    def test_caic_next_data(self):
        summary = "Wind slabs formed overnight on easterly slopes and will be easy to trigger today near treeline."
        html = (
            '<html><body><script id="__NEXT_DATA__" type="application/json">'
            '{"props": {"pageProps": {"forecast": {"summary": "' + summary + '"}}}}'
            "</script></body></html>"
        )
        assert parse_center_page(html, "CAIC")["bottom_line"] == summary
        assert parse_center_page(html, "NWAC") is None

    def test_bottom_line_prefers_avalanche_vocabulary(self):
        generic = "Thanks for visiting our website, please consider supporting the center this season."
        forecast = "Avoid wind-loaded slopes steeper than thirty degrees today."
        assert pick_best_bottom_line([generic, forecast, "too short"]) == forecast

    def test_uac_json_url(self):
        assert build_uac_json_url("https://utahavalanchecenter.org/forecast/salt-lake") == (
            "https://utahavalanchecenter.org/forecast/salt-lake/json"
        )
        assert build_uac_json_url("https://www.utahavalanchecenter.org/forecast/logan?x=1") == (
            "https://utahavalanchecenter.org/forecast/logan/json"
        )
        assert build_uac_json_url("https://avalanche.state.co.us/forecast/aspen") is None
        assert build_uac_json_url(None) is None

    def test_uac_advisory(self):
        advisory = parse_uac_advisory(UAC_ADVISORY)
        assert advisory["bottom_line"].startswith("Considerable danger")
        assert advisory["problems"] == [
            {"id": 1, "name": "Persistent Weak Layer", "discussion": "Facets near the ground."}
        ]
        assert advisory["published_time"] == "2026-02-14T12:00:00+00:00"
        assert parse_uac_advisory({"advisories": []}) is None
