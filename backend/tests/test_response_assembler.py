"""
Tests for response assembly and rendering.
"""
import json

import pytest

from summitcast.schemas.safety import RequestEcho
from summitcast.services.fire_risk import build_fire_risk
from summitcast.services.heat_risk import build_heat_risk
from summitcast.services.relevance_evaluator import RelevanceEvaluator
from summitcast.services.response_assembler import ResponseAssembler, build_api_warning, render
from summitcast.services.risk_scorer import RiskScorer
from summitcast.services.terrain_classifier import TerrainClassifier

from conftest import LATITUDE, LONGITUDE


@pytest.fixture
def assemble(make_results, window, now):
    """Run the post-fetch stages over make_results(...) output."""

    def run(statuses=None, payloads=None, warnings=None):
        results = make_results(statuses=statuses, payloads=payloads)
        for category, warning in (warnings or {}).items():
            results[category].warning = warning
        relevance = RelevanceEvaluator().evaluate(LATITUDE, results, window, now)
        weather = results["weather"]
        heat = build_heat_risk(weather.payload, weather_usable=weather.usable)
        fire = build_fire_risk(weather.payload, [], results["air_quality"].payload.get("us_aqi"))
        terrain = TerrainClassifier().classify(results["weather"], results["snowpack"], results["rainfall"],
                                               results["solar"])
        assessment = RiskScorer().score(results, relevance, heat, fire, window, now)
        request = RequestEcho(
            latitude=LATITUDE,
            longitude=LONGITUDE,
            date="2026-02-14",
            start_time="06:30",
            travel_window_hours=12,
            timezone="America/Denver",
            start=window.start.isoformat(),
            evaluated_at=now.isoformat(),
        )
        return ResponseAssembler().assemble(request, window, results, relevance, terrain, assessment, heat, fire)

    return run


class TestResponseAssembler:
    """Tests for ResponseAssembler.assemble()"""

    def test_render_is_byte_stable(self, assemble):
        assert render(assemble()) == render(assemble())

    def test_public_field_names(self, assemble):
        body = json.loads(render(assemble()))
        assert list(body)[:3] == ["safety", "confidence", "factors"]
        assert {"airQuality", "heatRisk", "fireRisk", "sourcesUsed", "partialData", "apiWarning"} <= set(body)
        # Nested blocks keep snake_case
        assert "danger_by_elevation_band" in body["avalanche"]
        assert "past24h_in" in body["rainfall"]["totals"]
        assert "gearSuggestions" in body

    def test_score_and_totals_shape(self, assemble):
        body = json.loads(render(assemble()))
        assert set(body["safety"]) == {"score", "label", "primary_hazard"}
        assert 20 <= body["confidence"]["score"] <= 100
        assert "value" not in body["confidence"]
        assert set(body["rainfall"]["totals"]) == {
            "past12h_in", "past24h_in", "past48h_in", "snow_past12h_in", "snow_past24h_in", "snow_past48h_in"
        }
        assert body["rainfall"]["status"] == "ok"
        assert set(body["factors"][0]) >= {"category", "impact", "relevant", "explanation"}

    def test_gear_suggestions_follow_conditions(self, assemble):
        response = assemble()
        assert response.gear_suggestions[0].startswith("Layering core")
        assert response.gear_suggestions[-1].startswith("Final system check")

    def test_fully_live(self, assemble):
        response = assemble()
        assert response.partial_data is False
        assert response.api_warning is None
        assert response.avalanche.relevant is True
        assert response.avalanche.zone == "Aspen"
        assert response.rainfall.totals.past24h_in == 0.0
        assert response.terrain.surface_code == "dry_firm"
        assert response.alerts["in_window_count"] == 0

    def test_partial_data_names_each_degraded_provider(self, assemble):
        response = assemble(
            statuses={"rainfall": "zeroed", "solar": "degraded"},
            warnings={"rainfall": "Precipitation feed unavailable"},
        )
        assert response.partial_data is True
        assert response.api_warning == (
            "Partial data: solar degraded; rainfall zeroed (Precipitation feed unavailable)"
        )
        assert response.rainfall.status == "zeroed"
        assert response.rainfall.totals.past12h_in is None
        assert response.rainfall.totals.snow_past48h_in is None

    def test_provider_blocks_carry_status_and_source(self, assemble):
        response = assemble(statuses={"snowpack": "zeroed"})
        assert response.snowpack["status"] == "zeroed"
        assert response.snowpack["source"] == "snowpack-source"
        statuses = {provider.category: provider.status for provider in response.providers}
        assert statuses["snowpack"] == "zeroed"
        assert "snowpack-source" not in response.sources_used

    def test_not_relevant_categories_still_listed(self, assemble):
        response = assemble()
        alerts = next(f for f in response.factors if f.category == "alerts")
        assert alerts.relevant is False
        assert alerts.impact == 0
        assert response.alerts["relevant"] is False
        assert response.alerts["relevance_reason"]


class TestApiWarning:
    def test_no_warning_when_all_ok(self, make_results):
        assert build_api_warning(make_results()) is None

    def test_stale_is_listed(self, make_results):
        warning = build_api_warning(make_results(statuses={"avalanche": "stale"}))
        assert warning == "Partial data: avalanche stale"
