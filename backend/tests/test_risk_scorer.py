"""
Tests for hazard factor scoring, safety and confidence.
"""
from datetime import datetime, timedelta

import pytest

from summitcast.errors import ComputationError
from summitcast.services.algorithm_config import HAZARD_CAPS, HAZARD_CATEGORIES
from summitcast.services.relevance_evaluator import Relevance
from summitcast.services.risk_scorer import (
    ConfidenceScore,
    FactorDraft,
    HazardFactor,
    RiskScorer,
    SafetyScore,
    Signal,
    safety_label,
    surface_signals,
)

from conftest import DENVER

QUIET = {"level": 0, "label": "Low", "guidance": "No fire-weather concern."}


def all_relevant(**overrides):
    relevance = {category: Relevance(True, f"{category} applies.") for category in HAZARD_CATEGORIES}
    for category, relevant in overrides.items():
        relevance[category] = Relevance(relevant, f"{category} {'applies' if relevant else 'does not apply'}.")
    return relevance


@pytest.fixture
def score(make_results, window, now):
    """Score make_results(...) output with optional relevance / heat / fire overrides."""

    def run(statuses=None, payloads=None, relevance=None, heat=None, fire=None, at=None):
        return RiskScorer().score(
            make_results(statuses=statuses, payloads=payloads),
            relevance or all_relevant(),
            heat or {"level": 0},
            fire or QUIET,
            window,
            at or now,
        )

    return run


def factor(assessment, category):
    return next(f for f in assessment.factors if f.category == category)


# ============================================================================
# Safety score
# ============================================================================


class TestSafetyScore:
    """Tests for RiskScorer.score()"""

    def test_calm_day_with_moderate_avalanche_danger(self, score):
        assessment = score()

        assert [f.category for f in assessment.factors] == HAZARD_CATEGORIES
        assert factor(assessment, "avalanche").impact == 15
        assert factor(assessment, "weather").impact == 0
        assert assessment.safety.score == 85
        assert assessment.safety.label == "Optimal"
        assert assessment.confidence.score == 100
        assert assessment.confidence.reasons == ()
        assert assessment.primary_hazard == "avalanche"

    def test_scores_stay_in_range(self, score):
        # Stack every category as hard as possible
        payloads = {
            "avalanche": {"danger_level": 4, "danger_unknown": False, "problems": [{}, {}, {}],
                          "coverage_status": "reported", "published_time": None},
            "alerts": {"alerts": [{"event": "Blizzard Warning", "severity": "Extreme"}]},
            "air_quality": {"status": "ok", "us_aqi": 320.0, "category": "Hazardous"},
        }
        assessment = score(
            payloads=payloads,
            statuses={"weather": "zeroed", "rainfall": "zeroed"},
            fire={"level": 4, "label": "Extreme", "guidance": "Avoid."},
        )

        assert 0 <= assessment.safety.score <= 100
        assert assessment.safety.label == "Critical"
        assert 20 <= assessment.confidence.score <= 100
        for hazard in assessment.factors:
            assert 0 <= hazard.impact <= HAZARD_CAPS[hazard.category]

    def test_avalanche_impact_is_capped(self, score):
        payloads = {"avalanche": {"danger_level": 4, "danger_unknown": False, "problems": [{}, {}, {}, {}],
                                  "published_time": datetime(2026, 2, 14, 6, 0, tzinfo=DENVER).isoformat()}}
        avalanche = factor(score(payloads=payloads), "avalanche")
        # 52 + 6 exceeds the 55 cap
        assert avalanche.impact == HAZARD_CAPS["avalanche"]
        assert len(avalanche.signals) == 2
        assert avalanche.explanation.startswith("High avalanche danger")

    def test_not_relevant_category_contributes_nothing(self, score):
        payloads = {"avalanche": {"danger_level": 4, "danger_unknown": False, "problems": []}}
        assessment = score(payloads=payloads, relevance=all_relevant(avalanche=False))

        avalanche = factor(assessment, "avalanche")
        assert avalanche.relevant is False
        assert avalanche.impact == 0
        assert avalanche.explanation == "avalanche does not apply."
        assert assessment.safety.score == 100
        assert assessment.primary_hazard == "none"

    def test_unknown_avalanche_danger(self, score):
        payloads = {"avalanche": {"coverage_status": "no_center_coverage", "danger_level": 0, "danger_unknown": True}}
        assessment = score(payloads=payloads)
        assert factor(assessment, "avalanche").impact == 16
        assert "Avalanche danger is unknown for this objective." in assessment.confidence.reasons

    def test_severe_alert_in_window(self, score, window):
        alerts = {"alerts": [{
            "event": "Winter Storm Warning",
            "severity": "Severe",
            "onset": window.start_utc.isoformat(),
            "ends": (window.start_utc + timedelta(hours=24)).isoformat(),
        }]}
        assert factor(score(payloads={"alerts": alerts}), "alerts").impact == 16

    def test_air_quality_and_fire_tiers(self, score):
        assessment = score(
            payloads={"air_quality": {"status": "ok", "us_aqi": 160.0, "category": "Unhealthy"}},
            fire={"level": 3, "label": "High", "guidance": "Avoid open flame."},
        )
        assert factor(assessment, "air_quality").impact == 14
        assert factor(assessment, "fire").impact == 10
        assert "Avoid open flame." in factor(assessment, "fire").explanation

    def test_weather_signals_accumulate(self, score, weather_payload):
        weather = weather_payload(
            wind_mph=32.0,
            gust_mph=48.0,
            description="Chance Thunderstorms",
            trend=[{"time": "2026-02-14T13:30:00+00:00", "temp_f": 40.0, "wind_mph": 32.0, "gust_mph": 48.0,
                    "precip_chance": 85.0}] * 6,
        )
        hazard = factor(score(payloads={"weather": weather}), "weather")
        # wind 12 + severe hours 8 + precip 12 + wet hours 7 + storm 18 exceeds the cap
        assert hazard.impact == HAZARD_CAPS["weather"]
        assert hazard.explanation.startswith("Convective storm")
        assert "Wind up to 48 mph increases exposure on ridges and summits." in hazard.signals

    def test_night_start_after_sunrise_is_penalized(self, score, weather_payload, make_results):
        solar = make_results()["solar"].payload
        solar = dict(solar, sunrise=datetime(2026, 2, 14, 5, 0, tzinfo=DENVER).isoformat())
        hazard = factor(score(payloads={"weather": weather_payload(is_daytime=False), "solar": solar}), "weather")
        assert hazard.impact == 5

    def test_alpine_start_before_sunrise_is_not_penalized(self, score, weather_payload):
        hazard = factor(score(payloads={"weather": weather_payload(is_daytime=False)}), "weather")
        assert hazard.impact == 0

    def test_missing_relevance_is_an_error(self, make_results, window, now):
        relevance = all_relevant()
        del relevance["fire"]
        with pytest.raises(ComputationError):
            RiskScorer().score(make_results(), relevance, {"level": 0}, QUIET, window, now)

    def test_scoring_is_deterministic(self, score):
        assert score() == score()

    def test_labels(self):
        assert safety_label(80) == "Optimal"
        assert safety_label(79) == "Caution"
        assert safety_label(50) == "Caution"
        assert safety_label(49) == "Critical"


# ============================================================================
# Confidence
# ============================================================================


class TestConfidence:
    def test_zeroed_rainfall_lowers_confidence_and_nulls_surface(self, score):
        baseline = score()
        assessment = score(statuses={"rainfall": "zeroed"})

        assert assessment.confidence.score < baseline.confidence.score
        assert assessment.confidence.score == 86
        assert "Precipitation totals unavailable due to upstream outage." in assessment.confidence.reasons
        assert factor(assessment, "surface").impact == 4

    def test_weather_zeroed(self, score):
        assessment = score(statuses={"weather": "zeroed"})
        assert factor(assessment, "weather").impact == 20
        assert assessment.confidence.score == 70

    def test_stale_inputs(self, score):
        assessment = score(statuses={"avalanche": "stale", "rainfall": "stale", "weather": "degraded"})
        # 6 (avalanche stale) + 4 (rainfall stale) + 6 (weather fallback)
        assert assessment.confidence.score == 84

    def test_snowpack_chain_penalty_only_without_reported_coverage(self, score):
        reported = score(statuses={"snowpack": "zeroed"})
        assert reported.confidence.score == 97

        uncovered = score(
            statuses={"snowpack": "zeroed"},
            payloads={"avalanche": {"coverage_status": "no_center_coverage", "danger_unknown": True}},
            relevance=all_relevant(avalanche=False),
        )
        assert uncovered.confidence.score == 93

    def test_air_quality_no_data(self, score):
        assessment = score(payloads={"air_quality": {"status": "no_data", "us_aqi": None}})
        assert assessment.confidence.score == 97

    def test_far_lead_time(self, score, window):
        assessment = score(at=window.start_utc - timedelta(hours=50))
        # alerts not forecast-valid (4) + lead time (6)
        assert assessment.confidence.score == 90
        assert factor(assessment, "weather").impact == 6

    def test_old_weather_issuance(self, score, weather_payload, now):
        weather = weather_payload(issued_time=(now - timedelta(hours=12)).isoformat())
        assert score(payloads={"weather": weather}).confidence.score == 93

    def test_floor(self, score):
        statuses = {category: "zeroed" for category in ("weather", "avalanche", "alerts", "air_quality",
                                                         "rainfall", "snowpack")}
        assessment = score(statuses=statuses,
                           payloads={"avalanche": {"coverage_status": "temporarily_unavailable",
                                                   "danger_unknown": True}})
        assert assessment.confidence.score == 20


# ============================================================================
# Factor state machine
# ============================================================================


class TestFactorStateMachine:
    def test_scoring_before_relevance(self):
        with pytest.raises(ComputationError):
            FactorDraft("weather", 42).scored([])

    def test_relevance_decided_once(self):
        draft = FactorDraft("weather", 42).with_relevance(Relevance(True, "always"))
        with pytest.raises(ComputationError):
            draft.with_relevance(Relevance(False, "again"))

    def test_signals_are_clamped_to_cap(self):
        draft = FactorDraft("surface", 15).with_relevance(Relevance(True, "wet"))
        hazard = draft.scored([Signal(10, "rain"), Signal(8, "snow"), Signal(0, "noise")])
        assert hazard.impact == 15
        assert hazard.signals == ("rain", "snow")

    def test_relevant_without_signals(self):
        hazard = FactorDraft("air_quality", 20).with_relevance(Relevance(True, "sample")).scored([])
        assert hazard.impact == 0
        assert hazard.explanation == "No significant air quality signal for this window."

    def test_invariants(self):
        with pytest.raises(ComputationError):
            HazardFactor("fire", 19, 18, True, "over cap")
        with pytest.raises(ComputationError):
            HazardFactor("fire", 5, 18, False, "not relevant")
        with pytest.raises(ComputationError):
            SafetyScore(101, "Optimal")
        with pytest.raises(ComputationError):
            ConfidenceScore(10)

    def test_surface_signals_from_totals(self, rainfall_payload):
        from summitcast.services.provider_base import ProviderResult

        result = ProviderResult(category="rainfall", status="ok", payload=rainfall_payload(rain24=0.8, snow24=2.5))
        impacts = [signal.impact for signal in surface_signals(result)]
        assert impacts == [7, 4]


# ============================================================================
# Visibility, extreme danger and missing rainfall totals
# ============================================================================


class TestDerivedSignals:
    def test_extreme_avalanche_danger(self, score):
        payloads = {"avalanche": {"danger_level": 5, "danger_unknown": False, "problems": [],
                                  "published_time": datetime(2026, 2, 14, 6, 0, tzinfo=DENVER).isoformat()}}
        avalanche = factor(score(payloads=payloads), "avalanche")
        assert avalanche.impact == 55
        assert avalanche.explanation == "Extreme avalanche danger. Avoid all avalanche terrain."

    def test_visibility_score_drives_weather_impact(self, score, weather_payload):
        # fog 30 + saturated air 18 + overcast 8 + night 6 = 62 (High)
        weather = weather_payload(description="Dense Fog", humidity=95.0, cloud_cover=98.0, is_daytime=False)
        hazard = factor(score(payloads={"weather": weather}), "weather")
        assert hazard.impact == 9
        assert hazard.explanation == "Whiteout/visibility risk is High (62/100)."

    def test_low_visibility_score_adds_nothing(self, score, weather_payload):
        hazard = factor(score(payloads={"weather": weather_payload(description="Patchy Haze")}), "weather")
        # haze 30 alone stays in the Low band (3)
        assert hazard.impact == 3

    def test_unknown_visibility_falls_back_to_wording(self, score, weather_payload):
        weather = weather_payload(description="Smoke", visibility_risk={"score": None, "level": "Unknown"})
        hazard = factor(score(payloads={"weather": weather}), "weather")
        assert hazard.impact == 6
        assert hazard.explanation == "Reduced visibility (fog, smoke or haze) complicates navigation."

    def test_missing_rainfall_totals_cost_confidence(self, score, rainfall_payload):
        rainfall = rainfall_payload(rain24=None, snow24=None)
        rainfall["fallback_mode"] = "no_data"
        assessment = score(statuses={"rainfall": "degraded"}, payloads={"rainfall": rainfall})

        # rainfall no data (3) + surface chain suppressed (6), no generic fallback-tier deduction
        assert assessment.confidence.score == 91
        assert "Precipitation totals unavailable for the planned start." in assessment.confidence.reasons
        assert "Precipitation totals come from a fallback tier." not in assessment.confidence.reasons
        assert factor(assessment, "surface").impact == 4

    def test_open_meteo_replacement_without_issue_time(self, score, weather_payload):
        weather = weather_payload(issued_time=None, source="Open-Meteo")
        assessment = score(statuses={"weather": "degraded"}, payloads={"weather": weather})
        assert "Weather issuance time unavailable." in assessment.confidence.reasons
        # fallback source (6) + missing issuance (8)
        assert assessment.confidence.score == 86
