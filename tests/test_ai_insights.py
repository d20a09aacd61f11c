"""
Unit tests for AI insights: cache, rate limiter, validator, fallback and service.
"""
import json
import pytest
from unittest.mock import Mock

from voyageur.ai import (
    AICache, RateLimiter, InsightsService, validate_insights_response,
    generate_fallback_insights, build_insights_prompt,
)
from voyageur.ai.rate_limiter import UsageTracker, estimate_tokens
from voyageur.utils.errors import RateLimitError, AIProviderError
from voyageur.utils.models import AnalyticsFilters


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def kpis():
    return {
        "booking": {
            "total_revenue": 10000,
            "occupancy_rate": 40,
            "adr": 2500,
            "revpar": 1000,
            "booking_count": 4,
            "cancellation_rate": 30,
            "avg_length_of_stay": 1.2,
            "repeat_guest_rate": 5,
        },
        "expenses": {"total_expenses": 9000},
        "profit_margin_pct": 10.0,
        "confidence": 60,
    }


@pytest.fixture
def comparison():
    return {"deltas": {"revenue_delta_pct": -20, "occupancy_delta_pct": -5, "expense_delta_pct": 10}}


@pytest.fixture
def model_output():
    return {
        "insights": [
            {"title": "Raise weekend rates", "description": "Weekend ADR lags demand.", "severity": "high",
             "tags": ["revenue"]},
            {"title": "Cut laundry spend", "description": "Laundry cost is up 20%.", "severity": "urgent"},
            {"title": "Reward repeat guests", "description": "Loyalty offers for returning guests.",
             "tags": ["guests"], "actions": [{"label": "Create offer"}, {"label": ""}]},
            {"id": "dup", "title": "Cancellation spike", "description": "Cancellations doubled this week."},
            {"id": "dup", "title": "Another", "description": "Second item with a duplicate id."},
            "not a dict",
            {"title": "", "description": "no title"},
        ],
        "forecasts": [
            {"metric": "revenue", "value": "120000", "change_pct": 250},
            {"metric": "occupancy", "value": 64.5, "confidence": "high"},
            {"metric": "adr", "value": "n/a"},
        ],
        "meta": {"model": " gemini-x "},
    }


class TestAICache:

    def test_expiry(self):
        clock = FakeClock()
        cache = AICache(ttl_seconds=10, clock=clock)
        cache.set("k", {"a": 1})
        assert cache.get("k") == {"a": 1}

        clock.now += 11
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_get_returns_copy(self):
        cache = AICache(ttl_seconds=10)
        cache.set("k", {"a": {"b": 1}})
        cache.get("k")["a"]["b"] = 2
        assert cache.get("k") == {"a": {"b": 1}}

    def test_invalidate_prefix(self):
        cache = AICache(ttl_seconds=10)
        cache.set("ai:p1:x", 1)
        cache.set("ai:p2:x", 2)
        cache.invalidate("ai:p1")
        assert cache.get("ai:p1:x") is None
        assert cache.get("ai:p2:x") == 2
        cache.invalidate()
        assert len(cache) == 0


class TestRateLimiter:

    def test_rpm_window(self):
        clock = FakeClock()
        limiter = RateLimiter(rpm=2, clock=clock)
        limiter.acquire()
        limiter.acquire()
        with pytest.raises(RateLimitError) as exc:
            limiter.acquire()
        assert exc.value.reason == "rate_limited_rpm"

        clock.now += 61
        limiter.acquire()

    def test_daily_cap_resets(self):
        clock = FakeClock()
        limiter = RateLimiter(rpm=10, daily_cap=1, clock=clock)
        limiter.acquire()
        with pytest.raises(RateLimitError) as exc:
            limiter.acquire()
        assert exc.value.reason == "rate_limited_daily_cap"

        clock.now += 24 * 60 * 60
        limiter.acquire()

    def test_invalid_rpm_uses_default(self):
        assert RateLimiter(rpm=0).rpm == 6

    def test_usage_tracker(self):
        tracker = UsageTracker()
        tracker.add(1500, 500, 0.5)
        assert tracker.cost == pytest.approx(1.0)
        assert estimate_tokens("abcde") == 2
        assert estimate_tokens("") == 0


class TestValidator:

    def test_valid_response(self, model_output):
        result = validate_insights_response(model_output)

        insights = result["insights"]
        assert [i["id"] for i in insights] == [
            "raise-weekend-rates", "cut-laundry-spend", "reward-repeat-guests", "dup", "dup-2",
        ]
        assert insights[1]["severity"] == "medium"
        assert insights[0]["actions"][0]["type"] == "adjust-pricing"
        assert insights[1]["actions"][0]["type"] == "review-expenses"
        assert insights[2]["actions"] == [{"label": "Create offer", "type": None, "payload": None}]

        revenue, occupancy = result["forecasts"]
        assert revenue["value"] == 120000.0
        assert revenue["change_pct"] == 100
        assert revenue["unit"] == "INR"
        assert occupancy["confidence"] == 0
        assert occupancy["unit"] == "pct"
        assert result["meta"]["model"] == "gemini-x"

    def test_long_text_is_trimmed(self, model_output):
        model_output["insights"][0]["title"] = "x" * 200
        result = validate_insights_response(model_output)
        title = result["insights"][0]["title"]
        assert len(title) == 120
        assert title.endswith("…")

    def test_rejects_missing_occupancy_forecast(self, model_output):
        model_output["forecasts"] = model_output["forecasts"][:1]
        assert validate_insights_response(model_output) is None

    def test_rejects_too_few_insights(self, model_output):
        model_output["insights"] = model_output["insights"][:3]
        assert validate_insights_response(model_output) is None

    def test_rejects_missing_category(self, model_output):
        model_output["insights"][1] = {"title": "Weather", "description": "Sunny days ahead."}
        assert validate_insights_response(model_output) is None

    def test_rejects_non_dict(self):
        assert validate_insights_response(["x"]) is None


class TestFallback:

    def test_rules_fire(self, kpis, comparison):
        result = generate_fallback_insights(kpis, comparison)

        ids = [i["id"] for i in result["insights"]]
        assert ids == [
            "rev_drop", "low_occ", "high_expenses", "low_repeat_guest_rate", "short_stays", "high_cancellations",
        ]
        assert "90%" in result["insights"][2]["description"]
        forecasts = {f["metric"]: f for f in result["forecasts"]}
        assert forecasts["revenue"]["value"] == 8000
        assert forecasts["expenses"]["value"] == 9900
        assert forecasts["occupancy"]["confidence"] == 60
        assert result["meta"]["model"] == "fallback-rules-v1"

    def test_without_comparison(self, kpis):
        result = generate_fallback_insights(kpis)
        assert result["forecasts"] == []
        assert "rev_drop" not in [i["id"] for i in result["insights"]]


class TestInsightsService:
    """Test cases for generating and caching insights."""

    @pytest.fixture
    def filters(self):
        return AnalyticsFilters("p1", "2025-01-01", "2025-01-31", total_rooms=4)

    @pytest.fixture
    def llm(self):
        return Mock()

    @pytest.fixture
    def service(self, llm):
        return InsightsService(llm=llm, cache=AICache(ttl_seconds=60), limiter=Mock(), price_per_1k=0.15)

    def test_generate_and_cache(self, service, llm, filters, kpis, model_output):
        llm.generate.return_value = {"text": json.dumps(model_output)}

        first = service.generate(filters, kpis)
        second = service.generate(filters, kpis)

        assert first["meta"]["model"] == "gemini-x"
        assert first["meta"]["from_cache"] is False
        assert first["meta"]["prompt_tokens"] > 0
        assert first["meta"]["cost"] > 0
        assert second["meta"]["from_cache"] is True
        llm.generate.assert_called_once()

    @pytest.mark.parametrize("setup, reason", [
        (lambda llm, limiter: setattr(llm.generate, "return_value", {"text": "not json"}), "json_parse_failed"),
        (lambda llm, limiter: setattr(llm.generate, "return_value", {"text": ""}), "empty_text"),
        (lambda llm, limiter: setattr(llm.generate, "return_value", {"text": '{"insights": []}'}),
         "validation_failed"),
        (lambda llm, limiter: setattr(llm.generate, "side_effect", AIProviderError("down")), "model_call_error"),
        (lambda llm, limiter: setattr(limiter.acquire, "side_effect", RateLimitError("rate_limited_rpm")),
         "rate_limited"),
    ])
    def test_fallback_reasons(self, service, llm, filters, kpis, setup, reason):
        setup(llm, service.limiter)

        result = service.generate(filters, kpis)

        assert result["meta"]["model"] == "fallback-rules-v1"
        assert result["meta"]["fallback_reason"] == reason

    def test_invalidate_by_property(self, service, llm, kpis, model_output):
        llm.generate.return_value = {"text": json.dumps(model_output)}
        service.generate(AnalyticsFilters("p1", "2025-01-01", "2025-01-31"), kpis)
        service.generate(AnalyticsFilters("p2", "2025-01-01", "2025-01-31"), kpis)
        assert len(service.cache) == 2

        service.invalidate("p1")
        assert len(service.cache) == 1
        service.invalidate()
        assert len(service.cache) == 0

    def test_prompt_includes_context(self, filters, kpis, comparison):
        prompt = build_insights_prompt(filters, kpis, comparison)
        assert '"property_id":"p1"' in prompt
        assert '"revenue_delta_pct":-20' in prompt
        assert "Comparison: null" in build_insights_prompt(filters, kpis)
