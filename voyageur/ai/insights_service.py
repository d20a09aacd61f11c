"""
AI insights: Gemini-generated analysis of KPIs with a rule-based fallback.
"""
import json
import re
from typing import Any, Dict, Optional

from .cache import AICache, build_key
from .fallback import generate_fallback_insights
from .prompt_builder import build_insights_prompt
from .rate_limiter import RateLimiter, UsageTracker, estimate_tokens
from .validator import validate_insights_response
from ..llm.providers import LLMManager, get_llm_manager
from ..utils.errors import RateLimitError, VoyageurError
from ..utils.logger import get_logger
from ..utils.models import AnalyticsFilters
from config.settings import ai_config

_TRAILING_OBJECT_RE = re.compile(r"\{[\s\S]*\}$")


def try_parse_json(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except ValueError:
        match = _TRAILING_OBJECT_RE.search(text)
        if match:
            try:
                return json.loads(match.group(0))
            except ValueError:
                return None
        return None


class InsightsService:
    """Generates, validates and caches insight results per filter set."""

    def __init__(
        self,
        llm: Optional[LLMManager] = None,
        cache: Optional[AICache] = None,
        limiter: Optional[RateLimiter] = None,
        price_per_1k: Optional[float] = None,
    ):
        self.logger = get_logger("insights_service")
        self.llm = llm or get_llm_manager()
        self.cache = cache or AICache()
        self.limiter = limiter or RateLimiter(ai_config.rpm, ai_config.daily_cap)
        self.price_per_1k = ai_config.price_per_1k_tokens if price_per_1k is None else price_per_1k

    def generate(
        self,
        filters: AnalyticsFilters,
        kpis: Dict[str, Any],
        comparison: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        cache_key = build_key(["ai", "insights", filters.to_dict()])
        cached = self.cache.get(cache_key)
        if cached is not None:
            self.logger.debug("Returning AI insights from cache", cache_key=cache_key)
            cached["meta"]["from_cache"] = True
            return cached

        prompt = build_insights_prompt(filters, kpis, comparison)
        tracker = UsageTracker()
        tracker.add(estimate_tokens(prompt), 0, self.price_per_1k)

        result = None
        fallback_reason = None
        try:
            self.limiter.acquire()
            response = self.llm.generate(prompt)
            text = response.get("text") or ""
            tracker.add(0, estimate_tokens(text), self.price_per_1k)

            parsed = try_parse_json(text) if text else None
            if not text:
                fallback_reason = "empty_text"
            elif parsed is None:
                fallback_reason = "json_parse_failed"
                self.logger.warning("Failed to parse insights JSON", sample=text[:500])
            else:
                result = validate_insights_response(parsed)
                if result is None:
                    fallback_reason = "validation_failed"
        except RateLimitError as e:
            fallback_reason = "rate_limited"
            self.logger.warning("AI insights rate limited", reason=e.reason)
        except VoyageurError as e:
            fallback_reason = "model_call_error"
            self.logger.error("Gemini call failed", error=str(e))

        if result is None:
            self.logger.info("Using fallback AI insights", reason=fallback_reason or "unknown")
            result = generate_fallback_insights(kpis, comparison)
            result["meta"]["fallback_reason"] = fallback_reason

        result["meta"].update({
            "cost": round(tracker.cost, 6),
            "prompt_tokens": tracker.prompt_tokens,
            "response_tokens": tracker.response_tokens,
        })
        self.cache.set(cache_key, result)
        self.logger.info(
            "AI insights generated",
            model=result["meta"]["model"],
            insights=len(result["insights"]),
            forecasts=len(result["forecasts"]),
        )
        return result

    def invalidate(self, property_id: Optional[str] = None):
        """Drop cached insights, for one property or all."""
        if property_id is None:
            self.cache.invalidate(build_key(["ai", "insights"])[:-1])
            return
        # property_id is the first field of the serialized filters
        self.cache.invalidate(build_key(["ai", "insights", {"property_id": property_id}])[:-2] + ",")
