"""
AI insights over KPI results.
"""

from .cache import AICache, build_key, build_key_prefix
from .rate_limiter import RateLimiter, UsageTracker
from .validator import validate_insights_response
from .fallback import generate_fallback_insights
from .prompt_builder import build_insights_prompt
from .insights_service import InsightsService

__all__ = [
    'AICache', 'build_key', 'build_key_prefix',
    'RateLimiter', 'UsageTracker',
    'validate_insights_response',
    'generate_fallback_insights',
    'build_insights_prompt',
    'InsightsService',
]
