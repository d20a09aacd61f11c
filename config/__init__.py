"""
Configuration module for the Voyageur Nest backend.
"""

from .settings import (
    gmail_config,
    supabase_config,
    app_config,
    ai_config,
    ical_config,
    api_config,
)

__all__ = [
    'gmail_config',
    'supabase_config',
    'app_config',
    'ai_config',
    'ical_config',
    'api_config',
]
