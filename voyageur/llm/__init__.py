"""
LLM (Large Language Model) access for the Voyageur Nest backend.
"""

from .providers import (
    LLMProvider,
    GeminiProvider,
    LLMManager,
    extract_json_text,
    parse_json_response,
    get_llm_manager
)

__all__ = [
    'LLMProvider',
    'GeminiProvider',
    'LLMManager',
    'extract_json_text',
    'parse_json_response',
    'get_llm_manager'
]
