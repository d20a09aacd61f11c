"""
Gemini access for email parsing, receipt extraction and KPI insights.
"""
import json
import re
from typing import Dict, Optional, Any
from abc import ABC, abstractmethod

import google.generativeai as genai

from ..utils.errors import AIProviderError
from ..utils.logger import get_logger
from config.settings import ai_config


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    def generate_response(
        self,
        prompt: str,
        system_hint: Optional[str] = None,
        json_mode: bool = False,
        image: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Generate a response; ``image`` is ``{"mime_type": ..., "data": bytes}``."""
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        """Get the provider name."""
        pass


class GeminiProvider(LLMProvider):
    """Google Gemini provider implementation."""

    def __init__(self, api_key: str, model_name: str = "gemini-2.5-flash"):
        self.api_key = api_key
        self.model_name = model_name
        self.logger = get_logger("gemini_llm")
        genai.configure(api_key=api_key)

    def _model(self, system_hint: Optional[str], json_mode: bool):
        generation_config = {"response_mime_type": "application/json"} if json_mode else None
        return genai.GenerativeModel(
            self.model_name,
            system_instruction=system_hint,
            generation_config=generation_config,
        )

    def generate_response(
        self,
        prompt: str,
        system_hint: Optional[str] = None,
        json_mode: bool = False,
        image: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Generate response using Gemini API."""
        try:
            contents = [image, prompt] if image else prompt
            response = self._model(system_hint, json_mode).generate_content(contents)

            usage = getattr(response, "usage_metadata", None)
            return {
                "text": (response.text or "").strip(),
                "model": self.model_name,
                "provider": "gemini",
                "prompt_tokens": getattr(usage, "prompt_token_count", 0) if usage else 0,
                "response_tokens": getattr(usage, "candidates_token_count", 0) if usage else 0,
            }
        except Exception as e:
            self.logger.error("Gemini API error", error=str(e), model=self.model_name)
            return {
                "text": "",
                "model": self.model_name,
                "provider": "gemini",
                "error": str(e),
            }

    def get_provider_name(self) -> str:
        return "gemini"


class LLMManager:
    """Holds the configured provider and turns provider errors into exceptions."""

    def __init__(self, provider: Optional[LLMProvider] = None):
        self.logger = get_logger("llm_manager")
        self.provider = provider
        if self.provider is None:
            self._initialize_provider()

    def _initialize_provider(self):
        if not ai_config.api_key:
            self.logger.warning("GEMINI_API_KEY not set; AI extraction disabled")
            return
        self.provider = GeminiProvider(ai_config.api_key, ai_config.model)
        self.logger.info("Initialized gemini provider", model=ai_config.model)

    @property
    def available(self) -> bool:
        return self.provider is not None

    @property
    def model_name(self) -> str:
        return getattr(self.provider, "model_name", ai_config.model)

    def generate(
        self,
        prompt: str,
        system_hint: Optional[str] = None,
        json_mode: bool = False,
        image: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Call the provider; raises ``AIProviderError`` when no text comes back."""
        if self.provider is None:
            raise AIProviderError("Missing GEMINI_API_KEY")

        response = self.provider.generate_response(prompt, system_hint, json_mode, image)
        if response.get("error"):
            raise AIProviderError(response["error"], {"provider": self.provider.get_provider_name()})

        if ai_config.debug:
            self.logger.debug(
                "LLM response",
                provider=self.provider.get_provider_name(),
                prompt_length=len(prompt),
                text=response.get("text", "")[:800],
            )
        return response


_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


def extract_json_text(raw: str) -> str:
    """Strip code fences, or slice from the first '{' to the last '}'."""
    if not raw:
        return raw
    fenced = _FENCE_RE.search(raw)
    text = fenced.group(1).strip() if fenced else raw.strip()
    if not text.startswith("{"):
        start = text.find("{")
        end = text.rfind("}")
        if start != -1 and end != -1 and end > start:
            text = text[start:end + 1]
    return text


def parse_json_response(raw: str) -> Dict[str, Any]:
    """Parse model text into a dict; raises ``AIProviderError`` on non-JSON output."""
    try:
        data = json.loads(extract_json_text(raw))
    except (TypeError, ValueError):
        raise AIProviderError("Gemini returned non-JSON")
    if not isinstance(data, dict):
        raise AIProviderError("Gemini returned non-JSON")
    return data


# Global instance
_llm_manager = None


def get_llm_manager() -> LLMManager:
    """Get the global LLM manager instance."""
    global _llm_manager
    if _llm_manager is None:
        _llm_manager = LLMManager()
    return _llm_manager
