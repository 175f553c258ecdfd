"""
Cloud-Agnostic LLM Adapter.

The analysis service does not lock into any AI vendor. This module provides
the abstraction layer; every adapter is asked for a JSON-only response.

Used by: analysis_service.py.
DO NOT import from analysis_service.py — this is a lower-level abstraction.
"""
import hashlib
from abc import ABC, abstractmethod
from typing import Optional
from datetime import datetime, timezone
from pydantic import BaseModel

from backend.app.core.logging import get_logger

logger = get_logger(__name__)


class LLMResponse(BaseModel):
    """Standardised response from any LLM adapter."""
    text: str
    model_version: str
    prompt_hash: str
    timestamp: datetime
    token_count: Optional[int] = None
    provider: str  # "gemini", "on-prem"


class LLMAdapterConfig(BaseModel):
    """Configuration for an LLM adapter instance."""
    provider: str
    model_name: str
    api_key: Optional[str] = None
    endpoint_url: Optional[str] = None
    max_tokens: int = 4096
    temperature: float = 0.2
    timeout_seconds: float = 120.0


class LLMAdapter(ABC):
    """Abstract base class for LLM adapters."""

    def __init__(self, config: LLMAdapterConfig):
        self.config = config

    @abstractmethod
    async def generate_json(self, system_prompt: str, user_prompt: str) -> LLMResponse:
        """Send a system + user prompt and return the raw JSON text response."""
        ...

    def compute_prompt_hash(self, prompt: str) -> str:
        """Compute a SHA-256 hash of the prompt for audit logging."""
        return hashlib.sha256(prompt.encode()).hexdigest()[:16]

    @property
    def model_version(self) -> str:
        return f"{self.config.provider}/{self.config.model_name}"


class GeminiAdapter(LLMAdapter):
    """Google Gemini implementation."""

    async def generate_json(self, system_prompt: str, user_prompt: str) -> LLMResponse:
        from google import genai
        from google.genai import types
        client = genai.Client(api_key=self.config.api_key)
        response = await client.aio.models.generate_content(
            model=self.config.model_name,
            contents=user_prompt,
            config=types.GenerateContentConfig(
                system_instruction=system_prompt,
                response_mime_type="application/json",
                temperature=self.config.temperature,
                max_output_tokens=self.config.max_tokens,
            ),
        )
        usage = getattr(response, "usage_metadata", None)
        return LLMResponse(
            text=response.text if response.text else "",
            model_version=self.model_version,
            prompt_hash=self.compute_prompt_hash(system_prompt + user_prompt),
            timestamp=datetime.now(timezone.utc),
            token_count=getattr(usage, "total_token_count", None),
            provider="gemini",
        )


class OnPremAdapter(LLMAdapter):
    """Adapter for on-premises LLM (vLLM, Ollama, TGI) behind an OpenAI-compatible API."""

    async def generate_json(self, system_prompt: str, user_prompt: str) -> LLMResponse:
        import httpx
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                f"{self.config.endpoint_url}/v1/chat/completions",
                json={
                    "model": self.config.model_name,
                    "messages": [
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                    "response_format": {"type": "json_object"},
                    "max_tokens": self.config.max_tokens,
                    "temperature": self.config.temperature,
                },
                timeout=self.config.timeout_seconds,
            )
            resp.raise_for_status()
            data = resp.json()
        choice = (data.get("choices") or [{}])[0]
        return LLMResponse(
            text=choice.get("message", {}).get("content") or "",
            model_version=self.model_version,
            prompt_hash=self.compute_prompt_hash(system_prompt + user_prompt),
            timestamp=datetime.now(timezone.utc),
            token_count=data.get("usage", {}).get("total_tokens"),
            provider="on-prem",
        )


def get_adapter(provider: Optional[str] = None) -> LLMAdapter:
    """
    Factory function. Returns the correct adapter based on settings.

    Priority: provider argument > LLM_PROVIDER setting (default gemini).
    """
    from backend.app.core.config import get_settings
    settings = get_settings()

    effective_provider = provider or settings.llm_provider

    if effective_provider == "gemini":
        return GeminiAdapter(LLMAdapterConfig(
            provider="gemini",
            model_name=settings.gemini_model,
            api_key=settings.gemini_api_key,
            timeout_seconds=settings.llm_timeout_seconds,
        ))
    elif effective_provider == "on-prem":
        return OnPremAdapter(LLMAdapterConfig(
            provider="on-prem",
            model_name=settings.onprem_llm_model,
            endpoint_url=settings.onprem_llm_url,
            timeout_seconds=settings.llm_timeout_seconds,
        ))
    else:
        raise ValueError(f"Unknown LLM provider: {effective_provider}")
