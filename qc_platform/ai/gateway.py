"""
QC Inspection Platform
Insight Gateway.

Provider-agnostic router for the project analysis text:
    - Multi-provider support (Anthropic Claude, OpenAI, local stub)
    - Caller-supplied timeout on every call
    - Failures returned as a value (AnalysisResult), never raised, so report
      compilation can branch on success instead of suppressing exceptions

Usage:
    from qc_platform.ai.gateway import InsightGateway
    gw = InsightGateway()
    result = gw.analyze(payload, timeout=20)
    if result.ok:
        print(result.text)
"""

from __future__ import annotations

import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from qc_platform.ai.insights import build_messages
from qc_platform.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of one analyze() call: text on success, error message otherwise."""

    text: str | None = None
    error: str | None = None
    provider: str | None = None
    model: str | None = None
    latency_ms: int = 0

    @property
    def ok(self) -> bool:
        return bool(self.text) and self.error is None

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "text": self.text,
            "error": self.error,
            "provider": self.provider,
            "model": self.model,
            "latency_ms": self.latency_ms,
        }


# ── Provider Abstract Base ────────────────────────────────────────────────────

class InsightProvider(ABC):
    """Abstract interface for analysis text providers."""

    name = "base"

    @abstractmethod
    def complete(self, messages: list, model: str, *, timeout: float, **kwargs) -> str:
        """
        Run one chat completion and return its text.

        Args:
            messages: List of {"role": "...", "content": "..."} dicts.
            model: Model identifier string.
            timeout: Seconds before the call is abandoned.
        """
        ...


# ── Anthropic Provider ────────────────────────────────────────────────────────

class AnthropicProvider(InsightProvider):
    """Claude API (Anthropic) provider."""

    name = "anthropic"

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            import anthropic
            self._client = anthropic.Anthropic(api_key=self.api_key, max_retries=0)
        return self._client

    def complete(self, messages: list, model: str = "claude-3-5-haiku-20241022", *,
                 timeout: float = DEFAULT_TIMEOUT_SECONDS, **kwargs) -> str:
        client = self._get_client()

        system_msg = ""
        chat_messages = []
        for m in messages:
            if m["role"] == "system":
                system_msg = m["content"]
            else:
                chat_messages.append(m)

        params = {
            "model": model,
            "messages": chat_messages,
            "max_tokens": kwargs.get("max_tokens", 3000),
            "temperature": kwargs.get("temperature", 0.7),
            "timeout": timeout,
        }
        if system_msg:
            params["system"] = system_msg

        response = client.messages.create(**params)
        return response.content[0].text


# ── OpenAI Provider ───────────────────────────────────────────────────────────

class OpenAIProvider(InsightProvider):
    """OpenAI GPT provider."""

    name = "openai"

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            import openai
            self._client = openai.OpenAI(api_key=self.api_key, max_retries=0)
        return self._client

    def complete(self, messages: list, model: str = "gpt-4o-mini", *,
                 timeout: float = DEFAULT_TIMEOUT_SECONDS, **kwargs) -> str:
        client = self._get_client()
        response = client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=kwargs.get("max_tokens", 3000),
            temperature=kwargs.get("temperature", 0.7),
            timeout=timeout,
        )
        return response.choices[0].message.content


# ── Local Stub Provider ───────────────────────────────────────────────────────

class LocalStubProvider(InsightProvider):
    """
    Local stub that returns deterministic text for dev/testing.
    No API key required.
    """

    name = "local"

    def complete(self, messages: list, model: str = "local-stub", *,
                 timeout: float = DEFAULT_TIMEOUT_SECONDS, **kwargs) -> str:
        user_msg = ""
        for m in reversed(messages):
            if m["role"] == "user":
                user_msg = m["content"]
                break

        header = user_msg.split("\n\n", 1)[0]
        return (
            "EXECUTIVE SUMMARY (local stub)\n"
            f"{header}\n\n"
            "Overall assessment: inspection data received. Configure an AI "
            "provider key to obtain a full analysis."
        )


# ═════════════════════════════════════════════════════════════════════════════
# Gateway
# ═════════════════════════════════════════════════════════════════════════════

class InsightGateway:
    """
    Routes analysis requests to a provider by model name.

    Providers without an API key are not registered; asking for one of their
    models returns a failed AnalysisResult. The local stub answers only when
    ``local-stub`` is selected explicitly. With no model configured, analysis
    is disabled. Tests inject ``providers`` directly.
    """

    PROVIDER_MAP = {
        "claude-3-5-haiku-20241022": "anthropic",
        "claude-3-5-sonnet-20241022": "anthropic",
        "gpt-4o-mini": "openai",
        "gpt-4o": "openai",
        "gpt-4-turbo": "openai",
        "local-stub": "local",
    }

    DEFAULT_MODEL = os.getenv("INSIGHT_MODEL") or None

    def __init__(self, model: str | None = None, timeout: float | None = None,
                 providers: dict | None = None):
        self.model = model or self.DEFAULT_MODEL
        self.timeout = timeout or DEFAULT_TIMEOUT_SECONDS
        if providers is not None:
            self._providers = dict(providers)
        else:
            self._providers = {}
            self._init_providers()

    @classmethod
    def from_config(cls, config) -> "InsightGateway":
        return cls(
            model=config.get("INSIGHT_MODEL"),
            timeout=config.get("INSIGHT_TIMEOUT_SECONDS"),
        )

    def _init_providers(self):
        """Initialize available providers based on environment."""
        self._providers["local"] = LocalStubProvider()
        if os.getenv("ANTHROPIC_API_KEY"):
            self._providers["anthropic"] = AnthropicProvider()
        if os.getenv("OPENAI_API_KEY"):
            self._providers["openai"] = OpenAIProvider()

    def _provider_name_for(self, model: str) -> str | None:
        if model in self.PROVIDER_MAP:
            return self.PROVIDER_MAP[model]
        if model.startswith("claude"):
            return "anthropic"
        if model.startswith("gpt"):
            return "openai"
        return None

    def _get_provider(self, model: str | None) -> tuple[InsightProvider, str]:
        """Resolve model to a registered provider or raise ExternalServiceError."""
        if not model:
            raise ExternalServiceError("insight", "analysis disabled: no INSIGHT_MODEL configured")
        provider_name = self._provider_name_for(model)
        if provider_name is None:
            raise ExternalServiceError("insight", f"no provider known for model '{model}'")
        provider = self._providers.get(provider_name)
        if provider is None:
            raise ExternalServiceError(provider_name, f"provider not configured for model '{model}'")
        return provider, provider_name

    def analyze(self, payload: dict, timeout: float | None = None,
                model: str | None = None) -> AnalysisResult:
        """Produce analysis text for ``payload``; failures come back in ``error``."""
        model = model or self.model
        timeout = timeout or self.timeout
        start = time.monotonic()
        provider_name = None
        try:
            provider, provider_name = self._get_provider(model)
            text = provider.complete(build_messages(payload), model, timeout=timeout)
            if not text or not text.strip():
                raise ExternalServiceError(provider_name, "empty analysis returned")
        except ExternalServiceError as exc:
            return self._failed(exc, provider_name, model, start)
        except Exception as exc:
            wrapped = ExternalServiceError(provider_name or "insight", f"{type(exc).__name__}: {exc}")
            return self._failed(wrapped, provider_name, model, start)

        latency_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Insight analysis completed provider=%s model=%s latency=%dms chars=%d",
            provider_name, model, latency_ms, len(text),
        )
        return AnalysisResult(
            text=text.strip(), provider=provider_name, model=model, latency_ms=latency_ms,
        )

    @staticmethod
    def _failed(error: ExternalServiceError, provider_name, model, start) -> AnalysisResult:
        latency_ms = int((time.monotonic() - start) * 1000)
        logger.warning(
            "Insight analysis failed provider=%s model=%s latency=%dms: %s",
            provider_name, model, latency_ms, error,
        )
        return AnalysisResult(
            error=str(error), provider=provider_name, model=model, latency_ms=latency_ms,
        )
