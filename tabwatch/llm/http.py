"""
HTTP code generator — asks a hosted LLM for action/trigger code.

Providers and their default endpoints:
    openai      POST https://api.openai.com/v1/responses
    anthropic   POST https://api.anthropic.com/v1/messages
    gemini      POST https://generativelanguage.googleapis.com/v1beta/models/<model>:generateContent
    openrouter  POST https://openrouter.ai/api/v1/chat/completions  (any other value too)

``endpoint_override`` replaces the default endpoint. Any failure — no
API key, transport error, non-2xx status, malformed or empty reply —
collapses to None so the caller uses its fallback template.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import quote

import httpx

from tabwatch.core.config import CodegenConfig
from tabwatch.core.errors import CodegenError
from tabwatch.llm.base import CodeGenerator

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINTS = {
    "openai": "https://api.openai.com/v1/responses",
    "anthropic": "https://api.anthropic.com/v1/messages",
    "gemini": "https://generativelanguage.googleapis.com/v1beta/models",
    "openrouter": "https://openrouter.ai/api/v1/chat/completions",
}

DEFAULT_MODELS = {
    "openai": "gpt-4.1-mini",
    "anthropic": "claude-3-5-sonnet-latest",
    "gemini": "gemini-1.5-pro",
    "openrouter": "openai/gpt-4o-mini",
}

ANTHROPIC_VERSION = "2023-06-01"


def provider_endpoint(settings: CodegenConfig) -> str:
    if settings.endpoint_override:
        return settings.endpoint_override
    return DEFAULT_ENDPOINTS.get(settings.provider, DEFAULT_ENDPOINTS["openrouter"])


def build_prompt(kind: str, context: dict[str, Any]) -> str:
    return (
        f"Generate only Python code for a {kind}.\n"
        f"{json.dumps(context, indent=2, default=str)}"
    )


class HttpCodeGenerator(CodeGenerator):
    """
    Usage:
        generator = HttpCodeGenerator(config.codegen)
        code = await generator.generate("action", action_context)
        if code is None:
            code = fallback_action_code(action)
    """

    def __init__(
        self,
        settings: CodegenConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def settings(self) -> CodegenConfig:
        return self._settings

    def update_settings(self, settings: CodegenConfig) -> None:
        self._settings = settings

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._settings.timeout, connect=10.0),
                transport=self._transport,
            )
        return self._client

    async def generate(self, kind: str, context: dict[str, Any]) -> str | None:
        if not self._settings.configured:
            return None
        try:
            text = await self._request(kind, context)
        except (httpx.HTTPError, CodegenError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Code generation via {self._settings.provider} failed: {e}")
            return None
        text = (text or "").strip()
        return text or None

    async def _request(self, kind: str, context: dict[str, Any]) -> str:
        provider = self._settings.provider
        api_key = self._settings.api_key.strip()
        model = self._settings.model or DEFAULT_MODELS.get(provider, DEFAULT_MODELS["openrouter"])
        endpoint = provider_endpoint(self._settings)
        prompt = build_prompt(kind, context)
        client = await self._get_client()

        if provider == "openai":
            data = await self._post(
                client,
                endpoint,
                headers={"Authorization": f"Bearer {api_key}"},
                payload={"model": model, "input": prompt},
            )
            return "\n".join(
                part.get("text") or ""
                for item in data.get("output") or []
                for part in item.get("content") or []
            )

        if provider == "anthropic":
            data = await self._post(
                client,
                endpoint,
                headers={"x-api-key": api_key, "anthropic-version": ANTHROPIC_VERSION},
                payload={
                    "model": model,
                    "max_tokens": 800,
                    "messages": [{"role": "user", "content": prompt}],
                },
            )
            return "\n".join(item.get("text") or "" for item in data.get("content") or [])

        if provider == "gemini":
            data = await self._post(
                client,
                f"{endpoint}/{quote(model, safe='')}:generateContent",
                params={"key": api_key},
                payload={"contents": [{"parts": [{"text": prompt}]}]},
            )
            candidates = data.get("candidates") or []
            if not candidates:
                return ""
            parts = (candidates[0].get("content") or {}).get("parts") or []
            return (parts[0].get("text") or "") if parts else ""

        data = await self._post(
            client,
            endpoint,
            headers={"Authorization": f"Bearer {api_key}"},
            payload={"model": model, "messages": [{"role": "user", "content": prompt}]},
        )
        choices = data.get("choices") or []
        if not choices:
            return ""
        return (choices[0].get("message") or {}).get("content") or ""

    async def _post(
        self,
        client: httpx.AsyncClient,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        response = await client.post(url, json=payload, headers=headers, params=params)
        if response.status_code >= 300:
            raise CodegenError(
                f"{self._settings.provider} API error ({response.status_code}): "
                f"{response.text[:200]}",
                provider=self._settings.provider,
                retryable=response.status_code >= 500,
            )
        data = response.json()
        if not isinstance(data, dict):
            raise CodegenError("Unexpected response shape", provider=self._settings.provider)
        return data

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
