"""Unified LLM provider using direct SDKs (openai, anthropic) and the Ollama HTTP API.

Public API:
    call_llm(provider, model, messages, temperature, max_tokens, ...) -> LLMResponse

Routing:
  - openai     -> openai SDK
  - groq       -> openai SDK against Groq's OpenAI-compatible endpoint
  - anthropic  -> anthropic SDK
  - ollama     -> POST {ollama_url}/api/chat via httpx
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..core.config import settings
from ..core.exceptions import UnsupportedProviderError, ValidationError

logger = logging.getLogger(__name__)

GROQ_BASE_URL = "https://api.groq.com/openai/v1"

DEFAULT_MODELS: dict[str, str] = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-haiku-latest",
    "groq": "llama-3.3-70b-versatile",
    "ollama": "llama3.2",
}

SUPPORTED_PROVIDERS = tuple(DEFAULT_MODELS)

_DATA_URL = re.compile(r"^data:(?P<media>[\w/+.-]+);base64,(?P<data>.+)$", re.DOTALL)


@dataclass
class LLMResponse:
    """Standardized response from call_llm."""

    text: str | None = None
    model: str | None = None
    provider: str | None = None
    usage: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Lazy client singletons, one per (provider, api key)
# ---------------------------------------------------------------------------

_clients: dict[tuple[str, ...], Any] = {}


def _get_openai_client(api_key: str | None, base_url: str | None = None, provider: str = "openai") -> Any:
    key = (provider, api_key or "", base_url or "")
    if key not in _clients:
        from openai import AsyncOpenAI

        _clients[key] = AsyncOpenAI(api_key=api_key, base_url=base_url)
    return _clients[key]


def _get_anthropic_client(api_key: str | None) -> Any:
    key = ("anthropic", api_key or "")
    if key not in _clients:
        from anthropic import AsyncAnthropic

        _clients[key] = AsyncAnthropic(api_key=api_key)
    return _clients[key]


def _resolve_api_key(provider: str, api_key: str | None) -> str | None:
    if api_key:
        return api_key
    return {
        "openai": settings.openai_api_key,
        "anthropic": settings.anthropic_api_key,
        "groq": settings.groq_api_key,
    }.get(provider)


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


async def _call_openai_compat(
    client: Any,
    provider: str,
    model: str,
    messages: list[dict],
    temperature: float,
    max_tokens: int | None,
) -> LLMResponse:
    completion_kwargs: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "temperature": temperature,
    }
    if max_tokens:
        completion_kwargs["max_tokens"] = max_tokens

    completion = await client.chat.completions.create(**completion_kwargs)

    resp = LLMResponse(model=getattr(completion, "model", model), provider=provider)
    usage = getattr(completion, "usage", None)
    if usage is not None:
        resp.usage = {
            "promptTokens": getattr(usage, "prompt_tokens", None),
            "completionTokens": getattr(usage, "completion_tokens", None),
            "totalTokens": getattr(usage, "total_tokens", None),
        }
    choice = completion.choices[0] if completion.choices else None
    if choice:
        resp.text = choice.message.content
    return resp


def _convert_content_to_anthropic(content: Any) -> Any:
    """Map OpenAI-style content parts (text, image_url) to Anthropic blocks."""
    if not isinstance(content, list):
        return content

    blocks: list[dict[str, Any]] = []
    for part in content:
        if part.get("type") == "image_url":
            url = part.get("image_url", {}).get("url", "")
            match = _DATA_URL.match(url)
            if match:
                source = {"type": "base64", "media_type": match["media"], "data": match["data"]}
            else:
                source = {"type": "url", "url": url}
            blocks.append({"type": "image", "source": source})
        else:
            blocks.append({"type": "text", "text": part.get("text", "")})
    return blocks


async def _call_anthropic(
    api_key: str | None,
    model: str,
    messages: list[dict],
    temperature: float,
    max_tokens: int | None,
) -> LLMResponse:
    client = _get_anthropic_client(api_key)

    system_parts = [m["content"] for m in messages if m.get("role") == "system"]
    api_messages = [
        {"role": m["role"], "content": _convert_content_to_anthropic(m.get("content"))}
        for m in messages
        if m.get("role") != "system"
    ]

    call_kwargs: dict[str, Any] = {
        "model": model,
        "messages": api_messages,
        "max_tokens": max_tokens or 4096,
        "temperature": temperature,
    }
    if system_parts:
        call_kwargs["system"] = "\n\n".join(str(p) for p in system_parts)

    response = await client.messages.create(**call_kwargs)

    text_parts = [block.text for block in response.content if block.type == "text"]
    resp = LLMResponse(
        text="\n".join(text_parts) if text_parts else None,
        model=getattr(response, "model", model),
        provider="anthropic",
    )
    usage = getattr(response, "usage", None)
    if usage is not None:
        resp.usage = {
            "promptTokens": getattr(usage, "input_tokens", None),
            "completionTokens": getattr(usage, "output_tokens", None),
        }
    return resp


async def _call_ollama(
    http_client: httpx.AsyncClient | None,
    base_url: str | None,
    model: str,
    messages: list[dict],
    temperature: float,
    max_tokens: int | None,
) -> LLMResponse:
    options: dict[str, Any] = {"temperature": temperature}
    if max_tokens:
        options["num_predict"] = max_tokens

    payload = {"model": model, "messages": messages, "stream": False, "options": options}
    url = f"{(base_url or settings.ollama_url).rstrip('/')}/api/chat"

    if http_client is not None:
        response = await http_client.post(url, json=payload)
    else:
        async with httpx.AsyncClient(timeout=settings.http_timeout_ms / 1000) as client:
            response = await client.post(url, json=payload)
    response.raise_for_status()
    body = response.json()

    return LLMResponse(
        text=(body.get("message") or {}).get("content"),
        model=body.get("model", model),
        provider="ollama",
        usage={
            "promptTokens": body.get("prompt_eval_count"),
            "completionTokens": body.get("eval_count"),
        },
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def call_llm(
    provider: str | None,
    model: str | None,
    messages: list[dict],
    temperature: float = 0.7,
    max_tokens: int | None = None,
    api_key: str | None = None,
    base_url: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> LLMResponse:
    """Call a chat model on the given provider.

    Args:
        provider: openai, anthropic, groq or ollama (default from settings).
        model: Model identifier; provider default when empty.
        messages: Conversation as OpenAI-format dicts.
        temperature: Sampling temperature.
        max_tokens: Completion token cap.
        api_key: Overrides the key from settings.
        base_url: Overrides the provider endpoint (Ollama URL, OpenAI-compatible proxy).
        http_client: Shared client for the Ollama backend.

    Returns:
        LLMResponse with .text populated.

    Raises:
        UnsupportedProviderError: provider is not one of the supported ones.
    """
    provider = (provider or settings.default_ai_provider).lower()
    if provider not in SUPPORTED_PROVIDERS:
        raise UnsupportedProviderError(provider)
    if not messages:
        raise ValidationError("At least one message is required", field="messages")

    model = model or DEFAULT_MODELS[provider]
    key = _resolve_api_key(provider, api_key)
    logger.debug("Calling %s model %s with %d messages", provider, model, len(messages))

    if provider == "openai":
        client = _get_openai_client(key, base_url)
        return await _call_openai_compat(client, provider, model, messages, temperature, max_tokens)

    if provider == "groq":
        client = _get_openai_client(key, base_url or GROQ_BASE_URL, provider="groq")
        return await _call_openai_compat(client, provider, model, messages, temperature, max_tokens)

    if provider == "anthropic":
        return await _call_anthropic(key, model, messages, temperature, max_tokens)

    return await _call_ollama(http_client, base_url, model, messages, temperature, max_tokens)
