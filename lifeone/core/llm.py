"""
LifeONE — LLM Provider Abstraction.

Single public function `complete_chat()` that routes a multi-turn
conversation (optionally with one image on the last user turn) to the
configured provider. Provider is selected at startup via the LLM_PROVIDER
env var. Supports: gemini (default), anthropic, openai, cohere.

Turns use the provider-neutral roles "user" / "model".
"""

from __future__ import annotations

import base64
import logging
from typing import TYPE_CHECKING, Awaitable, Callable

from lifeone.data.models import WebSource
from lifeone.ports.assistant_port import AssistantReply

if TYPE_CHECKING:
    from lifeone.core.prompt_builder import ImageInput

logger = logging.getLogger(__name__)

# Type alias for provider implementations:
# (api_key, model, system, turns, image, max_tokens, web_search) -> reply
_ProviderFn = Callable[
    [str, str, str, list[dict], "ImageInput | None", int, bool],
    Awaitable[AssistantReply],
]

# ---------------------------------------------------------------------------
# Provider implementations
# ---------------------------------------------------------------------------


def _b64(image: ImageInput) -> str:
    return base64.b64encode(image.data).decode("ascii")


def _gemini_sources(response: object) -> list[WebSource]:
    """Collect Google Search grounding chunks, if the response carries any."""
    sources: list[WebSource] = []
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return sources
    metadata = getattr(candidates[0], "grounding_metadata", None)
    for chunk in getattr(metadata, "grounding_chunks", None) or []:
        web = getattr(chunk, "web", None)
        if web is not None and getattr(web, "uri", ""):
            sources.append(WebSource(title=getattr(web, "title", "") or "Source", uri=web.uri))
    return sources


async def _complete_gemini(
    api_key: str, model: str, system: str, turns: list[dict],
    image: ImageInput | None, max_tokens: int, web_search: bool,
) -> AssistantReply:
    import google.generativeai as genai

    genai.configure(api_key=api_key)
    gm = genai.GenerativeModel(
        model_name=model,
        system_instruction=system,
        tools="google_search_retrieval" if web_search else None,
    )

    contents = [{"role": t["role"], "parts": [t["text"]]} for t in turns[:-1] if t["text"]]
    last_parts: list = []
    if image is not None:
        last_parts.append({"mime_type": image.mime_type, "data": image.data})
    if turns and turns[-1]["text"]:
        last_parts.append(turns[-1]["text"])
    contents.append({"role": "user", "parts": last_parts})

    response = await gm.generate_content_async(
        contents,
        generation_config=genai.types.GenerationConfig(max_output_tokens=max_tokens),
    )
    return AssistantReply(text=response.text, sources=_gemini_sources(response))


def _openai_style_messages(turns: list[dict]) -> list[dict]:
    return [
        {"role": "assistant" if t["role"] == "model" else "user", "content": t["text"]}
        for t in turns[:-1]
        if t["text"]
    ]


async def _complete_anthropic(
    api_key: str, model: str, system: str, turns: list[dict],
    image: ImageInput | None, max_tokens: int, web_search: bool,
) -> AssistantReply:
    import anthropic

    content: list[dict] = []
    if image is not None:
        content.append({
            "type": "image",
            "source": {"type": "base64", "media_type": image.mime_type, "data": _b64(image)},
        })
    if turns and turns[-1]["text"]:
        content.append({"type": "text", "text": turns[-1]["text"]})

    client = anthropic.AsyncAnthropic(api_key=api_key)
    response = await client.messages.create(
        model=model,
        max_tokens=max_tokens,
        system=system,
        messages=[*_openai_style_messages(turns), {"role": "user", "content": content}],
    )
    return AssistantReply(text=response.content[0].text)


async def _complete_openai(
    api_key: str, model: str, system: str, turns: list[dict],
    image: ImageInput | None, max_tokens: int, web_search: bool,
) -> AssistantReply:
    from openai import AsyncOpenAI

    content: list[dict] = []
    if turns and turns[-1]["text"]:
        content.append({"type": "text", "text": turns[-1]["text"]})
    if image is not None:
        content.append({
            "type": "image_url",
            "image_url": {"url": f"data:{image.mime_type};base64,{_b64(image)}"},
        })

    client = AsyncOpenAI(api_key=api_key)
    response = await client.chat.completions.create(
        model=model,
        max_tokens=max_tokens,
        messages=[
            {"role": "system", "content": system},
            *_openai_style_messages(turns),
            {"role": "user", "content": content},
        ],
    )
    return AssistantReply(text=response.choices[0].message.content or "")


async def _complete_cohere(
    api_key: str, model: str, system: str, turns: list[dict],
    image: ImageInput | None, max_tokens: int, web_search: bool,
) -> AssistantReply:
    import cohere

    if image is not None:
        logger.warning("Cohere provider ignores image input")

    client = cohere.AsyncClientV2(api_key=api_key)
    response = await client.chat(
        model=model,
        max_tokens=max_tokens,
        messages=[
            {"role": "system", "content": system},
            *_openai_style_messages(turns),
            {"role": "user", "content": turns[-1]["text"] if turns else ""},
        ],
    )
    return AssistantReply(text=response.message.content[0].text)


# ---------------------------------------------------------------------------
# Provider selection (runs once at first call)
# ---------------------------------------------------------------------------

_PROVIDERS: dict[str, tuple[_ProviderFn, str]] = {
    "gemini":    (_complete_gemini,    "gemini-1.5-flash"),
    "anthropic": (_complete_anthropic, "claude-haiku-4-5-20251001"),
    "openai":    (_complete_openai,    "gpt-4o-mini"),
    "cohere":    (_complete_cohere,    "command-a-03-2025"),
}


def _select_provider() -> tuple[_ProviderFn, str, str]:
    """Read env vars and return (provider_fn, model, api_key)."""
    from lifeone.config import settings

    provider_name = settings.LLM_PROVIDER.lower()
    if provider_name not in _PROVIDERS:
        raise ValueError(
            f"Unknown LLM_PROVIDER={provider_name!r}. "
            f"Supported: {', '.join(_PROVIDERS)}"
        )

    fn, default_model = _PROVIDERS[provider_name]
    model = settings.LLM_MODEL or default_model
    api_key = settings.LLM_API_KEY

    logger.info("LLM provider: %s, model: %s", provider_name, model)
    return fn, model, api_key


# Lazy singleton — populated on first call to complete_chat()
_provider_fn: _ProviderFn | None = None
_model: str = ""
_api_key: str = ""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def complete_chat(
    system: str,
    turns: list[dict],
    image: ImageInput | None = None,
    max_tokens: int = 4096,
    web_search: bool = False,
) -> AssistantReply:
    """Send a conversation to the configured LLM provider and return its reply.

    ``turns`` ends with the new user turn; ``image`` is attached to it.
    Raises on API errors — callers should handle exceptions.
    """
    global _provider_fn, _model, _api_key

    if _provider_fn is None:
        _provider_fn, _model, _api_key = _select_provider()

    return await _provider_fn(_api_key, _model, system, turns, image, max_tokens, web_search)
