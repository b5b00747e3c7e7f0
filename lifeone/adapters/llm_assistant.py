"""LLM assistant adapter — implements AssistantPort on top of lifeone.core.llm.

All vendor-specific logic lives in the provider layer; this adapter only
forwards the request and converts failures into AssistantError.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from lifeone.core.llm import complete_chat
from lifeone.ports.assistant_port import AssistantError, AssistantReply

if TYPE_CHECKING:
    from lifeone.core.prompt_builder import AssistantRequest

logger = logging.getLogger(__name__)


class LLMAssistant:
    """Configured-provider implementation of AssistantPort."""

    def __init__(self, max_tokens: int | None = None, web_search: bool | None = None) -> None:
        if max_tokens is None or web_search is None:
            from lifeone.config import settings
            max_tokens = settings.LLM_MAX_TOKENS if max_tokens is None else max_tokens
            web_search = settings.LLM_WEB_SEARCH if web_search is None else web_search
        self._max_tokens = max_tokens
        self._web_search = web_search

    async def generate(self, request: AssistantRequest) -> AssistantReply:
        try:
            reply = await complete_chat(
                system=request.system,
                turns=request.turns(),
                image=request.image,
                max_tokens=self._max_tokens,
                web_search=self._web_search,
            )
        except Exception as exc:
            logger.error("LLM provider error: %s", exc)
            raise AssistantError(f"Failed to get a reply from the assistant: {exc}") from exc
        logger.debug("LLM raw response: %s", reply.text[:500])
        return reply
