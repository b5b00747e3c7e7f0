"""Tests for lifeone.adapters.llm_assistant — the AssistantPort adapter."""

from unittest.mock import AsyncMock, patch

import pytest

from lifeone.adapters.llm_assistant import LLMAssistant
from lifeone.core.prompt_builder import AssistantRequest, ImageInput
from lifeone.ports.assistant_port import AssistantError, AssistantReply


def _request():
    return AssistantRequest(
        system="sys",
        history=[{"role": "user", "text": "안녕"}, {"role": "model", "text": "안녕하세요"}],
        text="영수증 저장",
        image=ImageInput(data=b"\xff\xd8", ref="file-1"),
    )


class TestLLMAssistant:
    @pytest.mark.asyncio
    async def test_forwards_request(self):
        reply = AssistantReply(text='{"answer": "ok"}')
        request = _request()
        with patch("lifeone.adapters.llm_assistant.complete_chat", AsyncMock(return_value=reply)) as mock_chat:
            result = await LLMAssistant(max_tokens=512, web_search=False).generate(request)
        assert result is reply
        mock_chat.assert_awaited_once_with(
            system="sys",
            turns=request.turns(),
            image=request.image,
            max_tokens=512,
            web_search=False,
        )

    @pytest.mark.asyncio
    async def test_provider_error_wrapped(self):
        with patch("lifeone.adapters.llm_assistant.complete_chat", AsyncMock(side_effect=TimeoutError("slow"))):
            with pytest.raises(AssistantError, match="slow"):
                await LLMAssistant(max_tokens=512, web_search=False).generate(_request())

    def test_defaults_from_settings(self):
        from lifeone.config import settings
        assistant = LLMAssistant()
        assert assistant._max_tokens == settings.LLM_MAX_TOKENS
        assert assistant._web_search == settings.LLM_WEB_SEARCH
