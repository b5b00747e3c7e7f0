"""Assistant port — abstract interface for the AI provider.

Core modules depend on this protocol, never on a specific LLM vendor.
Tests substitute a deterministic fake.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from lifeone.data.models import WebSource

if TYPE_CHECKING:
    from lifeone.core.prompt_builder import AssistantRequest


class AssistantError(Exception):
    """Raised when the AI provider call fails."""


@dataclass
class AssistantReply:
    """Raw provider output: the reply text plus any web search sources."""

    text: str
    sources: list[WebSource] = field(default_factory=list)


class AssistantPort(Protocol):
    """Abstract assistant interface used by core modules."""

    async def generate(self, request: AssistantRequest) -> AssistantReply: ...
