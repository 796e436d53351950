"""
Telegent — Collaborator Protocols

Defines what the agent needs from the outside world.
Uses structural typing (Protocol) — any object with these methods works.
No inheritance, no registration, no boilerplate.

- CompletionService: turns role-tagged messages into generated text
- ChatTransport: delivers inbound messages and accepts replies
"""
from typing import Awaitable, Callable, Dict, List, Protocol, runtime_checkable

from .types import ConversationId, InboundMessage


@runtime_checkable
class CompletionService(Protocol):
    """
    The text-completion provider.

    The orchestrator uses two call shapes: a low-temperature, short
    "decision" call and a higher-temperature, long "final answer" call.
    """

    async def complete(
        self,
        messages: List[Dict[str, str]],
        system: str,
        temperature: float,
        max_tokens: int,
        call_type: str = "answer",
    ) -> str:
        """
        Generate a reply.

        Args:
            messages: [{"role": "user"|"assistant", "content": str}, ...]
            system: System instructions
            temperature: Sampling temperature
            max_tokens: Output length cap
            call_type: "decision" or "answer", for cost accounting

        Returns:
            Generated text. Provider failures raise TransientProviderError.
        """
        ...


InboundHandler = Callable[[InboundMessage], Awaitable[None]]


@runtime_checkable
class ChatTransport(Protocol):
    """The chat network adapter (Telegram bot, test harness, ...)."""

    def on_message(self, handler: InboundHandler) -> None:
        """Register the coroutine called for each inbound text message."""
        ...

    async def send_text(self, conversation_id: ConversationId, text: str) -> None:
        ...

    async def send_image(
        self, conversation_id: ConversationId, url: str, caption: str = ""
    ) -> None:
        ...
