"""
Telegent — Anthropic Completion Adapter

Concrete CompletionService backed by the Anthropic Messages API.
Handles message-shape requirements and maps provider failures onto
TransientProviderError. No automatic retries: a failed call fails the turn.
"""
from typing import Dict, List, Optional

import anthropic

from .errors import TransientProviderError


class AnthropicCompletion:
    """
    CompletionService implementation using the async Anthropic client.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-5-20250929",
        cost_tracker=None,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ):
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)
        self.model = model
        self.cost_tracker = cost_tracker

    async def complete(
        self,
        messages: List[Dict[str, str]],
        system: str,
        temperature: float,
        max_tokens: int,
        call_type: str = "answer",
    ) -> str:
        """Send one request. Returns the concatenated text blocks."""
        api_messages = fix_message_alternation(messages)
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system,
                messages=api_messages,
            )
        except anthropic.APIError as e:
            raise TransientProviderError(f"Completion request failed: {e}") from e

        if self.cost_tracker and getattr(response, "usage", None) is not None:
            self.cost_tracker.record(
                call_type=call_type,
                model=self.model,
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
            )
        return "".join(
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        )


def fix_message_alternation(messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
    """
    Ensure messages alternate between user and assistant.
    Anthropic's API requires this pattern.
    """
    if not messages:
        return [{"role": "user", "content": "[conversation start]"}]
    fixed = [dict(messages[0])]
    for msg in messages[1:]:
        if msg["role"] == fixed[-1]["role"]:
            # Merge consecutive same-role messages
            fixed[-1]["content"] += "\n\n" + msg["content"]
        else:
            fixed.append(dict(msg))
    # Ensure it starts with user
    if fixed[0]["role"] != "user":
        fixed.insert(0, {"role": "user", "content": "[conversation start]"})
    return fixed
