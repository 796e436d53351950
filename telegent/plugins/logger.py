"""
Telegent — Chat Logger Capability

Records every inbound message for debugging. Also answers a `stats`
action with per-conversation message counts.
"""
import logging
from collections import Counter
from pathlib import Path
from typing import List, Optional

from ..core.types import (
    CapabilityAction, CapabilityDescriptor, CapabilityResult, ConversationId,
)

chat_logger = logging.getLogger("telegent.chatlog")


class LoggerCapability:
    """Logs messages and errors; satisfies the Capability protocol."""

    def __init__(
        self,
        log_to_console: bool = True,
        log_path: Optional[str] = None,
    ):
        self.descriptor = CapabilityDescriptor(
            name="logger",
            version="1.0.0",
            description="Logs all messages and errors for debugging purposes",
            author="Telegent",
            actions=[
                CapabilityAction(
                    name="stats",
                    description="Report how many messages have been logged in this chat",
                    examples=[
                        "How many messages have I sent?",
                        "Show the chat log stats",
                    ],
                ),
            ],
        )
        self.log_to_console = log_to_console
        self.log_path = log_path
        self._file_handler: Optional[logging.FileHandler] = None
        self._seen: Counter = Counter()

    def on_load(self, runtime) -> None:
        if self.log_path:
            path = Path(self.log_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            self._file_handler = logging.FileHandler(path, encoding="utf-8")
            self._file_handler.setFormatter(
                logging.Formatter("%(asctime)s %(message)s")
            )
            chat_logger.addHandler(self._file_handler)
        chat_logger.info("[%s] Plugin loaded", self.descriptor.name)

    def on_unload(self) -> None:
        chat_logger.info("[%s] Plugin unloaded", self.descriptor.name)
        if self._file_handler is not None:
            chat_logger.removeHandler(self._file_handler)
            self._file_handler.close()
            self._file_handler = None

    def on_message(self, conversation_id: ConversationId, text: str) -> None:
        self._seen[str(conversation_id)] += 1
        if self.log_to_console or self._file_handler is not None:
            chat_logger.info("Chat %s: %s", conversation_id, text)

    def on_error(self, error: Exception) -> None:
        chat_logger.error("Error: %s", error, exc_info=error)

    async def execute(self, action: str, params: List[str]) -> CapabilityResult:
        if action != "stats":
            return CapabilityResult(
                result=f"Unknown action: {action}. Available actions: stats",
            )
        if params:
            count = self._seen.get(params[0], 0)
            return CapabilityResult(result=f"{count} message(s) logged in chat {params[0]}.")
        total = sum(self._seen.values())
        return CapabilityResult(
            result=f"{total} message(s) logged across {len(self._seen)} chat(s).",
        )

    def seen(self, conversation_id: ConversationId) -> int:
        return self._seen.get(str(conversation_id), 0)
