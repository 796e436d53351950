"""
Telegent — Agent Runtime

The explicitly owned context object: builds every component from an
AgentConfig, wires a chat transport to the orchestrator, and tears it all
down again. Nothing here is module-global.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from .completion import AnthropicCompletion
from .maintenance import RetentionSweeper
from .orchestrator import DispatchOrchestrator
from .persona import build_persona_prompt, load_persona
from .types import AgentReply, CapabilityDescriptor, InboundMessage, Persona
from ..indexing.fingerprint import FingerprintGenerator
from ..plugins.capability import Capability
from ..plugins.registry import CapabilityRegistry
from ..storage.context_store import ConversationContextStore
from ..storage.database import Database
from ..storage.message_log import MessageLog
from ..utils.config import AgentConfig
from ..utils.cost_tracker import CostTracker
from ..utils.logging import print_turn_summary, setup_logging

logger = logging.getLogger(__name__)


class ChatAgent:
    """
    Owns storage, registry, completion adapter, orchestrator and sweeper.

    Usage:
        async with ChatAgent(AgentConfig.from_env()) as agent:
            await agent.register_capability(LoggerCapability())
            agent.bind_transport(transport)
            ...
    """

    def __init__(
        self,
        config: Optional[AgentConfig] = None,
        completion=None,
        persona: Optional[Persona] = None,
        clock=None,
        configure_logging: bool = False,
    ):
        self.config = config or AgentConfig()
        if configure_logging:
            setup_logging(level=self.config.log_level, debug=self.config.debug_mode)
        for warning in self.config.validate():
            logger.warning(warning)

        # Cost tracking
        self.cost_tracker = CostTracker() if self.config.cost_tracking_enabled else None

        store_kwargs = {"clock": clock} if clock is not None else {}
        self.db = Database(self.config.db_path)
        self.fingerprints = FingerprintGenerator(self.config.fingerprint_dimensions)
        self.message_log = MessageLog(
            self.db, dimensions=self.config.fingerprint_dimensions, **store_kwargs
        )
        self.context_store = ConversationContextStore(self.db, **store_kwargs)
        self.registry = CapabilityRegistry(runtime=self)

        # Completion service: injected, or Anthropic from config
        if completion is None:
            completion = AnthropicCompletion(
                api_key=self.config.anthropic_api_key,
                model=self.config.model,
                cost_tracker=self.cost_tracker,
            )
        self.completion = completion

        if persona is None and self.config.persona_path:
            persona = load_persona(self.config.persona_path)
        self.persona = persona
        self.base_prompt = build_persona_prompt(persona)

        self.orchestrator = DispatchOrchestrator(
            message_log=self.message_log,
            context_store=self.context_store,
            registry=self.registry,
            fingerprints=self.fingerprints,
            completion=self.completion,
            base_prompt=self.base_prompt,
            config=self.config,
        )
        if self.config.debug_mode:
            self.orchestrator.set_debug_callback(print_turn_summary)

        self.sweeper = RetentionSweeper(
            self.message_log,
            self.context_store,
            interval=self.config.sweep_interval_seconds,
            message_retention=timedelta(days=self.config.message_retention_days),
            context_retention=timedelta(days=self.config.context_retention_days),
        )
        self.transport = None
        self._closed = False

    # ─── Lifecycle ────────────────────────────────────────────────────────

    async def start(self) -> None:
        self.sweeper.start()
        logger.info("Agent started (db=%s, model=%s)", self.config.db_path, self.config.model)

    async def shutdown(self) -> None:
        """Stop the sweeper, unload capabilities, close storage. Idempotent."""
        if self._closed:
            return
        self._closed = True
        await self.sweeper.stop()
        try:
            await self.registry.close()
        finally:
            self.db.close()
        logger.info("Agent stopped")

    async def __aenter__(self) -> "ChatAgent":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    # ─── Capabilities ─────────────────────────────────────────────────────

    async def register_capability(
        self,
        handler: Capability,
        descriptor: Optional[CapabilityDescriptor] = None,
    ) -> None:
        await self.registry.register(descriptor or handler.descriptor, handler)

    async def unregister_capability(self, name: str) -> None:
        await self.registry.unregister(name)

    # ─── Messages ─────────────────────────────────────────────────────────

    async def handle_message(self, inbound: InboundMessage) -> AgentReply:
        return await self.orchestrator.handle_message(inbound)

    def bind_transport(self, transport) -> None:
        """Route the transport's inbound messages through the orchestrator."""
        self.transport = transport
        transport.on_message(self._on_inbound)

    async def _on_inbound(self, inbound: InboundMessage) -> None:
        reply = await self.handle_message(inbound)
        try:
            if reply.is_media:
                await self.transport.send_image(inbound.conversation_id, reply.media_url, reply.text)
            else:
                await self.transport.send_text(inbound.conversation_id, reply.text)
        except Exception:
            logger.exception("Failed to deliver reply to chat %s", inbound.conversation_id)

    # ─── Stats ────────────────────────────────────────────────────────────

    async def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "total_messages": await self.message_log.count(),
            "total_contexts": await self.context_store.count(),
            "cached_contexts": len(self.context_store.cached_ids()),
            "capabilities": self.registry.names(),
            "sweeper_running": self.sweeper.is_running,
            "last_sweep": self.sweeper.last_result,
        }
        if self.cost_tracker is not None:
            stats["cost"] = self.cost_tracker.get_summary()
        return stats
