"""
Telegent — Dispatch Orchestrator

Drives one turn per inbound message through a fixed state machine:

    RECEIVED → CONTEXT_LOADED → ACTION_DECIDED → (ACTION_EXECUTED) →
    RESPONDED → PERSISTED

Any exception moves the turn to FAILED and the user gets a single generic
apology; the cause goes to the log. Nothing is retried. Capability failures
never reach this level: the registry turns them into result text.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from .dispatch import extract_facts, looks_like_url, parse_command
from .errors import UnknownCapability
from .persona import FACT_INSTRUCTION, build_decision_prompt
from .types import (
    AgentReply, CapabilityResult, DispatchCommand, InboundMessage, Message,
    MessageRole, TurnState,
)
from ..indexing.fingerprint import FingerprintGenerator
from ..plugins.registry import CapabilityRegistry
from ..storage.context_store import ConversationContextStore, render_context
from ..storage.message_log import MessageLog
from ..utils.config import AgentConfig

logger = logging.getLogger(__name__)

APOLOGY = "Sorry, I encountered an error processing your message. Please try again."
MEDIA_REPLY = "Here is the generated media:"
CONTEXT_HEADER = "Context from previous interactions:"
CAPABILITY_HEADER = "Result from capability '{name}' (action '{action}'):"
CAPABILITY_SILENT = (
    "Capability '{name}' ran action '{action}'. Its output is not for the user; "
    "acknowledge that the action was carried out."
)

_ROLE_MAP = {
    MessageRole.USER: "user",
    MessageRole.AGENT: "assistant",
}


class DispatchOrchestrator:
    """
    Per-message protocol. Holds no per-turn state between calls except the
    last debug record.
    """

    def __init__(
        self,
        message_log: MessageLog,
        context_store: ConversationContextStore,
        registry: CapabilityRegistry,
        fingerprints: FingerprintGenerator,
        completion,
        base_prompt: str,
        config: Optional[AgentConfig] = None,
    ):
        self.message_log = message_log
        self.context_store = context_store
        self.registry = registry
        self.fingerprints = fingerprints
        self.completion = completion
        self.base_prompt = base_prompt
        self.config = config or AgentConfig()
        self.last_debug: Dict[str, Any] = {}
        # Debug callback (set by the runtime when debug_mode is on)
        self._debug_callback: Optional[Callable[[Dict[str, Any]], None]] = None

    def set_debug_callback(self, callback: Optional[Callable[[Dict[str, Any]], None]]):
        self._debug_callback = callback

    # ─── Main Message Flow ────────────────────────────────────────────────

    async def handle_message(self, inbound: InboundMessage) -> AgentReply:
        """
        Run one full turn. Never raises for turn failures; returns the
        apology reply with failed=True instead.
        """
        started = time.perf_counter()
        debug: Dict[str, Any] = {
            "conversation_id": inbound.conversation_id,
            "states": [],
            "decision_skipped": False,
            "command": None,
            "capability_result": None,
            "media_short_circuit": False,
            "facts_added": [],
            "error": None,
        }

        def advance(state: TurnState):
            debug["states"].append(state.value)
            logger.debug("chat %s → %s", inbound.conversation_id, state.value)

        try:
            advance(TurnState.RECEIVED)
            reply = await self._run_turn(inbound, debug, advance)
        except Exception as e:
            advance(TurnState.FAILED)
            debug["error"] = f"{type(e).__name__}: {e}"
            logger.exception("Turn failed for chat %s", inbound.conversation_id)
            reply = AgentReply(text=APOLOGY, failed=True)

        debug["elapsed_ms"] = (time.perf_counter() - started) * 1000
        self.last_debug = debug
        if self._debug_callback:
            try:
                self._debug_callback(debug)
            except Exception:
                logger.exception("Debug callback failed for chat %s", inbound.conversation_id)
        return reply

    async def _run_turn(self, inbound: InboundMessage, debug: Dict[str, Any], advance) -> AgentReply:
        cid = inbound.conversation_id
        text = inbound.text

        # CONTEXT_LOADED: history and context are independent reads
        history, context = await asyncio.gather(
            self.message_log.recent(cid, limit=self.config.history_limit),
            self.context_store.get_or_create(
                cid,
                owner_user_id=str(inbound.sender_id),
                display_name=inbound.sender_display_name,
            ),
        )
        summary = render_context(context)
        catalogue = self.registry.describe_all()
        await self.registry.broadcast_message(cid, text)
        advance(TurnState.CONTEXT_LOADED)

        # ACTION_DECIDED
        command = await self._decide(text, catalogue, debug)
        advance(TurnState.ACTION_DECIDED)

        # ACTION_EXECUTED
        result: Optional[CapabilityResult] = None
        if command is not None:
            try:
                result = await self.registry.invoke(
                    command.capability, command.action, command.params
                )
            except UnknownCapability:
                # Unregistered after the decision: the turn carries on with no action
                logger.warning(
                    "Capability %r vanished before invocation in chat %s",
                    command.capability, cid,
                )
                command = None
            else:
                debug["capability_result"] = result.result
                advance(TurnState.ACTION_EXECUTED)

        # RESPONDED
        if result is not None and result.include_in_reply and looks_like_url(result.result):
            url = result.result.strip()
            reply = AgentReply(text=MEDIA_REPLY, media_url=url)
            stored_reply = f"{MEDIA_REPLY}\n{url}"
            debug["media_short_circuit"] = True
        else:
            system = self.build_answer_prompt(summary, command, result)
            messages = [_to_prompt_message(m) for m in history]
            messages.append({"role": "user", "content": text})
            answer = await self.completion.complete(
                messages,
                system=system,
                temperature=self.config.answer_temperature,
                max_tokens=self.config.answer_max_tokens,
                call_type="answer",
            )
            reply = AgentReply(text=answer)
            stored_reply = answer
        advance(TurnState.RESPONDED)

        # PERSISTED
        await self._persist(cid, text, stored_reply, debug)
        advance(TurnState.PERSISTED)
        return reply

    async def _decide(
        self, text: str, catalogue: str, debug: Dict[str, Any],
    ) -> Optional[DispatchCommand]:
        if len(self.registry) == 0:
            debug["decision_skipped"] = True
            return None
        decision = await self.completion.complete(
            [{"role": "user", "content": text}],
            system=build_decision_prompt(catalogue),
            temperature=self.config.decision_temperature,
            max_tokens=self.config.decision_max_tokens,
            call_type="decision",
        )
        command = parse_command(decision, known=self.registry.names())
        if command is not None:
            debug["command"] = (
                f"@capability:{command.capability} {command.action} {' '.join(command.params)}"
            ).strip()
        return command

    def build_answer_prompt(
        self,
        summary: str,
        command: Optional[DispatchCommand] = None,
        result: Optional[CapabilityResult] = None,
    ) -> str:
        """Persona, fact instruction, capability result, then context summary."""
        sections = [self.base_prompt]
        if self.config.fact_marker:
            sections.append(FACT_INSTRUCTION.format(marker=self.config.fact_marker))
        if command is not None and result is not None:
            if result.include_in_reply:
                header = CAPABILITY_HEADER.format(name=command.capability, action=command.action)
                sections.append(f"{header}\n{result.result}")
            else:
                sections.append(
                    CAPABILITY_SILENT.format(name=command.capability, action=command.action)
                )
        if summary:
            sections.append(f"{CONTEXT_HEADER}\n{summary}")
        return "\n\n".join(sections)

    async def _persist(
        self, cid, user_text: str, agent_text: str, debug: Dict[str, Any],
    ) -> List[str]:
        user_fp, agent_fp = await asyncio.gather(
            self.fingerprints.fingerprint_async(user_text),
            self.fingerprints.fingerprint_async(agent_text),
        )
        # User turn first so its timestamp precedes the reply's
        await self.message_log.append(cid, MessageRole.USER, user_text, user_fp)
        await self.message_log.append(cid, MessageRole.AGENT, agent_text, agent_fp)

        facts = extract_facts(agent_text, self.config.fact_marker)
        for fact in facts:
            await self.context_store.add_fact(cid, fact)
            debug["facts_added"].append(fact)
        return facts


def _to_prompt_message(message: Message) -> Dict[str, str]:
    return {"role": _ROLE_MAP[message.role], "content": message.content}
