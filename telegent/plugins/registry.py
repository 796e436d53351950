"""
Telegent — Capability Registry

Named capability handlers with declared actions and examples.
The registry is an explicitly owned object (one per agent runtime), not
module-level state.

Handler failures never escape invoke(): they are converted into a result
string so the turn can still produce a final answer. Contract violations
(duplicate or unknown names) are raised to the caller.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional

from ..core.errors import CapabilityError, DuplicateCapability, UnknownCapability
from ..core.types import CapabilityDescriptor, CapabilityResult, ConversationId
from .capability import Capability, call_hook

logger = logging.getLogger(__name__)


class CapabilityRegistry:
    """
    Registry keyed by CapabilityDescriptor.name.

    Usage:
        registry = CapabilityRegistry(runtime=agent)
        await registry.register(plugin.descriptor, plugin)
        catalogue = registry.describe_all()
        outcome = await registry.invoke("image-gen", "generate", ["a", "fox"])
        await registry.close()
    """

    def __init__(self, runtime: Any = None):
        self.runtime = runtime
        self._descriptors: Dict[str, CapabilityDescriptor] = {}
        self._handlers: Dict[str, Capability] = {}

    # ─── Lifecycle ────────────────────────────────────────────────────────

    async def register(self, descriptor: CapabilityDescriptor, handler: Capability) -> None:
        """Add a capability and run its on_load hook. Name collisions are rejected."""
        name = descriptor.name
        if name in self._handlers:
            raise DuplicateCapability(name)
        # Reserve the name before awaiting the hook so a concurrent register loses
        self._descriptors[name] = descriptor
        self._handlers[name] = handler
        try:
            await call_hook(handler, "on_load", self.runtime)
        except Exception:
            del self._descriptors[name]
            del self._handlers[name]
            raise
        logger.info("Capability loaded: %s v%s", name, descriptor.version)

    async def unregister(self, name: str) -> None:
        """Run the handler's on_unload hook, then remove it."""
        handler = self._handlers.get(name)
        if handler is None:
            raise UnknownCapability(name)
        try:
            await call_hook(handler, "on_unload")
        finally:
            self._handlers.pop(name, None)
            self._descriptors.pop(name, None)
        logger.info("Capability unloaded: %s", name)

    async def close(self) -> None:
        """Unregister everything, most recently registered first."""
        for name in reversed(list(self._handlers)):
            try:
                await self.unregister(name)
            except Exception:
                logger.exception("Capability %s failed to unload cleanly", name)

    # ─── Lookup ───────────────────────────────────────────────────────────

    def names(self) -> List[str]:
        return list(self._handlers)

    def get(self, name: str) -> Optional[Capability]:
        return self._handlers.get(name)

    def descriptor(self, name: str) -> CapabilityDescriptor:
        if name not in self._descriptors:
            raise UnknownCapability(name)
        return self._descriptors[name]

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)

    def describe_all(self) -> str:
        """
        Catalogue injected verbatim into the decision prompt.
        Capability authors' wording here directly shapes model behavior.
        """
        blocks = []
        for descriptor in self._descriptors.values():
            lines = [f"Capability: {descriptor.name} (v{descriptor.version})"]
            if descriptor.description:
                lines.append(descriptor.description)
            for action in descriptor.actions:
                lines.append(f"  - {action.name}: {action.description}")
                for example in action.examples:
                    lines.append(f"    Example: {example}")
            blocks.append("\n".join(lines))
        return "\n\n".join(blocks)

    # ─── Invocation ───────────────────────────────────────────────────────

    async def invoke(self, name: str, action: str, params: List[str]) -> CapabilityResult:
        """
        Run one action. Raises UnknownCapability for unregistered names;
        every handler-side failure comes back as a textual result.
        """
        handler = self._handlers.get(name)
        if handler is None:
            raise UnknownCapability(name)
        try:
            raw = await handler.execute(action, list(params))
            return _coerce_result(name, raw)
        except Exception as e:
            logger.warning("Capability %s failed on action %s: %s", name, action, e)
            await self._report_error(name, handler, e)
            return CapabilityResult(
                result=f"Capability '{name}' failed while running '{action}': {e}",
                include_in_reply=True,
            )

    async def broadcast_message(self, conversation_id: ConversationId, text: str) -> None:
        """Let every capability observe an inbound message. Hook failures stay local."""
        for name, handler in list(self._handlers.items()):
            try:
                await call_hook(handler, "on_message", conversation_id, text)
            except Exception as e:
                logger.warning("Capability %s on_message hook failed: %s", name, e)
                await self._report_error(name, handler, e)

    async def _report_error(self, name: str, handler: Capability, error: Exception) -> None:
        try:
            await call_hook(handler, "on_error", error)
        except Exception:
            logger.exception("Capability %s on_error hook failed", name)


def _coerce_result(name: str, raw: Any) -> CapabilityResult:
    """Accept the shapes handlers commonly return; reject anything else."""
    if isinstance(raw, CapabilityResult):
        return raw
    if isinstance(raw, str):
        return CapabilityResult(result=raw)
    if isinstance(raw, Mapping) and "result" in raw:
        include = raw.get("include_in_reply", raw.get("addToResponse", True))
        return CapabilityResult(result=str(raw["result"]), include_in_reply=bool(include))
    raise CapabilityError(
        f"Capability '{name}' returned {type(raw).__name__}, expected CapabilityResult"
    )
