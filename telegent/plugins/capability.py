"""
Telegent — Capability Protocol

Defines what the registry needs from a capability handler.
Uses structural typing (Protocol) — any object with these members works.
No inheritance, no base class.

Required:
    descriptor: CapabilityDescriptor
    async execute(action, params) -> CapabilityResult

Optional hooks, looked up with getattr and awaited when they return a
coroutine:
    on_load(runtime)                  — called once on register()
    on_unload()                       — called before removal on unregister()
    on_message(conversation_id, text) — called for every inbound message
    on_error(exc)                     — called when execute() or a hook raised
"""
import inspect
from typing import Any, List, Protocol, runtime_checkable

from ..core.types import CapabilityDescriptor, CapabilityResult


@runtime_checkable
class Capability(Protocol):
    """A named, pluggable unit offering one or more actions."""

    descriptor: CapabilityDescriptor

    async def execute(self, action: str, params: List[str]) -> CapabilityResult:
        """
        Run one action.

        Args:
            action: Action name as declared in descriptor.actions
            params: Positional parameters parsed from the decision command

        Returns:
            CapabilityResult; a plain str or a {"result": ...} mapping is
            also accepted by the registry.
        """
        ...


async def call_hook(handler: Any, hook: str, *args: Any) -> bool:
    """Invoke an optional hook if the handler defines it. Returns whether it ran."""
    fn = getattr(handler, hook, None)
    if fn is None:
        return False
    result = fn(*args)
    if inspect.isawaitable(result):
        await result
    return True
