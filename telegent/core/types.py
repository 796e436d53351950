"""
Telegent — Core Data Types
All shared dataclasses and enums used across the agent.
This is the foundational contract that all components build on.
"""
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Union
from enum import Enum
import time


ConversationId = Union[int, str]


# ─── Enums ───────────────────────────────────────────────────────────────────

class MessageRole(Enum):
    USER = "user"
    AGENT = "agent"


class TurnState(Enum):
    """States a single turn moves through, in order."""
    RECEIVED = "received"
    CONTEXT_LOADED = "context_loaded"
    ACTION_DECIDED = "action_decided"
    ACTION_EXECUTED = "action_executed"
    RESPONDED = "responded"
    PERSISTED = "persisted"
    FAILED = "failed"


# ─── Conversation State ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class Message:
    """A single persisted message. Immutable once written."""
    conversation_id: str
    timestamp: int                      # epoch milliseconds, strictly increasing per conversation
    role: MessageRole
    content: str
    fingerprint: List[float] = field(default_factory=list, compare=False)


@dataclass
class ConversationContext:
    """
    Derived, durable state for one conversation.
    Facts are append-only; insertion order is restatement order.
    """
    conversation_id: str
    owner_user_id: str = ""
    display_name: Optional[str] = None
    locale: Optional[str] = None
    preferences: Dict[str, Any] = field(default_factory=dict)
    last_active_at: int = 0
    facts: List[str] = field(default_factory=list)


def now_ms(clock=time.time) -> int:
    """Current time in integer epoch milliseconds."""
    return int(clock() * 1000)


def normalize_conversation_id(conversation_id: ConversationId) -> str:
    """Conversation ids may arrive as ints or strings; storage keys are strings."""
    return str(conversation_id)


# ─── Capabilities ────────────────────────────────────────────────────────────

@dataclass
class CapabilityAction:
    """One action a capability exposes, with phrasings that should trigger it."""
    name: str
    description: str = ""
    examples: List[str] = field(default_factory=list)


@dataclass
class CapabilityDescriptor:
    """Metadata a capability registers under. `name` is unique per registry."""
    name: str
    version: str = "1.0.0"
    description: str = ""
    actions: List[CapabilityAction] = field(default_factory=list)
    author: str = ""


@dataclass
class CapabilityResult:
    """What a capability hands back to the turn."""
    result: str
    include_in_reply: bool = True


@dataclass
class DispatchCommand:
    """A capability invocation parsed from decision output."""
    capability: str
    action: str
    params: List[str] = field(default_factory=list)


# ─── Persona ─────────────────────────────────────────────────────────────────

@dataclass
class PersonaTrait:
    name: str
    description: str = ""


@dataclass
class Persona:
    """Optional character the agent speaks as."""
    name: Optional[str] = None
    role: Optional[str] = None
    base_personality: Optional[str] = None
    traits: List[PersonaTrait] = field(default_factory=list)
    custom_instructions: Optional[str] = None


# ─── Transport Envelope ──────────────────────────────────────────────────────

@dataclass
class InboundMessage:
    """A text message delivered by the chat transport."""
    conversation_id: ConversationId
    sender_id: ConversationId
    text: str
    sender_display_name: Optional[str] = None


@dataclass
class AgentReply:
    """The outcome of a turn. `media_url` is set when a capability produced media."""
    text: str
    media_url: Optional[str] = None
    failed: bool = False

    @property
    def is_media(self) -> bool:
        return self.media_url is not None
