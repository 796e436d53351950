"""
Telegent — Persona & Prompts

Builds the base system prompt once at startup from an optional persona
descriptor, plus the fixed prompt fragments the orchestrator composes
around it.
"""
import json
from pathlib import Path
from typing import Optional

from .types import Persona, PersonaTrait


DEFAULT_OPENER = (
    "You are a helpful AI assistant in a chat. Keep responses clear and concise."
)

CLOSING_INSTRUCTIONS = (
    "You can use the capabilities registered with you. Never refuse or say you "
    "are unable to do something that one of your capabilities can do; when a "
    "capability result is provided below, rely on it in your answer.\n"
    "Answer clearly and concisely."
)

DECISION_PROMPT = """You decide whether one of the agent's capabilities should handle the user's latest message.

Available capabilities:
{catalogue}

If a capability clearly applies, reply with exactly one line in this form and nothing else:
@capability:<name> <action> <parameters>

If none applies, reply with exactly: none"""

FACT_INSTRUCTION = (
    "When the user shares a durable fact about themselves, add a separate line "
    "starting with '{marker}' followed by the fact."
)


def build_persona_prompt(persona: Optional[Persona]) -> str:
    """
    Concatenate persona fields in fixed order (name, role, personality,
    traits, custom instructions), then the closing instructions.
    """
    parts = []
    if persona is None:
        parts.append(DEFAULT_OPENER)
    else:
        if persona.name:
            parts.append(f"You are {persona.name}.")
        if persona.role:
            parts.append(f"Your role: {persona.role}.")
        if persona.base_personality:
            parts.append(f"Personality: {persona.base_personality}")
        if persona.traits:
            lines = ["Traits:"]
            lines.extend(f"- {t.name}: {t.description}" for t in persona.traits)
            parts.append("\n".join(lines))
        if persona.custom_instructions:
            parts.append(f"Additional instructions: {persona.custom_instructions}")
        if not parts:
            parts.append(DEFAULT_OPENER)
    parts.append(CLOSING_INSTRUCTIONS)
    return "\n\n".join(parts)


def build_decision_prompt(catalogue: str) -> str:
    return DECISION_PROMPT.format(catalogue=catalogue or "(none registered)")


def persona_from_dict(data: dict) -> Persona:
    """Accepts both snake_case and the camelCase keys of older descriptors."""
    traits = [
        PersonaTrait(name=t.get("name", ""), description=t.get("description", ""))
        for t in data.get("traits") or []
    ]
    return Persona(
        name=data.get("name"),
        role=data.get("role"),
        base_personality=data.get("base_personality", data.get("basePersonality")),
        traits=traits,
        custom_instructions=data.get(
            "custom_instructions", data.get("customPrompt")
        ),
    )


def load_persona(path: Optional[str]) -> Optional[Persona]:
    """Read a JSON persona descriptor. Missing path or file → no persona."""
    if not path:
        return None
    file = Path(path)
    if not file.exists():
        return None
    with open(file, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Persona file {path} must contain a JSON object")
    return persona_from_dict(data)
