"""
Telegent — Command & Fact Parsing

Pure functions over model output. No LLM dependency. Regex-only.

- parse_command(): decision text → DispatchCommand or None
- extract_facts(): final reply → facts to remember
- looks_like_url(): whether a capability result is a bare media link

Anything that does not match the command grammar resolves to "no action";
parsing never raises.
"""
import re
from typing import Iterable, List, Optional

from .types import DispatchCommand


NO_ACTION = "none"

# "@capability:<name> <action> <param>*"; "@plugin:" is accepted as well
COMMAND_PATTERN = re.compile(
    r"@(?:capability|plugin):(?P<name>\S+)[ \t]+(?P<action>\S+)(?P<rest>[^\r\n]*)"
)

_URL_PATTERN = re.compile(r"https?://\S+")


def parse_command(
    text: Optional[str],
    known: Optional[Iterable[str]] = None,
) -> Optional[DispatchCommand]:
    """
    Extract the first capability command from decision output.

    Args:
        text: Raw decision text from the completion service
        known: If given, commands naming anything else resolve to None

    Returns:
        DispatchCommand, or None for "none", prose, or malformed commands
    """
    if not text:
        return None
    if text.strip().lower() == NO_ACTION:
        return None
    match = COMMAND_PATTERN.search(text)
    if not match:
        return None
    name = match.group("name")
    if known is not None and name not in set(known):
        return None
    return DispatchCommand(
        capability=name,
        action=match.group("action"),
        params=match.group("rest").split(),
    )


def extract_facts(text: Optional[str], marker: str) -> List[str]:
    """
    Every line containing the marker (case-sensitive, anywhere in the line)
    yields one fact: the line with the marker removed, trimmed.
    """
    if not text or not marker:
        return []
    facts = []
    for line in text.split("\n"):
        if marker in line:
            fact = line.replace(marker, "", 1).strip()
            if fact:
                facts.append(fact)
    return facts


def looks_like_url(text: Optional[str]) -> bool:
    """True when the whole (trimmed) text is a single http(s) URL."""
    if not text:
        return False
    return _URL_PATTERN.fullmatch(text.strip()) is not None
