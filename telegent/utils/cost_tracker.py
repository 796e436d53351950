"""
Telegent — API Cost Tracker
Accumulates per-call costs for decision and answer completions.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List


# USD per million tokens
PRICING = {
    "claude-haiku-4-5-20251001": {"input": 1.00, "output": 5.00},
    "claude-sonnet-4-5-20250929": {"input": 3.00, "output": 15.00},
    "claude-opus-4-1-20250805": {"input": 15.00, "output": 75.00},
}


@dataclass
class APICall:
    """Record of a single completion call."""
    call_type: str          # "decision" or "answer"
    model: str
    input_tokens: int
    output_tokens: int
    cost_usd: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class CostTracker:
    """Tracks completion costs for the lifetime of one agent runtime."""

    def __init__(self):
        self._calls: List[APICall] = []
        self._total_cost: float = 0.0

    def record(
        self,
        call_type: str,
        model: str,
        input_tokens: int,
        output_tokens: int = 0,
    ) -> APICall:
        """
        Record a call and compute its cost. Models missing from PRICING cost 0.
        """
        pricing = PRICING.get(model, {"input": 0.0, "output": 0.0})
        cost = (
            (input_tokens / 1_000_000) * pricing["input"]
            + (output_tokens / 1_000_000) * pricing["output"]
        )
        api_call = APICall(
            call_type=call_type,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=round(cost, 8),
        )
        self._calls.append(api_call)
        self._total_cost += cost
        return api_call

    def get_session_cost(self) -> float:
        return round(self._total_cost, 6)

    def get_call_count(self) -> int:
        return len(self._calls)

    def get_breakdown(self) -> Dict[str, Dict[str, float]]:
        """call_type → {cost_usd, call_count, input_tokens, output_tokens}"""
        breakdown: Dict[str, Dict[str, float]] = {}
        for call in self._calls:
            cat = breakdown.setdefault(call.call_type, {
                "cost_usd": 0.0,
                "call_count": 0,
                "input_tokens": 0,
                "output_tokens": 0,
            })
            cat["cost_usd"] += call.cost_usd
            cat["call_count"] += 1
            cat["input_tokens"] += call.input_tokens
            cat["output_tokens"] += call.output_tokens
        for cat in breakdown.values():
            cat["cost_usd"] = round(cat["cost_usd"], 6)
        return breakdown

    def get_summary(self) -> Dict[str, object]:
        return {
            "total_cost_usd": self.get_session_cost(),
            "total_calls": self.get_call_count(),
            "breakdown": self.get_breakdown(),
        }

    def reset(self):
        self._calls.clear()
        self._total_cost = 0.0
