"""
Telegent — Configuration
Loads settings from environment variables / .env file.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List


@dataclass
class AgentConfig:
    """All configuration for the chat agent."""
    # API
    anthropic_api_key: str = ""
    model: str = "claude-sonnet-4-5-20250929"
    # Storage
    db_path: str = "data/telegent.db"
    # Fingerprints
    fingerprint_dimensions: int = 1536
    # Prompt context
    history_limit: int = 10                    # Recent messages sent with each answer
    # Completion call shapes
    decision_temperature: float = 0.0
    decision_max_tokens: int = 100
    answer_temperature: float = 0.7
    answer_max_tokens: int = 1000
    # Fact memory
    fact_marker: str = "Important fact:"
    # Retention
    sweep_interval_seconds: float = 86_400     # Once a day
    message_retention_days: float = 30
    context_retention_days: float = 3
    # Persona
    persona_path: str = ""
    # Cost tracking
    cost_tracking_enabled: bool = True
    # Logging / debug
    log_level: str = "INFO"
    debug_mode: bool = False

    @classmethod
    def from_env(cls, env_path: str = ".env") -> "AgentConfig":
        """Load configuration from environment variables."""
        # Try loading .env file if it exists
        env_file = Path(env_path)
        if env_file.exists():
            _load_dotenv(env_file)
        return cls(
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or os.getenv("CLAUDE_API_KEY", ""),
            model=os.getenv("TELEGENT_MODEL", cls.model),
            db_path=os.getenv("TELEGENT_DB_PATH", cls.db_path),
            fingerprint_dimensions=int(os.getenv("FINGERPRINT_DIMENSIONS", str(cls.fingerprint_dimensions))),
            history_limit=int(os.getenv("HISTORY_LIMIT", str(cls.history_limit))),
            decision_temperature=float(os.getenv("DECISION_TEMPERATURE", str(cls.decision_temperature))),
            decision_max_tokens=int(os.getenv("DECISION_MAX_TOKENS", str(cls.decision_max_tokens))),
            answer_temperature=float(os.getenv("ANSWER_TEMPERATURE", str(cls.answer_temperature))),
            answer_max_tokens=int(os.getenv("ANSWER_MAX_TOKENS", str(cls.answer_max_tokens))),
            fact_marker=os.getenv("FACT_MARKER", cls.fact_marker),
            sweep_interval_seconds=float(os.getenv("SWEEP_INTERVAL_SECONDS", str(cls.sweep_interval_seconds))),
            message_retention_days=float(os.getenv("MESSAGE_RETENTION_DAYS", str(cls.message_retention_days))),
            context_retention_days=float(os.getenv("CONTEXT_RETENTION_DAYS", str(cls.context_retention_days))),
            persona_path=os.getenv("PERSONA_PATH", cls.persona_path),
            cost_tracking_enabled=os.getenv("COST_TRACKING_ENABLED", "true").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
            debug_mode=os.getenv("DEBUG_MODE", "false").lower() == "true",
        )

    def validate(self) -> List[str]:
        """Return list of warnings (non-fatal). Empty if fully configured."""
        warnings = []
        if not self.anthropic_api_key:
            warnings.append(
                "ANTHROPIC_API_KEY not set: completion calls will fail until a key "
                "or a custom completion service is supplied"
            )
        if self.fingerprint_dimensions <= 0:
            warnings.append(
                f"FINGERPRINT_DIMENSIONS must be positive (got {self.fingerprint_dimensions})"
            )
        if self.history_limit <= 0:
            warnings.append(f"HISTORY_LIMIT must be positive (got {self.history_limit})")
        if not self.fact_marker:
            warnings.append("FACT_MARKER is empty: fact extraction is disabled")
        return warnings

    @property
    def has_api_key(self) -> bool:
        """Whether an Anthropic API key is configured."""
        return bool(self.anthropic_api_key)


def _load_dotenv(path: Path):
    """Minimal .env loader. Existing environment variables win."""
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("'\"")
            if key and not os.environ.get(key):
                os.environ[key] = value
