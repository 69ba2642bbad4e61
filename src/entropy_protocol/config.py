"""
Configuration for Entropy Protocol nodes, broker and CLI.

Precedence, lowest first: defaults, YAML file, ENTROPY_* environment
variables, explicit overrides (CLI flags).
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

ENV_PREFIX = "ENTROPY_"


class EntropyConfig(BaseModel):
    """Tunable timings, limits and endpoints."""

    # Scheduling (seconds)
    tick_interval: float = Field(default=1.0, gt=0)
    heartbeat_interval: float = Field(default=0.5, gt=0)
    cooldown_interval: float = Field(default=1.0, gt=0)

    # Timeouts (seconds)
    connect_timeout: float = Field(default=5.0, gt=0)
    request_timeout: float = Field(default=5.0, gt=0)

    # Game rules
    game_duration: int = Field(default=90, gt=0)
    min_players: int = Field(default=4, ge=1)
    max_players: int = Field(default=8, ge=1)
    bot_action_chance: float = Field(default=0.1, ge=0, le=1)
    event_log_limit: int = Field(default=50, ge=1)

    # Rendezvous
    rendezvous_prefix: str = "ENTROPY-NET-V2-"
    lobby_code_length: int = Field(default=4, ge=2)
    broker_url: str = "ws://localhost:8765"
    broker_host: str = "0.0.0.0"
    broker_port: int = 8765

    def rendezvous_key(self, lobby_code: str) -> str:
        """Transport identity the authority binds for a lobby code."""
        return f"{self.rendezvous_prefix}{lobby_code.upper()}"

    def merged(self, **overrides: Any) -> "EntropyConfig":
        """Copy with non-None overrides applied (and validated)."""
        data = self.model_dump()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return EntropyConfig.model_validate(data)

    @classmethod
    def from_file(cls, path: Path | str) -> "EntropyConfig":
        """Load from a YAML mapping. Unknown keys are ignored with a warning."""
        path = Path(path)
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Config file {path} must contain a mapping")

        known = {k: v for k, v in raw.items() if k in cls.model_fields}
        for key in raw.keys() - known.keys():
            logger.warning(f"Ignoring unknown config key '{key}' in {path}")
        return cls.model_validate(known)

    @classmethod
    def from_env(cls, base: "EntropyConfig | None" = None) -> "EntropyConfig":
        """Apply ENTROPY_<FIELD> environment variables on top of `base`."""
        base = base or cls()
        overrides = {}
        for name in cls.model_fields:
            value = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
            if value is not None:
                overrides[name] = value
        return base.merged(**overrides)


def load_config(path: Path | str | None = None, **overrides: Any) -> EntropyConfig:
    """Defaults, then file, then environment, then overrides."""
    config = EntropyConfig.from_file(path) if path else EntropyConfig()
    return EntropyConfig.from_env(config).merged(**overrides)
