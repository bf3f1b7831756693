"""Runtime configuration, read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass

from workflow_diagram.client import DEFAULT_TIMEOUT
from workflow_diagram.layout import Direction
from workflow_diagram.viewport import DEFAULT_FIT_PADDING

DEFAULT_API_URL = "http://localhost:8000/file/return-json/"


def _env_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class DiagramConfig:
    api_url: str = DEFAULT_API_URL
    timeout: float = DEFAULT_TIMEOUT
    direction: Direction = Direction.LR
    fit_padding: float = DEFAULT_FIT_PADDING
    host: str = "127.0.0.1"
    port: int = 8050
    debug: bool = False

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> DiagramConfig:
        """Build a config from ``WORKFLOW_*`` variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        return cls(
            api_url=env.get("WORKFLOW_API_URL", DEFAULT_API_URL),
            timeout=float(env.get("WORKFLOW_API_TIMEOUT", DEFAULT_TIMEOUT)),
            direction=Direction.parse(env.get("WORKFLOW_DIRECTION", "LR")),
            host=env.get("WORKFLOW_HOST", "127.0.0.1"),
            port=int(env.get("WORKFLOW_PORT", 8050)),
            debug=_env_bool(env.get("WORKFLOW_DEBUG")),
        )
