"""Environment-driven settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_PORT = 3000
DEFAULT_RECONNECT_DELAY = 1.5


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        port = env.get("XOROOM_PORT") or env.get("PORT") or str(DEFAULT_PORT)
        return cls(
            host=env.get("XOROOM_HOST", "0.0.0.0"),
            port=int(port),
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_file=env.get("LOG_FILE") or None,
        )
