"""Environment-driven settings for the command line front-end.

Environment variables:
    INFLUENT_HOSTS: comma separated host URLs (default: http://localhost:8086)
    INFLUENT_USERNAME / INFLUENT_PASSWORD: basic auth, both required to authenticate
    INFLUENT_DATABASE: target database (default: empty)
    INFLUENT_TIMEOUT: request timeout in seconds (default: 5.0)
    INFLUENT_MAX_BATCH: measurements per write request (default: 5000)
    INFLUENT_LOG_LEVEL: logging level for the CLI (default: WARNING)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .batcher import MAX_BATCH

DEFAULT_HOST = "http://localhost:8086"
DEFAULT_UDP_HOST = "localhost:8089"


@dataclass(frozen=True)
class Settings:
    hosts: tuple[str, ...]
    username: str = ""
    password: str = ""
    database: str = ""
    timeout_s: float = 5.0
    max_batch: int = MAX_BATCH
    log_level: str = "WARNING"


def _number(env: Mapping[str, str], name: str, default, kind):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = kind(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a {kind.__name__}, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{name} must be > 0, got {raw!r}")
    return value


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if environ is None else environ
    hosts = tuple(h.strip() for h in env.get("INFLUENT_HOSTS", DEFAULT_HOST).split(",") if h.strip())
    return Settings(
        hosts=hosts or (DEFAULT_HOST,),
        username=env.get("INFLUENT_USERNAME", ""),
        password=env.get("INFLUENT_PASSWORD", ""),
        database=env.get("INFLUENT_DATABASE", ""),
        timeout_s=_number(env, "INFLUENT_TIMEOUT", 5.0, float),
        max_batch=_number(env, "INFLUENT_MAX_BATCH", MAX_BATCH, int),
        log_level=env.get("INFLUENT_LOG_LEVEL", "WARNING").upper(),
    )
