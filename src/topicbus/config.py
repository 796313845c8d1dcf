# src/topicbus/config.py
from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml  # PyYAML

from topicbus.core import log
from topicbus.core.bus import PubSub
from topicbus.core.dispatcher import ErrorSink
from topicbus.core.errors import ConfigError
from topicbus.core.scheduler import AsyncioScheduler, ThreadScheduler

SCHEDULERS = ("thread", "asyncio")

ENV_KEYS = {
    "immediate_exceptions": "TOPICBUS_IMMEDIATE_EXCEPTIONS",
    "scheduler": "TOPICBUS_SCHEDULER",
    "segment_prefix_match": "TOPICBUS_SEGMENT_PREFIX_MATCH",
    "log_level": "LOG_LEVEL",
    "log_json": "LOG_JSON",
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass
class PubSubConfig:
    immediate_exceptions: bool = False
    scheduler: str = "thread"
    segment_prefix_match: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    def __post_init__(self):
        if self.scheduler not in SCHEDULERS:
            raise ConfigError(f"unknown scheduler {self.scheduler!r}, expected one of {SCHEDULERS}")


def _as_bool(key: str, v: Any) -> bool:
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    raise ConfigError(f"{key}: cannot read {v!r} as a boolean")


def _coerce(values: Mapping[str, Any]) -> Dict[str, Any]:
    known = {f.name: f for f in fields(PubSubConfig)}
    out: Dict[str, Any] = {}
    for k, v in values.items():
        f = known.get(k)
        if f is None:
            raise ConfigError(f"unknown config key {k!r}")
        out[k] = _as_bool(k, v) if f.type in ("bool", bool) else str(v)
    return out


def load_config(path: Optional[str | os.PathLike] = None, env: Optional[Mapping[str, str]] = None) -> PubSubConfig:
    """Defaults <- YAML file (optionally under a ``pubsub:`` section) <- environment."""
    values: Dict[str, Any] = {}

    if path is not None:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: expected a mapping at top level")
        section = data.get("pubsub", data) or {}
        if not isinstance(section, dict):
            raise ConfigError(f"{path}: pubsub section must be a mapping, got {type(section).__name__}")
        values.update(_coerce(section))

    env = os.environ if env is None else env
    for key, var in ENV_KEYS.items():
        if var in env:
            values.update(_coerce({key: env[var]}))

    return PubSubConfig(**values)


def build_pubsub(
    cfg: Optional[PubSubConfig] = None,
    *,
    error_sink: Optional[ErrorSink] = None,
    loop: Optional[asyncio.AbstractEventLoop] = None,
    setup_logging: bool = False,
) -> PubSub:
    """Assemble a PubSub from configuration. ``loop`` binds the asyncio scheduler."""
    cfg = cfg or load_config()
    if setup_logging:
        log.setup(cfg.log_level, cfg.log_json)
    scheduler = AsyncioScheduler(loop) if cfg.scheduler == "asyncio" else ThreadScheduler()
    return PubSub(
        scheduler=scheduler,
        error_sink=error_sink,
        immediate_exceptions=cfg.immediate_exceptions,
        segment_prefix_match=cfg.segment_prefix_match,
    )
