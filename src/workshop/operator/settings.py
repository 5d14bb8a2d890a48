"""Operator-wide settings, read from the environment and overridable by the CLI."""
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ..utils.time import parse_duration

DEFAULT_KUBESHELL_IMAGE = "joelanford/kubeshell"


def _seconds(value: str) -> float:
    # Accept both plain seconds ("60") and durations ("1m").
    try:
        return float(value)
    except ValueError:
        return parse_duration(value).total_seconds()


@dataclass(frozen=True)
class ControllerSettings:
    kubeconfig: Optional[str] = None
    domain: Optional[str] = None
    expiration_interval: float = 60.0
    initial_sync_timeout: float = 5.0
    schema_timeout: float = 60.0
    kubeshell_image: str = DEFAULT_KUBESHELL_IMAGE
    healthz_port: int = 8081
    terminate_expired: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ControllerSettings":
        env = os.environ if environ is None else environ
        return cls(
            kubeconfig=env.get("WORKSHOP_KUBECONFIG") or None,
            domain=env.get("WORKSHOP_DOMAIN") or None,
            expiration_interval=_seconds(env.get("WORKSHOP_EXPIRATION_INTERVAL", "60")),
            initial_sync_timeout=_seconds(env.get("WORKSHOP_INITIAL_SYNC_TIMEOUT", "5")),
            schema_timeout=_seconds(env.get("WORKSHOP_SCHEMA_TIMEOUT", "60")),
            kubeshell_image=env.get("WORKSHOP_KUBESHELL_IMAGE", DEFAULT_KUBESHELL_IMAGE),
            healthz_port=int(env.get("WORKSHOP_HEALTHZ_PORT", "8081")),
            terminate_expired=env.get("WORKSHOP_TERMINATE_EXPIRED", "false").lower()
            in ("1", "true", "yes"),
        )

    @classmethod
    def from_memo(cls, memo: Any) -> "ControllerSettings":
        """Settings passed in by the CLI through kopf's memo, or the environment."""
        settings = memo.get("settings") if memo is not None else None
        return settings if isinstance(settings, cls) else cls.from_env()
