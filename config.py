# config.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Mapping, Optional, Tuple

log = logging.getLogger(__name__)

DEFAULT_FIELD_OWNER = "cluster-reconciler"

# Crossplane managed resources / claims and provider packages: the apply call
# returns long before the cloud side is provisioned.
DEFAULT_GATEABLE_KINDS: FrozenSet[str] = frozenset(
    {
        "DatabaseInstance",
        "AgentMemory",
        "AgentMemoryClaim",
        "AgentWorker",
        "AgentWorkerClaim",
        "Provider",
    }
)

DEFAULT_READY_CONDITIONS: Dict[str, Tuple[str, ...]] = {
    "Provider": ("Healthy",),
}

# Reasons reported with status=False while the resource is still converging.
DEFAULT_TRANSIENT_REASONS: FrozenSet[str] = frozenset(
    {
        "Creating",
        "Pending",
        "Reconciling",
        "Progressing",
        "Waiting",
        "Deleting",
        "Unavailable",
        "Provisioning",
    }
)


@dataclass(frozen=True)
class EngineConfig:
    """Everything the applier, gate and driver need. Built once, passed in."""

    field_owner: str = DEFAULT_FIELD_OWNER
    gateable_kinds: FrozenSet[str] = DEFAULT_GATEABLE_KINDS
    ready_conditions: Mapping[str, Tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_READY_CONDITIONS)
    )
    transient_reasons: FrozenSet[str] = DEFAULT_TRANSIENT_REASONS
    poll_interval_seconds: float = 5.0
    gate_timeout_seconds: float = 300.0
    run_timeout_seconds: Optional[float] = None
    apply_workers: int = 1
    gate_workers: int = 8

    def __post_init__(self) -> None:
        if not self.field_owner:
            raise ValueError("field_owner must not be empty")
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        if self.gate_timeout_seconds <= 0:
            raise ValueError("gate_timeout_seconds must be positive")
        if self.run_timeout_seconds is not None and self.run_timeout_seconds <= 0:
            raise ValueError("run_timeout_seconds must be positive")
        if self.apply_workers < 1 or self.gate_workers < 1:
            raise ValueError("worker counts must be >= 1")

    def is_gateable(self, kind: str) -> bool:
        return kind in self.gateable_kinds

    def ready_types_for(self, kind: str) -> Tuple[str, ...]:
        return tuple(self.ready_conditions.get(kind) or ("Ready",))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """
        Read overrides from the environment:
          FIELD_OWNER, GATEABLE_KINDS (comma separated), GATE_INTERVAL_SECONDS,
          GATE_TIMEOUT_SECONDS, RUN_TIMEOUT_SECONDS, APPLY_WORKERS, GATE_WORKERS
        """
        env = os.environ if environ is None else environ

        kinds = DEFAULT_GATEABLE_KINDS
        raw_kinds = env.get("GATEABLE_KINDS")
        if raw_kinds is not None:
            kinds = frozenset(k.strip() for k in raw_kinds.split(",") if k.strip())

        run_timeout = env.get("RUN_TIMEOUT_SECONDS")
        return cls(
            field_owner=env.get("FIELD_OWNER", DEFAULT_FIELD_OWNER),
            gateable_kinds=kinds,
            poll_interval_seconds=_number(env, "GATE_INTERVAL_SECONDS", 5.0),
            gate_timeout_seconds=_number(env, "GATE_TIMEOUT_SECONDS", 300.0),
            run_timeout_seconds=float(run_timeout) if run_timeout else None,
            apply_workers=int(_number(env, "APPLY_WORKERS", 1)),
            gate_workers=int(_number(env, "GATE_WORKERS", 8)),
        )


def _number(env: Mapping[str, str], key: str, default: float) -> float:
    value = env.get(key)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        log.warning(f"ignoring non-numeric {key}={value!r}, using {default}")
        return default
