# gate.py
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from config import DEFAULT_READY_CONDITIONS, DEFAULT_TRANSIENT_REASONS
from errors import ReadinessFailed, ReadinessTimeout, ReconcileError, TransportTransient
from manifest import ConditionStatus, ReadinessCondition, ResourceRef, conditions_of

log = logging.getLogger(__name__)


class GateState(str, Enum):
    PENDING = "Pending"
    POLLING = "Polling"
    READY = "Ready"
    FAILED = "Failed"
    TIMED_OUT = "TimedOut"


_TRANSITIONS: Dict[GateState, FrozenSet[GateState]] = {
    GateState.PENDING: frozenset({GateState.POLLING}),
    GateState.POLLING: frozenset({GateState.READY, GateState.FAILED, GateState.TIMED_OUT}),
    GateState.READY: frozenset(),
    GateState.FAILED: frozenset(),
    GateState.TIMED_OUT: frozenset(),
}


@dataclass
class GateResult:
    ref: ResourceRef
    state: GateState
    detail: Optional[str] = None
    elapsed: float = 0.0
    polls: int = 0

    @property
    def ok(self) -> bool:
        return self.state == GateState.READY

    def to_error(self) -> Optional[ReconcileError]:
        if self.state == GateState.FAILED:
            return ReadinessFailed(self.detail or "failed", ref=self.ref)
        if self.state == GateState.TIMED_OUT:
            return ReadinessTimeout(self.detail or "timed out", ref=self.ref)
        return None


class _Tracker:
    """Per-resource state; transitions only move forward."""

    def __init__(self, ref: ResourceRef):
        self.ref = ref
        self.state = GateState.PENDING

    def move(self, new: GateState) -> None:
        if new not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"{self.ref}: illegal gate transition {self.state.value} -> {new.value}")
        self.state = new


def _detail(c: ReadinessCondition) -> str:
    parts = [p for p in (c.reason, c.message) if p]
    return ": ".join(parts) or f"{c.type}={c.status.value}"


def classify(
    conditions: Sequence[ReadinessCondition],
    ready_types: Sequence[str] = ("Ready",),
    transient_reasons: FrozenSet[str] = DEFAULT_TRANSIENT_REASONS,
) -> Optional[Tuple[GateState, str]]:
    """Return (READY|FAILED, detail) for a terminal status, None to keep polling.

    A False condition is only terminal when it carries a message and its
    reason is not one of the in-progress reasons; a False condition with no
    message, or with a reason such as "Creating", means "not reconciled yet".
    """
    for c in conditions:
        if c.type in ready_types and c.status == ConditionStatus.TRUE:
            return GateState.READY, _detail(c)

    for c in conditions:
        # kstatus convention: Stalled=True means no further progress is possible
        if c.type == "Stalled" and c.status == ConditionStatus.TRUE:
            return GateState.FAILED, _detail(c)
        if c.status != ConditionStatus.FALSE:
            continue
        if not c.message.strip():
            continue
        if c.reason in transient_reasons:
            continue
        return GateState.FAILED, _detail(c)

    return None


def _summary(conditions: List[ReadinessCondition]) -> str:
    if not conditions:
        return "no conditions reported"
    return ", ".join(f"{c.type}={c.status.value}" for c in conditions)


class ReadinessGate:
    """Poll one resource's status.conditions until Ready, Failed or the deadline.

    ``sleep`` defaults to ``stop_event.wait`` so setting the event ends every
    running wait() promptly; those resources are reported as TimedOut.
    """

    def __init__(
        self,
        cluster,
        interval: float = 5.0,
        timeout: float = 300.0,
        ready_conditions: Optional[Mapping[str, Tuple[str, ...]]] = None,
        transient_reasons: FrozenSet[str] = DEFAULT_TRANSIENT_REASONS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], object]] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        self.cluster = cluster
        self.interval = interval
        self.timeout = timeout
        self.ready_conditions = dict(DEFAULT_READY_CONDITIONS if ready_conditions is None else ready_conditions)
        self.transient_reasons = transient_reasons
        self.clock = clock
        self.stop_event = stop_event or threading.Event()
        self._sleep = sleep or self.stop_event.wait

    def _ready_types(self, kind: str) -> Tuple[str, ...]:
        return tuple(self.ready_conditions.get(kind) or ("Ready",))

    def wait(self, ref: ResourceRef, run_deadline: Optional[float] = None) -> GateResult:
        tracker = _Tracker(ref)
        tracker.move(GateState.POLLING)
        started = self.clock()
        deadline = started + self.timeout
        capped = run_deadline is not None and run_deadline < deadline
        if capped:
            deadline = run_deadline

        log.info(f"waiting for {ref} (timeout {self.timeout:g}s)")
        polls = 0
        last = "no status fetched yet"

        def finish(state: GateState, detail: str) -> GateResult:
            tracker.move(state)
            elapsed = self.clock() - started
            if state == GateState.READY:
                log.info(f"ready: {ref} after {elapsed:.1f}s ({detail})")
            else:
                log.warning(f"{state.value.lower()}: {ref} after {elapsed:.1f}s ({detail})")
            return GateResult(ref, state, detail, elapsed, polls)

        while True:
            if self.stop_event.is_set():
                return finish(GateState.TIMED_OUT, f"cancelled; last status: {last}")

            polls += 1
            try:
                obj = self.cluster.get(ref.path)
            except TransportTransient as e:
                log.debug(f"poll {polls} for {ref} failed, will retry: {e.message}")
                last = f"fetch failed: {e.message}"
            else:
                conditions = conditions_of(obj)
                verdict = classify(conditions, self._ready_types(ref.kind), self.transient_reasons)
                if verdict is not None:
                    return finish(*verdict)
                last = _summary(conditions)

            now = self.clock()
            if now >= deadline:
                reason = "run timeout reached" if capped else f"not ready after {self.timeout:g}s"
                return finish(GateState.TIMED_OUT, f"{reason}; last status: {last}")
            self._sleep(min(self.interval, deadline - now))
