# reconcile.py
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from applier import ResourceApplier
from config import EngineConfig
from errors import (
    ApplyConflict,
    ApplyRejected,
    ReadinessFailed,
    ReadinessTimeout,
    ReconcileError,
    TransportTransient,
)
from gate import GateResult, GateState, ReadinessGate
from kinds import suspicious_kinds
from manifest import ApplyOutcome, ApplyStatus, ResourceManifest, ResourceRef

log = logging.getLogger(__name__)

PHASE_APPLY = "apply"
PHASE_GATE = "gate"

REASON_TRANSPORT = "TransportError"

_ERRORS = {
    ApplyStatus.CONFLICT.value: ApplyConflict,
    ApplyStatus.REJECTED.value: ApplyRejected,
    REASON_TRANSPORT: TransportTransient,
    GateState.FAILED.value: ReadinessFailed,
    GateState.TIMED_OUT.value: ReadinessTimeout,
}


@dataclass
class Failure:
    ref: ResourceRef
    phase: str
    reason: str
    detail: Optional[str] = None

    def to_error(self) -> ReconcileError:
        cls = _ERRORS.get(self.reason, ReconcileError)
        return cls(self.detail or self.reason, ref=self.ref)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resourceRef": self.ref.to_dict(),
            "phase": self.phase,
            "reason": self.reason,
            "detail": self.detail,
        }


@dataclass
class Report:
    dry_run: bool = False
    outcomes: List[ApplyOutcome] = field(default_factory=list)
    gate_results: List[GateResult] = field(default_factory=list)
    failures: List[Failure] = field(default_factory=list)
    warnings: List[Failure] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def applied_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status == ApplyStatus.APPLIED)

    @property
    def validated_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status == ApplyStatus.VALIDATED_ONLY)

    @property
    def gated_count(self) -> int:
        return len(self.gate_results)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dryRun": self.dry_run,
            "appliedCount": self.applied_count,
            "validatedCount": self.validated_count,
            "gatedCount": self.gated_count,
            "ok": self.ok,
            "elapsedSeconds": round(self.elapsed, 3),
            "failures": [f.to_dict() for f in self.failures],
            "warnings": [w.to_dict() for w in self.warnings],
            "outcomes": [
                {"resourceRef": o.ref.to_dict(), "status": o.status.value, "detail": o.detail}
                for o in self.outcomes
            ],
            "gates": [
                {
                    "resourceRef": g.ref.to_dict(),
                    "state": g.state.value,
                    "detail": g.detail,
                    "elapsedSeconds": round(g.elapsed, 3),
                    "polls": g.polls,
                }
                for g in self.gate_results
            ],
        }


ManifestLike = Union[ResourceManifest, Dict[str, Any]]


def _coerce(manifests: Iterable[ManifestLike]) -> List[ResourceManifest]:
    return [m if isinstance(m, ResourceManifest) else ResourceManifest.from_dict(m) for m in manifests]


class Reconciler:
    """Apply a manifest set, then (optionally) wait for gateable kinds to become Ready.

    Every manifest is applied and every gated resource is waited on before the
    report is built; per-resource problems are collected, never raised. There
    is no rollback: a failed run is fixed by re-running it.
    """

    def __init__(
        self,
        cluster,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], object]] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        self.cluster = cluster
        self.config = config or EngineConfig()
        self.clock = clock
        self.sleep = sleep
        self.stop_event = stop_event or threading.Event()

    def reconcile(
        self,
        manifests: Iterable[ManifestLike],
        dry_run: bool = False,
        wait: bool = False,
        force: bool = False,
        timeout_seconds: Optional[float] = None,
        run_timeout_seconds: Optional[float] = None,
    ) -> Report:
        # raises ManifestInvalid before anything touches the cluster
        items = _coerce(manifests)
        cfg = self.config
        started = self.clock()
        report = Report(dry_run=dry_run)

        for kind in suspicious_kinds(m.kind for m in items):
            log.warning(f"kind {kind} is not in the irregular plural table; using {kind.lower()}s")

        log.info(
            f"mode={'dry-run' if dry_run else 'live'} resources={len(items)} "
            f"field-owner={cfg.field_owner} force={force}"
        )

        # Phase 1
        for m, (outcome, err) in zip(items, self._apply_all(items, dry_run=dry_run, force=force)):
            if err is not None:
                report.failures.append(Failure(m.ref, PHASE_APPLY, REASON_TRANSPORT, err.message))
                continue
            report.outcomes.append(outcome)
            if outcome.status in (ApplyStatus.CONFLICT, ApplyStatus.REJECTED):
                entry = Failure(outcome.ref, PHASE_APPLY, outcome.status.value, outcome.detail)
                # nothing was persisted in dry-run, so these are only warnings
                (report.warnings if dry_run else report.failures).append(entry)

        if report.failures:
            log.error(f"{len(report.failures)} resource(s) failed to apply")

        # Phase 2
        if wait and dry_run:
            log.info("dry-run: skipping readiness gate")
        elif wait:
            gated = [
                o.ref
                for o in report.outcomes
                if o.status == ApplyStatus.APPLIED and cfg.is_gateable(o.ref.kind)
            ]
            run_timeout = run_timeout_seconds if run_timeout_seconds is not None else cfg.run_timeout_seconds
            run_deadline = started + run_timeout if run_timeout is not None else None
            gate_timeout = timeout_seconds if timeout_seconds is not None else cfg.gate_timeout_seconds
            for result in self._gate_all(gated, gate_timeout, run_deadline):
                report.gate_results.append(result)
                if not result.ok:
                    report.failures.append(Failure(result.ref, PHASE_GATE, result.state.value, result.detail))

        report.elapsed = self.clock() - started
        return report

    def _apply_all(
        self, items: List[ResourceManifest], dry_run: bool, force: bool
    ) -> List[Tuple[Optional[ApplyOutcome], Optional[TransportTransient]]]:
        applier = ResourceApplier(self.cluster, self.config.field_owner, force=force, dry_run=dry_run)

        def one(m: ResourceManifest) -> Tuple[Optional[ApplyOutcome], Optional[TransportTransient]]:
            try:
                return applier.apply(m), None
            except TransportTransient as e:
                log.error(f"apply {m.ref} failed: {e.message}")
                return None, e

        workers = min(self.config.apply_workers, len(items))
        if workers <= 1:
            return [one(m) for m in items]
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(one, items))

    def _gate_all(
        self, refs: List[ResourceRef], timeout: float, run_deadline: Optional[float]
    ) -> List[GateResult]:
        if not refs:
            return []
        gate = ReadinessGate(
            self.cluster,
            interval=self.config.poll_interval_seconds,
            timeout=timeout,
            ready_conditions=self.config.ready_conditions,
            transient_reasons=self.config.transient_reasons,
            clock=self.clock,
            sleep=self.sleep,
            stop_event=self.stop_event,
        )
        log.info(f"gating {len(refs)} resource(s)")
        workers = min(self.config.gate_workers, len(refs))
        if workers <= 1:
            return [gate.wait(r, run_deadline) for r in refs]
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(lambda r: gate.wait(r, run_deadline), refs))


def reconcile(cluster, manifests: Iterable[ManifestLike], config: Optional[EngineConfig] = None, **options) -> Report:
    return Reconciler(cluster, config).reconcile(manifests, **options)


def print_report(report: Report) -> None:
    mode = "dry-run" if report.dry_run else "live"
    print(
        f"[reconcile] mode={mode} applied={report.applied_count} validated={report.validated_count} "
        f"gated={report.gated_count} failures={len(report.failures)} elapsed={report.elapsed:.1f}s"
    )
    for g in report.gate_results:
        if g.ok:
            print(f"[reconcile] ready:   {g.ref} ({g.elapsed:.1f}s)")
    for w in report.warnings:
        print(f"[reconcile] warning: {w.ref} [{w.phase}] {w.reason}: {w.detail or '-'}")
    for f in report.failures:
        print(f"[reconcile] FAILED:  {f.ref} [{f.phase}] {f.reason}: {f.detail or '-'}")
    if report.ok:
        print("[reconcile] OK")
