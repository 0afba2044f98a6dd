# app.py
"""Apply a set of manifests to the cluster and optionally wait for readiness.

Examples:
  # Validate only (server-side dry run, nothing persisted):
  python3 app.py -f manifests/ --dry-run

  # Real apply, then wait for gateable kinds (DatabaseInstance, claims, ...):
  python3 app.py -f manifests/ --wait --timeout 600

  # Render from a synthesizer and pipe in:
  synth | python3 app.py -f - --wait

Exit code is 0 only when no resource failed to apply or become ready.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import threading
from dataclasses import replace
from signal import SIGINT, signal
from typing import Optional, Sequence

from config import EngineConfig
from errors import ManifestInvalid
from k8s import ClusterClient, load_kube
from manifest import load_files
from reconcile import Reconciler, print_report

log = logging.getLogger("app")

EXIT_INVALID = 2


def _flag(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default) == "1"


def _positive_seconds(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}")
    if seconds <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value!r}")
    return seconds


def _env_seconds(name: str) -> Optional[float]:
    raw = os.environ.get(name)
    if not raw:
        return None
    try:
        return _positive_seconds(raw)
    except argparse.ArgumentTypeError as e:
        log.warning(f"ignoring {name}: {e}")
        return None


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Server-side apply manifests and gate on readiness")
    parser.add_argument(
        "-f",
        "--filename",
        action="append",
        required=True,
        help="manifest file or directory; '-' reads stdin (repeatable)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=_flag("DRY_RUN"),
        help="validate server-side without persisting",
    )
    parser.add_argument(
        "--wait",
        action="store_true",
        default=_flag("WAIT"),
        help="wait for gateable kinds to report Ready",
    )
    parser.add_argument(
        "--timeout",
        type=_positive_seconds,
        default=_env_seconds("TIMEOUT_SECONDS"),
        help="per-resource readiness timeout in seconds (default: GATE_TIMEOUT_SECONDS or 300)",
    )
    parser.add_argument(
        "--run-timeout",
        type=_positive_seconds,
        default=None,
        help="wall-clock cap in seconds measured from the start of the run (apply + readiness)",
    )
    parser.add_argument(
        "--no-force",
        dest="force",
        action="store_false",
        default=_flag("FORCE_CONFLICTS", "1"),
        help="fail on field-ownership conflicts instead of taking ownership",
    )
    parser.add_argument("--field-owner", default=None, help="field manager name recorded on writes")
    parser.add_argument("-o", "--output", choices=("text", "json"), default="text")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(list(argv))


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(name)s] %(message)s",
        stream=sys.stderr,
    )
    # the kubernetes client is chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def connect() -> ClusterClient:
    load_kube()
    return ClusterClient()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    _configure_logging(args.verbose)

    cfg = EngineConfig.from_env()
    if args.field_owner:
        cfg = replace(cfg, field_owner=args.field_owner)

    try:
        manifests = load_files(args.filename)
    except ManifestInvalid as e:
        log.error(f"invalid input: {e}")
        return EXIT_INVALID
    log.info(f"found {len(manifests)} resources to apply")

    stop_event = threading.Event()

    def _interrupt(signum, frame) -> None:
        log.warning("interrupted; cancelling readiness polling")
        stop_event.set()

    previous = signal(SIGINT, _interrupt)
    try:
        reconciler = Reconciler(connect(), cfg, stop_event=stop_event)
        report = reconciler.reconcile(
            manifests,
            dry_run=args.dry_run,
            wait=args.wait,
            force=args.force,
            timeout_seconds=args.timeout,
            run_timeout_seconds=args.run_timeout,
        )
    finally:
        signal(SIGINT, previous)

    for failure in report.failures:
        log.error(str(failure.to_error()))

    if args.output == "json":
        print(json.dumps(report.to_dict(), indent=2, sort_keys=True))
    else:
        print_report(report)
    return report.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
