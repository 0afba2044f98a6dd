# applier.py
from __future__ import annotations

import logging

from errors import ApplyConflict, ApplyRejected
from manifest import ApplyOutcome, ApplyStatus, ResourceManifest

log = logging.getLogger(__name__)


class ResourceApplier:
    """Apply one manifest with server-side apply; one remote call per apply().

    Conflicts and rejections become outcomes so the rest of the batch can
    proceed. TransportTransient is not caught here; retrying is the caller's
    decision.
    """

    def __init__(self, cluster, field_owner: str, force: bool = False, dry_run: bool = False):
        self.cluster = cluster
        self.field_owner = field_owner
        self.force = force
        self.dry_run = dry_run

    def apply(self, manifest: ResourceManifest) -> ApplyOutcome:
        ref = manifest.ref
        try:
            self.cluster.apply(
                ref.path,
                manifest.body,
                field_manager=self.field_owner,
                force=self.force,
                dry_run=self.dry_run,
            )
        except ApplyConflict as e:
            log.warning(f"conflict: {ref}: {e.message}")
            return ApplyOutcome(ref, ApplyStatus.CONFLICT, e.message)
        except ApplyRejected as e:
            log.warning(f"rejected: {ref}: {e.message}")
            return ApplyOutcome(ref, ApplyStatus.REJECTED, e.message)

        if self.dry_run:
            log.info(f"validated (dry-run): {ref}")
            return ApplyOutcome(ref, ApplyStatus.VALIDATED_ONLY)
        log.info(f"applied: {ref}")
        return ApplyOutcome(ref, ApplyStatus.APPLIED)
