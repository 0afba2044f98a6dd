from __future__ import annotations

import copy
import threading
from typing import Any, Dict, Iterator, List, Tuple

from errors import ApplyConflict, ApplyRejected, TransportTransient

FieldPath = Tuple[str, ...]

# object identity, never owned
_IDENTITY = {("apiVersion",), ("kind",), ("metadata", "name"), ("metadata", "namespace")}


def _leaves(doc: Dict[str, Any], prefix: FieldPath = ()) -> Iterator[Tuple[FieldPath, Any]]:
    for k, v in doc.items():
        key = prefix + (k,)
        if isinstance(v, dict) and v:
            yield from _leaves(v, key)
        else:
            yield key, v


def _lookup(doc: Dict[str, Any], key: FieldPath) -> Any:
    cur: Any = doc
    for part in key:
        if not isinstance(cur, dict) or part not in cur:
            return None
        cur = cur[part]
    return cur


def _store(doc: Dict[str, Any], key: FieldPath, value: Any) -> None:
    cur = doc
    for part in key[:-1]:
        cur = cur.setdefault(part, {})
    cur[key[-1]] = copy.deepcopy(value)


class FakeCluster:
    """In-memory stand-in for ClusterClient with field-ownership semantics.

    - ``rejections[path] = message`` makes apply() raise ApplyRejected
    - ``apply_errors[path] = exc`` makes apply() raise exc
    - ``statuses[path] = [conditions | exc, ...]`` feeds get(); the last entry repeats
    """

    def __init__(self) -> None:
        self.objects: Dict[str, Dict[str, Any]] = {}
        self.owners: Dict[str, Dict[FieldPath, str]] = {}
        self.rejections: Dict[str, str] = {}
        self.apply_errors: Dict[str, Exception] = {}
        self.statuses: Dict[str, List[Any]] = {}
        self.calls: List[Tuple[Any, ...]] = []
        self._lock = threading.Lock()

    def apply(self, path, body, field_manager, force=False, dry_run=False):
        with self._lock:
            self.calls.append(("apply", path, field_manager, force, dry_run))
            if path in self.apply_errors:
                raise self.apply_errors[path]
            if path in self.rejections:
                raise ApplyRejected(self.rejections[path], ref=path)

            current = copy.deepcopy(self.objects.get(path, {}))
            owners = dict(self.owners.get(path, {}))
            conflicts = []
            for key, value in _leaves(body):
                if key in _IDENTITY:
                    continue
                owner = owners.get(key)
                if owner and owner != field_manager and _lookup(current, key) != value:
                    conflicts.append(f'conflict with "{owner}": .{".".join(key)}')
            if conflicts and not force:
                raise ApplyConflict(
                    f"Apply failed with {len(conflicts)} conflict(s): " + "; ".join(conflicts), ref=path
                )

            for key, value in _leaves(body):
                _store(current, key, value)
                if key not in _IDENTITY:
                    owners[key] = field_manager
            if not dry_run:
                self.objects[path] = current
                self.owners[path] = owners
            return current

    def get(self, path):
        with self._lock:
            self.calls.append(("get", path))
            queue = self.statuses.get(path)
            if not queue:
                raise TransportTransient("not found", ref=path, status=404)
            item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return {"status": {"conditions": item}}

    def applied_paths(self) -> List[str]:
        return [c[1] for c in self.calls if c[0] == "apply"]

    def polled_paths(self) -> List[str]:
        return [c[1] for c in self.calls if c[0] == "get"]


class FakeClock:
    """Monotonic clock whose sleep() just advances time."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: List[float] = []
        self._lock = threading.Lock()

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self.sleeps.append(seconds)
            self.now += seconds


def cond(type_: str, status: str, reason: str = "", message: str = "") -> Dict[str, str]:
    return {"type": type_, "status": status, "reason": reason, "message": message}


def manifest_doc(kind: str, name: str, namespace: str | None = "default", api_version: str = "v1", **body) -> Dict[str, Any]:
    meta: Dict[str, Any] = {"name": name}
    if namespace:
        meta["namespace"] = namespace
    doc: Dict[str, Any] = {"apiVersion": api_version, "kind": kind, "metadata": meta}
    doc.update(body)
    return doc
