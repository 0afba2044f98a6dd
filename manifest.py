# manifest.py
from __future__ import annotations

import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

import yaml

from errors import ManifestInvalid
from kinds import resolve, split_api_version

MANIFEST_SUFFIXES = (".yaml", ".yml", ".json")


@dataclass(frozen=True)
class ResourceRef:
    api_version: str
    kind: str
    name: str
    namespace: Optional[str] = None

    @property
    def path(self) -> str:
        return resolve(self.api_version, self.kind, self.namespace, self.name)

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"apiVersion": self.api_version, "kind": self.kind, "name": self.name}
        if self.namespace:
            d["namespace"] = self.namespace
        return d


@dataclass(frozen=True)
class ResourceManifest:
    """One resource to apply. ``body`` is sent to the server unmodified."""

    api_version: str
    kind: str
    name: str
    namespace: Optional[str] = None
    body: Dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        if not self.kind:
            raise ManifestInvalid(f"manifest {self.name or '<unnamed>'} has no kind")
        if not self.name:
            raise ManifestInvalid(f"{self.kind} manifest has no metadata.name")
        try:
            split_api_version(self.api_version)
        except ManifestInvalid as e:
            raise ManifestInvalid(e.message, ref=f"{self.kind}/{self.name}") from e

    @property
    def ref(self) -> ResourceRef:
        return ResourceRef(self.api_version, self.kind, self.name, self.namespace)

    @classmethod
    def from_dict(cls, doc: Dict[str, Any]) -> "ResourceManifest":
        if not isinstance(doc, dict):
            raise ManifestInvalid(f"manifest must be a mapping, got {type(doc).__name__}")
        meta = doc.get("metadata", {}) or {}
        if not isinstance(meta, dict):
            raise ManifestInvalid("metadata must be a mapping")
        return cls(
            api_version=str(doc.get("apiVersion") or ""),
            kind=str(doc.get("kind") or ""),
            name=str(meta.get("name") or ""),
            namespace=meta.get("namespace") or None,
            body=doc,
        )


class ApplyStatus(str, Enum):
    APPLIED = "Applied"
    CONFLICT = "Conflict"
    REJECTED = "Rejected"
    VALIDATED_ONLY = "ValidatedOnly"


@dataclass
class ApplyOutcome:
    ref: ResourceRef
    status: ApplyStatus
    detail: Optional[str] = None


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class ReadinessCondition:
    """A status.conditions[] entry as reported by the cluster (read-only)."""

    type: str
    status: ConditionStatus
    reason: str = ""
    message: str = ""

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ReadinessCondition":
        try:
            status = ConditionStatus(str(raw.get("status", "Unknown")))
        except ValueError:
            status = ConditionStatus.UNKNOWN
        return cls(
            type=str(raw.get("type", "")),
            status=status,
            reason=str(raw.get("reason") or ""),
            message=str(raw.get("message") or ""),
        )


def conditions_of(obj: Any) -> List[ReadinessCondition]:
    status = obj.get("status") if isinstance(obj, dict) else None
    raw = status.get("conditions") if isinstance(status, dict) else None
    if not isinstance(raw, list):
        return []
    return [ReadinessCondition.from_dict(c) for c in raw if isinstance(c, dict)]


def _flatten(docs: Iterable[Any]) -> Iterator[Any]:
    for doc in docs:
        if doc is None:
            continue
        # kubectl-style "kind: List" wrappers
        if isinstance(doc, dict) and doc.get("kind") == "List" and "items" in doc:
            yield from _flatten(doc.get("items") or [])
            continue
        yield doc


def load_documents(docs: Iterable[Any]) -> List[ResourceManifest]:
    return [ResourceManifest.from_dict(d) for d in _flatten(docs)]


def _expand(paths: Iterable[str]) -> Iterator[str]:
    for p in paths:
        if p == "-":
            yield p
            continue
        path = Path(p)
        if path.is_dir():
            for child in sorted(path.iterdir()):
                if child.is_file() and child.suffix in MANIFEST_SUFFIXES:
                    yield str(child)
        else:
            yield p


def load_files(paths: Iterable[str]) -> List[ResourceManifest]:
    """Read multi-document YAML from files, directories or '-' (stdin)."""
    docs: List[Any] = []
    for p in _expand(paths):
        try:
            if p == "-":
                docs.extend(yaml.safe_load_all(sys.stdin))
            else:
                with open(p, "r") as f:
                    docs.extend(yaml.safe_load_all(f))
        except yaml.YAMLError as e:
            raise ManifestInvalid(f"cannot parse {p}", cause=e) from e
        except OSError as e:
            raise ManifestInvalid(f"cannot read {p}", cause=e) from e
    return load_documents(docs)
