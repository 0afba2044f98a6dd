# kinds.py
"""Map (apiVersion, kind) to the REST path used to address a resource.

The collection segment is ``kind.lower() + "s"`` except for the kinds listed in
IRREGULAR_PLURALS. Any kind whose plural does not follow the naive rule must be
added to that table; suspicious_kinds() flags the likely candidates.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Tuple

from errors import ManifestInvalid

IRREGULAR_PLURALS: Dict[str, str] = {
    "Ingress": "ingresses",
    "IngressClass": "ingressclasses",
    "NetworkPolicy": "networkpolicies",
    "CiliumNetworkPolicy": "ciliumnetworkpolicies",
    "CiliumClusterwideNetworkPolicy": "ciliumclusterwidenetworkpolicies",
    "StorageClass": "storageclasses",
    "PriorityClass": "priorityclasses",
    "RuntimeClass": "runtimeclasses",
    "Endpoints": "endpoints",
    "ComponentStatus": "componentstatuses",
    "PodSecurityPolicy": "podsecuritypolicies",
}

# endings where appending "s" is almost certainly wrong
_IRREGULAR_ENDING = re.compile(r"(s|x|z|ch|sh|[^aeiou]y)$")


def split_api_version(api_version: str) -> Tuple[str, str]:
    """Return (group, version); the core group is the empty string."""
    if not api_version or not api_version.strip():
        raise ManifestInvalid("apiVersion must not be empty")
    if "/" not in api_version:
        return "", api_version
    parts = api_version.split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ManifestInvalid(f"malformed apiVersion {api_version!r}")
    return parts[0], parts[1]


def plural_for(kind: str) -> str:
    return IRREGULAR_PLURALS.get(kind) or f"{kind.lower()}s"


def resolve(api_version: str, kind: str, namespace: Optional[str], name: str) -> str:
    group, version = split_api_version(api_version)
    base = f"/apis/{group}/{version}" if group else f"/api/{version}"
    plural = plural_for(kind)
    if namespace:
        return f"{base}/namespaces/{namespace}/{plural}/{name}"
    return f"{base}/{plural}/{name}"


def suspicious_kinds(kinds: Iterable[str]) -> List[str]:
    """Kinds outside IRREGULAR_PLURALS whose naive plural is probably wrong."""
    out = set()
    for kind in kinds:
        if kind in IRREGULAR_PLURALS:
            continue
        if _IRREGULAR_ENDING.search(kind.lower()):
            out.add(kind)
    return sorted(out)
