from __future__ import annotations

import pytest

from errors import ManifestInvalid
from kinds import IRREGULAR_PLURALS, plural_for, resolve, split_api_version, suspicious_kinds


@pytest.mark.parametrize("kind,plural", sorted(IRREGULAR_PLURALS.items()))
def test_irregular_kinds_use_override(kind: str, plural: str) -> None:
    assert plural_for(kind) == plural
    assert plural != kind.lower() + "s"
    assert resolve("example.io/v1", kind, None, "x") == f"/apis/example.io/v1/{plural}/x"


@pytest.mark.parametrize(
    "kind",
    [
        "ConfigMap",
        "Secret",
        "Service",
        "Namespace",
        "Deployment",
        "Job",
        "Composition",
        "CompositeResourceDefinition",
        "DatabaseInstance",
        "ExternalSecret",
        "ClusterSecretStore",
        "ProviderConfig",
        "Provider",
        "AgentMemoryClaim",
        "PipelineRun",
        "Gateway",
    ],
)
def test_regular_kinds_use_naive_plural(kind: str) -> None:
    assert plural_for(kind) == kind.lower() + "s"


def test_split_api_version() -> None:
    assert split_api_version("v1") == ("", "v1")
    assert split_api_version("apps/v1") == ("apps", "v1")
    assert split_api_version("sql.gcp.upbound.io/v1beta1") == ("sql.gcp.upbound.io", "v1beta1")


@pytest.mark.parametrize("bad", ["", "  ", "/v1", "apps/", "a/b/c"])
def test_split_api_version_rejects_malformed(bad: str) -> None:
    with pytest.raises(ManifestInvalid):
        split_api_version(bad)


def test_resolve_core_namespaced_and_cluster_scoped() -> None:
    assert resolve("v1", "ConfigMap", "default", "a") == "/api/v1/namespaces/default/configmaps/a"
    assert resolve("v1", "Namespace", None, "prod") == "/api/v1/namespaces/prod"


def test_resolve_group_paths() -> None:
    assert (
        resolve("networking.k8s.io/v1", "Ingress", "web", "front")
        == "/apis/networking.k8s.io/v1/namespaces/web/ingresses/front"
    )
    assert (
        resolve("sql.gcp.upbound.io/v1beta1", "DatabaseInstance", None, "memory-db")
        == "/apis/sql.gcp.upbound.io/v1beta1/databaseinstances/memory-db"
    )


def test_suspicious_kinds_flags_likely_irregulars_only() -> None:
    kinds = ["ConfigMap", "Ingress", "Gateway", "Policy", "Mailbox", "Endpoints", "Status", "Branch"]
    assert suspicious_kinds(kinds) == ["Branch", "Mailbox", "Policy", "Status"]
