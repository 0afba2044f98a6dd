from __future__ import annotations

import pytest

from errors import ManifestInvalid
from fake_cluster import cond, manifest_doc
from manifest import (
    ConditionStatus,
    ReadinessCondition,
    ResourceManifest,
    conditions_of,
    load_documents,
    load_files,
)


def test_from_dict_reads_identity_and_keeps_body() -> None:
    doc = manifest_doc("ConfigMap", "a", data={"k": "v"})
    m = ResourceManifest.from_dict(doc)
    assert (m.api_version, m.kind, m.name, m.namespace) == ("v1", "ConfigMap", "a", "default")
    assert m.body is doc
    assert m.ref.path == "/api/v1/namespaces/default/configmaps/a"
    assert str(m.ref) == "ConfigMap/default/a"


def test_cluster_scoped_ref() -> None:
    m = ResourceManifest.from_dict(manifest_doc("Namespace", "prod", namespace=None))
    assert m.namespace is None
    assert str(m.ref) == "Namespace/prod"


@pytest.mark.parametrize(
    "doc",
    [
        {"apiVersion": "v1", "metadata": {"name": "a"}},
        {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {}},
        {"apiVersion": "v1", "kind": "ConfigMap"},
        {"kind": "ConfigMap", "metadata": {"name": "a"}},
        {"apiVersion": "a/b/c", "kind": "ConfigMap", "metadata": {"name": "a"}},
        ["not", "a", "mapping"],
    ],
)
def test_invalid_manifests_are_rejected(doc) -> None:
    with pytest.raises(ManifestInvalid):
        ResourceManifest.from_dict(doc)


def test_load_documents_skips_empty_and_flattens_lists() -> None:
    docs = [
        None,
        manifest_doc("ConfigMap", "a"),
        {"apiVersion": "v1", "kind": "List", "items": [manifest_doc("Secret", "b"), manifest_doc("Service", "c")]},
    ]
    assert [m.name for m in load_documents(docs)] == ["a", "b", "c"]


def test_load_files_reads_directories_in_order(tmp_path) -> None:
    (tmp_path / "10-db.yaml").write_text(
        "apiVersion: sql.gcp.upbound.io/v1beta1\n"
        "kind: DatabaseInstance\n"
        "metadata:\n  name: memory-db\n"
    )
    (tmp_path / "00-cm.yaml").write_text(
        "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: a\n  namespace: default\n"
        "---\n"
        "apiVersion: v1\nkind: Secret\nmetadata:\n  name: s\n  namespace: default\n"
    )
    (tmp_path / "notes.txt").write_text("ignored")

    manifests = load_files([str(tmp_path)])
    assert [(m.kind, m.name) for m in manifests] == [
        ("ConfigMap", "a"),
        ("Secret", "s"),
        ("DatabaseInstance", "memory-db"),
    ]


def test_load_files_reports_parse_errors(tmp_path) -> None:
    bad = tmp_path / "bad.yaml"
    bad.write_text("kind: [unterminated\n")
    with pytest.raises(ManifestInvalid):
        load_files([str(bad)])


def test_load_files_reports_missing_file(tmp_path) -> None:
    with pytest.raises(ManifestInvalid):
        load_files([str(tmp_path / "nope.yaml")])


def test_conditions_of_parses_status() -> None:
    obj = {"status": {"conditions": [cond("Ready", "True", "Available"), cond("Synced", "Maybe")]}}
    conditions = conditions_of(obj)
    assert conditions[0] == ReadinessCondition("Ready", ConditionStatus.TRUE, "Available", "")
    assert conditions[1].status == ConditionStatus.UNKNOWN
    assert conditions_of({}) == []


def test_conditions_of_tolerates_malformed_bodies() -> None:
    assert conditions_of("<html>bad gateway</html>") == []
    assert conditions_of({"status": "Failure"}) == []
    assert conditions_of({"status": {"conditions": "none"}}) == []
