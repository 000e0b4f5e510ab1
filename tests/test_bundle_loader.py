from __future__ import annotations

from pathlib import Path

import pytest

from autoskills.infrastructure.bundle_loader import BundleManifestError, load_bundle


@pytest.mark.unit
def test_layout_without_manifest(make_bundle, target_root: Path):
    source = make_bundle(version=None)
    assert not (source / "bundle.yaml").exists()

    bundle = load_bundle(source, target_root)

    assert bundle.version is None
    assert bundle.default_mode == "reference"
    assert bundle.names() == ("main-config", "skills", "templates")
    doc = bundle.descriptors[0]
    assert doc.target_path == target_root / "CLAUDE.md"
    assert doc.kind == "file"
    assert doc.placement_override == "materialize"
    assert bundle.descriptors[1].target_path == target_root / "skills"


@pytest.mark.unit
def test_optional_directories_are_skipped_when_absent(make_bundle, target_root: Path):
    source = make_bundle(templates=False)
    assert load_bundle(source, target_root).names() == ("main-config", "skills")


@pytest.mark.unit
def test_manifest_declares_resources_and_overrides(make_bundle, target_root: Path):
    source = make_bundle(
        manifest={
            "version": "2.0.0",
            "placement": "materialize",
            "resources": [
                {"name": "rules", "source": "CLAUDE.md"},
                {"source": "skills", "placement": "reference"},
                {"source": "templates", "target": "commands/templates"},
            ],
        }
    )

    bundle = load_bundle(source, target_root)

    assert bundle.version == "2.0.0"
    assert bundle.default_mode == "materialize"
    assert bundle.names() == ("rules", "skills", "templates")
    by_name = {d.name: d for d in bundle.descriptors}
    assert by_name["skills"].placement_override == "reference"
    assert by_name["skills"].kind == "directory"
    assert by_name["rules"].kind == "file"
    assert by_name["templates"].target_path == target_root / "commands" / "templates"


@pytest.mark.unit
def test_configuration_document_is_always_declared(make_bundle, target_root: Path):
    source = make_bundle(manifest={"resources": ["skills"]})
    bundle = load_bundle(source, target_root)
    assert bundle.names() == ("main-config", "skills")
    assert bundle.descriptors[0].source_relative_path == "CLAUDE.md"


@pytest.mark.unit
@pytest.mark.parametrize(
    "manifest",
    [
        {"placement": "hardlink"},
        {"resources": "skills"},
        {"resources": [{"source": "../outside"}]},
        {"resources": [{"source": "/etc/passwd"}]},
        {"resources": [{"source": "skills", "target": ".backups"}]},
        {"resources": [{"source": "skills"}, {"source": "templates", "target": "skills"}]},
        {"resources": [{"source": "skills", "kind": "socket"}]},
    ],
)
def test_invalid_manifests_are_rejected(make_bundle, target_root: Path, manifest: dict):
    source = make_bundle(manifest=manifest)
    with pytest.raises(BundleManifestError) as excinfo:
        load_bundle(source, target_root)
    assert excinfo.value.exit_code == 2


@pytest.mark.unit
def test_unparseable_manifest_is_rejected(make_bundle, target_root: Path):
    source = make_bundle(version=None)
    (source / "bundle.yaml").write_text("resources: [unclosed\n", encoding="utf-8")
    with pytest.raises(BundleManifestError):
        load_bundle(source, target_root)
