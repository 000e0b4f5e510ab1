"""Pytest configuration for installer tests."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
import yaml


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch):
    """Keep tests away from the real ~/.claude and its error logs."""
    monkeypatch.delenv("CLAUDE_CONFIG_DIR", raising=False)
    monkeypatch.setenv("AUTOSKILLS_DISABLE_ERROR_LOG", "1")


@pytest.fixture
def target_root(tmp_path: Path) -> Path:
    return tmp_path / "claude-home"


@pytest.fixture
def make_bundle(tmp_path: Path) -> Callable[..., Path]:
    """Create a bundle checkout under tmp_path.

    The default bundle has a configuration document, one skill and one template,
    plus a bundle.yaml carrying the version so no git lookup is needed.
    """

    def _make(
        name: str = "bundle",
        *,
        version: str | None = "1.0.0",
        document: str = "# Auto-Skills\n\nbundle rules v1\n",
        templates: bool = True,
        manifest: dict | None = None,
    ) -> Path:
        root = tmp_path / name
        (root / "skills" / "alpha").mkdir(parents=True)
        (root / "skills" / "alpha" / "SKILL.md").write_text("alpha skill\n", encoding="utf-8")
        (root / "CLAUDE.md").write_text(document, encoding="utf-8")
        if templates:
            (root / "templates").mkdir()
            (root / "templates" / "feature.md").write_text("template\n", encoding="utf-8")
        doc = dict(manifest or {})
        if version is not None:
            doc.setdefault("version", version)
        if doc:
            (root / "bundle.yaml").write_text(yaml.safe_dump(doc, sort_keys=False), encoding="utf-8")
        return root

    return _make


@pytest.fixture
def messages() -> list[str]:
    return []

