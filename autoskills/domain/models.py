"""Installation data model and the tagged results returned by the core components."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal, Mapping

PlacementMode = Literal["materialize", "reference"]
ResourceKind = Literal["file", "directory"]
TargetState = Literal["absent", "managed", "foreign"]
LocalChangesResolution = Literal["commit", "stash", "abort"]

PLACEMENT_MODES: tuple[str, ...] = ("materialize", "reference")
RESOURCE_KINDS: tuple[str, ...] = ("file", "directory")
LOCAL_CHANGES_RESOLUTIONS: tuple[str, ...] = ("commit", "stash", "abort")

RECORD_SCHEMA = "autoskills.install-record.v1"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass(frozen=True)
class ResourceDescriptor:
    name: str
    source_relative_path: str
    target_path: Path
    kind: ResourceKind
    placement_override: PlacementMode | None = None

    def source_in(self, source_root: Path) -> Path:
        return source_root / self.source_relative_path

    def effective_mode(self, default: PlacementMode) -> PlacementMode:
        return self.placement_override or default


@dataclass(frozen=True)
class PlacedResource:
    target: Path
    mode: PlacementMode
    digest: str


@dataclass(frozen=True)
class InstallationRecord:
    source_path: Path
    version_tag: str
    placement_mode: PlacementMode
    installed_at: str
    updated_at: str
    resources: Mapping[str, PlacedResource] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "schema": RECORD_SCHEMA,
            "sourcePath": str(self.source_path),
            "versionTag": self.version_tag,
            "placementMode": self.placement_mode,
            "installedAt": self.installed_at,
            "updatedAt": self.updated_at,
            "resources": {
                name: {"target": str(placed.target), "mode": placed.mode, "digest": placed.digest}
                for name, placed in sorted(self.resources.items())
            },
        }

    @classmethod
    def from_payload(cls, payload: Any) -> "InstallationRecord":
        """Build a record from its persisted form.

        Raises ValueError on any missing or mistyped field so that callers never
        observe a partially populated record.
        """
        if not isinstance(payload, dict):
            raise ValueError("record must be a JSON object")
        if payload.get("schema") != RECORD_SCHEMA:
            raise ValueError(f"unsupported record schema: {payload.get('schema')!r}")

        def text(key: str) -> str:
            value = payload.get(key)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{key} missing or empty")
            return value.strip()

        mode = text("placementMode")
        if mode not in PLACEMENT_MODES:
            raise ValueError(f"placementMode must be one of {PLACEMENT_MODES}, got {mode!r}")
        source_path = Path(text("sourcePath"))
        if not source_path.is_absolute():
            raise ValueError("sourcePath must be absolute")

        raw_resources = payload.get("resources", {})
        if not isinstance(raw_resources, dict):
            raise ValueError("resources must be an object")
        resources: dict[str, PlacedResource] = {}
        for name, entry in raw_resources.items():
            if not isinstance(entry, dict):
                raise ValueError(f"resources.{name} must be an object")
            target = entry.get("target")
            placed_mode = entry.get("mode")
            digest = entry.get("digest")
            if not isinstance(target, str) or not Path(target).is_absolute():
                raise ValueError(f"resources.{name}.target must be an absolute path")
            if placed_mode not in PLACEMENT_MODES:
                raise ValueError(f"resources.{name}.mode invalid: {placed_mode!r}")
            if not isinstance(digest, str):
                raise ValueError(f"resources.{name}.digest must be a string")
            resources[str(name)] = PlacedResource(target=Path(target), mode=placed_mode, digest=digest)

        return cls(
            source_path=source_path,
            version_tag=text("versionTag"),
            placement_mode=mode,  # type: ignore[arg-type]
            installed_at=text("installedAt"),
            updated_at=text("updatedAt"),
            resources=resources,
        )


@dataclass(frozen=True)
class NotInstalled:
    """Returned by StateStore.load when no record is persisted."""


NOT_INSTALLED = NotInstalled()


@dataclass(frozen=True)
class CapturedEntry:
    name: str
    target: Path
    # relative to the snapshot directory
    stored_as: str


@dataclass(frozen=True)
class BackupSnapshot:
    snapshot_id: str
    created_at: str
    path: Path
    captured: tuple[CapturedEntry, ...]

    @property
    def captured_names(self) -> tuple[str, ...]:
        return tuple(entry.name for entry in self.captured)


@dataclass(frozen=True)
class NoBackupNeeded:
    pass


@dataclass(frozen=True)
class NoBackupAvailable:
    pass


@dataclass(frozen=True)
class RestoredSnapshot:
    snapshot: BackupSnapshot
    restored: tuple[Path, ...]


@dataclass(frozen=True)
class VerificationWarning:
    resource: str
    detail: str

    def __str__(self) -> str:
        return f"{self.resource}: {self.detail}"


@dataclass(frozen=True)
class ChangeReport:
    old_version: str
    new_version: str
    old_revision: str
    new_revision: str
    added: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()
    changed: tuple[str, ...] = ()

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.changed)
