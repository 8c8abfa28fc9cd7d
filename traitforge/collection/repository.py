"""Project collaborators: where layers, canvas settings, compatibility
rules and edition records come from.

``ProjectRepository`` is the interface the orchestrator talks to.  Two
implementations ship with the package:

* ``InMemoryProjectRepository``: plain dicts, handy for embedding and tests.
* ``FolderProjectRepository``: one directory per project.  A
  ``project.json`` manifest may describe layers, settings and rules;
  without one the layers are read from the folder structure (one
  sub-folder per layer, image files as assets).  Edition records are kept
  in ``editions.json``.
"""

from __future__ import annotations

import io
import json
import logging
from dataclasses import dataclass
from pathlib import Path

from traitforge.errors import NotFoundError, ValidationError
from traitforge.traits.models import (
    Asset,
    CanvasConfig,
    CompatibilityRule,
    Layer,
    sort_layers,
)

logger = logging.getLogger(__name__)

MANIFEST_NAME = "project.json"
EDITIONS_NAME = "editions.json"
IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".webp")
SYSTEM_FILES = {".DS_Store", "__MACOSX", "Thumbs.db", ".git", ".gitignore"}


@dataclass(frozen=True)
class Project:
    id: str
    name: str
    description: str = ""


def status_from_records(records: list[dict]) -> dict:
    numbers = [int(r["edition_number"]) for r in records]
    return {
        "total_generated": len(numbers),
        "min_edition": min(numbers) if numbers else 0,
        "max_edition": max(numbers) if numbers else 0,
    }


class ProjectRepository:
    """Read-only project view for one batch, plus edition bookkeeping."""

    def get_project(self, project_id: str) -> Project:
        raise NotImplementedError

    def get_canvas(self, project_id: str) -> CanvasConfig:
        raise NotImplementedError

    def get_layers(self, project_id: str) -> list[Layer]:
        """Layers sorted by z-order, each carrying its assets."""
        raise NotImplementedError

    def get_compatibility_rules(self, project_id: str) -> list[CompatibilityRule]:
        raise NotImplementedError

    def resolve_asset(self, project_id: str, asset: Asset):
        """Return something ``PIL.Image.open`` accepts, an Image, or None."""
        raise NotImplementedError

    def list_editions(self, project_id: str) -> list[dict]:
        raise NotImplementedError

    def record_editions(self, project_id: str, records: list[dict],
                        replace: bool = False) -> None:
        raise NotImplementedError

    def count_editions(self, project_id: str) -> int:
        return len(self.list_editions(project_id))

    def generation_status(self, project_id: str) -> dict:
        self.get_project(project_id)
        return status_from_records(self.list_editions(project_id))


# ------------------------------------------------------------------
# In-memory
# ------------------------------------------------------------------

class InMemoryProjectRepository(ProjectRepository):
    def __init__(self):
        self._projects: dict[str, dict] = {}

    def add_project(self, project: Project, layers: list[Layer],
                    canvas: CanvasConfig | None = None,
                    rules: list[CompatibilityRule] | None = None,
                    sources: dict | None = None) -> None:
        """Register a project.  ``sources`` maps asset id to an Image,
        raw bytes or a path."""
        self._projects[project.id] = {
            "project": project,
            "layers": sort_layers(layers),
            "canvas": canvas or CanvasConfig(),
            "rules": list(rules or []),
            "sources": dict(sources or {}),
            "editions": [],
        }

    def _entry(self, project_id: str) -> dict:
        try:
            return self._projects[str(project_id)]
        except KeyError:
            raise NotFoundError(f"Project not found: {project_id}") from None

    def get_project(self, project_id):
        return self._entry(project_id)["project"]

    def get_canvas(self, project_id):
        return self._entry(project_id)["canvas"]

    def get_layers(self, project_id):
        return list(self._entry(project_id)["layers"])

    def get_compatibility_rules(self, project_id):
        return list(self._entry(project_id)["rules"])

    def resolve_asset(self, project_id, asset):
        source = self._entry(project_id)["sources"].get(asset.id)
        if isinstance(source, (bytes, bytearray)):
            return io.BytesIO(source)
        return source

    def list_editions(self, project_id):
        return list(self._entry(project_id)["editions"])

    def record_editions(self, project_id, records, replace=False):
        entry = self._entry(project_id)
        if replace:
            entry["editions"] = []
        entry["editions"].extend(dict(r) for r in records)


# ------------------------------------------------------------------
# Folder-backed
# ------------------------------------------------------------------

def _visible(entries) -> list[Path]:
    return sorted((p for p in entries if p.name not in SYSTEM_FILES), key=lambda p: p.name)


def scan_layers(folder: Path) -> tuple[Path, list[Layer]]:
    """Build layers from a folder tree: one sub-folder per layer.

    If ``folder`` holds exactly one visible entry and it is a directory,
    the layers are looked for inside it instead.  Returns the directory
    the asset sources are relative to, along with the layers.
    """
    base = folder
    entries = _visible(folder.iterdir())
    if len(entries) == 1 and entries[0].is_dir():
        base = entries[0]
        entries = _visible(base.iterdir())

    layers: list[Layer] = []
    for entry in entries:
        if not entry.is_dir():
            continue
        assets = [
            Asset(
                id=f"{entry.name}/{f.name}",
                filename=f.name,
                source=f"{entry.name}/{f.name}",
            )
            for f in _visible(entry.iterdir())
            if f.is_file() and f.suffix.lower() in IMAGE_EXTENSIONS
        ]
        if not assets:
            continue
        layers.append(Layer(id=entry.name, name=entry.name,
                            z_index=len(layers), assets=assets))

    logger.info(f"Scanned {len(layers)} layers in {base}")
    return base, layers


class FolderProjectRepository(ProjectRepository):
    """Projects are sub-directories of ``root``; the project id is the directory name."""

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self._cache: dict[str, dict] = {}

    @classmethod
    def for_project(cls, project_dir: str | Path) -> tuple[FolderProjectRepository, str]:
        """Repository rooted at the parent of ``project_dir``, plus its project id."""
        path = Path(project_dir).resolve()
        return cls(path.parent), path.name

    def _project_dir(self, project_id: str) -> Path:
        path = self.root / str(project_id)
        if not path.is_dir() or path.name in SYSTEM_FILES:
            raise NotFoundError(f"Project not found: {project_id}")
        return path

    def _fingerprint(self, path: Path) -> tuple:
        """Directory and manifest stamps; any added, removed or renamed entry
        or manifest edit changes it."""
        stamps = [
            (str(p.relative_to(path)), p.stat().st_mtime_ns)
            for p in [path, *sorted(path.rglob("*"))]
            if p.is_dir()
        ]
        manifest = path / MANIFEST_NAME
        if manifest.is_file():
            st = manifest.stat()
            stamps.append((MANIFEST_NAME, st.st_mtime_ns, st.st_size))
        return tuple(stamps)

    def _load(self, project_id: str) -> dict:
        """Project entry, re-read whenever the folder or its manifest changed."""
        path = self._project_dir(project_id)
        fingerprint = self._fingerprint(path)
        cached = self._cache.get(project_id)
        if cached is not None and cached["fingerprint"] == fingerprint:
            return cached

        try:
            entry = self._read_project(project_id, path)
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid {MANIFEST_NAME} in project {project_id}: {e}") from e
        entry["fingerprint"] = fingerprint
        self._cache[project_id] = entry
        logger.debug(f"Loaded project {project_id} ({len(entry['layers'])} layers)")
        return entry

    def _read_project(self, project_id: str, path: Path) -> dict:
        manifest_path = path / MANIFEST_NAME
        manifest = {}
        if manifest_path.exists():
            manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
            if not isinstance(manifest, dict):
                raise ValueError("expected a JSON object")

        if manifest.get("layers"):
            base = path
            layers = sort_layers(Layer.from_dict(d) for d in manifest["layers"])
        else:
            base, layers = scan_layers(path)

        return {
            "project": Project(
                id=str(project_id),
                name=manifest.get("name", path.name),
                description=manifest.get("description", ""),
            ),
            "base": base,
            "layers": layers,
            "canvas": CanvasConfig.from_dict(manifest.get("settings", {})),
            "rules": [CompatibilityRule.from_dict(r) for r in manifest.get("compatibility", [])],
        }

    def get_project(self, project_id):
        return self._load(project_id)["project"]

    def get_canvas(self, project_id):
        return self._load(project_id)["canvas"]

    def get_layers(self, project_id):
        return list(self._load(project_id)["layers"])

    def get_compatibility_rules(self, project_id):
        return list(self._load(project_id)["rules"])

    def resolve_asset(self, project_id, asset):
        path = Path(asset.source or asset.filename)
        if not path.is_absolute():
            entry = self._cache.get(project_id) or self._load(project_id)
            path = entry["base"] / path
        return path if path.is_file() else None

    def _editions_path(self, project_id: str) -> Path:
        return self._project_dir(project_id) / EDITIONS_NAME

    def list_editions(self, project_id):
        path = self._editions_path(project_id)
        if not path.exists():
            return []
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise ValidationError(f"Invalid {EDITIONS_NAME} in project {project_id}: {e}") from e

    def record_editions(self, project_id, records, replace=False):
        existing = [] if replace else self.list_editions(project_id)
        existing.extend(dict(r) for r in records)
        existing.sort(key=lambda r: int(r["edition_number"]))
        self._editions_path(project_id).write_text(
            json.dumps(existing, indent=2), encoding="utf-8")
