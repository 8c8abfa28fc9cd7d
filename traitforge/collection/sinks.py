"""Artifact sinks: where rendered images and metadata records are written.

A ``DirectorySink`` hands out one ``BatchWriter`` per batch.  Durable
batches live in ``<root>/<generation_id>/`` as ``0001.png`` / ``0001.json``;
preview batches live in ``<root>/preview-<generation_id>/`` as
``preview-1.png`` / ``preview-1.json``.  References returned by the writer
are POSIX paths relative to the sink root.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from PIL import Image

from traitforge.collection.metadata import PAD_WIDTH, edition_label, metadata_to_json
from traitforge.errors import ArtifactWriteError

logger = logging.getLogger(__name__)

PREVIEW_PREFIX = "preview-"


class BatchWriter:
    def __init__(self, root: Path, namespace: str, preview: bool = False,
                 pad: int = PAD_WIDTH):
        self.root = root
        self.namespace = namespace
        self.preview = preview
        self.pad = pad
        self.directory = root / namespace

    def _stem(self, edition: int) -> str:
        if self.preview:
            return f"{PREVIEW_PREFIX}{edition}"
        return edition_label(edition, self.pad)

    def image_name(self, edition: int) -> str:
        return f"{self._stem(edition)}.png"

    def metadata_name(self, edition: int) -> str:
        return f"{self._stem(edition)}.json"

    def _ref(self, name: str) -> str:
        return f"{self.namespace}/{name}"

    def write_image(self, edition: int, image: Image.Image) -> str:
        name = self.image_name(edition)
        try:
            image.save(self.directory / name, format="PNG")
        except OSError as e:
            raise ArtifactWriteError(f"Failed to write image {name}: {e}", edition=edition) from e
        return self._ref(name)

    def write_metadata(self, edition: int, record: dict) -> str:
        name = self.metadata_name(edition)
        try:
            (self.directory / name).write_text(metadata_to_json(record), encoding="utf-8")
        except OSError as e:
            raise ArtifactWriteError(f"Failed to write metadata {name}: {e}", edition=edition) from e
        return self._ref(name)

    def discard(self, edition: int) -> None:
        """Remove whatever was written for ``edition``."""
        for name in (self.image_name(edition), self.metadata_name(edition)):
            try:
                (self.directory / name).unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove {name}: {e}")


class DirectorySink:
    def __init__(self, root: str | Path = "generated"):
        self.root = Path(root)

    def open(self, generation_id: str, preview: bool = False,
             pad: int = PAD_WIDTH) -> BatchWriter:
        namespace = f"{PREVIEW_PREFIX}{generation_id}" if preview else generation_id
        writer = BatchWriter(self.root, namespace, preview=preview, pad=pad)
        try:
            writer.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArtifactWriteError(f"Failed to create {writer.directory}: {e}") from e
        logger.debug(f"Writing artifacts to {writer.directory}")
        return writer

    def clear_previews(self) -> int:
        """Delete every preview namespace under the root; returns how many went."""
        if not self.root.is_dir():
            return 0
        removed = 0
        for path in self.root.iterdir():
            if path.is_dir() and path.name.startswith(PREVIEW_PREFIX):
                shutil.rmtree(path)
                removed += 1
        return removed
