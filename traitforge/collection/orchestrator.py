"""Batch generation: validate, prepare, loop over editions, finalize.

One orchestrator serves both full and preview runs; ``preview`` only
changes the count bound, the artifact namespace and whether edition
records are persisted.

Combinations are drawn on the calling thread, so the uniqueness guard has
a single owner and edition numbers are handed out in order before any
rendering is dispatched.  Rendering and writing may then run on a small
thread pool.

Setup failures (validation, missing project, overwrite conflict) raise.
Failures in the middle of a batch (capacity, write errors) stop the batch
and are reported on the returned ``BatchResult``; editions already
written stay on disk and are still recorded.
"""

from __future__ import annotations

import logging
import os
import random
import threading
import uuid
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field

from traitforge.art.colors import to_rgba
from traitforge.art.compositor import composite_combination
from traitforge.collection.metadata import build_metadata
from traitforge.collection.repository import ProjectRepository
from traitforge.collection.sinks import BatchWriter, DirectorySink
from traitforge.errors import (
    ArtifactWriteError,
    CapacityError,
    ConflictError,
    NotFoundError,
    TraitForgeError,
    ValidationError,
)
from traitforge.traits.combination import (
    CombinationGenerator,
    UniquenessGuard,
    max_unique_combinations,
)
from traitforge.traits.compatibility import CompatibilityIndex
from traitforge.traits.models import CanvasConfig, Combination, Layer
from traitforge.traits.rarity import range_errors
from traitforge.traits.sampler import make_rng

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "max_attempts": 1000,
    "max_count": 10000,
    "preview_max_count": 20,
    # Render pool size; 0 or None means one worker per CPU core.
    "workers": 1,
    "pad_width": 4,
    "preview_collection_name": "Preview",
    "preview_description": "Preview NFT",
}


@dataclass
class GenerationRequest:
    project_id: str
    count: int
    collection_name: str | None = None
    description: str | None = None
    base_uri: str | None = None
    overwrite: bool = False
    preview: bool = False
    seed: int | None = None


@dataclass
class EditionSummary:
    edition: int
    image_ref: str
    metadata_ref: str
    attributes: list[dict]
    key: str = ""
    warnings: list[str] = field(default_factory=list)

    def to_record(self) -> dict:
        return {
            "edition_number": self.edition,
            "image_ref": self.image_ref,
            "metadata_ref": self.metadata_ref,
        }

    def to_dict(self) -> dict:
        return {
            "edition": self.edition,
            "image": self.image_ref,
            "metadata": self.metadata_ref,
            "attributes": self.attributes,
            "warnings": list(self.warnings),
        }


@dataclass
class BatchResult:
    generation_id: str
    namespace: str
    requested: int
    preview: bool = False
    editions: list[EditionSummary] = field(default_factory=list)
    combinations: list[Combination] = field(default_factory=list)
    error: TraitForgeError | None = None
    cancelled: bool = False

    @property
    def completed(self) -> int:
        return len(self.editions)

    @property
    def ok(self) -> bool:
        return self.error is None and not self.cancelled and self.completed == self.requested

    @property
    def warnings(self) -> list[str]:
        return [w for e in self.editions for w in e.warnings]

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error

    def to_dict(self) -> dict:
        return {
            "generation_id": self.generation_id,
            "namespace": self.namespace,
            "preview": self.preview,
            "requested": self.requested,
            "completed": self.completed,
            "cancelled": self.cancelled,
            "error": str(self.error) if self.error else None,
            "error_type": type(self.error).__name__ if self.error else None,
            "editions": [e.to_dict() for e in self.editions],
        }


@dataclass
class _BatchPlan:
    request: GenerationRequest
    canvas: CanvasConfig
    layers: list[Layer]
    guard: UniquenessGuard
    collection_name: str
    description: str | None


class GenerationOrchestrator:
    def __init__(self, repository: ProjectRepository, sink: DirectorySink,
                 config: dict | None = None, rng: random.Random | None = None):
        self.repository = repository
        self.sink = sink
        self.config = {**DEFAULT_CONFIG, **(config or {})}
        self.rng = rng
        self._cancel = threading.Event()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Ask a running batch to stop before its next edition."""
        self._cancel.set()

    def run(self, request: GenerationRequest) -> BatchResult:
        self._validate(request)
        plan = self._prepare(request)
        self._cancel.clear()

        generation_id = uuid.uuid4().hex
        result = BatchResult(
            generation_id=generation_id,
            namespace=generation_id,
            requested=request.count,
            preview=request.preview,
        )
        logger.info(
            f"Generating {request.count} {'preview ' if request.preview else ''}editions "
            f"for project {request.project_id} ({len(plan.layers)} layers)"
        )

        try:
            writer = self.sink.open(generation_id, preview=request.preview,
                                    pad=self.config["pad_width"])
        except ArtifactWriteError as e:
            logger.error(f"Batch {generation_id} aborted: {e}")
            result.error = e
            return result
        result.namespace = writer.namespace

        workers = self._worker_count()
        if workers > 1:
            self._loop_parallel(plan, writer, result, workers)
        else:
            self._loop(plan, writer, result)

        self._finalize(plan, result)
        return result

    # ------------------------------------------------------------------
    # Validate / prepare
    # ------------------------------------------------------------------

    def _validate(self, request: GenerationRequest) -> None:
        limit = self.config["preview_max_count"] if request.preview else self.config["max_count"]
        count = request.count
        if isinstance(count, bool) or not isinstance(count, int) or not 1 <= count <= limit:
            kind = "Preview count" if request.preview else "Count"
            raise ValidationError(f"{kind} must be between 1 and {limit:,}")
        if not request.preview and not (request.collection_name or "").strip():
            raise ValidationError("Collection name is required")

    def _prepare(self, request: GenerationRequest) -> _BatchPlan:
        project_id = request.project_id
        self.repository.get_project(project_id)
        layers = self.repository.get_layers(project_id)
        if not layers:
            raise NotFoundError(f"No layers found in project {project_id}")
        problems = range_errors(layers)
        if problems:
            raise ValidationError("; ".join(problems))

        if not request.preview:
            existing = self.repository.count_editions(project_id)
            if existing and not request.overwrite:
                raise ConflictError(
                    f"Project {project_id} already has {existing} editions; "
                    f"set overwrite to replace them"
                )

        canvas = self.repository.get_canvas(project_id)
        try:
            to_rgba(canvas.background_color)
        except ValueError as e:
            raise ValidationError(f"Invalid canvas background: {e}") from e

        index = CompatibilityIndex(self.repository.get_compatibility_rules(project_id))
        rng = self.rng or make_rng(request.seed)
        generator = CombinationGenerator(layers, index, rng)
        guard = UniquenessGuard(generator, max_attempts=self.config["max_attempts"])

        ceiling = max_unique_combinations(generator.layers)
        if request.count > ceiling:
            logger.warning(
                f"Requested {request.count} editions but only {ceiling} distinct "
                f"combinations exist; the batch will stop early"
            )

        if request.preview:
            name = request.collection_name or self.config["preview_collection_name"]
            description = request.description or self.config["preview_description"]
        else:
            name = request.collection_name.strip()
            description = request.description

        return _BatchPlan(request, canvas, generator.layers, guard, name, description)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _worker_count(self) -> int:
        workers = self.config["workers"]
        if not workers:
            workers = os.cpu_count() or 1
        return max(1, int(workers))

    def _produce(self, plan: _BatchPlan, writer: BatchWriter,
                 edition: int, combo: Combination) -> EditionSummary:
        project_id = plan.request.project_id
        rendered = composite_combination(
            combo, plan.canvas,
            lambda asset: self.repository.resolve_asset(project_id, asset),
        )
        record = build_metadata(
            edition, combo,
            collection_name=plan.collection_name,
            description=plan.description,
            base_uri=plan.request.base_uri,
            image_path=writer.image_name(edition),
            pad=writer.pad,
        )
        image_ref = writer.write_image(edition, rendered.image)
        metadata_ref = writer.write_metadata(edition, record)
        logger.debug(f"Edition {edition}: {combo.key() or '<blank>'}")
        return EditionSummary(
            edition=edition,
            image_ref=image_ref,
            metadata_ref=metadata_ref,
            attributes=record["attributes"],
            key=combo.key(),
            warnings=[str(w) for w in rendered.warnings],
        )

    def _fail(self, result: BatchResult, error: TraitForgeError) -> None:
        logger.error(
            f"Batch {result.generation_id} stopped after {result.completed} of "
            f"{result.requested} editions: {error}"
        )
        result.error = error

    def _loop(self, plan: _BatchPlan, writer: BatchWriter, result: BatchResult) -> None:
        for edition in range(1, plan.request.count + 1):
            if self._cancel.is_set():
                logger.info(f"Batch {result.generation_id} cancelled before edition {edition}")
                result.cancelled = True
                return
            try:
                combo = plan.guard.next_unique()
                summary = self._produce(plan, writer, edition, combo)
            except CapacityError as e:
                self._fail(result, e)
                return
            except ArtifactWriteError as e:
                writer.discard(edition)
                self._fail(result, e)
                return
            result.editions.append(summary)
            result.combinations.append(combo)

    def _loop_parallel(self, plan: _BatchPlan, writer: BatchWriter,
                       result: BatchResult, workers: int) -> None:
        window = workers * 2
        pending = {}
        finished_editions: list[tuple[EditionSummary, Combination]] = []
        error: TraitForgeError | None = None
        # Lowest edition number that did not complete; nothing at or above it is kept.
        failed_at: int | None = None
        edition = 1

        def stop(number: int, e: TraitForgeError) -> None:
            nonlocal error, failed_at
            if failed_at is None or number < failed_at:
                failed_at, error = number, e
            for future, (queued, _) in list(pending.items()):
                if queued > number and future.cancel():
                    pending.pop(future)

        with ThreadPoolExecutor(max_workers=workers) as executor:
            while True:
                while (failed_at is None and not result.cancelled
                       and edition <= plan.request.count and len(pending) < window):
                    if self._cancel.is_set():
                        logger.info(f"Batch {result.generation_id} cancelled before edition {edition}")
                        result.cancelled = True
                        break
                    try:
                        combo = plan.guard.next_unique()
                    except CapacityError as e:
                        stop(edition, e)
                        break
                    future = executor.submit(self._produce, plan, writer, edition, combo)
                    pending[future] = (edition, combo)
                    edition += 1

                if not pending:
                    break

                done, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    if future not in pending:
                        continue
                    number, combo = pending.pop(future)
                    try:
                        summary = future.result()
                    except ArtifactWriteError as e:
                        writer.discard(number)
                        stop(number, e)
                        continue
                    finished_editions.append((summary, combo))

        finished_editions.sort(key=lambda pair: pair[0].edition)
        for summary, combo in finished_editions:
            if failed_at is not None and summary.edition > failed_at:
                writer.discard(summary.edition)
                continue
            result.editions.append(summary)
            result.combinations.append(combo)
        if error is not None:
            self._fail(result, error)

    # ------------------------------------------------------------------
    # Finalize
    # ------------------------------------------------------------------

    def _finalize(self, plan: _BatchPlan, result: BatchResult) -> None:
        request = plan.request
        if not request.preview and result.editions:
            try:
                self.repository.record_editions(
                    request.project_id,
                    [e.to_record() for e in result.editions],
                    replace=request.overwrite,
                )
            except OSError as e:
                err = ArtifactWriteError(f"Failed to record editions: {e}")
                if result.error is None:
                    self._fail(result, err)

        blank = sum(1 for c in result.combinations if c.is_blank())
        if blank:
            logger.info(f"{blank} edition(s) have no traits (every layer skipped)")
        logger.info(
            f"Batch {result.generation_id}: {result.completed}/{result.requested} editions "
            f"written to {result.namespace}"
            + (f", {len(result.warnings)} asset warnings" if result.warnings else "")
        )
