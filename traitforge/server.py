"""traitforge -- HTTP adapter.

Exposes batch generation over a small JSON API.  Projects are read from
the folder named by ``TRAITFORGE_PROJECTS`` and artifacts are written under
``TRAITFORGE_OUTPUT``.

Launch:
    python -m traitforge.server
    # or: uvicorn traitforge.server:app --reload
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from traitforge.collection.orchestrator import GenerationOrchestrator, GenerationRequest
from traitforge.collection.repository import FolderProjectRepository, ProjectRepository
from traitforge.collection.sinks import DirectorySink
from traitforge.errors import (
    ArtifactWriteError,
    CapacityError,
    ConflictError,
    NotFoundError,
    TraitForgeError,
    ValidationError,
)
from traitforge.traits.combination import max_unique_combinations
from traitforge.traits.rarity import layer_odds, validate_weights

logger = logging.getLogger(__name__)

PROJECTS_DIR = Path(os.environ.get("TRAITFORGE_PROJECTS", "projects"))
OUTPUT_DIR = Path(os.environ.get("TRAITFORGE_OUTPUT", "generated"))

_STATUS_CODES = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    CapacityError: 422,
    ArtifactWriteError: 500,
}

app = FastAPI(title="traitforge")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Application state
# ---------------------------------------------------------------------------

class AppState:
    def __init__(self):
        self.repository: ProjectRepository = FolderProjectRepository(PROJECTS_DIR)
        self.sink: DirectorySink = DirectorySink(OUTPUT_DIR)
        self.config: dict = {}

    def orchestrator(self) -> GenerationOrchestrator:
        return GenerationOrchestrator(self.repository, self.sink, self.config)


state = AppState()


def _status_code(error: TraitForgeError) -> int:
    for cls, code in _STATUS_CODES.items():
        if isinstance(error, cls):
            return code
    return 500


@app.exception_handler(TraitForgeError)
def _handle_engine_error(request, exc: TraitForgeError):
    return JSONResponse({"error": str(exc)}, status_code=_status_code(exc))


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class GenerateRequest(BaseModel):
    count: int
    collectionName: str | None = None
    description: str | None = None
    baseUrl: str | None = None
    overwrite: bool = False
    seed: int | None = None

class PreviewRequest(BaseModel):
    count: int = Field(default=5)
    seed: int | None = None


# ---------------------------------------------------------------------------
# API routes
# ---------------------------------------------------------------------------

def _batch_response(result) -> JSONResponse:
    payload = result.to_dict()
    if result.error is not None:
        return JSONResponse(payload, status_code=_status_code(result.error))
    kind = "preview NFTs" if result.preview else "NFTs"
    payload["message"] = f"Generated {result.completed} {kind}"
    return JSONResponse(payload)


@app.post("/api/projects/{project_id}/generate")
def api_generate(project_id: str, req: GenerateRequest):
    result = state.orchestrator().run(GenerationRequest(
        project_id=project_id,
        count=req.count,
        collection_name=req.collectionName,
        description=req.description,
        base_uri=req.baseUrl,
        overwrite=req.overwrite,
        seed=req.seed,
    ))
    return _batch_response(result)


@app.post("/api/projects/{project_id}/preview")
def api_preview(project_id: str, req: PreviewRequest):
    result = state.orchestrator().run(GenerationRequest(
        project_id=project_id,
        count=req.count,
        preview=True,
        seed=req.seed,
    ))
    return _batch_response(result)


@app.get("/api/projects/{project_id}/status")
def api_status(project_id: str):
    return JSONResponse(state.repository.generation_status(project_id))


def _layer_payload(layer) -> dict:
    odds = layer_odds(layer)
    payload = layer.to_dict()
    for asset in payload["assets"]:
        asset["odds"] = odds[asset["id"]]
    return payload


@app.get("/api/projects/{project_id}/rarity")
def api_rarity(project_id: str):
    state.repository.get_project(project_id)
    layers = state.repository.get_layers(project_id)
    payload = {
        "canvas": state.repository.get_canvas(project_id).to_dict(),
        "layers": [_layer_payload(layer) for layer in layers],
        "compatibility": [
            rule.to_dict() for rule in state.repository.get_compatibility_rules(project_id)
        ],
        "max_combinations": max_unique_combinations(layers),
        "validation": validate_weights(layers).to_dict(),
    }
    return JSONResponse(payload)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    print("Starting server at http://localhost:8000")
    uvicorn.run(app, host="0.0.0.0", port=8000)
