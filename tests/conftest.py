"""Pytest configuration - shared fixtures for traitforge tests.

Every image used by the suite is built here with Pillow at test time;
no binary fixtures are checked in.
"""
from __future__ import annotations

import json
import random
from pathlib import Path

import pytest
from PIL import Image

from traitforge.collection.repository import InMemoryProjectRepository, Project
from traitforge.traits.models import Asset, CanvasConfig, CompatibilityRule, Layer


def solid(size=(8, 8), color=(255, 0, 0, 255)) -> Image.Image:
    return Image.new("RGBA", size, color)


def save_png(path: Path, size=(8, 8), color=(255, 0, 0, 255)) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    solid(size, color).save(path, format="PNG")
    return path


def make_layer(name: str, asset_names, z: int = 0, percentage: float = 100.0,
               weights=None) -> Layer:
    weights = weights or [1.0] * len(asset_names)
    assets = [
        Asset(id=f"{name}/{a}", filename=f"{a}.png", source=f"{name}/{a}.png", rarity_weight=w)
        for a, w in zip(asset_names, weights)
    ]
    return Layer(id=name, name=name, z_index=z, rarity_percentage=percentage, assets=assets)


@pytest.fixture
def rng():
    """Seeded random source so sequences are repeatable."""
    return random.Random(1234)


@pytest.fixture
def sample_layers():
    return [
        make_layer("background", ["blue", "green"], z=0),
        make_layer("body", ["round", "square", "tall"], z=1, weights=[1, 2, 1]),
        make_layer("hat", ["cap", "crown"], z=2, percentage=60.0),
    ]


@pytest.fixture
def memory_repo(sample_layers):
    """In-memory project ``demo`` with one solid-colour image per asset."""
    repo = InMemoryProjectRepository()
    palette = [(200, 30, 30, 255), (30, 200, 30, 255), (30, 30, 200, 255)]
    sources = {}
    for layer in sample_layers:
        for i, asset in enumerate(layer.assets):
            sources[asset.id] = solid((16, 16), palette[i % len(palette)])
    repo.add_project(
        Project(id="demo", name="Demo"),
        sample_layers,
        canvas=CanvasConfig(32, 32, "#ffffff"),
        rules=[CompatibilityRule("body/tall", "hat/crown")],
        sources=sources,
    )
    return repo


@pytest.fixture
def folder_project(tmp_path):
    """On-disk project scanned from folders: projects/art/{1-bg,2-eyes}/*.png"""
    root = tmp_path / "projects"
    art = root / "art"
    save_png(art / "1-bg" / "night.png", (20, 20), (0, 0, 40, 255))
    save_png(art / "1-bg" / "day.png", (20, 20), (120, 180, 255, 255))
    save_png(art / "2-eyes" / "happy.png", (20, 20), (0, 0, 0, 255))
    save_png(art / "2-eyes" / "sad.png", (20, 20), (90, 90, 90, 255))
    (art / "2-eyes" / "notes.txt").write_text("not an image")
    (art / ".DS_Store").write_text("")
    return art


@pytest.fixture
def manifest_project(tmp_path):
    """On-disk project described by project.json."""
    art = tmp_path / "projects" / "manifested"
    save_png(art / "assets" / "base.png", (10, 10), (255, 255, 255, 255))
    save_png(art / "assets" / "spot.png", (10, 10), (255, 0, 0, 255))
    manifest = {
        "name": "Manifested",
        "description": "from a manifest",
        "settings": {"width": 40, "height": 20, "background_color": "#000000"},
        "layers": [
            {"id": "L2", "name": "Spots", "z_index": 5, "rarity_percentage": 50,
             "assets": [{"id": 7, "filename": "spot.png", "source": "assets/spot.png",
                         "rarity_weight": 3, "position_x": 0.5, "scale_x": 0.25}]},
            {"id": "L1", "name": "Base", "z_index": 1,
             "assets": [{"id": 3, "filename": "base.png", "source": "assets/base.png"}]},
        ],
        "compatibility": [{"asset_id": 3, "incompatible_asset_id": 7}],
    }
    (art / "project.json").write_text(json.dumps(manifest))
    return art
