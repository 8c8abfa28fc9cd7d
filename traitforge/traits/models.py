"""Layered trait model: canvas, layers, assets and the combinations drawn from them.

A *Layer* is a stack position holding interchangeable *Assets*.  A
*Combination* picks at most one asset per layer; it is the unit of
uniqueness inside a batch.  Layers are painted in ascending ``z_index``
order (lowest first, i.e. back-to-front).
"""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_CANVAS_WIDTH = 1000
DEFAULT_CANVAS_HEIGHT = 1000
DEFAULT_BACKGROUND = "#ffffff"


def _as_id(value) -> str:
    return str(value)


# ------------------------------------------------------------------
# Canvas
# ------------------------------------------------------------------

@dataclass(frozen=True)
class CanvasConfig:
    width: int = DEFAULT_CANVAS_WIDTH
    height: int = DEFAULT_CANVAS_HEIGHT
    background_color: str = DEFAULT_BACKGROUND

    def __post_init__(self):
        if int(self.width) <= 0 or int(self.height) <= 0:
            raise ValueError(f"Canvas size must be positive, got {self.width}x{self.height}")

    def to_dict(self) -> dict:
        return {
            "width": self.width,
            "height": self.height,
            "background_color": self.background_color,
        }

    @classmethod
    def from_dict(cls, d: dict) -> CanvasConfig:
        return cls(
            width=int(d.get("width", d.get("canvas_width", DEFAULT_CANVAS_WIDTH))),
            height=int(d.get("height", d.get("canvas_height", DEFAULT_CANVAS_HEIGHT))),
            background_color=d.get("background_color", DEFAULT_BACKGROUND),
        )


# ------------------------------------------------------------------
# Asset
# ------------------------------------------------------------------

@dataclass(frozen=True)
class Asset:
    """One selectable image of a layer, with its rarity weight and paint transform.

    ``pos_x``/``pos_y`` are offsets normalized to the canvas size; ``scale_x``
    and ``scale_y`` are fractions of the canvas size; ``rotation`` is in
    degrees, clockwise.
    """

    id: str
    filename: str
    source: str = ""
    rarity_weight: float = 1.0
    pos_x: float = 0.0
    pos_y: float = 0.0
    scale_x: float = 1.0
    scale_y: float = 1.0
    rotation: float = 0.0

    @property
    def trait_value(self) -> str:
        """Filename without its extension."""
        stem, dot, ext = self.filename.rpartition(".")
        if not dot or not stem or "/" in ext:
            return self.filename
        return stem

    def to_dict(self) -> dict:
        return {
            "id": self.id, "filename": self.filename, "source": self.source,
            "rarity_weight": self.rarity_weight,
            "pos_x": self.pos_x, "pos_y": self.pos_y,
            "scale_x": self.scale_x, "scale_y": self.scale_y,
            "rotation": self.rotation,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Asset:
        filename = d["filename"]
        return cls(
            id=_as_id(d.get("id", filename)),
            filename=filename,
            source=d.get("source", d.get("file_path", filename)),
            rarity_weight=float(d.get("rarity_weight", 1.0)),
            pos_x=float(d.get("pos_x", d.get("position_x", 0.0)) or 0.0),
            pos_y=float(d.get("pos_y", d.get("position_y", 0.0)) or 0.0),
            scale_x=float(d.get("scale_x", 1.0) or 1.0),
            scale_y=float(d.get("scale_y", 1.0) or 1.0),
            rotation=float(d.get("rotation", 0.0) or 0.0),
        )


# ------------------------------------------------------------------
# Layer
# ------------------------------------------------------------------

@dataclass(frozen=True)
class Layer:
    id: str
    name: str
    z_index: int = 0
    rarity_percentage: float = 100.0
    assets: tuple[Asset, ...] = field(default_factory=tuple)

    def __post_init__(self):
        # Accept any iterable of assets but store an immutable tuple.
        object.__setattr__(self, "assets", tuple(self.assets))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "z_index": self.z_index,
            "rarity_percentage": self.rarity_percentage,
            "assets": [a.to_dict() for a in self.assets],
        }

    @classmethod
    def from_dict(cls, d: dict) -> Layer:
        percentage = d.get("rarity_percentage")
        return cls(
            id=_as_id(d.get("id", d["name"])),
            name=d["name"],
            z_index=int(d.get("z_index", 0)),
            rarity_percentage=100.0 if percentage is None else float(percentage),
            assets=tuple(Asset.from_dict(a) for a in d.get("assets", [])),
        )


def sort_layers(layers) -> list[Layer]:
    """Layers in paint order. ``sorted`` is stable, so ties keep input order."""
    return sorted(layers, key=lambda layer: layer.z_index)


# ------------------------------------------------------------------
# Compatibility rule
# ------------------------------------------------------------------

@dataclass(frozen=True)
class CompatibilityRule:
    """Unordered pair of asset ids that may not appear in the same combination."""

    asset_id: str
    incompatible_asset_id: str

    def to_dict(self) -> dict:
        return {"asset_id": self.asset_id, "incompatible_asset_id": self.incompatible_asset_id}

    @classmethod
    def from_dict(cls, d: dict) -> CompatibilityRule:
        return cls(_as_id(d["asset_id"]), _as_id(d["incompatible_asset_id"]))


# ------------------------------------------------------------------
# Combination
# ------------------------------------------------------------------

@dataclass
class Combination:
    """Selected asset per layer, kept in paint order.

    Layers that were skipped (inclusion roll, or no compatible candidate)
    are simply absent from ``picks``.
    """

    picks: list[tuple[Layer, Asset]] = field(default_factory=list)

    def add(self, layer: Layer, asset: Asset) -> None:
        self.picks.append((layer, asset))

    def asset_ids(self) -> set[str]:
        return {asset.id for _, asset in self.picks}

    def asset_for(self, layer_id: str) -> Asset | None:
        for layer, asset in self.picks:
            if layer.id == layer_id:
                return asset
        return None

    def is_blank(self) -> bool:
        return not self.picks

    def ordered(self) -> list[tuple[Layer, Asset]]:
        """Picks in paint order; ties on z_index keep insertion order."""
        return sorted(self.picks, key=lambda pick: pick[0].z_index)

    def key(self) -> str:
        """Canonical, order-stable identity used for uniqueness checks."""
        return "|".join(f"{layer.id}:{asset.id}" for layer, asset in self.ordered())

    def __len__(self) -> int:
        return len(self.picks)
