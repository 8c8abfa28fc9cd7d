"""Flatten a combination into a single RGBA image.

The canvas starts filled with the background colour.  Each selected
asset is loaded, resized relative to the canvas, rotated (clockwise, the
bounding box grows to fit) and pasted onto a transparent full-canvas
layer at its normalized offset.  That layer is then alpha-composited onto
the canvas, back-to-front in layer order.

A source image that cannot be resolved or decoded only drops that asset;
the rest of the edition still renders.
"""

from __future__ import annotations

import logging
import math
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import IO, Union

from PIL import Image

from traitforge.art.colors import to_rgba
from traitforge.errors import AssetUnavailableWarning
from traitforge.traits.models import Asset, CanvasConfig, Combination

logger = logging.getLogger(__name__)

AssetSource = Union[str, os.PathLike, IO[bytes], Image.Image, None]
Resolver = Callable[[Asset], AssetSource]


@dataclass
class RenderResult:
    image: Image.Image
    painted: list[str] = field(default_factory=list)
    warnings: list[AssetUnavailableWarning] = field(default_factory=list)


def _round_half_up(v: float) -> int:
    return int(math.floor(v + 0.5))


def target_size(asset: Asset, canvas: CanvasConfig) -> tuple[int, int]:
    """Pixel size an asset is resized to before rotation."""
    w = _round_half_up(canvas.width * asset.scale_x)
    h = _round_half_up(canvas.height * asset.scale_y)
    return max(1, w), max(1, h)


def target_offset(asset: Asset, canvas: CanvasConfig) -> tuple[int, int]:
    """Top-left paste position (left, top) in canvas pixels."""
    return (
        _round_half_up(asset.pos_x * canvas.width),
        _round_half_up(asset.pos_y * canvas.height),
    )


def _load_source(asset: Asset, resolver: Resolver) -> Image.Image:
    try:
        source = resolver(asset)
    except (OSError, KeyError, LookupError) as e:
        raise AssetUnavailableWarning(asset.id, asset.filename, str(e)) from e
    if source is None:
        raise AssetUnavailableWarning(asset.id, asset.filename, "not found")

    if isinstance(source, Image.Image):
        return source.convert("RGBA")

    try:
        with Image.open(source) as img:
            return img.convert("RGBA")
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise AssetUnavailableWarning(asset.id, asset.filename, str(e)) from e


def transform_asset(img: Image.Image, asset: Asset, canvas: CanvasConfig) -> Image.Image:
    """Resize to the canvas-relative size, then rotate if needed."""
    size = target_size(asset, canvas)
    if img.size != size:
        img = img.resize(size, Image.LANCZOS)
    if asset.rotation % 360 != 0:
        img = img.rotate(-asset.rotation, resample=Image.BICUBIC, expand=True)
    return img


def _prepare_asset(asset: Asset, resolver: Resolver, canvas: CanvasConfig) -> Image.Image:
    img = _load_source(asset, resolver)
    try:
        return transform_asset(img, asset, canvas)
    except (OSError, ValueError) as e:
        raise AssetUnavailableWarning(asset.id, asset.filename, f"transform failed: {e}") from e


def new_canvas(canvas: CanvasConfig) -> Image.Image:
    return Image.new("RGBA", (canvas.width, canvas.height), to_rgba(canvas.background_color))


def composite_combination(combination: Combination, canvas: CanvasConfig,
                          resolver: Resolver) -> RenderResult:
    result = RenderResult(image=new_canvas(canvas))
    size = (canvas.width, canvas.height)

    for layer, asset in combination.ordered():
        try:
            img = _prepare_asset(asset, resolver, canvas)
        except AssetUnavailableWarning as w:
            logger.warning(f"Layer {layer.name!r}: {w}; skipping asset")
            result.warnings.append(w)
            continue

        # Plain paste onto a transparent layer; alpha_composite is the only blend.
        layer_img = Image.new("RGBA", size, (0, 0, 0, 0))
        layer_img.paste(img, target_offset(asset, canvas))
        result.image = Image.alpha_composite(result.image, layer_img)
        result.painted.append(asset.id)

    if not result.painted:
        logger.debug("No assets painted; edition is background only")
    return result
