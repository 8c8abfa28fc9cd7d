"""Weighted random selection of assets and layer inclusion rolls.

All randomness flows through an explicit ``random.Random`` instance so a
batch can be replayed from a seed.
"""

from __future__ import annotations

import random
from collections.abc import Sequence

from traitforge.traits.models import Asset, Layer


def make_rng(seed: int | None = None) -> random.Random:
    return random.Random(seed)


def pick_weighted(candidates: Sequence[Asset], rng: random.Random) -> Asset | None:
    """Draw one asset proportionally to ``rarity_weight``.

    Returns None for an empty candidate list.  When every weight is zero
    the draw is uniform.  Otherwise ``r`` is drawn in ``[0, total)`` and the
    first asset (in list order) whose cumulative weight reaches ``r`` wins;
    zero-weight assets never win a weighted draw.
    """
    if not candidates:
        return None

    weights = [max(0.0, float(a.rarity_weight)) for a in candidates]
    total = sum(weights)
    if total <= 0:
        return candidates[rng.randrange(len(candidates))]

    r = rng.random() * total
    cumulative = 0.0
    chosen = None
    for asset, weight in zip(candidates, weights):
        if weight <= 0:
            continue
        cumulative += weight
        chosen = asset
        if cumulative >= r:
            return asset
    # Float drift can leave r a hair above the final sum.
    return chosen


def roll_inclusion(layer: Layer, rng: random.Random) -> bool:
    """Decide whether ``layer`` contributes an asset to this combination.

    One draw in ``[0, 100)`` is always consumed so the random stream does
    not depend on the layer's percentage.
    """
    roll = rng.random() * 100.0
    if layer.rarity_percentage <= 0:
        return False
    return not roll > layer.rarity_percentage
