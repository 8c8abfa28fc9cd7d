"""Rarity analysis: expected odds per asset, weight sanity checks and
observed trait frequencies over a generated batch.

Expected odds ignore compatibility rules, so they describe a layer in
isolation.  Observed frequencies come from real combinations and do
reflect them.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

import numpy as np

from traitforge.traits.models import Combination, Layer

WEIGHT_WARNING_TOTAL = 1000.0


def layer_odds(layer: Layer) -> dict[str, float]:
    """Probability (0-1) that each asset of ``layer`` shows up in an edition."""
    if not layer.assets:
        return {}

    weights = np.array([a.rarity_weight for a in layer.assets], dtype=np.float64)
    weights = np.clip(weights, 0.0, None)
    total = weights.sum()
    if total <= 0:
        shares = np.full(len(weights), 1.0 / len(weights))
    else:
        shares = weights / total

    inclusion = float(np.clip(layer.rarity_percentage, 0.0, 100.0)) / 100.0
    odds = shares * inclusion
    return {asset.id: float(p) for asset, p in zip(layer.assets, odds)}


def collection_odds(layers: list[Layer]) -> dict[str, dict[str, float]]:
    """``layer_odds`` for every layer, keyed by layer name."""
    return {layer.name: layer_odds(layer) for layer in layers}


@dataclass
class WeightReport:
    valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"valid": self.valid, "errors": list(self.errors), "warnings": list(self.warnings)}


def _weights(layer: Layer) -> np.ndarray:
    return np.array([a.rarity_weight for a in layer.assets], dtype=np.float64)


def range_errors(layers: list[Layer]) -> list[str]:
    """Negative weights and inclusion percentages outside 0-100.

    A zero total weight is not listed here: the sampler falls back to a
    uniform draw for it.
    """
    errors = []
    for layer in layers:
        if not 0.0 <= layer.rarity_percentage <= 100.0:
            errors.append(
                f"Layer {layer.name}: inclusion percentage must be between 0 and 100 "
                f"(got {layer.rarity_percentage})"
            )
        if layer.assets and (_weights(layer) < 0).any():
            errors.append(f"Layer {layer.name}: Weights cannot be negative")
    return errors


def validate_weights(layers: list[Layer]) -> WeightReport:
    report = WeightReport(errors=range_errors(layers))

    for layer in layers:
        if not layer.assets:
            continue
        total = float(_weights(layer).sum())
        if total == 0:
            report.errors.append(f"Layer {layer.name}: Total weight cannot be zero")
        if total > WEIGHT_WARNING_TOTAL:
            report.warnings.append(f"Layer {layer.name}: Very high total weight ({total:g})")

    report.valid = not report.errors
    return report


def trait_frequencies(combinations: list[Combination]) -> dict[str, dict[str, dict]]:
    """Count how often each trait value appears per layer across a batch.

    Returns ``{layer_name: {trait_value: {"count": n, "share": n / editions}}}``.
    """
    n = len(combinations)
    counts: dict[str, Counter] = {}
    for combo in combinations:
        for layer, asset in combo.picks:
            counts.setdefault(layer.name, Counter())[asset.trait_value] += 1

    return {
        layer_name: {
            trait: {"count": count, "share": count / n}
            for trait, count in counter.most_common()
        }
        for layer_name, counter in counts.items()
    }
