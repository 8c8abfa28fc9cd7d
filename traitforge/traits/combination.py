"""Combination generation and batch-level uniqueness.

``CombinationGenerator`` walks the layers in paint order, rolls each
layer's inclusion, narrows its candidates against everything already
committed and draws one by rarity weight.  It keeps no state between
calls.

``UniquenessGuard`` owns the set of keys produced in the current batch
and re-draws until it finds an unseen key or runs out of attempts.
"""

from __future__ import annotations

import logging
import random
import threading

from traitforge.errors import CapacityError
from traitforge.traits.compatibility import CompatibilityIndex
from traitforge.traits.models import Combination, Layer, sort_layers
from traitforge.traits.sampler import pick_weighted, roll_inclusion

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 1000


class CombinationGenerator:
    def __init__(self, layers: list[Layer], index: CompatibilityIndex | None = None,
                 rng: random.Random | None = None):
        self.layers: list[Layer] = sort_layers(layers)
        self.index = index or CompatibilityIndex()
        self.rng = rng or random.Random()

    def generate(self) -> Combination:
        combo = Combination()
        committed: set[str] = set()

        for layer in self.layers:
            if not layer.assets:
                continue
            if not roll_inclusion(layer, self.rng):
                continue

            candidates = self.index.filter(layer.assets, committed)
            if not candidates:
                logger.debug(f"Layer {layer.name!r}: no compatible candidate, skipped")
                continue

            asset = pick_weighted(candidates, self.rng)
            if asset is None:
                continue
            combo.add(layer, asset)
            committed.add(asset.id)

        return combo

    __call__ = generate


class UniquenessGuard:
    """Hands out combinations whose key has not been seen in this batch.

    A lock serialises access to the key set so the guard may be driven
    from more than one thread.
    """

    def __init__(self, generator: CombinationGenerator,
                 max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.generator = generator
        self.max_attempts = max_attempts
        self._seen: set[str] = set()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._seen)

    def next_unique(self, max_attempts: int | None = None) -> Combination:
        limit = max_attempts or self.max_attempts
        with self._lock:
            for attempt in range(1, limit + 1):
                combo = self.generator.generate()
                key = combo.key()
                if key not in self._seen:
                    self._seen.add(key)
                    if attempt > 1:
                        logger.debug(f"Unique combination found after {attempt} attempts")
                    return combo

        raise CapacityError(
            f"Unable to generate a unique combination after {limit} attempts "
            f"({len(self._seen)} produced). Try reducing the count or adding more assets.",
            attempts=limit,
            produced=len(self._seen),
        )


def max_unique_combinations(layers: list[Layer]) -> int:
    """Number of distinct combinations reachable when no compatibility rule applies.

    Each layer with assets offers one slot per asset, plus an empty slot
    when its inclusion percentage is below 100.  A layer that can never be
    included contributes a factor of one.
    """
    total = 1
    for layer in layers:
        if not layer.assets or layer.rarity_percentage <= 0:
            continue
        slots = len(layer.assets)
        if layer.rarity_percentage < 100:
            slots += 1
        total *= slots
    return total
