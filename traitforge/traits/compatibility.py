"""Pairwise asset incompatibility.

Rules arrive as flat ``(asset_id, incompatible_asset_id)`` rows.  They are
folded once per batch into a symmetric adjacency map so every lookup is a
set membership test.  The index is never mutated after construction and
can be shared between render workers.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from traitforge.traits.models import Asset, CompatibilityRule

_EMPTY: frozenset[str] = frozenset()


class CompatibilityIndex:
    def __init__(self, rules: Iterable[CompatibilityRule] = ()):
        adjacency: dict[str, set[str]] = {}
        for rule in rules:
            a, b = str(rule.asset_id), str(rule.incompatible_asset_id)
            adjacency.setdefault(a, set()).add(b)
            adjacency.setdefault(b, set()).add(a)
        self._adjacency = {k: frozenset(v) for k, v in adjacency.items()}

    def __len__(self) -> int:
        return len(self._adjacency)

    def incompatible_with(self, asset_id: str) -> frozenset[str]:
        return self._adjacency.get(asset_id, _EMPTY)

    def is_compatible(self, asset_id: str, committed_ids: Iterable[str]) -> bool:
        blocked = self._adjacency.get(asset_id)
        if not blocked:
            return True
        return blocked.isdisjoint(committed_ids)

    def filter(self, candidates: Sequence[Asset], committed_ids: set[str]) -> list[Asset]:
        """Candidates that clash with none of the already-committed assets, in input order."""
        if not committed_ids or not self._adjacency:
            return list(candidates)
        return [a for a in candidates if self.is_compatible(a.id, committed_ids)]

    def violations(self, asset_ids: Iterable[str]) -> list[tuple[str, str]]:
        """Forbidden pairs present together in ``asset_ids`` (each pair reported once)."""
        ids = sorted(set(asset_ids))
        present = set(ids)
        found = []
        for a in ids:
            for b in self.incompatible_with(a):
                if b in present and b > a:
                    found.append((a, b))
        return found
