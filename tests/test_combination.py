"""Tests for the compatibility index, combination generation and the uniqueness guard."""
import random

import pytest

from tests.conftest import make_layer
from traitforge.errors import CapacityError
from traitforge.traits.combination import (
    CombinationGenerator,
    UniquenessGuard,
    max_unique_combinations,
)
from traitforge.traits.compatibility import CompatibilityIndex
from traitforge.traits.models import Asset, Combination, CompatibilityRule, Layer


# -----------------------------------------------------------------------------
# Compatibility index
# -----------------------------------------------------------------------------

class TestCompatibilityIndex:
    def test_rules_are_symmetric(self):
        index = CompatibilityIndex([CompatibilityRule("a", "b")])
        assert index.incompatible_with("a") == {"b"}
        assert index.incompatible_with("b") == {"a"}
        assert index.incompatible_with("c") == frozenset()

    def test_filter_keeps_order_and_drops_clashes(self):
        index = CompatibilityIndex([CompatibilityRule("x", "b2")])
        candidates = [Asset(id=i, filename=f"{i}.png") for i in ("b1", "b2", "b3")]
        kept = index.filter(candidates, {"x"})
        assert [a.id for a in kept] == ["b1", "b3"]

    def test_filter_without_commitments_returns_everything(self):
        index = CompatibilityIndex([CompatibilityRule("a", "b")])
        candidates = [Asset(id="b", filename="b.png")]
        assert index.filter(candidates, set()) == candidates

    def test_violations_reports_each_pair_once(self):
        index = CompatibilityIndex([CompatibilityRule("a", "b"), CompatibilityRule("b", "a")])
        assert index.violations(["a", "b", "c"]) == [("a", "b")]
        assert index.violations(["a", "c"]) == []


# -----------------------------------------------------------------------------
# Combination generator
# -----------------------------------------------------------------------------

class TestCombinationGenerator:
    def test_generated_combinations_respect_rules(self):
        layers = [
            make_layer("head", ["a1", "a2"], z=0),
            make_layer("body", ["b1", "b2"], z=1),
            make_layer("feet", ["c1", "c2"], z=2),
        ]
        rules = [
            CompatibilityRule("head/a1", "body/b1"),
            CompatibilityRule("feet/c2", "body/b2"),
        ]
        index = CompatibilityIndex(rules)
        gen = CombinationGenerator(layers, index, random.Random(5))
        for _ in range(300):
            combo = gen.generate()
            assert index.violations(combo.asset_ids()) == []

    def test_layer_skipped_when_no_candidate_left(self):
        layers = [make_layer("a", ["only"], z=0), make_layer("b", ["clash"], z=1)]
        index = CompatibilityIndex([CompatibilityRule("a/only", "b/clash")])
        combo = CombinationGenerator(layers, index, random.Random(1)).generate()
        assert [layer.name for layer, _ in combo.picks] == ["a"]

    def test_full_inclusion_layer_always_present(self):
        layers = [make_layer("always", ["x", "y"], percentage=100),
                  make_layer("never", ["z"], z=1, percentage=0)]
        gen = CombinationGenerator(layers, rng=random.Random(2))
        for _ in range(200):
            combo = gen.generate()
            assert combo.asset_for("always") is not None
            assert combo.asset_for("never") is None

    def test_layers_without_assets_are_skipped(self):
        layers = [Layer(id="empty", name="empty"), make_layer("full", ["x"], z=1)]
        combo = CombinationGenerator(layers, rng=random.Random(0)).generate()
        assert combo.key() == "full:full/x"

    def test_layers_walked_in_z_order(self):
        layers = [make_layer("top", ["t"], z=9), make_layer("bottom", ["b"], z=-1)]
        combo = CombinationGenerator(layers, rng=random.Random(0)).generate()
        assert [layer.name for layer, _ in combo.picks] == ["bottom", "top"]

    def test_blank_combination_is_valid(self):
        layers = [make_layer("ghost", ["g"], percentage=0)]
        combo = CombinationGenerator(layers, rng=random.Random(0)).generate()
        assert combo.is_blank()
        assert combo.key() == ""

    def test_same_seed_same_combinations(self, sample_layers):
        a = CombinationGenerator(sample_layers, rng=random.Random(77))
        b = CombinationGenerator(sample_layers, rng=random.Random(77))
        assert [a.generate().key() for _ in range(30)] == [b.generate().key() for _ in range(30)]


class TestCombinationKey:
    def test_key_independent_of_insertion_order(self):
        low = make_layer("low", ["x"], z=0)
        high = make_layer("high", ["y"], z=1)
        one, two = Combination(), Combination()
        one.add(low, low.assets[0])
        one.add(high, high.assets[0])
        two.add(high, high.assets[0])
        two.add(low, low.assets[0])
        assert one.key() == two.key() == "low:low/x|high:high/y"


# -----------------------------------------------------------------------------
# Uniqueness guard
# -----------------------------------------------------------------------------

class TestUniquenessGuard:
    def test_keys_never_repeat(self, sample_layers):
        gen = CombinationGenerator(sample_layers, rng=random.Random(3))
        guard = UniquenessGuard(gen)
        keys = [guard.next_unique().key() for _ in range(15)]
        assert len(set(keys)) == 15
        assert len(guard) == 15

    def test_exhaustion_raises_capacity_error(self):
        layers = [make_layer("a", ["one"]), make_layer("b", ["two"], z=1)]
        guard = UniquenessGuard(CombinationGenerator(layers, rng=random.Random(0)),
                                max_attempts=50)
        guard.next_unique()
        with pytest.raises(CapacityError) as info:
            guard.next_unique()
        assert info.value.attempts == 50
        assert info.value.produced == 1

    def test_per_call_attempt_override(self):
        layers = [make_layer("a", ["one"])]
        guard = UniquenessGuard(CombinationGenerator(layers, rng=random.Random(0)))
        guard.next_unique()
        with pytest.raises(CapacityError) as info:
            guard.next_unique(max_attempts=3)
        assert info.value.attempts == 3

    def test_rejects_non_positive_budget(self, sample_layers):
        with pytest.raises(ValueError):
            UniquenessGuard(CombinationGenerator(sample_layers), max_attempts=0)


class TestMaxUniqueCombinations:
    def test_counts_optional_layers_as_extra_slot(self, sample_layers):
        # background 2 x body 3 x (hat 2 + skipped)
        assert max_unique_combinations(sample_layers) == 18

    def test_ignores_empty_and_disabled_layers(self):
        layers = [Layer(id="e", name="e"), make_layer("off", ["x", "y"], percentage=0),
                  make_layer("on", ["x", "y"])]
        assert max_unique_combinations(layers) == 2
