"""Tests for expected odds, weight validation and observed frequencies."""
import random

import pytest

from tests.conftest import make_layer
from traitforge.traits.combination import CombinationGenerator
from traitforge.traits.models import Layer
from traitforge.traits.rarity import (
    collection_odds,
    layer_odds,
    range_errors,
    trait_frequencies,
    validate_weights,
)


class TestLayerOdds:
    def test_shares_follow_weights(self):
        layer = make_layer("body", ["a", "b"], weights=[1, 3])
        assert layer_odds(layer) == {"body/a": pytest.approx(0.25), "body/b": pytest.approx(0.75)}

    def test_inclusion_percentage_scales_odds(self):
        layer = make_layer("hat", ["a", "b"], percentage=50)
        odds = layer_odds(layer)
        assert sum(odds.values()) == pytest.approx(0.5)

    def test_zero_total_weight_is_uniform(self):
        layer = make_layer("x", ["a", "b", "c", "d"], weights=[0, 0, 0, 0])
        assert all(p == pytest.approx(0.25) for p in layer_odds(layer).values())

    def test_empty_layer(self):
        assert layer_odds(Layer(id="e", name="e")) == {}

    def test_collection_odds_keyed_by_layer_name(self, sample_layers):
        odds = collection_odds(sample_layers)
        assert set(odds) == {"background", "body", "hat"}
        assert sum(odds["hat"].values()) == pytest.approx(0.6)


class TestValidateWeights:
    def test_healthy_layers_pass(self, sample_layers):
        report = validate_weights(sample_layers)
        assert report.valid
        assert report.errors == [] and report.warnings == []

    def test_negative_weight(self):
        report = validate_weights([make_layer("bad", ["a", "b"], weights=[-1, 3])])
        assert not report.valid
        assert report.errors == ["Layer bad: Weights cannot be negative"]

    def test_zero_total(self):
        report = validate_weights([make_layer("nil", ["a"], weights=[0])])
        assert report.errors == ["Layer nil: Total weight cannot be zero"]

    def test_high_total_only_warns(self):
        report = validate_weights([make_layer("big", ["a", "b"], weights=[900, 200])])
        assert report.valid
        assert len(report.warnings) == 1
        assert "Very high total weight" in report.warnings[0]

    def test_percentage_out_of_range(self):
        report = validate_weights([make_layer("odd", ["a"], percentage=120)])
        assert not report.valid
        assert "between 0 and 100" in report.errors[0]

    def test_to_dict(self):
        assert validate_weights([]).to_dict() == {"valid": True, "errors": [], "warnings": []}


class TestRangeErrors:
    def test_in_range_layers(self, sample_layers):
        assert range_errors(sample_layers) == []

    def test_zero_total_is_not_a_range_error(self):
        assert range_errors([make_layer("nil", ["a", "b"], weights=[0, 0])]) == []

    def test_reports_each_problem(self):
        layers = [
            make_layer("neg", ["a", "b"], weights=[-1, 2]),
            make_layer("pct", ["a"], percentage=-0.5),
        ]
        errors = range_errors(layers)
        assert errors[0] == "Layer neg: Weights cannot be negative"
        assert errors[1].startswith("Layer pct: inclusion percentage must be between 0 and 100")
        assert len(errors) == 2


class TestTraitFrequencies:
    def test_counts_and_shares(self):
        layers = [make_layer("fur", ["red", "blue"], weights=[3, 1])]
        gen = CombinationGenerator(layers, rng=random.Random(10))
        combos = [gen.generate() for _ in range(400)]
        freq = trait_frequencies(combos)
        assert set(freq["fur"]) == {"red", "blue"}
        assert freq["fur"]["red"]["count"] + freq["fur"]["blue"]["count"] == 400
        assert freq["fur"]["red"]["share"] == pytest.approx(0.75, abs=0.08)
        # most common first
        assert list(freq["fur"])[0] == "red"

    def test_skipped_layers_are_not_counted(self):
        layers = [make_layer("always", ["x"]), make_layer("never", ["y"], z=1, percentage=0)]
        gen = CombinationGenerator(layers, rng=random.Random(0))
        freq = trait_frequencies([gen.generate() for _ in range(5)])
        assert freq == {"always": {"x": {"count": 5, "share": 1.0}}}

    def test_empty_batch(self):
        assert trait_frequencies([]) == {}
