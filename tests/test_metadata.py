"""Tests for per-edition metadata records."""
import json

from tests.conftest import make_layer
from traitforge.collection.metadata import (
    DEFAULT_BASE_URI,
    build_attributes,
    build_metadata,
    edition_label,
    metadata_to_json,
)
from traitforge.traits.models import Combination


def _combo(*layers):
    combo = Combination()
    for layer in layers:
        combo.add(layer, layer.assets[0])
    return combo


class TestEditionLabel:
    def test_zero_padded_to_four(self):
        assert edition_label(1) == "0001"
        assert edition_label(42) == "0042"

    def test_wider_numbers_are_not_truncated(self):
        assert edition_label(12345) == "12345"


class TestBuildMetadata:
    def test_record_shape(self):
        bg = make_layer("Background", ["Blue"], z=0)
        eyes = make_layer("Eyes", ["Happy"], z=1)
        record = build_metadata(7, _combo(eyes, bg), collection_name="Cats",
                                description="Cat collection",
                                base_uri="https://cdn.example.com/cats/")
        assert record == {
            "name": "Cats #0007",
            "description": "Cat collection",
            "image": "https://cdn.example.com/cats/0007.png",
            "attributes": [
                {"trait_type": "Background", "value": "Blue"},
                {"trait_type": "Eyes", "value": "Happy"},
            ],
            "edition": 7,
        }

    def test_defaults(self):
        record = build_metadata(1, Combination())
        assert record["name"] == "NFT #0001"
        assert record["description"] == "Generated NFT"
        assert record["image"] == f"{DEFAULT_BASE_URI}/0001.png"
        assert record["attributes"] == []

    def test_image_path_override(self):
        record = build_metadata(3, Combination(), base_uri="http://x", image_path="preview-3.png")
        assert record["image"] == "http://x/preview-3.png"

    def test_skipped_layers_have_no_attribute(self, sample_layers):
        bg, _, hat = sample_layers
        combo = _combo(bg, hat)
        assert [a["trait_type"] for a in build_attributes(combo)] == ["background", "hat"]

    def test_trait_value_drops_extension(self):
        layer = make_layer("Mouth", ["smile"])
        assert build_attributes(_combo(layer))[0]["value"] == "smile"


class TestMetadataJson:
    def test_same_record_same_bytes(self, sample_layers):
        combo = _combo(*sample_layers)
        one = metadata_to_json(build_metadata(5, combo, collection_name="Zoo"))
        two = metadata_to_json(build_metadata(5, combo, collection_name="Zoo"))
        assert one == two
        assert one.endswith("\n")
        assert json.loads(one)["name"] == "Zoo #0005"

    def test_non_ascii_is_kept_readable(self):
        text = metadata_to_json(build_metadata(1, Combination(), collection_name="Café"))
        assert "Café #0001" in text
