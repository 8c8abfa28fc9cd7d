"""Per-edition metadata records.

Shape::

    {
      "name": "<collection> #0001",
      "description": "...",
      "image": "<base_uri>/0001.png",
      "attributes": [{"trait_type": "<layer>", "value": "<file stem>"}, ...],
      "edition": 1
    }

Skipped layers contribute no attribute.
"""

from __future__ import annotations

import json

from traitforge.traits.models import Combination

DEFAULT_COLLECTION_NAME = "NFT"
DEFAULT_DESCRIPTION = "Generated NFT"
DEFAULT_BASE_URI = "http://localhost:5000/generated"
PAD_WIDTH = 4


def edition_label(edition: int, pad: int = PAD_WIDTH) -> str:
    return f"{edition:0{pad}d}"


def image_filename(edition: int, pad: int = PAD_WIDTH) -> str:
    return f"{edition_label(edition, pad)}.png"


def build_attributes(combination: Combination) -> list[dict]:
    return [
        {"trait_type": layer.name, "value": asset.trait_value}
        for layer, asset in combination.ordered()
    ]


def build_metadata(edition: int, combination: Combination,
                   collection_name: str | None = None,
                   description: str | None = None,
                   base_uri: str | None = None,
                   image_path: str | None = None,
                   pad: int = PAD_WIDTH) -> dict:
    name = collection_name or DEFAULT_COLLECTION_NAME
    base = (base_uri or DEFAULT_BASE_URI).rstrip("/")
    rel = (image_path or image_filename(edition, pad)).lstrip("/")
    return {
        "name": f"{name} #{edition_label(edition, pad)}",
        "description": description or DEFAULT_DESCRIPTION,
        "image": f"{base}/{rel}",
        "attributes": build_attributes(combination),
        "edition": edition,
    }


def metadata_to_json(record: dict) -> str:
    """Stable text form: same record in, same bytes out."""
    return json.dumps(record, indent=2, ensure_ascii=False) + "\n"
