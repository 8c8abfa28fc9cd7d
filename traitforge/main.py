#!/usr/bin/env python3
"""traitforge -- CLI Interface.

Generates a collection from a project folder:
1. Reads layers (``project.json`` or one sub-folder per layer)
2. Draws unique, rule-respecting trait combinations
3. Renders each edition and writes its metadata record

Usage:
    python -m traitforge.main generate PROJECT_DIR --count 100 --name "My Collection"
    python -m traitforge.main preview PROJECT_DIR --count 5
    python -m traitforge.main odds PROJECT_DIR
    python -m traitforge.main status PROJECT_DIR
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from traitforge.collection.orchestrator import (
    DEFAULT_CONFIG,
    GenerationOrchestrator,
    GenerationRequest,
)
from traitforge.collection.repository import FolderProjectRepository
from traitforge.collection.sinks import DirectorySink
from traitforge.errors import ConflictError, NotFoundError, ValidationError
from traitforge.traits.combination import max_unique_combinations
from traitforge.traits.rarity import collection_odds, trait_frequencies, validate_weights

OUTPUT_DIR = Path("generated")

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_REJECTED = 2


def parse_args(argv: list[str] | None = None):
    p = argparse.ArgumentParser(prog="traitforge", description="Layered trait collection generator")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    for name, help_text in (("generate", "Generate a full collection"),
                            ("preview", "Render a few throwaway previews")):
        g = sub.add_parser(name, help=help_text)
        g.add_argument("project", type=Path, help="Project folder")
        g.add_argument("--count", type=int, default=5 if name == "preview" else None,
                       required=name == "generate", help="Number of editions")
        g.add_argument("--name", default=None, help="Collection name")
        g.add_argument("--description", default=None, help="Collection description")
        g.add_argument("--base-uri", default=None, help="Base URI for image links")
        g.add_argument("--out", type=Path, default=OUTPUT_DIR,
                       help=f"Artifact root (default: {OUTPUT_DIR})")
        g.add_argument("--seed", type=int, default=None, help="Seed for a reproducible batch")
        g.add_argument("--workers", type=int, default=DEFAULT_CONFIG["workers"],
                       help="Render threads; 0 = one per CPU core (default: 1)")
        g.add_argument("--max-attempts", type=int, default=DEFAULT_CONFIG["max_attempts"],
                       help="Uniqueness retries per edition (default: 1000)")
        if name == "generate":
            g.add_argument("--overwrite", action="store_true",
                           help="Replace previously recorded editions")

    o = sub.add_parser("odds", help="Show per-asset odds and weight checks")
    o.add_argument("project", type=Path)

    s = sub.add_parser("status", help="Show recorded editions")
    s.add_argument("project", type=Path)

    c = sub.add_parser("clear-previews", help="Delete preview batches")
    c.add_argument("--out", type=Path, default=OUTPUT_DIR)

    return p.parse_args(argv)


def _run_generate(args) -> int:
    repo, project_id = FolderProjectRepository.for_project(args.project)
    config = {"workers": args.workers, "max_attempts": args.max_attempts}
    orchestrator = GenerationOrchestrator(repo, DirectorySink(args.out), config)

    preview = args.command == "preview"
    request = GenerationRequest(
        project_id=project_id,
        count=args.count,
        collection_name=args.name,
        description=args.description,
        base_uri=args.base_uri,
        overwrite=getattr(args, "overwrite", False),
        preview=preview,
        seed=args.seed,
    )

    try:
        result = orchestrator.run(request)
    except (ValidationError, NotFoundError, ConflictError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_REJECTED

    print(f"=== {'Preview' if preview else 'Generation'} {result.generation_id} ===")
    print(f"Editions: {result.completed}/{result.requested} -> {args.out / result.namespace}")
    for warning in result.warnings:
        print(f"  warning: {warning}")

    frequencies = trait_frequencies(result.combinations)
    for layer_name, traits in frequencies.items():
        print(f"  {layer_name}:")
        for trait, stats in traits.items():
            print(f"    {trait:<24} {stats['count']:>6}  ({stats['share'] * 100:5.1f}%)")

    if result.error is not None:
        print(f"Error: {result.error}", file=sys.stderr)
        return EXIT_PARTIAL
    if result.cancelled:
        return EXIT_PARTIAL
    return EXIT_OK


def _run_odds(args) -> int:
    repo, project_id = FolderProjectRepository.for_project(args.project)
    try:
        layers = repo.get_layers(project_id)
    except (NotFoundError, ValidationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_REJECTED

    names = {a.id: a.filename for layer in layers for a in layer.assets}
    for layer_name, odds in collection_odds(layers).items():
        print(f"{layer_name}:")
        for asset_id, p in odds.items():
            print(f"  {names[asset_id]:<24} {p * 100:5.1f}%")
    print(f"Distinct combinations (no rules): {max_unique_combinations(layers)}")

    report = validate_weights(layers)
    for err in report.errors:
        print(f"  error: {err}")
    for warning in report.warnings:
        print(f"  warning: {warning}")
    return EXIT_OK if report.valid else EXIT_REJECTED


def _run_status(args) -> int:
    repo, project_id = FolderProjectRepository.for_project(args.project)
    try:
        status = repo.generation_status(project_id)
    except (NotFoundError, ValidationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_REJECTED
    print(f"Generated: {status['total_generated']} "
          f"(editions {status['min_edition']}-{status['max_edition']})")
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command in ("generate", "preview"):
        return _run_generate(args)
    if args.command == "odds":
        return _run_odds(args)
    if args.command == "status":
        return _run_status(args)

    removed = DirectorySink(args.out).clear_previews()
    print(f"Removed {removed} preview batch(es)")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
