# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 Spectrue Contributors
"""
Knowledge CLI Commands

Operates on JSON snapshots of the knowledge store.

Commands:
- facts: Show resolved facts for an entity
- select: Run media selection for an entity
- reject: Reject a media candidate
- stats: Claim counts by status and type
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import NoReturn

from provenance_core.config import ProvenanceConfig
from provenance_core.engine import ProvenanceEngine
from provenance_core.presentation.adapter import EvidenceViewState
from provenance_core.runtime_config import EngineRuntimeConfig
from provenance_core.storage.memory import InMemoryKnowledgeStore


class SnapshotError(Exception):
    pass


def load_snapshot(path: str) -> InMemoryKnowledgeStore:
    snapshot_path = Path(path)
    if not snapshot_path.exists():
        raise SnapshotError(f"Snapshot not found: {snapshot_path}")
    try:
        payload = json.loads(snapshot_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise SnapshotError(f"Failed to parse JSON: {e}") from e
    if not isinstance(payload, dict):
        raise SnapshotError("Snapshot must be a JSON object")
    return InMemoryKnowledgeStore.from_snapshot(payload)


def save_snapshot(store: InMemoryKnowledgeStore, path: str) -> None:
    Path(path).write_text(json.dumps(store.to_snapshot(), ensure_ascii=False, indent=2), encoding="utf-8")


def _engine(store: InMemoryKnowledgeStore) -> ProvenanceEngine:
    return ProvenanceEngine(ProvenanceConfig(runtime=EngineRuntimeConfig.load_from_env()), store=store)


def cmd_facts(args: argparse.Namespace) -> int:
    """Print resolved facts for one entity."""
    engine = _engine(load_snapshot(args.snapshot))
    view_state = EvidenceViewState()
    if args.hide_evidence:
        view_state.set_visible(args.entity, False)

    display = engine.present_facts(
        args.entity,
        args.predicate or None,
        view_state=view_state,
        render_placeholders=args.all,
    )

    if args.json:
        print(json.dumps([f.to_dict() for f in engine.get_facts(args.entity, args.predicate or None)], indent=2))
        return 0

    if display.empty_state:
        print(display.empty_message)
        return 0

    for fact in display.visible:
        if fact.conflicts:
            print(f"⚠ {fact.label}: {fact.display_text}")
            for c in fact.conflicts:
                print(f"    - {c.value} ({c.source_name}, {c.fetched})")
        elif fact.value is None:
            print(f"  {fact.label}: {fact.display_text} [{fact.badge}]")
        else:
            print(f"{'✓' if fact.badge == 'verified' else '·'} {fact.label}: {fact.value} "
                  f"[{fact.badge}, {fact.confidence}]")
            if fact.show_evidence:
                print(f"    \"{fact.evidence_snippet}\"")
                print(f"    {fact.source_name} · {fact.source_url} · {fact.fetched}")
    return 0


def cmd_select(args: argparse.Namespace) -> int:
    """Promote the best eligible media candidate."""
    store = load_snapshot(args.snapshot)
    engine = _engine(store)
    outcome = engine.select_best_asset(args.entity_type, args.entity, actor=args.actor)

    if outcome.selected is None:
        print(f"✗ No eligible candidate for {args.entity_type}:{args.entity}", file=sys.stderr)
        return 1

    print(f"✓ Selected {outcome.selected.asset_id} "
          f"(score {engine.selection.combined_score(outcome.selected):.1f})")
    if outcome.deselected:
        print(f"  Deselected: {', '.join(outcome.deselected)}")
    if args.write:
        save_snapshot(store, args.snapshot)
        print(f"Snapshot written to {args.snapshot}")
    return 0


def cmd_reject(args: argparse.Namespace) -> int:
    """Reject a media candidate. No replacement is promoted."""
    store = load_snapshot(args.snapshot)
    engine = _engine(store)
    asset = engine.reject_asset(args.asset, args.reason, actor=args.actor)
    print(f"✓ Rejected {asset.asset_id}: {asset.rejection_reason}")
    if args.write:
        save_snapshot(store, args.snapshot)
        print(f"Snapshot written to {args.snapshot}")
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    engine = _engine(load_snapshot(args.snapshot))
    stats = engine.claim_stats(args.entity)
    if args.json:
        print(json.dumps(stats, indent=2))
        return 0
    print(f"Claims for {args.entity}: {stats['total']}")
    print("  By status:")
    for status, count in stats["by_status"].items():
        print(f"    {status}: {count}")
    print("  By type:")
    for claim_type, count in stats["by_type"].items():
        print(f"    {claim_type}: {count}")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="provenance",
        description="Knowledge snapshot commands",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    facts_parser = subparsers.add_parser("facts", help="Show resolved facts for an entity")
    facts_parser.add_argument("snapshot", help="Path to knowledge snapshot JSON")
    facts_parser.add_argument("--entity", required=True, help="Entity id")
    facts_parser.add_argument(
        "--predicate", "-p",
        action="append",
        help="Predicate to resolve (repeatable; default: all present)",
    )
    facts_parser.add_argument("--hide-evidence", action="store_true", help="Hide evidence snippets")
    facts_parser.add_argument("--all", action="store_true", help="Also print unverified placeholders")
    facts_parser.add_argument("--json", action="store_true", help="Print raw fact results as JSON")
    facts_parser.set_defaults(func=cmd_facts)

    select_parser = subparsers.add_parser("select", help="Select the best media candidate")
    select_parser.add_argument("snapshot", help="Path to knowledge snapshot JSON")
    select_parser.add_argument("--entity-type", required=True, help="Entity type (artist, venue, ...)")
    select_parser.add_argument("--entity", required=True, help="Entity id")
    select_parser.add_argument("--actor", default="cli", help="Actor recorded in the change log")
    select_parser.add_argument("--write", action="store_true", help="Write the updated snapshot back")
    select_parser.set_defaults(func=cmd_select)

    reject_parser = subparsers.add_parser("reject", help="Reject a media candidate")
    reject_parser.add_argument("snapshot", help="Path to knowledge snapshot JSON")
    reject_parser.add_argument("--asset", required=True, help="Asset id")
    reject_parser.add_argument("--reason", required=True, help="Rejection reason")
    reject_parser.add_argument("--actor", default="cli", help="Actor recorded in the change log")
    reject_parser.add_argument("--write", action="store_true", help="Write the updated snapshot back")
    reject_parser.set_defaults(func=cmd_reject)

    stats_parser = subparsers.add_parser("stats", help="Claim counts by status and type")
    stats_parser.add_argument("snapshot", help="Path to knowledge snapshot JSON")
    stats_parser.add_argument("--entity", required=True, help="Entity id")
    stats_parser.add_argument("--json", action="store_true", help="Print as JSON")
    stats_parser.set_defaults(func=cmd_stats)

    return parser


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point for the knowledge CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        exit_code = args.func(args)
        sys.exit(exit_code)
    except SnapshotError as e:
        print(f"✗ {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
