#!/usr/bin/env python3
# scripts/import_cli.py

from __future__ import annotations

import argparse
import json
import logging
from datetime import date
from pathlib import Path
from typing import Optional


def _print_plan(plan) -> None:
    summary = plan.summary()
    print("\n=== import preview ===")
    print(f"festival_id:    {plan.festival_id}")
    print(f"mode:           {plan.mode}")
    print(f"unchanged:      {summary.unchanged}")
    print(f"updated:        {summary.updated}")
    print(f"suggested:      {summary.suggested}")
    print(f"to create:      {summary.created}")
    print(f"to keep:        {summary.kept}")
    print(f"to delete:      {summary.deleted}")
    print(f"rejected rows:  {summary.rejected}")

    for m in plan.exact_matches_with_changes:
        print(f"\n[changed] {m.decision_key}  {m.incoming.title} ({m.incoming.day} {m.incoming.start_time})")
        for c in m.changes:
            print(f"    {c}")
    for m in plan.suggested_matches:
        print(f"\n[suggested] {m.decision_key}  {m.match_reason}")
        for c in m.changes:
            print(f"    {c}")
    for r in plan.rejected_rows:
        print(f"[rejected] {r.message}")
    for w in plan.warnings:
        print(f"[warning] {w}")
    for a in summary.alerts:
        print(f"\n!!! {a}")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Flow Grid session import CLI.")
    sub = parser.add_subparsers(dest="command", required=True)

    p_prev = sub.add_parser("preview", help="Build a merge plan (no writes).")
    p_prev.add_argument("--festival-id", required=True)
    src = p_prev.add_mutually_exclusive_group(required=True)
    src.add_argument("--csv", type=Path, help="Path to a session CSV.")
    src.add_argument("--sheet-url", help="Public Google Sheets URL.")
    p_prev.add_argument("--mode", choices=["merge", "replace"], default="merge")
    p_prev.add_argument("--plan-out", type=Path, default=None, help="Write plan JSON here.")
    p_prev.add_argument(
        "--festival-start",
        type=date.fromisoformat,
        default=None,
        help="Festival start date (YYYY-MM-DD); weekday names in the day column resolve to dates.",
    )
    p_prev.add_argument(
        "--festival-end",
        type=date.fromisoformat,
        default=None,
        help="Festival end date (YYYY-MM-DD). Defaults to the start date.",
    )

    p_apply = sub.add_parser("apply", help="Apply a previously saved plan.")
    p_apply.add_argument("--plan", type=Path, required=True, help="Plan JSON from preview.")
    p_apply.add_argument(
        "--decisions",
        type=Path,
        default=None,
        help='JSON object {"<decision key>": "update|create|skip"}.',
    )

    p_export = sub.add_parser("export", help="Export sessions as CSV.")
    p_export.add_argument("--festival-id", required=True)
    p_export.add_argument("--out", type=Path, required=True)

    args = parser.parse_args(argv)

    # Import here so --help works without supabase deps / env
    from flowgrid.config import LOG_LEVEL
    from flowgrid.db.session_store import SupabaseSessionStore
    from flowgrid.errors import DecisionIncomplete, FlowGridError
    from flowgrid.pipeline import apply_import, export_sessions, load_rows, preview_import

    logging.basicConfig(level=LOG_LEVEL, format="%(levelname)s %(name)s %(message)s")
    store = SupabaseSessionStore.from_env()

    try:
        if args.command == "preview":
            if args.csv is not None:
                rows = load_rows(csv_content=args.csv.read_bytes())
            else:
                rows = load_rows(sheet_url=args.sheet_url)
            plan = preview_import(
                store,
                args.festival_id,
                rows,
                mode=args.mode,
                festival_start=args.festival_start,
                festival_end=args.festival_end,
            )
            _print_plan(plan)
            if args.plan_out is not None:
                args.plan_out.write_text(
                    plan.model_dump_json(by_alias=True, indent=2), encoding="utf-8"
                )
                print(f"\nplan written to {args.plan_out}")
            return 0

        if args.command == "apply":
            plan_json = json.loads(args.plan.read_text(encoding="utf-8"))
            decisions = {}
            if args.decisions is not None:
                decisions = json.loads(args.decisions.read_text(encoding="utf-8"))
            result = apply_import(store, plan_json, decisions)
            print("\n=== import apply ===")
            print(json.dumps(result.as_dict(), indent=2))
            return 0 if result.ok else 2

        if args.command == "export":
            args.out.write_text(export_sessions(store, args.festival_id), encoding="utf-8")
            print(f"exported to {args.out}")
            return 0

    except DecisionIncomplete as e:
        print(f"[import_cli] pending decisions: {', '.join(e.pending)}")
        return 3
    except FlowGridError as e:
        print(f"[import_cli] ERROR: {e}")
        return 1

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
