#!/usr/bin/env python3
"""
View data stored by the bot.

Usage:
    python3 scripts/view_data.py watches              # All watches with dedup counts
    python3 scripts/view_data.py watches --owner 123  # Watches of one chat
    python3 scripts/view_data.py processes            # Running conversations
    python3 scripts/view_data.py all                  # Everything
"""

import argparse
import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from divar_alert import config
from divar_alert.db import KeyValueStore, keys
from divar_alert.models import ConversationState, Watch


def print_header(title: str):
    print("\n" + "=" * 80)
    print(f"  {title}")
    print("=" * 80)


def format_time(ts: int) -> str:
    if not ts:
        return "never"
    return datetime.fromtimestamp(ts, timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def view_watches(store: KeyValueStore, owner_id: int = None):
    """List watches and how many posts each has already seen."""
    print_header("WATCHES")

    with store.transaction(write=False) as txn:
        rows = list(txn.scan_json(keys.watch_prefix(owner_id)))
        counts = {
            raw["id"]: txn.count_prefix(keys.dedup_prefix(raw["id"]))
            for _, raw in rows
        }

    if not rows:
        print("No watches.")
        return

    print(f"{'Owner':<14} {'Id':<21} {'Every':>7} {'Seen':>6}  {'Last check':<24} Title")
    print("-" * 100)
    for _, raw in rows:
        watch = Watch.from_dict(raw)
        print(
            f"{watch.owner_id:<14} {watch.id:<21} {watch.interval:>6}s {counts[watch.id]:>6}  "
            f"{format_time(watch.last_checked_at):<24} {watch.title}"
        )
    print(f"\nTotal: {len(rows)}")


def view_processes(store: KeyValueStore):
    """List running conversations."""
    print_header("RUNNING CONVERSATIONS")

    with store.transaction(write=False) as txn:
        rows = list(txn.scan_json(f"{keys.PROCESS}:".encode("utf-8")))

    if not rows:
        print("No running conversations.")
        return

    for _, raw in rows:
        state = ConversationState.from_dict(raw)
        captured = ", ".join(f"{s.name}={s.value!r}" for s in state.steps if s.value)
        print(
            f"{state.owner_id:<14} {state.kind:<12} step {state.current_step_index + 1}/{len(state.steps)} "
            f"({state.current_step.name}) last action {format_time(state.last_action_at)}"
        )
        if captured:
            print(f"{'':<14} {captured}")


def main():
    parser = argparse.ArgumentParser(description="View bot data")
    parser.add_argument("what", choices=["watches", "processes", "all"])
    parser.add_argument("--owner", type=int, help="Only this chat's watches")
    parser.add_argument("--db-path", default=config.DB_PATH)
    args = parser.parse_args()

    db_path = Path(args.db_path)
    if not db_path.exists():
        print(f"Database not found: {db_path}")
        sys.exit(1)

    store = KeyValueStore(db_path)
    print(f"Database: {db_path}")
    print(f"Size: {db_path.stat().st_size / 1024:.1f} KB")

    if args.what in ("watches", "all"):
        view_watches(store, args.owner)
    if args.what in ("processes", "all"):
        view_processes(store)


if __name__ == "__main__":
    main()
