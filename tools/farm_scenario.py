#!/usr/bin/env python3
"""
Run a farm scenario file and print the step outcomes + final snapshot as JSON.

Exit status is 0 when every step matched its expectation, 1 otherwise.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from src.integration.scenario import SCENARIO_ACTIONS, load_scenario, run_scenario


def main() -> int:
    ap = argparse.ArgumentParser(description="Deterministic farm ledger scenario runner")
    ap.add_argument("scenario", type=str, help="path to a scenario YAML file")
    ap.add_argument("--out", type=str, default="", help="write JSON here instead of stdout")
    ap.add_argument("--log-level", type=str, default="WARNING")
    ap.add_argument("--list-actions", action="store_true")
    args = ap.parse_args()

    if args.list_actions:
        print("\n".join(SCENARIO_ACTIONS))
        return 0

    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    path = Path(args.scenario)
    if not path.is_file():
        raise SystemExit(f"scenario not found: {path}")

    result = run_scenario(load_scenario(path))
    payload = json.dumps(result.to_dict(), indent=2, sort_keys=True)
    if args.out:
        Path(args.out).write_text(payload + "\n", encoding="utf-8")
    else:
        print(payload)
    if not result.ok:
        print(f"FAIL: {result.error}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
