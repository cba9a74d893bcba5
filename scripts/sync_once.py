#!/usr/bin/env python3
"""Run one sync pass for a user's on-device state and report the outcome.

Useful for inspecting what a device left queued, or for pushing it by hand
against a staging store.

Usage
-----
Set environment variables and run::

    export FIELDSYNC_BASE_URL="https://attendance.example/api"
    export FIELDSYNC_STORAGE_DIR="/path/to/.fieldsync"
    python scripts/sync_once.py --user emp-042

Options::

    --user ID            User whose state to sync (required)
    --offline            Only print local records and queue, no network
    --reconcile          Also pull the current month from the remote store
    --json               Output as machine-readable JSON
    --verbose, -v        Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from fieldsync import FieldSyncEngine, SyncConfig, SyncReport  # noqa: E402


def _local_state(engine: FieldSyncEngine) -> dict[str, Any]:
    return {
        "records": [
            {
                "recordId": record.record_id,
                "status": str(record.status),
                "syncState": str(record.sync_state),
                "retryCount": record.retry_count,
            }
            for record in engine.list_all()
        ],
        "queue": engine.queue.pending_ids(),
    }


def _print_state(title: str, state: dict[str, Any]) -> None:
    print(f"\n── {title} ──")
    for record in state["records"]:
        print(f"  {record['recordId']:<16} {record['status']:<10} {record['syncState']:<8} retries={record['retryCount']}")
    print(f"  queued: {len(state['queue'])}")


async def main() -> None:
    parser = argparse.ArgumentParser(description="Run one fieldsync pass for a user.")
    parser.add_argument("--user", required=True, help="User whose state to sync")
    parser.add_argument("--offline", action="store_true", help="Only print local state")
    parser.add_argument("--reconcile", action="store_true", help="Pull the current month before pushing")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    config = SyncConfig.from_env()
    engine = FieldSyncEngine(config, args.user)
    result: dict[str, Any] = {"user": args.user, "before": _local_state(engine)}

    if not args.offline:
        await engine.open()
        try:
            assert engine.network is not None  # noqa: S101
            online = await engine.network.probe()
            result["online"] = online
            report: SyncReport | None = None
            if online:
                if args.reconcile:
                    report = await engine.scheduler.check_daily()
                report = report or await engine.sync_now()
            result["report"] = dataclasses.asdict(report) if report is not None else None
            result["status"] = str(engine.status)
            last_error = engine.scheduler.last_error
            result["lastError"] = str(last_error) if last_error is not None else None
        finally:
            await engine.close()
        result["after"] = _local_state(engine)

    if args.json_mode:
        print(json.dumps(result, indent=2, ensure_ascii=False))
        return

    _print_state(f"{args.user} before", result["before"])
    if args.offline:
        return
    print(f"\n  online : {result['online']}")
    print(f"  report : {result['report']}")
    print(f"  status : {result['status']}")
    if result["lastError"]:
        print(f"  error  : {result['lastError']}")
    _print_state(f"{args.user} after", result["after"])


if __name__ == "__main__":
    asyncio.run(main())
