"""
Snapshot CLI - export the document store to a file, or restore one.

Runs the same snapshot service as GET /api/system/export and
POST /api/system/import, directly against DATABASE_URL.

Usage:
    python scripts/snapshot.py export backups/cls_backup.json
    python scripts/snapshot.py import backups/cls_backup.json
"""

import os
import sys
import json
import asyncio
import logging
import argparse
from pathlib import Path
from typing import Optional

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from api.services.snapshot_service import export_snapshot, import_snapshot
from db.bridge import DataBridge
from db.db_config import get_allowed_stores
from db.errors import StorageError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
)
logger = logging.getLogger("snapshot")


async def run_export(bridge: DataBridge, path: Path) -> int:
    snapshot = await export_snapshot(bridge.documents)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(snapshot, indent=2, ensure_ascii=False), encoding="utf-8")
    total = sum(len(items) for items in snapshot["data"].values())
    print(f"Exported {total} records to {path}")
    return 0


async def run_import(bridge: DataBridge, path: Path) -> int:
    payload = json.loads(path.read_text(encoding="utf-8"))
    result = await import_snapshot(bridge.documents, payload, allowed=get_allowed_stores())
    print(f"Imported {result.imported} records into {len(result.stores)} stores")
    return 0


def main(argv: Optional[list[str]] = None, bridge: Optional[DataBridge] = None) -> int:
    """CLI entry point. Returns a process exit code."""
    parser = argparse.ArgumentParser(
        description="Export or restore a legislative data snapshot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/snapshot.py export backups/today.json
  python scripts/snapshot.py import backups/today.json
        """,
    )
    parser.add_argument("command", choices=("export", "import"))
    parser.add_argument("path", type=Path, help="Snapshot JSON file")
    args = parser.parse_args(argv)

    if bridge is None:
        bridge = DataBridge.from_env()
        if not bridge.start():
            logger.error("Storage unavailable: %s", bridge.config_error or bridge.startup_error)
            return 1

    try:
        if args.command == "export":
            return asyncio.run(run_export(bridge, args.path))
        return asyncio.run(run_import(bridge, args.path))
    except StorageError as exc:
        logger.error("%s: %s", exc.kind, exc.message)
        return 1
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Could not read or write %s: %s", args.path, exc)
        return 1
    finally:
        bridge.close()


if __name__ == "__main__":
    sys.exit(main())
