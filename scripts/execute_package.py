"""Approve and execute a session's resolution package from the command line."""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from resolution_engine.exceptions import ResolutionError
from resolution_engine.service import build_service


def run(session_id: str, generate: bool, approve_all: bool, dry_run: bool) -> int:
    service = build_service()

    try:
        if generate:
            generated = asyncio.run(service.generate_for_session(session_id))
            if generated is None:
                print(f"No resolution package produced for session {session_id}")
                return 1
            print(f"Package ready with {len(generated.items)} item(s)")

        if approve_all:
            service.approve_all_pending(session_id, approved_by="cli")

        package = service.get_package(session_id)
        if package is None:
            print(f"Session {session_id} has no resolution package")
            return 1

        for item in package.items:
            print(f"  {item.id:<14} {item.type.value:<10} {item.status.value:<9} {item.title}")

        if dry_run:
            return 0

        report = service.execute_package(session_id)
    except ResolutionError as e:
        print(f"ERROR: {e}")
        return 1

    for item_id, created_id in report.created.items():
        print(f"  CREATED {item_id} -> {created_id}")
    for item_id, error in report.failed.items():
        print(f"  FAILED  {item_id}: {error}")

    print(f"\nDone! {len(report.created)} created, {len(report.failed)} failed.")
    return 0 if not report.failed else 2


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("session_id")
    parser.add_argument("--generate", action="store_true", help="derive the package first")
    parser.add_argument("--approve-all", action="store_true")
    parser.add_argument("--dry-run", action="store_true", help="list items without executing")
    args = parser.parse_args()
    sys.exit(run(args.session_id, args.generate, args.approve_all, args.dry_run))
