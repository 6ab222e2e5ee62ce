"""
Points integrity sweep.

This script:
1. Audits every user's balance against the points ledger (read-only)
2. With --repair, raises understated balances to the ledger value
   (balances above the ledger are only reported for manual review)

Usage:
    python scripts/repair_points.py                 # audit only
    python scripts/repair_points.py --repair        # audit + repair
    python scripts/repair_points.py --repair --run-id repair-<uuid>   # resume a run
"""

import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from loyaltyapi.config import settings
from loyaltyapi.containers import Container
from loyaltyapi.logging_config import setup_logging


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Audit and repair points balances")
    parser.add_argument(
        "--repair",
        action="store_true",
        help="raise understated balances to the ledger value",
    )
    parser.add_argument(
        "--run-id",
        default=None,
        help="repair run identifier; reuse it to resume without double-fixing",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=settings.AUDIT_BATCH_SIZE,
        help="users per batch",
    )
    return parser.parse_args(argv)


def run_audit(container: Container, batch_size: int) -> int:
    result = container.services.audit_service().audit_all_users(batch_size=batch_size)

    print("\n📊 Audit summary:")
    print(f"  • Users checked: {result.users_checked}")
    print(f"  • Users with issues: {len(result.reports)}")
    print(f"  • Errors: {len(result.errors)}")
    for report in result.reports:
        print(f"\n  {report.user_id} ({report.email})")
        for issue in report.issues:
            print(f"    - {issue}")
        for recommendation in report.recommendations:
            print(f"    → {recommendation}")
    for error in result.errors:
        print(f"  ❌ {error}")
    return len(result.errors)


def run_repair(container: Container, run_id, batch_size: int) -> int:
    result = container.services.repair_service().repair_all_users(
        run_id=run_id, batch_size=batch_size
    )

    print(f"\n🔧 Repair run {result.run_id}:")
    print(f"  • Users checked: {result.users_checked}")
    print(f"  • Users fixed: {result.users_fixed}")
    for fix in result.fixes:
        print(f"    ✅ {fix}")
    for issue in result.issues_found:
        print(f"    ⚠️  {issue}")
    for error in result.errors:
        print(f"    ❌ {error}")
    return len(result.errors)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(settings.LOG_LEVEL)

    container = Container()
    try:
        errors = run_audit(container, args.batch_size)
        if args.repair:
            errors += run_repair(container, args.run_id, args.batch_size)
    finally:
        container.shutdown_resources()
    return 1 if errors else 0


if __name__ == "__main__":
    sys.exit(main())
