#!/usr/bin/env python3
"""
Sales Seeding Script

Inserts synthetic sales for existing users so the ledger can be exercised
against a real project, including windows larger than the remote-filter
threshold.

Usage:
    python scripts/seed_sales.py --count 600
    python scripts/seed_sales.py --count 50 --days 7 --referral-rate 0.3
    python scripts/seed_sales.py --count 10 --dry-run
"""

from __future__ import annotations

import argparse
import asyncio
import random
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from repositories.client import LedgerSettings, create_document_store
from repositories.sale_repository import record_sale
from repositories.store import DocumentQuery, DocumentStore


def build_sale_payload(
    buyer_id: str,
    referrer_id: Optional[str],
    created_at: datetime,
    price: Decimal,
) -> Dict[str, Any]:
    return {
        "sale_id": f"S-{uuid4().hex[:10].upper()}",
        "created_at": created_at.isoformat(),
        "price": str(price),
        "user_id": buyer_id,
        "referer_id": referrer_id,
        "pinned": False,
        "pinned_at": None,
    }


def generate_payloads(
    user_ids: List[str],
    count: int,
    days: int,
    referral_rate: float,
    now: datetime,
    rng: random.Random,
) -> List[Dict[str, Any]]:
    """
    Build `count` random sale payloads.

    Buyers are drawn from `user_ids`; a referrer (never the buyer) is added
    with probability `referral_rate` when there is more than one user.
    """
    payloads = []
    for _ in range(count):
        buyer_id = rng.choice(user_ids)
        referrer_id = None
        if len(user_ids) > 1 and rng.random() < referral_rate:
            referrer_id = rng.choice([u for u in user_ids if u != buyer_id])
        created_at = now - timedelta(seconds=rng.randint(0, days * 86400))
        price = Decimal(rng.randint(100, 50000)) / 100
        payloads.append(build_sale_payload(buyer_id, referrer_id, created_at, price))
    return payloads


async def seed_sales(
    store: DocumentStore,
    settings: LedgerSettings,
    count: int,
    days: int,
    referral_rate: float,
    dry_run: bool = False,
) -> dict[str, int]:
    stats = {'users': 0, 'generated': 0, 'inserted': 0, 'failed': 0}

    print("Fetching users from database...")
    users = await store.query(settings.users_table, DocumentQuery(limit=1000))
    user_ids = [doc.id for doc in users]
    stats['users'] = len(user_ids)
    if not user_ids:
        raise RuntimeError(f"No users found in table '{settings.users_table}'")
    print(f"Found {len(user_ids)} users")

    payloads = generate_payloads(
        user_ids, count, days, referral_rate, datetime.now(timezone.utc), random.Random()
    )
    stats['generated'] = len(payloads)

    if dry_run:
        for payload in payloads[:5]:
            print(f"  {payload}")
        return stats

    for idx, payload in enumerate(payloads, 1):
        try:
            await record_sale(store, settings.sales_table, payload)
            stats['inserted'] += 1
        except Exception as insert_error:
            stats['failed'] += 1
            print(f"  ERROR: Failed to insert sale {payload['sale_id']}: {insert_error}")

        if idx % 100 == 0:
            print(f"Inserted {stats['inserted']}/{len(payloads)} sales...")

    return stats


def print_summary(stats: dict[str, int], dry_run: bool) -> None:
    print()
    print("=" * 60)
    print("SALES SEEDING SUMMARY")
    print("=" * 60)
    print(f"Users Available:   {stats['users']}")
    print(f"Sales Generated:   {stats['generated']}")
    print(f"Sales Inserted:    {stats['inserted']}")
    print(f"Failed:            {stats['failed']}")
    print()
    if dry_run:
        print("** DRY RUN - No records were inserted **")
    else:
        print(f"SUCCESS: Inserted {stats['inserted']} sales")
    print("=" * 60)


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Insert synthetic sales for existing users",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Exceed the default remote-filter threshold (500)
  python scripts/seed_sales.py --count 600

  # Dry run (no inserts)
  python scripts/seed_sales.py --count 10 --dry-run
        """
    )

    parser.add_argument("--count", type=int, default=100, help="Number of sales to insert (default: 100)")
    parser.add_argument("--days", type=int, default=30, help="Spread created_at over this many past days (default: 30)")
    parser.add_argument(
        "--referral-rate",
        type=float,
        default=0.5,
        help="Fraction of sales with a referrer (default: 0.5)"
    )
    parser.add_argument("--dry-run", action="store_true", help="Simulate without inserting records")

    args = parser.parse_args()

    if args.count < 1 or args.days < 1 or not 0 <= args.referral_rate <= 1:
        parser.error("--count and --days must be >= 1 and --referral-rate within [0, 1]")

    async def run() -> dict[str, int]:
        settings = LedgerSettings.from_env()
        store = await create_document_store(settings)
        return await seed_sales(store, settings, args.count, args.days, args.referral_rate, args.dry_run)

    try:
        print("Starting sales seeding...")
        print()
        stats = asyncio.run(run())
        print_summary(stats, args.dry_run)
        return 0

    except KeyboardInterrupt:
        print("\n\nSales seeding interrupted by user")
        return 130

    except Exception as e:
        print(f"\nFATAL ERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
