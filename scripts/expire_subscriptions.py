"""
Sweep trial and active profiles whose window has ended and persist them as
``expired`` (with a history entry each).

The status endpoint already does this lazily per user; this sweep keeps the
admin dashboard counts accurate for users who have not signed in since.

Usage:
    python scripts/expire_subscriptions.py [--dry-run]
"""
import argparse
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from app.core.database import AsyncSessionLocal, engine, utcnow
from app.core.subscription_service import SubscriptionService, TRIAL, ACTIVE, current_window_end
from app.models.user import User


async def expire_lapsed(dry_run: bool = False) -> int:
    """
    Expire every lapsed trial or active profile.

    Args:
        dry_run (bool): Only report the users that would be expired

    Returns:
        int: Number of users expired (or that would be)
    """
    now = utcnow()
    expired = 0

    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(User).where(User.subscription_status.in_([TRIAL, ACTIVE]))
        )
        users = result.scalars().all()
        print(f"  [*] Checking {len(users)} trial/active profiles")

        for user in users:
            end_date = current_window_end(user.subscription_status, user.trial_end_date, user.subscription_end_date)
            if end_date is None or now < end_date:
                continue
            if dry_run:
                print(f"  [~] Would expire {user.id} ({user.subscription_status}, ended {end_date.isoformat()})")
                expired += 1
                continue
            if await SubscriptionService.expire_if_lapsed(session, user, now):
                print(f"  [+] Expired {user.id}")
                expired += 1

    await engine.dispose()
    return expired


def main():
    parser = argparse.ArgumentParser(description="Brainac - expire lapsed subscriptions")
    parser.add_argument("--dry-run", action="store_true", help="Report without writing")
    args = parser.parse_args()

    count = asyncio.run(expire_lapsed(dry_run=args.dry_run))
    print(f"\n  [+] {count} subscription(s) {'to expire' if args.dry_run else 'expired'}")


if __name__ == "__main__":
    main()
