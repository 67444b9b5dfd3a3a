from __future__ import annotations

import argparse

from aqualink.db import SessionLocal
from aqualink.logging_config import configure_logging
from aqualink.services.branch_order_sync_service import drain_pending_events


def sync_branch_orders(*, include_failed: bool = True, limit: int = 100) -> dict:
    with SessionLocal() as db:
        result = drain_pending_events(db, include_failed=include_failed, limit=limit)
        db.commit()
    return result


def main() -> None:
    parser = argparse.ArgumentParser(description='Replay pending branch-order status mirrors.')
    parser.add_argument(
        '--pending-only',
        action='store_true',
        help='Skip events that already failed and only replay ones never attempted.',
    )
    parser.add_argument('--limit', type=int, default=100, help='Maximum number of events to replay.')
    args = parser.parse_args()

    configure_logging()
    result = sync_branch_orders(include_failed=not args.pending_only, limit=args.limit)
    print(
        'Branch order sync complete: '
        f"succeeded={result['succeeded']}, failed={result['failed']}, superseded={result['superseded']}"
    )


if __name__ == '__main__':
    main()
