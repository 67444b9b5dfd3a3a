from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from aqualink.models import BranchOrder, BranchOrderSyncEvent, Order, OrderStatus, SyncStatus

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _apply_event(db: Session, event: BranchOrderSyncEvent) -> None:
    branch_order = db.execute(
        select(BranchOrder).where(BranchOrder.id == event.branch_order_id)
    ).scalar_one_or_none()
    if branch_order is None:
        raise LookupError(f'Branch order {event.branch_order_id} not found')

    payload = event.request_payload or {}
    branch_order.status = OrderStatus(payload['status'])
    if payload.get('acceptedDate'):
        branch_order.accepted_date = datetime.fromisoformat(payload['acceptedDate'])
    branch_order.updated_at = _now()
    db.flush()


def attempt_event(db: Session, event: BranchOrderSyncEvent) -> bool:
    """Apply one event inside a savepoint. Failures are recorded, never raised."""
    event.attempt_count += 1
    event.last_attempt_at = _now()
    event.updated_at = _now()
    try:
        with db.begin_nested():
            _apply_event(db, event)
    except Exception as exc:
        event.status = SyncStatus.FAILED
        event.error_text = str(exc)
        db.flush()
        logger.warning(
            'Could not mirror order %s onto branch order %s: %s',
            event.order_id,
            event.branch_order_id,
            exc,
        )
        return False

    event.status = SyncStatus.SUCCESS
    event.error_text = None
    db.flush()
    return True


def mirror_order_status(db: Session, order: Order) -> BranchOrderSyncEvent | None:
    if not order.original_branch_order_id:
        return None

    payload: dict = {'status': order.status.value}
    if order.status == OrderStatus.ACCEPTED and order.accepted_date is not None:
        payload['acceptedDate'] = order.accepted_date.isoformat()

    event = BranchOrderSyncEvent(
        order_id=order.id,
        branch_order_id=order.original_branch_order_id,
        status=SyncStatus.PENDING,
        request_payload=payload,
        attempt_count=0,
    )
    db.add(event)
    db.flush()
    attempt_event(db, event)
    return event


def _newer_success_id(db: Session, event: BranchOrderSyncEvent) -> int | None:
    return db.execute(
        select(BranchOrderSyncEvent.id)
        .where(
            BranchOrderSyncEvent.branch_order_id == event.branch_order_id,
            BranchOrderSyncEvent.id > event.id,
            BranchOrderSyncEvent.status == SyncStatus.SUCCESS,
        )
        .limit(1)
    ).scalar_one_or_none()


def drain_pending_events(db: Session, *, include_failed: bool = True, limit: int = 100) -> dict:
    statuses = [SyncStatus.PENDING]
    if include_failed:
        statuses.append(SyncStatus.FAILED)
    events = db.execute(
        select(BranchOrderSyncEvent)
        .where(BranchOrderSyncEvent.status.in_(statuses))
        .order_by(BranchOrderSyncEvent.id.asc())
        .limit(limit)
    ).scalars().all()

    succeeded = 0
    failed = 0
    superseded = 0
    for event in events:
        # A newer successful event already carries the branch order's latest status.
        newer_id = _newer_success_id(db, event)
        if newer_id is not None:
            event.status = SyncStatus.SUCCESS
            event.error_text = f'Superseded by event {newer_id}'
            event.updated_at = _now()
            superseded += 1
            continue
        if attempt_event(db, event):
            succeeded += 1
        else:
            failed += 1
    db.flush()
    return {'succeeded': succeeded, 'failed': failed, 'superseded': superseded}
