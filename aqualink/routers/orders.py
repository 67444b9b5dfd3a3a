from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from aqualink.db import get_db
from aqualink.dependencies import get_actor_name, get_client_ip
from aqualink.schemas import OrderDraft, StatusUpdate
from aqualink.services.audit_service import log_audit
from aqualink.services.order_service import (
    accept_order,
    delete_order,
    get_order,
    list_orders,
    list_pending_orders,
    order_to_dict,
    set_order_status,
    submit_order,
)
from aqualink.services.report_service import order_stats
from aqualink.services.unit_of_work import commit_with_retry

router = APIRouter(prefix='/orders', tags=['orders'])


@router.get('')
def orders_list(db: Session = Depends(get_db)):
    return {'orders': [order_to_dict(order) for order in list_orders(db)]}


@router.get('/pending')
def orders_pending(db: Session = Depends(get_db)):
    return {'orders': [order_to_dict(order) for order in list_pending_orders(db)]}


@router.get('/stats')
def orders_stats(db: Session = Depends(get_db)):
    return {'stats': order_stats(db)}


@router.post('', status_code=201)
def orders_create(payload: OrderDraft, request: Request, db: Session = Depends(get_db)):
    actor = get_actor_name(request)

    def operation():
        order = submit_order(
            db,
            branch_name=payload.branch_name,
            branch_location=payload.branch_location,
            items=[item.model_dump() for item in payload.items] if payload.items is not None else None,
            expected_delivery_date=payload.expected_delivery_date,
            contact_person=payload.contact_person,
            contact_phone=payload.contact_phone,
            priority=payload.priority,
            notes=payload.notes,
            branch_id=payload.branch_id,
            source=payload.source,
            original_branch_order_id=payload.original_branch_order_id,
        )
        log_audit(
            db,
            actor=actor,
            action='order.submit',
            ip=get_client_ip(request),
            metadata={'order_id': order.id, 'branch_id': order.branch_id, 'lines': len(order.items)},
        )
        return order

    order = commit_with_retry(db, operation)
    return {'order': order_to_dict(order)}


@router.get('/{order_id}')
def orders_detail(order_id: int, db: Session = Depends(get_db)):
    return {'order': order_to_dict(get_order(db, order_id=order_id))}


@router.put('/{order_id}/accept')
def orders_accept(order_id: int, request: Request, db: Session = Depends(get_db)):
    actor = get_actor_name(request)

    def operation():
        order, updates = accept_order(db, order_id=order_id, actor=actor)
        log_audit(
            db,
            actor=actor,
            action='order.accept',
            ip=get_client_ip(request),
            metadata={'order_id': order.id, 'inventory_updates': updates},
        )
        return order, updates

    order, updates = commit_with_retry(db, operation)
    return {
        'message': 'Order accepted successfully',
        'order': order_to_dict(order),
        'inventoryUpdates': updates,
    }


@router.put('/{order_id}/status')
def orders_set_status(order_id: int, payload: StatusUpdate, request: Request, db: Session = Depends(get_db)):
    actor = get_actor_name(request)

    def operation():
        order, updates = set_order_status(db, order_id=order_id, status=payload.status)
        log_audit(
            db,
            actor=actor,
            action='order.status',
            ip=get_client_ip(request),
            metadata={'order_id': order.id, 'status': order.status.value, 'inventory_updates': updates},
        )
        return order, updates

    order, updates = commit_with_retry(db, operation)
    return {'order': order_to_dict(order), 'inventoryUpdates': updates}


@router.delete('/{order_id}')
def orders_delete(order_id: int, request: Request, db: Session = Depends(get_db)):
    actor = get_actor_name(request)

    def operation():
        snapshot = delete_order(db, order_id=order_id)
        log_audit(db, actor=actor, action='order.delete', ip=get_client_ip(request), metadata={'order_id': order_id})
        return snapshot

    return {'order': commit_with_retry(db, operation)}
