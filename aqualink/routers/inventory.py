from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from aqualink.db import get_db
from aqualink.dependencies import get_actor_name, get_client_ip
from aqualink.models import InventoryItem
from aqualink.routers.branch_inventory import branch_item_to_dict
from aqualink.schemas import BranchSyncRequest, InventoryItemCreate, InventoryItemUpdate, StockAdjustment
from aqualink.services import inventory_service
from aqualink.services.branch_inventory_service import sync_all_products, sync_product
from aqualink.services.audit_service import log_audit
from aqualink.services.report_service import inventory_stats
from aqualink.services.unit_of_work import commit_with_retry

router = APIRouter(prefix='/inventory', tags=['inventory'])


def item_to_dict(item: InventoryItem) -> dict:
    return {
        'id': item.id,
        'name': item.name,
        'category': item.category,
        'quantity': item.quantity,
        'unit': item.unit,
        'minStockLevel': item.min_stock_level,
        'maxStockLevel': item.max_stock_level,
        'price': float(item.price),
        'status': item.status.value,
        'updatedAt': item.updated_at.isoformat() if item.updated_at else None,
    }


@router.get('')
def inventory_list(db: Session = Depends(get_db)):
    return {'items': [item_to_dict(item) for item in inventory_service.list_items(db)]}


@router.get('/stats')
def inventory_overview(db: Session = Depends(get_db)):
    return {'stats': inventory_stats(db)}


@router.post('', status_code=201)
def inventory_create(payload: InventoryItemCreate, request: Request, db: Session = Depends(get_db)):
    actor = get_actor_name(request)

    def operation():
        item = inventory_service.create_item(
            db,
            name=payload.name,
            category=payload.category,
            quantity=payload.quantity,
            unit=payload.unit,
            min_stock_level=payload.min_stock_level,
            max_stock_level=payload.max_stock_level,
            price=payload.price,
        )
        log_audit(db, actor=actor, action='inventory.create', ip=get_client_ip(request), metadata={'name': item.name})
        return item

    return {'item': item_to_dict(commit_with_retry(db, operation))}


@router.post('/init')
def inventory_init(request: Request, db: Session = Depends(get_db)):
    actor = get_actor_name(request)

    def operation():
        result = inventory_service.initialize_sample_data(db)
        log_audit(db, actor=actor, action='inventory.init', ip=get_client_ip(request), metadata=result)
        return result

    result = commit_with_retry(db, operation)
    return {'message': 'Sample inventory initialised', **result}


@router.post('/sync-to-branch')
def inventory_sync_to_branch(payload: BranchSyncRequest, request: Request, db: Session = Depends(get_db)):
    actor = get_actor_name(request)

    def operation():
        row, created = sync_product(db, name=payload.item_name, branch_id=payload.branch_id, branch_name=payload.branch_name)
        log_audit(
            db,
            actor=actor,
            action='inventory.sync_to_branch',
            ip=get_client_ip(request),
            metadata={'name': row.name, 'branchId': row.branch_id, 'created': created},
        )
        return {'created': created, 'item': branch_item_to_dict(row)}

    return commit_with_retry(db, operation)


@router.post('/sync-all-to-branches')
def inventory_sync_all(request: Request, db: Session = Depends(get_db)):
    actor = get_actor_name(request)

    def operation():
        result = sync_all_products(db)
        log_audit(db, actor=actor, action='inventory.sync_all_to_branches', ip=get_client_ip(request), metadata=result)
        return result

    return {'sync': commit_with_retry(db, operation)}


@router.get('/{name}')
def inventory_detail(name: str, db: Session = Depends(get_db)):
    return {'item': item_to_dict(inventory_service.get_item(db, name=name))}


@router.put('/{name}')
def inventory_update(name: str, payload: InventoryItemUpdate, request: Request, db: Session = Depends(get_db)):
    actor = get_actor_name(request)

    def operation():
        item = inventory_service.update_item(
            db,
            name=name,
            category=payload.category,
            unit=payload.unit,
            min_stock_level=payload.min_stock_level,
            max_stock_level=payload.max_stock_level,
            price=payload.price,
        )
        log_audit(
            db,
            actor=actor,
            action='inventory.update',
            ip=get_client_ip(request),
            metadata={'name': item.name, 'fields': sorted(payload.model_dump(exclude_unset=True))},
        )
        return item

    return {'item': item_to_dict(commit_with_retry(db, operation))}


@router.post('/{name}/stock')
def inventory_adjust(name: str, payload: StockAdjustment, request: Request, db: Session = Depends(get_db)):
    actor = get_actor_name(request)

    def operation():
        update = inventory_service.adjust(db, name=name, delta=payload.delta)
        log_audit(db, actor=actor, action='inventory.adjust', ip=get_client_ip(request), metadata=update)
        return update

    return {'inventoryUpdate': commit_with_retry(db, operation)}


@router.delete('/{name}')
def inventory_delete(name: str, request: Request, db: Session = Depends(get_db)):
    actor = get_actor_name(request)

    def operation():
        item = inventory_service.delete_item(db, name=name)
        snapshot = item_to_dict(item)
        log_audit(db, actor=actor, action='inventory.delete', ip=get_client_ip(request), metadata={'name': name})
        return snapshot

    return {'item': commit_with_retry(db, operation)}
