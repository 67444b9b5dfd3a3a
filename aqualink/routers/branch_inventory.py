from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from aqualink.db import get_db
from aqualink.models import BranchInventoryItem
from aqualink.services.branch_inventory_service import list_branch_items

router = APIRouter(prefix='/branch-inventory', tags=['branch-inventory'])


def branch_item_to_dict(item: BranchInventoryItem) -> dict:
    return {
        'id': item.id,
        'branchId': item.branch_id,
        'branchName': item.branch_name,
        'name': item.name,
        'quantity': item.quantity,
        'unit': item.unit,
        'minStockLevel': item.min_stock_level,
        'maxStockLevel': item.max_stock_level,
        'price': float(item.price),
        'status': item.status.value,
        'lastUpdated': item.last_updated.isoformat() if item.last_updated else None,
    }


@router.get('/{branch_id}')
def branch_inventory_list(branch_id: str, db: Session = Depends(get_db)):
    items = list_branch_items(db, branch_id=branch_id)
    return {'branchId': branch_id, 'items': [branch_item_to_dict(item) for item in items]}
