from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from aqualink.config import settings
from aqualink.models import BranchInventoryItem, InventoryItem, stock_status
from aqualink.services.errors import ValidationFailed
from aqualink.services.inventory_service import get_item, list_items

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemDefaults:
    unit: str
    min_stock_level: int
    max_stock_level: int
    price: Decimal = Decimal('0')


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def defaults_from_factory_item(item: InventoryItem | None) -> ItemDefaults:
    if item is None:
        return ItemDefaults(
            unit=settings.branch_item_default_unit,
            min_stock_level=settings.branch_item_default_min_stock,
            max_stock_level=settings.branch_item_default_max_stock,
        )
    return ItemDefaults(
        unit=item.unit or settings.branch_item_default_unit,
        min_stock_level=item.min_stock_level or settings.branch_item_default_min_stock,
        max_stock_level=item.max_stock_level or settings.branch_item_default_max_stock,
        price=item.price or Decimal('0'),
    )


def resolve_branch_id(*, branch_id: str | None, branch_name: str | None) -> str:
    if branch_id:
        return branch_id
    mapped = settings.branch_id_by_name.get((branch_name or '').strip())
    if mapped:
        return mapped
    logger.warning('No branch id for "%s", falling back to %s', branch_name, settings.default_branch_id)
    return settings.default_branch_id


def find_item(db: Session, *, branch_id: str, name: str) -> BranchInventoryItem | None:
    return db.execute(
        select(BranchInventoryItem).where(
            BranchInventoryItem.branch_id == branch_id,
            BranchInventoryItem.name == name,
        )
    ).scalar_one_or_none()


def list_branch_items(db: Session, *, branch_id: str) -> list[BranchInventoryItem]:
    return db.execute(
        select(BranchInventoryItem)
        .where(BranchInventoryItem.branch_id == branch_id)
        .order_by(BranchInventoryItem.name.asc())
    ).scalars().all()


def credit_on_delivery(
    db: Session,
    *,
    branch_id: str,
    branch_name: str | None,
    name: str,
    quantity: int,
    defaults: ItemDefaults,
) -> dict:
    """Add delivered stock to a branch row, creating the row on first delivery.

    There is no deduplication key here; the caller must credit each delivered
    line at most once.
    """
    if quantity <= 0:
        raise ValueError('Credited quantity must be positive')

    row = find_item(db, branch_id=branch_id, name=name)
    if row is None:
        row = BranchInventoryItem(
            branch_id=branch_id,
            name=name,
            quantity=0,
            unit=defaults.unit,
            min_stock_level=defaults.min_stock_level,
            max_stock_level=defaults.max_stock_level,
            price=defaults.price,
            branch_name=branch_name or 'Unknown Branch',
        )
        db.add(row)

    previous = row.quantity
    row.quantity = previous + quantity
    row.status = stock_status(row.quantity, row.min_stock_level)
    row.branch_name = branch_name or row.branch_name or 'Unknown Branch'
    row.last_updated = _now()
    db.flush()
    return {
        'itemName': name,
        'quantityAdded': quantity,
        'previousQuantity': previous,
        'newTotalQuantity': row.quantity,
        'status': row.status.value,
        'unit': row.unit,
    }


def _branch_target(branch_id: str | None, branch_name: str | None) -> tuple[str, str]:
    branch_id = (branch_id or '').strip() or settings.branch_id_by_name.get((branch_name or '').strip())
    if not branch_id:
        raise ValidationFailed('Unknown branch', ['branchId or a known branchName is required'])
    if not (branch_name or '').strip():
        names = {mapped_id: name for name, mapped_id in settings.branch_id_by_name.items()}
        branch_name = names.get(branch_id, 'Unknown Branch')
    return branch_id, branch_name.strip()


def sync_product(
    db: Session,
    *,
    name: str,
    branch_id: str | None = None,
    branch_name: str | None = None,
) -> tuple[BranchInventoryItem, bool]:
    """Make a factory product available to a branch.

    A missing branch row is created empty. An existing row keeps its quantity
    and takes the factory's unit, stock levels and price.
    """
    if not (name or '').strip():
        raise ValidationFailed('Missing required fields: itemName', ['itemName is required'])
    factory_item = get_item(db, name=name.strip())
    branch_id, branch_name = _branch_target(branch_id, branch_name)
    defaults = defaults_from_factory_item(factory_item)

    row = find_item(db, branch_id=branch_id, name=factory_item.name)
    created = row is None
    if created:
        row = BranchInventoryItem(branch_id=branch_id, name=factory_item.name, quantity=0, branch_name=branch_name)
        db.add(row)

    row.unit = defaults.unit
    row.min_stock_level = defaults.min_stock_level
    row.max_stock_level = defaults.max_stock_level
    row.price = defaults.price
    row.status = stock_status(row.quantity, row.min_stock_level)
    row.last_updated = _now()
    db.flush()
    logger.info('%s %s for branch %s', 'Added' if created else 'Refreshed', factory_item.name, branch_id)
    return row, created


def sync_all_products(db: Session) -> dict:
    created = 0
    updated = 0
    items = list_items(db)
    for branch_name, branch_id in settings.branch_id_by_name.items():
        for item in items:
            _, was_created = sync_product(db, name=item.name, branch_id=branch_id, branch_name=branch_name)
            if was_created:
                created += 1
            else:
                updated += 1
    return {
        'branches': len(settings.branch_id_by_name),
        'products': len(items),
        'created': created,
        'updated': updated,
    }
