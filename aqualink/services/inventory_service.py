from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy import select
from sqlalchemy.orm import Session

from aqualink.models import OPEN_ORDER_STATUSES, InventoryItem, Order, OrderItem, stock_status
from aqualink.services.errors import InsufficientStock, NotFound, ValidationFailed

logger = logging.getLogger(__name__)

SAMPLE_ITEMS: list[dict] = [
    {'name': '500ml Bottled Water', 'category': 'Bottled Water', 'quantity': 1200, 'unit': 'bottles', 'min_stock_level': 200, 'max_stock_level': 2000, 'price': Decimal('60.00')},
    {'name': '1L Bottled Water', 'category': 'Bottled Water', 'quantity': 800, 'unit': 'bottles', 'min_stock_level': 150, 'max_stock_level': 1500, 'price': Decimal('100.00')},
    {'name': '5L Water Can', 'category': 'Bulk Water', 'quantity': 300, 'unit': 'cans', 'min_stock_level': 50, 'max_stock_level': 600, 'price': Decimal('350.00')},
    {'name': '19L Dispenser Bottle', 'category': 'Bulk Water', 'quantity': 120, 'unit': 'bottles', 'min_stock_level': 30, 'max_stock_level': 300, 'price': Decimal('750.00')},
    {'name': 'Filter-A', 'category': 'Filters', 'quantity': 40, 'unit': 'pieces', 'min_stock_level': 10, 'max_stock_level': 100, 'price': Decimal('1500.00')},
    {'name': 'Bottle Caps', 'category': 'Packaging', 'quantity': 5000, 'unit': 'pieces', 'min_stock_level': 1000, 'max_stock_level': 10000, 'price': Decimal('2.50')},
]


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def refresh_status(item: InventoryItem) -> None:
    item.status = stock_status(item.quantity, item.min_stock_level)


def _parse_non_negative_int(value, *, field_name: str) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationFailed(f'Invalid {field_name}', [f'{field_name} must be a whole number']) from exc
    if parsed < 0:
        raise ValidationFailed(f'Invalid {field_name}', [f'{field_name} cannot be negative'])
    return parsed


def _parse_price(value) -> Decimal:
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationFailed('Invalid price', ['price must be a number']) from exc
    if price < 0:
        raise ValidationFailed('Invalid price', ['price cannot be negative'])
    return price


def find_by_name(db: Session, name: str) -> InventoryItem | None:
    return db.execute(select(InventoryItem).where(InventoryItem.name == name)).scalar_one_or_none()


def get_item(db: Session, *, name: str) -> InventoryItem:
    item = find_by_name(db, name)
    if item is None:
        raise NotFound(f'Inventory item "{name}" not found')
    return item


def list_items(db: Session) -> list[InventoryItem]:
    return db.execute(select(InventoryItem).order_by(InventoryItem.name.asc())).scalars().all()


def create_item(
    db: Session,
    *,
    name: str,
    quantity: int = 0,
    unit: str = 'pieces',
    min_stock_level: int = 10,
    max_stock_level: int = 100,
    price: Decimal | str | float = Decimal('0'),
    category: str | None = None,
) -> InventoryItem:
    clean_name = (name or '').strip()
    if not clean_name:
        raise ValidationFailed('Validation failed', ['name is required'])
    if find_by_name(db, clean_name) is not None:
        raise ValidationFailed('Validation failed', [f'Inventory item "{clean_name}" already exists'])

    min_level = _parse_non_negative_int(min_stock_level, field_name='minStockLevel')
    max_level = _parse_non_negative_int(max_stock_level, field_name='maxStockLevel')
    if max_level < min_level:
        raise ValidationFailed('Validation failed', ['maxStockLevel must be at least minStockLevel'])

    item = InventoryItem(
        name=clean_name,
        category=(category or '').strip() or None,
        quantity=_parse_non_negative_int(quantity, field_name='quantity'),
        unit=(unit or '').strip() or 'pieces',
        min_stock_level=min_level,
        max_stock_level=max_level,
        price=_parse_price(price),
    )
    refresh_status(item)
    db.add(item)
    db.flush()
    return item


def update_item(
    db: Session,
    *,
    name: str,
    unit: str | None = None,
    min_stock_level: int | None = None,
    max_stock_level: int | None = None,
    price: Decimal | str | float | None = None,
    category: str | None = None,
) -> InventoryItem:
    """Edit descriptive fields. Quantity only moves through reserve/release/adjust."""
    item = get_item(db, name=name)
    if unit is not None and unit.strip():
        item.unit = unit.strip()
    if category is not None:
        item.category = category.strip() or None
    if min_stock_level is not None:
        item.min_stock_level = _parse_non_negative_int(min_stock_level, field_name='minStockLevel')
    if max_stock_level is not None:
        item.max_stock_level = _parse_non_negative_int(max_stock_level, field_name='maxStockLevel')
    if item.max_stock_level < item.min_stock_level:
        raise ValidationFailed('Validation failed', ['maxStockLevel must be at least minStockLevel'])
    if price is not None:
        item.price = _parse_price(price)
    refresh_status(item)
    item.updated_at = _now()
    db.flush()
    return item


def delete_item(db: Session, *, name: str) -> InventoryItem:
    item = get_item(db, name=name)
    open_reference = db.execute(
        select(Order.id)
        .join(OrderItem, OrderItem.order_id == Order.id)
        .where(OrderItem.item_name == item.name, Order.status.in_(OPEN_ORDER_STATUSES))
        .limit(1)
    ).scalar_one_or_none()
    if open_reference is not None:
        raise ValidationFailed(
            'Inventory item is in use',
            [f'Inventory item "{item.name}" is referenced by open order {open_reference}'],
        )
    db.delete(item)
    db.flush()
    return item


def reserve(db: Session, *, name: str, quantity: int) -> dict:
    item = get_item(db, name=name)
    if quantity > item.quantity:
        raise InsufficientStock(item.name, item.quantity, quantity)
    return _apply_delta(item, -quantity, db)


def release(db: Session, *, name: str, quantity: int) -> dict:
    item = get_item(db, name=name)
    return _apply_delta(item, quantity, db)


def adjust(db: Session, *, name: str, delta: int) -> dict:
    item = get_item(db, name=name)
    if item.quantity + delta < 0:
        raise InsufficientStock(item.name, item.quantity, -delta)
    return _apply_delta(item, delta, db)


def _apply_delta(item: InventoryItem, delta: int, db: Session) -> dict:
    previous = item.quantity
    item.quantity = previous + delta
    refresh_status(item)
    item.updated_at = _now()
    db.flush()
    return {
        'itemName': item.name,
        'previousQuantity': previous,
        'newFactoryQuantity': item.quantity,
        'status': item.status.value,
    }


@dataclass
class ReservationPlan:
    lines: list[tuple[InventoryItem, int]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    shortages: list[InsufficientStock] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def plan_reservation(db: Session, requested: list[tuple[str, int]]) -> ReservationPlan:
    """Check every requested line against current stock without mutating anything.

    Lines naming the same item are summed so one order cannot overdraw an item
    through duplicates.
    """
    totals: dict[str, int] = {}
    for item_name, quantity in requested:
        totals[item_name] = totals.get(item_name, 0) + quantity

    plan = ReservationPlan()
    for item_name, quantity in totals.items():
        item = find_by_name(db, item_name)
        if item is None:
            plan.errors.append(f'Item "{item_name}" not found in factory inventory')
            continue
        if item.quantity < quantity:
            shortage = InsufficientStock(item.name, item.quantity, quantity)
            plan.shortages.append(shortage)
            plan.errors.append(shortage.message)
            continue
        plan.lines.append((item, quantity))
    return plan


def apply_reservation(db: Session, plan: ReservationPlan) -> list[dict]:
    if not plan.ok:
        raise ValueError('Cannot apply a reservation plan with errors')

    updates: list[dict] = []
    for item, quantity in plan.lines:
        update = _apply_delta(item, -quantity, db)
        update['quantityReduced'] = quantity
        updates.append(update)
        logger.info('Reserved %s x %s, %s left', quantity, item.name, item.quantity)
    return updates


def initialize_sample_data(db: Session) -> dict:
    created = 0
    skipped = 0
    for sample in SAMPLE_ITEMS:
        if find_by_name(db, sample['name']) is not None:
            skipped += 1
            continue
        create_item(db, **sample)
        created += 1
    return {'created': created, 'skipped': skipped}
