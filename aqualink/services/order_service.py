from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import case, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from aqualink.config import settings
from aqualink.models import Order, OrderItem, OrderPriority, OrderStatus
from aqualink.services import inventory_service
from aqualink.services.branch_inventory_service import credit_on_delivery, defaults_from_factory_item, resolve_branch_id
from aqualink.services.branch_order_sync_service import mirror_order_status
from aqualink.services.errors import InsufficientStock, InvalidTransition, NotFound, ValidationFailed

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    ('branchName', 'branch_name'),
    ('branchLocation', 'branch_location'),
    ('expectedDeliveryDate', 'expected_delivery_date'),
    ('contactPerson', 'contact_person'),
    ('contactPhone', 'contact_phone'),
)

PRIORITY_ORDER = (OrderPriority.URGENT, OrderPriority.HIGH, OrderPriority.NORMAL, OrderPriority.LOW)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_quantity(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        raw = value.strip()
        digits = raw[1:] if raw.startswith('-') else raw
        return int(raw) if digits.isdigit() else None
    return None


def _parse_date(value) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).strip().replace('Z', '+00:00')).date()
    except ValueError:
        return None


def _parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError as exc:
        allowed = ', '.join(status.value for status in OrderStatus)
        raise ValidationFailed('Invalid status', [f'status must be one of {allowed}']) from exc


def order_to_dict(order: Order) -> dict:
    return {
        'id': order.id,
        'branchName': order.branch_name,
        'branchLocation': order.branch_location,
        'branchId': order.branch_id,
        'items': [{'itemName': item.item_name, 'quantity': item.quantity} for item in order.items],
        'status': order.status.value,
        'priority': order.priority.value,
        'orderDate': order.order_date.isoformat() if order.order_date else None,
        'expectedDeliveryDate': order.expected_delivery_date.isoformat(),
        'acceptedDate': order.accepted_date.isoformat() if order.accepted_date else None,
        'acceptedBy': order.accepted_by,
        'contactPerson': order.contact_person,
        'contactPhone': order.contact_phone,
        'notes': order.notes,
        'source': order.source,
        'originalBranchOrderId': order.original_branch_order_id,
    }


def get_order(db: Session, *, order_id: int) -> Order:
    order = db.execute(select(Order).where(Order.id == order_id)).scalar_one_or_none()
    if order is None:
        raise NotFound('Order not found')
    return order


def list_orders(db: Session) -> list[Order]:
    return db.execute(select(Order).order_by(Order.order_date.desc(), Order.id.desc())).scalars().all()


def list_pending_orders(db: Session, *, limit: int | None = None) -> list[Order]:
    # Compare through the column so the enum is bound the way it is stored.
    rank = case(
        *[(Order.priority == priority, position) for position, priority in enumerate(PRIORITY_ORDER)],
        else_=len(PRIORITY_ORDER),
    )
    return db.execute(
        select(Order)
        .where(Order.status.in_([OrderStatus.PENDING, OrderStatus.PROCESSING]))
        .order_by(rank.asc(), Order.order_date.asc(), Order.id.asc())
        .limit(limit or settings.pending_orders_limit)
    ).scalars().all()


def submit_order(
    db: Session,
    *,
    branch_name: str | None,
    branch_location: str | None,
    items: list[dict] | None,
    expected_delivery_date,
    contact_person: str | None,
    contact_phone: str | None,
    priority: str | None = None,
    notes: str | None = None,
    branch_id: str | None = None,
    source: str | None = None,
    original_branch_order_id: int | None = None,
) -> Order:
    """Validate a draft against current stock and store it as a Pending order.

    Every problem is collected before rejecting. Stock is only read here;
    reservation happens when the order is accepted or shipped.
    """
    values = {
        'branch_name': branch_name,
        'branch_location': branch_location,
        'expected_delivery_date': expected_delivery_date,
        'contact_person': contact_person,
        'contact_phone': contact_phone,
    }
    errors: list[str] = [f'{label} is required' for label, key in REQUIRED_FIELDS if _is_blank(values[key])]

    delivery_date = None
    if not _is_blank(expected_delivery_date):
        delivery_date = _parse_date(expected_delivery_date)
        if delivery_date is None:
            errors.append('expectedDeliveryDate must be a valid date')

    order_priority = OrderPriority.NORMAL
    if not _is_blank(priority):
        try:
            order_priority = OrderPriority(priority)
        except ValueError:
            errors.append(f"priority must be one of {', '.join(p.value for p in OrderPriority)}")

    resolved_branch_id = (branch_id or '').strip() or settings.branch_id_by_name.get((branch_name or '').strip())
    if not _is_blank(branch_name) and not resolved_branch_id:
        errors.append(f'Unknown branch "{branch_name}": branchId is required')

    lines: list[tuple[str, int]] = []
    if not isinstance(items, list) or not items:
        errors.append('At least one item must be specified')
    else:
        requested_so_far: dict[str, int] = {}
        for raw in items:
            item_name = raw.get('item_name')
            if isinstance(item_name, str):
                item_name = item_name.strip()
            raw_quantity = raw.get('quantity')
            if _is_blank(item_name) or _is_blank(raw_quantity):
                errors.append(f"Item {item_name or 'Unknown'} is missing required fields")
                continue

            inventory_item = inventory_service.find_by_name(db, item_name)
            if inventory_item is None:
                errors.append(f'Item "{item_name}" not found in inventory. Please add it to inventory first.')
                continue

            quantity = _parse_quantity(raw_quantity)
            if quantity is None or quantity <= 0:
                errors.append(f'Invalid quantity for {item_name}: must be a positive number')
                continue

            available = inventory_item.quantity - requested_so_far.get(item_name, 0)
            if available < quantity:
                errors.append(f'Insufficient stock for {item_name}. Available: {available}, Requested: {quantity}')
                continue

            requested_so_far[item_name] = requested_so_far.get(item_name, 0) + quantity
            lines.append((item_name, quantity))

    if errors:
        raise ValidationFailed('Validation failed', errors)

    order = Order(
        branch_name=branch_name.strip(),
        branch_location=branch_location.strip(),
        branch_id=resolved_branch_id,
        status=OrderStatus.PENDING,
        priority=order_priority,
        expected_delivery_date=delivery_date,
        contact_person=contact_person.strip(),
        contact_phone=contact_phone.strip(),
        notes=notes.strip() if notes and notes.strip() else None,
        source=source,
        original_branch_order_id=original_branch_order_id,
        items=[OrderItem(item_name=name, quantity=quantity) for name, quantity in lines],
    )
    db.add(order)
    db.flush()
    logger.info('Order %s submitted by %s with %s line(s)', order.id, order.branch_name, len(lines))
    return order


def accept_order(db: Session, *, order_id: int, actor: str) -> tuple[Order, list[dict]]:
    order = get_order(db, order_id=order_id)
    if order.status != OrderStatus.PENDING:
        raise InvalidTransition(
            f'Order cannot be accepted. Current status: {order.status.value}. Required status: {OrderStatus.PENDING.value}'
        )

    plan = inventory_service.plan_reservation(db, [(item.item_name, item.quantity) for item in order.items])
    if not plan.ok:
        raise ValidationFailed('Cannot accept order due to inventory issues', plan.errors)
    inventory_updates = inventory_service.apply_reservation(db, plan)

    order.status = OrderStatus.ACCEPTED
    order.accepted_date = _now()
    order.accepted_by = actor
    order.updated_at = _now()
    db.flush()

    mirror_order_status(db, order)
    logger.info('Order %s accepted by %s, %s item(s) reserved', order.id, actor, len(inventory_updates))
    return order, inventory_updates


def _credit_branch(db: Session, order: Order) -> list[dict]:
    branch_id = resolve_branch_id(branch_id=order.branch_id, branch_name=order.branch_name)
    if order.branch_id is None:
        order.branch_id = branch_id

    updates: list[dict] = []
    for item in order.items:
        try:
            with db.begin_nested():
                factory_item = inventory_service.find_by_name(db, item.item_name)
                updates.append(
                    credit_on_delivery(
                        db,
                        branch_id=branch_id,
                        branch_name=order.branch_name,
                        name=item.item_name,
                        quantity=item.quantity,
                        defaults=defaults_from_factory_item(factory_item),
                    )
                )
        except StaleDataError:
            raise
        except Exception:
            # Partial credit is reported through a shorter update list.
            logger.exception('Could not credit %s to branch %s for order %s', item.item_name, branch_id, order.id)
    logger.info('Order %s delivered: %s/%s line(s) credited to %s', order.id, len(updates), len(order.items), branch_id)
    return updates


def set_order_status(db: Session, *, order_id: int, status) -> tuple[Order, list[dict] | None]:
    new_status = _parse_status(status)
    order = get_order(db, order_id=order_id)
    current = order.status

    if current == OrderStatus.DELIVERED:
        raise InvalidTransition(f'Order has already been delivered. Current status: {current.value}')

    inventory_updates: list[dict] = []
    if new_status == OrderStatus.SHIPPED and current in (OrderStatus.PENDING, OrderStatus.PROCESSING):
        # Direct ship without a prior accept reserves stock here instead.
        plan = inventory_service.plan_reservation(db, [(item.item_name, item.quantity) for item in order.items])
        if plan.shortages:
            first = plan.shortages[0]
            raise InsufficientStock(first.item_name, first.available, first.requested, plan.errors)
        if not plan.ok:
            raise ValidationFailed('Cannot ship order due to inventory issues', plan.errors)
        inventory_updates = inventory_service.apply_reservation(db, plan)
    elif new_status == OrderStatus.DELIVERED:
        if current != OrderStatus.SHIPPED:
            raise InvalidTransition(
                f'Order cannot be delivered. Current status: {current.value}. Required status: {OrderStatus.SHIPPED.value}'
            )
        inventory_updates = _credit_branch(db, order)

    order.status = new_status
    order.updated_at = _now()
    db.flush()

    mirror_order_status(db, order)
    logger.info('Order %s moved %s -> %s', order.id, current.value, new_status.value)
    return order, inventory_updates or None


def delete_order(db: Session, *, order_id: int) -> dict:
    """Hard delete. Stock already reserved for the order is not returned."""
    order = get_order(db, order_id=order_id)
    snapshot = order_to_dict(order)
    db.delete(order)
    db.flush()
    return snapshot
