from __future__ import annotations

from dataclasses import dataclass
import calendar
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from aqualink.config import settings
from aqualink.models import (
    OPEN_ORDER_STATUSES,
    BranchInventoryItem,
    FactoryWasteEntry,
    InventoryItem,
    Order,
    OrderItem,
    OrderPriority,
    OrderStatus,
    StockStatus,
)
from aqualink.services.errors import ValidationFailed

RECENT_ORDER_ACTIVITY_LIMIT = 5


def _percentage(part, whole) -> float:
    if not whole:
        return 0.0
    return round(float(part) / float(whole) * 100, 1)


def _to_iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def order_stats(db: Session) -> dict:
    counts = {
        status: int(total)
        for status, total in db.execute(select(Order.status, func.count(Order.id)).group_by(Order.status)).all()
    }
    open_waiting = [OrderStatus.PENDING, OrderStatus.PROCESSING]
    priority_counts = {
        priority: int(total)
        for priority, total in db.execute(
            select(Order.priority, func.count(Order.id))
            .where(Order.status.in_(open_waiting))
            .group_by(Order.priority)
        ).all()
    }
    total = sum(counts.values())
    delivered = counts.get(OrderStatus.DELIVERED, 0)
    return {
        'totalOrders': total,
        'pendingOrders': counts.get(OrderStatus.PENDING, 0),
        'processingOrders': counts.get(OrderStatus.PROCESSING, 0),
        'acceptedOrders': counts.get(OrderStatus.ACCEPTED, 0),
        'shippedOrders': counts.get(OrderStatus.SHIPPED, 0),
        'deliveredOrders': delivered,
        'cancelledOrders': counts.get(OrderStatus.CANCELLED, 0),
        'urgentOrders': priority_counts.get(OrderPriority.URGENT, 0),
        'highPriorityOrders': priority_counts.get(OrderPriority.HIGH, 0),
        'completionPercentage': _percentage(delivered, total),
    }


def inventory_stats(db: Session) -> dict:
    items = db.execute(select(InventoryItem)).scalars().all()
    total_value = sum((Decimal(item.quantity) * Decimal(item.price) for item in items), Decimal('0'))
    return {
        'totalItems': len(items),
        'totalQuantity': sum(item.quantity for item in items),
        'lowStockItems': sum(1 for item in items if item.status == StockStatus.LOW_STOCK),
        'outOfStockItems': sum(1 for item in items if item.status == StockStatus.OUT_OF_STOCK),
        'totalValue': float(total_value.quantize(Decimal('0.01'))),
    }


@dataclass(frozen=True)
class BranchReport:
    branch_id: str
    branch_name: str | None
    total_items: int
    total_quantity: int
    low_stock_items: int
    out_of_stock_items: int
    stock_value: Decimal
    utilisation_percentage: float
    waste_contributed_kg: Decimal
    delivered_orders: int
    open_orders: int

    def to_dict(self) -> dict:
        return {
            'branchId': self.branch_id,
            'branchName': self.branch_name,
            'totalItems': self.total_items,
            'totalQuantity': self.total_quantity,
            'lowStockItems': self.low_stock_items,
            'outOfStockItems': self.out_of_stock_items,
            'stockValue': float(self.stock_value),
            'utilisationPercentage': self.utilisation_percentage,
            'wasteContributedKg': float(self.waste_contributed_kg),
            'deliveredOrders': self.delivered_orders,
            'openOrders': self.open_orders,
        }


def branch_report(db: Session, *, branch_id: str) -> BranchReport:
    items = db.execute(
        select(BranchInventoryItem).where(BranchInventoryItem.branch_id == branch_id)
    ).scalars().all()
    waste = db.execute(
        select(func.coalesce(func.sum(FactoryWasteEntry.waste_weight), 0)).where(
            FactoryWasteEntry.source_branch_id == branch_id
        )
    ).scalar_one()
    order_counts = {
        status: int(total)
        for status, total in db.execute(
            select(Order.status, func.count(Order.id)).where(Order.branch_id == branch_id).group_by(Order.status)
        ).all()
    }

    total_quantity = sum(item.quantity for item in items)
    total_capacity = sum(item.max_stock_level for item in items)
    stock_value = sum((Decimal(item.quantity) * Decimal(item.price) for item in items), Decimal('0'))
    return BranchReport(
        branch_id=branch_id,
        branch_name=items[0].branch_name if items else None,
        total_items=len(items),
        total_quantity=total_quantity,
        low_stock_items=sum(1 for item in items if item.status == StockStatus.LOW_STOCK),
        out_of_stock_items=sum(1 for item in items if item.status == StockStatus.OUT_OF_STOCK),
        stock_value=stock_value.quantize(Decimal('0.01')),
        utilisation_percentage=_percentage(total_quantity, total_capacity),
        waste_contributed_kg=Decimal(str(waste)),
        delivered_orders=order_counts.get(OrderStatus.DELIVERED, 0),
        open_orders=sum(order_counts.get(status, 0) for status in OPEN_ORDER_STATUSES),
    )


def recent_activities(db: Session, *, limit: int | None = None) -> list[dict]:
    recent_orders = db.execute(
        select(Order).order_by(Order.order_date.desc(), Order.id.desc()).limit(RECENT_ORDER_ACTIVITY_LIMIT)
    ).scalars().all()
    alerts = db.execute(
        select(InventoryItem).where(InventoryItem.status.in_([StockStatus.LOW_STOCK, StockStatus.OUT_OF_STOCK]))
    ).scalars().all()

    activities: list[tuple[datetime, dict]] = []
    for order in recent_orders:
        activities.append(
            (
                order.order_date,
                {
                    'type': 'order',
                    'message': f'New order {order.id} received from {order.branch_name}',
                    'timestamp': _to_iso(order.order_date),
                    'status': order.status.value,
                },
            )
        )
    for item in alerts:
        if item.status == StockStatus.OUT_OF_STOCK:
            message = f'Out of stock: {item.name}'
            level = 'critical'
        else:
            message = f'Low stock alert: {item.name} ({item.quantity} remaining)'
            level = 'warning'
        activities.append(
            (
                item.updated_at,
                {'type': 'inventory', 'message': message, 'timestamp': _to_iso(item.updated_at), 'status': level},
            )
        )

    def sort_key(entry: tuple[datetime, dict]) -> datetime:
        moment = entry[0]
        return moment.replace(tzinfo=timezone.utc) if moment.tzinfo is None else moment

    activities.sort(key=sort_key, reverse=True)
    return [activity for _, activity in activities[: limit or settings.recent_activity_limit]]


@dataclass(frozen=True)
class MonthlyFigures:
    year: int
    month: int
    production: int
    recycling: Decimal
    orders: int
    delivered_orders: int

    @property
    def efficiency(self) -> int:
        """Recycled weight per delivered unit as a percentage, capped at 100."""
        if not self.production:
            return 0
        return min(round(float(self.recycling) / self.production * 100), 100)

    def to_dict(self) -> dict:
        return {
            'month': calendar.month_abbr[self.month],
            'monthNumber': self.month,
            'year': self.year,
            'production': self.production,
            'recycling': round(float(self.recycling)),
            'orders': self.orders,
            'deliveredOrders': self.delivered_orders,
            'efficiency': self.efficiency,
        }


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def monthly_summary(db: Session, *, year: int | None = None) -> list[MonthlyFigures]:
    """Twelve rows for ``year``: delivered units, recycled weight and orders placed.

    Deliveries count in the month the order last changed status, which for a
    Delivered order is the delivery itself.
    """
    if year is None:
        year = datetime.now(tz=timezone.utc).year
    if not 1 <= year < 9999:
        raise ValidationFailed('Invalid year', ['year must be between 1 and 9998'])

    start = datetime(year, 1, 1, tzinfo=timezone.utc)
    end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    production = {month: 0 for month in range(1, 13)}
    delivered = {month: 0 for month in range(1, 13)}
    recycling = {month: Decimal('0') for month in range(1, 13)}
    placed = {month: 0 for month in range(1, 13)}

    deliveries = db.execute(
        select(Order.id, Order.updated_at, func.coalesce(func.sum(OrderItem.quantity), 0))
        .outerjoin(OrderItem, OrderItem.order_id == Order.id)
        .where(Order.status == OrderStatus.DELIVERED, Order.updated_at >= start, Order.updated_at < end)
        .group_by(Order.id, Order.updated_at)
    ).all()
    for _, moment, units in deliveries:
        month = _as_utc(moment).month
        production[month] += int(units)
        delivered[month] += 1

    for moment, weight in db.execute(
        select(FactoryWasteEntry.date, FactoryWasteEntry.waste_weight).where(
            FactoryWasteEntry.date >= start, FactoryWasteEntry.date < end
        )
    ).all():
        recycling[_as_utc(moment).month] += Decimal(str(weight))

    for (moment,) in db.execute(
        select(Order.order_date).where(Order.order_date >= start, Order.order_date < end)
    ).all():
        placed[_as_utc(moment).month] += 1

    return [
        MonthlyFigures(
            year=year,
            month=month,
            production=production[month],
            recycling=recycling[month],
            orders=placed[month],
            delivered_orders=delivered[month],
        )
        for month in range(1, 13)
    ]
