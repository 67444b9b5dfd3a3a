from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# SQLite only autoincrements INTEGER primary keys.
Id = BigInteger().with_variant(Integer, 'sqlite')


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


class Base(DeclarativeBase):
    pass


class StockStatus(str, Enum):
    OUT_OF_STOCK = 'Out of Stock'
    LOW_STOCK = 'Low Stock'
    IN_STOCK = 'In Stock'


class OrderStatus(str, Enum):
    PENDING = 'Pending'
    PROCESSING = 'Processing'
    ACCEPTED = 'Accepted'
    SHIPPED = 'Shipped'
    DELIVERED = 'Delivered'
    CANCELLED = 'Cancelled'


OPEN_ORDER_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.PROCESSING,
    OrderStatus.ACCEPTED,
    OrderStatus.SHIPPED,
)


class OrderPriority(str, Enum):
    LOW = 'Low'
    NORMAL = 'Normal'
    HIGH = 'High'
    URGENT = 'Urgent'


class SyncStatus(str, Enum):
    PENDING = 'PENDING'
    SUCCESS = 'SUCCESS'
    FAILED = 'FAILED'


class EmergencyPriority(str, Enum):
    LOW = 'Low'
    MEDIUM = 'Medium'
    HIGH = 'High'
    CRITICAL = 'Critical'


def stock_status(quantity: int, min_stock_level: int) -> StockStatus:
    if quantity <= 0:
        return StockStatus.OUT_OF_STOCK
    if quantity <= min_stock_level:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


class InventoryItem(Base):
    __tablename__ = 'inventory_items'
    __table_args__ = (CheckConstraint('quantity >= 0', name='inventory_items_quantity_non_negative'),)

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    category: Mapped[str | None] = mapped_column(Text)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    unit: Mapped[str] = mapped_column(Text, nullable=False, default='pieces', server_default='pieces')
    min_stock_level: Mapped[int] = mapped_column(Integer, nullable=False, default=10, server_default='10')
    max_stock_level: Mapped[int] = mapped_column(Integer, nullable=False, default=100, server_default='100')
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0.00'), server_default='0')
    status: Mapped[StockStatus] = mapped_column(
        SQLEnum(StockStatus, name='stock_status'), nullable=False, default=StockStatus.OUT_OF_STOCK
    )
    revision: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, server_default=func.now())

    __mapper_args__ = {'version_id_col': revision}


class BranchInventoryItem(Base):
    __tablename__ = 'branch_inventory_items'
    __table_args__ = (
        UniqueConstraint('branch_id', 'name', name='branch_inventory_items_branch_name_key'),
        CheckConstraint('quantity >= 0', name='branch_inventory_items_quantity_non_negative'),
    )

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    branch_id: Mapped[str] = mapped_column(String(32), nullable=False)
    branch_name: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    unit: Mapped[str] = mapped_column(Text, nullable=False)
    min_stock_level: Mapped[int] = mapped_column(Integer, nullable=False)
    max_stock_level: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0.00'), server_default='0')
    status: Mapped[StockStatus] = mapped_column(
        SQLEnum(StockStatus, name='stock_status'), nullable=False, default=StockStatus.OUT_OF_STOCK
    )
    revision: Mapped[int] = mapped_column(Integer, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, server_default=func.now())

    __mapper_args__ = {'version_id_col': revision}


class BranchOrder(Base):
    __tablename__ = 'branch_orders'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    branch_id: Mapped[str] = mapped_column(String(32), nullable=False)
    branch_name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name='order_status'), nullable=False, default=OrderStatus.PENDING
    )
    accepted_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, server_default=func.now())


class Order(Base):
    __tablename__ = 'orders'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    branch_name: Mapped[str] = mapped_column(Text, nullable=False)
    branch_location: Mapped[str] = mapped_column(Text, nullable=False)
    branch_id: Mapped[str | None] = mapped_column(String(32))
    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name='order_status'), nullable=False, default=OrderStatus.PENDING
    )
    priority: Mapped[OrderPriority] = mapped_column(
        SQLEnum(OrderPriority, name='order_priority'), nullable=False, default=OrderPriority.NORMAL
    )
    order_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, server_default=func.now())
    expected_delivery_date: Mapped[date] = mapped_column(Date, nullable=False)
    accepted_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    accepted_by: Mapped[str | None] = mapped_column(Text)
    contact_person: Mapped[str] = mapped_column(Text, nullable=False)
    contact_phone: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    source: Mapped[str | None] = mapped_column(Text)
    # Not a foreign key: a dangling id must surface as a failed mirror event.
    original_branch_order_id: Mapped[int | None] = mapped_column(BigInteger)
    revision: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, server_default=func.now())

    items: Mapped[list[OrderItem]] = relationship(
        back_populates='order',
        cascade='all, delete-orphan',
        order_by='OrderItem.id',
    )

    __mapper_args__ = {'version_id_col': revision}


class OrderItem(Base):
    __tablename__ = 'order_items'
    __table_args__ = (CheckConstraint('quantity > 0', name='order_items_quantity_positive'),)

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    order_id: Mapped[int] = mapped_column(Id, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    order: Mapped[Order] = relationship(back_populates='items')


class BranchOrderSyncEvent(Base):
    __tablename__ = 'branch_order_sync_events'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    order_id: Mapped[int | None] = mapped_column(Id, ForeignKey('orders.id', ondelete='SET NULL'))
    branch_order_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[SyncStatus] = mapped_column(
        SQLEnum(SyncStatus, name='sync_status'), nullable=False, default=SyncStatus.PENDING, server_default='PENDING'
    )
    request_payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    error_text: Mapped[str | None] = mapped_column(Text)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    last_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, server_default=func.now())


class FactoryWasteBin(Base):
    __tablename__ = 'factory_waste_bins'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1, server_default='1')
    current_level: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0'), server_default='0')
    capacity: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_recycled: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    last_recycled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_recycled_by: Mapped[str | None] = mapped_column(Text)
    revision: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, server_default=func.now())

    __mapper_args__ = {'version_id_col': revision}


class FactoryWasteEntry(Base):
    __tablename__ = 'factory_waste_entries'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    bin_id: Mapped[int] = mapped_column(Integer, ForeignKey('factory_waste_bins.id', ondelete='CASCADE'), nullable=False)
    source_branch: Mapped[str] = mapped_column(Text, nullable=False)
    source_branch_id: Mapped[str] = mapped_column(String(32), nullable=False)
    waste_weight: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    waste_type: Mapped[str] = mapped_column(Text, nullable=False)
    collection_request_id: Mapped[str] = mapped_column(Text, nullable=False)
    processed_by: Mapped[str] = mapped_column(Text, nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, server_default=func.now())


class BrigadeWaterState(Base):
    __tablename__ = 'brigade_water_states'

    brigade_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    brigade_name: Mapped[str | None] = mapped_column(Text)
    water_level: Mapped[int] = mapped_column(Integer, nullable=False, default=100, server_default='100')
    alert_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, server_default=func.now())


class EmergencyRequest(Base):
    __tablename__ = 'emergency_requests'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    brigade_id: Mapped[str] = mapped_column(String(64), nullable=False)
    brigade_name: Mapped[str] = mapped_column(Text, nullable=False)
    brigade_location: Mapped[str] = mapped_column(Text, nullable=False)
    request_type: Mapped[str] = mapped_column(Text, nullable=False, default='Emergency Water Supply')
    priority: Mapped[EmergencyPriority] = mapped_column(
        SQLEnum(EmergencyPriority, name='emergency_priority'), nullable=False, default=EmergencyPriority.CRITICAL
    )
    water_level: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default='Pending', server_default='Pending')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    actor: Mapped[str | None] = mapped_column(Text)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    ip: Mapped[str | None] = mapped_column(Text)
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, server_default=func.now())
