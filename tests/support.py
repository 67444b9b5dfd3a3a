from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from aqualink.models import Base, InventoryItem, stock_status


def _enable_savepoints(engine) -> None:
    # pysqlite starts transactions lazily and breaks SAVEPOINT unless BEGIN is emitted explicitly.
    @event.listens_for(engine, 'connect')
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, 'begin')
    def _on_begin(conn):
        conn.exec_driver_sql('BEGIN')


def make_engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    _enable_savepoints(engine)
    Base.metadata.create_all(bind=engine)
    return engine


def make_session_factory(engine=None) -> sessionmaker:
    return sessionmaker(bind=engine or make_engine(), autoflush=False, expire_on_commit=False)


def add_item(
    db: Session,
    name: str,
    quantity: int,
    *,
    min_stock_level: int = 5,
    max_stock_level: int = 100,
    unit: str = 'pieces',
    price: str = '10.00',
) -> InventoryItem:
    item = InventoryItem(
        name=name,
        quantity=quantity,
        unit=unit,
        min_stock_level=min_stock_level,
        max_stock_level=max_stock_level,
        price=Decimal(price),
        status=stock_status(quantity, min_stock_level),
    )
    db.add(item)
    db.flush()
    return item


def draft(items: list[dict] | None = None, **overrides) -> dict:
    values = {
        'branch_name': 'Galle Branch',
        'branch_location': 'Galle',
        'items': items if items is not None else [{'item_name': 'Filter-A', 'quantity': 5}],
        'expected_delivery_date': (date.today() + timedelta(days=3)).isoformat(),
        'contact_person': 'Nimal Perera',
        'contact_phone': '0771234567',
    }
    values.update(overrides)
    return values
