from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')


class OrderItemDraft(CamelModel):
    item_name: str | None = None
    # Left untyped so bad quantities are reported alongside every other draft problem.
    quantity: Any = None


class OrderDraft(CamelModel):
    branch_name: str | None = None
    branch_location: str | None = None
    branch_id: str | None = None
    items: list[OrderItemDraft] | None = None
    expected_delivery_date: Any = None
    contact_person: str | None = None
    contact_phone: str | None = None
    priority: str | None = None
    notes: str | None = None
    source: str | None = None
    original_branch_order_id: int | None = None


class StatusUpdate(CamelModel):
    status: str


class InventoryItemCreate(CamelModel):
    name: str
    category: str | None = None
    quantity: int = 0
    unit: str = 'pieces'
    min_stock_level: int = 10
    max_stock_level: int = 100
    price: Decimal = Decimal('0')


class InventoryItemUpdate(CamelModel):
    category: str | None = None
    unit: str | None = None
    min_stock_level: int | None = None
    max_stock_level: int | None = None
    price: Decimal | None = None


class StockAdjustment(CamelModel):
    delta: int


class BranchSyncRequest(CamelModel):
    item_name: str | None = None
    branch_id: str | None = None
    branch_name: str | None = None


class AddWasteRequest(CamelModel):
    source_branch: str | None = None
    source_branch_id: str | None = None
    waste_weight: Any = None
    waste_type: str | None = None
    collection_request_id: str | None = None
    processed_by: str | None = None


class Coordinates(CamelModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class WaterLevelReport(CamelModel):
    brigade_id: str
    brigade_name: str | None = None
    water_level: Any = None
    coordinates: Coordinates | None = None
