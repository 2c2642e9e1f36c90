from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class CustomerCreate(BaseModel):
    code: str = Field(..., min_length=1, description="Customer code, unique per tenant")
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    billing_address: Optional[str] = None
    shipping_address1: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_state: Optional[str] = None
    shipping_zip: Optional[str] = None
    shipping_country: Optional[str] = None
    payment_terms: Optional[str] = None
    credit_limit: Optional[float] = Field(None, ge=0)
    tax_exempt: bool = False
    is_active: bool = True


class CustomerRead(CustomerCreate):
    id: UUID
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SalesOrderLineCreate(BaseModel):
    item_id: UUID
    description: Optional[str] = None
    qty_ordered: float = Field(..., gt=0)
    uom: str
    unit_price: float = Field(0, ge=0)
    discount: float = Field(0, ge=0, description="Amount taken off the line before tax")
    tax_rate: float = Field(0, ge=0, le=100, description="Tax in percent")


class SalesOrderCreate(BaseModel):
    """Sales order; ship-to fields default to the customer's shipping address."""
    site_id: UUID
    customer_id: UUID
    order_number: str = Field(..., min_length=1)
    customer_po: Optional[str] = None
    order_date: Optional[date] = None
    requested_date: Optional[date] = None
    promised_date: Optional[date] = None
    ship_to_name: Optional[str] = None
    ship_to_address1: Optional[str] = None
    ship_to_city: Optional[str] = None
    ship_to_state: Optional[str] = None
    ship_to_zip: Optional[str] = None
    ship_to_country: Optional[str] = None
    shipping_amount: float = Field(0, ge=0)
    discount_amount: float = Field(0, ge=0)
    notes: Optional[str] = None
    lines: List[SalesOrderLineCreate] = Field(..., min_length=1)


class SalesOrderUpdate(BaseModel):
    customer_po: Optional[str] = None
    requested_date: Optional[date] = None
    promised_date: Optional[date] = None
    ship_to_name: Optional[str] = None
    ship_to_address1: Optional[str] = None
    ship_to_city: Optional[str] = None
    ship_to_state: Optional[str] = None
    ship_to_zip: Optional[str] = None
    ship_to_country: Optional[str] = None
    shipping_amount: Optional[float] = Field(None, ge=0)
    discount_amount: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None
    lines: Optional[List[SalesOrderLineCreate]] = Field(None, description="Replaces every line when given")


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class SalesOrderLineRead(BaseModel):
    id: UUID
    line_number: int
    item_id: UUID
    description: Optional[str] = None
    qty_ordered: float
    qty_allocated: float
    qty_picked: float
    qty_shipped: float
    uom: str
    unit_price: float
    discount: float
    tax_rate: float
    line_total: float
    status: str

    class Config:
        from_attributes = True


class SalesOrderRead(BaseModel):
    id: UUID
    site_id: UUID
    customer_id: UUID
    order_number: str
    customer_po: Optional[str] = None
    status: str
    order_date: date
    requested_date: Optional[date] = None
    promised_date: Optional[date] = None
    ship_to_name: Optional[str] = None
    ship_to_address1: Optional[str] = None
    ship_to_city: Optional[str] = None
    ship_to_state: Optional[str] = None
    ship_to_zip: Optional[str] = None
    ship_to_country: Optional[str] = None
    subtotal: float
    tax_amount: float
    shipping_amount: float
    discount_amount: float
    total: float
    notes: Optional[str] = None
    lines: List[SalesOrderLineRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AllocationLine(BaseModel):
    line_id: UUID
    item_id: UUID
    qty_ordered: float
    qty_allocated: float
    available: float
    shortfall: float


class AllocationResult(BaseModel):
    order_id: UUID
    status: str
    fully_allocated: bool
    lines: List[AllocationLine] = Field(default_factory=list)


class PickTaskCreate(BaseModel):
    assigned_to_user_id: Optional[UUID] = None


class PickTaskComplete(BaseModel):
    picked: Optional[Dict[UUID, float]] = Field(
        None, description="Picked quantity per pick line id; omitted lines are picked in full"
    )


class PickTaskLineRead(BaseModel):
    id: UUID
    sales_order_line_id: UUID
    item_id: UUID
    location_id: UUID
    qty_to_pick: float
    qty_picked: float
    uom: str
    status: str

    class Config:
        from_attributes = True


class PickTaskRead(BaseModel):
    id: UUID
    site_id: UUID
    sales_order_id: UUID
    task_number: str
    status: str
    priority: str
    assigned_to_user_id: Optional[UUID] = None
    completed_at: Optional[datetime] = None
    lines: List[PickTaskLineRead] = Field(default_factory=list)
    created_at: datetime

    class Config:
        from_attributes = True


class ShipRequest(BaseModel):
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None


class ShipmentRead(BaseModel):
    id: UUID
    site_id: UUID
    sales_order_id: UUID
    shipment_number: str
    status: str
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    class Config:
        from_attributes = True
