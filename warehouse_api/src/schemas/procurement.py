from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

PurchaseOrderStatus = Literal[
    "DRAFT", "PENDING_APPROVAL", "APPROVED", "SENT", "PARTIALLY_RECEIVED", "RECEIVED", "CLOSED", "CANCELLED"
]


class SupplierCreate(BaseModel):
    code: str = Field(..., min_length=1, description="Supplier code, unique per tenant")
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    payment_terms: Optional[str] = None
    is_active: bool = True


class SupplierRead(SupplierCreate):
    id: UUID
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PurchaseOrderLineCreate(BaseModel):
    item_id: UUID
    qty_ordered: float = Field(..., gt=0)
    uom: str
    unit_price: float = Field(0, ge=0)


class PurchaseOrderCreate(BaseModel):
    site_id: UUID
    supplier_id: UUID
    po_number: str = Field(..., min_length=1)
    order_date: Optional[date] = None
    expected_date: Optional[date] = None
    notes: Optional[str] = None
    lines: List[PurchaseOrderLineCreate] = Field(..., min_length=1)


class PurchaseOrderStatusUpdate(BaseModel):
    status: PurchaseOrderStatus


class PurchaseOrderLineRead(BaseModel):
    id: UUID
    line_number: int
    item_id: UUID
    qty_ordered: float
    qty_received: float
    uom: str
    unit_price: float
    status: str

    class Config:
        from_attributes = True


class PurchaseOrderRead(BaseModel):
    id: UUID
    site_id: UUID
    supplier_id: UUID
    po_number: str
    status: str
    order_date: Optional[date] = None
    expected_date: Optional[date] = None
    notes: Optional[str] = None
    approved_by_user_id: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    lines: List[PurchaseOrderLineRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ReceiptLineCreate(BaseModel):
    purchase_order_line_id: UUID
    qty_received: float = Field(..., gt=0)
    uom: Optional[str] = Field(None, description="Defaults to the purchase order line unit")
    notes: Optional[str] = None


class ReceiptCreate(BaseModel):
    """Goods received against a purchase order into one location."""
    location_id: UUID = Field(..., description="Location the goods are received into")
    receipt_date: Optional[date] = None
    received_by: Optional[str] = None
    notes: Optional[str] = None
    lines: List[ReceiptLineCreate] = Field(..., min_length=1)


class ReceiptLineRead(BaseModel):
    id: UUID
    purchase_order_line_id: UUID
    item_id: UUID
    qty_received: float
    uom: str
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class ReceiptRead(BaseModel):
    id: UUID
    site_id: UUID
    purchase_order_id: UUID
    receipt_number: str
    receipt_date: date
    location_id: UUID
    received_by: Optional[str] = None
    notes: Optional[str] = None
    lines: List[ReceiptLineRead] = Field(default_factory=list)
    created_at: datetime

    class Config:
        from_attributes = True
