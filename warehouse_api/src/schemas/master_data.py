from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

UOMS = ("EA", "FT", "YD", "ROLL")
ITEM_CATEGORIES = ("PRODUCTION", "PACKAGING", "FACILITY", "CHEMICAL_MRO")
LOCATION_TYPES = ("RECEIVING", "STOCK", "WIP", "QC_HOLD", "SHIPPING")

Uom = Literal["EA", "FT", "YD", "ROLL"]
ItemCategory = Literal["PRODUCTION", "PACKAGING", "FACILITY", "CHEMICAL_MRO"]
LocationType = Literal["RECEIVING", "STOCK", "WIP", "QC_HOLD", "SHIPPING"]


class SiteBase(BaseModel):
    code: str = Field(..., min_length=1, description="Site code, unique per tenant")
    name: str = Field(..., description="Site name")
    address: Optional[str] = Field(None, description="Postal address")
    timezone: Optional[str] = Field(None, description="IANA timezone name")
    is_active: bool = Field(True, description="Active flag")


class SiteCreate(SiteBase):
    """Payload for creating a site."""


class SiteUpdate(BaseModel):
    """Partial update of a site."""
    name: Optional[str] = None
    address: Optional[str] = None
    timezone: Optional[str] = None
    is_active: Optional[bool] = None


class SiteRead(SiteBase):
    id: UUID = Field(..., description="Site ID")
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UomConversion(BaseModel):
    """Alternate unit with its factor to the base unit."""
    uom: Uom = Field(..., description="Alternate unit of measure")
    to_base: float = Field(..., gt=0, description="Base units per one alternate unit")

    class Config:
        from_attributes = True


class ItemBase(BaseModel):
    sku: str = Field(..., min_length=1, description="Stock keeping unit, unique per tenant")
    name: str = Field(..., description="Item name")
    description: Optional[str] = Field(None, description="Item description")
    category: ItemCategory = Field(..., description="Item category")
    base_uom: Uom = Field(..., description="Unit balances are kept in")
    min_qty_base: Optional[float] = Field(None, ge=0)
    max_qty_base: Optional[float] = Field(None, ge=0)
    reorder_point_base: Optional[float] = Field(None, ge=0, description="Replenish at or below this on-hand quantity")
    lead_time_days: Optional[int] = Field(None, ge=0)
    barcode: Optional[str] = None
    standard_cost: Optional[float] = Field(None, ge=0, description="Unit cost used for valuation")
    is_active: bool = True


class ItemCreate(ItemBase):
    """Payload for creating an item with its allowed alternate units."""
    allowed_uoms: List[UomConversion] = Field(default_factory=list, description="Alternate units and factors")


class ItemUpdate(BaseModel):
    """Partial item update; allowed_uoms, when given, replaces the existing conversions."""
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[ItemCategory] = None
    min_qty_base: Optional[float] = Field(None, ge=0)
    max_qty_base: Optional[float] = Field(None, ge=0)
    reorder_point_base: Optional[float] = Field(None, ge=0)
    lead_time_days: Optional[int] = Field(None, ge=0)
    barcode: Optional[str] = None
    standard_cost: Optional[float] = Field(None, ge=0)
    is_active: Optional[bool] = None
    allowed_uoms: Optional[List[UomConversion]] = None


class ItemRead(ItemBase):
    id: UUID = Field(..., description="Item ID")
    allowed_uoms: List[UomConversion] = Field(default_factory=list, validation_alias="conversions")
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        populate_by_name = True


class LocationCreate(BaseModel):
    """Payload for creating a storage location."""
    site_id: UUID = Field(..., description="Owning site")
    zone: Optional[str] = Field(None, description="Zone code")
    bin: Optional[str] = Field(None, description="Bin code")
    label: str = Field(..., min_length=1, description="Location label, unique per site")
    type: LocationType = Field(..., description="Location type")
    is_active: bool = True


class LocationRead(LocationCreate):
    id: UUID = Field(..., description="Location ID")
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
