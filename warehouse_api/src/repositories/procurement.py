from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.procurement import PurchaseOrder, Receipt, Supplier
from .base import BaseRepository


class SupplierRepository(BaseRepository):
    """Repository for suppliers."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def list_suppliers(
        self, *, search: Optional[str], limit: int, offset: int
    ) -> List[Supplier]:
        stmt = select(Supplier)
        if search:
            like = f"%{search}%"
            stmt = stmt.where(or_(Supplier.code.ilike(like), Supplier.name.ilike(like)))
        stmt = stmt.order_by(Supplier.code).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def get_supplier(self, supplier_id: UUID) -> Optional[Supplier]:
        stmt = select(Supplier).where(Supplier.id == supplier_id)
        return await self.scalar_one_or_none(stmt)

    async def get_supplier_by_code(self, code: str) -> Optional[Supplier]:
        stmt = select(Supplier).where(Supplier.code == code)
        return await self.scalar_one_or_none(stmt)


class PurchaseOrderRepository(BaseRepository):
    """Repository for purchase orders and receipts."""

    async def list_purchase_orders(
        self,
        *,
        supplier_id: Optional[UUID],
        status: Optional[str],
        site_id: Optional[UUID],
        limit: int,
        offset: int,
    ) -> List[PurchaseOrder]:
        stmt = select(PurchaseOrder)
        if supplier_id:
            stmt = stmt.where(PurchaseOrder.supplier_id == supplier_id)
        if status:
            stmt = stmt.where(PurchaseOrder.status == status)
        if site_id:
            stmt = stmt.where(PurchaseOrder.site_id == site_id)
        stmt = stmt.order_by(PurchaseOrder.order_date.desc().nullslast(), PurchaseOrder.po_number)
        stmt = stmt.offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def get_purchase_order(self, po_id: UUID) -> Optional[PurchaseOrder]:
        stmt = select(PurchaseOrder).where(PurchaseOrder.id == po_id)
        return await self.scalar_one_or_none(stmt)

    async def get_by_po_number(self, po_number: str) -> Optional[PurchaseOrder]:
        stmt = select(PurchaseOrder).where(PurchaseOrder.po_number == po_number)
        return await self.scalar_one_or_none(stmt)

    async def count_receipts(self) -> int:
        return await self.count(Receipt)

    async def list_receipts(self, po_id: UUID) -> List[Receipt]:
        stmt = select(Receipt).where(Receipt.purchase_order_id == po_id).order_by(Receipt.created_at.asc())
        res = await self.scalars(stmt)
        return list(res)
