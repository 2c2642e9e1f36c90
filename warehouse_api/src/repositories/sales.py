from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_, select

from src.db.models.sales import Customer, PickTask, SalesOrder, Shipment
from .base import BaseRepository


class CustomerRepository(BaseRepository):
    """Repository for customers."""

    async def list_customers(
        self, *, search: Optional[str], active_only: bool = False, limit: int, offset: int
    ) -> List[Customer]:
        stmt = select(Customer)
        if search:
            like = f"%{search}%"
            stmt = stmt.where(or_(Customer.code.ilike(like), Customer.name.ilike(like)))
        if active_only:
            stmt = stmt.where(Customer.is_active.is_(True))
        stmt = stmt.order_by(Customer.code).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def get_customer(self, customer_id: UUID) -> Optional[Customer]:
        stmt = select(Customer).where(Customer.id == customer_id)
        return await self.scalar_one_or_none(stmt)

    async def get_customer_by_code(self, code: str) -> Optional[Customer]:
        stmt = select(Customer).where(Customer.code == code)
        return await self.scalar_one_or_none(stmt)


class SalesOrderRepository(BaseRepository):
    """Repository for sales orders, pick tasks and shipments."""

    async def list_orders(
        self,
        *,
        status: Optional[str],
        customer_id: Optional[UUID],
        site_id: Optional[UUID],
        limit: int,
        offset: int,
    ) -> List[SalesOrder]:
        stmt = select(SalesOrder)
        if status:
            stmt = stmt.where(SalesOrder.status == status)
        if customer_id:
            stmt = stmt.where(SalesOrder.customer_id == customer_id)
        if site_id:
            stmt = stmt.where(SalesOrder.site_id == site_id)
        stmt = stmt.order_by(SalesOrder.order_date.desc(), SalesOrder.order_number).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def get_order(self, order_id: UUID) -> Optional[SalesOrder]:
        stmt = select(SalesOrder).where(SalesOrder.id == order_id)
        return await self.scalar_one_or_none(stmt)

    async def get_order_by_number(self, order_number: str) -> Optional[SalesOrder]:
        stmt = select(SalesOrder).where(SalesOrder.order_number == order_number)
        return await self.scalar_one_or_none(stmt)

    async def list_pick_tasks(self, order_id: UUID) -> List[PickTask]:
        stmt = select(PickTask).where(PickTask.sales_order_id == order_id).order_by(PickTask.created_at.asc())
        res = await self.scalars(stmt)
        return list(res)

    async def get_pick_task(self, task_id: UUID) -> Optional[PickTask]:
        stmt = select(PickTask).where(PickTask.id == task_id)
        return await self.scalar_one_or_none(stmt)

    async def count_pick_tasks(self) -> int:
        return await self.count(PickTask)

    async def count_shipments(self) -> int:
        return await self.count(Shipment)

    async def list_shipments(self, order_id: UUID) -> List[Shipment]:
        stmt = select(Shipment).where(Shipment.sales_order_id == order_id).order_by(Shipment.created_at.asc())
        res = await self.scalars(stmt)
        return list(res)
