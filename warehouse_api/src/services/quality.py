from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.core.errors import NotFoundError, ValidationError
from src.db.models.quality import Capa, Ncr
from src.repositories.quality import QualityRepository
from src.services.audit import AuditService
from src.services.base import BaseService, format_document_number, utcnow
from src.services.realtime import notify_dashboard
from src.services.workflow import CAPA_FLOW, NCR_FLOW

logger = logging.getLogger(__name__)

NCR_SEVERITIES = ("MINOR", "MAJOR", "CRITICAL")
NCR_DISPOSITIONS = ("PENDING", "USE_AS_IS", "REWORK", "SCRAP", "RETURN_TO_VENDOR")
OPEN_NCR_STATUSES = ("OPEN", "UNDER_REVIEW", "DISPOSITIONED")

_NCR_TEXT_FIELDS = ("root_cause", "disposition_notes", "approved_by", "description", "lot_number")
_CAPA_FIELDS = (
    "root_cause_analysis",
    "proposed_actions",
    "responsible_person",
    "target_date",
    "verification_method",
    "verification_notes",
    "effectiveness_check",
)


# PUBLIC_INTERFACE
def check_ncr_closable(ncr, capa_count: int) -> None:
    """An NCR closes only with a disposition and, when flagged, at least one CAPA."""
    if not ncr.disposition or ncr.disposition == "PENDING":
        raise ValidationError("Disposition is required before closing")
    if ncr.capa_required and capa_count == 0:
        raise ValidationError("CAPA is required before closing")


class QualityService(BaseService):
    """NCR and CAPA workflows."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = QualityRepository(session)
        self.audit = AuditService(session)

    async def _get_ncr(self, ncr_id: UUID) -> Ncr:
        ncr = await self.repo.get_ncr(ncr_id)
        if not ncr:
            raise NotFoundError("NCR")
        return ncr

    # PUBLIC_INTERFACE
    async def create_ncr(
        self,
        ctx: UserContext,
        *,
        issue_type: str,
        severity: str,
        description: str,
        qty_affected: float,
        uom: str,
        site_id: Optional[UUID] = None,
        item_id: Optional[UUID] = None,
        production_order_id: Optional[UUID] = None,
        lot_number: Optional[str] = None,
        capa_required: bool = False,
    ) -> Ncr:
        if site_id is not None:
            ctx.ensure_site(site_id)
        if severity not in NCR_SEVERITIES:
            raise ValidationError(f"Invalid severity: {severity}")
        if not issue_type or not description:
            raise ValidationError("issue_type and description are required")
        if qty_affected is None or qty_affected <= 0:
            raise ValidationError("qty_affected must be greater than 0")

        ncr = Ncr(
            site_id=site_id,
            ncr_number=format_document_number("NCR", await self.repo.count_ncrs()),
            item_id=item_id,
            production_order_id=production_order_id,
            lot_number=lot_number,
            issue_type=issue_type,
            severity=severity,
            description=description,
            qty_affected=qty_affected,
            uom=uom,
            status="OPEN",
            disposition="PENDING",
            capa_required=capa_required,
            reported_by_user_id=ctx.user_id,
        )
        await self.repo.add(ncr)
        await self.repo.flush()
        await self.audit.record(ctx, "create", "ncr", ncr.id, {"ncr_number": ncr.ncr_number, "severity": severity})
        await self.repo.commit()
        logger.info("NCR created: %s severity=%s", ncr.ncr_number, severity)
        await notify_dashboard(
            ctx.tenant_id, "ncr.created", {"ncr_id": str(ncr.id), "severity": severity}, ctx.user_id
        )
        return ncr

    async def get_ncr(self, ncr_id: UUID) -> Ncr:
        return await self._get_ncr(ncr_id)

    async def list_ncrs(self, **filters) -> List[Ncr]:
        return await self.repo.list_ncrs(**filters)

    # PUBLIC_INTERFACE
    async def update_ncr(self, ctx: UserContext, ncr_id: UUID, changes: Dict[str, Any]) -> Ncr:
        """Review, disposition and close an NCR."""
        ncr = await self._get_ncr(ncr_id)
        if ncr.status in ("CLOSED", "CANCELLED"):
            raise ValidationError(f"Cannot edit {ncr.status} NCRs")
        now = utcnow()

        disposition = changes.get("disposition")
        if disposition is not None:
            if disposition not in NCR_DISPOSITIONS:
                raise ValidationError(f"Invalid disposition: {disposition}")
            ncr.disposition = disposition
            ncr.disposition_date = now
        if changes.get("reviewed_by") is not None:
            ncr.reviewed_by = changes["reviewed_by"]
            ncr.reviewed_at = now
        if changes.get("severity") is not None:
            if changes["severity"] not in NCR_SEVERITIES:
                raise ValidationError(f"Invalid severity: {changes['severity']}")
            ncr.severity = changes["severity"]
        if changes.get("capa_required") is not None:
            ncr.capa_required = bool(changes["capa_required"])
        for field in _NCR_TEXT_FIELDS:
            if changes.get(field) is not None:
                setattr(ncr, field, changes[field])

        new_status = changes.get("status")
        if new_status and new_status != ncr.status:
            NCR_FLOW.validate(ncr.status, new_status)
            if new_status == "CLOSED":
                check_ncr_closable(ncr, len(await self.repo.list_capas(ncr.id)))
                ncr.closed_at = now
            logger.info("NCR %s status %s -> %s", ncr.ncr_number, ncr.status, new_status)
            ncr.status = new_status

        await self.audit.record(ctx, "update", "ncr", ncr.id, {k: v for k, v in changes.items() if v is not None})
        await self.repo.commit()
        return ncr

    # PUBLIC_INTERFACE
    async def create_capa(self, ctx: UserContext, ncr_id: UUID, data: Dict[str, Any]) -> Capa:
        ncr = await self._get_ncr(ncr_id)
        if ncr.status in ("CLOSED", "CANCELLED"):
            raise ValidationError(f"Cannot add a CAPA to a {ncr.status} NCR")
        capa = Capa(
            ncr_id=ncr.id,
            capa_number=format_document_number("CAPA", await self.repo.count_capas()),
            status="OPEN",
            **{field: data.get(field) for field in _CAPA_FIELDS},
        )
        await self.repo.add(capa)
        await self.repo.flush()
        await self.audit.record(ctx, "create", "capa", capa.id, {"capa_number": capa.capa_number, "ncr_id": str(ncr.id)})
        await self.repo.commit()
        await self.repo.refresh(ncr, ["capas"])
        logger.info("CAPA created: %s for %s", capa.capa_number, ncr.ncr_number)
        return capa

    async def get_capa(self, capa_id: UUID) -> Capa:
        capa = await self.repo.get_capa(capa_id)
        if not capa:
            raise NotFoundError("CAPA")
        return capa

    # PUBLIC_INTERFACE
    async def update_capa(self, ctx: UserContext, capa_id: UUID, changes: Dict[str, Any]) -> Capa:
        capa = await self.get_capa(capa_id)
        for field in _CAPA_FIELDS:
            if changes.get(field) is not None:
                setattr(capa, field, changes[field])

        new_status = changes.get("status")
        if new_status and new_status != capa.status:
            CAPA_FLOW.validate(capa.status, new_status)
            if new_status == "IMPLEMENTED":
                capa.implemented_at = utcnow()
            elif new_status == "VERIFIED":
                capa.verified_at = utcnow()
                capa.verified_by = changes.get("verified_by") or ctx.display_name
            capa.status = new_status

        await self.audit.record(ctx, "update", "capa", capa.id, {k: v for k, v in changes.items() if v is not None})
        await self.repo.commit()
        return capa
