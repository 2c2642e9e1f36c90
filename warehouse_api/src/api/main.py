from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from jose import JWTError
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_session_no_tenant, get_tenant_id
from src.core.errors import AppError, RateLimitError
from src.core.logging import configure_logging, correlation_id_var, tenant_id_var
from src.core.security import ACCESS_TOKEN_TYPE, decode_token
from src.core.settings import get_app_settings
from src.db.run_migrations import main as run_alembic
from src.db.seed import seed_all
from src.db.session import session_scope
from src.schemas.common import ErrorInfo, ErrorResponse, MessageResponse, ReadinessResponse, TenantEcho
from src.schemas.realtime import WsEnvelope
from src.services.dashboard import DashboardService
from src.services.realtime import broadcast_manager

# Routers
from src.api.routes.auth import router as auth_router
from src.api.routes.users import router as users_router
from src.api.routes.roles import router as roles_router
from src.api.routes.sites import router as sites_router
from src.api.routes.master_data import router as masterdata_router
# Domain routers
from src.api.routes.inventory import router as inventory_router
from src.api.routes.cycle_counts import router as cycle_counts_router
from src.api.routes.jobs import router as jobs_router
from src.api.routes.production import router as production_router
from src.api.routes.procurement import router as procurement_router
from src.api.routes.sales import router as sales_router
from src.api.routes.quality import router as quality_router
from src.api.routes.cold_chain import router as cold_chain_router
from src.api.routes.transfers import router as transfers_router
from src.api.routes.dashboard import router as dashboard_router
from src.api.routes.reports import router as reports_router
from src.api.routes.audit import router as audit_router

settings = get_app_settings()

# Configure structured logging once at import
configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "System", "description": "System and operational endpoints."},
    {"name": "Health", "description": "Liveness and readiness checks."},
    {"name": "Auth", "description": "Authentication and token endpoints."},
    {"name": "Users", "description": "User administration, role and site assignment."},
    {"name": "Roles", "description": "Role catalogue and permission matrix."},
    {"name": "Sites", "description": "Warehouses and plants of the tenant."},
    {"name": "Master Data", "description": "Items with units of measure, and storage locations."},
    {"name": "Inventory", "description": "Inventory events, balances and unit conversion."},
    {"name": "Cycle Counts", "description": "Scheduled counts and variance approval."},
    {"name": "Jobs", "description": "Warehouse jobs and their lines."},
    {"name": "Production", "description": "Bills of materials, production orders and output."},
    {"name": "Procurement", "description": "Suppliers, purchase orders and goods receipts."},
    {"name": "Sales", "description": "Customers, sales orders, allocation, picking and shipping."},
    {"name": "Quality", "description": "Non-conformance reports and CAPAs."},
    {"name": "Cold Chain", "description": "Temperature zones, readings and excursions."},
    {"name": "Transfers", "description": "Inter-site transfer orders."},
    {"name": "Dashboard", "description": "Tenant KPIs and suggested replenishments."},
    {"name": "Reports", "description": "Exportable business reports (CSV/Excel/PDF)."},
    {"name": "Audit", "description": "Audit trail of business changes."},
    {"name": "WebSocket", "description": "WebSocket usage, endpoints, and connection details."},
]

app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    openapi_tags=openapi_tags,
)

# CORS - avoid wildcard with credentials
cors_allow_credentials = settings.CORS_ALLOW_CREDENTIALS
if settings.CORS_ORIGINS == ["*"] and cors_allow_credentials:
    logger.warning("CORS_ALLOW_CREDENTIALS=True with '*' origins is not permitted; disabling credentials.")
    cors_allow_credentials = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=cors_allow_credentials,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """
    Bind correlation_id and tenant_id to the logging context for the request
    and echo the correlation id in the 'X-Correlation-ID' response header.
    """
    corr = request.headers.get("X-Correlation-ID") or request.headers.get("X-Request-ID") or str(uuid4())
    tenant = request.headers.get("X-Tenant-ID")
    token_corr = correlation_id_var.set(corr)
    token_tenant = tenant_id_var.set(tenant)
    request.state.correlation_id = corr
    request.state.tenant_id = tenant

    logger.info("Incoming request %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = corr
        return response
    finally:
        correlation_id_var.reset(token_corr)
        tenant_id_var.reset(token_tenant)


def _build_error_response(
    request: Request,
    status_code: int,
    error_type: str,
    message: str,
    details: Any | None = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Build a standardized ErrorResponse JSONResponse."""
    err = ErrorResponse(
        status=status_code,
        error=ErrorInfo(type=error_type, message=message, details=details),
        correlation_id=getattr(request.state, "correlation_id", None),
        tenant_id=getattr(request.state, "tenant_id", None),
        path=request.url.path,
        method=request.method,
        timestamp=datetime.now(tz=timezone.utc),
    )
    response = JSONResponse(status_code=status_code, content=err.model_dump(mode="json"), headers=headers)
    corr = getattr(request.state, "correlation_id", None)
    if corr:
        response.headers["X-Correlation-ID"] = corr
    return response


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Domain errors raised by services carry their own status and code."""
    if exc.status_code >= 500:
        logger.error("Application error %s: %s", exc.code, exc.message)
    else:
        logger.info("Request rejected %s (%s): %s", exc.status_code, exc.code, exc.message)
    headers = None
    if isinstance(exc, RateLimitError) and exc.retry_after:
        headers = {"Retry-After": str(exc.retry_after)}
    return _build_error_response(
        request=request,
        status_code=exc.status_code,
        error_type=exc.code,
        message=exc.message,
        details=exc.details,
        headers=headers,
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    """Unique and foreign key violations that slipped past service checks."""
    logger.warning("Integrity error: %s", exc.orig)
    return _build_error_response(
        request=request,
        status_code=409,
        error_type="CONFLICT",
        message="Request conflicts with existing data",
        details=None,
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Global handler for HTTPException to produce a standardized error envelope.
    """
    detail = exc.detail if isinstance(exc.detail, str) else "HTTP Error"
    return _build_error_response(
        request=request,
        status_code=exc.status_code,
        error_type="http_error",
        message=str(detail),
        details=None if isinstance(exc.detail, str) else exc.detail,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Global handler for request validation errors with a standard structure.
    """
    return _build_error_response(
        request=request,
        status_code=422,
        error_type="validation_error",
        message="Request validation failed",
        details=exc.errors(),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Catch-all handler to avoid leaking stack traces and to return a structured error.
    """
    logger.exception("Unhandled error processing request")
    return _build_error_response(
        request=request,
        status_code=500,
        error_type="internal_error",
        message="An unexpected error occurred",
        details=None,
    )


@app.on_event("startup")
async def on_startup() -> None:
    """
    Run migrations and optional seeding on service startup.

    Seeding is opt-in via AUTO_SEED.
    """
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        try:
            logger.info("Running Alembic migrations: upgrade head")
            await asyncio.to_thread(run_alembic, ["upgrade", "head"])
            logger.info("Migrations completed.")
        except Exception as exc:
            # readiness check reports the database state
            logger.exception("Migration step failed: %s", exc)

    if settings.AUTO_SEED:
        try:
            logger.info("Running database seeding...")
            await seed_all()
            logger.info("Seeding completed.")
        except Exception as exc:
            logger.exception("Seeding step failed: %s", exc)


# Build API v1 router and include sub-routers
api_v1 = APIRouter(prefix="/api/v1")


# PUBLIC_INTERFACE
@api_v1.get(
    "/health",
    response_model=MessageResponse,
    summary="Health Check",
    tags=["Health"],
)
def health_check() -> MessageResponse:
    """Basic liveness health check endpoint."""
    return MessageResponse(message="Healthy")


# PUBLIC_INTERFACE
@api_v1.get(
    "/health/tenant",
    response_model=TenantEcho,
    summary="Tenant Health Echo",
    description="Echoes the tenant context to verify header handling and RLS setup.",
    tags=["Health"],
)
async def tenant_health_echo(tenant_id=Depends(get_tenant_id)) -> TenantEcho:
    """
    Echo the provided tenant ID to verify multi-tenant request handling.

    Parameters:
        X-Tenant-ID (header): UUID of the tenant.
    Returns:
        TenantEcho: The tenant_id extracted from the header.
    """
    return TenantEcho(tenant_id=tenant_id)


# PUBLIC_INTERFACE
@api_v1.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness Check",
    description="Runs SELECT 1 against the database; 503 when it is unreachable.",
    tags=["Health"],
    responses={503: {"model": ReadinessResponse}},
)
async def readiness_check(session: AsyncSession = Depends(get_session_no_tenant)):
    try:
        await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("Readiness check failed: %s", exc)
        body = ReadinessResponse(status="unhealthy", database="disconnected", details=str(exc))
        return JSONResponse(status_code=503, content=body.model_dump())
    return ReadinessResponse(status="healthy", database="connected")


# PUBLIC_INTERFACE
@api_v1.get(
    "/websocket-info",
    response_model=Dict[str, Any],
    summary="WebSocket Usage Information",
    description="Connection details for the dashboard WebSocket, which is not part of the OpenAPI schema.",
    tags=["WebSocket"],
)
def websocket_info() -> Dict[str, Any]:
    """Describe how to connect to the WebSocket endpoints of this service."""
    return {
        "usage": (
            "Connect with a valid access token as the 'token' query parameter and the tenant as the "
            "'tenant_id' query parameter (or the 'X-Tenant-ID' header). A snapshot of the dashboard "
            "statistics is sent on connect; send 'refresh' for a new one. Business events are pushed "
            "as they happen. Message format is JSON: { type: string, payload: object, at: ISO-8601, user_id?: string }."
        ),
        "security": {
            "token": "Access JWT containing 'sub' (user id) and 'tenant_id' matching the requested tenant.",
            "tenant": "tenant_id query parameter or X-Tenant-ID header (UUID)",
        },
        "endpoints": [
            {
                "path": "/ws/dashboard",
                "summary": "Real-time dashboard statistics and business events (server push).",
                "query": ["token", "tenant_id"],
                "messages": {
                    "client_to_server": ["refresh", "ping"],
                    "server_to_client": [
                        "dashboard.snapshot",
                        "inventory.event_applied",
                        "production.output",
                        "sales_order.shipped",
                        "ncr.created",
                        "cycle_count.variance_approved",
                        "purchase_order.received",
                        "cold_chain.alert",
                        "transfer.shipped",
                    ],
                },
            }
        ],
    }


# Include all routers under /api/v1
api_v1.include_router(auth_router)
api_v1.include_router(users_router)
api_v1.include_router(roles_router)
api_v1.include_router(sites_router)
api_v1.include_router(masterdata_router)
api_v1.include_router(inventory_router)
api_v1.include_router(cycle_counts_router)
api_v1.include_router(jobs_router)
api_v1.include_router(production_router)
api_v1.include_router(procurement_router)
api_v1.include_router(sales_router)
api_v1.include_router(quality_router)
api_v1.include_router(cold_chain_router)
api_v1.include_router(transfers_router)
api_v1.include_router(dashboard_router)
api_v1.include_router(reports_router)
api_v1.include_router(audit_router)

# Attach api_v1 to app
app.include_router(api_v1)


async def _validate_ws_and_get_user(websocket: WebSocket) -> Tuple[str, str]:
    """
    Validate an accepted WebSocket from its 'token' and tenant parameters.

    Returns:
        (tenant_id, user_id)
    Raises:
        WebSocketDisconnect after closing with 4401 (unauthenticated) or 4403 (tenant mismatch).
    """
    token = websocket.query_params.get("token")
    tenant_id = websocket.query_params.get("tenant_id") or websocket.headers.get("x-tenant-id")

    async def _reject(code: int) -> None:
        await websocket.close(code=code)
        raise WebSocketDisconnect(code=code)

    if not token or not tenant_id:
        await _reject(4401)
    try:
        UUID(str(tenant_id))
        claims = decode_token(token, expected_type=ACCESS_TOKEN_TYPE)
    except (JWTError, ValueError):
        await _reject(4401)

    if str(claims.get("tenant_id")) != str(tenant_id):
        await _reject(4403)
    user_id = claims.get("sub")
    if not user_id:
        await _reject(4401)
    return str(tenant_id), str(user_id)


async def _dashboard_snapshot(tenant_id: str) -> dict:
    """Compute the dashboard statistics within the tenant's RLS context."""
    async with session_scope(tenant_id) as session:
        return await DashboardService(session).stats()


# PUBLIC_INTERFACE
@app.websocket("/ws/dashboard")
async def ws_dashboard(websocket: WebSocket):
    """
    WebSocket endpoint for real-time dashboard updates.

    Security:
      - Query param 'token' must be a valid access JWT.
      - Query param 'tenant_id' (or header 'X-Tenant-ID') must match the JWT tenant_id.
    Messages:
      - Server -> Client: 'dashboard.snapshot' on connect and on refresh; business events after writes.
      - Client -> Server: 'refresh' re-publishes a snapshot to the tenant's subscribers; 'ping' answers 'pong'.
    """
    await websocket.accept()
    try:
        tenant_id, user_id = await _validate_ws_and_get_user(websocket)
    except WebSocketDisconnect:
        return

    topic = broadcast_manager.dashboard_topic(tenant_id)
    await broadcast_manager.connect(topic, websocket)
    logger.info("Dashboard subscriber connected: tenant=%s user=%s", tenant_id, user_id)

    try:
        snapshot = await _dashboard_snapshot(tenant_id)
        await websocket.send_json(WsEnvelope(type="dashboard.snapshot", payload=snapshot).model_dump(mode="json"))
    except Exception:
        logger.exception("Failed to send initial dashboard snapshot")

    try:
        while True:
            msg = (await websocket.receive_text()).strip().lower()
            if msg == "ping":
                await websocket.send_text("pong")
            elif msg == "refresh":
                try:
                    await broadcast_manager.publish_dashboard_snapshot(tenant_id, await _dashboard_snapshot(tenant_id))
                except Exception:
                    logger.exception("Failed to publish dashboard snapshot")
    except WebSocketDisconnect:
        await broadcast_manager.disconnect(topic, websocket)
    except Exception:
        logger.exception("Error on ws_dashboard connection")
        await broadcast_manager.disconnect(topic, websocket)
        await websocket.close()
