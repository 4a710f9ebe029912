import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from access.gate import AuthorizationDenied, Operation, REASON_NO_ADMIN
from access.models import Administrator, AdminUserCreate, AdminUserUpdate
from access.service import AdminUserConflictError, AdminUserNotFoundError
from audit.models import AuditAction, AuditEntry, PaginatedResponse
from audit.service import AuditServiceError, OutboxConflictError, OutboxItemNotFoundError
from ledger.models import AccountSummary, AdjustTokensRequest, AdjustTokensResponse, TransactionType
from ledger.service import AccountNotFoundError, IdempotencyConflictError, LedgerServiceError, StaleBalanceError

from .config import load_settings
from .logging_utils import setup_logging
from .notifications import NotificationDeliveryError, NotificationRequest, NotificationResult
from .reconcile import ReconciliationReport, TraceReport
from .services import ConsoleServices, build_services
from .tokens import ConcurrentModificationError

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = "5"


def create_app(services: Optional[ConsoleServices] = None, root_path: str = "") -> FastAPI:
    services = services or build_services(load_settings())
    settings = services.settings
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await services.aclose()

    app = FastAPI(
        title="Token Console API",
        description="Club-scoped token adjustments, notifications and administrator management with an audit trail",
        version="1.0.0",
        lifespan=lifespan,
        root_path=root_path,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AuthorizationDenied)
    async def authorization_denied(request: Request, exc: AuthorizationDenied):
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": exc.reason})

    @app.exception_handler(ConnectionError)
    @app.exception_handler(TimeoutError)
    async def backend_unavailable(request: Request, exc: Exception):
        logger.warning("%s %s failed on a transient error: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Backend temporarily unavailable. Please retry."},
            headers={"Retry-After": RETRY_AFTER_SECONDS},
        )

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": "token-console", "backend": settings.backend}

    @app.get("/transaction-types", response_model=list[TransactionType], tags=["Tokens"])
    async def list_transaction_types():
        return await services.tokens.transaction_types()

    @app.get("/accounts/{identifier}", response_model=AccountSummary, tags=["Tokens"])
    async def lookup_account(identifier: str, requesting_user_email: str = Query(..., alias="requestingUserEmail")):
        return await services.tokens.lookup(requesting_user_email, identifier)

    @app.post(
        "/accounts/{identifier}/transactions",
        response_model=AdjustTokensResponse,
        status_code=status.HTTP_201_CREATED,
        tags=["Tokens"],
    )
    async def adjust_tokens(
        identifier: str,
        request: AdjustTokensRequest,
        response: Response,
        requesting_user_email: str = Query(..., alias="requestingUserEmail"),
    ):
        try:
            result = await services.tokens.adjust(requesting_user_email, identifier, request)
        except AccountNotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        except (StaleBalanceError, ConcurrentModificationError, IdempotencyConflictError, OutboxConflictError) as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
        except LedgerServiceError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        if result.replayed:
            response.status_code = status.HTTP_200_OK
        return result

    @app.get("/accounts/{identifier}/trace", response_model=TraceReport, tags=["Audit"])
    async def verify_account(identifier: str, requesting_user_email: str = Query(..., alias="requestingUserEmail")):
        await services.admin_users.acting_admin(requesting_user_email, Operation.RECONCILE_AUDIT)
        return await services.reconciler.verify_account(identifier)

    @app.post("/notifications", response_model=NotificationResult, tags=["Notifications"])
    async def send_notification(
        request: NotificationRequest,
        requesting_user_email: str = Query(..., alias="requestingUserEmail"),
    ):
        try:
            return await services.notifications.send(requesting_user_email, request)
        except NotificationDeliveryError as e:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    @app.get("/audit-logs", response_model=PaginatedResponse[AuditEntry], tags=["Audit"])
    async def list_audit_logs(
        requesting_user_email: str = Query(..., alias="requestingUserEmail"),
        action: Optional[AuditAction] = None,
        actor_email: Optional[str] = Query(None, alias="actorEmail"),
        from_date: Optional[datetime] = Query(None, alias="fromDate"),
        to_date: Optional[datetime] = Query(None, alias="toDate"),
        page: int = 1,
        page_size: int = Query(settings.default_page_size, alias="pageSize"),
    ):
        await services.admin_users.acting_admin(requesting_user_email, Operation.VIEW_AUDIT_LOG)
        try:
            return await services.audit.list(action, actor_email, from_date, to_date, page, page_size)
        except AuditServiceError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    @app.post("/audit-logs/reconcile", response_model=ReconciliationReport, tags=["Audit"])
    async def reconcile_audit_logs(requesting_user_email: str = Query(..., alias="requestingUserEmail")):
        await services.admin_users.acting_admin(requesting_user_email, Operation.RECONCILE_AUDIT)
        try:
            return await services.reconciler.run()
        except OutboxItemNotFoundError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    @app.get("/admin/me", response_model=Administrator, tags=["Admin Users"])
    async def get_me(requesting_user_email: str = Query(..., alias="requestingUserEmail")):
        admin = await services.admin_users.me(requesting_user_email)
        if admin is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=REASON_NO_ADMIN)
        return admin

    @app.get("/admin/users", response_model=list[Administrator], tags=["Admin Users"])
    async def list_admin_users(requesting_user_email: str = Query(..., alias="requestingUserEmail")):
        return await services.admin_users.list_users(requesting_user_email)

    @app.post("/admin/users", response_model=Administrator, status_code=status.HTTP_201_CREATED, tags=["Admin Users"])
    async def create_admin_user(
        data: AdminUserCreate,
        requesting_user_email: str = Query(..., alias="requestingUserEmail"),
    ):
        try:
            return await services.admin_users.create(requesting_user_email, data)
        except AdminUserConflictError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    @app.put("/admin/users/{admin_id}", response_model=Administrator, tags=["Admin Users"])
    async def update_admin_user(
        admin_id: str,
        data: AdminUserUpdate,
        requesting_user_email: str = Query(..., alias="requestingUserEmail"),
    ):
        try:
            return await services.admin_users.update(requesting_user_email, admin_id, data)
        except AdminUserNotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.delete("/admin/users/{admin_id}", response_model=Administrator, tags=["Admin Users"])
    async def deactivate_admin_user(admin_id: str, requesting_user_email: str = Query(..., alias="requestingUserEmail")):
        try:
            return await services.admin_users.deactivate(requesting_user_email, admin_id)
        except AdminUserNotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.post("/admin/users/{admin_id}/reactivate", response_model=Administrator, tags=["Admin Users"])
    async def reactivate_admin_user(admin_id: str, requesting_user_email: str = Query(..., alias="requestingUserEmail")):
        try:
            return await services.admin_users.reactivate(requesting_user_email, admin_id)
        except AdminUserNotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
