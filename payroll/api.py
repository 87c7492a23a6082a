"""HTTP API for tenant payroll administration and audit history."""
from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from .config import PayrollSettings
from .formatting import format_amount, next_run_at, parse_amount
from .history import HistoryLedger
from .membership import MembershipStore
from .models import DisbursementRecord, DisbursementResult, TenantConfig
from .scheduler import RunInProgressError, RunScheduler
from .tenants import TenantError, TenantStore


class TreasuryPayload(BaseModel):
    address: str = Field(pattern=r"^0x[a-fA-F0-9]{40}$")


class TokenPayload(BaseModel):
    token: str = Field(min_length=1, max_length=42)


class RolePayoutPayload(BaseModel):
    amount: str = Field(min_length=1, max_length=64, description="Decimal amount, e.g. '0.05'")


class NotificationTargetPayload(BaseModel):
    target: Optional[str] = Field(default=None, max_length=256)


class MemberRolesPayload(BaseModel):
    roles: List[str] = Field(default_factory=list)

    @field_validator("roles")
    @classmethod
    def validate_roles(cls, value: List[str]) -> List[str]:
        cleaned = [item.strip() for item in value if item and item.strip()]
        if len(cleaned) > 100:
            raise ValueError("roles limit is 100 entries")
        return cleaned


class RolePayoutRecord(BaseModel):
    role_id: str
    amount: str
    token: str
    display: str


class TenantRecord(BaseModel):
    tenant_id: str
    treasury_address: str
    token: str
    enabled: bool
    last_run_at: Optional[str]
    next_run_at: Optional[str]
    notification_target: Optional[str]
    run_state: str
    role_payouts: List[RolePayoutRecord]


class DisbursementResultRecord(BaseModel):
    success: bool
    tx_hash: Optional[str]
    recipients: int
    total_amount: str
    total_display: str
    error: Optional[str]
    timestamp: str


class HistoryEntry(BaseModel):
    run_at: str
    result: DisbursementResultRecord


class HistoryResponse(BaseModel):
    tenant_id: str
    records: List[HistoryEntry]


class MemberRecord(BaseModel):
    tenant_id: str
    member: str
    roles: List[str]


def _result_record(result: DisbursementResult, token: str) -> DisbursementResultRecord:
    return DisbursementResultRecord(
        success=result.success,
        tx_hash=result.tx_hash,
        recipients=result.recipients,
        total_amount=str(result.total_amount),
        total_display=format_amount(result.total_amount, token),
        error=result.error,
        timestamp=result.timestamp.isoformat(),
    )


def create_app(
    tenants: TenantStore,
    history: HistoryLedger,
    memberships: MembershipStore,
    scheduler: RunScheduler,
    settings: PayrollSettings,
) -> FastAPI:
    app = FastAPI(title="Treasury Payroll", version="1.0.0")
    period = timedelta(days=int(getattr(settings, "payout_period_days", 30)))

    def _provided_token(request: Request) -> Optional[str]:
        auth_header = request.headers.get("Authorization") or ""
        if auth_header.lower().startswith("bearer "):
            candidate = auth_header.split(" ", 1)[1].strip()
            if candidate:
                return candidate
        return request.headers.get("X-Admin-Token")

    async def require_admin(request: Request) -> None:
        token = settings.api_admin_token
        if not token:
            return
        provided = _provided_token(request)
        if provided != token:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin token required")

    async def require_view_access(request: Request) -> None:
        admin_token = settings.api_admin_token
        viewer_tokens = settings.viewer_tokens
        provided = _provided_token(request)
        if admin_token:
            if provided == admin_token:
                return
            if viewer_tokens:
                if provided in viewer_tokens:
                    return
                raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Viewer token required")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin token required")
        if viewer_tokens:
            if provided in viewer_tokens:
                return
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Viewer token required")
        # No tokens configured => open access

    def tenant_record(config: TenantConfig) -> TenantRecord:
        upcoming = next_run_at(config, period)
        return TenantRecord(
            tenant_id=config.tenant_id,
            treasury_address=config.treasury_address,
            token=config.token,
            enabled=config.enabled,
            last_run_at=config.last_run_at.isoformat() if config.last_run_at else None,
            next_run_at=upcoming.isoformat() if upcoming and config.enabled else None,
            notification_target=config.notification_target,
            run_state=scheduler.state(config.tenant_id).value,
            role_payouts=[
                RolePayoutRecord(
                    role_id=payout.role_id,
                    amount=str(payout.amount),
                    token=payout.token,
                    display=format_amount(payout.amount, payout.token),
                )
                for payout in config.role_payouts.values()
            ],
        )

    @app.exception_handler(TenantError)
    async def tenant_error_handler(_: Request, exc: TenantError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

    @app.exception_handler(RunInProgressError)
    async def run_in_progress_handler(_: Request, exc: RunInProgressError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})

    # Route handlers are plain def: the stores do blocking file IO and payouts
    # wait for confirmation, so they run in the threadpool.
    @app.get("/api/tenants/{tenant_id}", response_model=TenantRecord)
    def get_tenant(tenant_id: str, _: Any = Depends(require_view_access)) -> TenantRecord:
        return tenant_record(tenants.get(tenant_id))

    @app.put("/api/tenants/{tenant_id}/treasury", response_model=TenantRecord)
    def set_treasury(
        tenant_id: str,
        payload: TreasuryPayload,
        _: Any = Depends(require_admin),
    ) -> TenantRecord:
        return tenant_record(tenants.set_treasury(tenant_id, payload.address))

    @app.put("/api/tenants/{tenant_id}/token", response_model=TenantRecord)
    def set_token(
        tenant_id: str,
        payload: TokenPayload,
        _: Any = Depends(require_admin),
    ) -> TenantRecord:
        return tenant_record(tenants.set_token(tenant_id, payload.token))

    @app.put("/api/tenants/{tenant_id}/roles/{role_id}", response_model=TenantRecord)
    def set_role(
        tenant_id: str,
        role_id: str,
        payload: RolePayoutPayload,
        _: Any = Depends(require_admin),
    ) -> TenantRecord:
        try:
            amount = parse_amount(payload.amount)
        except ValueError as exc:
            raise TenantError(str(exc)) from exc
        return tenant_record(tenants.set_role_payout(tenant_id, role_id, amount))

    @app.delete("/api/tenants/{tenant_id}/roles/{role_id}", response_model=TenantRecord)
    def remove_role(
        tenant_id: str,
        role_id: str,
        _: Any = Depends(require_admin),
    ) -> TenantRecord:
        return tenant_record(tenants.remove_role_payout(tenant_id, role_id))

    @app.post("/api/tenants/{tenant_id}/enable", response_model=TenantRecord)
    def enable(tenant_id: str, _: Any = Depends(require_admin)) -> TenantRecord:
        return tenant_record(tenants.enable(tenant_id))

    @app.post("/api/tenants/{tenant_id}/disable", response_model=TenantRecord)
    def disable(tenant_id: str, _: Any = Depends(require_admin)) -> TenantRecord:
        return tenant_record(tenants.disable(tenant_id))

    @app.put("/api/tenants/{tenant_id}/notification-target", response_model=TenantRecord)
    def set_notification_target(
        tenant_id: str,
        payload: NotificationTargetPayload,
        _: Any = Depends(require_admin),
    ) -> TenantRecord:
        return tenant_record(tenants.set_notification_target(tenant_id, payload.target))

    @app.put("/api/tenants/{tenant_id}/members/{member}", response_model=MemberRecord)
    def set_member(
        tenant_id: str,
        member: str,
        payload: MemberRolesPayload,
        _: Any = Depends(require_admin),
    ) -> MemberRecord:
        try:
            roles = memberships.set_member_roles(tenant_id, member, payload.roles)
        except ValueError as exc:
            raise TenantError(str(exc)) from exc
        return MemberRecord(tenant_id=tenant_id, member=member.lower(), roles=roles)

    @app.delete("/api/tenants/{tenant_id}/members/{member}")
    def remove_member(
        tenant_id: str,
        member: str,
        _: Any = Depends(require_admin),
    ) -> Dict[str, Any]:
        try:
            removed = memberships.remove_member(tenant_id, member)
        except ValueError as exc:
            raise TenantError(str(exc)) from exc
        if not removed:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
        return {"tenant_id": tenant_id, "member": member.lower(), "removed": True}

    @app.post("/api/tenants/{tenant_id}/payout", response_model=DisbursementResultRecord)
    def trigger_payout(tenant_id: str, _: Any = Depends(require_admin)) -> DisbursementResultRecord:
        result = scheduler.trigger_now(tenant_id)
        return _result_record(result, tenants.get(tenant_id).token)

    @app.get("/api/tenants/{tenant_id}/history", response_model=HistoryResponse)
    def tenant_history(
        tenant_id: str,
        limit: int = Query(default=10, ge=1, le=1000),
        _: Any = Depends(require_view_access),
    ) -> HistoryResponse:
        token = tenants.get(tenant_id).token
        records: List[DisbursementRecord] = history.recent(tenant_id, limit)
        return HistoryResponse(
            tenant_id=tenant_id,
            records=[
                HistoryEntry(run_at=record.run_at.isoformat(), result=_result_record(record.result, token))
                for record in records
            ],
        )

    return app


def run_api(app: FastAPI, settings: PayrollSettings) -> None:
    """Run the FastAPI app using uvicorn."""
    import uvicorn  # Imported lazily to avoid mandatory dependency in tests

    config = uvicorn.Config(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level="info",
        root_path=settings.api_root_path,
    )
    server = uvicorn.Server(config)
    server.install_signal_handlers = False
    server.run()


__all__ = ["create_app", "run_api"]
