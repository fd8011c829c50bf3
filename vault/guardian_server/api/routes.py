"""
API routes for the Guardian sync server.

Handlers are plain (synchronous) functions, so FastAPI runs each request
on its worker thread pool and storage calls block that thread only.
Tenant identity comes from the Authenticator dependency and is passed
explicitly to every service call.
"""

import logging
from typing import Any, Literal

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .._version import __version__
from ..errors import ForbiddenError, TenantNotFoundError, UnauthorizedError
from ..models import Record, TenantStatus
from ..service import VaultService
from ..sync.merge import MAX_REVISION
from .auth import Authenticator, hash_password
from .config import Settings

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Request/Response Models ---


class RecordIn(BaseModel):
    """One record submitted by a client."""

    id: str = Field(..., min_length=1, description="Client-chosen record id")
    encrypted_blob: str = Field(..., description="Opaque ciphertext")
    revision: int = Field(0, ge=0, le=MAX_REVISION, description="Client revision counter")


class RecordOut(BaseModel):
    """One stored record."""

    id: str
    encrypted_blob: str
    revision: int
    updated_at: str | None = None


class SyncResponse(BaseModel):
    message: str
    count: int


class RegisterRequest(BaseModel):
    """Request to provision a tenant."""

    username: str = Field(..., min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_.@-]+$")
    password: str = Field(..., min_length=1)
    display_name: str | None = Field(None, max_length=128, description="Friendly vault name")
    setup_code: str | None = Field(None, description="Admin setup code (first tenant only)")


class StatusUpdateRequest(BaseModel):
    status: Literal["ACTIVE", "INACTIVE", "SUSPENDED"]


# --- Dependencies ---


def get_service(request: Request) -> VaultService:
    """Get the vault service from app state."""
    return request.app.state.service


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_authenticator(request: Request) -> Authenticator:
    return request.app.state.authenticator


def current_tenant(
    request: Request,
    service: VaultService = Depends(get_service),
    authenticator: Authenticator = Depends(get_authenticator),
) -> str:
    """Authenticate the caller and check the tenant may use its vault."""
    tenant_id = authenticator.authenticate(request)
    try:
        service.authorize(tenant_id)
    except TenantNotFoundError as e:
        raise UnauthorizedError("Unknown tenant") from e
    return tenant_id


def admin_tenant(
    tenant_id: str = Depends(current_tenant),
    service: VaultService = Depends(get_service),
) -> str:
    """Require an administrator caller."""
    if not service.is_administrator(tenant_id):
        raise ForbiddenError("Admins only")
    return tenant_id


# --- Health / Setup ---


@router.get("/health")
def health():
    return {"status": "ok", "version": __version__}


@router.get("/auth/setup-status")
def setup_status(service: VaultService = Depends(get_service)):
    """SETUP until the first (administrator) tenant exists, READY afterwards."""
    return {"status": "SETUP" if service.tenant_count() == 0 else "READY"}


@router.post("/auth/register", status_code=201)
def register(
    body: RegisterRequest,
    request: Request,
    service: VaultService = Depends(get_service),
    settings: Settings = Depends(get_settings),
    authenticator: Authenticator = Depends(get_authenticator),
):
    """
    Provision a tenant and its vault store.

    The first tenant becomes administrator, gated by the setup code when
    one is configured. Afterwards only an administrator may provision.
    """
    is_admin = service.tenant_count() == 0
    if is_admin:
        if settings.admin_setup_code and body.setup_code != settings.admin_setup_code:
            logger.warning("Failed admin setup attempt: invalid setup code")
            raise ForbiddenError("Invalid admin setup code")
        logger.info(f"Registering first tenant as administrator: {body.username}")
    else:
        caller = current_tenant(request, service, authenticator)
        if not service.is_administrator(caller):
            raise ForbiddenError("Admins only")

    tenant = service.provision_tenant(
        body.username,
        display_name=body.display_name,
        password_hash=hash_password(body.password),
        is_admin=is_admin,
    )
    return {"message": "Tenant registered successfully", "tenant": tenant.to_dict()}


# --- Vault ---


@router.get("/vault/items", response_model=list[RecordOut])
def list_items(
    tenant_id: str = Depends(current_tenant),
    service: VaultService = Depends(get_service),
):
    """List every record in the caller's vault."""
    return [record.to_dict() for record in service.list_records(tenant_id)]


@router.put("/vault/items", response_model=SyncResponse)
def upsert_items(
    items: list[RecordIn],
    tenant_id: str = Depends(current_tenant),
    service: VaultService = Depends(get_service),
):
    """
    Upsert a batch of records.

    All-or-nothing; stored records are overwritten without a revision check.
    """
    batch = [
        Record(id=item.id, encrypted_blob=item.encrypted_blob, revision=item.revision)
        for item in items
    ]
    count = service.upsert_records(tenant_id, batch)
    return SyncResponse(message="Items synced", count=count)


# --- Preferences ---


@router.get("/api/preferences")
def get_preferences(
    tenant_id: str = Depends(current_tenant),
    service: VaultService = Depends(get_service),
):
    return JSONResponse(content=service.get_preferences(tenant_id))


@router.put("/api/preferences")
def update_preferences(
    document: Any = Body(...),
    tenant_id: str = Depends(current_tenant),
    service: VaultService = Depends(get_service),
):
    return JSONResponse(content=service.set_preferences(tenant_id, document))


# --- Admin ---


@router.get("/api/admin/tenants")
def list_tenants(
    _: str = Depends(admin_tenant),
    service: VaultService = Depends(get_service),
):
    """All tenants with record counts and disk usage."""
    return service.describe_tenants()


@router.put("/api/admin/tenants/{tenant_id}/status")
def update_tenant_status(
    tenant_id: str,
    body: StatusUpdateRequest,
    caller: str = Depends(admin_tenant),
    service: VaultService = Depends(get_service),
):
    if tenant_id == caller and body.status != TenantStatus.ACTIVE.value:
        raise ForbiddenError("Administrators cannot deactivate themselves")
    tenant = service.set_tenant_status(tenant_id, TenantStatus(body.status))
    return tenant.to_dict()
