"""
Store API routes — create/list/get/delete endpoints over the store registry.

Features:
  - Identity layer: X-User-Id header recorded in the audit log
  - Rate limiting per-IP via slowapi
  - Per-store activity log, supplemented from Redis Streams when connected
  - Audit logging (in-memory ring buffer)
"""

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from config import settings
from exceptions import StoreAllocationError, StoreNotFoundError, TeardownError
from models import (
    ActivityLogEntry, AuditLogEntry, DeleteResponse, ErrorResponse,
    StoreListResponse, StoreLogsResponse, StoreResponse, StoreState,
)
from services.store_service import StoreService

logger = logging.getLogger("stores")

router = APIRouter(prefix="/stores", tags=["stores"])
limiter = Limiter(key_func=get_remote_address)

# --- Audit log (in-memory ring buffer) ---
_audit_log: deque[dict] = deque(maxlen=settings.AUDIT_LOG_MAX)


def _audit(action: str, store_id: str, result: str, detail: str = "",
           user_id: str = "anonymous"):
    entry = AuditLogEntry(
        timestamp=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        action=action,
        store_id=store_id,
        user_id=user_id,
        result=result,
        detail=detail,
    )
    _audit_log.append(entry.model_dump())
    logger.info(f"AUDIT: {action} {store_id or '-'} by {user_id} -> {result}")


def _get_user_id(request: Request) -> str:
    """Extract user identity from X-User-Id header, 'anonymous' if absent."""
    return request.headers.get("x-user-id", "anonymous")


def get_store_service(request: Request) -> StoreService:
    return request.app.state.store_service


# =========================================================================
# REST Endpoints
# =========================================================================

@router.post("", response_model=StoreResponse, status_code=201,
             responses={409: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
async def create_store_endpoint(request: Request,
                                service: StoreService = Depends(get_store_service)):
    """Create a new store. Returns immediately; poll the store for its state."""
    user_id = _get_user_id(request)
    try:
        record = await service.create_store()
    except StoreAllocationError as e:
        _audit("CREATE", "", "REJECTED", str(e), user_id)
        raise HTTPException(status_code=409, detail=str(e))
    except StoreNotFoundError as e:
        _audit("CREATE", e.store_id, "DELETED", "Deleted while provisioning", user_id)
        raise HTTPException(status_code=409, detail=f"{e} (deleted while provisioning)")
    result = "FAILED" if record.state == StoreState.FAILED else "SUCCESS"
    _audit("CREATE", record.id, result, record.message, user_id)
    return record.to_response()


@router.get("", response_model=StoreListResponse)
@limiter.limit(settings.RATE_LIMIT)
async def list_stores_endpoint(
    request: Request,
    state: Optional[StoreState] = Query(None, description="Filter by lifecycle state"),
    service: StoreService = Depends(get_store_service),
):
    """List all stores, optionally filtered by state."""
    records = await service.list_stores(state)
    stores = [r.to_response() for r in records]
    return StoreListResponse(stores=stores, total=len(stores))


@router.get("/audit/log")
@limiter.limit(settings.RATE_LIMIT)
async def get_audit_log(request: Request):
    """Get the platform audit log (most recent entries)."""
    return {"entries": list(_audit_log), "count": len(_audit_log)}


@router.get("/{store_id}", response_model=StoreResponse,
            responses={404: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
async def get_store_endpoint(store_id: str, request: Request,
                             service: StoreService = Depends(get_store_service)):
    """Get a specific store by id."""
    try:
        record = await service.get_store(store_id)
    except StoreNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return record.to_response()


@router.delete("/{store_id}", response_model=DeleteResponse,
               responses={202: {"model": DeleteResponse},
                          404: {"model": ErrorResponse},
                          502: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
async def delete_store_endpoint(store_id: str, request: Request,
                                service: StoreService = Depends(get_store_service)):
    """
    Delete a store. Blocks until the release and namespace are gone.
    Returns 202 if a deletion of the same store is already running.
    """
    user_id = _get_user_id(request)
    try:
        pending = await service.delete_store(store_id)
    except StoreNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TeardownError as e:
        _audit("DELETE", store_id, "FAILED", e.reason, user_id)
        raise HTTPException(status_code=502, detail=str(e))

    if pending is not None:
        body = DeleteResponse(
            message=f"Store '{store_id}' deletion already in progress",
            status="deleting",
            store=pending.to_response(),
        )
        return JSONResponse(status_code=202, content=body.model_dump(mode="json"))

    _audit("DELETE", store_id, "SUCCESS", user_id=user_id)
    return DeleteResponse(message="Store deleted successfully", status="deleted")


@router.get("/{store_id}/logs", response_model=StoreLogsResponse,
            responses={404: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
async def get_store_logs(store_id: str, request: Request,
                         service: StoreService = Depends(get_store_service)):
    """
    Get activity log for a store.
    Sources: registry record (always available) + Redis Stream (if connected).
    """
    try:
        record = await service.get_store(store_id)
    except StoreNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    logs = [ActivityLogEntry(**a) for a in record.activity]
    for entry in await service.events.history(store_id):
        logs.append(ActivityLogEntry(
            timestamp=entry.get("timestamp", ""),
            event=entry.get("type", ""),
            message=entry.get("message", ""),
            source="redis",
        ))
    return StoreLogsResponse(store=store_id, logs=logs)
