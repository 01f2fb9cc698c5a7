"""
HTTP surface over ``InventoryService`` (FastAPI).

Mutations always answer 200 with the service's ``{success, ...}`` body,
so callers branch on ``success`` and ``code`` rather than on status.
Reads answer 404 for an unknown lot and 400 for a bad filter.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, Response
from pydantic import BaseModel, Field

from seedbank_kernel.exceptions import FetchError, InvalidValueError
from seedbank_kernel.logging_config import LogContext, get_logger

from seedbank_services.asset_fetcher import AssetFetcher
from seedbank_services.inventory_service import InventoryService

logger = get_logger("services.http")

router = APIRouter(tags=["inventory"])


class WithdrawRequest(BaseModel):
    lotCode: str
    amount: Decimal | str
    reason: str = ""
    inventoryType: str | None = None
    user: str | None = None


class EditLotRequest(BaseModel):
    lotCode: str
    changedFields: dict[str, Any]
    pinCode: str | int | None = None
    snapshot: dict[str, Any] | None = None


class RegisterLotRequest(BaseModel):
    fields: dict[str, Any] = Field(default_factory=dict)


def get_service(request: Request) -> InventoryService:
    return request.app.state.inventory_service


def get_fetcher(request: Request) -> AssetFetcher | None:
    return getattr(request.app.state, "asset_fetcher", None)


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/withdraw")
def withdraw(req: WithdrawRequest, service: InventoryService = Depends(get_service)):
    with LogContext.bind(request_id=_request_id(), actor=req.user):
        return service.withdraw(
            req.lotCode,
            req.amount,
            reason=req.reason,
            inventory_type=req.inventoryType,
            user=req.user,
        )


@router.post("/editLot")
def edit_lot(req: EditLotRequest, service: InventoryService = Depends(get_service)):
    with LogContext.bind(request_id=_request_id()):
        return service.edit_lot(req.lotCode, req.changedFields, req.pinCode, snapshot=req.snapshot)


@router.post("/lots")
def register_lot(req: RegisterLotRequest, service: InventoryService = Depends(get_service)):
    with LogContext.bind(request_id=_request_id()):
        return service.register_lot(req.fields)


@router.get("/lots")
def list_lots(
    inventoryType: str | None = Query(default=None),
    service: InventoryService = Depends(get_service),
):
    try:
        return service.list_lots(inventoryType)
    except InvalidValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.get("/lots/{code}")
def get_lot(code: str, service: InventoryService = Depends(get_service)):
    lot = service.get_lot(code)
    if lot is None:
        raise HTTPException(status_code=404, detail=f"Seed lot not found: {code}")
    return lot


@router.get("/lots/{code}/qrImage")
def get_qr_image(
    code: str,
    service: InventoryService = Depends(get_service),
    fetcher: AssetFetcher | None = Depends(get_fetcher),
):
    lot = service.get_lot(code)
    if lot is None or not lot["qrImage"]:
        raise HTTPException(status_code=404, detail=f"No QR image for lot: {code}")
    if fetcher is None:
        raise HTTPException(status_code=503, detail="Asset fetching is not configured")
    try:
        asset = fetcher.fetch_image(lot["qrImage"])
    except FetchError as exc:
        logger.warning("qr_image_fetch_failed", extra={"lot_code": code, "error_code": exc.code})
        raise HTTPException(status_code=502, detail=str(exc))
    return Response(content=asset.content, media_type=asset.content_type)


@router.get("/withdrawalLogs")
def withdrawal_logs(
    lotCode: str | None = Query(default=None),
    service: InventoryService = Depends(get_service),
):
    return service.withdrawal_logs(lotCode)


@router.get("/editLogs")
def edit_logs(
    lotCode: str | None = Query(default=None),
    service: InventoryService = Depends(get_service),
):
    return service.edit_logs(lotCode)


@router.get("/inventory")
def inventory(
    inventoryType: str | None = Query(default=None),
    service: InventoryService = Depends(get_service),
):
    try:
        return service.inventory_view(inventory_type=inventoryType)
    except InvalidValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.get("/dashboard")
def dashboard(service: InventoryService = Depends(get_service)):
    return service.dashboard()


@router.post("/reconcile")
def reconcile(
    apply: bool = Query(default=False),
    service: InventoryService = Depends(get_service),
):
    with LogContext.bind(request_id=_request_id()):
        return service.reconcile(apply=apply)


def _request_id() -> str:
    return uuid4().hex


def create_app(service: InventoryService, fetcher: AssetFetcher | None = None) -> FastAPI:
    app = FastAPI(title="Seed Bank Inventory")
    app.state.inventory_service = service
    app.state.asset_fetcher = fetcher
    app.include_router(router)
    return app
