"""
Endpoints de cobrança PIX: criação, consulta de status e varredura em lote (cron).
Gateway errors are mapped to HTTP status codes by the handlers in app.main.
"""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.config import Settings
from app.models.transactions import ChargeRequest
from app.routers.deps import db_dep, require_admin, settings_dep
from app.services.charge_creation import create_charge
from app.services.status_poller import check_status, run_batch_check

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/pix", tags=["pix"])


class CreatePixRequest(BaseModel):
    amount_cents: int = Field(..., description="Valor em centavos")
    user_id: str | None = None
    donor_name: str | None = None
    product_name: str | None = None
    popup_model: str | None = None
    utm_data: dict[str, str] = Field(default_factory=dict)


class StatusRequest(BaseModel):
    transactionId: str


@router.post("/create")
async def create_pix(req: CreatePixRequest, db=Depends(db_dep), settings: Settings = Depends(settings_dep)):
    return await create_charge(db, settings, ChargeRequest(
        amount_cents=req.amount_cents,
        user_id=req.user_id,
        donor_name=req.donor_name,
        product_name=req.product_name,
        popup_model=req.popup_model,
        utm_data=req.utm_data,
    ))


@router.post("/status")
async def pix_status(req: StatusRequest, db=Depends(db_dep), settings: Settings = Depends(settings_dep)):
    return await check_status(db, settings, req.transactionId)


@router.post("/batch-check", dependencies=[Depends(require_admin)])
async def batch_check(db=Depends(db_dep), settings: Settings = Depends(settings_dep)):
    """Chamado pelo cron. Processa no máximo uma página de pendentes."""
    return await run_batch_check(db, settings)
