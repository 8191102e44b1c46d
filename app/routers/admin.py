"""
Admin API: reconciliação de vendas com a Ativus.
Authentication via X-Admin-Token header verified against the bcrypt hash in ADMIN_TOKEN_HASH.
"""
import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from app.config import Settings
from app.routers.deps import db_dep, require_admin, settings_dep
from app.services.reconciliation import ReconcileRequest, reconcile

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


class ReconcileBody(BaseModel):
    target_user_id: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    transaction_ids: list[str] | None = None


@router.post("/reconcile")
async def reconcile_sales(body: ReconcileBody, db=Depends(db_dep), settings: Settings = Depends(settings_dep)):
    if not (body.start_date and body.end_date) and not body.transaction_ids:
        raise HTTPException(status_code=400, detail="Provide start_date and end_date, or transaction_ids")
    if body.start_date and body.end_date and body.start_date > body.end_date:
        raise HTTPException(status_code=400, detail="start_date must be before end_date")

    logger.info(
        "Reconcile requested: user=%s period=%s..%s ids=%d",
        body.target_user_id, body.start_date, body.end_date, len(body.transaction_ids or []),
    )
    return await reconcile(db, settings, ReconcileRequest(
        target_user_id=body.target_user_id,
        start_date=body.start_date.isoformat() if body.start_date else None,
        end_date=body.end_date.isoformat() if body.end_date else None,
        transaction_ids=body.transaction_ids,
    ))
