from fastapi import APIRouter, Depends

from app.config import Settings
from app.models.transactions import Acquirer
from app.routers.deps import db_dep, settings_dep
from app.services.gateways.registry import get_gateway
from app.services.monitoring import acquirer_health

router = APIRouter()


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/health/acquirers")
async def health_acquirers(db=Depends(db_dep), settings: Settings = Depends(settings_dep)):
    """Credencial global configurada + taxa de sucesso recente por adquirente."""
    acquirers = []
    for acquirer in Acquirer:
        stats = acquirer_health(db, acquirer.value)
        stats["configured"] = get_gateway(acquirer, db, settings).load_credentials()
        acquirers.append(stats)
    return {"status": "ok", "default_acquirer": settings.default_acquirer, "acquirers": acquirers}
