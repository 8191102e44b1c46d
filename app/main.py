"""
PIX Gateway - cobrança multi-adquirente + conciliação
SpedPay, Banco Inter e Ativus Hub atrás de um único ledger (pix_transactions).
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.routers import admin, health, pix, webhooks
from app.services.errors import (
    AcquirerHTTPError,
    CredentialMissingError,
    GatewayError,
    InvalidAmountError,
    PlatformConfigError,
    ResponseShapeError,
    TokenError,
    TransactionNotFoundError,
)
from app.services.poll_scheduler import PendingPoller

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
# Silence httpx per-request logs (batch runs do one request per pending charge)
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

settings = get_settings()
poller = PendingPoller(settings) if settings.poll_scheduler_enabled else None


@asynccontextmanager
async def lifespan(app):
    if poller:
        await poller.start()
    yield
    if poller:
        await poller.stop()


app = FastAPI(
    title="PIX Gateway",
    description="Cobrança PIX multi-adquirente, polling de status e reconciliação",
    version="1.0.0",
    lifespan=lifespan,
)

origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_ERROR_STATUS = [
    (InvalidAmountError, 400, "INVALID_AMOUNT"),
    (TransactionNotFoundError, 404, "NOT_FOUND"),
    (CredentialMissingError, 422, "ACQUIRER_NOT_CONFIGURED"),
    (AcquirerHTTPError, 502, "PIX_GENERATION_FAILED"),
    (ResponseShapeError, 502, "PIX_GENERATION_FAILED"),
    (TokenError, 502, "ACQUIRER_AUTH_FAILED"),
    (PlatformConfigError, 500, "PLATFORM_NOT_CONFIGURED"),
]


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    for cls, status_code, code in _ERROR_STATUS:
        if isinstance(exc, cls):
            break
    else:
        status_code, code = 500, "INTERNAL_ERROR"
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": {"code": code, "message": str(exc)}},
    )


app.include_router(health.router)
app.include_router(pix.router)
app.include_router(webhooks.router)
app.include_router(admin.router)
