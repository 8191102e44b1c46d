"""
Resolução de credenciais e configuração por merchant.
Lookup order for every key: merchant row -> global row (user_id null) -> Settings env.
Absence is a normal outcome (None), never an exception.
"""
import logging
from dataclasses import dataclass

from app.config import Settings
from app.models.transactions import Acquirer, FeeSchedule

logger = logging.getLogger(__name__)

# admin_settings key -> Settings attribute used as process-level fallback
_ENV_FALLBACK = {
    "spedpay_api_key": "spedpay_api_key",
    "ativus_api_key": "ativus_api_key",
    "inter_client_id": "inter_client_id",
    "inter_client_secret": "inter_client_secret",
    "inter_certificate": "inter_certificate",
    "inter_private_key": "inter_private_key",
    "inter_pix_key": "inter_pix_key",
}


@dataclass(frozen=True)
class InterCredentials:
    client_id: str
    client_secret: str
    certificate: str
    private_key: str
    pix_key: str | None = None


def _read_setting(db, key: str, user_id: str | None) -> str | None:
    query = db.table("admin_settings").select("value").eq("key", key)
    if user_id:
        query = query.eq("user_id", user_id)
    else:
        query = query.is_("user_id", "null")
    result = query.limit(1).execute()
    rows = result.data or []
    if rows and rows[0].get("value"):
        return rows[0]["value"]
    return None


def resolve_setting(db, settings: Settings, key: str, user_id: str | None = None) -> str | None:
    if user_id:
        value = _read_setting(db, key, user_id)
        if value:
            return value
    value = _read_setting(db, key, None)
    if value:
        return value
    attr = _ENV_FALLBACK.get(key)
    if attr:
        return getattr(settings, attr, "") or None
    return None


def resolve_user_acquirer(db, settings: Settings, user_id: str | None) -> Acquirer | None:
    raw = resolve_setting(db, settings, "user_acquirer", user_id)
    acquirer = Acquirer.parse(raw)
    if raw and acquirer is None:
        logger.warning("Unknown user_acquirer '%s' for user %s, ignoring", raw, user_id)
    return acquirer


def resolve_fee_config(db, user_id: str | None) -> FeeSchedule | None:
    """Merchant fee_configs row, else the default row, else None."""
    if user_id:
        fee_id = _read_setting(db, "user_fee_config", user_id)
        if fee_id:
            result = db.table("fee_configs").select("*").eq("id", fee_id).limit(1).execute()
            if result.data:
                return FeeSchedule.from_row(result.data[0])
            logger.warning("user %s points to missing fee_config %s", user_id, fee_id)

    result = db.table("fee_configs").select("*").eq("is_default", True).limit(1).execute()
    if result.data:
        return FeeSchedule.from_row(result.data[0])
    return None


def resolve_inter_credentials(db, settings: Settings, user_id: str | None) -> InterCredentials | None:
    client_id = resolve_setting(db, settings, "inter_client_id", user_id)
    client_secret = resolve_setting(db, settings, "inter_client_secret", user_id)
    certificate = resolve_setting(db, settings, "inter_certificate", user_id)
    private_key = resolve_setting(db, settings, "inter_private_key", user_id)
    if not (client_id and client_secret and certificate and private_key):
        return None
    return InterCredentials(
        client_id=client_id,
        client_secret=client_secret,
        certificate=certificate,
        private_key=private_key,
        pix_key=resolve_setting(db, settings, "inter_pix_key", user_id),
    )
