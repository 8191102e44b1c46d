"""
Detecta a adquirente a partir do formato do txid.

  UUID canônico           -> None (spedpay e inter usam UUID, ambíguo)
  alfanumérico >= 20 chars -> ativus
  qualquer outro formato   -> None
"""
import re

from app.config import Settings
from app.models.transactions import Acquirer
from app.services.credentials import resolve_user_acquirer

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
_ATIVUS_RE = re.compile(r"^[A-Za-z0-9]{20,}$")


def detect_acquirer(txid) -> Acquirer | None:
    if not txid or not isinstance(txid, str):
        return None
    if _UUID_RE.match(txid):
        return None
    if _ATIVUS_RE.match(txid):
        return Acquirer.ATIVUS
    return None


def resolve_acquirer(db, settings: Settings, row: dict, user_cache: dict | None = None) -> Acquirer:
    """Stored tag, then txid heuristic, then merchant user_acquirer, then platform default.

    user_cache memoizes merchant lookups for the duration of one batch run.
    """
    stored = Acquirer.parse(row.get("acquirer"))
    if stored:
        return stored

    detected = detect_acquirer(row.get("txid"))
    if detected:
        return detected

    user_id = row.get("user_id")
    if user_cache is not None and user_id in user_cache:
        merchant = user_cache[user_id]
    else:
        merchant = resolve_user_acquirer(db, settings, user_id) if user_id else None
        if user_cache is not None:
            user_cache[user_id] = merchant
    if merchant:
        return merchant

    return Acquirer.parse(settings.default_acquirer) or Acquirer.SPEDPAY
