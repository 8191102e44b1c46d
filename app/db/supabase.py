import base64
import json
import logging

from supabase import create_client, Client

from app.config import Settings, get_settings
from app.services.errors import PlatformConfigError

_client: Client | None = None
_role_checked = False

logger = logging.getLogger(__name__)


def _decode_jwt_role(token: str) -> str | None:
    parts = token.split(".")
    if len(parts) != 3:
        return None

    try:
        payload = parts[1]
        padding = "=" * (-len(payload) % 4)
        data = base64.urlsafe_b64decode(f"{payload}{padding}").decode("utf-8")
        parsed = json.loads(data)
        role = parsed.get("role")
        return role if isinstance(role, str) else None
    except (ValueError, UnicodeDecodeError):
        return None


def _is_service_role_key(key: str) -> bool:
    if key.startswith("sb_secret_"):
        return True
    # Publishable keys cannot write pix_transactions under RLS
    if key.startswith("sb_publishable_") or key.startswith("sbp_"):
        return False

    role = _decode_jwt_role(key)
    return role == "service_role"


def _effective_key(settings: Settings) -> str:
    return settings.supabase_service_role_key or settings.supabase_key


def get_db(settings: Settings | None = None) -> Client:
    """Cliente Supabase único por processo.
    Raises PlatformConfigError when URL or key is missing."""
    global _client, _role_checked
    if _client is None:
        settings = settings or get_settings()
        key = _effective_key(settings)
        if not settings.supabase_url or not key:
            raise PlatformConfigError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
        if not _role_checked:
            if not _is_service_role_key(key):
                logger.critical(
                    "Supabase backend key is not service-role. "
                    "Ledger writes and token cache inserts may fail under RLS. "
                    "Configure SUPABASE_SERVICE_ROLE_KEY."
                )
            _role_checked = True
        _client = create_client(settings.supabase_url, key)
    return _client
