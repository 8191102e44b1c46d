"""FastAPI dependencies shared by the routers."""
import bcrypt
from fastapi import Depends, Header, HTTPException

from app.config import Settings, get_settings
from app.db.supabase import get_db


def settings_dep() -> Settings:
    return get_settings()


def db_dep(settings: Settings = Depends(settings_dep)):
    return get_db(settings)


def _verify_token(token: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(token.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


async def require_admin(
    x_admin_token: str = Header(...),
    settings: Settings = Depends(settings_dep),
):
    """Dependency: X-Admin-Token checked against ADMIN_TOKEN_HASH (bcrypt). Stateless."""
    if not settings.admin_token_hash:
        raise HTTPException(status_code=503, detail="Admin token not configured")
    if not _verify_token(x_admin_token, settings.admin_token_hash):
        raise HTTPException(status_code=401, detail="Invalid admin token")
    return True
