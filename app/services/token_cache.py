"""
Cache de access_token OAuth2 (client_credentials + mTLS) do Banco Inter.

Tokens live in the append-only acquirer_tokens table: every refresh inserts a
new row and readers take the most recent one. Concurrent refreshes may both
insert; either token is valid until it expires.
"""
import logging
import os
import re
import ssl
import tempfile
from datetime import datetime, timedelta, timezone

import httpx

from app.config import Settings
from app.models.transactions import Acquirer, utc_now
from app.services.credentials import InterCredentials
from app.services.errors import TokenError

logger = logging.getLogger(__name__)

INTER_SCOPE = "cob.write cob.read pix.write pix.read"
DEFAULT_EXPIRES_IN = 3600

_PEM_RE = re.compile(
    r"-----BEGIN ([A-Z ]+)-----(.*?)-----END \1-----", re.DOTALL
)


def normalize_pem(pem: str) -> str:
    """Rewrap a PEM pasted through a form or env var (escaped or missing newlines)."""
    text = (pem or "").replace("\\n", "\n").replace("\r\n", "\n").strip()
    blocks = []
    for label, body in _PEM_RE.findall(text):
        b64 = re.sub(r"\s+", "", body)
        lines = [b64[i:i + 64] for i in range(0, len(b64), 64)]
        blocks.append("\n".join([f"-----BEGIN {label}-----", *lines, f"-----END {label}-----"]))
    if not blocks:
        return text + "\n"
    return "\n".join(blocks) + "\n"


def build_ssl_context(creds: InterCredentials) -> ssl.SSLContext:
    """SSLContext carrying the client certificate. load_cert_chain only reads files."""
    ctx = ssl.create_default_context()
    paths = []
    try:
        for content in (creds.certificate, creds.private_key):
            fd, path = tempfile.mkstemp(suffix=".pem")
            with os.fdopen(fd, "w") as f:
                f.write(normalize_pem(content))
            paths.append(path)
        ctx.load_cert_chain(certfile=paths[0], keyfile=paths[1])
    finally:
        for path in paths:
            os.unlink(path)
    return ctx


def build_inter_client(
    creds: InterCredentials,
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    if transport is not None:
        return httpx.AsyncClient(
            base_url=settings.inter_api_url,
            timeout=settings.http_timeout_seconds,
            transport=transport,
        )
    return httpx.AsyncClient(
        base_url=settings.inter_api_url,
        timeout=settings.http_timeout_seconds,
        verify=build_ssl_context(creds),
    )


def _latest_token(db, client_id: str) -> dict | None:
    result = (
        db.table("acquirer_tokens")
        .select("access_token, expires_at, created_at")
        .eq("acquirer", Acquirer.INTER.value)
        .eq("client_id", client_id)
        .order("created_at", desc=True)
        .limit(1)
        .execute()
    )
    rows = result.data or []
    return rows[0] if rows else None


def _is_fresh(row: dict, margin_seconds: int, now: datetime) -> bool:
    try:
        expires_at = datetime.fromisoformat(str(row["expires_at"]).replace("Z", "+00:00"))
    except (KeyError, ValueError):
        return False
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at - now > timedelta(seconds=margin_seconds)


async def get_access_token(
    db,
    settings: Settings,
    creds: InterCredentials,
    client: httpx.AsyncClient,
    scope: str = INTER_SCOPE,
) -> str:
    """Token válido do cache ou recém-emitido.

    Raises TokenError on any auth failure other than 429 with a cached token.
    """
    now = utc_now()
    cached = _latest_token(db, creds.client_id)
    if cached and _is_fresh(cached, settings.token_refresh_margin_seconds, now):
        return cached["access_token"]

    try:
        resp = await client.post(
            "/oauth/v2/token",
            data={
                "client_id": creds.client_id,
                "client_secret": creds.client_secret,
                "scope": scope,
                "grant_type": "client_credentials",
            },
        )
    except httpx.HTTPError as e:
        raise TokenError(f"inter token request failed: {e}") from e

    if resp.status_code == 429:
        if cached:
            logger.warning("Inter token endpoint rate limited, reusing last cached token")
            return cached["access_token"]
        raise TokenError("inter token endpoint rate limited and no cached token")

    if resp.status_code >= 400:
        raise TokenError(f"inter token HTTP {resp.status_code}: {resp.text[:200]}")

    data = resp.json()
    token = data.get("access_token")
    if not token:
        raise TokenError("inter token response without access_token")

    expires_in = int(data.get("expires_in") or DEFAULT_EXPIRES_IN)
    expires_at = now + timedelta(seconds=expires_in)
    db.table("acquirer_tokens").insert({
        "acquirer": Acquirer.INTER.value,
        "client_id": creds.client_id,
        "access_token": token,
        "expires_at": expires_at.isoformat(),
        "created_at": now.isoformat(),
    }).execute()
    logger.info("Inter token refreshed, expires at %s", expires_at.isoformat())
    return token
