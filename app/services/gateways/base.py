"""Interface base das adquirentes PIX."""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

import httpx

from app.config import Settings
from app.models.transactions import Acquirer, ProviderState
from app.services.credentials import resolve_setting
from app.services.customer_data import Customer
from app.services.errors import AcquirerHTTPError, CredentialMissingError, ResponseShapeError

logger = logging.getLogger(__name__)

_RETRY_STATUS = {408, 429}


@dataclass
class ChargeContext:
    """Tudo que uma adquirente precisa para criar a cobrança."""

    txid: str
    amount_cents: int
    customer: Customer
    user_id: str | None = None
    product_name: str = "Anônimo"
    popup_model: str | None = None
    utm_data: dict = field(default_factory=dict)
    webhook_url: str | None = None


@dataclass
class NormalizedCharge:
    pix_code: str
    qr_code_url: str | None
    provider_id: str


@dataclass
class ProviderStatus:
    """Status de uma cobrança na adquirente, já mapeado."""

    state: ProviderState
    raw_status: str
    paid_at: datetime | None = None
    found: bool = True


def pick(data: dict, paths: tuple[str, ...]) -> str | None:
    """First non-empty string among dotted paths ("pix.brcode")."""
    for path in paths:
        node = data
        for part in path.split("."):
            node = node.get(part) if isinstance(node, dict) else None
            if node is None:
                break
        if node not in (None, "") and not isinstance(node, (dict, list)):
            return str(node)
    return None


class AcquirerGateway(ABC):
    name: Acquirer
    credential_key: str

    # Alias lists, tried in order
    PIX_CODE_PATHS: tuple[str, ...] = ()
    QR_URL_PATHS: tuple[str, ...] = ()
    PROVIDER_ID_PATHS: tuple[str, ...] = ()

    PAID_STATUSES: frozenset[str] = frozenset()
    EXPIRED_STATUSES: frozenset[str] = frozenset()

    # True when the acquirer assigns its own id; the local txid becomes external_ref
    uses_provider_id = False

    def __init__(
        self,
        db,
        settings: Settings,
        user_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.db = db
        self.settings = settings
        self.user_id = user_id
        self.transport = transport
        self.api_key: str | None = None

    def load_credentials(self) -> bool:
        self.api_key = resolve_setting(self.db, self.settings, self.credential_key, self.user_id)
        return bool(self.api_key)

    def require_credentials(self) -> None:
        if not self.load_credentials():
            raise CredentialMissingError(self.name.value, self.credential_key)

    def _client(self, **kwargs) -> httpx.AsyncClient:
        kwargs.setdefault("timeout", self.settings.http_timeout_seconds)
        if self.transport is not None:
            kwargs["transport"] = self.transport
        return httpx.AsyncClient(**kwargs)

    def map_status(self, raw) -> ProviderState:
        value = self._normalize_status(raw)
        if value in self.PAID_STATUSES:
            return ProviderState.PAID
        if value in self.EXPIRED_STATUSES:
            return ProviderState.EXPIRED
        return ProviderState.PENDING

    def _normalize_status(self, raw) -> str:
        return str(raw or "").strip()

    def normalize_charge(self, data: dict, txid: str) -> NormalizedCharge:
        pix_code = pick(data, self.PIX_CODE_PATHS)
        if not pix_code:
            keys = ", ".join(sorted(data.keys())) if isinstance(data, dict) else type(data).__name__
            raise ResponseShapeError(self.name.value, f"PIX code (fields: {keys})")
        return NormalizedCharge(
            pix_code=pix_code,
            qr_code_url=pick(data, self.QR_URL_PATHS),
            provider_id=pick(data, self.PROVIDER_ID_PATHS) or txid,
        )

    @staticmethod
    def _check(acquirer: str, resp: httpx.Response) -> dict:
        if resp.status_code >= 400:
            raise AcquirerHTTPError(acquirer, resp.status_code, resp.text)
        try:
            data = resp.json()
        except ValueError:
            raise ResponseShapeError(acquirer, f"JSON body ({resp.text[:200]})")
        if not isinstance(data, dict):
            raise ResponseShapeError(acquirer, "JSON object")
        return data

    async def _request_with_retry(self, client: httpx.AsyncClient, method: str, url: str, **kwargs) -> httpx.Response:
        """Status lookups only. Retries 408/429/5xx and transport errors with backoff.
        Charge creation never goes through here."""
        max_retries = self.settings.status_max_retries
        for attempt in range(max_retries + 1):
            try:
                resp = await client.request(method, url, **kwargs)
            except httpx.TransportError as e:
                if attempt >= max_retries:
                    raise
                wait = self.settings.status_retry_base_seconds * (2 ** attempt)
                logger.warning(f"{self.name.value} {method} {url} failed ({e}), retry {attempt+1} in {wait}s")
                await asyncio.sleep(wait)
                continue

            if (resp.status_code in _RETRY_STATUS or resp.status_code >= 500) and attempt < max_retries:
                wait = self.settings.status_retry_base_seconds * (2 ** attempt)
                logger.warning(f"{self.name.value} {resp.status_code} on {method} {url}, retry {attempt+1} in {wait}s")
                await asyncio.sleep(wait)
                continue
            return resp
        raise RuntimeError(f"Max retries exceeded for {url}")

    @abstractmethod
    async def submit_charge(self, ctx: ChargeContext) -> dict:
        """Cria a cobrança. Returns the decoded 2xx body, raises AcquirerHTTPError otherwise."""

    @abstractmethod
    async def fetch_status(self, txid: str, external_ref: str | None = None) -> ProviderStatus:
        """Consulta o status atual na adquirente."""

    async def aclose(self) -> None:
        return None
