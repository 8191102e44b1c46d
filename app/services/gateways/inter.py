"""
Adquirente Banco Inter (API Pix v2).

Every call goes over mutual TLS with the merchant (or platform) certificate and
a bearer token from the shared token cache. The txid we generate is the cob id.
"""
import logging

import httpx

from app.models.transactions import Acquirer, cents_to_reais, parse_provider_datetime
from app.services.credentials import InterCredentials, resolve_inter_credentials
from app.services.errors import CredentialMissingError
from app.services.gateways.base import AcquirerGateway, ChargeContext, ProviderStatus
from app.services.token_cache import build_inter_client, get_access_token

logger = logging.getLogger(__name__)

COB_EXPIRATION_SECONDS = 3600


def sanitize_pix_key(key: str) -> str:
    """Remove pontuação de CPF/CNPJ. Email and +55 phone keys are kept as-is."""
    key = (key or "").strip()
    if "@" in key or key.startswith("+"):
        return key
    return key.replace(".", "").replace("-", "").replace("/", "")


class InterGateway(AcquirerGateway):
    name = Acquirer.INTER
    credential_key = "inter_client_id"

    PIX_CODE_PATHS = ("pixCopiaECola",)
    QR_URL_PATHS = ()
    PROVIDER_ID_PATHS = ("txid",)

    PAID_STATUSES = frozenset({"CONCLUIDA"})
    EXPIRED_STATUSES = frozenset({"REMOVIDA_PELO_USUARIO_RECEBEDOR", "REMOVIDA_PELO_PSP"})

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.credentials: InterCredentials | None = None
        self._http: httpx.AsyncClient | None = None
        self._token: str | None = None

    def load_credentials(self) -> bool:
        self.credentials = resolve_inter_credentials(self.db, self.settings, self.user_id)
        return self.credentials is not None

    def require_credentials(self) -> None:
        if not self.load_credentials():
            raise CredentialMissingError(self.name.value, "inter_client_id/secret/certificate/private_key")
        if not self.credentials.pix_key:
            raise CredentialMissingError(self.name.value, "inter_pix_key")

    def _mtls(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = build_inter_client(self.credentials, self.settings, self.transport)
        return self._http

    async def _bearer(self) -> dict:
        # One token per adapter instance, i.e. per batch run
        if self._token is None:
            self._token = await get_access_token(self.db, self.settings, self.credentials, self._mtls())
        return {"Authorization": f"Bearer {self._token}", "Content-Type": "application/json"}

    def build_payload(self, ctx: ChargeContext) -> dict:
        return {
            "calendario": {"expiracao": COB_EXPIRATION_SECONDS},
            "valor": {"original": f"{cents_to_reais(ctx.amount_cents):.2f}"},
            "chave": sanitize_pix_key(self.credentials.pix_key),
            "solicitacaoPagador": ctx.product_name[:140],
        }

    async def submit_charge(self, ctx: ChargeContext) -> dict:
        client = self._mtls()
        resp = await client.put(
            f"/pix/v2/cob/{ctx.txid}", headers=await self._bearer(), json=self.build_payload(ctx)
        )
        return self._check(self.name.value, resp)

    async def fetch_status(self, txid: str, external_ref: str | None = None) -> ProviderStatus:
        client = self._mtls()
        resp = await self._request_with_retry(
            client, "GET", f"/pix/v2/cob/{txid}", headers=await self._bearer()
        )
        if resp.status_code == 404:
            return ProviderStatus(state=self.map_status(None), raw_status="not_found", found=False)
        data = self._check(self.name.value, resp)
        raw = str(data.get("status") or "")
        paid_at = None
        pix = data.get("pix") or []
        if pix and isinstance(pix[0], dict):
            paid_at = parse_provider_datetime(pix[0].get("horario"), self.settings.reporting_timezone)
        return ProviderStatus(state=self.map_status(raw), raw_status=raw, paid_at=paid_at)

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
