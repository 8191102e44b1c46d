"""
Adquirente SpedPay.
POST /v1/transactions with header api-secret; status via GET /v1/transactions/{id}.
"""
import logging

from app.models.transactions import Acquirer, cents_to_reais, parse_provider_datetime
from app.services.gateways.base import AcquirerGateway, ChargeContext, ProviderStatus, pick

logger = logging.getLogger(__name__)


class SpedPayGateway(AcquirerGateway):
    name = Acquirer.SPEDPAY
    credential_key = "spedpay_api_key"
    uses_provider_id = True

    PIX_CODE_PATHS = (
        "pix_copia_e_cola", "pixCopiaECola", "qrcode", "qr_code", "brcode", "emv", "code",
        "pix.brcode", "pix.qrcode", "pix.copia_e_cola", "pix.copiaECola", "pix.copy_paste",
        "pix.emv", "pix.code", "pix.qr_code", "pix.pix_code", "pix.pixCode", "pix.payload",
        "paymentCode", "transaction.pix_copia_e_cola", "transaction.brcode",
    )
    QR_URL_PATHS = (
        "qrcode_url", "qrcodeUrl", "qr_code_url",
        "pix.qrcode_url", "pix.qrcodeUrl", "pix.qr_code_base64", "pix.qrcodeBase64", "pix.image",
        "paymentCodeBase64",
    )
    PROVIDER_ID_PATHS = ("id", "transaction_id", "id_transaction", "idTransaction")

    PAID_STATUSES = frozenset({"paid", "authorized", "approved", "completed", "confirmed"})
    EXPIRED_STATUSES = frozenset({"expired", "canceled", "cancelled", "refused", "failed"})

    def _normalize_status(self, raw) -> str:
        return str(raw or "").strip().lower()

    def _headers(self) -> dict:
        return {"api-secret": self.api_key, "Content-Type": "application/json"}

    def build_payload(self, ctx: ChargeContext) -> dict:
        amount = float(cents_to_reais(ctx.amount_cents))
        utm = ctx.utm_data or {}
        return {
            "external_id": ctx.txid,
            "total_amount": amount,
            "payment_method": "PIX",
            "webhook_url": ctx.webhook_url,
            "items": [{
                "id": f"item_{ctx.txid}",
                "title": ctx.product_name,
                "description": ctx.product_name,
                "price": amount,
                "quantity": 1,
                "is_physical": False,
            }],
            "ip": "127.0.0.1",
            "customer": {
                "name": ctx.customer.name,
                "email": ctx.customer.email,
                "phone": ctx.customer.phone_digits,
                "document_type": "CPF",
                "document": ctx.customer.cpf,
                "utm_source": utm.get("utm_source", ""),
                "utm_medium": utm.get("utm_medium", ""),
                "utm_campaign": utm.get("utm_campaign", ""),
                "utm_content": utm.get("utm_content", ""),
                "utm_term": utm.get("utm_term", ""),
            },
        }

    async def submit_charge(self, ctx: ChargeContext) -> dict:
        async with self._client() as client:
            resp = await client.post(
                f"{self.settings.spedpay_api_url}/v1/transactions",
                headers=self._headers(),
                json=self.build_payload(ctx),
            )
        return self._check(self.name.value, resp)

    async def fetch_status(self, txid: str, external_ref: str | None = None) -> ProviderStatus:
        async with self._client() as client:
            resp = await self._request_with_retry(
                client, "GET", f"{self.settings.spedpay_api_url}/v1/transactions/{txid}",
                headers=self._headers(),
            )
        if resp.status_code == 404:
            return ProviderStatus(state=self.map_status(None), raw_status="not_found", found=False)
        data = self._check(self.name.value, resp)
        raw = pick(data, ("status", "transaction.status", "data.status")) or ""
        paid_at = parse_provider_datetime(
            pick(data, ("paid_at", "paidAt", "transaction.paid_at", "updated_at")),
            self.settings.reporting_timezone,
        )
        return ProviderStatus(state=self.map_status(raw), raw_status=raw, paid_at=paid_at)
