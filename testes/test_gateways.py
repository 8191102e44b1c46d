#!/usr/bin/env python3
"""
Test script for the acquirer adapters (app/services/gateways/)

Usage:
    python3 testes/test_gateways.py

What it tests:
1. Response normalisation: each adapter's alias list for PIX code / QR URL / id
2. Missing PIX code is a response-shape failure
3. Status vocabulary per acquirer (paid / expired / unknown -> pending)
4. Ativus Basic auth (raw key vs already-encoded key)
5. Inter PIX key sanitisation and cob payload
6. Status lookups retry transient errors; creation does not
7. Ativus history listing (array locations, 404 degrade)
8. Ativus lookups: HTTP failure and non-JSON raise, creation time is not a payment time

No network: acquirers are httpx.MockTransport fakes.
"""
import asyncio
import base64
import sys
import logging
from pathlib import Path

# ── Project setup ─────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

import pytest

from app.models.transactions import ProviderState
from app.services.customer_data import build_customer
from app.services.errors import AcquirerHTTPError, ResponseShapeError
from app.services.gateways.ativus import AtivusGateway, basic_auth_value, parse_record
from app.services.gateways.base import ChargeContext
from app.services.gateways.inter import InterGateway, sanitize_pix_key
from app.services.gateways.spedpay import SpedPayGateway
from testes.fake_supabase import FakeSupabase
from testes.fixtures import FakeAcquirer, make_settings, request_json

# ── ANSI colours ──────────────────────────────────────────────────────────────
GREEN  = "\033[92m"
RED    = "\033[91m"
RESET  = "\033[0m"


def _gateway(cls, fake: FakeAcquirer | None = None, **settings_overrides):
    settings = make_settings(
        spedpay_api_key="sp-key", ativus_api_key="at-key",
        inter_client_id="cid", inter_client_secret="secret",
        inter_certificate="CERT", inter_private_key="KEY", inter_pix_key="12.345.678/0001-90",
        **settings_overrides,
    )
    gw = cls(FakeSupabase(), settings, transport=fake.transport if fake else None)
    assert gw.load_credentials()
    return gw


def _ctx(txid: str = "SPDabc") -> ChargeContext:
    return ChargeContext(
        txid=txid, amount_cents=1050, customer=build_customer("Fulano"),
        user_id="u-1", product_name="Doação", popup_model="simple",
        utm_data={"utm_source": "fb"}, webhook_url="https://gateway.test/webhooks/x",
    )


# ── 1-2. Normalisation ────────────────────────────────────────────────────────


def test_spedpay_alias_list() -> None:
    gw = _gateway(SpedPayGateway)
    cases = [
        ({"pix_copia_e_cola": "P1", "id": "sp-1"},                         ("P1", None, "sp-1")),
        ({"pix": {"qrcode": "P2", "qrcode_url": "U2"}, "transaction_id": "t2"}, ("P2", "U2", "t2")),
        ({"pix": {"payload": "P3", "image": "U3"}},                        ("P3", "U3", "local")),
        ({"transaction": {"brcode": "P4"}, "paymentCodeBase64": "U4"},     ("P4", "U4", "local")),
        # top-level alias wins over nested
        ({"qr_code": "TOP", "pix": {"brcode": "NESTED"}},                  ("TOP", None, "local")),
    ]
    for body, (code, url, pid) in cases:
        charge = gw.normalize_charge(body, "local")
        assert (charge.pix_code, charge.qr_code_url, charge.provider_id) == (code, url, pid), body


def test_ativus_alias_priority() -> None:
    gw = _gateway(AtivusGateway)
    charge = gw.normalize_charge(
        {"paymentCode": "EMV", "qrcode": "OTHER", "paymentCodeBase64": "IMG", "idTransaction": "AT1", "id": "x"},
        "ATVlocal",
    )
    assert charge.pix_code == "EMV"
    assert charge.qr_code_url == "IMG"
    assert charge.provider_id == "AT1"


def test_inter_normalisation_has_no_qr_url() -> None:
    gw = _gateway(InterGateway)
    charge = gw.normalize_charge({"txid": "INTabc", "pixCopiaECola": "0002012636"}, "INTabc")
    assert charge.pix_code == "0002012636"
    assert charge.qr_code_url is None


def test_missing_pix_code_is_shape_error() -> None:
    gw = _gateway(SpedPayGateway)
    with pytest.raises(ResponseShapeError):
        gw.normalize_charge({"id": "sp-1", "status": "pending", "pix": {}}, "local")


# ── 3. Status vocabulary ──────────────────────────────────────────────────────


def test_status_vocabulary() -> None:
    sp, inter, at = _gateway(SpedPayGateway), _gateway(InterGateway), _gateway(AtivusGateway)
    cases = [
        (sp,    "PAID",                             ProviderState.PAID),
        (sp,    "Confirmed",                        ProviderState.PAID),
        (sp,    "waiting_payment",                  ProviderState.PENDING),
        (sp,    "expired",                          ProviderState.EXPIRED),
        (inter, "CONCLUIDA",                        ProviderState.PAID),
        (inter, "concluida",                        ProviderState.PENDING),
        (inter, "ATIVA",                            ProviderState.PENDING),
        (inter, "REMOVIDA_PELO_PSP",                ProviderState.EXPIRED),
        (at,    "pago",                             ProviderState.PAID),
        (at,    "CONCLUÍDA",                        ProviderState.PAID),
        (at,    "AGUARDANDO_PAGAMENTO",             ProviderState.PENDING),
        (at,    "CANCELADO",                        ProviderState.EXPIRED),
        (at,    "SOMETHING_NEW",                    ProviderState.PENDING),
        (at,    None,                               ProviderState.PENDING),
    ]
    failures = [
        f"{gw.name.value}:{raw!r} -> {gw.map_status(raw)} (expected {expected})"
        for gw, raw, expected in cases
        if gw.map_status(raw) is not expected
    ]
    assert not failures, "; ".join(failures)


# ── 4-5. Auth and payloads ────────────────────────────────────────────────────


def test_ativus_basic_auth_value() -> None:
    assert basic_auth_value("my-key") == base64.b64encode(b"my-key").decode()
    encoded = base64.b64encode(b"x" * 60).decode()
    assert len(encoded) > 50
    assert basic_auth_value(encoded) == encoded


def test_ativus_payload() -> None:
    gw = _gateway(AtivusGateway)
    payload = gw.build_payload(_ctx("ATVlocal"))
    assert payload["amount"] == 10.5
    assert payload["id_seller"] == "seller_u-1"
    assert payload["customer"]["externaRef"] == "ATVlocal"
    assert payload["checkout"]["utm_source"] == "fb"
    assert '"user_id": "u-1"' in payload["metadata"]
    assert payload["items"][0]["unitPrice"] == 10.5


def test_inter_pix_key_and_payload() -> None:
    assert sanitize_pix_key("12.345.678/0001-90") == "12345678000190"
    assert sanitize_pix_key("pix@empresa.com.br") == "pix@empresa.com.br"
    assert sanitize_pix_key("+5511999998888") == "+5511999998888"

    gw = _gateway(InterGateway)
    payload = gw.build_payload(_ctx("INTabc"))
    assert payload["valor"]["original"] == "10.50"
    assert payload["calendario"]["expiracao"] == 3600
    assert payload["chave"] == "12345678000190"


def test_spedpay_submit_sends_api_secret() -> None:
    fake = FakeAcquirer().on("POST", "/v1/transactions", (201, {"id": "sp-9", "pix": {"qrcode": "EMV"}}))
    gw = _gateway(SpedPayGateway, fake)
    data = asyncio.run(gw.submit_charge(_ctx()))

    assert data["id"] == "sp-9"
    req = fake.requests[0]
    assert req.headers["api-secret"] == "sp-key"
    body = request_json(req)
    assert body["external_id"] == "SPDabc"
    assert body["customer"]["document_type"] == "CPF"
    assert body["customer"]["phone"].isdigit()


# ── 6. Retry policy ───────────────────────────────────────────────────────────


def test_status_lookup_retries_transient_errors() -> None:
    fake = FakeAcquirer().on(
        "GET", "/v1/transactions/sp-1",
        (503, "unavailable"), (429, "slow down"), (200, {"id": "sp-1", "status": "paid", "paid_at": "2026-01-10T12:00:00Z"}),
    )
    gw = _gateway(SpedPayGateway, fake)
    status = asyncio.run(gw.fetch_status("sp-1"))

    assert status.state is ProviderState.PAID
    assert status.paid_at is not None and status.paid_at.year == 2026
    assert len(fake.requests) == 3


def test_status_lookup_gives_up_after_max_retries() -> None:
    fake = FakeAcquirer().on("GET", "/v1/transactions/sp-1", (500, "down"))
    gw = _gateway(SpedPayGateway, fake, status_max_retries=2)
    with pytest.raises(AcquirerHTTPError) as exc:
        asyncio.run(gw.fetch_status("sp-1"))
    assert exc.value.status_code == 500
    assert len(fake.requests) == 3


def test_charge_creation_is_not_retried() -> None:
    fake = FakeAcquirer().on("POST", "/v1/transactions", (500, "down"))
    gw = _gateway(SpedPayGateway, fake)
    with pytest.raises(AcquirerHTTPError):
        asyncio.run(gw.submit_charge(_ctx()))
    assert len(fake.requests) == 1


# ── 7. Ativus history ─────────────────────────────────────────────────────────


def test_ativus_list_array_locations() -> None:
    tx = {"id_transaction": "AT1", "valor": "25.90", "situacao": "pago", "data_transacao": "2026-01-05 10:00:00"}
    for body in ([tx], {"transactions": [tx]}, {"data": [tx]}, {"resultado": [tx]}):
        fake = FakeAcquirer().on("GET", "getTransactions.php", (200, body))
        records = asyncio.run(_gateway(AtivusGateway, fake).list_transactions("2026-01-01", "2026-01-31"))
        assert [r.id_transaction for r in records] == ["AT1"], body
        assert records[0].amount_cents == 2590
        assert records[0].situacao == "PAGO"


def test_ativus_list_404_means_unavailable() -> None:
    fake = FakeAcquirer().on("GET", "getTransactions.php", (404, "Not Found"))
    assert asyncio.run(_gateway(AtivusGateway, fake).list_transactions("2026-01-01", "2026-01-31")) is None


def test_ativus_lookup_error_body_is_not_found() -> None:
    fake = FakeAcquirer().on("GET", "getTransactionStatus.php", (200, {"erro": "Transação não encontrada"}))
    gw = _gateway(AtivusGateway, fake)
    assert asyncio.run(gw.get_transaction("AT404")) is None
    # id_transaction then externaRef
    assert len(fake.requests) == 2


def test_ativus_lookup_http_failure_raises() -> None:
    fake = FakeAcquirer().on("GET", "getTransactionStatus.php", (403, "Forbidden"))
    with pytest.raises(AcquirerHTTPError) as exc:
        asyncio.run(_gateway(AtivusGateway, fake).fetch_status("AT403"))
    assert exc.value.status_code == 403

    fake = FakeAcquirer().on("GET", "getTransactionStatus.php", (200, "<html>maintenance</html>"))
    with pytest.raises(ResponseShapeError):
        asyncio.run(_gateway(AtivusGateway, fake).fetch_status("AT-html"))


def test_ativus_status_ignores_creation_time() -> None:
    fake = FakeAcquirer().on("GET", "getTransactionStatus.php", (200, {
        "id_transaction": "AT1", "situacao": "PAGO", "data_transacao": "2026-01-05 10:00:00",
    }))
    status = asyncio.run(_gateway(AtivusGateway, fake).fetch_status("AT1"))
    assert status.state is ProviderState.PAID
    assert status.paid_at is None


def test_parse_record_metadata_string() -> None:
    record = parse_record({
        "idTransaction": "AT7", "amount": 12, "status": "approved",
        "id_seller": "seller_abc", "metadata": '{"user_id": "u-9", "popup_model": "hot"}',
    })
    assert record.amount_cents == 1200
    assert record.seller == "seller_abc"
    assert record.metadata["user_id"] == "u-9"


# ── Main ──────────────────────────────────────────────────────────────────────


def main() -> None:
    tests = [v for k, v in globals().items() if k.startswith("test_") and callable(v)]
    failed = 0
    print()
    print("=" * 65)
    print("  Acquirer Adapters - Test Suite")
    print("=" * 65)
    for fn in tests:
        try:
            fn()
            print(f"  {GREEN}PASS{RESET}  {fn.__name__}")
        except (AssertionError, pytest.fail.Exception) as e:
            failed += 1
            print(f"  {RED}FAIL{RESET}  {fn.__name__} - {e}")
    print()
    print(f"  {len(tests) - failed}/{len(tests)} passed")
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
