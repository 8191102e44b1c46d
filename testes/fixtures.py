"""
Shared helpers for the test scripts: explicit Settings and a scripted acquirer
behind httpx.MockTransport. No network.
"""
import json

import httpx

from app.config import Settings

_CREDENTIAL_FIELDS = (
    "spedpay_api_key", "ativus_api_key", "inter_client_id", "inter_client_secret",
    "inter_certificate", "inter_private_key", "inter_pix_key", "admin_token_hash",
)


def make_settings(**overrides) -> Settings:
    values = {field: "" for field in _CREDENTIAL_FIELDS}
    values.update(
        supabase_url="http://supabase.test",
        supabase_key="sb_secret_test",
        base_url="https://gateway.test",
        default_acquirer="spedpay",
        batch_delay_seconds=0.0,
        status_retry_base_seconds=0.0,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeAcquirer:
    """Scripted HTTP responses keyed by method + path fragment.

    on("GET", "/v1/transactions/", (200, {...}), (500, "boom")) answers the
    listed responses in order and repeats the last one afterwards.
    """

    def __init__(self):
        self.routes: list[list] = []
        self.requests: list[httpx.Request] = []

    def on(self, method: str, fragment: str, *responses):
        self.routes.append([method.upper(), fragment, list(responses)])
        return self

    def calls(self, fragment: str = "") -> list[httpx.Request]:
        return [r for r in self.requests if fragment in str(r.url)]

    def _handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for method, fragment, responses in self.routes:
            if request.method == method and fragment in str(request.url):
                response = responses.pop(0) if len(responses) > 1 else responses[0]
                if callable(response):
                    return response(request)
                status, body = response
                if isinstance(body, (dict, list)):
                    return httpx.Response(status, json=body)
                return httpx.Response(status, text=body)
        return httpx.Response(404, text=f"no route for {request.method} {request.url}")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handler)


def request_json(request: httpx.Request) -> dict:
    return json.loads(request.content.decode("utf-8"))
