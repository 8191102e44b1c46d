"""
Exceções do gateway PIX.
Each maps to one failure class: configuration, transport, response shape or token.
"""


class GatewayError(Exception):
    """Base for every error raised by the gateway services."""


class PlatformConfigError(GatewayError):
    """Store URL/key or another top-level setting is missing. Fatal."""


class CredentialMissingError(GatewayError):
    def __init__(self, acquirer: str, key: str):
        self.acquirer = acquirer
        self.key = key
        super().__init__(f"{acquirer}: credential '{key}' not configured")


class InvalidAmountError(GatewayError):
    pass


class AcquirerHTTPError(GatewayError):
    """Non-2xx from an acquirer. Body is kept truncated for logs and events."""

    def __init__(self, acquirer: str, status_code: int, body: str):
        self.acquirer = acquirer
        self.status_code = status_code
        self.body = (body or "")[:200]
        super().__init__(f"{acquirer} HTTP {status_code}: {self.body}")


class ResponseShapeError(GatewayError):
    """2xx response that lacks a field we cannot work without."""

    def __init__(self, acquirer: str, missing: str):
        self.acquirer = acquirer
        self.missing = missing
        super().__init__(f"{acquirer}: response has no {missing}")


class TokenError(GatewayError):
    pass


class TransactionNotFoundError(GatewayError):
    pass
