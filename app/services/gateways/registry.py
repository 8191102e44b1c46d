import httpx

from app.config import Settings
from app.models.transactions import Acquirer
from app.services.gateways.ativus import AtivusGateway
from app.services.gateways.base import AcquirerGateway
from app.services.gateways.inter import InterGateway
from app.services.gateways.spedpay import SpedPayGateway

GATEWAYS: dict[Acquirer, type[AcquirerGateway]] = {
    Acquirer.SPEDPAY: SpedPayGateway,
    Acquirer.INTER: InterGateway,
    Acquirer.ATIVUS: AtivusGateway,
}


def get_gateway(
    acquirer: Acquirer,
    db,
    settings: Settings,
    user_id: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AcquirerGateway:
    return GATEWAYS[acquirer](db, settings, user_id=user_id, transport=transport)


class GatewayPool:
    """Adapters (and their credentials/tokens) reused for the duration of one run."""

    def __init__(self, db, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.db = db
        self.settings = settings
        self.transport = transport
        self._gateways: dict[tuple[Acquirer, str | None], AcquirerGateway | None] = {}

    def get(self, acquirer: Acquirer, user_id: str | None) -> AcquirerGateway | None:
        """Configured adapter, or None when credentials are absent."""
        key = (acquirer, user_id)
        if key not in self._gateways:
            gateway = get_gateway(acquirer, self.db, self.settings, user_id, self.transport)
            self._gateways[key] = gateway if gateway.load_credentials() else None
        return self._gateways[key]

    async def aclose(self) -> None:
        for gateway in self._gateways.values():
            if gateway is not None:
                await gateway.aclose()
        self._gateways.clear()
