from common.utils.json_model import JsonModel


class RailStatus(JsonModel):
    checkout: bool
    card: bool
    crypto: bool
    ascension: bool


class HealthCheckResponse(JsonModel):
    """Liveness plus the switches a dashboard needs to decide which payment buttons to show."""

    status: str = "healthy"
    service: str = "storefront"
    environment: str
    database: str
    rails: RailStatus
