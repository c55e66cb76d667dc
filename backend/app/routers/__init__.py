from typing import Annotated

from fastapi import APIRouter, Depends

from app.dependencies import get_config_service
from app.schemas.health import HealthCheckResponse, RailStatus
from common.core.config_service import ConfigService

from .store import router as store_router

router = APIRouter()


@router.get("/api/v1/health")
async def health_check(config_service: Annotated[ConfigService, Depends(get_config_service)]) -> HealthCheckResponse:
    return HealthCheckResponse(
        environment=config_service.get_environment(),
        database=config_service.database.url.split(":", 1)[0].split("+", 1)[0],
        rails=RailStatus(
            checkout=config_service.store.checkout_enabled,
            card=config_service.stripe.enabled,
            crypto=config_service.chain.enabled,
            ascension=config_service.store.ascension_enabled,
        ),
    )


router.include_router(store_router)
