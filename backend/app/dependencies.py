from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Cookie, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.schemas.store import Player
from app.service_container import Services
from app.services.catalog_service import CatalogService
from app.services.checkout_service import CheckoutService
from app.services.discount_service import DiscountService
from app.services.fulfillment_service import FulfillmentService
from app.services.player_service import PlayerService
from common.core.app_error import Errors
from common.core.config_service import ConfigService
from common.core.game_client import GameClient
from common.core.request_context import RequestContext

services = Services.instance()

# Security scheme
optional_security = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession]:
    """Dependency for async database session."""
    async with services.db.new_session() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


def get_config_service() -> ConfigService:
    return services.config_service


def get_game_client() -> GameClient:
    return services.game_client


def get_catalog_service() -> CatalogService:
    return services.catalog_service


def get_discount_service() -> DiscountService:
    return services.discount_service


def get_checkout_service() -> CheckoutService:
    return services.checkout_service


def get_fulfillment_service() -> FulfillmentService:
    return services.fulfillment_service


def get_player_service() -> PlayerService:
    return services.player_service


async def get_current_player(
    game_client: Annotated[GameClient, Depends(get_game_client)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(optional_security)] = None,
    game_token: Annotated[str | None, Cookie(alias="gameToken")] = None,
) -> Player:
    """Resolve the caller's game token to the player it belongs to.

    The token comes from the ``Authorization`` header or, for browser sessions, the ``gameToken`` cookie.
    """
    token = credentials.credentials if credentials else game_token
    if not token or token == "undefined":
        raise Errors.Generic.ACCESS_DENIED.create("Not logged in")

    profile = await game_client.get_profile(token)
    context = RequestContext.get_or_none()
    if context is not None:
        context.user_id = profile.user_id
    return Player(user_id=profile.user_id, email=profile.email, token=token)
