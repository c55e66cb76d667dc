from __future__ import annotations

import httpx

from common.core.admin_credentials import AdminCredentials, AdminSession
from common.core.app_error import Errors
from common.core.config_service import GameSection
from common.core.service_client import ServiceClient
from common.ids import ItemId, UserId
from common.utils import JsonModel, get_logger

logger = get_logger()


class PlayerProfile(JsonModel):
    user_id: UserId
    email: str


class GameItem(JsonModel):
    item_id: ItemId
    amount: int


class GameInventory(JsonModel):
    inventory: list[GameItem] = []


class GameClient(ServiceClient):
    """Game backend: player profile and inventory reads, admin item debits."""

    def __init__(self, http: httpx.AsyncClient, config: GameSection, timeout_seconds: float, credential_ttl_seconds: int) -> None:
        super().__init__(http, Errors.Store.INVENTORY_UNAVAILABLE, timeout_seconds)
        self._config = config
        self.credentials = AdminCredentials("game", self._login_admin, credential_ttl_seconds)

    async def _login_admin(self) -> AdminSession:
        if not self._config.admin_username or not self._config.admin_password:
            raise Errors.Store.INVENTORY_UNAVAILABLE.create("Game admin credentials are not configured")
        body = await self._request(
            "POST",
            self._config.login_url,
            "game admin login",
            json={"username": self._config.admin_username, "password": self._config.admin_password},
        )
        return self._parse(AdminSession, body, "game admin login")

    async def get_profile(self, user_token: str) -> PlayerProfile:
        body = await self._request(
            "GET", self._config.profile_url, "game profile", token=user_token, unauthorized=Errors.Generic.ACCESS_DENIED
        )
        return self._parse(PlayerProfile, body, "game profile")

    async def get_inventory(self, user_token: str) -> list[GameItem]:
        body = await self._request(
            "GET", self._config.inventory_url, "game inventory", token=user_token, unauthorized=Errors.Generic.ACCESS_DENIED
        )
        return self._parse(GameInventory, body, "game inventory").inventory

    async def debit_item(self, item_id: ItemId, amount: int, recipient_user_id: UserId) -> None:
        """Remove ``amount`` of ``item_id`` from the player's game inventory.

        The game backend does not deduplicate debits: call at most once per logical debit.
        """
        await self._admin_request(
            self.credentials,
            "POST",
            self._config.remove_item_url,
            "game item debit",
            json={"itemId": item_id, "amount": amount, "recipientId": recipient_user_id},
        )
        logger.info("Debited game item", item_id=item_id, amount=amount, user_id=recipient_user_id)
