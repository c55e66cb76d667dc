"""Player wallet link status and item screening."""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.schemas.store import ConnectResponse, Player, ResponseStatus
from common.core.config_service import ChainSection
from common.core.enjin_client import EnjinClient
from common.utils.utils import get_logger
from storefront_db.crud.catalog import CatalogDAO

logger = get_logger(__name__)


class PlayerService:
    def __init__(self, enjin_client: EnjinClient, catalog_dao: CatalogDAO, chain_config: ChainSection) -> None:
        self.enjin_client = enjin_client
        self.catalog_dao = catalog_dao
        self.chain_config = chain_config

    async def sync_player(self, db: AsyncSession, player: Player) -> ConnectResponse:
        """Make sure the player is invited to the app and report whether their wallet is linked.

        A linked wallet becomes the player's last-known address, which fulfillment mints to.
        """
        invited = await self.enjin_client.invite(player.email)
        logger.info("Synced player identity", user_id=player.user_id, newly_invited=invited)

        identity = await self.enjin_client.find_identity(player.email)
        if identity is None or not identity.is_linked:
            return ConnectResponse(
                status=ResponseStatus.MUST_LINK,
                code=identity.linking_code if identity else None,
                qr=identity.linking_code_qr if identity else None,
            )

        tokens = await self.enjin_client.get_inventory(identity.ethereum_address)
        await self.catalog_dao.set_last_address(db, player.user_id, identity.ethereum_address)

        valid_tokens = await self.catalog_dao.item_token_ids(db, self.chain_config.network)
        inventory = [token for token in tokens if token.app_id == self.enjin_client.app_id and token.token_id in valid_tokens]
        return ConnectResponse(status=ResponseStatus.LINKED, address=identity.ethereum_address, inventory=inventory)

    async def screen_items(self, db: AsyncSession, items: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Keep the game items that can be ascended on this network, in their original order."""
        valid_items = await self.catalog_dao.tokenized_item_ids(db, self.chain_config.network)
        screened: list[dict[str, Any]] = []
        for item in items:
            try:
                item_id = int(item.get("id"))  # type: ignore[arg-type]
            except (TypeError, ValueError):
                continue
            if item_id in valid_items:
                screened.append(item)
        return screened
