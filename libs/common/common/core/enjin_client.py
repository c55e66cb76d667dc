"""Client for the Enjin identity and token platform (GraphQL)."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

import httpx
from pydantic import Field

from common.core.admin_credentials import AdminCredentials, AdminSession
from common.core.app_error import Errors
from common.core.config_service import EnjinSection
from common.core.service_client import ServiceClient
from common.ids import TokenId
from common.utils import JsonModel, get_logger

logger = get_logger()

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

DEFAULT_DOCUMENTS: dict[str, str] = {
    "login": """
        query Login($email: String!, $password: String!) {
          request: EnjinOauth(email: $email, password: $password) {
            id
            access_tokens
            identities { id app_id ethereum_address }
          }
        }
    """,
    "invite": """
        mutation Invite($email: String!) {
          result: InviteUser(email: $email) { id }
        }
    """,
    "search": """
        query Identities($appId: Int!) {
          result: EnjinApp(id: $appId) {
            identities { ethereum_address linking_code linking_code_qr user { email } }
          }
        }
    """,
    "inventory": """
        query Inventory($address: String!) {
          result: EnjinIdentities(ethereum_address: $address) {
            tokens(include_creator_tokens: true) { token_id app_id name balance itemURI }
          }
        }
    """,
    "mint": """
        mutation Mint($id: Int!, $tokenId: String!, $address: String!, $amount: Int!) {
          result: CreateEnjinRequest(
            appId: $id
            type: MINT
            mint_token_data: {token_id: $tokenId, recipient_address_array: [$address], value_array: [$amount]}
          ) { id state }
        }
    """,
}


class MintState(StrEnum):
    PENDING = "PENDING"
    TP_PROCESSING = "TP_PROCESSING"
    BROADCAST = "BROADCAST"
    EXECUTED = "EXECUTED"
    CANCELED_USER = "CANCELED_USER"
    CANCELED_PLATFORM = "CANCELED_PLATFORM"
    FAILED = "FAILED"


class EnjinIdentity(JsonModel):
    ethereum_address: str = ZERO_ADDRESS
    linking_code: str | None = None
    linking_code_qr: str = ""

    @property
    def is_linked(self) -> bool:
        return self.linking_code in (None, "", "null")


class ChainToken(JsonModel):
    token_id: TokenId
    app_id: int
    name: str | None = None
    balance: int = 0
    metadata_uri: str | None = Field(default=None, alias="itemURI")


class MintResult(JsonModel):
    id: int | None = None
    state: MintState = MintState.PENDING

    @property
    def accepted(self) -> bool:
        return self.state not in (MintState.CANCELED_USER, MintState.CANCELED_PLATFORM, MintState.FAILED)


class AlreadyInvited(Exception):
    pass


class EnjinClient(ServiceClient):
    def __init__(self, http: httpx.AsyncClient, config: EnjinSection, timeout_seconds: float, credential_ttl_seconds: int) -> None:
        super().__init__(http, Errors.Store.IDENTITY_UNAVAILABLE, timeout_seconds)
        self._config = config
        self._documents = {**DEFAULT_DOCUMENTS, **config.documents}
        self.credentials = AdminCredentials("enjin", self._login_admin, credential_ttl_seconds)

    @property
    def app_id(self) -> int:
        return self._config.app_id

    def _data(self, body: Any, operation: str) -> dict[str, Any]:
        errors = body.get("errors") if isinstance(body, dict) else None
        if errors:
            message = str(errors[0].get("message", "")) if isinstance(errors[0], dict) else str(errors[0])
            if operation == "invite" and message == self._config.already_invited_error:
                raise AlreadyInvited(message)
            raise Errors.Store.IDENTITY_UNAVAILABLE.create(f"enjin {operation} failed: {message}", details={"operation": operation})
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise Errors.Store.IDENTITY_UNAVAILABLE.create(f"enjin {operation} returned no data", details={"operation": operation})
        return data

    async def _graphql(self, operation: str, variables: dict[str, Any]) -> dict[str, Any]:
        body = await self._admin_request(
            self.credentials,
            "POST",
            self._config.platform_url,
            f"enjin {operation}",
            json={"query": self._documents[operation], "variables": variables},
            headers={"X-App-Id": str(self._config.app_id)},
        )
        return self._data(body, operation)

    async def _login_admin(self) -> AdminSession:
        if not self._config.admin_email or not self._config.admin_password:
            raise Errors.Store.IDENTITY_UNAVAILABLE.create("Enjin admin credentials are not configured")
        body = await self._request(
            "POST",
            self._config.platform_url,
            "enjin login",
            json={
                "query": self._documents["login"],
                "variables": {"email": self._config.admin_email, "password": self._config.admin_password},
            },
        )
        request = self._data(body, "login").get("request") or {}
        try:
            access_token = request["access_tokens"][0]["access_token"]
        except (KeyError, IndexError, TypeError) as e:
            raise Errors.Store.IDENTITY_UNAVAILABLE.create("enjin login returned no access token", cause=e) from e

        identity = next((i for i in request.get("identities", []) if i.get("app_id") == self._config.app_id), {})
        logger.info("Logged into Enjin", admin_user_id=request.get("id"), identity_id=identity.get("id"))
        return AdminSession(access_token=access_token, identity=identity)

    async def invite(self, email: str) -> bool:
        """Invite ``email`` to the app. Returns False when the player was already invited."""
        try:
            await self._graphql("invite", {"email": email})
        except AlreadyInvited:
            return False
        return True

    async def find_identity(self, email: str) -> EnjinIdentity | None:
        data = await self._graphql("search", {"appId": self._config.app_id})
        identities = (data.get("result") or {}).get("identities") or []
        for identity in identities:
            if (identity.get("user") or {}).get("email") == email:
                return self._parse(EnjinIdentity, identity, "enjin search")
        return None

    async def get_inventory(self, address: str) -> list[ChainToken]:
        data = await self._graphql("inventory", {"address": address})
        results = data.get("result") or []
        if not results:
            return []
        return [self._parse(ChainToken, token, "enjin inventory") for token in results[0].get("tokens") or []]

    async def mint(self, token_id: TokenId, address: str, amount: int) -> MintResult:
        """Request a mint. The returned state only says whether the request was accepted, not whether it finished."""
        data = await self._graphql(
            "mint",
            {"id": self._config.app_id, "tokenId": token_id, "address": address, "amount": amount},
        )
        result = self._parse(MintResult, data.get("result") or {}, "enjin mint")
        logger.info("Mint requested", token_id=token_id, address=address, amount=amount, state=result.state)
        return result
