"""GameClient against a mocked game backend."""

import json

import httpx
import pytest

from common.core.app_error import Errors
from common.core.config_service import GameSection
from common.core.game_client import GameClient

CONFIG = GameSection(
    login_url="https://game.test/login",
    profile_url="https://game.test/profile",
    inventory_url="https://game.test/inventory",
    remove_item_url="https://game.test/items/remove",
    admin_username="admin",
    admin_password="secret",
)


def _client(handler) -> GameClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GameClient(http, CONFIG, timeout_seconds=5, credential_ttl_seconds=60)


@pytest.mark.asyncio
async def test_profile_uses_the_player_token() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer player-token"
        return httpx.Response(200, json={"userId": "u-1", "email": "p@example.com"})

    profile = await _client(handler).get_profile("player-token")

    assert profile.user_id == "u-1"
    assert profile.email == "p@example.com"


@pytest.mark.asyncio
async def test_rejected_player_token_is_access_denied() -> None:
    client = _client(lambda request: httpx.Response(401))

    with pytest.raises(Exception) as exc_info:
        await client.get_profile("expired")

    assert Errors.Generic.ACCESS_DENIED.is_(exc_info.value)


@pytest.mark.asyncio
async def test_inventory_is_parsed() -> None:
    client = _client(lambda request: httpx.Response(200, json={"inventory": [{"itemId": 9, "amount": 2}, {"itemId": 4, "amount": 1}]}))

    inventory = await client.get_inventory("player-token")

    assert [(item.item_id, item.amount) for item in inventory] == [(9, 2), (4, 1)]


@pytest.mark.asyncio
async def test_timeout_is_inventory_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(Exception) as exc_info:
        await _client(handler).get_inventory("player-token")

    assert Errors.Store.INVENTORY_UNAVAILABLE.is_(exc_info.value)
    assert "timed out" in str(exc_info.value)


@pytest.mark.asyncio
async def test_malformed_inventory_is_inventory_unavailable() -> None:
    client = _client(lambda request: httpx.Response(200, json={"inventory": [{"itemId": "not-a-number"}]}))

    with pytest.raises(Exception) as exc_info:
        await client.get_inventory("player-token")

    assert Errors.Store.INVENTORY_UNAVAILABLE.is_(exc_info.value)


@pytest.mark.asyncio
async def test_debit_logs_in_again_after_rejected_admin_token() -> None:
    calls: list[tuple[str, str | None]] = []
    logins = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal logins
        calls.append((request.url.path, request.headers.get("Authorization")))
        if request.url.path == "/login":
            logins += 1
            return httpx.Response(200, json={"accessToken": f"admin-{logins}"})
        if request.headers["Authorization"] == "Bearer admin-1":
            return httpx.Response(401)
        assert json.loads(request.content) == {"itemId": 9, "amount": 2, "recipientId": "u-1"}
        return httpx.Response(200, json={})

    client = _client(handler)
    await client.debit_item(9, 2, "u-1")

    assert logins == 2
    assert calls == [
        ("/login", None),
        ("/items/remove", "Bearer admin-1"),
        ("/login", None),
        ("/items/remove", "Bearer admin-2"),
    ]


@pytest.mark.asyncio
async def test_debit_failure_surfaces_as_inventory_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/login":
            return httpx.Response(200, json={"accessToken": "admin"})
        return httpx.Response(500, json={"error": "boom"})

    with pytest.raises(Exception) as exc_info:
        await _client(handler).debit_item(9, 1, "u-1")

    assert Errors.Store.INVENTORY_UNAVAILABLE.is_(exc_info.value)
    assert exc_info.value.details.details == {"operation": "game item debit", "status_code": 500}
