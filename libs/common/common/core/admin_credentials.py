from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any

from pydantic import Field

from common.utils import JsonModel, get_logger, get_now

logger = get_logger()


class AdminSession(JsonModel):
    access_token: str
    identity: dict[str, Any] = Field(default_factory=dict)


class AdminCredentials:
    """Administrator session owned by a single service client.

    Logs in on first use, reuses the token until its TTL expires and logs in again after
    ``invalidate()`` (called by the owning client when the remote answers 401).
    Concurrent callers share a single login.
    """

    def __init__(self, name: str, login: Callable[[], Awaitable[AdminSession]], ttl_seconds: int) -> None:
        self._name = name
        self._login = login
        self._ttl = timedelta(seconds=ttl_seconds)
        self._session: AdminSession | None = None
        self._expires_at: datetime | None = None
        self._lock = asyncio.Lock()

    def _current(self) -> AdminSession | None:
        if self._session is None or self._expires_at is None or get_now() >= self._expires_at:
            return None
        return self._session

    async def get(self) -> AdminSession:
        session = self._current()
        if session is not None:
            return session

        async with self._lock:
            session = self._current()
            if session is None:
                logger.info("Refreshing admin credentials", service=self._name)
                session = await self._login()
                self._session = session
                self._expires_at = get_now() + self._ttl
            return session

    def invalidate(self) -> None:
        logger.info("Invalidating admin credentials", service=self._name)
        self._session = None
        self._expires_at = None
