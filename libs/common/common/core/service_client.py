from __future__ import annotations

from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from common.core.admin_credentials import AdminCredentials
from common.core.app_error import ErrorConfig
from common.utils import get_logger

logger = get_logger()


class _Unauthorized(Exception):
    pass


class ServiceClient:
    """JSON-over-HTTP plumbing shared by the remote collaborators.

    Transport failures, timeouts, non-2xx answers and unparsable bodies are all raised as
    ``error`` so callers only ever see the failure kind of the operation.
    """

    def __init__(self, http: httpx.AsyncClient, error: ErrorConfig, timeout_seconds: float) -> None:
        self._http = http
        self._error = error
        self._timeout = timeout_seconds

    async def _send(
        self,
        method: str,
        url: str,
        operation: str,
        token: str | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        request_headers = {"Accept": "application/json", **(headers or {})}
        if token:
            request_headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._http.request(method, url, headers=request_headers, json=json, timeout=self._timeout)
        except httpx.TimeoutException as e:
            raise self._error.create(f"{operation} timed out", details={"operation": operation}, cause=e) from e
        except httpx.HTTPError as e:
            raise self._error.create(f"{operation} failed", details={"operation": operation}, cause=e) from e

        if response.status_code == 401:
            raise _Unauthorized(operation)
        if response.is_error:
            logger.warning("Remote call rejected", operation=operation, status_code=response.status_code)
            raise self._error.create(
                f"{operation} failed with status {response.status_code}",
                details={"operation": operation, "status_code": response.status_code},
            )

        try:
            return response.json()
        except ValueError as e:
            raise self._error.create(f"{operation} returned an invalid body", details={"operation": operation}, cause=e) from e

    async def _request(
        self,
        method: str,
        url: str,
        operation: str,
        token: str | None = None,
        json: Any = None,
        unauthorized: ErrorConfig | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        try:
            return await self._send(method, url, operation, token=token, json=json, headers=headers)
        except _Unauthorized as e:
            raise (unauthorized or self._error).create(f"{operation} was not authorized", details={"operation": operation}) from e

    async def _admin_request(
        self,
        credentials: AdminCredentials,
        method: str,
        url: str,
        operation: str,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Send with the admin token, logging in again once if the token was rejected."""
        session = await credentials.get()
        try:
            return await self._send(method, url, operation, token=session.access_token, json=json, headers=headers)
        except _Unauthorized:
            credentials.invalidate()

        session = await credentials.get()
        try:
            return await self._send(method, url, operation, token=session.access_token, json=json, headers=headers)
        except _Unauthorized as e:
            credentials.invalidate()
            raise self._error.create(f"{operation} was not authorized", details={"operation": operation}) from e

    def _parse[T: BaseModel](self, model: type[T], body: Any, operation: str) -> T:
        try:
            return model.model_validate(body)
        except ValidationError as e:
            raise self._error.create(f"{operation} returned an unexpected payload", details={"operation": operation}, cause=e) from e
