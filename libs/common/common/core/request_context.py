from __future__ import annotations

import uuid
from contextvars import ContextVar

from pydantic import Field

from common.ids import OrderId, RequestId, UserId
from common.utils import ContextVarManager, JsonModel, use_context_var


class RequestContext(JsonModel):
    """Per-request facts attached to every log line written while handling the request.

    ``request_id`` doubles as the fulfillment claim owner, so it is always generated here.
    """

    request_id: RequestId = Field(default_factory=lambda: RequestId(str(uuid.uuid4())))
    endpoint: str | None = None
    method: str | None = None

    user_id: UserId | None = None
    order_id: OrderId | None = None

    @staticmethod
    def get_or_none() -> RequestContext | None:
        return _context_var.get(None)

    @staticmethod
    def context() -> ContextVarManager[RequestContext]:
        return use_context_var(_context_var, RequestContext())


_context_var: ContextVar[RequestContext] = ContextVar("request_context")
