from __future__ import annotations

from typing import NewType

RequestId = NewType("RequestId", str)
UserId = NewType("UserId", str)
OrderId = NewType("OrderId", str)
OfferId = NewType("OfferId", int)
ItemId = NewType("ItemId", int)
TokenId = NewType("TokenId", str)
