"""JSON codec used for log rendering, database JSON columns and request bodies."""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

import msgspec
from pydantic import BaseModel

from common.utils.json_model import JsonModel

type Serializer = Callable[[Any], Any]


class SerializationError(Exception):
    """Encoding or decoding of an object failed."""


TYPE_ENCODERS: dict[type, Serializer] = {
    UUID: str,
    datetime: lambda val: val.isoformat(),
    date: lambda val: val.isoformat(),
    time: lambda val: val.isoformat(),
    # Money must survive a round trip, so decimals are written as strings
    Decimal: str,
    Enum: lambda val: val.value,
    JsonModel: lambda val: val.to_dict(mode="json"),
    BaseModel: lambda val: val.model_dump(mode="json"),
    BaseException: repr,
    set: list,
    frozenset: list,
    bytes: lambda val: "0x" + val.hex(),
}


def default_serializer(value: Any) -> Any:
    """``enc_hook`` for types msgspec does not encode natively. Raises TypeError for anything else."""
    # ORM rows end up in log payloads now and then
    if hasattr(value, "__tablename__") and hasattr(value, "__table__"):
        return {c.name: getattr(value, c.name) for c in value.__table__.columns}

    for base in type(value).__mro__[:-1]:
        encoder = TYPE_ENCODERS.get(base)
        if encoder is not None:
            return encoder(value)

    raise TypeError(f"Unsupported type: {type(value)!r}")


_encoder = msgspec.json.Encoder(enc_hook=default_serializer)
_decoder = msgspec.json.Decoder()


def encode_json(value: Any) -> bytes:
    try:
        return _encoder.encode(value)
    except (TypeError, msgspec.EncodeError) as e:
        raise SerializationError(str(e)) from e


def encode_json_str(value: Any) -> str:
    return encode_json(value).decode("utf-8")


def decode_json(value: str | bytes) -> Any:
    try:
        return _decoder.decode(value)
    except msgspec.DecodeError as e:
        raise SerializationError(str(e)) from e
