from .json_model import JsonModel, JsonSnakeCaseModel
from .msgspec import SerializationError, decode_json, encode_json, encode_json_str
from .utils import (
    CENT,
    ContextVarManager,
    blocking_run_async,
    cached_classmethod,
    deep_merge,
    get_logger,
    get_now,
    is_dict,
    round_currency,
    use_context_var,
)

__all__ = [
    "CENT",
    "ContextVarManager",
    "JsonModel",
    "JsonSnakeCaseModel",
    "SerializationError",
    "blocking_run_async",
    "cached_classmethod",
    "decode_json",
    "deep_merge",
    "encode_json",
    "encode_json_str",
    "get_logger",
    "get_now",
    "is_dict",
    "round_currency",
    "use_context_var",
]
