import asyncio
import sys
from collections.abc import Callable, Coroutine
from concurrent.futures import ThreadPoolExecutor
from contextlib import AbstractAsyncContextManager, AbstractContextManager
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Concatenate, ParamSpec, TypeGuard, TypeVar, cast

import structlog

T = TypeVar("T")
R_co = TypeVar("R_co", covariant=True)
P = ParamSpec("P")

CENT = Decimal("0.01")


def is_dict(obj: Any) -> TypeGuard[dict[str, Any]]:
    return isinstance(obj, dict)


def get_now() -> datetime:
    return datetime.now(UTC)


def round_currency(value: Decimal) -> Decimal:
    """Round a currency amount to cents, half up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    if name is None:
        # Get the name of the module that called this function
        frame = sys._getframe(1)  # type: ignore  # 0 would be get_logger, 1 is the caller
        module_name = frame.f_globals["__name__"].rsplit(".", 1)[-1]
        name = module_name
    return structlog.stdlib.get_logger(name)


def blocking_run_async[T](coro: Coroutine[Any, Any, T], timeout: float | None = None) -> T:
    """Run ``coro`` to completion from synchronous code, also when this thread already runs a loop."""
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="blocking_run_async") as executor:
        return executor.submit(asyncio.run, coro).result(timeout)


class ContextVarManager(AbstractContextManager[T], AbstractAsyncContextManager[T]):
    """Sets a context var for the duration of a ``with`` or ``async with`` block."""

    _var: ContextVar[T]
    _value: T
    _token: Token[T] | None

    def __init__(self, var: ContextVar[T], value: T) -> None:
        self._var = var
        self._value = value
        self._token = None

    def __enter__(self) -> T:
        self._token = self._var.set(self._value)
        return self._value

    def __exit__(self, *exc_details: object) -> None:
        if self._token is not None:
            self._var.reset(self._token)

    async def __aenter__(self) -> T:
        return self.__enter__()

    async def __aexit__(self, *exc_details: object) -> None:
        self.__exit__(*exc_details)


def use_context_var(var: ContextVar[T], value: T) -> ContextVarManager[T]:
    return ContextVarManager(var, value)


def deep_merge(base: dict[str, Any], update: dict[str, Any]) -> dict[str, Any]:
    """Merge ``update`` over ``base`` without mutating either; nested dicts are merged key by key."""
    merged = base.copy()

    for key, value in update.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = deep_merge(merged[key], cast(dict[str, Any], value))
        else:
            merged[key] = value

    return merged


def cached_classmethod(func: Callable[Concatenate[Any, P], R_co]) -> Any:
    """Classmethod whose result is computed once per class and argument set."""

    def wrapper(cls: Any, *args: P.args, **kwargs: P.kwargs) -> R_co:
        if "_cache" not in cls.__dict__:
            setattr(cls, "_cache", {})
        cache = cls.__dict__["_cache"]
        key = (func, args, frozenset(kwargs.items()))
        if key not in cache:
            cache[key] = func(cls, *args, **kwargs)
        return cache[key]

    return classmethod(wrapper)
