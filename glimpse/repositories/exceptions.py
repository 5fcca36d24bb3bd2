"""Custom exceptions for the repository layer."""

from __future__ import annotations

import functools
import logging
from typing import Any, Awaitable, Callable, TypeVar

from pymongo.errors import AutoReconnect, NetworkTimeout, ServerSelectionTimeoutError

LOGGER = logging.getLogger("uvicorn.error")

T = TypeVar("T")


class RepositoryError(RuntimeError):
    """Base exception raised when a repository operation fails."""


class DuplicateKeyRepositoryError(RepositoryError):
    """Raised when attempting to insert a document that violates a unique index."""


class NotFoundRepositoryError(RepositoryError):
    """Raised when an expected document is missing."""


class TransientStorageError(RepositoryError):
    """The store was unreachable; retry with the same idempotency key."""


_TRANSIENT = (AutoReconnect, NetworkTimeout, ServerSelectionTimeoutError)


def translate_transient(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Map driver connectivity errors onto ``TransientStorageError``."""

    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return await fn(*args, **kwargs)
        except _TRANSIENT as exc:
            LOGGER.warning("Transient storage failure in %s: %s", fn.__qualname__, exc)
            raise TransientStorageError(str(exc)) from exc

    return wrapper


__all__ = [
    "DuplicateKeyRepositoryError",
    "NotFoundRepositoryError",
    "RepositoryError",
    "TransientStorageError",
    "translate_transient",
]
