"""
Per-request cooperative cancellation.

A token is created by the caller for one logical request and passed down.
Cancelling it cancels whatever network call is running under ``token.run``
and makes any late result unusable.
"""

import asyncio
from typing import Awaitable, Optional, TypeVar

from shared.errors import RequestCancelled

T = TypeVar("T")


class CancellationToken:
    """Cancellation flag plus the task currently running under it."""

    def __init__(self) -> None:
        self._cancelled = False
        self._task: Optional[asyncio.Task] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Mark the request superseded and cancel its in-flight call."""
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise RequestCancelled("Request was superseded by a newer one")

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` as a cancellable task.

        Raises RequestCancelled if the token is cancelled before, during or
        right after the call; the result is then discarded.
        """
        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        self._task = task
        try:
            result = await task
        except asyncio.CancelledError:
            if self._cancelled:
                raise RequestCancelled("Request was superseded by a newer one") from None
            raise
        finally:
            self._task = None
        self.raise_if_cancelled()
        return result


class CancellationScope:
    """
    Hands out one token per key and cancels the previous one.

    Owned by the caller (e.g. one per web worker or per session store), never
    a module-level singleton.
    """

    def __init__(self) -> None:
        self._tokens: dict[str, CancellationToken] = {}

    def begin(self, key: str) -> CancellationToken:
        """Start a new request for ``key``, superseding any in-flight one."""
        previous = self._tokens.get(key)
        if previous is not None:
            previous.cancel()
        token = CancellationToken()
        self._tokens[key] = token
        return token

    def finish(self, key: str, token: CancellationToken) -> None:
        """Forget ``token`` if it is still the current one for ``key``."""
        if self._tokens.get(key) is token:
            del self._tokens[key]
