from __future__ import annotations

import asyncio


class CancelToken:
    """Cooperative cancellation flag shared by one search or enrichment batch.

    Code holding a token checks it before every suspension point and before
    every callback; `sleep` wakes early when the token is cancelled.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self, exc_type: type[Exception]) -> None:
        if self._event.is_set():
            raise exc_type("cancelled by user")

    async def sleep(self, seconds: float, exc_type: type[Exception]) -> None:
        self.raise_if_cancelled(exc_type)
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(seconds, 0))
        except asyncio.TimeoutError:
            return
        raise exc_type("cancelled by user")
