"""
Cache-miss coalescing.

``SingleFlight`` collapses concurrent fills for the same key inside one
process. ``StoreLease`` extends that across instances with a short-lived
lease item in the shared store; it never blocks: a contended or failed
lease only means the caller may wait briefly, then fills independently.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from shared.logging import get_logger
from shared.errors import StoreUnavailableError
from shared.kv_store import KeyValueStore


class SingleFlight:
    """At most one in-flight call per key; followers share its outcome."""

    def __init__(self):
        self._inflight: Dict[str, asyncio.Future] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    async def do(self, key: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        future = self._inflight.get(key)
        while future is not None:
            try:
                return await asyncio.shield(future)
            except asyncio.CancelledError:
                if not future.cancelled():
                    raise
            # The leader was cancelled; take over or follow the next leader.
            future = self._inflight.get(key)

        future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = await fn()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Followers still receive the exception; this only silences the
            # "never retrieved" warning when there are none.
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]


@dataclass(frozen=True)
class Lease:
    """Outcome of a lease attempt.

    ``token`` is set only when this caller holds the lease. ``contended``
    means another holder is filling the same key right now.
    """
    key: str
    token: Optional[str] = None
    contended: bool = False


class StoreLease:
    """Short lease items in the key-value store, one per cache key."""

    def __init__(
        self,
        store: KeyValueStore,
        table: str,
        lease_seconds: int = 10,
        clock: Callable[[], float] = time.time
    ):
        self.store = store
        self.table = table
        self.lease_seconds = lease_seconds
        self.clock = clock
        self.logger = get_logger("environment.cache_lease")

    async def acquire(self, key: str) -> Lease:
        token = uuid.uuid4().hex
        expires_at = int(self.clock()) + self.lease_seconds
        try:
            acquired = await self.store.put_item_if_absent(
                self.table, key, {"token": token}, expires_at=expires_at
            )
        except StoreUnavailableError as exc:
            self.logger.warning("Lease store unavailable, filling without lease", key=key, error=str(exc))
            return Lease(key=key)

        if not acquired:
            self.logger.debug("Lease held elsewhere", key=key)
            return Lease(key=key, contended=True)
        return Lease(key=key, token=token)

    async def release(self, lease: Lease) -> None:
        if lease.token is None:
            return
        try:
            current = await self.store.get_item(self.table, lease.key)
            if current and current.get("token") == lease.token:
                await self.store.delete_item(self.table, lease.key)
        except StoreUnavailableError as exc:
            # The lease expires on its own
            self.logger.warning("Lease release failed", key=lease.key, error=str(exc))
