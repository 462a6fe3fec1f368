"""
Per-request context and the identity guard.

``AuthContext`` carries the already-resolved current user (or ``None``
when the request is anonymous or its token was rejected) together with
optional batching loaders.  Every gated operation starts with
``require_user``; its ``Unauthorized`` propagates to the caller as is.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable, Iterable
from dataclasses import dataclass
from typing import Any

from groupchat.errors import Unauthorized
from groupchat.models import User

logger = logging.getLogger(__name__)


class EntityLoader:
    """
    Batching, memoizing loader keyed by entity id.

    All ``load`` calls made before the event loop's next turn are
    collected and resolved by a single ``fetch_many(keys)`` call.  Each
    key is fetched at most once per loader; loaders live for one request.
    Keys with no matching entity resolve to ``None``.
    """

    def __init__(self, fetch_many: Callable[[list], Awaitable[Iterable[Any]]]) -> None:
        self._fetch_many = fetch_many
        self._futures: dict[Hashable, asyncio.Future] = {}
        self._queue: list[Hashable] = []
        self._batches: set[asyncio.Task] = set()

    async def load(self, key: Hashable) -> Any:
        future = self._futures.get(key)
        if future is None:
            future = self._enqueue(key)
        return await future

    async def load_many(self, keys: Iterable[Hashable]) -> list[Any]:
        return list(await asyncio.gather(*(self.load(k) for k in keys)))

    def _enqueue(self, key: Hashable) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._futures[key] = future
        self._queue.append(key)
        if len(self._queue) == 1:
            loop.call_soon(self._start_batch)
        return future

    def _start_batch(self) -> None:
        keys, self._queue = self._queue, []
        task = asyncio.ensure_future(self._dispatch(keys))
        self._batches.add(task)
        task.add_done_callback(self._batches.discard)

    async def _dispatch(self, keys: list) -> None:
        try:
            entities = await self._fetch_many(keys)
        except Exception as exc:
            for key in keys:
                future = self._futures.pop(key)
                if not future.done():
                    future.set_exception(exc)
            return
        by_key = {entity.id: entity for entity in entities}
        logger.debug("Loader resolved %d of %d key(s)", len(by_key), len(keys))
        for key in keys:
            future = self._futures[key]
            if not future.done():
                future.set_result(by_key.get(key))


@dataclass
class AuthContext:
    user: User | None = None
    user_loader: EntityLoader | None = None
    group_loader: EntityLoader | None = None


def require_user(ctx: AuthContext) -> User:
    """Return the current user or raise ``Unauthorized``."""
    if not ctx.user:
        raise Unauthorized()
    return ctx.user
