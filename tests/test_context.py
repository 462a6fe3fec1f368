"""
Request context: the identity guard and the batching entity loader.
"""
import asyncio
from types import SimpleNamespace

import pytest

from groupchat.context import AuthContext, EntityLoader, require_user
from groupchat.errors import Unauthorized


def test_require_user_returns_current_user():
    user = SimpleNamespace(id=1)
    assert require_user(AuthContext(user=user)) is user


def test_require_user_rejects_anonymous():
    with pytest.raises(Unauthorized) as excinfo:
        require_user(AuthContext())
    assert excinfo.value.message == "Unauthorized"
    assert excinfo.value.http_status == 401


class FakeSource:
    def __init__(self, known: set[int]) -> None:
        self.known = known
        self.calls: list[list[int]] = []

    async def fetch_many(self, keys: list) -> list:
        self.calls.append(list(keys))
        return [SimpleNamespace(id=k) for k in keys if k in self.known]


@pytest.mark.asyncio
async def test_loads_in_same_tick_share_one_fetch():
    source = FakeSource({1, 2, 3})
    loader = EntityLoader(source.fetch_many)

    results = await asyncio.gather(loader.load(1), loader.load(2), loader.load(1), loader.load(3))

    assert [r.id for r in results] == [1, 2, 1, 3]
    assert source.calls == [[1, 2, 3]]


@pytest.mark.asyncio
async def test_loaded_keys_are_memoized():
    source = FakeSource({1, 2})
    loader = EntityLoader(source.fetch_many)

    first = await loader.load(1)
    again = await loader.load(1)
    both = await loader.load_many([1, 2])

    assert first is again
    assert [e.id for e in both] == [1, 2]
    assert source.calls == [[1], [2]]


@pytest.mark.asyncio
async def test_missing_key_resolves_to_none():
    loader = EntityLoader(FakeSource({1}).fetch_many)
    found, missing = await loader.load_many([1, 99])
    assert found.id == 1
    assert missing is None


@pytest.mark.asyncio
async def test_fetch_failure_reaches_every_waiter_and_is_not_cached():
    attempts = []

    async def flaky(keys):
        attempts.append(list(keys))
        if len(attempts) == 1:
            raise RuntimeError("database went away")
        return [SimpleNamespace(id=k) for k in keys]

    loader = EntityLoader(flaky)
    results = await asyncio.gather(loader.load(1), loader.load(2), return_exceptions=True)
    assert all(isinstance(r, RuntimeError) for r in results)

    # A later load retries instead of replaying the failure.
    assert (await loader.load(1)).id == 1
    assert attempts == [[1, 2], [1]]
