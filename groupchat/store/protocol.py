"""
Store protocol — the only way services reach persisted users, groups
and messages.

Services receive a ``Store`` instead of importing a session or model
query API, so every read and write they issue is visible here.
Implementations flush but never commit; whoever opened the store owns
the transaction.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import Any, Protocol, TypeVar

from groupchat.models import Group, LastRead, Message, User
from groupchat.store.filters import Filter, OrderBy

T = TypeVar("T")


class Store(Protocol):
    # Transaction hooks
    def on_commit(self, callback: Callable[[], Any]) -> None: ...

    # Generic entity access
    async def find_one(
        self,
        model: type[T],
        filters: Sequence[Filter] = (),
        order: Sequence[OrderBy] = (),
    ) -> T | None: ...

    async def find_all(
        self,
        model: type[T],
        filters: Sequence[Filter] = (),
        order: Sequence[OrderBy] = (),
        limit: int | None = None,
    ) -> list[T]: ...

    async def count(self, model: type, filters: Sequence[Filter] = ()) -> int: ...

    async def exists(self, model: type, filters: Sequence[Filter] = ()) -> bool: ...

    async def create(self, model: type[T], **values: Any) -> T: ...

    async def update(self, instance: T, values: dict[str, Any]) -> T: ...

    async def destroy(self, instance: Any) -> None: ...

    async def destroy_where(self, model: type, filters: Sequence[Filter]) -> int: ...

    async def increment(self, instance: T, field: str, by: int = 1) -> T: ...

    # Relationships
    async def get_users(self, group: Group) -> list[User]: ...

    async def add_users(self, group: Group, users: Iterable[User]) -> None: ...

    async def remove_users(self, group: Group, user_ids: Iterable[int]) -> None: ...

    async def get_friends(self, user: User, ids: Iterable[int] | None = None) -> list[User]: ...

    async def get_groups(self, user: User, ids: Iterable[int] | None = None) -> list[Group]: ...

    async def find_group_for_member(self, group_id: int, user_id: int) -> Group | None: ...

    async def get_last_read(self, user: User, group_id: int) -> LastRead | None: ...

    async def add_last_read(self, user: User, group_id: int, message: Message) -> LastRead: ...

    async def remove_last_read(self, user: User, group_id: int) -> None: ...
