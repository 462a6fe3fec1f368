"""
SQLAlchemy implementation of the ``Store`` protocol.

Design notes
------------
- Relationships on the models are ``lazy="noload"``; every traversal
  here is an explicit SELECT against the association tables so the
  number of statements per call is fixed and visible.
- ``Filter`` values are translated one-to-one into column expressions;
  an unknown field name is a programming error and raises ``ValueError``
  before any SQL is emitted.
- The store flushes but never commits.  Request handlers commit through
  ``get_db``; background work opens its own transaction with
  ``make_store_scope``.
- ``on_commit`` callbacks run once the surrounding transaction has
  committed and are dropped if it rolls back.
"""
import logging
from collections.abc import Callable, Iterable, Sequence
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import delete, event, func, insert, select
from sqlalchemy import update as sql_update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from groupchat.models import Group, LastRead, Message, User, friendships, group_users
from groupchat.store.filters import Comparator, Filter, OrderBy

logger = logging.getLogger(__name__)


def _column(model: type, field: str):
    if field not in model.__table__.columns:
        raise ValueError(f"{model.__name__} has no column {field!r}")
    return getattr(model, field)


def _clause(model: type, flt: Filter):
    column = _column(model, flt.field)
    if flt.comparator is Comparator.EQ:
        return column == flt.value
    if flt.comparator is Comparator.GT:
        return column > flt.value
    if flt.comparator is Comparator.LT:
        return column < flt.value
    if flt.comparator is Comparator.IN:
        return column.in_(flt.value)
    raise ValueError(f"Unsupported comparator {flt.comparator!r}")


def _ordering(model: type, order: Sequence[OrderBy]) -> list:
    result = []
    for item in order:
        column = _column(model, item.field)
        result.append(column.desc() if item.descending else column.asc())
    return result


def _run_on_commit(session) -> None:
    callbacks = session.info.pop("on_commit", [])
    for callback in callbacks:
        callback()


def _drop_on_commit(session) -> None:
    callbacks = session.info.pop("on_commit", [])
    if callbacks:
        logger.debug("Transaction rolled back, dropping %d on-commit callback(s)", len(callbacks))


class SqlStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def on_commit(self, callback: Callable[[], Any]) -> None:
        """Run ``callback`` after the session's transaction commits."""
        sync_session = self.session.sync_session
        if not event.contains(sync_session, "after_commit", _run_on_commit):
            event.listen(sync_session, "after_commit", _run_on_commit)
            event.listen(sync_session, "after_rollback", _drop_on_commit)
        sync_session.info.setdefault("on_commit", []).append(callback)

    # ------------------------------------------------------------------
    # Generic entity access
    # ------------------------------------------------------------------

    async def find_one(self, model, filters=(), order=()):
        q = (
            select(model)
            .where(*(_clause(model, f) for f in filters))
            .order_by(*_ordering(model, order))
            .limit(1)
        )
        result = await self.session.execute(q)
        return result.scalars().first()

    async def find_all(self, model, filters=(), order=(), limit=None):
        q = select(model).where(*(_clause(model, f) for f in filters)).order_by(
            *_ordering(model, order)
        )
        if limit is not None:
            q = q.limit(limit)
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def count(self, model, filters=()) -> int:
        q = select(func.count()).select_from(model).where(*(_clause(model, f) for f in filters))
        return (await self.session.execute(q)).scalar_one()

    async def exists(self, model, filters=()) -> bool:
        q = select(model.id).where(*(_clause(model, f) for f in filters)).limit(1)
        return (await self.session.execute(q)).first() is not None

    async def create(self, model, **values: Any):
        instance = model(**values)
        self.session.add(instance)
        await self.session.flush()
        return instance

    async def update(self, instance, values: dict[str, Any]):
        for field, value in values.items():
            _column(type(instance), field)
            setattr(instance, field, value)
        if values:
            await self.session.flush()
        return instance

    async def destroy(self, instance) -> None:
        await self.session.delete(instance)
        await self.session.flush()

    async def destroy_where(self, model, filters) -> int:
        result = await self.session.execute(
            delete(model).where(*(_clause(model, f) for f in filters))
        )
        count = result.rowcount or 0
        logger.debug("Deleted %d %s row(s)", count, model.__tablename__)
        return count

    async def increment(self, instance, field: str, by: int = 1):
        """
        Atomically add *by* to *field* and return a freshly loaded row.

        The addition happens inside the UPDATE statement, so concurrent
        increments from independent sessions never overwrite each other.
        """
        model = type(instance)
        column = _column(model, field)
        await self.session.execute(
            sql_update(model).where(model.id == instance.id).values({field: column + by})
        )
        return await self.session.get(model, instance.id, populate_existing=True)

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    async def get_users(self, group: Group) -> list[User]:
        q = (
            select(User)
            .join(group_users, group_users.c.user_id == User.id)
            .where(group_users.c.group_id == group.id)
            .order_by(User.id)
        )
        return list((await self.session.execute(q)).scalars().all())

    async def add_users(self, group: Group, users: Iterable[User]) -> None:
        user_ids = list(dict.fromkeys(u.id for u in users))
        if not user_ids:
            return
        await self.session.execute(
            insert(group_users),
            [{"group_id": group.id, "user_id": uid} for uid in user_ids],
        )

    async def remove_users(self, group: Group, user_ids: Iterable[int]) -> None:
        user_ids = list(user_ids)
        if not user_ids:
            return
        await self.session.execute(
            delete(group_users).where(
                group_users.c.group_id == group.id,
                group_users.c.user_id.in_(user_ids),
            )
        )

    async def get_groups(self, user: User, ids: Iterable[int] | None = None) -> list[Group]:
        q = (
            select(Group)
            .join(group_users, group_users.c.group_id == Group.id)
            .where(group_users.c.user_id == user.id)
            .order_by(Group.id)
        )
        if ids is not None:
            q = q.where(Group.id.in_(list(ids)))
        return list((await self.session.execute(q)).scalars().all())

    async def find_group_for_member(self, group_id: int, user_id: int) -> Group | None:
        """Return the group only when *user_id* is one of its members."""
        q = (
            select(Group)
            .join(group_users, group_users.c.group_id == Group.id)
            .where(Group.id == group_id, group_users.c.user_id == user_id)
        )
        return (await self.session.execute(q)).scalars().first()

    # ------------------------------------------------------------------
    # Friendship
    # ------------------------------------------------------------------

    async def get_friends(self, user: User, ids: Iterable[int] | None = None) -> list[User]:
        q = (
            select(User)
            .join(friendships, friendships.c.friend_id == User.id)
            .where(friendships.c.user_id == user.id)
            .order_by(User.id)
        )
        if ids is not None:
            q = q.where(User.id.in_(list(ids)))
        return list((await self.session.execute(q)).scalars().all())

    async def add_friends(self, user: User, friends: Iterable[User]) -> None:
        """Record each friendship in both directions."""
        rows = []
        for friend in friends:
            rows.append({"user_id": user.id, "friend_id": friend.id})
            rows.append({"user_id": friend.id, "friend_id": user.id})
        if rows:
            await self.session.execute(insert(friendships), rows)

    # ------------------------------------------------------------------
    # Read markers
    # ------------------------------------------------------------------

    async def get_last_read(self, user: User, group_id: int) -> LastRead | None:
        q = (
            select(LastRead)
            .where(LastRead.user_id == user.id, LastRead.group_id == group_id)
            .options(selectinload(LastRead.message))
        )
        return (await self.session.execute(q)).scalars().first()

    async def add_last_read(self, user: User, group_id: int, message: Message) -> LastRead:
        marker = LastRead(user_id=user.id, group_id=group_id, message_id=message.id)
        self.session.add(marker)
        await self.session.flush()
        return marker

    async def remove_last_read(self, user: User, group_id: int) -> None:
        await self.session.execute(
            delete(LastRead).where(LastRead.user_id == user.id, LastRead.group_id == group_id)
        )


def make_store_scope(session_factory: async_sessionmaker):
    """
    Return an async context manager factory yielding a ``SqlStore`` on a
    fresh session, committing on success and rolling back on error.
    """

    @asynccontextmanager
    async def store_scope():
        async with session_factory() as session:
            try:
                yield SqlStore(session)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return store_scope
