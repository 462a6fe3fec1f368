"""
SqlStore — filter translation, association-table traversal and the
atomic counter.
"""
import pytest

from groupchat.models import Group, Message, User
from groupchat.store import OrderBy, eq, gt, in_, lt


@pytest.mark.asyncio
async def test_filters_and_ordering(store, make_user, make_group):
    alice = await make_user("alice")
    group = await make_group("g", [alice])
    for i in range(5):
        await store.create(Message, user_id=alice.id, group_id=group.id, text=str(i))

    newest_first = await store.find_all(
        Message, [eq("group_id", group.id), gt("id", 1), lt("id", 5)], order=[OrderBy("id", descending=True)]
    )
    assert [m.id for m in newest_first] == [4, 3, 2]

    chosen = await store.find_all(Message, [in_("id", [1, 5, 99])], order=[OrderBy("id")])
    assert [m.id for m in chosen] == [1, 5]

    assert await store.count(Message, [eq("group_id", group.id)]) == 5
    assert await store.exists(Message, [eq("text", "3")]) is True
    assert await store.exists(Message, [eq("text", "nope")]) is False
    assert (await store.find_one(Message, order=[OrderBy("id", descending=True)])).id == 5


@pytest.mark.asyncio
async def test_unknown_field_is_rejected(store):
    with pytest.raises(ValueError):
        await store.find_one(User, [eq("nickname", "x")])
    with pytest.raises(ValueError):
        await store.find_all(User, order=[OrderBy("nickname")])


@pytest.mark.asyncio
async def test_update_applies_changes_once(store, make_user):
    alice = await make_user("alice")
    updated = await store.update(alice, {"username": "alicia", "registration_id": "d"})
    assert updated.username == "alicia"
    assert (await store.find_one(User, [eq("username", "alicia")])).registration_id == "d"

    with pytest.raises(ValueError):
        await store.update(alice, {"nickname": "x"})


@pytest.mark.asyncio
async def test_increment(store, make_user):
    alice = await make_user("alice", badge_count=2)
    bumped = await store.increment(alice, "badge_count")
    assert bumped.badge_count == 3
    bumped = await store.increment(alice, "badge_count", by=4)
    assert bumped.badge_count == 7


@pytest.mark.asyncio
async def test_membership_round_trip(store, make_user):
    alice = await make_user("alice")
    bob = await make_user("bob")
    group = await store.create(Group, name="g")

    await store.add_users(group, [alice, bob, alice])
    assert [u.id for u in await store.get_users(group)] == [alice.id, bob.id]
    assert (await store.find_group_for_member(group.id, bob.id)).id == group.id

    await store.remove_users(group, [bob.id])
    assert [u.id for u in await store.get_users(group)] == [alice.id]
    assert await store.find_group_for_member(group.id, bob.id) is None
    assert await store.get_groups(bob) == []


@pytest.mark.asyncio
async def test_friends_filtered_by_ids(store, make_user):
    alice = await make_user("alice")
    bob = await make_user("bob")
    carol = await make_user("carol")
    dave = await make_user("dave")
    await store.add_friends(alice, [bob, carol])

    assert [f.id for f in await store.get_friends(alice, [carol.id, dave.id])] == [carol.id]
    assert await store.get_friends(alice, []) == []


@pytest.mark.asyncio
async def test_destroy_where_counts_rows(store, make_user, make_group, caplog):
    alice = await make_user("alice")
    group = await make_group("g", [alice])
    for i in range(3):
        await store.create(Message, user_id=alice.id, group_id=group.id, text=str(i))

    with caplog.at_level("DEBUG", logger="groupchat.store.sql"):
        assert await store.destroy_where(Message, [eq("group_id", group.id)]) == 3
    assert "Deleted 3 messages row(s)" in caplog.text
    assert await store.count(Message) == 0


# ---------------------------------------------------------------------------
# Commit hooks
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_on_commit_runs_only_after_commit(db_session, store, make_user):
    ran: list[str] = []
    await make_user("alice")
    store.on_commit(lambda: ran.append("first"))
    store.on_commit(lambda: ran.append("second"))
    assert ran == []

    await db_session.commit()
    assert ran == ["first", "second"]

    # Callbacks fire once per commit they were registered for.
    await db_session.commit()
    assert ran == ["first", "second"]


@pytest.mark.asyncio
async def test_on_commit_is_dropped_on_rollback(db_session, store, make_user, caplog):
    ran: list[str] = []
    await make_user("alice")
    store.on_commit(lambda: ran.append("dropped"))

    with caplog.at_level("DEBUG", logger="groupchat.store.sql"):
        await db_session.rollback()
    assert "dropping 1 on-commit callback(s)" in caplog.text

    await make_user("bob")
    await db_session.commit()
    assert ran == []
    assert await store.count(User) == 1
