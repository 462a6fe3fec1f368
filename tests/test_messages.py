"""
Message creation and sender / recipient resolution.
"""
import asyncio

import pytest

from groupchat.context import AuthContext, EntityLoader
from groupchat.errors import Unauthorized
from groupchat.models import Group, Message, User
from groupchat.schemas import MessageCreate
from groupchat.services import message_service
from groupchat.store import in_


@pytest.mark.asyncio
async def test_create_message_in_own_group(db_session, store, make_user, make_group, fanout):
    alice = await make_user("alice")
    group = await make_group("g", [alice])

    message = await message_service.create_message(
        store, AuthContext(user=alice), MessageCreate(text="hello", group_id=group.id), fanout
    )

    assert message.id is not None
    assert message.text == "hello"
    assert message.user_id == alice.id
    assert message.group_id == group.id
    assert message.created_at is not None
    # Nothing is fanned out until the transaction commits.
    assert fanout.calls == []

    await db_session.commit()
    assert fanout.calls == [
        {"author_id": alice.id, "group_id": group.id, "message_id": message.id, "text": "hello"}
    ]


@pytest.mark.asyncio
async def test_rolled_back_message_is_never_fanned_out(db_session, store, make_user, make_group, fanout):
    alice = await make_user("alice")
    group = await make_group("g", [alice])
    await db_session.commit()

    await message_service.create_message(
        store, AuthContext(user=alice), MessageCreate(text="oops", group_id=group.id), fanout
    )
    await db_session.rollback()

    assert await store.count(Message) == 0
    assert fanout.calls == []

    # A later commit on the same session does not revive the dropped message.
    await db_session.commit()
    assert fanout.calls == []


@pytest.mark.asyncio
async def test_create_message_outside_group_is_unauthorized(store, make_user, make_group, fanout):
    alice = await make_user("alice")
    mallory = await make_user("mallory")
    group = await make_group("g", [alice])

    with pytest.raises(Unauthorized):
        await message_service.create_message(
            store, AuthContext(user=mallory), MessageCreate(text="hi", group_id=group.id), fanout
        )
    assert await store.count(Message) == 0
    assert fanout.calls == []


@pytest.mark.asyncio
async def test_create_message_in_missing_group_is_unauthorized(store, make_user, fanout):
    alice = await make_user("alice")
    with pytest.raises(Unauthorized):
        await message_service.create_message(
            store, AuthContext(user=alice), MessageCreate(text="hi", group_id=404), fanout
        )
    assert fanout.calls == []


@pytest.mark.asyncio
async def test_create_message_anonymous(store, fanout):
    with pytest.raises(Unauthorized):
        await message_service.create_message(
            store, AuthContext(), MessageCreate(text="hi", group_id=1), fanout
        )


# ---------------------------------------------------------------------------
# from / to
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_message_from_and_to_without_loaders(store, make_user, make_group):
    alice = await make_user("alice", registration_id="secret-device")
    group = await make_group("g", [alice])
    message = await store.create(Message, user_id=alice.id, group_id=group.id, text="x")
    ctx = AuthContext(user=alice)

    assert await message_service.message_from(store, ctx, message) == {"id": alice.id, "username": "alice"}
    assert await message_service.message_to(store, ctx, message) == {"id": group.id, "name": "g"}


@pytest.mark.asyncio
async def test_message_from_batches_through_loader(store, make_user, make_group):
    alice = await make_user("alice")
    bob = await make_user("bob")
    group = await make_group("g", [alice, bob])
    messages = [
        await store.create(Message, user_id=author.id, group_id=group.id, text=str(i))
        for i, author in enumerate([alice, bob, alice, bob])
    ]

    batches: list[list[int]] = []

    async def fetch_users(ids):
        batches.append(sorted(ids))
        return await store.find_all(User, [in_("id", ids)])

    async def fetch_groups(ids):
        return await store.find_all(Group, [in_("id", ids)])

    ctx = AuthContext(
        user=alice,
        user_loader=EntityLoader(fetch_users),
        group_loader=EntityLoader(fetch_groups),
    )

    senders = await asyncio.gather(*(message_service.message_from(store, ctx, m) for m in messages))
    recipients = await asyncio.gather(*(message_service.message_to(store, ctx, m) for m in messages))

    assert [s["username"] for s in senders] == ["alice", "bob", "alice", "bob"]
    assert all(r == {"id": group.id, "name": "g"} for r in recipients)
    assert batches == [[alice.id, bob.id]]


@pytest.mark.asyncio
async def test_message_from_missing_author_is_none(store, make_user):
    alice = await make_user("alice")
    orphan = Message(user_id=9999, group_id=9999, text="x")

    assert await message_service.message_from(store, AuthContext(user=alice), orphan) is None
    assert await message_service.message_to(store, AuthContext(user=alice), orphan) is None
