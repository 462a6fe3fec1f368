"""
Group service — lifecycle and field resolution for the Group aggregate.

Design notes
------------
- Every operation on an existing group starts with a membership-filtered
  lookup: the group is found only if the acting user belongs to it.  A
  miss therefore covers both "no such group" and "not a member", and is
  reported as ``Unauthorized`` (update / delete) or ``GroupNotFound``
  (leave).  The error is raised before anything is written.
- Updates are assembled into one ``changes`` dict and applied with a
  single ``store.update`` call.  The last-read marker lives in its own
  table and is replaced before that call, so it is not atomic with the
  group's own fields.
- Deleting a group is a sequence of steps (members, read markers,
  messages, icon asset, group row).  Database steps share the caller's
  transaction; the asset delete cannot be rolled back, so a failure
  after it leaves the icon gone while the rows survive.
- A group never exists without members: when the last member leaves,
  the group is destroyed with the same sequence.
"""
import logging

from groupchat.cache import cache
from groupchat.config import settings
from groupchat.context import AuthContext, require_user
from groupchat.errors import GroupNotFound, MessageNotFound, Unauthorized
from groupchat.models import Group, LastRead, Message
from groupchat.pagination import MessageConnection, page_messages
from groupchat.schemas import GroupCreate, GroupUpdate
from groupchat.storage import AssetStorage, AssetUpload, asset_name
from groupchat.store import Store, eq, gt

logger = logging.getLogger(__name__)

ICON_ACL = "private"


async def _upload_icon(assets: AssetStorage, icon: AssetUpload) -> str:
    stored = await assets.upload(icon.data, name=asset_name(icon.content_type), acl=ICON_ACL)
    return stored.key


async def _discard_icon(assets: AssetStorage, key: str) -> None:
    await assets.delete(key)
    await cache.invalidate_signed_url(key)


async def _destroy(store: Store, group: Group, assets: AssetStorage) -> None:
    members = await store.get_users(group)
    await store.remove_users(group, [m.id for m in members])
    await store.destroy_where(LastRead, [eq("group_id", group.id)])
    await store.destroy_where(Message, [eq("group_id", group.id)])
    if group.icon:
        await _discard_icon(assets, group.icon)
    await store.destroy(group)
    logger.info("Destroyed group %s", group.id)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def get_group(store: Store, ctx: AuthContext, group_id: int) -> Group | None:
    """Return the group when the current user is a member, else None."""
    user = require_user(ctx)
    return await store.find_group_for_member(group_id, user.id)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def create_group(
    store: Store,
    ctx: AuthContext,
    data: GroupCreate,
    assets: AssetStorage,
    icon: AssetUpload | None = None,
) -> Group:
    """
    Create a group whose members are the founder plus those of
    ``data.user_ids`` who are the founder's friends.  Ids that are not
    friends are silently dropped.
    """
    user = require_user(ctx)
    friends = await store.get_friends(user, data.user_ids)

    group = await store.create(Group, name=data.name)
    await store.add_users(group, [user, *friends])

    if icon is not None:
        group = await store.update(group, {"icon": await _upload_icon(assets, icon)})
    return group


async def update_group(
    store: Store,
    ctx: AuthContext,
    group_id: int,
    data: GroupUpdate,
    assets: AssetStorage,
    icon: AssetUpload | None = None,
) -> Group:
    user = require_user(ctx)
    group = await store.find_group_for_member(group_id, user.id)
    if group is None:
        raise Unauthorized()

    changes: dict = {}

    if data.last_read is not None:
        message = await store.find_one(
            Message, [eq("id", data.last_read), eq("group_id", group.id)]
        )
        if message is None:
            raise MessageNotFound(f"Message {data.last_read} is not in group {group.id}")
        await store.remove_last_read(user, group.id)
        await store.add_last_read(user, group.id, message)

    if icon is not None:
        new_key = await _upload_icon(assets, icon)
        if group.icon:
            await _discard_icon(assets, group.icon)
        changes["icon"] = new_key

    if data.name:
        changes["name"] = data.name

    return await store.update(group, changes)


async def delete_group(
    store: Store, ctx: AuthContext, group_id: int, assets: AssetStorage
) -> None:
    user = require_user(ctx)
    group = await store.find_group_for_member(group_id, user.id)
    if group is None:
        raise Unauthorized()
    await _destroy(store, group, assets)


async def leave_group(
    store: Store, ctx: AuthContext, group_id: int, assets: AssetStorage
) -> dict:
    """
    Remove the current user from the group.  The last member out
    destroys the group.  Returns ``{"id": group_id}`` either way.
    """
    user = require_user(ctx)
    group = await store.find_group_for_member(group_id, user.id)
    if group is None:
        raise GroupNotFound()

    await store.remove_users(group, [user.id])
    if not await store.get_users(group):
        await _destroy(store, group, assets)
    return {"id": group_id}


# ---------------------------------------------------------------------------
# Field resolvers
# ---------------------------------------------------------------------------

async def group_users(store: Store, group: Group) -> list[dict]:
    return [{"id": u.id, "username": u.username} for u in await store.get_users(group)]


async def group_messages(
    store: Store,
    group: Group,
    *,
    first: int | None = None,
    last: int | None = None,
    before: str | None = None,
    after: str | None = None,
) -> MessageConnection:
    return await page_messages(store, group.id, first=first, last=last, before=before, after=after)


async def group_last_read(store: Store, ctx: AuthContext, group: Group) -> Message | None:
    user = require_user(ctx)
    marker = await store.get_last_read(user, group.id)
    return marker.message if marker else None


async def group_unread_count(store: Store, ctx: AuthContext, group: Group) -> int:
    """Count messages newer than the current user's read marker (all, without one)."""
    user = require_user(ctx)
    marker = await store.get_last_read(user, group.id)
    if marker is None:
        return await store.count(Message, [eq("group_id", group.id)])
    return await store.count(Message, [eq("group_id", group.id), gt("id", marker.message_id)])


async def group_icon_url(
    group: Group, assets: AssetStorage, expiry_seconds: int | None = None
) -> str | None:
    """Return a time-limited signed URL for the group's icon, or None."""
    if not group.icon:
        return None
    expiry = expiry_seconds or settings.SIGNED_URL_EXPIRY_SECONDS
    cached = await cache.get_signed_url(group.icon)
    if cached:
        return cached
    url = assets.get_signed_url(group.icon, expiry_seconds=expiry)
    await cache.set_signed_url(group.icon, url, expiry)
    return url
