"""
Message service — message creation and sender / recipient resolution.

Messages are written once and never edited.  Creating one is gated by
membership of the target group; the unread-badge and push fan-out is
handed to ``MessageFanOut`` and runs once the creating transaction commits.  A rolled-back
message never reaches badges or devices.
"""
from groupchat.context import AuthContext, require_user
from groupchat.errors import Unauthorized
from groupchat.fanout import MessageFanOut
from groupchat.models import Group, Message, User
from groupchat.schemas import MessageCreate
from groupchat.store import Store, eq


async def create_message(
    store: Store, ctx: AuthContext, data: MessageCreate, fanout: MessageFanOut
) -> Message:
    user = require_user(ctx)
    groups = await store.get_groups(user, [data.group_id])
    if not groups:
        raise Unauthorized()
    group = groups[0]

    message = await store.create(Message, user_id=user.id, group_id=group.id, text=data.text)
    store.on_commit(lambda: fanout.message_added(author=user, group=group, message=message))
    return message


async def message_from(store: Store, ctx: AuthContext, message: Message) -> dict | None:
    """Return ``{id, username}`` of the author, batched through the context loader when present."""
    if ctx.user_loader is not None:
        author = await ctx.user_loader.load(message.user_id)
    else:
        author = await store.find_one(User, [eq("id", message.user_id)])
    if author is None:
        return None
    return {"id": author.id, "username": author.username}


async def message_to(store: Store, ctx: AuthContext, message: Message) -> dict | None:
    """Return ``{id, name}`` of the owning group."""
    if ctx.group_loader is not None:
        group = await ctx.group_loader.load(message.group_id)
    else:
        group = await store.find_one(Group, [eq("id", message.group_id)])
    if group is None:
        return None
    return {"id": group.id, "name": group.name}
