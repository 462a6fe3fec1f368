"""
Subscription service — who may listen to which real-time events.

These checks run once when a client subscribes; the delivery transport
itself lives elsewhere.
"""
from collections.abc import Iterable

from groupchat.context import AuthContext, require_user
from groupchat.errors import Unauthorized
from groupchat.models import User
from groupchat.store import Store


def authorize_group_added(ctx: AuthContext, user_id: int) -> User:
    """Only the user themselves may hear about groups they are added to."""
    user = require_user(ctx)
    if user.id != user_id:
        raise Unauthorized()
    return user


async def authorize_message_added(
    store: Store, ctx: AuthContext, group_ids: Iterable[int]
) -> list[int]:
    """
    Allow the subscription only if every claimed group is one the
    current user belongs to.  Returns the authorized group ids.
    """
    user = require_user(ctx)
    claimed = set(group_ids)
    groups = await store.get_groups(user, claimed)
    if len(groups) < len(claimed):
        raise Unauthorized()
    return sorted(g.id for g in groups)
