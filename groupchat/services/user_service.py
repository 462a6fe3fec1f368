"""
User service — private user fields and profile updates.

Every field that exposes private data is gated by an identity match:
the acting user must *be* the target user.  There are no roles; a
mismatch is ``Unauthorized`` no matter who asks.
"""
from groupchat.context import AuthContext, require_user
from groupchat.errors import Unauthorized
from groupchat.models import Group, Message, User
from groupchat.schemas import UserUpdate
from groupchat.storage import AssetStorage, AssetUpload, asset_name
from groupchat.store import OrderBy, Store, eq


def require_self(ctx: AuthContext, user: User) -> User:
    """Return the current user when it is *user*, else raise ``Unauthorized``."""
    current = require_user(ctx)
    if current.id != user.id:
        raise Unauthorized()
    return current


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

def get_user(ctx: AuthContext, user_id: int | None = None, email: str | None = None) -> User:
    """Return the current user when *user_id* or *email* identifies them."""
    current = require_user(ctx)
    if (user_id is not None and current.id == user_id) or (
        email is not None and current.email == email
    ):
        return current
    raise Unauthorized()


# ---------------------------------------------------------------------------
# Gated field resolvers
# ---------------------------------------------------------------------------

def user_email(ctx: AuthContext, user: User) -> str:
    return require_self(ctx, user).email


def user_registration_id(ctx: AuthContext, user: User) -> str | None:
    return require_self(ctx, user).registration_id


async def user_friends(store: Store, ctx: AuthContext, user: User) -> list[dict]:
    require_self(ctx, user)
    friends = await store.get_friends(user)
    return [{"id": f.id, "username": f.username} for f in friends]


async def user_groups(store: Store, ctx: AuthContext, user: User) -> list[Group]:
    require_self(ctx, user)
    return await store.get_groups(user)


async def user_messages(store: Store, ctx: AuthContext, user: User) -> list[Message]:
    require_self(ctx, user)
    return await store.find_all(
        Message,
        [eq("user_id", user.id)],
        order=[OrderBy("created_at", descending=True), OrderBy("id", descending=True)],
    )


def user_avatar_url(user: User, assets: AssetStorage) -> str | None:
    return assets.get_url(user.avatar) if user.avatar else None


# ---------------------------------------------------------------------------
# Profile update
# ---------------------------------------------------------------------------

async def update_user(
    store: Store,
    ctx: AuthContext,
    data: UserUpdate,
    assets: AssetStorage,
    avatar: AssetUpload | None = None,
) -> User:
    """
    Apply a partial profile update for the current user.

    Only fields present in the payload are touched, so an explicit
    ``registration_id: null`` clears the device token while an omitted
    one leaves it alone.  A new avatar is uploaded before the old one is
    deleted; a storage failure propagates and nothing is written.
    """
    user = require_user(ctx)
    changes = data.model_dump(exclude_unset=True)
    if changes.get("username") is None:
        changes.pop("username", None)
    if changes.get("badge_count") is None:
        changes.pop("badge_count", None)

    if avatar is not None:
        stored = await assets.upload(avatar.data, name=asset_name(avatar.content_type), acl="public-read")
        if user.avatar:
            await assets.delete(user.avatar)
        changes["avatar"] = stored.key

    return await store.update(user, changes)
