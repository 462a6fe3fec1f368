import logging

from fastapi import Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from groupchat.config import settings
from groupchat.context import AuthContext, EntityLoader
from groupchat.database import get_db
from groupchat.fanout import MessageFanOut
from groupchat.models import Group, User
from groupchat.security import decode_access_token
from groupchat.storage import AssetStorage, LocalAssetStorage
from groupchat.store import SqlStore, eq, in_

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

_assets = LocalAssetStorage()


async def get_store(db: AsyncSession = Depends(get_db)) -> SqlStore:
    return SqlStore(db)


async def get_auth_context(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    store: SqlStore = Depends(get_store),
) -> AuthContext:
    """
    Resolve the bearer token into an ``AuthContext``.

    A missing, expired or forged token, or one naming a user that no
    longer exists, yields an anonymous context; gated operations then
    fail with ``Unauthorized``.
    """
    user = None
    if credentials is not None:
        user_id = decode_access_token(credentials.credentials)
        if user_id is None:
            logger.debug("Rejected bearer token")
        else:
            user = await store.find_one(User, [eq("id", user_id)])

    async def fetch_users(ids: list) -> list[User]:
        return await store.find_all(User, [in_("id", ids)])

    async def fetch_groups(ids: list) -> list[Group]:
        return await store.find_all(Group, [in_("id", ids)])

    return AuthContext(
        user=user,
        user_loader=EntityLoader(fetch_users),
        group_loader=EntityLoader(fetch_groups),
    )


def get_assets() -> AssetStorage:
    return _assets


def get_fanout(request: Request) -> MessageFanOut:
    return request.app.state.fanout


class MessagePageParams:
    """
    Query parameters for a message feed page.

    ``first`` and ``last`` both bound the page size (``first`` wins);
    when neither is given the page holds ``settings.DEFAULT_PAGE_SIZE``
    messages, and larger sizes are clamped to ``settings.MAX_PAGE_SIZE``.
    ``before`` / ``after`` are opaque cursors from a previous
    page's edges.
    """

    def __init__(
        self,
        first: int | None = Query(None, ge=0, description="Page size."),
        last: int | None = Query(None, ge=0, description="Page size if first is absent."),
        before: str | None = Query(None, description="Only messages newer than this cursor."),
        after: str | None = Query(None, description="Only messages older than this cursor."),
    ) -> None:
        if first is None and last is None:
            first = settings.DEFAULT_PAGE_SIZE
        self.first = min(first, settings.MAX_PAGE_SIZE) if first is not None else None
        self.last = min(last, settings.MAX_PAGE_SIZE) if last is not None else None
        self.before = before
        self.after = after
