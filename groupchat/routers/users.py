from fastapi import APIRouter, Depends, File, Query, UploadFile

from groupchat.context import AuthContext, require_user
from groupchat.dependencies import get_assets, get_auth_context, get_store
from groupchat.errors import Unauthorized
from groupchat.models import User
from groupchat.schemas import GroupSummary, MessageResponse, UserDetail, UserSummary, UserUpdate
from groupchat.services import user_service
from groupchat.storage import AssetStorage, AssetUpload
from groupchat.store import SqlStore, eq

router = APIRouter(prefix="/api/v1/users", tags=["users"])


def _detail(ctx: AuthContext, user: User, assets: AssetStorage) -> UserDetail:
    return UserDetail(
        id=user.id,
        username=user.username,
        email=user_service.user_email(ctx, user),
        registration_id=user_service.user_registration_id(ctx, user),
        badge_count=user.badge_count,
        avatar=user_service.user_avatar_url(user, assets),
    )


async def _target(store: SqlStore, ctx: AuthContext, user_id: int) -> User:
    require_user(ctx)
    user = await store.find_one(User, [eq("id", user_id)])
    if user is None:
        raise Unauthorized()
    return user


@router.get("", response_model=UserDetail)
async def find_user(
    email: str = Query(..., max_length=255),
    ctx: AuthContext = Depends(get_auth_context),
    assets: AssetStorage = Depends(get_assets),
):
    return _detail(ctx, user_service.get_user(ctx, email=email), assets)


@router.get("/me", response_model=UserDetail)
async def get_me(
    ctx: AuthContext = Depends(get_auth_context),
    assets: AssetStorage = Depends(get_assets),
):
    return _detail(ctx, require_user(ctx), assets)


@router.patch("/me", response_model=UserDetail)
async def update_me(
    data: UserUpdate,
    store: SqlStore = Depends(get_store),
    ctx: AuthContext = Depends(get_auth_context),
    assets: AssetStorage = Depends(get_assets),
):
    user = await user_service.update_user(store, ctx, data, assets)
    return _detail(ctx, user, assets)


@router.put("/me/avatar", response_model=UserDetail)
async def upload_avatar(
    avatar: UploadFile = File(...),
    store: SqlStore = Depends(get_store),
    ctx: AuthContext = Depends(get_auth_context),
    assets: AssetStorage = Depends(get_assets),
):
    upload = AssetUpload(data=await avatar.read(), content_type=avatar.content_type)
    user = await user_service.update_user(store, ctx, UserUpdate(), assets, avatar=upload)
    return _detail(ctx, user, assets)


@router.get("/{user_id}", response_model=UserDetail)
async def get_user(
    user_id: int,
    ctx: AuthContext = Depends(get_auth_context),
    assets: AssetStorage = Depends(get_assets),
):
    return _detail(ctx, user_service.get_user(ctx, user_id=user_id), assets)


@router.get("/{user_id}/friends", response_model=list[UserSummary])
async def list_friends(
    user_id: int,
    store: SqlStore = Depends(get_store),
    ctx: AuthContext = Depends(get_auth_context),
):
    target = await _target(store, ctx, user_id)
    return await user_service.user_friends(store, ctx, target)


@router.get("/{user_id}/groups", response_model=list[GroupSummary])
async def list_groups(
    user_id: int,
    store: SqlStore = Depends(get_store),
    ctx: AuthContext = Depends(get_auth_context),
):
    target = await _target(store, ctx, user_id)
    return await user_service.user_groups(store, ctx, target)


@router.get("/{user_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    user_id: int,
    store: SqlStore = Depends(get_store),
    ctx: AuthContext = Depends(get_auth_context),
):
    target = await _target(store, ctx, user_id)
    return await user_service.user_messages(store, ctx, target)
