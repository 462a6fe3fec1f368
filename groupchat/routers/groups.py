from fastapi import APIRouter, Depends, File, Form, UploadFile

from groupchat.context import AuthContext
from groupchat.dependencies import MessagePageParams, get_assets, get_auth_context, get_store
from groupchat.errors import GroupNotFound
from groupchat.models import Group
from groupchat.schemas import GroupCreate, GroupDetail, GroupLeft, GroupUpdate, MessageConnection
from groupchat.services import group_service
from groupchat.storage import AssetStorage, AssetUpload
from groupchat.store import SqlStore

router = APIRouter(prefix="/api/v1/groups", tags=["groups"])


async def _to_upload(file: UploadFile | None) -> AssetUpload | None:
    if file is None:
        return None
    return AssetUpload(data=await file.read(), content_type=file.content_type)


async def _detail(
    store: SqlStore, ctx: AuthContext, group: Group, assets: AssetStorage
) -> GroupDetail:
    last_read = await group_service.group_last_read(store, ctx, group)
    return GroupDetail(
        id=group.id,
        name=group.name,
        icon=await group_service.group_icon_url(group, assets),
        users=await group_service.group_users(store, group),
        unread_count=await group_service.group_unread_count(store, ctx, group),
        last_read=last_read.id if last_read else None,
    )


async def _member_group(store: SqlStore, ctx: AuthContext, group_id: int) -> Group:
    group = await group_service.get_group(store, ctx, group_id)
    if group is None:
        raise GroupNotFound()
    return group


@router.post("", status_code=201, response_model=GroupDetail)
async def create_group(
    name: str = Form(..., min_length=1, max_length=200),
    user_ids: list[int] = Form([]),
    icon: UploadFile | None = File(None),
    store: SqlStore = Depends(get_store),
    ctx: AuthContext = Depends(get_auth_context),
    assets: AssetStorage = Depends(get_assets),
):
    data = GroupCreate(name=name, user_ids=user_ids)
    group = await group_service.create_group(store, ctx, data, assets, icon=await _to_upload(icon))
    return await _detail(store, ctx, group, assets)


@router.get("/{group_id}", response_model=GroupDetail)
async def get_group(
    group_id: int,
    store: SqlStore = Depends(get_store),
    ctx: AuthContext = Depends(get_auth_context),
    assets: AssetStorage = Depends(get_assets),
):
    group = await _member_group(store, ctx, group_id)
    return await _detail(store, ctx, group, assets)


@router.get("/{group_id}/messages", response_model=MessageConnection)
async def list_group_messages(
    group_id: int,
    page: MessagePageParams = Depends(),
    store: SqlStore = Depends(get_store),
    ctx: AuthContext = Depends(get_auth_context),
):
    group = await _member_group(store, ctx, group_id)
    connection = await group_service.group_messages(
        store, group, first=page.first, last=page.last, before=page.before, after=page.after
    )
    return MessageConnection.model_validate(connection, from_attributes=True)


@router.patch("/{group_id}", response_model=GroupDetail)
async def update_group(
    group_id: int,
    data: GroupUpdate,
    store: SqlStore = Depends(get_store),
    ctx: AuthContext = Depends(get_auth_context),
    assets: AssetStorage = Depends(get_assets),
):
    group = await group_service.update_group(store, ctx, group_id, data, assets)
    return await _detail(store, ctx, group, assets)


@router.put("/{group_id}/icon", response_model=GroupDetail)
async def upload_group_icon(
    group_id: int,
    icon: UploadFile = File(...),
    store: SqlStore = Depends(get_store),
    ctx: AuthContext = Depends(get_auth_context),
    assets: AssetStorage = Depends(get_assets),
):
    group = await group_service.update_group(
        store, ctx, group_id, GroupUpdate(), assets, icon=await _to_upload(icon)
    )
    return await _detail(store, ctx, group, assets)


@router.delete("/{group_id}", status_code=204)
async def delete_group(
    group_id: int,
    store: SqlStore = Depends(get_store),
    ctx: AuthContext = Depends(get_auth_context),
    assets: AssetStorage = Depends(get_assets),
):
    await group_service.delete_group(store, ctx, group_id, assets)


@router.post("/{group_id}/leave", response_model=GroupLeft)
async def leave_group(
    group_id: int,
    store: SqlStore = Depends(get_store),
    ctx: AuthContext = Depends(get_auth_context),
    assets: AssetStorage = Depends(get_assets),
):
    return await group_service.leave_group(store, ctx, group_id, assets)
