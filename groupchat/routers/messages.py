from fastapi import APIRouter, Depends

from groupchat.context import AuthContext
from groupchat.dependencies import get_auth_context, get_fanout, get_store
from groupchat.fanout import MessageFanOut
from groupchat.schemas import MessageCreate, MessageDetail
from groupchat.services import message_service
from groupchat.store import SqlStore

router = APIRouter(prefix="/api/v1/messages", tags=["messages"])


@router.post("", status_code=201, response_model=MessageDetail)
async def create_message(
    data: MessageCreate,
    store: SqlStore = Depends(get_store),
    ctx: AuthContext = Depends(get_auth_context),
    fanout: MessageFanOut = Depends(get_fanout),
):
    message = await message_service.create_message(store, ctx, data, fanout)
    return MessageDetail(
        id=message.id,
        text=message.text,
        user_id=message.user_id,
        group_id=message.group_id,
        created_at=message.created_at,
        sender=await message_service.message_from(store, ctx, message),
        to=await message_service.message_to(store, ctx, message),
    )
