from fastapi import APIRouter, Depends

from groupchat.cache import cache
from groupchat.dependencies import get_fanout, get_store
from groupchat.fanout import MessageFanOut
from groupchat.models import Group, Message, User
from groupchat.schemas import MetricsResponse
from groupchat.store import SqlStore

router = APIRouter(prefix="/api/v1/metrics", tags=["metrics"])


@router.get("", response_model=MetricsResponse)
async def get_metrics(
    store: SqlStore = Depends(get_store),
    fanout: MessageFanOut = Depends(get_fanout),
):
    total_users = await store.count(User)
    total_groups = await store.count(Group)
    total_messages = await store.count(Message)

    avg_messages = total_messages / total_groups if total_groups > 0 else 0

    return MetricsResponse(
        total_users=total_users,
        total_groups=total_groups,
        total_messages=total_messages,
        avg_messages_per_group=round(avg_messages, 2),
        pending_fanouts=fanout.pending,
        cache_info=cache.stats,
    )
