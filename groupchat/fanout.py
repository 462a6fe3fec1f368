"""
Unread-badge and push-notification fan-out for newly created messages.

``MessageFanOut.message_added`` is called right after the message row is
flushed and returns immediately; the work runs as a detached asyncio
task.  Inside that task:

1. the group's members are loaded,
2. every member except the author gets ``badge_count + 1``, each in its
   own store scope, all concurrently and independently,
3. members whose increment succeeded and who have a device
   registration id get one push notification each, also concurrently.

A failure for one recipient is logged and dropped; it never affects the
others or the request that created the message.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field

from groupchat.models import Group, Message, User
from groupchat.push import Notification, NotificationTransport, PushMessage
from groupchat.store import Store, eq

logger = logging.getLogger(__name__)

MESSAGE_ADDED = "MESSAGE_ADDED"

StoreScope = Callable[[], AbstractAsyncContextManager[Store]]


@dataclass(frozen=True)
class MessageAdded:
    message_id: int
    text: str
    author_id: int
    author_username: str
    group_id: int
    group_name: str

    @property
    def title(self) -> str:
        return f"{self.author_username} @ {self.group_name}"


@dataclass
class FanOutResult:
    incremented: list[int] = field(default_factory=list)
    notified: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)


def build_push_message(event: MessageAdded, recipient: User) -> PushMessage:
    return PushMessage(
        to=recipient.registration_id,
        notification=Notification(
            title=event.title,
            body=event.text,
            badge=recipient.badge_count,
        ),
        data={
            "title": event.title,
            "body": event.text,
            "type": MESSAGE_ADDED,
            "group": {"id": event.group_id, "name": event.group_name},
        },
    )


class MessageFanOut:
    def __init__(self, store_scope: StoreScope, transport: NotificationTransport) -> None:
        self._store_scope = store_scope
        self._transport = transport
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def message_added(self, *, author: User, group: Group, message: Message) -> asyncio.Task:
        """Schedule the fan-out for *message* and return without waiting."""
        event = MessageAdded(
            message_id=message.id,
            text=message.text,
            author_id=author.id,
            author_username=author.username,
            group_id=group.id,
            group_name=group.name,
        )
        task = asyncio.create_task(self.run(event), name=f"fanout-message-{message.id}")
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Fan-out task %s failed", task.get_name(), exc_info=exc)

    async def drain(self) -> None:
        """Wait for every scheduled fan-out to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def run(self, event: MessageAdded) -> FanOutResult:
        result = FanOutResult()

        async with self._store_scope() as store:
            group = await store.find_one(Group, [eq("id", event.group_id)])
            if group is None:
                logger.info("Group %s vanished before fan-out of message %s", event.group_id, event.message_id)
                return result
            members = await store.get_users(group)

        recipients = [member for member in members if member.id != event.author_id]
        outcomes = await asyncio.gather(
            *(self._increment_badge(member) for member in recipients),
            return_exceptions=True,
        )

        updated: list[User] = []
        for member, outcome in zip(recipients, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(
                    "Badge increment failed for user %s on message %s",
                    member.id,
                    event.message_id,
                    exc_info=outcome,
                )
                result.failed.append(member.id)
                continue
            result.incremented.append(outcome.id)
            updated.append(outcome)

        registered = [user for user in updated if user.registration_id]
        deliveries = await asyncio.gather(
            *(self._transport.send(build_push_message(event, user)) for user in registered),
            return_exceptions=True,
        )
        for user, outcome in zip(registered, deliveries):
            if isinstance(outcome, BaseException):
                logger.warning(
                    "Push delivery failed for user %s on message %s",
                    user.id,
                    event.message_id,
                    exc_info=outcome,
                )
                result.failed.append(user.id)
            else:
                result.notified.append(user.id)

        logger.debug(
            "Fan-out for message %s: %d badge(s), %d push(es), %d failure(s)",
            event.message_id,
            len(result.incremented),
            len(result.notified),
            len(result.failed),
        )
        return result

    async def _increment_badge(self, member: User) -> User:
        async with self._store_scope() as store:
            return await store.increment(member, "badge_count")
