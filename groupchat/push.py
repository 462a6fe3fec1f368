"""
Push notification transport.

``FcmTransport`` posts to the FCM HTTP endpoint.  Any transport or HTTP
error is raised as ``UpstreamFailure``; deciding whether that matters
is the caller's job (the message fan-out logs and drops it).
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol

import httpx

from groupchat.config import settings
from groupchat.errors import UpstreamFailure

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Notification:
    title: str
    body: str
    badge: int
    sound: str = "default"
    click_action: str = "openGroup"


@dataclass(slots=True)
class PushMessage:
    to: str
    notification: Notification
    data: dict[str, Any] = field(default_factory=dict)
    # "high" wakes a sleeping device
    priority: str = "high"

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


class NotificationTransport(Protocol):
    async def send(self, message: PushMessage) -> None: ...

    async def aclose(self) -> None: ...


class FcmTransport:
    def __init__(
        self,
        server_key: str | None = None,
        endpoint: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.endpoint = endpoint or settings.FCM_ENDPOINT
        self._client = httpx.AsyncClient(
            timeout=timeout or settings.PUSH_TIMEOUT_SECONDS,
            headers={"Authorization": f"key={server_key or settings.FCM_SERVER_KEY}"},
            transport=transport,
        )

    async def send(self, message: PushMessage) -> None:
        try:
            response = await self._client.post(self.endpoint, json=message.to_payload())
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise UpstreamFailure(f"Push delivery failed: {exc}") from exc

    async def aclose(self) -> None:
        await self._client.aclose()


class NullTransport:
    """Used when push notifications are disabled."""

    async def send(self, message: PushMessage) -> None:
        logger.debug("Push disabled, dropping notification for %s", message.to)

    async def aclose(self) -> None:
        return None


def build_transport() -> NotificationTransport:
    if settings.PUSH_NOTIFICATIONS_ENABLED:
        return FcmTransport()
    return NullTransport()
