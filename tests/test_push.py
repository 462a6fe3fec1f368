"""
Push transport tests — FCM requests are answered by ``httpx.MockTransport``.
"""
import json

import httpx
import pytest

from groupchat.errors import UpstreamFailure
from groupchat.push import FcmTransport, Notification, NullTransport, PushMessage, build_transport


def _message() -> PushMessage:
    return PushMessage(
        to="device-1",
        notification=Notification(title="alice @ crew", body="hi", badge=2),
        data={"type": "MESSAGE_ADDED", "group": {"id": 1, "name": "crew"}},
    )


@pytest.mark.asyncio
async def test_fcm_posts_payload_with_server_key():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": 1})

    transport = FcmTransport(
        server_key="server-key",
        endpoint="https://push.test/send",
        transport=httpx.MockTransport(handler),
    )
    await transport.send(_message())
    await transport.aclose()

    assert len(seen) == 1
    request = seen[0]
    assert str(request.url) == "https://push.test/send"
    assert request.headers["authorization"] == "key=server-key"
    body = json.loads(request.content)
    assert body["to"] == "device-1"
    assert body["priority"] == "high"
    assert body["notification"]["badge"] == 2
    assert body["notification"]["click_action"] == "openGroup"


@pytest.mark.asyncio
async def test_fcm_error_status_is_upstream_failure():
    transport = FcmTransport(
        server_key="k",
        endpoint="https://push.test/send",
        transport=httpx.MockTransport(lambda request: httpx.Response(503)),
    )
    with pytest.raises(UpstreamFailure):
        await transport.send(_message())
    await transport.aclose()


@pytest.mark.asyncio
async def test_fcm_connection_error_is_upstream_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    transport = FcmTransport(
        server_key="k", endpoint="https://push.test/send", transport=httpx.MockTransport(handler)
    )
    with pytest.raises(UpstreamFailure):
        await transport.send(_message())
    await transport.aclose()


@pytest.mark.asyncio
async def test_null_transport_drops_messages():
    transport = NullTransport()
    assert await transport.send(_message()) is None
    await transport.aclose()


def test_build_transport_respects_setting(monkeypatch):
    from groupchat.config import settings

    monkeypatch.setattr(settings, "PUSH_NOTIFICATIONS_ENABLED", False)
    assert isinstance(build_transport(), NullTransport)
