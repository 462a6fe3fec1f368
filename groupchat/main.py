import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from groupchat.cache import cache
from groupchat.database import async_session
from groupchat.errors import GroupChatError
from groupchat.fanout import MessageFanOut
from groupchat.middleware import TimingMiddleware
from groupchat.push import build_transport
from groupchat.routers import groups, messages, metrics, users
from groupchat.store import make_store_scope

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await cache.connect()
    except Exception:
        logger.warning("Redis unavailable, continuing without cache", exc_info=True)

    transport = build_transport()
    app.state.fanout = MessageFanOut(make_store_scope(async_session), transport)
    yield
    # Let in-flight notifications finish before the transport goes away.
    await app.state.fanout.drain()
    await transport.aclose()
    await cache.disconnect()


app = FastAPI(
    title="Group Messaging API",
    description="Group chat core: membership-gated groups, cursor-paginated feeds, push fan-out",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(GroupChatError)
async def groupchat_error_handler(request: Request, exc: GroupChatError):
    logger.info("%s on %s: %s", exc.code, request.url.path, exc.message)
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


app.include_router(users.router)
app.include_router(groups.router)
app.include_router(messages.router)
app.include_router(metrics.router)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
