"""
Cursor pagination for a group's message feed.

Design notes
------------
- A cursor is ``base64(str(message.id))``.  Message ids are allocated in
  strictly increasing order, so the id alone orders the feed; timestamps
  are never compared.
- Pages are always newest-first.  Because of that, ``before`` means
  "newer than the cursor" (``id > cursor``) and ``after`` means "older
  than the cursor" (``id < cursor``).  When both are supplied ``after``
  wins and is the constraint recorded for the page.
- The page size is ``first`` when given, otherwise ``last``; with
  neither, the page is unbounded and cannot have a next page.
- ``has_next_page`` costs one extra query and only when the page came
  back full.  ``has_previous_page`` always costs one.  Both run after
  the page query and are read-only.
"""
import base64
import binascii
from dataclasses import dataclass, field

from groupchat.errors import InvalidCursor
from groupchat.models import Message
from groupchat.store import Filter, OrderBy, Store, eq, gt, lt

NEWEST_FIRST = OrderBy("id", descending=True)
OLDEST_FIRST = OrderBy("id")


def encode_cursor(message_id: int) -> str:
    return base64.b64encode(str(message_id).encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> int:
    """Return the message id inside *cursor*; raise ``InvalidCursor`` otherwise."""
    try:
        raw = base64.b64decode(cursor.encode("ascii"), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise InvalidCursor(f"Invalid cursor {cursor!r}") from exc
    if not (raw.isascii() and raw.isdigit()):
        raise InvalidCursor(f"Invalid cursor {cursor!r}")
    return int(raw)


@dataclass
class Edge:
    cursor: str
    node: Message


@dataclass
class PageInfo:
    has_next_page: bool = False
    has_previous_page: bool = False


@dataclass
class MessageConnection:
    edges: list[Edge] = field(default_factory=list)
    page_info: PageInfo = field(default_factory=PageInfo)


def _cursor_constraint(before: str | None, after: str | None) -> Filter | None:
    constraint = None
    if before is not None:
        constraint = gt("id", decode_cursor(before))
    if after is not None:
        constraint = lt("id", decode_cursor(after))
    return constraint


async def page_messages(
    store: Store,
    group_id: int,
    *,
    first: int | None = None,
    last: int | None = None,
    before: str | None = None,
    after: str | None = None,
) -> MessageConnection:
    page_size = first if first is not None else last
    if page_size is not None and page_size < 0:
        raise ValueError("page size must not be negative")

    scope = [eq("group_id", group_id)]
    constraint = _cursor_constraint(before, after)
    filters = scope + [constraint] if constraint is not None else scope

    messages = await store.find_all(Message, filters, order=[NEWEST_FIRST], limit=page_size)
    edges = [Edge(cursor=encode_cursor(m.id), node=m) for m in messages]

    # A short page (which includes an empty one) ends the feed.
    if page_size is None or not messages or len(messages) < page_size:
        has_next_page = False
    else:
        boundary = messages[-1].id
        beyond = gt("id", boundary) if before is not None else lt("id", boundary)
        has_next_page = await store.find_one(Message, scope + [beyond], order=[NEWEST_FIRST]) is not None

    has_previous_page = await store.find_one(Message, filters, order=[OLDEST_FIRST]) is not None

    return MessageConnection(
        edges=edges,
        page_info=PageInfo(has_next_page=has_next_page, has_previous_page=has_previous_page),
    )
