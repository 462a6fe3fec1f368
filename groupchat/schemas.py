from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# --- User ---

class UserSummary(BaseModel):
    """The only user fields visible to people other than the user."""

    id: int
    username: str
    model_config = ConfigDict(from_attributes=True)


class UserDetail(UserSummary):
    email: str
    avatar: str | None = None
    registration_id: str | None = None
    badge_count: int = 0


class UserUpdate(BaseModel):
    # Sending registration_id explicitly as null unregisters the device.
    registration_id: str | None = Field(None, max_length=255)
    badge_count: int | None = Field(None, ge=0)
    username: str | None = Field(None, min_length=1, max_length=100)


# --- Group ---

class GroupSummary(BaseModel):
    id: int
    name: str
    model_config = ConfigDict(from_attributes=True)


class GroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    user_ids: list[int] = []


class GroupUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    last_read: int | None = None


class GroupDetail(GroupSummary):
    icon: str | None = None
    users: list[UserSummary] = []
    unread_count: int = 0
    last_read: int | None = None


class GroupLeft(BaseModel):
    id: int


# --- Message ---

class MessageCreate(BaseModel):
    text: str = Field(min_length=1)
    group_id: int


class MessageResponse(BaseModel):
    id: int
    text: str
    user_id: int
    group_id: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class MessageDetail(MessageResponse):
    sender: UserSummary = Field(serialization_alias="from")
    to: GroupSummary


# --- Pagination ---

class MessageEdge(BaseModel):
    cursor: str
    node: MessageResponse
    model_config = ConfigDict(from_attributes=True)


class PageInfo(BaseModel):
    has_next_page: bool
    has_previous_page: bool
    model_config = ConfigDict(from_attributes=True)


class MessageConnection(BaseModel):
    edges: list[MessageEdge]
    page_info: PageInfo
    model_config = ConfigDict(from_attributes=True)


# --- Metrics ---

class MetricsResponse(BaseModel):
    total_users: int
    total_groups: int
    total_messages: int
    avg_messages_per_group: float
    pending_fanouts: int = 0
    cache_info: dict = {}
