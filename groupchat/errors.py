"""
Error hierarchy for the group-messaging core.

Services raise these directly and callers see them unchanged; the API
layer turns any ``GroupChatError`` into a JSON envelope carrying the
error's own status code.

- ``Unauthorized``: identity absent, identity mismatch, or the acting
  user is not a member of the target group.  Membership-filtered
  lookups cannot tell "missing" from "not yours", so both surface here.
- ``GroupNotFound`` / ``MessageNotFound``: the target entity is absent.
- ``InvalidCursor``: a pagination cursor that does not decode to an id.
- ``UpstreamFailure``: asset storage or notification transport failed.
"""


class GroupChatError(Exception):
    """Base exception for all group-messaging failures."""

    code = "error"
    http_status = 500

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message()
        super().__init__(self.message)

    @classmethod
    def default_message(cls) -> str:
        return cls.__name__

    def to_response(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}


class Unauthorized(GroupChatError):
    code = "unauthorized"
    http_status = 401

    @classmethod
    def default_message(cls) -> str:
        return "Unauthorized"


class GroupNotFound(GroupChatError):
    code = "group_not_found"
    http_status = 404

    @classmethod
    def default_message(cls) -> str:
        return "No group found"


class MessageNotFound(GroupChatError):
    code = "message_not_found"
    http_status = 404

    @classmethod
    def default_message(cls) -> str:
        return "No message found"


class InvalidCursor(GroupChatError):
    code = "invalid_cursor"
    http_status = 400

    @classmethod
    def default_message(cls) -> str:
        return "Invalid cursor"


class UpstreamFailure(GroupChatError):
    code = "upstream_failure"
    http_status = 502

    @classmethod
    def default_message(cls) -> str:
        return "Upstream service failure"
