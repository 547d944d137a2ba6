"""Per-query chat schemas."""

from pydantic import Field

from app.schemas.common import CamelSchema


class ChatRemarkCreate(CamelSchema):
    """New chat message for a query.

    ``remark`` and ``message`` are interchangeable; older clients send one,
    newer ones the other.
    """

    remark: str | None = None
    message: str | None = None
    sender: str | None = None
    sender_role: str | None = None
    team: str | None = None

    @property
    def text(self) -> str | None:
        return self.remark or self.message

    @property
    def is_complete(self) -> bool:
        return bool(self.text and self.sender and self.sender_role)


class ChatRemark(CamelSchema):
    """Chat message as shown in a query's thread."""

    id: str
    query_id: str
    remark: str
    text: str
    sender: str
    sender_role: str
    timestamp: str
    team: str
    response_text: str


class ChatThreadResponse(CamelSchema):
    """Isolated chat thread for one query."""

    success: bool = True
    data: list[ChatRemark] = Field(default_factory=list)
    count: int
    query_id: str
    isolated: bool = True


class ChatRemarkCreated(CamelSchema):
    """Result of posting a chat message."""

    success: bool = True
    data: ChatRemark
    message: str
