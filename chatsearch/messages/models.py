"""Message data models."""

from datetime import UTC, datetime

from pydantic import BaseModel, Field


class NewMessage(BaseModel):
    """A message about to be persisted."""

    sender_id: str = Field(min_length=1, description="Sender user id")
    receiver_id: str = Field(min_length=1, description="Receiver user id")
    text: str = Field(min_length=1, description="Message body")


class Message(BaseModel):
    """A stored message.

    Attributes:
        id: Message identity assigned by the store.
        sender_id: Sender user id.
        receiver_id: Receiver user id.
        text: Message body.
        embedding: Stored embedding, if one has been attached.
        created_at: Creation timestamp (UTC).
    """

    id: str = Field(description="Message identifier")
    sender_id: str = Field(description="Sender user id")
    receiver_id: str = Field(description="Receiver user id")
    text: str = Field(description="Message body")
    embedding: list[float] | None = Field(
        default=None,
        description="Attached embedding vector",
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Creation timestamp",
    )

    @property
    def participants(self) -> list[str]:
        """Sender and receiver ids, without duplicates."""
        if self.sender_id == self.receiver_id:
            return [self.sender_id]
        return [self.sender_id, self.receiver_id]

    @property
    def has_embedding(self) -> bool:
        """Whether a non-empty embedding is attached."""
        return bool(self.embedding)

    def involves(self, user_id: str) -> bool:
        """Whether the user sent or received this message."""
        return user_id in (self.sender_id, self.receiver_id)


class LexicalHit(BaseModel):
    """A full-text match with the store's relevance score."""

    message: Message
    score: float = Field(description="Text relevance score")
