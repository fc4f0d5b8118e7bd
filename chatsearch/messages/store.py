"""Message store interface.

The store owns messages; search components only read messages and attach
embeddings to them.
"""

from abc import ABC, abstractmethod
from collections.abc import Collection

from chatsearch.messages.models import LexicalHit, Message, NewMessage


class MessageStore(ABC):
    """Abstract base class for message stores.

    Implementations raise StoreUnavailableError when the backing store
    cannot be reached.
    """

    @abstractmethod
    async def create_message(self, new_message: NewMessage) -> Message:
        """Persist a new message and return it with its id."""
        ...

    @abstractmethod
    async def get_message(self, message_id: str) -> Message | None:
        """Fetch one message by id."""
        ...

    @abstractmethod
    async def list_messages(self, user_id: str, limit: int = 100) -> list[Message]:
        """Most recent messages the user sent or received, newest first."""
        ...

    @abstractmethod
    async def get_conversation(
        self,
        user_id: str,
        other_user_id: str,
        limit: int = 100,
    ) -> list[Message]:
        """Most recent messages between two users, newest first."""
        ...

    @abstractmethod
    async def delete_message(self, message_id: str) -> bool:
        """Delete a message; True if it existed."""
        ...

    @abstractmethod
    async def existing_ids(self, message_ids: Collection[str]) -> set[str]:
        """The subset of ``message_ids`` still present in the store."""
        ...

    @abstractmethod
    async def text_search(
        self,
        user_id: str,
        query: str,
        limit: int = 20,
    ) -> list[LexicalHit]:
        """Full-text search scoped to one participant.

        Args:
            user_id: Only messages this user sent or received.
            query: Search string.
            limit: Maximum hits.

        Returns:
            Hits ordered by descending relevance.
        """
        ...

    @abstractmethod
    async def recent_with_embeddings(
        self,
        user_id: str,
        limit: int = 100,
    ) -> list[Message]:
        """Most recent messages of the user that carry an embedding."""
        ...

    @abstractmethod
    async def find_missing_embeddings(
        self,
        user_id: str | None = None,
        limit: int = 100,
        exclude_ids: Collection[str] = (),
    ) -> list[Message]:
        """Messages without an embedding.

        Args:
            user_id: Restrict to one participant, or all users when None.
            limit: Maximum messages returned.
            exclude_ids: Ids to leave out.
        """
        ...

    @abstractmethod
    async def set_embedding(self, message_id: str, embedding: list[float]) -> bool:
        """Attach an embedding; True if the message exists."""
        ...

    @abstractmethod
    async def count_messages(
        self,
        user_id: str | None = None,
        with_embeddings: bool = False,
    ) -> int:
        """Count messages, optionally per participant and only embedded ones."""
        ...

    async def ping(self) -> bool:
        """Whether the store answers."""
        return True

    async def close(self) -> None:
        """Release store resources."""
        return None
