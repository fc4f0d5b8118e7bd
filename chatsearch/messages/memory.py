"""In-process message store for development and tests."""

import re
from collections.abc import Collection
from uuid import uuid4

from chatsearch.messages.models import LexicalHit, Message, NewMessage
from chatsearch.messages.store import MessageStore

_WORD = re.compile(r"\w+")


def _terms(text: str) -> list[str]:
    return _WORD.findall(text.lower())


def text_score(query: str, text: str) -> float:
    """Relevance of ``text`` for ``query``.

    Each distinct query term found adds ``0.5 + 0.5 * tf``, where ``tf`` is
    the term's share of the document's tokens. 0 means no term matched.
    """
    query_terms = set(_terms(query))
    tokens = _terms(text)
    if not query_terms or not tokens:
        return 0.0

    score = 0.0
    for term in query_terms:
        frequency = tokens.count(term)
        if frequency:
            score += 0.5 + 0.5 * frequency / len(tokens)
    return score


class InMemoryMessageStore(MessageStore):
    """Dictionary-backed message store."""

    def __init__(self, messages: Collection[Message] = ()) -> None:
        self._messages: dict[str, Message] = {message.id: message for message in messages}

    def add(self, message: Message) -> None:
        """Insert an existing message as is, keeping its id and timestamp."""
        self._messages[message.id] = message

    def _newest_first(self, messages: list[Message]) -> list[Message]:
        return sorted(messages, key=lambda m: (m.created_at, m.id), reverse=True)

    async def create_message(self, new_message: NewMessage) -> Message:
        message = Message(
            id=uuid4().hex,
            sender_id=new_message.sender_id,
            receiver_id=new_message.receiver_id,
            text=new_message.text.strip(),
        )
        self._messages[message.id] = message
        return message

    async def get_message(self, message_id: str) -> Message | None:
        message = self._messages.get(message_id)
        return message.model_copy(deep=True) if message else None

    async def list_messages(self, user_id: str, limit: int = 100) -> list[Message]:
        owned = [m for m in self._messages.values() if m.involves(user_id)]
        return self._newest_first(owned)[:limit]

    async def get_conversation(
        self,
        user_id: str,
        other_user_id: str,
        limit: int = 100,
    ) -> list[Message]:
        pair = {user_id, other_user_id}
        between = [
            m for m in self._messages.values() if {m.sender_id, m.receiver_id} == pair
        ]
        return self._newest_first(between)[:limit]

    async def delete_message(self, message_id: str) -> bool:
        return self._messages.pop(message_id, None) is not None

    async def existing_ids(self, message_ids: Collection[str]) -> set[str]:
        return {message_id for message_id in message_ids if message_id in self._messages}

    async def text_search(
        self,
        user_id: str,
        query: str,
        limit: int = 20,
    ) -> list[LexicalHit]:
        hits = []
        for message in self._messages.values():
            if not message.involves(user_id):
                continue
            score = text_score(query, message.text)
            if score > 0:
                hits.append(LexicalHit(message=message, score=score))

        hits.sort(key=lambda h: (h.score, h.message.created_at), reverse=True)
        return hits[:limit]

    async def recent_with_embeddings(
        self,
        user_id: str,
        limit: int = 100,
    ) -> list[Message]:
        embedded = [
            m for m in self._messages.values() if m.involves(user_id) and m.has_embedding
        ]
        return self._newest_first(embedded)[:limit]

    async def find_missing_embeddings(
        self,
        user_id: str | None = None,
        limit: int = 100,
        exclude_ids: Collection[str] = (),
    ) -> list[Message]:
        excluded = set(exclude_ids)
        missing = [
            m
            for m in self._messages.values()
            if not m.has_embedding
            and m.id not in excluded
            and (user_id is None or m.involves(user_id))
        ]
        return sorted(missing, key=lambda m: (m.created_at, m.id))[:limit]

    async def set_embedding(self, message_id: str, embedding: list[float]) -> bool:
        message = self._messages.get(message_id)
        if message is None:
            return False
        message.embedding = list(embedding)
        return True

    async def count_messages(
        self,
        user_id: str | None = None,
        with_embeddings: bool = False,
    ) -> int:
        return sum(
            1
            for m in self._messages.values()
            if (user_id is None or m.involves(user_id))
            and (not with_embeddings or m.has_embedding)
        )
