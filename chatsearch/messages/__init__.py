"""Message persistence and lexical search."""

from chatsearch.messages.memory import InMemoryMessageStore
from chatsearch.messages.models import LexicalHit, Message, NewMessage
from chatsearch.messages.mongo import MongoMessageStore
from chatsearch.messages.store import MessageStore

__all__ = [
    "InMemoryMessageStore",
    "LexicalHit",
    "Message",
    "MessageStore",
    "MongoMessageStore",
    "NewMessage",
]
