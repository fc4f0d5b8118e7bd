"""MongoDB-backed message store.

Documents keep the chat application's layout: ``senderId``, ``receiverId``,
``message``, ``embedding`` and ``createdAt``, with a text index on
``message`` for lexical search.
"""

from collections.abc import Collection
from datetime import UTC, datetime
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, TEXT, AsyncMongoClient
from pymongo.errors import PyMongoError

from chatsearch.config import MongoSettings
from chatsearch.exceptions import StoreUnavailableError
from chatsearch.logging_config import get_logger
from chatsearch.messages.models import LexicalHit, Message, NewMessage
from chatsearch.messages.store import MessageStore

logger = get_logger(__name__)

_HAS_EMBEDDING = {"embedding.0": {"$exists": True}}
_MISSING_EMBEDDING = {"embedding.0": {"$exists": False}}


def _participant(user_id: str) -> dict[str, Any]:
    return {"$or": [{"senderId": user_id}, {"receiverId": user_id}]}


def _to_object_id(message_id: str) -> ObjectId | None:
    try:
        return ObjectId(message_id)
    except (InvalidId, TypeError):
        return None


def _to_message(document: dict[str, Any]) -> Message:
    created_at = document.get("createdAt") or datetime.now(UTC)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=UTC)
    return Message(
        id=str(document["_id"]),
        sender_id=str(document["senderId"]),
        receiver_id=str(document["receiverId"]),
        text=document.get("message", ""),
        embedding=document.get("embedding") or None,
        created_at=created_at,
    )


class MongoMessageStore(MessageStore):
    """Message store on a MongoDB collection."""

    def __init__(
        self,
        uri: str,
        database: str = "chatapp",
        collection: str = "messages",
        timeout_ms: int = 5000,
        client: AsyncMongoClient | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            uri: MongoDB connection string.
            database: Database name.
            collection: Collection holding messages.
            timeout_ms: Server selection timeout.
            client: Optional client (for testing).
        """
        self._client = client or AsyncMongoClient(uri, serverSelectionTimeoutMS=timeout_ms, tz_aware=True)
        self._collection = self._client[database][collection]
        self._collection_name = collection

    @classmethod
    def from_settings(cls, settings: MongoSettings) -> "MongoMessageStore":
        """Create a store from MongoDB settings."""
        return cls(
            uri=settings.uri,
            database=settings.database,
            collection=settings.collection,
            timeout_ms=settings.timeout_ms,
        )

    def _unavailable(self, operation: str, error: Exception) -> StoreUnavailableError:
        logger.error(
            "Message store operation failed",
            extra={"operation": operation, "error": str(error)},
        )
        return StoreUnavailableError(
            f"Message store {operation} failed: {error}",
            details={"collection": self._collection_name, "operation": operation},
        )

    async def ensure_indexes(self) -> None:
        """Create the text and participant indexes."""
        try:
            await self._collection.create_index([("message", TEXT)])
            await self._collection.create_index([("senderId", ASCENDING), ("createdAt", DESCENDING)])
            await self._collection.create_index([("receiverId", ASCENDING), ("createdAt", DESCENDING)])
            await self._collection.create_index(
                [("senderId", ASCENDING), ("receiverId", ASCENDING), ("createdAt", DESCENDING)]
            )
        except PyMongoError as e:
            raise self._unavailable("ensure_indexes", e) from e

    async def _find(
        self,
        query: dict[str, Any],
        limit: int,
        sort: list[tuple[str, Any]] | None = None,
        projection: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        cursor = self._collection.find(query, projection)
        cursor = cursor.sort(sort or [("createdAt", DESCENDING)]).limit(limit)
        return await cursor.to_list(length=limit)

    async def create_message(self, new_message: NewMessage) -> Message:
        document = {
            "senderId": new_message.sender_id,
            "receiverId": new_message.receiver_id,
            "message": new_message.text.strip(),
            "embedding": None,
            "createdAt": datetime.now(UTC),
        }
        try:
            result = await self._collection.insert_one(document)
        except PyMongoError as e:
            raise self._unavailable("insert", e) from e

        document["_id"] = result.inserted_id
        return _to_message(document)

    async def get_message(self, message_id: str) -> Message | None:
        object_id = _to_object_id(message_id)
        if object_id is None:
            return None
        try:
            document = await self._collection.find_one({"_id": object_id})
        except PyMongoError as e:
            raise self._unavailable("find_one", e) from e
        return _to_message(document) if document else None

    async def list_messages(self, user_id: str, limit: int = 100) -> list[Message]:
        try:
            documents = await self._find(_participant(user_id), limit)
        except PyMongoError as e:
            raise self._unavailable("list", e) from e
        return [_to_message(d) for d in documents]

    async def get_conversation(
        self,
        user_id: str,
        other_user_id: str,
        limit: int = 100,
    ) -> list[Message]:
        query = {
            "$or": [
                {"senderId": user_id, "receiverId": other_user_id},
                {"senderId": other_user_id, "receiverId": user_id},
            ]
        }
        try:
            documents = await self._find(query, limit)
        except PyMongoError as e:
            raise self._unavailable("conversation", e) from e
        return [_to_message(d) for d in documents]

    async def delete_message(self, message_id: str) -> bool:
        object_id = _to_object_id(message_id)
        if object_id is None:
            return False
        try:
            result = await self._collection.delete_one({"_id": object_id})
        except PyMongoError as e:
            raise self._unavailable("delete", e) from e
        return result.deleted_count > 0

    async def existing_ids(self, message_ids: Collection[str]) -> set[str]:
        object_ids = [oid for oid in map(_to_object_id, message_ids) if oid is not None]
        if not object_ids:
            return set()
        try:
            documents = await self._find(
                {"_id": {"$in": object_ids}},
                len(object_ids),
                projection={"_id": 1},
            )
        except PyMongoError as e:
            raise self._unavailable("existing_ids", e) from e
        return {str(d["_id"]) for d in documents}

    async def text_search(
        self,
        user_id: str,
        query: str,
        limit: int = 20,
    ) -> list[LexicalHit]:
        text_query = {"$and": [{"$text": {"$search": query}}, _participant(user_id)]}
        score = {"$meta": "textScore"}
        try:
            documents = await self._find(
                text_query,
                limit,
                sort=[("score", score), ("createdAt", DESCENDING)],
                projection={"score": score},
            )
        except PyMongoError as e:
            raise self._unavailable("text_search", e) from e

        return [
            LexicalHit(message=_to_message(d), score=float(d.get("score", 0.0)))
            for d in documents
        ]

    async def recent_with_embeddings(
        self,
        user_id: str,
        limit: int = 100,
    ) -> list[Message]:
        query = {"$and": [_participant(user_id), _HAS_EMBEDDING]}
        try:
            documents = await self._find(query, limit)
        except PyMongoError as e:
            raise self._unavailable("recent_with_embeddings", e) from e
        return [_to_message(d) for d in documents]

    async def find_missing_embeddings(
        self,
        user_id: str | None = None,
        limit: int = 100,
        exclude_ids: Collection[str] = (),
    ) -> list[Message]:
        clauses: list[dict[str, Any]] = [_MISSING_EMBEDDING]
        if user_id is not None:
            clauses.append(_participant(user_id))
        excluded = [oid for oid in map(_to_object_id, exclude_ids) if oid is not None]
        if excluded:
            clauses.append({"_id": {"$nin": excluded}})

        try:
            documents = await self._find(
                {"$and": clauses},
                limit,
                sort=[("createdAt", ASCENDING), ("_id", ASCENDING)],
            )
        except PyMongoError as e:
            raise self._unavailable("find_missing_embeddings", e) from e
        return [_to_message(d) for d in documents]

    async def set_embedding(self, message_id: str, embedding: list[float]) -> bool:
        object_id = _to_object_id(message_id)
        if object_id is None:
            return False
        try:
            result = await self._collection.update_one(
                {"_id": object_id},
                {"$set": {"embedding": list(embedding)}},
            )
        except PyMongoError as e:
            raise self._unavailable("set_embedding", e) from e
        return result.matched_count > 0

    async def count_messages(
        self,
        user_id: str | None = None,
        with_embeddings: bool = False,
    ) -> int:
        clauses: list[dict[str, Any]] = []
        if user_id is not None:
            clauses.append(_participant(user_id))
        if with_embeddings:
            clauses.append(_HAS_EMBEDDING)
        query = {"$and": clauses} if clauses else {}
        try:
            return await self._collection.count_documents(query)
        except PyMongoError as e:
            raise self._unavailable("count", e) from e

    async def ping(self) -> bool:
        try:
            await self._client.admin.command("ping")
        except PyMongoError as e:
            logger.warning("Message store ping failed", extra={"error": str(e)})
            return False
        return True

    async def close(self) -> None:
        await self._client.close()
        logger.info("Message store connection closed")
