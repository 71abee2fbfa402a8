"""
Chat store: the durable-storage collaborator of the realtime coordinator.

Reads user display data, maintains the ``users.status`` presence field and
persists channel, direct and group messages. Inserted messages are returned
hydrated with the sender's ``username`` and ``avatar`` so they can be fanned
out as-is.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional
import uuid

from pymongo.errors import PyMongoError

from owndc_realtime.database import (
    CHANNEL_MESSAGES_COLLECTION,
    DIRECT_MESSAGES_COLLECTION,
    GROUP_MESSAGES_COLLECTION,
    USERS_COLLECTION,
    DatabaseManager,
    db_manager,
)
from owndc_realtime.managers.logging_manager import get_logger
from owndc_realtime.realtime.errors import MessagePersistenceError
from owndc_realtime.realtime.schemas import UserSummary
from owndc_realtime.utils.logging_utils import log_performance

logger = get_logger(prefix="[ChatStore]")

STATUS_ONLINE = "online"
STATUS_OFFLINE = "offline"

_USER_PROJECTION = {"_id": 0, "id": 1, "username": 1, "avatar": 1, "status": 1, "is_active": 1}


def _summary_from_doc(doc: Dict[str, Any]) -> UserSummary:
    return UserSummary(id=str(doc["id"]), username=doc.get("username") or "", avatar=doc.get("avatar") or "")


class ChatStore:
    """Storage operations used by the realtime core."""

    def __init__(self, db: DatabaseManager = db_manager):
        self.db = db

    async def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self.db.get_collection(USERS_COLLECTION).find_one({"id": user_id}, _USER_PROJECTION)

    async def get_user_summary(self, user_id: str) -> Optional[UserSummary]:
        """Display data for one user, or None if the user does not exist."""
        doc = await self.get_user(user_id)
        if doc is None:
            return None
        return _summary_from_doc(doc)

    async def get_user_summaries(self, user_ids: Iterable[str]) -> Dict[str, UserSummary]:
        """Display data for several users in one query. Unknown ids are absent from the result."""
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}
        cursor = self.db.get_collection(USERS_COLLECTION).find({"id": {"$in": ids}}, _USER_PROJECTION)
        docs = await cursor.to_list(length=len(ids))
        return {str(doc["id"]): _summary_from_doc(doc) for doc in docs}

    async def set_user_status(self, user_id: str, status: str) -> None:
        """Update the durable presence field. Eventually consistent with presence broadcasts."""
        await self.db.get_collection(USERS_COLLECTION).update_one({"id": user_id}, {"$set": {"status": status}})
        logger.debug(f"Status of {user_id} set to {status}", extra={"user_id": user_id, "status": status})

    @log_performance("insert_channel_message")
    async def insert_channel_message(self, channel_id: str, sender_id: str, content: str) -> Dict[str, Any]:
        document = {"channel_id": channel_id, "sender_id": sender_id, "content": content}
        return await self._insert_message(CHANNEL_MESSAGES_COLLECTION, "channel", document)

    @log_performance("insert_direct_message")
    async def insert_direct_message(self, sender_id: str, receiver_id: str, content: str) -> Dict[str, Any]:
        document = {"sender_id": sender_id, "receiver_id": receiver_id, "content": content}
        return await self._insert_message(DIRECT_MESSAGES_COLLECTION, "direct", document)

    @log_performance("insert_group_message")
    async def insert_group_message(self, group_id: str, sender_id: str, content: str) -> Dict[str, Any]:
        document = {"group_id": group_id, "sender_id": sender_id, "content": content}
        return await self._insert_message(GROUP_MESSAGES_COLLECTION, "group", document)

    async def _insert_message(self, collection_name: str, kind: str, document: Dict[str, Any]) -> Dict[str, Any]:
        message = {
            "id": str(uuid.uuid4()),
            **document,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            # insert_one adds "_id" to the dict it is given
            await self.db.get_collection(collection_name).insert_one(dict(message))
            sender = await self.get_user_summary(message["sender_id"])
        except (PyMongoError, RuntimeError) as e:
            logger.error(
                f"Failed to persist {kind} message: {e}",
                extra={"collection": collection_name, "sender_id": document.get("sender_id")},
                exc_info=True,
            )
            raise MessagePersistenceError(kind, str(e)) from e

        message["username"] = sender.username if sender else None
        message["avatar"] = sender.avatar if sender else None
        return message
