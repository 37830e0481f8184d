"""
Notification sink.

Notifications are informational: a failed write is logged and never fails
the bargain or order operation that produced it.
"""
import logging
from typing import List, Optional

from pymongo.database import Database
from pymongo.errors import PyMongoError

from auth import Caller
from database import NOTIFICATIONS, create_document, to_object_id
from errors import AuthorizationError, NotFoundError
from schemas import NotificationType
from settings import get_settings

logger = logging.getLogger(__name__)


def notify(
    db: Database,
    user_id,
    message: str,
    type: NotificationType = NotificationType.SYSTEM,
    link: str = "",
) -> Optional[str]:
    doc = {
        "userId": to_object_id(user_id, "user"),
        "message": message,
        "type": NotificationType(type).value,
        "read": False,
        "link": link,
    }
    try:
        return create_document(NOTIFICATIONS, doc, database=db)
    except PyMongoError as e:
        logger.warning(f"Could not store notification for user {user_id}: {e}")
        return None


def list_notifications(db: Database, caller: Caller) -> List[dict]:
    limit = get_settings().NOTIFICATION_LIMIT
    cursor = db[NOTIFICATIONS].find({"userId": caller.object_id}).sort("createdAt", -1).limit(limit)
    return list(cursor)


def mark_all_read(db: Database, caller: Caller) -> int:
    result = db[NOTIFICATIONS].update_many({"userId": caller.object_id, "read": False}, {"$set": {"read": True}})
    return result.modified_count


def mark_read(db: Database, notification_id, caller: Caller) -> dict:
    notification = db[NOTIFICATIONS].find_one({"_id": to_object_id(notification_id, "notification")})
    if not notification:
        raise NotFoundError("Notification not found")
    if notification["userId"] != caller.object_id:
        raise AuthorizationError("Not authorized to access this notification")
    db[NOTIFICATIONS].update_one({"_id": notification["_id"]}, {"$set": {"read": True}})
    notification["read"] = True
    return notification
