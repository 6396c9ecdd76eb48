"""
Messagerie interne: conversations entre employés et messages

Une conversation porte la liste `member_employee_ids`; l'utilisateur
connecté est rattaché à sa fiche employé par `employees.user_id`.
Chaque message inséré dans `messages` est poussé aux abonnés de la
conversation par le flux de changements (voir realtime_bridge).
"""

import logging
import uuid
from typing import List, Optional

from config import now_iso
from models.messaging import CreateConversationRequest, ListMessagesQuery, SendMessageRequest
from services.errors import ForbiddenError, NotFoundError
from services.permissions import is_admin

logger = logging.getLogger("messaging")

LAST_MESSAGES_LIMIT = 100


async def _employee_of(db, user_id: str) -> Optional[dict]:
    return await db.employees.find_one({"user_id": user_id}, {"_id": 0})


async def _members(db, employee_ids: List[str]) -> List[dict]:
    if not employee_ids:
        return []
    return await db.employees.find(
        {"id": {"$in": employee_ids}},
        {"_id": 0, "id": 1, "first_name": 1, "last_name": 1, "user_id": 1},
    ).to_list(None)


async def _with_senders(db, messages: List[dict]) -> List[dict]:
    sender_ids = list({m["sender_id"] for m in messages})
    users = {}
    if sender_ids:
        for u in await db.users.find({"id": {"$in": sender_ids}}, {"_id": 0, "id": 1, "email": 1}).to_list(None):
            users[u["id"]] = u
    for message in messages:
        message["sender"] = users.get(message["sender_id"])
    return messages


async def list_conversations(db, user: dict) -> List[dict]:
    """Conversations de l'utilisateur, les plus récentes d'abord"""
    employee = await _employee_of(db, user["id"])
    if not employee:
        return []

    conversations = await db.conversations.find(
        {"member_employee_ids": employee["id"]}, {"_id": 0}
    ).sort("updated_at", -1).to_list(None)

    for conv in conversations:
        conv["members"] = await _members(db, conv.get("member_employee_ids", []))
        last = await db.messages.find({"conversation_id": conv["id"]}, {"_id": 0}) \
            .sort("created_at", -1).limit(1).to_list(1)
        conv["messages"] = await _with_senders(db, last)
        conv["message_count"] = await db.messages.count_documents({"conversation_id": conv["id"]})
    return conversations


async def _member_conversation(db, conversation_id: str, user: dict) -> dict:
    """Conversation dont l'utilisateur est membre (super_admin et gerant: toutes)"""
    conv = await db.conversations.find_one({"id": conversation_id}, {"_id": 0})
    if not conv:
        raise NotFoundError("Conversation introuvable")
    if is_admin(user):
        return conv

    employee = await _employee_of(db, user["id"])
    if not employee or employee["id"] not in conv.get("member_employee_ids", []):
        raise ForbiddenError("Vous n'êtes pas membre de cette conversation")
    return conv


async def get_conversation(db, conversation_id: str, user: dict) -> dict:
    conv = await _member_conversation(db, conversation_id, user)
    conv["members"] = await _members(db, conv.get("member_employee_ids", []))
    messages = await db.messages.find({"conversation_id": conversation_id}, {"_id": 0}) \
        .sort("created_at", 1).limit(LAST_MESSAGES_LIMIT).to_list(LAST_MESSAGES_LIMIT)
    conv["messages"] = await _with_senders(db, messages)
    return conv


async def create_conversation(db, data: CreateConversationRequest, user: dict) -> dict:
    creator = await _employee_of(db, user["id"])

    # Créateur inclus, sans doublon, dans l'ordre
    member_ids = []
    for employee_id in ([creator["id"]] if creator else []) + list(data.member_employee_ids):
        if employee_id not in member_ids:
            member_ids.append(employee_id)

    conv = {
        "id": str(uuid.uuid4()),
        "name": data.name,
        "is_group": data.is_group,
        "member_employee_ids": member_ids,
        "created_at": now_iso(),
        "updated_at": now_iso(),
    }
    await db.conversations.insert_one(dict(conv))
    logger.info(f"[MESSAGING] Conversation {conv['id']} créée ({len(member_ids)} membre(s))")

    conv["members"] = await _members(db, member_ids)
    return conv


async def send_message(db, conversation_id: str, data: SendMessageRequest, user: dict) -> dict:
    await _member_conversation(db, conversation_id, user)

    message = {
        "id": str(uuid.uuid4()),
        "conversation_id": conversation_id,
        "sender_id": user["id"],
        "content": data.content,
        "file_url": data.file_url,
        "is_read": False,
        "created_at": now_iso(),
    }
    await db.messages.insert_one(dict(message))
    await db.conversations.update_one({"id": conversation_id}, {"$set": {"updated_at": now_iso()}})

    message["sender"] = {"id": user["id"], "email": user.get("email")}
    return message


async def get_messages(db, conversation_id: str, user: dict, query: ListMessagesQuery) -> List[dict]:
    """Page de messages, du plus récent au plus ancien, avant `before` si fourni"""
    await _member_conversation(db, conversation_id, user)

    where = {"conversation_id": conversation_id}
    if query.before:
        where["created_at"] = {"$lt": query.before}

    messages = await db.messages.find(where, {"_id": 0}) \
        .sort("created_at", -1).limit(query.limit).to_list(query.limit)
    return await _with_senders(db, messages)


async def mark_read(db, conversation_id: str, user: dict) -> dict:
    await _member_conversation(db, conversation_id, user)
    result = await db.messages.update_many(
        {"conversation_id": conversation_id, "sender_id": {"$ne": user["id"]}, "is_read": False},
        {"$set": {"is_read": True}},
    )
    return {"count": result.modified_count}
