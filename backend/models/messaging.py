"""
ExeTeam - Messagerie (conversations et messages temps réel)
"""

from typing import List, Optional

from pydantic import Field, StringConstraints, field_validator
from typing_extensions import Annotated

from .common import ApiModel, UuidStr


class MessageSender(ApiModel):
    id: str
    email: Optional[str] = None


class RealtimeMessage(ApiModel):
    """Message tel que poussé aux abonnés d'une conversation"""
    id: str
    conversation_id: str
    sender_id: str
    content: str
    file_url: Optional[str] = None
    is_read: bool = False
    created_at: str
    sender: Optional[MessageSender] = None


class CreateConversationRequest(ApiModel):
    name: Optional[Annotated[str, StringConstraints(max_length=200)]] = None
    is_group: bool = False
    member_employee_ids: List[UuidStr] = Field(..., min_length=1)


class SendMessageRequest(ApiModel):
    content: Annotated[str, StringConstraints(min_length=1)]
    file_url: Optional[str] = None

    @field_validator("file_url")
    @classmethod
    def check_url(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError("URL invalide")
        return v


class ListMessagesQuery(ApiModel):
    before: Optional[str] = None
    limit: int = Field(50, ge=1, le=100)
