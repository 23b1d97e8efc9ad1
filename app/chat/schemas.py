from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from app.models.common import DocumentModel


"""
Stored documents
"""


class Message(DocumentModel):
    sender_id: str
    receiver_id: str
    content: str
    timestamp: datetime
    is_read: bool = False


class Conversation(DocumentModel):
    participants: List[str]
    participant_names: Dict[str, str] = {}
    last_message: Optional[Message] = None
    created_at: Optional[datetime] = None
    # Loaded from the messages sub-collection, never stored on the document.
    messages: List[Message] = Field(default=[], exclude=True)

    @field_validator("participants")
    @classmethod
    def validate_participants(cls, participants: List[str]) -> List[str]:
        if len(participants) != 2 or participants[0] == participants[1]:
            raise ValueError("A conversation has exactly two different participants.")
        return participants

    def other_participant(self, user_id: str) -> str:
        return self.participants[1] if self.participants[0] == user_id else self.participants[0]

    def name_of(self, user_id: str) -> str:
        return self.participant_names.get(user_id, "")

    def unread_count(self, user_id: str) -> int:
        return sum(1 for m in self.messages if m.receiver_id == user_id and not m.is_read)


"""
chat/conversations/direct
"""


class CreateDirectConversationModel(BaseModel):
    receiver_id: str
    content: str = "Hi!"


class CreateDirectConversationResponseModel(BaseModel):
    conversation: Conversation
    messages: List[Message]
    is_new: bool


"""
chat/conversations
"""


class GetConversationsResponseModel(BaseModel):
    conversations: List[Conversation]


class ConversationDetailResponseModel(BaseModel):
    conversation: Conversation
    messages: List[Message]
    other_participant_name: str


"""
chat/conversations/{id}/messages
"""


class SendMessageModel(BaseModel):
    content: str = Field(min_length=1)


class SendMessageResponseModel(BaseModel):
    message: Message


class MarkReadModel(BaseModel):
    message_ids: Optional[List[str]] = None


class MarkReadResponseModel(BaseModel):
    marked: List[str]
