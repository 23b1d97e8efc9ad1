import uuid
import asyncio
import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from app.core.errors import (
    CannotMessageSelf,
    MalformedData,
    NotFound,
    PermissionDenied,
    ValidationFailed,
)
from app.core.saga import Saga
from app.core.store import DocumentStore, Query, Subscription, subcollection
from app.profiles.repository import ProfileRepository

from .schemas import Conversation, Message

logger = logging.getLogger(__name__)

CONVERSATIONS = "conversations"


def messages_path(conversation_id: str) -> str:
    return subcollection(CONVERSATIONS, conversation_id, "messages")


def direct_conversation_id(user_a: str, user_b: str) -> str:
    # Canonical ordering so both users derive the same id
    u1, u2 = sorted([user_a, user_b])
    return f"{u1}_{u2}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_messages(documents: Iterable[dict], collection: str = "messages") -> List[Message]:
    messages = []
    for document in documents:
        try:
            messages.append(Message.from_document(collection, document))
        except MalformedData as e:
            logger.warning(f"message_skipped_malformed message_id={e.doc_id} reason={e.reason}")
    return sorted(messages, key=lambda m: m.timestamp)


def parse_conversations(documents: Iterable[dict]) -> List[Conversation]:
    conversations = []
    for document in documents:
        try:
            conversations.append(Conversation.from_document(CONVERSATIONS, document))
        except MalformedData as e:
            logger.warning(f"conversation_skipped_malformed conversation_id={e.doc_id} reason={e.reason}")

    epoch = datetime.min.replace(tzinfo=timezone.utc)
    return sorted(
        conversations,
        key=lambda c: c.last_message.timestamp if c.last_message else (c.created_at or epoch),
        reverse=True,
    )


class ConversationCoordinator:
    """
    Pairwise conversations stored at ``conversations/{id}`` with their
    messages in ``conversations/{id}/messages``.
    """

    def __init__(self, store: DocumentStore, profiles: ProfileRepository):
        self.store = store
        self.profiles = profiles

    async def find_conversation(self, user_a: str, user_b: str) -> Optional[Conversation]:
        """Return the conversation between two users without its messages, if any."""
        documents = await self.store.query_array_contains(CONVERSATIONS, "participants", user_a)

        for document in documents:
            if user_b in (document.get("participants") or []):
                return Conversation.from_document(CONVERSATIONS, document)
        return None

    async def find_or_create_conversation(
        self, user_a: str, user_b: str, initial_content: str
    ) -> Tuple[Conversation, bool]:
        """
        Load the conversation between ``user_a`` and ``user_b`` with all its
        messages, or start one seeded with ``initial_content`` sent by
        ``user_a``. Returns the conversation and whether it was created.

        New conversations use the sorted pair of ids as their id, so two users
        starting a chat at the same time end up writing the same document.
        """
        if user_a == user_b:
            raise CannotMessageSelf()
        if not initial_content.strip():
            raise ValidationFailed("Message can't be empty.")

        existing = await self.find_conversation(user_a, user_b)
        if existing is not None:
            existing.messages = await self.get_messages(existing.id)
            return existing, False

        names = await self.profiles.display_names([user_a, user_b])
        conversation_id = direct_conversation_id(user_a, user_b)
        now = utcnow()

        message = Message(
            id=str(uuid.uuid4()),
            sender_id=user_a,
            receiver_id=user_b,
            content=initial_content.strip(),
            timestamp=now,
            is_read=False,
        )
        conversation = Conversation(
            id=conversation_id,
            participants=[user_a, user_b],
            participant_names={uid: name for uid, name in names.items() if name},
            last_message=message,
            created_at=now,
        )

        async def write_conversation():
            await self.store.set_document(CONVERSATIONS, conversation_id, conversation.to_document())

        async def write_first_message():
            await self.store.set_document(messages_path(conversation_id), message.id, message.to_document())

        await (
            Saga("create_conversation")
            .step("write_conversation", write_conversation)
            .step("write_first_message", write_first_message)
            .run()
        )

        logger.info(f"conversation_created conversation_id={conversation_id}")
        conversation.messages = [message]
        return conversation, True

    async def get_conversation(
        self, conversation_id: str, for_user_id: str, with_messages: bool = True
    ) -> Conversation:
        document = await self.store.get_document(CONVERSATIONS, conversation_id)
        if document is None:
            raise NotFound(CONVERSATIONS, conversation_id)

        conversation = Conversation.from_document(CONVERSATIONS, document)
        if for_user_id not in conversation.participants:
            raise PermissionDenied("You are not a member of this conversation.")

        if with_messages:
            conversation.messages = await self.get_messages(conversation_id)
        return conversation

    async def get_messages(self, conversation_id: str) -> List[Message]:
        path = messages_path(conversation_id)
        documents = await self.store.query(Query(path, order_by="timestamp"))
        return parse_messages(documents, path)

    async def list_conversations(self, user_id: str) -> List[Conversation]:
        documents = await self.store.query_array_contains(CONVERSATIONS, "participants", user_id)
        return parse_conversations(documents)

    async def send_message(
        self, conversation_id: str, sender_id: str, receiver_id: str, content: str
    ) -> Message:
        """
        Append a message, then copy it to the conversation's ``last_message``.

        If the second write fails the message is still stored; the
        PartialFailure says so and ``last_message`` stays stale.
        """
        if not content.strip():
            raise ValidationFailed("Message can't be empty.")
        if sender_id == receiver_id:
            raise CannotMessageSelf()

        document = await self.store.get_document(CONVERSATIONS, conversation_id)
        if document is None:
            raise NotFound(CONVERSATIONS, conversation_id)

        conversation = Conversation.from_document(CONVERSATIONS, document)
        if sender_id not in conversation.participants:
            raise PermissionDenied("You are not a participant in this conversation.")
        if receiver_id != conversation.other_participant(sender_id):
            raise ValidationFailed("The receiver is not part of this conversation.")

        message = Message(
            id=str(uuid.uuid4()),
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content.strip(),
            timestamp=utcnow(),
            is_read=False,
        )

        async def append_message():
            await self.store.set_document(messages_path(conversation_id), message.id, message.to_document())

        async def update_last_message():
            await self.store.update_document(
                CONVERSATIONS, conversation_id, {"last_message": message.to_document()}
            )

        await (
            Saga("send_message")
            .step("append_message", append_message)
            .step("update_last_message", update_last_message)
            .run()
        )

        logger.info(f"message_sent conversation_id={conversation_id} message_id={message.id}")
        return message

    async def deliver(self, sender_id: str, receiver_id: str, content: str) -> Message:
        """Send ``content`` in the pair's conversation, starting it if needed."""
        conversation, created = await self.find_or_create_conversation(sender_id, receiver_id, content)
        if created:
            return conversation.last_message
        return await self.send_message(conversation.id, sender_id, receiver_id, content)

    async def mark_read(
        self,
        conversation_id: str,
        for_user_id: str,
        message_ids: Optional[Iterable[str]] = None,
    ) -> List[str]:
        """
        Flag messages received by ``for_user_id`` as read; all unread ones when
        ``message_ids`` is None. Each message is its own write and a failed
        write does not stop the others. Returns the ids that were written.
        """
        wanted = set(message_ids) if message_ids is not None else None
        path = messages_path(conversation_id)

        targets = [
            m.id
            for m in await self.get_messages(conversation_id)
            if m.receiver_id == for_user_id
            and not m.is_read
            and (wanted is None or m.id in wanted)
        ]

        results = await asyncio.gather(
            *(self.store.update_document(path, mid, {"is_read": True}) for mid in targets),
            return_exceptions=True,
        )

        marked = []
        for mid, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning(f"mark_read_failed conversation_id={conversation_id} message_id={mid} error={result}")
            else:
                marked.append(mid)
        return marked

    def listen_for_messages(self, conversation_id: str) -> Subscription:
        """
        Live message list of a conversation, oldest first. Each item is the
        full list, not a diff.

            async with coordinator.listen_for_messages(cid) as snapshots:
                async for messages in snapshots:
                    ...
        """
        path = messages_path(conversation_id)
        return self.store.listen(
            Query(path, order_by="timestamp"),
            transform=lambda documents: parse_messages(documents, path),
        )

    def listen_for_conversations(self, user_id: str) -> Subscription:
        """Live inbox of a user, most recent activity first."""
        return self.store.listen(
            Query(CONVERSATIONS, array_contains=("participants", user_id)),
            transform=parse_conversations,
        )
