"""Binding between rooms and the chat conversations that back them."""

from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.models import Conversation, ConversationParticipant, Message, RoomConversation
from app.models.base import utcnow

logger = logging.getLogger(__name__)


class ConversationBinder:
    """Keeps the participant set of a room conversation in step with its members.

    All methods only stage changes on the session; committing is left to the
    caller so that membership and participation change together.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def create_conversation(self, room_id: int) -> int:
        conversation = Conversation(created_at=utcnow())
        self.db.add(conversation)
        self.db.flush()
        self.db.add(RoomConversation(room_id=room_id, conversation_id=conversation.id))
        self.db.flush()
        return conversation.id

    def conversation_for_room(self, room_id: int) -> int | None:
        stmt = select(RoomConversation.conversation_id).where(RoomConversation.room_id == room_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def add_participant(self, conversation_id: int, user_id: int) -> None:
        if self.db.get(ConversationParticipant, (conversation_id, user_id)) is not None:
            return
        self.db.add(
            ConversationParticipant(
                conversation_id=conversation_id,
                user_id=user_id,
                joined_at=utcnow(),
            )
        )

    def remove_participant(self, conversation_id: int, user_id: int) -> None:
        self.db.execute(
            delete(ConversationParticipant).where(
                ConversationParticipant.conversation_id == conversation_id,
                ConversationParticipant.user_id == user_id,
            )
        )

    def join_room(self, room_id: int, user_id: int) -> None:
        conversation_id = self.conversation_for_room(room_id)
        if conversation_id is None:
            logger.warning("Room %s has no bound conversation", room_id)
            return
        self.add_participant(conversation_id, user_id)

    def leave_room(self, room_id: int, user_id: int) -> None:
        conversation_id = self.conversation_for_room(room_id)
        if conversation_id is None:
            return
        self.remove_participant(conversation_id, user_id)

    def delete_conversation(self, room_id: int) -> None:
        """Remove participants, messages, the binding and the conversation itself."""

        conversation_id = self.conversation_for_room(room_id)
        if conversation_id is None:
            return
        self.db.execute(
            delete(ConversationParticipant).where(
                ConversationParticipant.conversation_id == conversation_id
            )
        )
        self.db.execute(delete(Message).where(Message.conversation_id == conversation_id))
        self.db.execute(delete(RoomConversation).where(RoomConversation.room_id == room_id))
        self.db.execute(delete(Conversation).where(Conversation.id == conversation_id))
