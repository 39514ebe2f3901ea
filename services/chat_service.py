"""
Chat Service

Append-only direct messages between a user and their contacts.
"""

from typing import Optional, List, Tuple
import logging
from models import ChatMessage
from timezone_utils import get_local_time_naive
from utils.role_filters import chat_contacts
from .transaction_helper import TransactionHelper
from .record_store import RecordStore

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000


class ChatService:
    """Service class for in-app chat"""

    def __init__(self, store: Optional[RecordStore] = None):
        self.store = store or RecordStore()

    def contacts_for(self, user) -> list:
        return chat_contacts(self.store.list_users(), user)

    def can_message(self, sender, receiver_id: int) -> bool:
        return any(contact.id == receiver_id for contact in self.contacts_for(sender))

    def post_message(self, sender_id: int, receiver_id: int, text: str) -> ChatMessage:
        """Append a message without contact checks; used for system notifications"""
        message = ChatMessage(
            sender_id=sender_id,
            receiver_id=receiver_id,
            text=text,
            timestamp=get_local_time_naive(),
        )
        return self.store.add_message(message)

    @TransactionHelper.with_transaction
    def add_message(self, sender, receiver_id: int, text: str) -> Tuple[bool, Optional[str], Optional[ChatMessage]]:
        text = (text or '').strip()
        if not text:
            return False, "Message text is required", None
        if len(text) > MAX_MESSAGE_LENGTH:
            return False, f"Message must be at most {MAX_MESSAGE_LENGTH} characters", None
        if not self.can_message(sender, receiver_id):
            return False, "Recipient is not one of your contacts", None

        message = self.post_message(sender.id, receiver_id, text)
        logger.debug(f"Message {message.id} from {sender.id} to {receiver_id}")
        return True, None, message

    def get_conversation(self, user_a: int, user_b: int) -> List[ChatMessage]:
        """Messages exchanged between two users, oldest first"""
        messages = self.store.list_messages_between(user_a, user_b)
        return sorted(messages, key=lambda message: (message.timestamp, message.id))
