"""Per-transaction chat: sending, thread reads with delivery tracking, conversation listing"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from finance_notes.domain.exceptions import NotFoundError, ValidationError
from finance_notes.domain.models import AccountContext, ConversationSummary, DeliveryState
from finance_notes.domain.validation import (
    mask_identity,
    normalize_identity,
    parse_uuid,
    require_identity,
    validate_message_body,
)
from finance_notes.infrastructure.clients.push import INVALID_TOKEN, PushClient
from finance_notes.infrastructure.database.models import ChatMessage, Transaction
from finance_notes.infrastructure.database.repositories import (
    AccountRepository,
    ChatRepository,
    TransactionRepository,
)
from finance_notes.infrastructure.observability.metrics import chat_message_counter, notification_failure_counter
from finance_notes.utils.date_utils import utcnow

NOTIFICATION_PREVIEW_CHARS = 100


class ChatThread:
    """Chat scoped to one transaction, between its owner and whoever writes to them"""

    def __init__(self, db: Session, push_client: Optional[PushClient] = None):
        self.messages = ChatRepository(db)
        self.transactions = TransactionRepository(db)
        self.accounts = AccountRepository(db)
        self.push_client = push_client

    async def send_message(self, caller: AccountContext, transaction_id: Any, body: str) -> ChatMessage:
        """
        Append a message to a transaction's thread.

        The owner writes to the customer; anyone else writes to the owner, which
        lets a caller who found a transaction by identity ask its owner about it.

        Raises:
            ValidationError: Blank body, caller without identity, or a transaction missing either side
            NotFoundError: Transaction does not exist
        """
        text = validate_message_body(body)
        sender = require_identity(caller)
        transaction = self._resolve(transaction_id)

        owner = normalize_identity(transaction.owner_identity_number)
        customer = normalize_identity(transaction.customer_identity_number)
        if not owner:
            raise ValidationError("Transaction is missing owner identity information")
        if not customer:
            raise ValidationError("Transaction is missing customer identity information")

        receiver = customer if sender == owner else owner
        message = self.messages.add_message(transaction.id, sender, receiver, text)
        chat_message_counter.inc()

        await self._notify_receiver(caller, message)
        return message

    def list_conversations(self, caller: AccountContext) -> List[ConversationSummary]:
        """Latest message and unread count per transaction the caller has chatted on"""
        identity = normalize_identity(caller.identity_number)
        if not identity:
            return []

        # Already ordered by latest message, newest first
        heads = self.messages.conversation_heads(identity)
        transactions = self.transactions.get_many(message.transaction_id for message, _ in heads)
        names = self.accounts.names_by_identity(
            identity_number
            for transaction in transactions.values()
            for identity_number in (transaction.owner_identity_number, transaction.customer_identity_number)
        )

        conversations = []
        for message, unread_count in heads:
            transaction = transactions.get(message.transaction_id)
            if transaction is None:
                continue
            conversations.append(
                ConversationSummary(
                    transaction_id=str(message.transaction_id),
                    last_message=message.body,
                    last_sender_identity_number=message.sender_identity_number,
                    last_receiver_identity_number=message.receiver_identity_number,
                    last_created_at=message.created_at,
                    unread_count=unread_count,
                    transaction=_transaction_summary(transaction, names),
                )
            )
        return conversations

    def get_thread(self, caller: AccountContext, transaction_id: Any) -> List[ChatMessage]:
        """
        All messages of a transaction in creation order.

        Messages addressed to the caller move forward to read; a message that
        skipped delivered also gets its delivered timestamp. States never move back.
        """
        transaction = self._resolve(transaction_id)
        messages = self.messages.thread(transaction.id)

        identity = normalize_identity(caller.identity_number)
        if identity:
            now = utcnow()
            advanced = 0
            for message in messages:
                if message.receiver_identity_number != identity:
                    continue
                if message.delivery_state == DeliveryState.READ.value:
                    continue
                if message.delivered_at is None:
                    message.delivered_at = now
                message.read_at = now
                message.delivery_state = DeliveryState.READ.value
                advanced += 1
            if advanced:
                self.messages.db.flush()
                logging.debug(
                    "Marked %d messages read",
                    advanced,
                    extra={"transaction_id": str(transaction.id), "reader": mask_identity(identity)},
                )
        return messages

    def unread_count(self, caller: AccountContext) -> int:
        identity = normalize_identity(caller.identity_number)
        if not identity:
            return 0
        return self.messages.count_unread(identity)

    def _resolve(self, transaction_id: Any) -> Transaction:
        transaction = self.transactions.get_by_id(parse_uuid(transaction_id))
        if transaction is None:
            raise NotFoundError("Transaction not found")
        return transaction

    async def _notify_receiver(self, caller: AccountContext, message: ChatMessage) -> None:
        """Push the new message to the receiver; never fails the send"""
        if self.push_client is None:
            return
        try:
            receiver = self.accounts.lookup_by_identity_number(message.receiver_identity_number)
            token = (receiver.push_token or "").strip() if receiver else ""
            if not token:
                return

            preview = message.body[:NOTIFICATION_PREVIEW_CHARS]
            if len(message.body) > NOTIFICATION_PREVIEW_CHARS:
                preview += "..."
            result = await self.push_client.send(
                token,
                "New Message",
                f"{caller.name or 'Someone'}: {preview}",
                {
                    "type": "chat_message",
                    "transactionId": str(message.transaction_id),
                    "senderIdentityNumber": message.sender_identity_number,
                },
            )
            if result.success:
                return

            notification_failure_counter.labels(error=result.error or "UNKNOWN").inc()
            if result.error == INVALID_TOKEN:
                logging.info("Clearing invalid push token", extra={"account_id": str(receiver.id)})
                self.accounts.clear_push_token(receiver)
            else:
                logging.warning("Push notification failed: %s", result.error)
        except Exception as e:
            notification_failure_counter.labels(error="EXCEPTION").inc()
            logging.error(f"Error sending push notification: {e}")


def _transaction_summary(transaction: Transaction, names: Dict[str, str]) -> Dict[str, Any]:
    owner_name = names.get(transaction.owner_identity_number, "")
    customer_account_name = names.get(transaction.customer_identity_number, "")
    return {
        "amount": transaction.amount,
        "status": transaction.status,
        "owner_identity_number": transaction.owner_identity_number,
        "customer_identity_number": transaction.customer_identity_number,
        "customer_name": transaction.customer_name or customer_account_name,
        "owner_name": owner_name,
        "customer_account_name": customer_account_name,
        "created_at": transaction.created_at,
    }
