"""
Chat log: the append-only conversation attached to every trade.

Participants post ``text`` messages. The trade and review write paths append
``trade_update`` / ``meeting_pin`` entries inside their own transaction so the
chat is a complete audit trail of the negotiation.
"""

import logging

from django.db import transaction
from django.db.models import Max
from django.db.models.functions import Coalesce

from .exceptions import AuthorizationError, NotFoundError, ValidationError
from .models import Chat, Message, MessageType, touch_updated_at

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000

SYSTEM_MESSAGE_TYPES = (MessageType.TRADE_UPDATE, MessageType.MEETING_PIN)


def derive_last_message(chat):
    """
    Point ``chat.last_message`` at the final message of the chat.

    Does not save; the caller persists the chat.

    Returns:
        Message or None
    """
    chat.last_message = chat.messages.order_by('-timestamp', '-id').first()
    return chat.last_message


def _append(chat, sender, content, message_type):
    """Write one message and refresh the chat's derived fields."""
    message = Message.objects.create(
        chat=chat,
        sender=sender,
        content=content,
        message_type=message_type,
    )

    derive_last_message(chat)
    touch_updated_at(chat, now=message.timestamp)
    chat.save(update_fields=['last_message', 'updated_at'])

    return message


def append_system_message(chat, sender, content, message_type=MessageType.TRADE_UPDATE):
    """
    Record a negotiation event in the chat.

    Only the trade and review operations call this, from inside their own
    ``transaction.atomic()`` block, so a failure here rolls back the state
    change that triggered it.

    Args:
        chat: Chat instance of the trade
        sender: User who triggered the event
        content: Human readable description of the event
        message_type: ``trade_update`` or ``meeting_pin``

    Returns:
        Message: The appended message
    """
    if message_type not in SYSTEM_MESSAGE_TYPES:
        raise ValueError(f'Invalid system message type: {message_type}')

    return _append(chat, sender, content, message_type)


def _load_chat(chat_id, user, lock=False):
    queryset = Chat.objects.select_related('trade')
    if lock:
        queryset = queryset.select_for_update()

    try:
        chat = queryset.get(pk=chat_id)
    except Chat.DoesNotExist:
        raise NotFoundError('Chat not found.')

    if not chat.is_participant(user):
        raise AuthorizationError('You are not a participant in this chat.')

    return chat


def append_user_message(chat_id, sender, content):
    """
    Post a text message from a chat participant.

    Args:
        chat_id: Chat primary key
        sender: Posting user
        content: Message text (trimmed, 1-2000 characters)

    Returns:
        Message: The appended message

    Raises:
        NotFoundError: Chat does not exist
        AuthorizationError: Sender is not a participant
        ValidationError: Content is empty or too long
    """
    with transaction.atomic():
        chat = _load_chat(chat_id, sender, lock=True)

        content = (content or '').strip()
        if not content:
            raise ValidationError('Message cannot be empty.')
        if len(content) > MAX_MESSAGE_LENGTH:
            raise ValidationError(
                f'Message cannot exceed {MAX_MESSAGE_LENGTH} characters.'
            )

        message = _append(chat, sender, content, MessageType.TEXT)

    logger.info(
        f"Chat message posted. Chat ID: {chat.id}, Message ID: {message.id}, "
        f"Sender: {sender.id}"
    )

    return message


def get_chat(chat_id, requester):
    """Return a chat the requester participates in."""
    return _load_chat(chat_id, requester)


def fetch_messages(chat_id, requester):
    """
    Return the full ordered message list of a chat.

    Raises:
        NotFoundError: Chat does not exist
        AuthorizationError: Requester is not a participant
    """
    chat = _load_chat(chat_id, requester)
    return list(chat.messages.select_related('sender').order_by('timestamp', 'id'))


def list_chats(user):
    """
    Chats the user participates in, most recent activity first.

    Chats without messages sort by creation time.
    """
    return (
        Chat.objects.filter(participants=user)
        .select_related('trade', 'last_message', 'last_message__sender')
        .prefetch_related('participants')
        .annotate(last_activity=Coalesce(Max('messages__timestamp'), 'created_at'))
        .order_by('-last_activity', '-id')
    )
