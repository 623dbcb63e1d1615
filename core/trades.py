"""
Trade state machine.

A trade moves pending -> accepted -> completed, or from pending/accepted to
cancelled. Each operation below runs in one transaction with the trade row
locked, checks that the acting user takes part in the trade before looking at
the status, and records exactly one chat message for every change it makes.

Concurrent offer updates on the same trade are last-write-wins; both still
reset the acceptance flags.
"""

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Q

from . import progression
from .chat import append_system_message
from .exceptions import AuthorizationError, NotFoundError, StateError, ValidationError
from .models import (
    Chat,
    ClothingItem,
    MessageType,
    Trade,
    TradeItem,
    TradeStatus,
    User,
    touch_updated_at,
)
from .validators import validate_coordinate_pair

logger = logging.getLogger(__name__)

MSG_OFFER_UPDATED = 'Trade offer updated'
MSG_ACCEPTED = 'Trade accepted'
MSG_MEETING_UPDATED = 'Meeting details updated'
MSG_CANCELLED = 'Trade cancelled'
MSG_COMPLETED = 'Trade completed successfully! Earned {xp} XP for trading {count} items.'


# ============================================================================
# Helpers
# ============================================================================

def _normalize_ids(item_ids, label):
    if item_ids is None:
        return []
    if isinstance(item_ids, (str, bytes)) or not hasattr(item_ids, '__iter__'):
        raise ValidationError(f'{label} must be a list of item ids.')
    return list(item_ids)


def _check_offer(item_ids, owner, items_by_id):
    """
    Ensure every id resolves to a listing owned by ``owner``.

    Raises:
        ValidationError: On the first missing or wrongly owned item
    """
    for item_id in item_ids:
        item = items_by_id.get(item_id)
        if item is None:
            raise ValidationError(f'Item {item_id} does not exist.')
        if item.owner_id != owner.id:
            raise ValidationError(
                f'Item {item_id} is not owned by user {owner.id}.'
            )


def _resolve_items(item_ids):
    return ClothingItem.objects.in_bulk(item_ids)


def _build_trade_items(trade, side, owner, item_ids):
    return [
        TradeItem(trade=trade, item_id=item_id, owner=owner, side=side, position=position)
        for position, item_id in enumerate(item_ids)
    ]


def _load_trade(trade_id, user, lock=False):
    """
    Fetch a trade the user takes part in.

    Raises:
        NotFoundError: Trade does not exist
        AuthorizationError: User is neither initiator nor receiver
    """
    queryset = Trade.objects.select_related('initiator', 'receiver')
    if lock:
        queryset = queryset.select_for_update()

    try:
        trade = queryset.get(pk=trade_id)
    except Trade.DoesNotExist:
        raise NotFoundError('Trade not found.')

    if not trade.is_participant(user):
        logger.warning(
            f"Trade access denied. Trade ID: {trade_id}, User: {getattr(user, 'id', None)}"
        )
        raise AuthorizationError('You are not a participant in this trade.')

    return trade


def _require_status(trade, allowed, action):
    if trade.status not in allowed:
        raise StateError(
            f'Cannot {action} a trade with status "{trade.status}".'
        )


def _transition(trade, new_status):
    if not trade.can_transition_to(new_status):
        raise StateError(
            f'Invalid trade status transition from {trade.status} to {new_status}.'
        )
    old_status = trade.status
    trade.status = new_status
    return old_status


def _save(trade):
    touch_updated_at(trade)
    try:
        trade.save()
    except DjangoValidationError as e:
        raise ValidationError(' '.join(e.messages))


def _record(trade, user, content, message_type=MessageType.TRADE_UPDATE):
    return append_system_message(trade.chat, user, content, message_type)


# ============================================================================
# Operations
# ============================================================================

def propose_trade(initiator, receiver_id, initiator_item_ids, receiver_item_ids):
    """
    Create a pending trade and its chat.

    Every listed item is checked against its owner of record before anything
    is written, so a single bad item aborts the whole proposal.

    Args:
        initiator: Proposing user
        receiver_id: Primary key of the user the trade is proposed to
        initiator_item_ids: Ids of items the initiator offers
        receiver_item_ids: Ids of items requested from the receiver

    Returns:
        Trade: The new trade in ``pending`` with both flags false

    Raises:
        ValidationError: Unknown receiver, self-trade, empty or duplicate
            offers, missing items or items not owned by the claimed party
    """
    initiator_item_ids = _normalize_ids(initiator_item_ids, 'initiator_item_ids')
    receiver_item_ids = _normalize_ids(receiver_item_ids, 'receiver_item_ids')

    receiver = User.objects.filter(pk=receiver_id).first()
    if receiver is None:
        raise ValidationError(f'User {receiver_id} does not exist.')

    if receiver.id == initiator.id:
        raise ValidationError('You cannot propose a trade to yourself.')

    all_ids = initiator_item_ids + receiver_item_ids
    if not all_ids:
        raise ValidationError('A trade must include at least one item.')
    if len(set(all_ids)) != len(all_ids):
        raise ValidationError('An item can only be listed once in a trade.')

    items_by_id = _resolve_items(all_ids)
    _check_offer(initiator_item_ids, initiator, items_by_id)
    _check_offer(receiver_item_ids, receiver, items_by_id)

    with transaction.atomic():
        trade = Trade.objects.create(initiator=initiator, receiver=receiver)

        TradeItem.objects.bulk_create(
            _build_trade_items(trade, TradeItem.SIDE_INITIATOR, initiator, initiator_item_ids)
            + _build_trade_items(trade, TradeItem.SIDE_RECEIVER, receiver, receiver_item_ids)
        )

        chat = Chat.objects.create(
            trade=trade,
            created_at=trade.created_at,
            updated_at=trade.created_at,
        )
        chat.participants.add(initiator, receiver)

    logger.info(
        f"Trade proposed. Trade ID: {trade.id}, Initiator: {initiator.id}, "
        f"Receiver: {receiver.id}, Items: {len(all_ids)}"
    )

    return trade


def update_offer(trade_id, acting_user, receiver_item_ids):
    """
    Replace the receiver's side of the offer (a counter-offer).

    Both acceptance flags are cleared. Only pending trades can be changed, so
    an accepted trade never falls back to pending.

    Raises:
        NotFoundError, AuthorizationError, StateError, ValidationError
    """
    receiver_item_ids = _normalize_ids(receiver_item_ids, 'receiver_item_ids')

    with transaction.atomic():
        trade = _load_trade(trade_id, acting_user, lock=True)
        _require_status(trade, [TradeStatus.PENDING], 'update the offer of')

        if len(set(receiver_item_ids)) != len(receiver_item_ids):
            raise ValidationError('An item can only be listed once in a trade.')

        initiator_item_ids = list(trade.initiator_items.values_list('item_id', flat=True))
        if not initiator_item_ids and not receiver_item_ids:
            raise ValidationError('A trade must include at least one item.')
        if set(initiator_item_ids) & set(receiver_item_ids):
            raise ValidationError('An item can only be listed once in a trade.')

        _check_offer(receiver_item_ids, trade.receiver, _resolve_items(receiver_item_ids))

        trade.items.filter(side=TradeItem.SIDE_RECEIVER).delete()
        TradeItem.objects.bulk_create(
            _build_trade_items(trade, TradeItem.SIDE_RECEIVER, trade.receiver, receiver_item_ids)
        )

        trade.initiator_accepted = False
        trade.receiver_accepted = False
        _save(trade)
        _record(trade, acting_user, MSG_OFFER_UPDATED)

    logger.info(
        f"Trade offer updated. Trade ID: {trade.id}, User: {acting_user.id}, "
        f"Receiver items: {len(receiver_item_ids)}"
    )

    return trade


def accept_trade(trade_id, acting_user):
    """
    Record the acting party's consent to the current offers.

    Once both parties have accepted, the trade moves to ``accepted``. Accepting
    again is allowed and only re-sets the caller's flag.

    Raises:
        NotFoundError, AuthorizationError, StateError
    """
    with transaction.atomic():
        trade = _load_trade(trade_id, acting_user, lock=True)
        _require_status(trade, [TradeStatus.PENDING, TradeStatus.ACCEPTED], 'accept')

        if trade.role_of(acting_user) == TradeItem.SIDE_INITIATOR:
            trade.initiator_accepted = True
        else:
            trade.receiver_accepted = True

        old_status = trade.status
        if trade.both_accepted() and trade.status == TradeStatus.PENDING:
            _transition(trade, TradeStatus.ACCEPTED)

        _save(trade)
        _record(trade, acting_user, MSG_ACCEPTED)

    logger.info(
        f"Trade accepted. Trade ID: {trade.id}, User: {acting_user.id}, "
        f"Status: {old_status} -> {trade.status}"
    )

    return trade


def set_meeting(trade_id, acting_user, time=None, location='', coordinates=None):
    """
    Overwrite the meeting details of an accepted trade.

    Args:
        trade_id: Trade primary key
        acting_user: Participant setting the meeting
        time: Meeting datetime, optional
        location: Free-form meeting place, optional
        coordinates: Optional [longitude, latitude]

    Raises:
        NotFoundError, AuthorizationError, StateError, ValidationError
    """
    with transaction.atomic():
        trade = _load_trade(trade_id, acting_user, lock=True)
        _require_status(trade, [TradeStatus.ACCEPTED], 'set a meeting for')

        if coordinates is not None:
            try:
                validate_coordinate_pair(coordinates)
            except DjangoValidationError as e:
                raise ValidationError(' '.join(e.messages))
            coordinates = list(coordinates)

        trade.meeting_time = time
        trade.meeting_location = (location or '').strip()
        trade.meeting_longitude, trade.meeting_latitude = coordinates or (None, None)

        _save(trade)
        _record(trade, acting_user, MSG_MEETING_UPDATED)

    logger.info(
        f"Trade meeting updated. Trade ID: {trade.id}, User: {acting_user.id}, "
        f"Time: {trade.meeting_time}, Location: {trade.meeting_location}"
    )

    return trade


def complete_trade(trade_id, acting_user):
    """
    Complete an accepted trade and reward both participants.

    Each participant earns ``50 + 10 * item_count`` experience and one
    completed trade, in the same transaction as the status change.

    Raises:
        NotFoundError, AuthorizationError, StateError
    """
    with transaction.atomic():
        trade = _load_trade(trade_id, acting_user, lock=True)
        _require_status(trade, [TradeStatus.ACCEPTED], 'complete')

        old_status = _transition(trade, TradeStatus.COMPLETED)
        _save(trade)

        item_count = trade.item_count()
        experience = progression.trade_completion_experience(item_count)

        # Lock users in id order so concurrent completions cannot deadlock
        awarded = {
            user_id: progression.award_experience(user_id, experience, counter='completed_trades')
            for user_id in sorted([trade.initiator_id, trade.receiver_id])
        }
        trade.initiator = awarded[trade.initiator_id]
        trade.receiver = awarded[trade.receiver_id]

        _record(trade, acting_user, MSG_COMPLETED.format(xp=experience, count=item_count))

    logger.info(
        f"Trade completed. Trade ID: {trade.id}, User: {acting_user.id}, "
        f"Status: {old_status} -> {trade.status}, Items: {item_count}, XP: {experience}"
    )

    return trade


def cancel_trade(trade_id, acting_user):
    """
    Cancel a pending or accepted trade.

    No endpoint exposes this yet.

    Raises:
        NotFoundError, AuthorizationError, StateError
    """
    with transaction.atomic():
        trade = _load_trade(trade_id, acting_user, lock=True)
        _require_status(trade, [TradeStatus.PENDING, TradeStatus.ACCEPTED], 'cancel')

        old_status = _transition(trade, TradeStatus.CANCELLED)
        _save(trade)
        _record(trade, acting_user, MSG_CANCELLED)

    logger.info(
        f"Trade cancelled. Trade ID: {trade.id}, User: {acting_user.id}, "
        f"Status: {old_status} -> {trade.status}"
    )

    return trade


# ============================================================================
# Queries
# ============================================================================

def get_trade(trade_id, user, lock=False):
    """
    Return a trade the user takes part in.

    Pass ``lock=True`` from inside a transaction to lock the trade row.
    """
    return _load_trade(trade_id, user, lock=lock)


def list_trades(user):
    """Trades the user takes part in, most recently updated first."""
    return (
        Trade.objects.filter(Q(initiator=user) | Q(receiver=user))
        .select_related('initiator', 'receiver', 'chat')
        .prefetch_related('items__item')
        .order_by('-updated_at', '-id')
    )
