"""
Review ledger: one rating per (trade, reviewer) once a trade is completed.
"""

import logging

from django.db import transaction

from . import progression
from .chat import append_system_message
from .exceptions import StateError, ValidationError
from .models import Review, TradeStatus, touch_updated_at
from .trades import get_trade

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5
MAX_COMMENT_LENGTH = 500


def _clean_input(rating, comment):
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError('Rating must be a whole number.')
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError(f'Rating must be between {MIN_RATING} and {MAX_RATING}.')

    comment = (comment or '').strip()
    if not comment:
        raise ValidationError('Comment cannot be empty.')
    if len(comment) > MAX_COMMENT_LENGTH:
        raise ValidationError(f'Comment cannot exceed {MAX_COMMENT_LENGTH} characters.')

    return rating, comment


def submit_review(trade_id, reviewer, rating, comment):
    """
    Create or overwrite the reviewer's review of the other trade participant.

    A rating of 4 or more gives the reviewed user 25 experience and one
    positive review, on every submission. A "Left a N-star review" entry is
    added to the trade chat. Everything happens in one transaction.

    Args:
        trade_id: Completed trade primary key
        reviewer: Participant leaving the review
        rating: Integer from 1 to 5
        comment: Feedback text (1-500 characters)

    Returns:
        tuple: (Review, created) where created is False for an overwrite

    Raises:
        NotFoundError: Trade does not exist
        AuthorizationError: Reviewer is not a participant
        StateError: Trade is not completed
        ValidationError: Rating or comment out of bounds
    """
    with transaction.atomic():
        trade = get_trade(trade_id, reviewer, lock=True)

        if trade.status != TradeStatus.COMPLETED:
            raise StateError('Only completed trades can be reviewed.')

        rating, comment = _clean_input(rating, comment)
        reviewed_id = trade.other_participant_id(reviewer)

        review = (
            Review.objects.select_for_update()
            .filter(trade=trade, reviewer=reviewer)
            .first()
        )
        created = review is None

        if created:
            review = Review(trade=trade, reviewer=reviewer, reviewed_id=reviewed_id)

        review.rating = rating
        review.comment = comment
        touch_updated_at(review)
        review.save()

        if rating >= progression.POSITIVE_REVIEW_THRESHOLD:
            progression.award_experience(
                reviewed_id,
                progression.POSITIVE_REVIEW_EXPERIENCE,
                counter='positive_reviews',
            )

        append_system_message(trade.chat, reviewer, f'Left a {rating}-star review')

    logger.info(
        f"Review {'created' if created else 'updated'}. Review ID: {review.id}, "
        f"Trade ID: {trade.id}, Reviewer: {reviewer.id}, Reviewed: {reviewed_id}, "
        f"Rating: {rating}"
    )

    return review, created


def list_reviews(trade_id, requester):
    """
    All reviews of a trade, oldest first.

    Raises:
        NotFoundError: Trade does not exist
        AuthorizationError: Requester is not a participant
    """
    trade = get_trade(trade_id, requester)
    return (
        Review.objects.filter(trade=trade)
        .select_related('reviewer', 'reviewed')
        .order_by('created_at', 'id')
    )
