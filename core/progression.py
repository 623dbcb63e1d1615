"""
User progression: experience, levels and level colours.

Trades and positive reviews award experience. A level needs
``floor(100 * 1.5 ** (level - 1))`` experience; surplus experience rolls over
into the next level until the level cap is reached, after which experience
simply accumulates.
"""

import logging
import math

from django.db import transaction

logger = logging.getLogger(__name__)

MIN_LEVEL = 1
MAX_LEVEL = 50

BASE_LEVEL_EXPERIENCE = 100
LEVEL_EXPERIENCE_GROWTH = 1.5

TRADE_BASE_EXPERIENCE = 50
TRADE_ITEM_EXPERIENCE = 10

POSITIVE_REVIEW_THRESHOLD = 4
POSITIVE_REVIEW_EXPERIENCE = 25

LEVELS_PER_COLOR_BAND = 5

LEVEL_COLORS = [
    '#808080',  # grey, levels 1-4
    '#00ff00',  # green, levels 5-9
    '#0000ff',  # blue, levels 10-14
    '#800080',  # purple, levels 15-19
    '#ff00ff',  # magenta, levels 20-24
    '#ff0000',  # red, levels 25-29
    '#ffa500',  # orange, levels 30-34
    '#ffff00',  # yellow, levels 35-39
    '#00ffff',  # cyan, levels 40-44
    '#ffd700',  # gold, levels 45-50
]

# Counters that may be bumped together with an experience award.
PROGRESSION_COUNTERS = ('completed_trades', 'positive_reviews')


def required_experience(level):
    """
    Experience needed to advance past ``level``.

    Args:
        level: Current level (1-based)

    Returns:
        int: Required experience points
    """
    return math.floor(BASE_LEVEL_EXPERIENCE * LEVEL_EXPERIENCE_GROWTH ** (level - 1))


def add_experience(level, experience, amount):
    """
    Apply an experience gain to a (level, experience) pair.

    Pure function: nothing is read from or written to the database.

    Args:
        level: Current level
        experience: Experience accumulated towards the next level
        amount: Experience gained (must not be negative)

    Returns:
        tuple: (new_level, new_experience)

    Raises:
        ValueError: If amount is negative
    """
    if amount < 0:
        raise ValueError('Experience amount cannot be negative.')

    experience += amount

    while level < MAX_LEVEL and experience >= required_experience(level):
        experience -= required_experience(level)
        level += 1

    return level, experience


def level_color(level):
    """Return the display colour for a level (10 bands of 5 levels)."""
    band = min(len(LEVEL_COLORS) - 1, max(level, 0) // LEVELS_PER_COLOR_BAND)
    return LEVEL_COLORS[band]


def trade_completion_experience(item_count):
    """Experience each participant earns for completing a trade of ``item_count`` items."""
    return TRADE_BASE_EXPERIENCE + TRADE_ITEM_EXPERIENCE * item_count


def award_experience(user_id, amount, counter=None):
    """
    Credit experience to a user and optionally bump a progression counter.

    The user row is locked and both changes are written in a single save, so
    an experience award is never recorded without its triggering counter.
    Callers that already hold a transaction join it.

    Args:
        user_id: Primary key of the user to credit
        amount: Experience points to add
        counter: Optional counter field name from PROGRESSION_COUNTERS

    Returns:
        User: The updated user instance
    """
    from .models import User

    if counter is not None and counter not in PROGRESSION_COUNTERS:
        raise ValueError(f'Unknown progression counter: {counter}')

    with transaction.atomic():
        user = User.objects.select_for_update().get(pk=user_id)
        old_level = user.level

        user.add_experience(amount)
        update_fields = ['level', 'experience', 'updated_at']

        if counter is not None:
            # Row is locked, so a plain read-modify-write is safe here
            setattr(user, counter, getattr(user, counter) + 1)
            update_fields.append(counter)

        user.save(update_fields=update_fields)

    if user.level != old_level:
        logger.info(
            f"User leveled up. User ID: {user.id}, "
            f"Level: {old_level} -> {user.level}"
        )

    logger.info(
        f"Experience awarded. User ID: {user.id}, Amount: {amount}, "
        f"Counter: {counter}, Level: {user.level}, Experience: {user.experience}"
    )

    return user
