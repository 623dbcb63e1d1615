"""
Models for the Clothing Swap marketplace.
"""

from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from . import progression
from .validators import validate_image_urls, validate_phone_number, validate_tags


def touch_updated_at(entity, now=None):
    """
    Stamp ``entity.updated_at`` with the current time.

    Called explicitly by every write path for trades, chats and reviews
    instead of relying on a save hook.

    Args:
        entity: Model instance with an ``updated_at`` field
        now: Optional timestamp (defaults to timezone.now())

    Returns:
        The same entity, for chaining
    """
    entity.updated_at = now or timezone.now()
    return entity


class User(AbstractUser):
    """
    Custom User model extending Django's AbstractUser.

    Additional fields:
    - email: Required, unique email address (login identifier)
    - phone_number: Optional phone number with validation
    - avatar_url: Optional link to a profile picture
    - level / experience: Progression earned by trading
    - completed_trades / positive_reviews: Progression counters
    - created_at / updated_at: Timestamps
    """

    email = models.EmailField(
        _('email address'),
        unique=True,
        blank=False,
        null=False,
        error_messages={
            'unique': _('A user with that email already exists.'),
        },
        help_text=_('Required. Enter a valid email address.')
    )

    phone_number = models.CharField(
        _('phone number'),
        max_length=20,
        blank=True,
        default='',
        validators=[validate_phone_number],
        help_text=_('Optional. Enter phone number in international format.')
    )

    avatar_url = models.URLField(
        _('avatar url'),
        max_length=500,
        blank=True,
        default='',
        help_text=_('Optional. Link to a profile picture.')
    )

    level = models.PositiveSmallIntegerField(
        _('level'),
        default=progression.MIN_LEVEL,
        validators=[
            MinValueValidator(progression.MIN_LEVEL, message=_('Level cannot be below 1.')),
            MaxValueValidator(progression.MAX_LEVEL, message=_('Level cannot exceed 50.'))
        ],
        help_text=_('Current progression level (1-50).')
    )

    experience = models.PositiveIntegerField(
        _('experience'),
        default=0,
        help_text=_('Experience accumulated towards the next level.')
    )

    completed_trades = models.PositiveIntegerField(
        _('completed trades'),
        default=0,
        help_text=_('Number of trades this user has completed.')
    )

    positive_reviews = models.PositiveIntegerField(
        _('positive reviews'),
        default=0,
        help_text=_('Number of reviews rated 4 stars or more received.')
    )

    created_at = models.DateTimeField(
        _('created at'),
        auto_now_add=True,
        help_text=_('Timestamp when the account was created.')
    )

    updated_at = models.DateTimeField(
        _('updated at'),
        auto_now=True,
        help_text=_('Timestamp when the account was last updated.')
    )

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['email']),
            models.Index(fields=['level']),
        ]

    def __str__(self):
        """Return email as string representation."""
        return self.email or self.username

    @property
    def display_name(self):
        """Full name if set, otherwise the username."""
        return self.get_full_name() or self.username

    @property
    def required_experience(self):
        """Experience needed to reach the next level."""
        return progression.required_experience(self.level)

    @property
    def level_color(self):
        """Display colour of the user's level badge."""
        return progression.level_color(self.level)

    def add_experience(self, amount):
        """
        Apply an experience gain in memory (does not save).

        Args:
            amount: Experience points to add
        """
        self.level, self.experience = progression.add_experience(
            self.level, self.experience, amount
        )

    def clean(self):
        """
        Validate model fields.

        Ensures:
        - Email is provided and lowercase for case-insensitive uniqueness

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self.email:
            self.email = self.email.lower()

        if not self.email:
            raise ValidationError({
                'email': _('Email address is required.')
            })

    def save(self, *args, **kwargs):
        """
        Override save to ensure email normalization.

        Full updates run full_clean and partial updates validate only the
        fields being written. Creation skips validation so duplicate emails
        surface as a database IntegrityError.
        """
        if self.email:
            self.email = self.email.lower()

        if self.pk is not None:
            update_fields = kwargs.get('update_fields')
            if update_fields is None:
                self.full_clean()
            else:
                update_fields = set(update_fields)
                self.clean_fields(exclude=[
                    field.name for field in self._meta.fields
                    if field.name not in update_fields
                ])

        super().save(*args, **kwargs)


# ============================================================================
# Clothing Listings
# ============================================================================

class ClothingItem(models.Model):
    """
    A clothing item listed for swapping.

    Fields:
    - owner: Foreign key to User (current owner of record)
    - title: Item title
    - description: Detailed description
    - category: tops, bottoms, dresses, shoes or accessories
    - size: Free-form size label (e.g. "M", "EU 40")
    - condition: new, like_new, good, fair or poor
    - status: available, pending or swapped
    - images: List of photo URLs
    - tags: Comma separated search tags
    - created_at / updated_at: Timestamps
    """

    CATEGORY_CHOICES = [
        ('tops', 'Tops'),
        ('bottoms', 'Bottoms'),
        ('dresses', 'Dresses'),
        ('shoes', 'Shoes'),
        ('accessories', 'Accessories'),
    ]

    CONDITION_CHOICES = [
        ('new', 'New'),
        ('like_new', 'Like New'),
        ('good', 'Good'),
        ('fair', 'Fair'),
        ('poor', 'Poor'),
    ]

    STATUS_CHOICES = [
        ('available', 'Available'),
        ('pending', 'Pending'),
        ('swapped', 'Swapped'),
    ]

    owner = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='clothing_items',
        help_text=_('User who owns this item')
    )

    title = models.CharField(
        _('title'),
        max_length=200,
        blank=False,
        null=False,
        help_text=_('Title of the clothing item')
    )

    description = models.TextField(
        _('description'),
        blank=False,
        null=False,
        help_text=_('Detailed description of the item')
    )

    category = models.CharField(
        _('category'),
        max_length=20,
        choices=CATEGORY_CHOICES,
        help_text=_('Category of the item')
    )

    size = models.CharField(
        _('size'),
        max_length=20,
        help_text=_('Size label of the item')
    )

    condition = models.CharField(
        _('condition'),
        max_length=20,
        choices=CONDITION_CHOICES,
        help_text=_('Condition of the item')
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default='available',
        help_text=_('Listing availability')
    )

    images = models.JSONField(
        _('images'),
        default=list,
        blank=True,
        validators=[validate_image_urls],
        help_text=_('Photo URLs, first one is the cover')
    )

    tags = models.CharField(
        _('tags'),
        max_length=500,
        blank=True,
        default='',
        validators=[validate_tags],
        help_text=_('Comma separated tags')
    )

    created_at = models.DateTimeField(
        _('created at'),
        auto_now_add=True,
        help_text=_('Timestamp when the item was listed')
    )

    updated_at = models.DateTimeField(
        _('updated at'),
        auto_now=True,
        help_text=_('Timestamp when the item was last updated')
    )

    class Meta:
        verbose_name = _('clothing item')
        verbose_name_plural = _('clothing items')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['owner']),
            models.Index(fields=['status']),
            models.Index(fields=['category']),
            models.Index(fields=['condition']),
        ]

    def __str__(self):
        """Return title as string representation."""
        return self.title

    @property
    def tag_list(self):
        """Tags as a list of stripped, non-empty strings."""
        return [tag.strip() for tag in self.tags.split(',') if tag.strip()]

    def is_available(self):
        """Return True if the item is still available for swapping."""
        return self.status == 'available'

    def clean(self):
        """
        Validate model fields.

        Ensures title, description and size are not blank.
        """
        super().clean()

        if not self.title or not self.title.strip():
            raise ValidationError({
                'title': _('Title cannot be empty.')
            })

        if not self.description or not self.description.strip():
            raise ValidationError({
                'description': _('Description cannot be empty.')
            })

        if not self.size or not self.size.strip():
            raise ValidationError({
                'size': _('Size cannot be empty.')
            })

    def save(self, *args, **kwargs):
        """Override save to ensure validation."""
        self.full_clean()
        super().save(*args, **kwargs)


# ============================================================================
# Trades
# ============================================================================

class TradeStatus(models.TextChoices):
    PENDING = 'pending', _('Pending')
    ACCEPTED = 'accepted', _('Accepted')
    COMPLETED = 'completed', _('Completed')
    CANCELLED = 'cancelled', _('Cancelled')


class Trade(models.Model):
    """
    A proposed or executed exchange of clothing items between two users.

    Lifecycle: pending -> accepted -> completed, or pending/accepted -> cancelled.
    The status only ever moves along VALID_TRANSITIONS; completed and
    cancelled are terminal.

    The two acceptance flags record consent to the current offers. The status
    becomes accepted once both are set, and any change to the offers clears
    them again.
    """

    VALID_TRANSITIONS = {
        TradeStatus.PENDING.value: [TradeStatus.ACCEPTED, TradeStatus.CANCELLED],
        TradeStatus.ACCEPTED.value: [TradeStatus.COMPLETED, TradeStatus.CANCELLED],
        TradeStatus.COMPLETED.value: [],
        TradeStatus.CANCELLED.value: [],
    }

    initiator = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='initiated_trades',
        help_text=_('User who proposed the trade')
    )

    receiver = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='received_trades',
        help_text=_('User the trade was proposed to')
    )

    initiator_accepted = models.BooleanField(
        _('initiator accepted'),
        default=False,
        help_text=_('Whether the initiator accepts the current offers')
    )

    receiver_accepted = models.BooleanField(
        _('receiver accepted'),
        default=False,
        help_text=_('Whether the receiver accepts the current offers')
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=TradeStatus.choices,
        default=TradeStatus.PENDING,
        help_text=_('Current status of the trade')
    )

    meeting_time = models.DateTimeField(
        _('meeting time'),
        null=True,
        blank=True,
        help_text=_('When the parties meet to swap')
    )

    meeting_location = models.CharField(
        _('meeting location'),
        max_length=300,
        blank=True,
        default='',
        help_text=_('Where the parties meet to swap')
    )

    meeting_longitude = models.FloatField(
        _('meeting longitude'),
        null=True,
        blank=True
    )

    meeting_latitude = models.FloatField(
        _('meeting latitude'),
        null=True,
        blank=True
    )

    created_at = models.DateTimeField(
        _('created at'),
        default=timezone.now,
        help_text=_('Timestamp when the trade was proposed')
    )

    updated_at = models.DateTimeField(
        _('updated at'),
        default=timezone.now,
        help_text=_('Timestamp of the last change to the trade')
    )

    class Meta:
        verbose_name = _('trade')
        verbose_name_plural = _('trades')
        ordering = ['-updated_at']
        indexes = [
            models.Index(fields=['initiator']),
            models.Index(fields=['receiver']),
            models.Index(fields=['status']),
            models.Index(fields=['updated_at']),
        ]

    def __str__(self):
        """Return meaningful string representation."""
        return f"Trade #{self.pk}: {self.initiator_id} -> {self.receiver_id} ({self.status})"

    # Participants -----------------------------------------------------------

    def is_participant(self, user):
        """Return True if ``user`` is the initiator or the receiver."""
        user_id = getattr(user, 'pk', user)
        return user_id is not None and user_id in (self.initiator_id, self.receiver_id)

    def role_of(self, user):
        """
        Return 'initiator' or 'receiver' for a participant, None otherwise.
        """
        user_id = getattr(user, 'pk', user)
        if user_id == self.initiator_id:
            return TradeItem.SIDE_INITIATOR
        if user_id == self.receiver_id:
            return TradeItem.SIDE_RECEIVER
        return None

    def other_participant_id(self, user):
        """Return the id of the participant that is not ``user``."""
        user_id = getattr(user, 'pk', user)
        return self.receiver_id if user_id == self.initiator_id else self.initiator_id

    # Offers -----------------------------------------------------------------

    def items_for(self, side):
        """Offered items of one side, in offer order."""
        return self.items.filter(side=side).order_by('position')

    @property
    def initiator_items(self):
        return self.items_for(TradeItem.SIDE_INITIATOR)

    @property
    def receiver_items(self):
        return self.items_for(TradeItem.SIDE_RECEIVER)

    def item_count(self):
        """Total number of items offered by both sides."""
        return self.items.count()

    # Meeting ----------------------------------------------------------------

    @property
    def meeting_coordinates(self):
        """Meeting point as [longitude, latitude], or None."""
        if self.meeting_longitude is None or self.meeting_latitude is None:
            return None
        return [self.meeting_longitude, self.meeting_latitude]

    def has_meeting_details(self):
        return bool(
            self.meeting_time
            or self.meeting_location
            or self.meeting_coordinates is not None
        )

    # State machine ----------------------------------------------------------

    def both_accepted(self):
        return self.initiator_accepted and self.receiver_accepted

    def is_terminal(self):
        """Completed and cancelled trades can no longer change."""
        return not self.VALID_TRANSITIONS.get(str(self.status))

    def can_transition_to(self, new_status):
        """
        Check if moving from the current status to ``new_status`` is allowed.

        Staying in the same status is always allowed.

        Args:
            new_status: Target trade status

        Returns:
            bool: True if the transition is valid
        """
        if new_status == self.status:
            return True
        return new_status in self.VALID_TRANSITIONS.get(str(self.status), [])

    def clean(self):
        """
        Validate fields and status transitions.

        Ensures:
        - Initiator and receiver are different users
        - An accepted trade has both acceptance flags set
        - Meeting details are only present once the trade was accepted
        - Status changes follow VALID_TRANSITIONS

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self.initiator_id and self.receiver_id and self.initiator_id == self.receiver_id:
            raise ValidationError({
                'receiver': _('You cannot propose a trade to yourself.')
            })

        if self.status == TradeStatus.ACCEPTED and not self.both_accepted():
            raise ValidationError({
                'status': _('A trade can only be accepted once both parties accept.')
            })

        if self.status == TradeStatus.PENDING and self.has_meeting_details():
            raise ValidationError({
                'meeting_time': _('Meeting details can only be set on an accepted trade.')
            })

        if self.pk is not None:
            old_status = (
                Trade.objects.filter(pk=self.pk)
                .values_list('status', flat=True)
                .first()
            )
            if old_status is not None and old_status != self.status:
                valid_next = self.VALID_TRANSITIONS.get(str(old_status), [])
                if self.status not in valid_next:
                    raise ValidationError({
                        'status': _(
                            f'Invalid trade status transition from {old_status} to {self.status}.'
                        )
                    })

    def save(self, *args, **kwargs):
        """Override save to ensure validation."""
        self.full_clean()
        super().save(*args, **kwargs)


class TradeItem(models.Model):
    """
    One item in one side's offer of a trade.

    ``owner`` snapshots the owner of record when the item was offered and must
    equal the party of that side.
    """

    SIDE_INITIATOR = 'initiator'
    SIDE_RECEIVER = 'receiver'

    SIDE_CHOICES = [
        (SIDE_INITIATOR, 'Initiator'),
        (SIDE_RECEIVER, 'Receiver'),
    ]

    trade = models.ForeignKey(
        Trade,
        on_delete=models.CASCADE,
        related_name='items',
        help_text=_('Trade this offer line belongs to')
    )

    item = models.ForeignKey(
        ClothingItem,
        on_delete=models.PROTECT,
        related_name='trade_entries',
        help_text=_('Offered clothing item')
    )

    owner = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='offered_trade_items',
        help_text=_('Owner of the item when it was offered')
    )

    side = models.CharField(
        _('side'),
        max_length=10,
        choices=SIDE_CHOICES,
        help_text=_('Which party offers this item')
    )

    position = models.PositiveIntegerField(
        _('position'),
        default=0,
        help_text=_('Order of the item within its side of the offer')
    )

    class Meta:
        verbose_name = _('trade item')
        verbose_name_plural = _('trade items')
        ordering = ['trade', 'side', 'position']
        constraints = [
            models.UniqueConstraint(
                fields=['trade', 'item'],
                name='unique_item_per_trade'
            )
        ]

    def __str__(self):
        return f"{self.side} item {self.item_id} in trade {self.trade_id}"

    def clean(self):
        """Ensure the owner offers this side and actually owns the item."""
        super().clean()

        if self.trade_id and self.owner_id:
            expected_owner = (
                self.trade.initiator_id if self.side == self.SIDE_INITIATOR
                else self.trade.receiver_id
            )
            if self.owner_id != expected_owner:
                raise ValidationError({
                    'owner': _('Item owner must be the party offering this side of the trade.')
                })

        if self.item_id and self.owner_id and self.item.owner_id != self.owner_id:
            raise ValidationError({
                'item': _('Only items owned by the offering party can be placed on its side.')
            })


# ============================================================================
# Chat
# ============================================================================

class MessageType(models.TextChoices):
    TEXT = 'text', _('Text')
    TRADE_UPDATE = 'trade_update', _('Trade update')
    MEETING_PIN = 'meeting_pin', _('Meeting pin')


class Chat(models.Model):
    """
    Append-only conversation paired 1:1 with a trade.

    ``last_message`` is derived from ``messages`` on every append.
    """

    trade = models.OneToOneField(
        Trade,
        on_delete=models.CASCADE,
        related_name='chat',
        help_text=_('Trade this chat negotiates')
    )

    participants = models.ManyToManyField(
        User,
        related_name='chats',
        help_text=_('The two trade parties')
    )

    last_message = models.ForeignKey(
        'Message',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        help_text=_('Most recent message in the chat')
    )

    created_at = models.DateTimeField(
        _('created at'),
        default=timezone.now
    )

    updated_at = models.DateTimeField(
        _('updated at'),
        default=timezone.now
    )

    class Meta:
        verbose_name = _('chat')
        verbose_name_plural = _('chats')
        ordering = ['-updated_at']

    def __str__(self):
        return f"Chat for trade #{self.trade_id}"

    def is_participant(self, user):
        """Return True if ``user`` takes part in this chat."""
        user_id = getattr(user, 'pk', user)
        if user_id is None:
            return False
        return self.participants.filter(pk=user_id).exists()


class Message(models.Model):
    """A single chat entry, written by a user or by a trade state change."""

    chat = models.ForeignKey(
        Chat,
        on_delete=models.CASCADE,
        related_name='messages',
        help_text=_('Chat this message belongs to')
    )

    sender = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='sent_messages',
        help_text=_('User who sent or triggered the message')
    )

    content = models.TextField(
        _('content'),
        blank=False,
        help_text=_('Message text')
    )

    message_type = models.CharField(
        _('type'),
        max_length=20,
        choices=MessageType.choices,
        default=MessageType.TEXT
    )

    timestamp = models.DateTimeField(
        _('timestamp'),
        default=timezone.now
    )

    class Meta:
        verbose_name = _('message')
        verbose_name_plural = _('messages')
        ordering = ['timestamp', 'id']
        indexes = [
            models.Index(fields=['chat', 'timestamp']),
        ]

    def __str__(self):
        return f"Message #{self.pk} in chat #{self.chat_id} ({self.message_type})"

    def clean(self):
        super().clean()

        if not self.content or not self.content.strip():
            raise ValidationError({
                'content': _('Message cannot be empty.')
            })

    def save(self, *args, **kwargs):
        """Messages are append-only."""
        if self.pk is not None:
            raise ValidationError(_('Chat messages cannot be edited.'))
        self.full_clean()
        super().save(*args, **kwargs)


# ============================================================================
# Reviews
# ============================================================================

class Review(models.Model):
    """
    Rating left by one trade participant about the other after completion.

    At most one review per (trade, reviewer); resubmission overwrites.
    """

    trade = models.ForeignKey(
        Trade,
        on_delete=models.CASCADE,
        related_name='reviews',
        help_text=_('Completed trade being reviewed')
    )

    reviewer = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='reviews_given',
        help_text=_('User writing the review')
    )

    reviewed = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='reviews_received',
        help_text=_('User receiving the review')
    )

    rating = models.PositiveSmallIntegerField(
        _('rating'),
        validators=[
            MinValueValidator(1, message=_('Rating must be at least 1.')),
            MaxValueValidator(5, message=_('Rating must be at most 5.'))
        ],
        help_text=_('Rating from 1 to 5 stars')
    )

    comment = models.CharField(
        _('comment'),
        max_length=500,
        blank=False,
        help_text=_('Written feedback about the swap')
    )

    created_at = models.DateTimeField(
        _('created at'),
        default=timezone.now
    )

    updated_at = models.DateTimeField(
        _('updated at'),
        default=timezone.now
    )

    class Meta:
        verbose_name = _('review')
        verbose_name_plural = _('reviews')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['reviewed']),
            models.Index(fields=['rating']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['trade', 'reviewer'],
                name='unique_review_per_trade_reviewer'
            )
        ]

    def __str__(self):
        return f"Review by {self.reviewer_id} for {self.reviewed_id} - {self.rating}★"

    def clean(self):
        """
        Validate model fields.

        Ensures:
        - Reviewer and reviewed are different users
        - The trade is completed
        - Reviewer took part in the trade and reviewed is the other party
        - Comment is not empty or whitespace-only
        """
        super().clean()

        if self.reviewer_id and self.reviewed_id and self.reviewer_id == self.reviewed_id:
            raise ValidationError({
                'reviewed': _('Reviewer and reviewed user cannot be the same user.')
            })

        if self.trade_id:
            trade = self.trade

            if trade.status != TradeStatus.COMPLETED:
                raise ValidationError({
                    'trade': _('Only completed trades can be reviewed.')
                })

            if self.reviewer_id and not trade.is_participant(self.reviewer_id):
                raise ValidationError({
                    'reviewer': _('Reviewer must be a participant of the trade.')
                })

            if self.reviewer_id and self.reviewed_id:
                if self.reviewed_id != trade.other_participant_id(self.reviewer_id):
                    raise ValidationError({
                        'reviewed': _('Reviewed user must be the other participant of the trade.')
                    })

        if not self.comment or not self.comment.strip():
            raise ValidationError({
                'comment': _('Comment cannot be empty.')
            })

    def save(self, *args, **kwargs):
        """Override save to ensure validation."""
        self.full_clean()
        super().save(*args, **kwargs)

    def is_positive(self):
        return self.rating >= progression.POSITIVE_REVIEW_THRESHOLD
