"""
Serializers for accounts, listings, trades, chats and reviews.

Request bodies are validated here, one serializer per operation, before the
trade, chat and review operations are called.
"""

import re

from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework import serializers
from django.conf import settings
from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.contrib.auth.hashers import make_password

from .chat import MAX_MESSAGE_LENGTH
from .models import ClothingItem, Message, Review, Trade, TradeItem, Chat
from .reviews import MAX_COMMENT_LENGTH, MAX_RATING, MIN_RATING
from .validators import (
    MAX_IMAGE_URL_LENGTH,
    MAX_IMAGES,
    validate_coordinate_pair,
    validate_phone_number,
)

User = get_user_model()


def _run_django_validator(validator, value):
    try:
        validator(value)
    except DjangoValidationError as e:
        raise serializers.ValidationError(list(e.messages))
    return value


def _username_from_email(email):
    """
    Derive a unique username from an email address.

    Characters the username validator rejects are dropped, and a numeric
    suffix is added when two addresses reduce to the same name.
    """
    max_length = User._meta.get_field('username').max_length
    base = re.sub(r'[^\w.@+-]', '', email)[:max_length] or 'user'

    username = base
    suffix = 1
    while User.objects.filter(username=username).exists():
        tail = f'-{suffix}'
        username = base[:max_length - len(tail)] + tail
        suffix += 1

    return username


# ============================================================================
# Accounts
# ============================================================================

class EmailTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    Custom serializer to use email instead of username for authentication.
    """
    username_field = 'email'

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if 'username' in self.fields:
            del self.fields['username']
        if 'email' not in self.fields:
            self.fields['email'] = serializers.EmailField()


class UserRegistrationSerializer(serializers.ModelSerializer):
    """
    Serializer for user registration.

    Fields:
    - email: Required, unique, valid email format
    - password / confirm_password: Required, must match and pass Django's validators
    - first_name / last_name: Optional display name
    - phone_number: Optional, validated format
    - avatar_url: Optional link to a profile picture
    """

    password = serializers.CharField(
        write_only=True,
        required=True,
        style={'input_type': 'password'}
    )
    confirm_password = serializers.CharField(
        write_only=True,
        required=True,
        style={'input_type': 'password'}
    )

    class Meta:
        model = User
        fields = ['id', 'email', 'password', 'confirm_password', 'first_name',
                  'last_name', 'phone_number', 'avatar_url', 'level', 'created_at']
        read_only_fields = ['id', 'level', 'created_at']
        extra_kwargs = {
            'email': {'required': True},
        }

    def validate_email(self, value):
        """Normalize email and check case-insensitive uniqueness."""
        value = value.strip().lower()

        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError(
                "A user with that email already exists."
            )

        return value

    def validate_password(self, value):
        try:
            validate_password(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(list(e.messages))

        return value

    def validate_phone_number(self, value):
        return _run_django_validator(validate_phone_number, value)

    def validate(self, attrs):
        if attrs.get('password') != attrs.get('confirm_password'):
            raise serializers.ValidationError({
                'confirm_password': 'Password confirmation does not match.'
            })

        return attrs

    def create(self, validated_data):
        """
        Create user with hashed password and default progression.

        The username is derived from the email so both stay unique.
        """
        validated_data.pop('confirm_password', None)
        validated_data['password'] = make_password(validated_data.pop('password'))
        validated_data['username'] = _username_from_email(validated_data['email'])

        return User.objects.create(**validated_data)


class LoginSerializer(serializers.Serializer):
    """
    Serializer for user login with email and password.

    Authentication itself happens in the view.
    """
    email = serializers.EmailField(
        required=True,
        help_text='User email address'
    )
    password = serializers.CharField(
        required=True,
        write_only=True,
        style={'input_type': 'password'},
        help_text='User password'
    )


class PublicUserSerializer(serializers.ModelSerializer):
    """
    Public profile card shown next to trades, chats and reviews.

    Never exposes email or phone number.
    """

    level_color = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = ['id', 'display_name', 'avatar_url', 'level', 'level_color',
                  'completed_trades', 'positive_reviews']
        read_only_fields = fields


class UserProfileSerializer(serializers.ModelSerializer):
    """
    Serializer for the authenticated user's own profile.

    Includes progression: level, experience, the experience required for the
    next level, the level badge colour and both counters.
    """

    required_experience = serializers.IntegerField(read_only=True)
    level_color = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = [
            'id',
            'email',
            'first_name',
            'last_name',
            'display_name',
            'phone_number',
            'avatar_url',
            'level',
            'experience',
            'required_experience',
            'level_color',
            'completed_trades',
            'positive_reviews',
            'created_at',
        ]
        read_only_fields = fields


class UserProfileUpdateSerializer(serializers.ModelSerializer):
    """
    Serializer for profile updates (PUT/PATCH).

    Progression fields, email and password cannot be changed here.
    """

    class Meta:
        model = User
        fields = ['first_name', 'last_name', 'phone_number', 'avatar_url']
        extra_kwargs = {
            'first_name': {'required': False},
            'last_name': {'required': False},
            'phone_number': {'required': False},
            'avatar_url': {'required': False},
        }

    def validate_phone_number(self, value):
        return _run_django_validator(validate_phone_number, value)


# ============================================================================
# Listings
# ============================================================================

class ClothingItemSerializer(serializers.ModelSerializer):
    """
    Serializer for creating and browsing clothing listings.

    The owner is always the authenticated user; status starts as available.
    """

    owner = PublicUserSerializer(read_only=True)
    tag_list = serializers.ListField(child=serializers.CharField(), read_only=True)
    images = serializers.ListField(
        child=serializers.URLField(max_length=MAX_IMAGE_URL_LENGTH),
        allow_empty=False,
        max_length=MAX_IMAGES,
        error_messages={'empty': 'At least one image is required.'},
    )

    class Meta:
        model = ClothingItem
        fields = [
            'id',
            'title',
            'description',
            'category',
            'size',
            'condition',
            'status',
            'images',
            'tags',
            'tag_list',
            'owner',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['id', 'status', 'owner', 'created_at', 'updated_at']
        extra_kwargs = {
            'title': {'required': True},
            'description': {'required': True},
            'category': {'required': True},
            'size': {'required': True},
            'condition': {'required': True},
        }

    def validate_title(self, value):
        if not value or not value.strip():
            raise serializers.ValidationError("Title cannot be empty.")
        return value.strip()

    def validate_description(self, value):
        if not value or not value.strip():
            raise serializers.ValidationError("Description cannot be empty.")
        return value.strip()

    def validate_size(self, value):
        if not value or not value.strip():
            raise serializers.ValidationError("Size cannot be empty.")
        return value.strip()

    def validate_tags(self, value):
        tags = [tag.strip() for tag in (value or '').split(',') if tag.strip()]
        return ','.join(tags)

    def create(self, validated_data):
        request = self.context.get('request')
        return ClothingItem.objects.create(owner=request.user, **validated_data)


class TradeClothingItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = ClothingItem
        fields = ['id', 'title', 'category', 'size', 'condition', 'status', 'images']
        read_only_fields = fields


# ============================================================================
# Trades
# ============================================================================

class ItemIdListField(serializers.ListField):
    child = serializers.IntegerField(min_value=1)


class TradeCreateSerializer(serializers.Serializer):
    """
    Input for proposing a trade.

    Ownership of each item is checked by the trade state machine.
    """

    receiver_id = serializers.IntegerField(min_value=1)
    initiator_item_ids = ItemIdListField(required=False, default=list)
    receiver_item_ids = ItemIdListField(required=False, default=list)

    def validate(self, attrs):
        if not attrs['initiator_item_ids'] and not attrs['receiver_item_ids']:
            raise serializers.ValidationError(
                'A trade must include at least one item.'
            )
        return attrs


class MeetingSerializer(serializers.Serializer):
    """Meeting details: when, where, and an optional [longitude, latitude] pin."""

    time = serializers.DateTimeField(required=False, allow_null=True, default=None)
    location = serializers.CharField(
        required=False, allow_blank=True, max_length=300, default=''
    )
    coordinates = serializers.ListField(
        child=serializers.FloatField(),
        required=False,
        allow_null=True,
        default=None,
    )

    def validate_coordinates(self, value):
        if value is None:
            return value
        return _run_django_validator(validate_coordinate_pair, value)

    def validate(self, attrs):
        if not attrs.get('time') and not attrs.get('location', '').strip() \
                and attrs.get('coordinates') is None:
            raise serializers.ValidationError(
                'Meeting needs at least a time, a location or coordinates.'
            )
        return attrs


class TradeUpdateSerializer(serializers.Serializer):
    """
    Input for PATCH /api/trades/<id>/.

    Exactly one action per request:
    - receiver_item_ids: counter-offer replacing the receiver's items
    - accept: true
    - meeting: {time, location, coordinates}
    """

    ACTIONS = ('receiver_item_ids', 'accept', 'meeting')

    receiver_item_ids = ItemIdListField(required=False)
    accept = serializers.BooleanField(required=False)
    meeting = MeetingSerializer(required=False)

    def validate(self, attrs):
        unknown = set(self.initial_data) - set(self.ACTIONS)
        if unknown:
            raise serializers.ValidationError(
                f"Unknown fields: {', '.join(sorted(unknown))}."
            )

        provided = [name for name in self.ACTIONS if name in attrs]
        if len(provided) != 1:
            raise serializers.ValidationError(
                'Provide exactly one of: receiver_item_ids, accept, meeting.'
            )

        if 'accept' in attrs and attrs['accept'] is not True:
            raise serializers.ValidationError({
                'accept': 'Only "accept": true is supported.'
            })

        return attrs

    @property
    def action(self):
        for name in self.ACTIONS:
            if name in self.validated_data:
                return name
        return None


class TradeItemSerializer(serializers.ModelSerializer):
    item = TradeClothingItemSerializer(read_only=True)

    class Meta:
        model = TradeItem
        fields = ['item', 'owner', 'position']
        read_only_fields = fields


class TradeSerializer(serializers.ModelSerializer):
    """
    Trade as returned by every trade endpoint.

    Items are split into the two offers, each in offer order.
    """

    initiator = PublicUserSerializer(read_only=True)
    receiver = PublicUserSerializer(read_only=True)
    initiator_items = serializers.SerializerMethodField()
    receiver_items = serializers.SerializerMethodField()
    meeting = serializers.SerializerMethodField()
    chat_id = serializers.SerializerMethodField()

    class Meta:
        model = Trade
        fields = [
            'id',
            'initiator',
            'receiver',
            'initiator_items',
            'receiver_items',
            'initiator_accepted',
            'receiver_accepted',
            'status',
            'meeting',
            'chat_id',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def _items(self, obj, side):
        # Filter in Python so prefetched items are reused
        entries = sorted(
            (entry for entry in obj.items.all() if entry.side == side),
            key=lambda entry: entry.position,
        )
        return TradeItemSerializer(entries, many=True, context=self.context).data

    def get_initiator_items(self, obj):
        return self._items(obj, TradeItem.SIDE_INITIATOR)

    def get_receiver_items(self, obj):
        return self._items(obj, TradeItem.SIDE_RECEIVER)

    def get_meeting(self, obj):
        if not obj.has_meeting_details():
            return None
        return {
            'time': serializers.DateTimeField().to_representation(obj.meeting_time)
            if obj.meeting_time else None,
            'location': obj.meeting_location,
            'coordinates': obj.meeting_coordinates,
        }

    def get_chat_id(self, obj):
        try:
            return obj.chat.id
        except Chat.DoesNotExist:
            return None


# ============================================================================
# Chat
# ============================================================================

class MessageSerializer(serializers.ModelSerializer):
    sender_name = serializers.CharField(source='sender.display_name', read_only=True)

    class Meta:
        model = Message
        fields = ['id', 'sender', 'sender_name', 'content', 'message_type', 'timestamp']
        read_only_fields = fields


class MessageCreateSerializer(serializers.Serializer):
    content = serializers.CharField(
        max_length=MAX_MESSAGE_LENGTH,
        trim_whitespace=True,
        allow_blank=False,
        error_messages={'blank': 'Message cannot be empty.'},
    )


class ChatSerializer(serializers.ModelSerializer):
    """Chat summary for the chat list, with the latest message."""

    participants = PublicUserSerializer(many=True, read_only=True)
    last_message = MessageSerializer(read_only=True)
    trade_status = serializers.CharField(source='trade.status', read_only=True)

    class Meta:
        model = Chat
        fields = ['id', 'trade', 'trade_status', 'participants', 'last_message',
                  'created_at', 'updated_at']
        read_only_fields = fields


class ChatDetailSerializer(ChatSerializer):
    """
    Full chat with its ordered messages and the client polling interval.

    Expects ``messages`` in the serializer context.
    """

    messages = serializers.SerializerMethodField()
    poll_interval = serializers.SerializerMethodField()

    class Meta(ChatSerializer.Meta):
        fields = ChatSerializer.Meta.fields + ['messages', 'poll_interval']
        read_only_fields = fields

    def get_messages(self, obj):
        messages = self.context.get('messages')
        if messages is None:
            messages = obj.messages.select_related('sender').order_by('timestamp', 'id')
        return MessageSerializer(messages, many=True).data

    def get_poll_interval(self, obj):
        return settings.CHAT_POLL_INTERVAL_SECONDS


# ============================================================================
# Reviews
# ============================================================================

class ReviewSubmitSerializer(serializers.Serializer):
    """
    Input for submitting (or resubmitting) a review.

    The reviewed user is always the other trade participant.
    """

    trade_id = serializers.IntegerField(min_value=1)
    rating = serializers.IntegerField(
        min_value=MIN_RATING,
        max_value=MAX_RATING,
        error_messages={
            'min_value': 'Rating must be between 1 and 5.',
            'max_value': 'Rating must be between 1 and 5.',
        },
    )
    comment = serializers.CharField(
        max_length=MAX_COMMENT_LENGTH,
        trim_whitespace=True,
        allow_blank=False,
        error_messages={'blank': 'Comment cannot be empty.'},
    )


class ReviewSerializer(serializers.ModelSerializer):
    reviewer = PublicUserSerializer(read_only=True)
    reviewed = PublicUserSerializer(read_only=True)

    class Meta:
        model = Review
        fields = ['id', 'trade', 'reviewer', 'reviewed', 'rating', 'comment',
                  'created_at', 'updated_at']
        read_only_fields = fields
