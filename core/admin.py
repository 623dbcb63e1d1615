"""
Django admin configuration for the Clothing Swap marketplace.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from .models import User, ClothingItem, Trade, TradeItem, Chat, Message, Review


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Custom admin interface for User model.

    Extends Django's UserAdmin with contact and progression fields.
    """

    list_display = [
        'email',
        'username',
        'level',
        'experience',
        'completed_trades',
        'positive_reviews',
        'is_staff',
        'is_active',
        'created_at',
    ]

    list_filter = [
        'level',
        'is_staff',
        'is_superuser',
        'is_active',
        'created_at',
    ]

    search_fields = [
        'email',
        'username',
        'first_name',
        'last_name',
    ]

    ordering = ['-created_at']

    fieldsets = (
        (None, {
            'fields': ('username', 'password')
        }),
        (_('Personal Info'), {
            'fields': (
                'first_name',
                'last_name',
                'email',
                'phone_number',
                'avatar_url',
            )
        }),
        (_('Progression'), {
            'fields': ('level', 'experience', 'completed_trades', 'positive_reviews')
        }),
        (_('Permissions'), {
            'fields': (
                'is_active',
                'is_staff',
                'is_superuser',
                'groups',
                'user_permissions',
            ),
            'classes': ('collapse',),
        }),
        (_('Important Dates'), {
            'fields': ('last_login', 'date_joined', 'created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': (
                'username',
                'email',
                'password1',
                'password2',
            ),
        }),
    )

    readonly_fields = ['created_at', 'updated_at', 'last_login', 'date_joined']

    date_hierarchy = 'created_at'

    list_per_page = 25

    def get_readonly_fields(self, request, obj=None):
        if obj:  # Editing an existing object
            return self.readonly_fields
        return []


@admin.register(ClothingItem)
class ClothingItemAdmin(admin.ModelAdmin):
    """Admin interface for ClothingItem model."""

    list_display = [
        'title',
        'owner',
        'category',
        'size',
        'condition',
        'status',
        'created_at',
    ]

    list_filter = [
        'status',
        'category',
        'condition',
        'created_at',
    ]

    search_fields = [
        'title',
        'description',
        'tags',
        'owner__email',
        'owner__username',
    ]

    readonly_fields = ['created_at', 'updated_at']

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    fieldsets = (
        (None, {
            'fields': ('owner', 'title', 'description')
        }),
        (_('Details'), {
            'fields': ('category', 'size', 'condition', 'status', 'images', 'tags')
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )


class TradeItemInline(admin.TabularInline):
    """Read-only offer lines of a trade."""
    model = TradeItem
    extra = 0
    fields = ['side', 'position', 'item', 'owner']
    readonly_fields = fields
    can_delete = False
    ordering = ['side', 'position']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Trade)
class TradeAdmin(admin.ModelAdmin):
    """
    Admin interface for Trade model.

    Negotiation state is read-only here; it only changes through the trade
    operations so the chat log stays in step.
    """

    list_display = [
        'id',
        'initiator',
        'receiver',
        'status',
        'initiator_accepted',
        'receiver_accepted',
        'updated_at',
    ]

    list_filter = [
        'status',
        'created_at',
    ]

    search_fields = [
        'initiator__email',
        'initiator__username',
        'receiver__email',
        'receiver__username',
    ]

    readonly_fields = [
        'initiator',
        'receiver',
        'status',
        'initiator_accepted',
        'receiver_accepted',
        'meeting_time',
        'meeting_location',
        'meeting_longitude',
        'meeting_latitude',
        'created_at',
        'updated_at',
    ]

    ordering = ['-updated_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    inlines = [TradeItemInline]

    fieldsets = (
        (None, {
            'fields': ('initiator', 'receiver', 'status')
        }),
        (_('Acceptance'), {
            'fields': ('initiator_accepted', 'receiver_accepted')
        }),
        (_('Meeting'), {
            'fields': ('meeting_time', 'meeting_location', 'meeting_longitude', 'meeting_latitude'),
            'classes': ('collapse',),
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    def has_add_permission(self, request):
        return False


class MessageInline(admin.TabularInline):
    model = Message
    extra = 0
    fields = ['timestamp', 'sender', 'message_type', 'content']
    readonly_fields = fields
    can_delete = False
    ordering = ['timestamp', 'id']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Chat)
class ChatAdmin(admin.ModelAdmin):
    """Read-only view of trade chats and their messages."""

    list_display = ['id', 'trade', 'last_message', 'updated_at']

    search_fields = ['participants__email', 'participants__username']

    readonly_fields = ['trade', 'participants', 'last_message', 'created_at', 'updated_at']

    ordering = ['-updated_at']

    list_per_page = 25

    inlines = [MessageInline]

    def has_add_permission(self, request):
        return False


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    """Messages are append-only, so the admin only lists them."""

    list_display = ['id', 'chat', 'sender', 'message_type', 'timestamp']

    list_filter = ['message_type', 'timestamp']

    search_fields = ['content', 'sender__email']

    ordering = ['-timestamp']

    list_per_page = 50

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    """Admin interface for Review model."""

    list_display = [
        'id',
        'reviewer',
        'reviewed',
        'trade',
        'rating',
        'created_at',
    ]

    list_filter = [
        'rating',
        'created_at',
    ]

    search_fields = [
        'reviewer__email',
        'reviewer__username',
        'reviewed__email',
        'reviewed__username',
        'comment',
    ]

    readonly_fields = ['trade', 'reviewer', 'reviewed', 'created_at', 'updated_at']

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    fieldsets = (
        (None, {
            'fields': ('trade', 'reviewer', 'reviewed')
        }),
        (_('Review Content'), {
            'fields': ('rating', 'comment')
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    def has_add_permission(self, request):
        return False
