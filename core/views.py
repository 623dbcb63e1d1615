"""
API views for the Clothing Swap marketplace.
"""

import logging
from rest_framework_simplejwt.views import TokenObtainPairView
from rest_framework_simplejwt.serializers import TokenRefreshSerializer
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.exceptions import TokenError, InvalidToken
from rest_framework import generics, status
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.views import APIView
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from django.db import IntegrityError
from django.db.models import ProtectedError
from django.contrib.auth import get_user_model

from . import chat as chat_log
from . import reviews as review_ledger
from . import trades as trade_machine
from .exceptions import SwapError
from .models import ClothingItem
from .permissions import IsOwnerOrReadOnly
from .serializers import (
    EmailTokenObtainPairSerializer,
    UserRegistrationSerializer,
    LoginSerializer,
    PublicUserSerializer,
    UserProfileSerializer,
    UserProfileUpdateSerializer,
    ClothingItemSerializer,
    TradeCreateSerializer,
    TradeUpdateSerializer,
    TradeSerializer,
    ChatSerializer,
    ChatDetailSerializer,
    MessageCreateSerializer,
    MessageSerializer,
    ReviewSubmitSerializer,
    ReviewSerializer,
)

User = get_user_model()
logger = logging.getLogger(__name__)


def get_client_ip(request):
    """
    Get client IP address from request.
    Handles proxy headers for accurate IP detection.
    """
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def swap_error_response(error, request, action, target_id=None):
    """
    Turn a marketplace operation failure into a ``{detail, code}`` response.

    Args:
        error: SwapError raised by a trade, chat or review operation
        request: HTTP request (for user and IP in the log line)
        action: Short description of what was attempted
        target_id: Id of the trade or chat involved, if any
    """
    code = getattr(error.detail, 'code', None) or error.default_code

    logger.warning(
        f"{action} rejected. User: {request.user.id}, Target ID: {target_id}, "
        f"Code: {code}, Detail: {error.detail}, IP: {get_client_ip(request)}"
    )

    return Response(
        {'detail': str(error.detail), 'code': code},
        status=error.status_code
    )


# ============================================================================
# Accounts
# ============================================================================

class EmailTokenObtainPairView(TokenObtainPairView):
    """
    Custom view to use email-based authentication instead of username.
    """
    serializer_class = EmailTokenObtainPairSerializer


class UserRegistrationView(generics.CreateAPIView):
    """
    API endpoint for user registration.

    POST /api/auth/register/
    Request body: {"email", "password", "confirm_password", "first_name", ...}

    New users start at level 1 with no experience.
    """
    serializer_class = UserRegistrationSerializer
    permission_classes = [AllowAny]

    def create(self, request, *args, **kwargs):
        """
        Handle user registration.
        Catches IntegrityError for concurrent duplicate email attempts.
        """
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            self.perform_create(serializer)
        except IntegrityError:
            logger.warning(
                f"Registration failed - duplicate email. "
                f"Email: {serializer.validated_data.get('email')}, IP: {get_client_ip(request)}"
            )
            return Response(
                {'email': ['A user with that email already exists.']},
                status=status.HTTP_400_BAD_REQUEST
            )

        logger.info(
            f"User registered successfully. User ID: {serializer.instance.id}, "
            f"IP: {get_client_ip(request)}"
        )

        headers = self.get_success_headers(serializer.data)
        return Response(serializer.data, status=status.HTTP_201_CREATED, headers=headers)


class LoginView(APIView):
    """
    API endpoint for user login with JWT token generation.

    Security features:
    - Rate limiting: 5 attempts per minute per IP
    - Generic error messages to prevent user enumeration
    - Failed login attempt logging for security monitoring

    POST /api/auth/login/
    Request body: {"email": "user@example.com", "password": "password123"}

    Success response (200):
    {
        "access": "<jwt_access_token>",
        "refresh": "<jwt_refresh_token>",
        "user": {"id": 1, "email": "user@example.com", "level": 1, "level_color": "#808080"}
    }

    Error response (401): {"detail": "Invalid credentials"}
    """
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'login'
    serializer_class = LoginSerializer

    def post(self, request, *args, **kwargs):
        serializer = LoginSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        email = serializer.validated_data['email'].lower().strip()
        password = serializer.validated_data['password']
        client_ip = get_client_ip(request)

        user = User.objects.filter(email__iexact=email).first()

        if user is None or not user.check_password(password) or not user.is_active:
            logger.warning(
                f"Failed login attempt. Email: {email}, IP: {client_ip}"
            )
            return Response(
                {'detail': 'Invalid credentials'},
                status=status.HTTP_401_UNAUTHORIZED
            )

        refresh = RefreshToken.for_user(user)

        logger.info(f"Successful login. User ID: {user.id}, IP: {client_ip}")

        return Response({
            'access': str(refresh.access_token),
            'refresh': str(refresh),
            'user': {
                'id': user.id,
                'email': user.email,
                'level': user.level,
                'level_color': user.level_color,
            }
        }, status=status.HTTP_200_OK)


class CustomTokenRefreshView(APIView):
    """
    API endpoint for refreshing JWT access tokens.

    - Rate limiting: 10 requests per minute per IP
    - Rotation and blacklisting follow the SIMPLE_JWT settings

    POST /api/token/refresh/
    Request body: {"refresh": "<jwt_refresh_token>"}

    Error responses:
    - 400: Missing refresh field
    - 401: Invalid, expired, or blacklisted refresh token
    """
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'refresh'

    def post(self, request, *args, **kwargs):
        client_ip = get_client_ip(request)
        serializer = TokenRefreshSerializer(data=request.data)

        try:
            if not serializer.is_valid():
                return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        except (TokenError, InvalidToken, AuthenticationFailed) as e:
            logger.warning(
                f"Failed token refresh attempt. Error: {str(e)}, IP: {client_ip}"
            )
            return Response({'detail': str(e)}, status=status.HTTP_401_UNAUTHORIZED)

        logger.info(f"Successful token refresh. IP: {client_ip}")

        return Response(serializer.validated_data, status=status.HTTP_200_OK)


class UserProfileView(APIView):
    """
    API endpoint for retrieving and updating the authenticated user's profile.

    GET /api/auth/profile/
    PUT/PATCH /api/auth/profile/ with any of first_name, last_name,
    phone_number, avatar_url.

    The profile includes level, experience, required_experience, level_color,
    completed_trades and positive_reviews.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        serializer = UserProfileSerializer(request.user, context={'request': request})
        return Response(serializer.data, status=status.HTTP_200_OK)

    def put(self, request, *args, **kwargs):
        return self._update_profile(request, partial=False)

    def patch(self, request, *args, **kwargs):
        return self._update_profile(request, partial=True)

    def _update_profile(self, request, partial=False):
        user = request.user
        serializer = UserProfileUpdateSerializer(
            user,
            data=request.data,
            partial=partial,
            context={'request': request}
        )

        if not serializer.is_valid():
            logger.warning(
                f"Profile update validation failed. "
                f"User ID: {user.id}, Errors: {serializer.errors}"
            )
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        serializer.save()

        logger.info(
            f"Profile updated successfully. User ID: {user.id}, Partial: {partial}"
        )

        return Response(
            UserProfileSerializer(user, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


class PublicUserView(generics.RetrieveAPIView):
    """
    Public profile card of any user: name, avatar, level and level colour.

    GET /api/users/<id>/
    """
    permission_classes = [IsAuthenticated]
    serializer_class = PublicUserSerializer
    queryset = User.objects.filter(is_active=True)


# ============================================================================
# Listings
# ============================================================================

class ClothingListCreateView(generics.ListCreateAPIView):
    """
    Create a listing or browse all available listings.

    GET /api/clothing/?category=&size=&condition=&owner=
    POST /api/clothing/ {"title", "description", "category", "size", "condition", "images", "tags"}

    Browsing shows newest first, paginated (20 per page).
    """
    permission_classes = [IsAuthenticated]
    serializer_class = ClothingItemSerializer
    pagination_class = PageNumberPagination

    def get_queryset(self):
        queryset = ClothingItem.objects.filter(status='available').select_related('owner')

        params = self.request.query_params
        for field in ('category', 'size', 'condition'):
            value = params.get(field)
            if value:
                queryset = queryset.filter(**{field: value})

        owner = params.get('owner')
        if owner and owner.isdigit():
            queryset = queryset.filter(owner_id=int(owner))

        return queryset.order_by('-created_at', '-id')

    def perform_create(self, serializer):
        item = serializer.save()
        logger.info(
            f"Clothing item listed. Item ID: {item.id}, Owner: {self.request.user.id}, "
            f"Category: {item.category}"
        )


class ClothingItemDetailView(generics.RetrieveUpdateDestroyAPIView):
    """
    Retrieve, update or delete a listing. Only the owner can modify it.

    GET/PATCH/PUT/DELETE /api/clothing/<id>/

    Items that are part of a trade cannot be deleted.
    """
    permission_classes = [IsAuthenticated, IsOwnerOrReadOnly]
    serializer_class = ClothingItemSerializer
    queryset = ClothingItem.objects.select_related('owner')

    def destroy(self, request, *args, **kwargs):
        item = self.get_object()

        try:
            item.delete()
        except ProtectedError:
            logger.warning(
                f"Listing delete rejected - item is part of a trade. "
                f"Item ID: {item.id}, User: {request.user.id}"
            )
            return Response(
                {'detail': 'This item is part of a trade and cannot be deleted.',
                 'code': 'item_in_trade'},
                status=status.HTTP_400_BAD_REQUEST
            )

        logger.info(f"Clothing item deleted. Item ID: {kwargs.get('pk')}, User: {request.user.id}")
        return Response(status=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Trades
# ============================================================================

class TradeListCreateView(APIView):
    """
    Propose a trade or list the caller's trades.

    POST /api/trades/
    Request body: {
        "receiver_id": 2,
        "initiator_item_ids": [1, 2],
        "receiver_item_ids": [7]
    }
    Success response (201): the trade, status "pending", both flags false.

    GET /api/trades/
    Trades the caller takes part in, most recently updated first, paginated.

    Error responses:
    - 400: Invalid input, unknown receiver or items not owned by the claimed party
    - 401: Missing, invalid, or expired JWT token
    """
    permission_classes = [IsAuthenticated]
    pagination_class = PageNumberPagination

    def get(self, request, *args, **kwargs):
        paginator = self.pagination_class()
        page = paginator.paginate_queryset(trade_machine.list_trades(request.user), request, view=self)
        serializer = TradeSerializer(page, many=True, context={'request': request})
        return paginator.get_paginated_response(serializer.data)

    def post(self, request, *args, **kwargs):
        serializer = TradeCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data

        try:
            trade = trade_machine.propose_trade(
                request.user,
                data['receiver_id'],
                data['initiator_item_ids'],
                data['receiver_item_ids'],
            )
        except SwapError as e:
            return swap_error_response(e, request, 'Trade proposal')

        return Response(
            TradeSerializer(trade, context={'request': request}).data,
            status=status.HTTP_201_CREATED
        )


class TradeDetailView(APIView):
    """
    Fetch a trade or apply one negotiation step to it.

    GET /api/trades/<id>/

    PATCH /api/trades/<id>/ with exactly one of:
    - {"receiver_item_ids": [..]}  counter-offer, clears both acceptances
    - {"accept": true}             accept the current offers
    - {"meeting": {"time": "...", "location": "...", "coordinates": [lng, lat]}}

    Error responses:
    - 400: Invalid input or the trade's status does not allow the step
    - 403: Caller is not a participant
    - 404: Trade not found
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, pk, *args, **kwargs):
        try:
            trade = trade_machine.get_trade(pk, request.user)
        except SwapError as e:
            return swap_error_response(e, request, 'Trade fetch', pk)

        return Response(TradeSerializer(trade, context={'request': request}).data)

    def patch(self, request, pk, *args, **kwargs):
        serializer = TradeUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        action = serializer.action
        data = serializer.validated_data

        try:
            if action == 'receiver_item_ids':
                trade = trade_machine.update_offer(pk, request.user, data['receiver_item_ids'])
            elif action == 'accept':
                trade = trade_machine.accept_trade(pk, request.user)
            else:
                meeting = data['meeting']
                trade = trade_machine.set_meeting(
                    pk,
                    request.user,
                    time=meeting.get('time'),
                    location=meeting.get('location', ''),
                    coordinates=meeting.get('coordinates'),
                )
        except SwapError as e:
            return swap_error_response(e, request, f'Trade update ({action})', pk)

        return Response(TradeSerializer(trade, context={'request': request}).data)


class TradeCompleteView(APIView):
    """
    Complete an accepted trade.

    POST /api/trades/<id>/complete/

    Both participants earn 50 XP plus 10 XP per traded item.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        try:
            trade = trade_machine.complete_trade(pk, request.user)
        except SwapError as e:
            return swap_error_response(e, request, 'Trade completion', pk)

        return Response(TradeSerializer(trade, context={'request': request}).data)


# ============================================================================
# Chats
# ============================================================================

class ChatListView(APIView):
    """
    GET /api/chats/

    Chats the caller takes part in, most recent message first, paginated.
    """
    permission_classes = [IsAuthenticated]
    pagination_class = PageNumberPagination

    def get(self, request, *args, **kwargs):
        paginator = self.pagination_class()
        page = paginator.paginate_queryset(chat_log.list_chats(request.user), request, view=self)
        serializer = ChatSerializer(page, many=True, context={'request': request})
        return paginator.get_paginated_response(serializer.data)


class ChatDetailView(APIView):
    """
    Read a chat or post a message to it.

    GET /api/chats/<id>/
    Returns the chat with every message in order and "poll_interval", the
    number of seconds clients wait between refreshes.

    POST /api/chats/<id>/ {"content": "Still available tomorrow?"}
    Success response (201): the new message.
    """
    permission_classes = [IsAuthenticated]
    throttle_scope = 'chat_message'

    def get_throttles(self):
        if self.request.method == 'POST':
            return [ScopedRateThrottle()]
        return []

    def get(self, request, pk, *args, **kwargs):
        try:
            chat = chat_log.get_chat(pk, request.user)
            messages = chat_log.fetch_messages(pk, request.user)
        except SwapError as e:
            return swap_error_response(e, request, 'Chat fetch', pk)

        serializer = ChatDetailSerializer(
            chat, context={'request': request, 'messages': messages}
        )
        return Response(serializer.data)

    def post(self, request, pk, *args, **kwargs):
        serializer = MessageCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            message = chat_log.append_user_message(
                pk, request.user, serializer.validated_data['content']
            )
        except SwapError as e:
            return swap_error_response(e, request, 'Chat message', pk)

        return Response(MessageSerializer(message).data, status=status.HTTP_201_CREATED)


# ============================================================================
# Reviews
# ============================================================================

class ReviewView(APIView):
    """
    Submit or list reviews of a completed trade.

    POST /api/reviews/ {"trade_id": 1, "rating": 5, "comment": "Great swap!"}
    The reviewed user is the other participant. Resubmitting overwrites the
    caller's earlier review. Returns 201 when created, 200 when overwritten.

    GET /api/reviews/?trade_id=<id>
    All reviews of the trade, for participants only.

    Error responses:
    - 400: Invalid input or trade not completed
    - 403: Caller is not a participant
    - 404: Trade not found
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        trade_id = request.query_params.get('trade_id')
        if not trade_id or not trade_id.isdigit():
            return Response(
                {'trade_id': ['A numeric trade_id query parameter is required.']},
                status=status.HTTP_400_BAD_REQUEST
            )

        try:
            reviews = review_ledger.list_reviews(int(trade_id), request.user)
        except SwapError as e:
            return swap_error_response(e, request, 'Review list', trade_id)

        return Response(ReviewSerializer(reviews, many=True).data)

    def post(self, request, *args, **kwargs):
        serializer = ReviewSubmitSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data

        try:
            review, created = review_ledger.submit_review(
                data['trade_id'], request.user, data['rating'], data['comment']
            )
        except SwapError as e:
            return swap_error_response(e, request, 'Review submission', data['trade_id'])

        return Response(
            ReviewSerializer(review).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK
        )
