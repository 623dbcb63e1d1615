"""
URL configuration for clothing_swap project.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""
from django.contrib import admin
from django.urls import path
from rest_framework_simplejwt.views import (
    TokenVerifyView,
    TokenBlacklistView,
)
from core.views import (
    EmailTokenObtainPairView,
    UserRegistrationView,
    LoginView,
    CustomTokenRefreshView,
    UserProfileView,
    PublicUserView,
    ClothingListCreateView,
    ClothingItemDetailView,
    TradeListCreateView,
    TradeDetailView,
    TradeCompleteView,
    ChatListView,
    ChatDetailView,
    ReviewView,
)


urlpatterns = [
    path('admin/', admin.site.urls),

    # Authentication endpoints
    path('api/auth/register/', UserRegistrationView.as_view(), name='user_register'),
    path('api/auth/login/', LoginView.as_view(), name='user_login'),
    path('api/auth/logout/', TokenBlacklistView.as_view(), name='user_logout'),
    path('api/auth/profile/', UserProfileView.as_view(), name='user_profile'),
    path('api/users/<int:pk>/', PublicUserView.as_view(), name='user_detail'),

    # Listing endpoints
    path('api/clothing/', ClothingListCreateView.as_view(), name='clothing_list'),
    path('api/clothing/<int:pk>/', ClothingItemDetailView.as_view(), name='clothing_detail'),

    # Trade endpoints
    path('api/trades/', TradeListCreateView.as_view(), name='trade_list'),
    path('api/trades/<int:pk>/', TradeDetailView.as_view(), name='trade_detail'),
    path('api/trades/<int:pk>/complete/', TradeCompleteView.as_view(), name='trade_complete'),

    # Chat endpoints
    path('api/chats/', ChatListView.as_view(), name='chat_list'),
    path('api/chats/<int:pk>/', ChatDetailView.as_view(), name='chat_detail'),

    # Review endpoints
    path('api/reviews/', ReviewView.as_view(), name='reviews'),

    # JWT Authentication endpoints
    path('api/token/', EmailTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('api/token/refresh/', CustomTokenRefreshView.as_view(), name='token_refresh'),
    path('api/token/verify/', TokenVerifyView.as_view(), name='token_verify'),
]
