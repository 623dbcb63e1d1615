"""
Tests for registration, login, JWT tokens, logout and profiles.
"""

import jwt
import pytest
from django.conf import settings
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework import status
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken

User = get_user_model()


@pytest.fixture(autouse=True)
def clear_cache(db):
    """Clear Django cache before each test to reset throttle limits."""
    from django.core.cache import cache
    cache.clear()


@pytest.fixture
def api_client():
    """Provide API client for testing."""
    return APIClient()


@pytest.fixture
def user(db):
    """Create a user for testing."""
    return User.objects.create_user(
        username='swapper@test.com',
        email='swapper@test.com',
        password='TestPass123!',
        first_name='Sam',
        last_name='Swapper',
    )


@pytest.fixture
def registration_data():
    return {
        'email': 'New.User@Test.com',
        'password': 'SecurePass123!',
        'confirm_password': 'SecurePass123!',
        'first_name': 'New',
        'last_name': 'User',
    }


def login(api_client, email='swapper@test.com', password='TestPass123!'):
    return api_client.post('/api/auth/login/', {
        'email': email,
        'password': password,
    }, format='json')


# ============================================================================
# Registration
# ============================================================================

@pytest.mark.django_db
class TestRegistration:

    def test_register_creates_level_one_user(self, api_client, registration_data):
        response = api_client.post('/api/auth/register/', registration_data, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['email'] == 'new.user@test.com'
        assert response.data['level'] == 1
        assert 'password' not in response.data
        assert 'confirm_password' not in response.data

        created = User.objects.get(email='new.user@test.com')
        assert created.check_password('SecurePass123!')
        assert created.experience == 0

    def test_duplicate_email_is_rejected(self, api_client, user, registration_data):
        registration_data['email'] = 'SWAPPER@test.com'

        response = api_client.post('/api/auth/register/', registration_data, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'email' in response.data

    def test_password_mismatch_is_rejected(self, api_client, registration_data):
        registration_data['confirm_password'] = 'Different123!'

        response = api_client.post('/api/auth/register/', registration_data, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'confirm_password' in response.data

    def test_weak_password_is_rejected(self, api_client, registration_data):
        registration_data['password'] = registration_data['confirm_password'] = '123'

        response = api_client.post('/api/auth/register/', registration_data, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'password' in response.data

    def test_invalid_phone_is_rejected(self, api_client, registration_data):
        registration_data['phone_number'] = 'call me'

        response = api_client.post('/api/auth/register/', registration_data, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'phone_number' in response.data

    def test_username_drops_characters_the_validator_rejects(self, api_client, registration_data):
        registration_data['email'] = "O'Neil@test.com"

        response = api_client.post('/api/auth/register/', registration_data, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        created = User.objects.get(email="o'neil@test.com")
        assert created.username == 'oneil@test.com'
        created.full_clean()

    def test_username_collision_gets_suffix(self, api_client, registration_data):
        User.objects.create_user(
            username='oneil@test.com', email='oneil@test.com', password='TestPass123!'
        )
        registration_data['email'] = "o'neil@test.com"

        response = api_client.post('/api/auth/register/', registration_data, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert User.objects.get(email="o'neil@test.com").username == 'oneil@test.com-1'

    def test_user_with_apostrophe_email_can_obtain_tokens(self, api_client, registration_data):
        registration_data['email'] = "o'neil@test.com"
        api_client.post('/api/auth/register/', registration_data, format='json')

        response = api_client.post('/api/token/', {
            'email': "o'neil@test.com",
            'password': 'SecurePass123!',
        }, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert User.objects.get(email="o'neil@test.com").last_login is not None


# ============================================================================
# Login and tokens
# ============================================================================

@pytest.mark.django_db
class TestLogin:

    def test_login_returns_tokens_and_level(self, api_client, user):
        response = login(api_client)

        assert response.status_code == status.HTTP_200_OK
        assert 'access' in response.data
        assert 'refresh' in response.data
        assert response.data['user']['id'] == user.id
        assert response.data['user']['level'] == 1
        assert response.data['user']['level_color'] == '#808080'

    def test_login_is_case_insensitive(self, api_client, user):
        response = login(api_client, email='SWAPPER@TEST.COM')

        assert response.status_code == status.HTTP_200_OK

    def test_wrong_password_gets_generic_error(self, api_client, user):
        response = login(api_client, password='WrongPass123!')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['detail'] == 'Invalid credentials'

    def test_unknown_email_gets_same_error(self, api_client, user):
        response = login(api_client, email='nobody@test.com')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['detail'] == 'Invalid credentials'

    def test_login_is_rate_limited(self, api_client, user):
        for _ in range(5):
            login(api_client, password='WrongPass123!')

        response = login(api_client)

        assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS

    def test_token_endpoint_accepts_email(self, api_client, user):
        response = api_client.post('/api/token/', {
            'email': 'swapper@test.com',
            'password': 'TestPass123!',
        }, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert 'access' in response.data

    def test_access_token_carries_user_id(self, api_client, user):
        access = login(api_client).data['access']

        payload = jwt.decode(access, settings.SIMPLE_JWT['SIGNING_KEY'], algorithms=['HS256'])

        assert str(payload['user_id']) == str(user.id)
        assert payload['token_type'] == 'access'

    def test_access_token_authenticates_requests(self, api_client, user):
        access = login(api_client).data['access']
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {access}')

        response = api_client.get('/api/auth/profile/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['email'] == 'swapper@test.com'


@pytest.mark.django_db
class TestTokenRefresh:

    def test_refresh_rotates_tokens(self, api_client, user):
        refresh = login(api_client).data['refresh']

        response = api_client.post('/api/token/refresh/', {'refresh': refresh}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert 'access' in response.data
        assert response.data['refresh'] != refresh

    def test_rotated_token_cannot_be_reused(self, api_client, user):
        refresh = login(api_client).data['refresh']
        api_client.post('/api/token/refresh/', {'refresh': refresh}, format='json')

        response = api_client.post('/api/token/refresh/', {'refresh': refresh}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_garbage_token_is_rejected(self, api_client):
        response = api_client.post('/api/token/refresh/', {'refresh': 'not-a-token'}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_missing_token_is_rejected(self, api_client):
        response = api_client.post('/api/token/refresh/', {}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestLogout:

    def test_logout_blacklists_refresh_token(self, api_client, user):
        refresh = login(api_client).data['refresh']

        response = api_client.post('/api/auth/logout/', {'refresh': refresh}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert BlacklistedToken.objects.count() == 1

        response = api_client.post('/api/token/refresh/', {'refresh': refresh}, format='json')
        assert response.status_code == status.HTTP_401_UNAUTHORIZED


# ============================================================================
# Profiles
# ============================================================================

@pytest.mark.django_db
class TestProfile:

    def test_profile_shows_progression(self, api_client, user):
        api_client.force_authenticate(user=user)

        response = api_client.get('/api/auth/profile/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['level'] == 1
        assert response.data['experience'] == 0
        assert response.data['required_experience'] == 100
        assert response.data['level_color'] == '#808080'
        assert response.data['completed_trades'] == 0
        assert response.data['positive_reviews'] == 0

    def test_profile_requires_authentication(self, api_client):
        response = api_client.get('/api/auth/profile/')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_update_profile(self, api_client, user):
        api_client.force_authenticate(user=user)

        response = api_client.patch('/api/auth/profile/', {
            'first_name': 'Samantha',
            'phone_number': '+1 234 567 8900',
        }, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['first_name'] == 'Samantha'
        user.refresh_from_db()
        assert user.phone_number == '+1 234 567 8900'

    def test_progression_cannot_be_edited(self, api_client, user):
        api_client.force_authenticate(user=user)

        api_client.patch('/api/auth/profile/', {'level': 50, 'experience': 9999}, format='json')

        user.refresh_from_db()
        assert user.level == 1
        assert user.experience == 0

    def test_invalid_phone_is_rejected(self, api_client, user):
        api_client.force_authenticate(user=user)

        response = api_client.patch('/api/auth/profile/', {'phone_number': '1111111111'}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'phone_number' in response.data

    def test_public_profile_hides_contact_details(self, api_client, user):
        viewer = User.objects.create_user(
            username='viewer', email='viewer@test.com', password='TestPass123!'
        )
        api_client.force_authenticate(user=viewer)

        response = api_client.get(f'/api/users/{user.id}/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['display_name'] == 'Sam Swapper'
        assert response.data['level_color'] == '#808080'
        assert 'email' not in response.data
        assert 'phone_number' not in response.data
