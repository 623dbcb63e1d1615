"""
Authentication backend that lets swappers log in with their email address.
"""

from django.contrib.auth.backends import ModelBackend
from django.contrib.auth import get_user_model

User = get_user_model()


class EmailBackend(ModelBackend):
    """
    Authenticate against the unique, lowercased ``User.email`` field.
    """

    def authenticate(self, request, username=None, password=None, **kwargs):
        """
        Authenticate user using email instead of username.

        Args:
            request: HTTP request object
            username: Email address (named username for compatibility)
            password: User password
            **kwargs: May carry ``email`` instead of ``username``

        Returns:
            User object if authentication successful, None otherwise
        """
        email = kwargs.get('email', username)

        if email is None or password is None:
            return None

        try:
            user = User.objects.get(email__iexact=email.strip())
        except User.DoesNotExist:
            # Run the default password hasher once to reduce the timing
            # difference between an existing and a nonexistent user
            User().set_password(password)
            return None

        if user.check_password(password) and self.user_can_authenticate(user):
            return user

        return None
