"""
Error kinds raised by the trade, chat and review operations.

Each kind is a DRF ``APIException`` so it carries its own HTTP status and
error code. Views catch ``SwapError`` and turn it into a response.
"""

from rest_framework import status
from rest_framework.exceptions import APIException


class SwapError(APIException):
    """Base class for all marketplace operation failures."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'The request could not be completed.'
    default_code = 'swap_error'


class ValidationError(SwapError):
    """Malformed or inconsistent input, e.g. an item not owned by the claimed party."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid input.'
    default_code = 'validation_error'


class NotFoundError(SwapError):
    """The trade, chat or review targeted by the request does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = 'not_found'


class AuthorizationError(SwapError):
    """The acting user is not a participant of the trade or chat."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You do not have permission to perform this action.'
    default_code = 'not_participant'


class StateError(SwapError):
    """The operation is not valid for the trade's current status."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'This operation is not allowed in the current trade state.'
    default_code = 'invalid_state'
