"""
Custom validators for users, listings and meeting locations.
"""

import re
from django.core.exceptions import ValidationError
from django.core.validators import URLValidator

MAX_TAGS = 20
MAX_TAG_LENGTH = 30
MAX_IMAGES = 10
MAX_IMAGE_URL_LENGTH = 500


def validate_phone_number(value):
    """
    Validate phone number format.

    Accepts international formats with optional country codes, spaces, dashes, and parentheses.
    Requires at least 10 digits.

    Valid formats:
    - +1-234-567-8900
    - +44 20 7946 0958
    - +1 (234) 567-8900
    - 2345678900

    Args:
        value: Phone number string to validate

    Raises:
        ValidationError: If phone number format is invalid
    """
    if not value:  # Empty string is allowed (optional field)
        return

    if not re.match(r'^[\d\s\-\+\(\)]+$', value):
        raise ValidationError(
            'Phone number can only contain digits, spaces, dashes, parentheses, and plus sign.',
            code='invalid_phone_chars'
        )

    digits = re.sub(r'\D', '', value)

    if len(digits) < 10:
        raise ValidationError(
            'Phone number must contain at least 10 digits.',
            code='phone_too_short'
        )

    if len(set(digits)) == 1:
        raise ValidationError(
            'Phone number cannot be all the same digit.',
            code='invalid_phone_pattern'
        )


def validate_coordinate_pair(value):
    """
    Validate a meeting point given as [longitude, latitude].

    Args:
        value: Sequence of two numbers

    Raises:
        ValidationError: If the pair is malformed or out of range
    """
    if value is None:
        return

    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise ValidationError(
            'Coordinates must be a [longitude, latitude] pair.',
            code='invalid_coordinates'
        )

    longitude, latitude = value

    for number in (longitude, latitude):
        if isinstance(number, bool) or not isinstance(number, (int, float)):
            raise ValidationError(
                'Coordinates must be numbers.',
                code='invalid_coordinates'
            )

    if not -180 <= longitude <= 180:
        raise ValidationError(
            'Longitude must be between -180 and 180.',
            code='longitude_out_of_range'
        )

    if not -90 <= latitude <= 90:
        raise ValidationError(
            'Latitude must be between -90 and 90.',
            code='latitude_out_of_range'
        )


def validate_tags(value):
    """
    Validate a comma separated tag string.

    At most 20 tags of up to 30 characters each.
    """
    if not value:
        return

    tags = [tag.strip() for tag in value.split(',') if tag.strip()]

    if len(tags) > MAX_TAGS:
        raise ValidationError(
            f'An item can have at most {MAX_TAGS} tags.',
            code='too_many_tags'
        )

    for tag in tags:
        if len(tag) > MAX_TAG_LENGTH:
            raise ValidationError(
                f'Tag "{tag}" is longer than {MAX_TAG_LENGTH} characters.',
                code='tag_too_long'
            )


def validate_image_urls(value):
    """
    Validate the photo list of a listing.

    Expects a list of up to 10 http(s) URLs, each at most 500 characters.

    Raises:
        ValidationError: If the value is not a list or holds a bad URL
    """
    if value is None:
        return

    if not isinstance(value, list):
        raise ValidationError(
            'Images must be a list of URLs.',
            code='invalid_images'
        )

    if len(value) > MAX_IMAGES:
        raise ValidationError(
            f'An item can have at most {MAX_IMAGES} images.',
            code='too_many_images'
        )

    url_validator = URLValidator(schemes=['http', 'https'])
    for url in value:
        if not isinstance(url, str) or len(url) > MAX_IMAGE_URL_LENGTH:
            raise ValidationError(
                f'Each image must be a URL of at most {MAX_IMAGE_URL_LENGTH} characters.',
                code='invalid_image_url'
            )
        try:
            url_validator(url)
        except ValidationError:
            raise ValidationError(
                f'"{url}" is not a valid image URL.',
                code='invalid_image_url'
            )
