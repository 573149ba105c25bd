"""Shared constants for the chat reconciler."""

from enum import IntEnum

# HTTP status codes
HTTP_OK = 200
HTTP_MULTIPLE_CHOICES = 300
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409
HTTP_RATE_LIMIT = 429
HTTP_INTERNAL_ERROR = 500
HTTP_SERVER_ERROR_MIN = 500
HTTP_SERVICE_UNAVAILABLE = 503

# Paging
DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 1000
DEFAULT_RESULT_LIMIT = 100

# Sendbird error codes that carry REST semantics inside a 400 response
TARGET_RESOURCE_ALREADY_EXISTS = 400202
TARGET_RESOURCE_NOT_FOUND = 400201

# Nested dependency migration never goes deeper than this
MAX_DEPENDENCY_DEPTH = 1

# Locales carried in listing snapshots
LISTING_LOCALES = ("fr", "de", "it")


class ListingState(IntEnum):
    """State of the listing snapshot stored in channel attributes."""

    ACTIVE = 1
    BLOCKED = 2
