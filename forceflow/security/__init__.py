"""API key authentication for the ForceFlow HTTP surface."""

from .api_keys import (
    API_KEY_HEADER,
    ROLES,
    ApiKeyPrincipal,
    generate_api_key,
    hash_api_key,
    is_test_key,
    key_prefix,
    verify_api_key,
)
from .dependencies import require_api_key, require_role

__all__ = [
    "API_KEY_HEADER",
    "ROLES",
    "ApiKeyPrincipal",
    "generate_api_key",
    "hash_api_key",
    "is_test_key",
    "key_prefix",
    "require_api_key",
    "require_role",
    "verify_api_key",
]
