"""API key format, hashing and role helpers."""

from __future__ import annotations

import hmac
import secrets
from dataclasses import dataclass
from hashlib import sha256

API_KEY_HEADER = "X-ForceFlow-API-Key"
DEFAULT_KEY_PREFIX = "ff_live"
TEST_KEY_PREFIX = "ff_test"
LOOKUP_PREFIX_LENGTH = 8

# Ordered from least to most privileged
ROLES = ("viewer", "analyst", "admin")


@dataclass
class ApiKeyPrincipal:
    """Caller identity resolved from an API key."""

    email: str
    key_id: str
    role: str = "viewer"
    label: str | None = None

    def has_role(self, *allowed: str) -> bool:
        return self.role in allowed


def generate_api_key(*, test: bool = False) -> str:
    """Return a new ``<prefix>_<64 hex chars>`` key."""

    prefix = TEST_KEY_PREFIX if test else DEFAULT_KEY_PREFIX
    return f"{prefix}_{secrets.token_hex(32)}"


def key_prefix(api_key: str, length: int = LOOKUP_PREFIX_LENGTH) -> str:
    """Leading characters of the random part, stored in clear for lookup."""

    return api_key.strip().rsplit("_", maxsplit=1)[-1][:length]


def hash_api_key(api_key: str, pepper: str) -> str:
    if not pepper:
        raise ValueError("API key pepper must be configured to hash keys")
    return hmac.new(pepper.encode(), api_key.strip().encode(), sha256).hexdigest()


def verify_api_key(api_key: str, pepper: str, stored_hash: str) -> bool:
    return hmac.compare_digest(hash_api_key(api_key, pepper), stored_hash)


def is_test_key(api_key: str) -> bool:
    return api_key.strip().startswith(f"{TEST_KEY_PREFIX}_")
