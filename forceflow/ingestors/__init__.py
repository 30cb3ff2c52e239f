"""Upstream feed ingestors for ForceFlow."""

from .classifier import Classifier, DEFAULT_RULES, PrefixRule, build_rules, is_of_interest
from .credentials import OpenSkyCredentialManager
from .normalizer import country_code_for, normalize_state
from .opensky import FeedSnapshot, OpenSkyFeedFetcher

__all__ = [
    "Classifier",
    "DEFAULT_RULES",
    "FeedSnapshot",
    "OpenSkyCredentialManager",
    "OpenSkyFeedFetcher",
    "PrefixRule",
    "build_rules",
    "country_code_for",
    "is_of_interest",
    "normalize_state",
]
