"""Military-interest classification from identifier and callsign prefixes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Literal, Optional, Sequence

RuleField = Literal["icao24", "callsign"]


@dataclass(frozen=True)
class PrefixRule:
    """One tagged prefix family; matching is case-insensitive."""

    field: RuleField
    prefix: str
    tag: str
    asset_type: str = "aircraft"

    def matches(self, value: str) -> bool:
        return value.upper().startswith(self.prefix.upper())


DEFAULT_RULES: tuple[PrefixRule, ...] = (
    PrefixRule("icao24", "43C", "uk_military_hex"),
    PrefixRule("icao24", "400", "uk_hex_block"),
    PrefixRule("icao24", "ADF8", "us_military_hex"),
    PrefixRule("icao24", "ADF9", "us_military_hex"),
    PrefixRule("callsign", "RRR", "raf_tanker_transport"),
    PrefixRule("callsign", "ASCOT", "raf_air_mobility"),
    PrefixRule("callsign", "KNIFE", "raf_training"),
    PrefixRule("callsign", "TARTAN", "raf_tanker"),
    PrefixRule("callsign", "RESCUE", "search_and_rescue"),
    PrefixRule("callsign", "ROYAL", "royal_flight"),
)


def build_rules(
    hex_prefixes: Iterable[str] = (),
    callsign_prefixes: Iterable[str] = (),
) -> tuple[PrefixRule, ...]:
    """Build a rule table from plain prefix lists, falling back to the defaults per field."""

    hex_rules = tuple(PrefixRule("icao24", prefix, "configured_hex") for prefix in hex_prefixes)
    callsign_rules = tuple(
        PrefixRule("callsign", prefix, "configured_callsign") for prefix in callsign_prefixes
    )
    if not hex_rules:
        hex_rules = tuple(rule for rule in DEFAULT_RULES if rule.field == "icao24")
    if not callsign_rules:
        callsign_rules = tuple(rule for rule in DEFAULT_RULES if rule.field == "callsign")
    return hex_rules + callsign_rules


class Classifier:
    """Evaluate a prefix rule table against a record's identifier and callsign."""

    def __init__(self, rules: Sequence[PrefixRule] = DEFAULT_RULES) -> None:
        self.rules = tuple(rules)

    def match(self, icao24: Optional[str], callsign: Optional[str]) -> Optional[PrefixRule]:
        """Return the first rule matching either field, or None."""

        values = {
            "icao24": icao24.strip() if icao24 else "",
            "callsign": callsign.strip() if callsign else "",
        }
        for rule in self.rules:
            value = values[rule.field]
            if value and rule.matches(value):
                return rule
        return None

    def is_of_interest(self, icao24: Optional[str], callsign: Optional[str]) -> bool:
        return self.match(icao24, callsign) is not None


_default_classifier = Classifier()


def is_of_interest(icao24: Optional[str], callsign: Optional[str]) -> bool:
    """Classify with the built-in rule table."""

    return _default_classifier.is_of_interest(icao24, callsign)


__all__ = ["Classifier", "DEFAULT_RULES", "PrefixRule", "build_rules", "is_of_interest"]
