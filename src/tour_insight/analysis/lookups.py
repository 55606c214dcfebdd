"""Depot and carrier lookup tables.

Both lookups are ordered rule tables evaluated first-match-wins, so the
tie-break order is visible in the data rather than buried in conditionals.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Mapping

UNKNOWN = "Inconnu"

DEFAULT_DEPOT_PREFIXES: dict[str, list[str]] = {
    "Aix": ["Aix"],
    "Castries": ["Cast"],
    "Rungis": ["Rung"],
    "Antibes": ["Solo"],
    "VLG": ["Villeneuve", "Vill"],
    "Vitry": ["Vitr"],
}


# ---------------------------------------------------------------------------
# Depots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DepotRule:
    prefix: str
    depot: str


class DepotLookup:
    """Map a warehouse name to its depot group.

    Rules are sorted by prefix length (longest first, then declaration
    order), and matched case-insensitively against the start of the
    warehouse name.  When nothing matches, the first whitespace-delimited
    token of the warehouse name is used.
    """

    def __init__(self, prefixes: Mapping[str, list[str]] | None = None) -> None:
        table = DEFAULT_DEPOT_PREFIXES if prefixes is None else prefixes
        rules: list[DepotRule] = []
        for depot, depot_prefixes in table.items():
            for prefix in depot_prefixes:
                if prefix:
                    rules.append(DepotRule(prefix=prefix.lower(), depot=depot))
        # sorted() is stable: equal lengths keep declaration order
        self.rules: tuple[DepotRule, ...] = tuple(
            sorted(rules, key=lambda r: len(r.prefix), reverse=True)
        )

    def depot_for(self, warehouse: str | None) -> str:
        if not warehouse or not warehouse.strip():
            return UNKNOWN
        lowered = warehouse.strip().lower()
        for rule in self.rules:
            if lowered.startswith(rule.prefix):
                return rule.depot
        return warehouse.split()[0]

    __call__ = depot_for


DEFAULT_DEPOT_LOOKUP = DepotLookup()


# ---------------------------------------------------------------------------
# Carriers
# ---------------------------------------------------------------------------


def _stt_carrier(driver: str) -> str:
    tokens = driver[4:].split()
    return tokens[0] if tokens else "STT"


_SUFFIX_CARRIERS: dict[str, str] = {
    "3": "BC one",
    "0": "DUB",
    "8": "GPC",
    "7": "GPL",
    "6": "RK",
    "2": "Express",
    "5": "MLG",
}

# (name, predicate, resolver) evaluated in order
CARRIER_RULES: tuple[tuple[str, Callable[[str], bool], Callable[[str], str]], ...] = (
    ("id_log", lambda d: "ID LOG" in d, lambda d: "ID LOG"),
    ("stt", lambda d: d.startswith("STT"), _stt_carrier),
    ("suffix", lambda d: d[-1:] in _SUFFIX_CARRIERS, lambda d: _SUFFIX_CARRIERS[d[-1]]),
)


def carrier_for(driver: str | None) -> str | None:
    """Derive the carrier of a driver from naming conventions, or None."""
    if not driver:
        return None
    for _name, matches, resolve in CARRIER_RULES:
        if matches(driver):
            return resolve(driver)
    return None
