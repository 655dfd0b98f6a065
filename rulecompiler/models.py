#!/usr/bin/env python3
"""
models.py - Rule and Tracker Database Structures

Typed structures for everything the compiler reads and writes:

    Rule            One compiled regex rule plus its options
    RuleOptions     Request types and domains a rule applies to
    HostRecord      One host entry of the tracker database
    TrackerDatabase category -> host -> HostRecord

JSON SHAPE:
    Rules keep the shape the matching engine already consumes:

        {"rule": "example\\.com/track($|[?/])",
         "options": {"types": ["script"], "domains": ["foo.com"]}}

    Host records carry arbitrary fields (company name, url, ...) next to the
    "rule" and "whitelist" lists. Only the lists are modelled; every other
    field is passed through untouched.

Deserialization validates the shape and raises DatabaseFormatError with the
path of the offending value instead of trusting the file blindly.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final

# ============================================================================
# CONSTANTS
# ============================================================================

#: Rule-type labels a run can populate
RULE_TYPES: Final[tuple[str, ...]] = ("rule", "whitelist")

#: JSON key holding the regex pattern of a rule
PATTERN_KEY: Final[str] = "rule"
OPTIONS_KEY: Final[str] = "options"

#: "\/" not preceded by another backslash; older databases escape "/"
ESCAPED_SLASH_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?<!\\)((?:\\\\)*)\\/")


def pattern_key(pattern: str) -> str:
    r"""
    Key two patterns are paired by: the pattern with "\/" written as "/".

    Example:
        >>> pattern_key(r"a\.com\/x") == pattern_key(r"a\.com/x")
        True
    """
    return ESCAPED_SLASH_PATTERN.sub(r"\1/", pattern)


# ============================================================================
# ERRORS
# ============================================================================

class MalformedPatternError(AssertionError):
    """A translated filter did not compile as a regular expression."""

    def __init__(self, filter_line: str, pattern: str, error: re.error):
        super().__init__(
            f"Translated pattern does not compile: {pattern!r} "
            f"(from filter {filter_line!r}): {error}"
        )
        self.filter_line = filter_line
        self.pattern = pattern


class DatabaseFormatError(ValueError):
    """Tracker database JSON does not have the expected shape."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class RuleOptions:
    """
    Request-type and domain qualifiers of a rule.

    Attributes:
        types: Request types the rule is limited to ("script", "image", ...),
            or None when the key is absent
        domains: Domains the rule applies on, or None when unrestricted
        extra: Unknown option keys carried by rules already in the database
    """
    types: tuple[str, ...] | None = None
    domains: tuple[str, ...] | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False, hash=False, repr=False)

    def is_empty(self) -> bool:
        return self.types is None and self.domains is None and not self.extra

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        if self.types is not None:
            data["types"] = list(self.types)
        if self.domains is not None:
            data["domains"] = list(self.domains)
        return data


@dataclass(frozen=True)
class Rule:
    """
    A compiled blocking (or whitelisting) rule.

    A RuleTable treats two rules as the same rule iff their patterns are
    identical. Options and extra fields never decide that, they only get
    merged.

    Attributes:
        pattern: Regex matched against request URLs
        options: Optional request-type/domain qualifiers. An empty
            RuleOptions is kept and written back as "options": {}
        extra: Unknown keys carried by rules already in the database
    """
    pattern: str
    options: RuleOptions | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        data[PATTERN_KEY] = self.pattern
        if self.options is not None:
            data[OPTIONS_KEY] = self.options.to_json()
        return data


@dataclass
class HostRecord:
    """
    One host entry of the tracker database.

    Attributes:
        rules: rule-type ("rule"/"whitelist") -> list of rules
        fields: Every other key of the record, left as loaded
    """
    rules: dict[str, list[Rule]] = field(default_factory=dict)
    fields: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        data = dict(self.fields)
        for rule_type, rules in self.rules.items():
            data[rule_type] = [r.to_json() for r in rules]
        return data


# category -> host -> record
TrackerDatabase = dict[str, dict[str, HostRecord]]

# pattern -> rule, one entry per distinct pattern
RuleTable = dict[str, Rule]

# host -> rule-type -> rules in discovery order
HostRuleGroup = dict[str, dict[str, list[Rule]]]

# per-host rule groups without a database match
OrphanList = list[dict[str, Any]]


# ============================================================================
# DESERIALIZATION
# ============================================================================

def _string_list(value: Any, path: str) -> tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise DatabaseFormatError(path, "expected a list of strings")
    return tuple(value)


def options_from_json(data: Any, path: str = "options") -> RuleOptions:
    """Build RuleOptions from its JSON object, keeping unknown keys."""
    if not isinstance(data, dict):
        raise DatabaseFormatError(path, "expected an object")

    types = _string_list(data["types"], f"{path}/types") if "types" in data else None
    domains = _string_list(data["domains"], f"{path}/domains") if "domains" in data else None
    extra = {k: v for k, v in data.items() if k not in ("types", "domains")}
    return RuleOptions(types=types, domains=domains, extra=extra)


def rule_from_json(data: Any, path: str = "rule") -> Rule:
    """
    Build a Rule from its JSON object.

    Example:
        >>> rule_from_json({"rule": "ads/.*", "options": {"types": ["script"]}}).options
        RuleOptions(types=('script',), domains=None)
    """
    if not isinstance(data, dict):
        raise DatabaseFormatError(path, "expected a rule object")
    pattern = data.get(PATTERN_KEY)
    if not isinstance(pattern, str):
        raise DatabaseFormatError(path, f"missing string '{PATTERN_KEY}'")

    options = None
    extra = {k: v for k, v in data.items() if k != PATTERN_KEY}
    if extra.get(OPTIONS_KEY) is not None:
        options = options_from_json(extra.pop(OPTIONS_KEY), f"{path}/{OPTIONS_KEY}")
    return Rule(pattern=pattern, options=options, extra=extra)


def rules_from_json(data: Any, path: str) -> list[Rule]:
    if not isinstance(data, list):
        raise DatabaseFormatError(path, "expected a list of rules")
    return [rule_from_json(item, f"{path}[{i}]") for i, item in enumerate(data)]


def host_record_from_json(data: Any, path: str) -> HostRecord:
    if not isinstance(data, dict):
        raise DatabaseFormatError(path, "expected a host record object")

    record = HostRecord()
    for key, value in data.items():
        if key in RULE_TYPES:
            record.rules[key] = rules_from_json(value, f"{path}/{key}")
        else:
            record.fields[key] = value
    return record


def database_from_json(data: Any) -> TrackerDatabase:
    """
    Validate and convert a decoded tracker database.

    Raises:
        DatabaseFormatError: If any category, host record or rule is malformed
    """
    if not isinstance(data, dict):
        raise DatabaseFormatError("<root>", "expected an object of categories")

    database: TrackerDatabase = {}
    for category, hosts in data.items():
        if not isinstance(hosts, dict):
            raise DatabaseFormatError(category, "expected an object of hosts")
        database[category] = {
            host: host_record_from_json(record, f"{category}/{host}")
            for host, record in hosts.items()
        }
    return database


def database_to_json(database: TrackerDatabase) -> dict[str, Any]:
    return {
        category: {host: record.to_json() for host, record in hosts.items()}
        for category, hosts in database.items()
    }


def rule_group_to_json(group: dict[str, list[Rule]]) -> dict[str, Any]:
    return {rule_type: [r.to_json() for r in rules] for rule_type, rules in group.items()}


# ============================================================================
# FILE I/O
# ============================================================================

def load_database(path: str | Path) -> TrackerDatabase:
    """Read and validate a tracker database file."""
    db_path = Path(path)
    if not db_path.is_file():
        raise FileNotFoundError(f"Tracker database not found: {path}")

    with open(db_path, encoding="utf-8-sig") as f:
        return database_from_json(json.load(f))


def dump_json(data: Any, path: Path) -> None:
    """Write JSON with stable key order and 4-space indentation."""
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        json.dump(data, f, indent=4, sort_keys=True)
        f.write("\n")
