#!/usr/bin/env python3
"""
translator.py - Adblock Filter to Regex Rule Translation

Converts one host-anchored adblock filter into a regex Rule. This is the first
stage of the pipeline, running BEFORE the compiler's merge pass.

Supported Syntax:
    Only host-anchored filters (||host/path...) are translated. Everything
    else (plain substrings, |left anchors, /regex/ filters, exceptions,
    cosmetic rules) is skipped and counted.

    ||example.com/track^                  ->  example\\.com/track($|[?/])
    ||ads.example.com/*$script            ->  ads\\.example\\.com/.*  types=[script]
    ||cdn.example.com^*/pixel             ->  cdn\\.example\\.com[?/].*/pixel

Design Decision - Skip First-Party:
    A filter carrying $first-party only matches requests a site makes to
    itself. Such traffic is never blocked here, so the WHOLE filter is
    skipped rather than stripped of the option.

Translation Order:
    The anchor/wildcard rewrites run in a fixed order. Later rewrites must not
    touch text produced by earlier ones: the lone-wildcard rewrite skips the
    "*" inside "[?/].*".
"""

from __future__ import annotations

import re
import sys
from typing import Final, Iterable, Iterator, NamedTuple

from rulecompiler.models import MalformedPatternError, Rule, RuleOptions

# ============================================================================
# CONFIGURATION
# ============================================================================

VERBOSE_LOGGING = False  # Set True to print every skipped filter

# ============================================================================
# SYNTAX MARKERS
# ============================================================================

HOST_ANCHOR: Final[str] = "||"
OPTION_SEPARATOR: Final[str] = "$"
OPTION_DELIMITER: Final[str] = ","
DOMAIN_OPTION: Final[str] = "domain="
DOMAIN_DELIMITER: Final[str] = "|"
NEGATION: Final[str] = "~"

FIRST_PARTY_OPTION: Final[str] = "first-party"
THIRD_PARTY_OPTION: Final[str] = "third-party"

# ============================================================================
# REGEX PATTERNS
# ============================================================================

#: Characters that are literal in adblock syntax but special in regex: ()?.|
LITERAL_CHARS_PATTERN: Final[re.Pattern[str]] = re.compile(r"([()?.|])")

#: Trailing separator anchor: "track^" at end of filter
TRAILING_SEPARATOR_PATTERN: Final[re.Pattern[str]] = re.compile(r"\^$")

#: Wildcard next to a separator: "*^" or "^*"
WILDCARD_SEPARATOR_PATTERN: Final[re.Pattern[str]] = re.compile(r"\*\^|\^\*")

#: Lone wildcard not already part of "[?/].*"
LONE_WILDCARD_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?<!\[\?/\]\.)\*")

END_OR_SEPARATOR: Final[str] = "($|[?/])"
SEPARATOR_THEN_ANY: Final[str] = "[?/].*"
ANY_CHARS: Final[str] = ".*"


# ============================================================================
# DATA STRUCTURES
# ============================================================================

class TranslateResult(NamedTuple):
    """
    Result of translating a single filter line.

    Attributes:
        rule: Translated rule, or None if skipped
        skipped: True if the filter was not translated
        reason: "empty", "unsupported" or "first_party" when skipped

    Example:
        >>> translate_filter("||example.com^").rule.pattern
        'example\\\\.com($|[?/])'
    """
    rule: Rule | None
    skipped: bool
    reason: str | None


# ============================================================================
# TRANSLATION
# ============================================================================

def _log_skip(message: str) -> None:
    if VERBOSE_LOGGING:
        print(message, file=sys.stderr)


def filter_to_pattern(body: str) -> str:
    """
    Translate the filter body (options already removed) into a regex string.

    Args:
        body: Host-anchored filter without its $options part

    Returns:
        Regex source, not yet validated

    Example:
        >>> filter_to_pattern("||ads.example.com/*^")
        'ads\\\\.example\\\\.com/.*($|[?/])'
    """
    pattern = body.replace(HOST_ANCHOR, "", 1)
    pattern = LITERAL_CHARS_PATTERN.sub(r"\\\1", pattern)
    pattern = TRAILING_SEPARATOR_PATTERN.sub(lambda _: END_OR_SEPARATOR, pattern)
    pattern = WILDCARD_SEPARATOR_PATTERN.sub(lambda _: SEPARATOR_THEN_ANY, pattern)
    pattern = LONE_WILDCARD_PATTERN.sub(lambda _: ANY_CHARS, pattern)
    return pattern


def parse_options(option_str: str) -> RuleOptions | None:
    """
    Parse a comma-separated option string into RuleOptions.

    third-party is dropped (every rule is third-party by default), the
    domain= list loses its ~negated entries, and every other token is a
    request type.

    Returns:
        RuleOptions, or None when no option survives

    Example:
        >>> parse_options("script,third-party,domain=foo.com|~bar.com")
        RuleOptions(types=('script',), domains=('foo.com',))
    """
    types: list[str] = []
    domains: tuple[str, ...] | None = None

    for token in option_str.split(OPTION_DELIMITER):
        if not token or THIRD_PARTY_OPTION in token:
            continue

        if token.startswith(DOMAIN_OPTION):
            domains = tuple(
                d for d in token[len(DOMAIN_OPTION):].split(DOMAIN_DELIMITER)
                if not d.startswith(NEGATION)
            )
        else:
            types.append(token)

    options = RuleOptions(types=tuple(types) if types else None, domains=domains)
    return None if options.is_empty() else options


def translate_filter(line: str) -> TranslateResult:
    """
    Translate one lower-cased filter line into a Rule.

    Args:
        line: Raw filter line (caller lower-cases it)

    Returns:
        TranslateResult with the rule, or the reason it was skipped

    Raises:
        MalformedPatternError: If the translated pattern is not a valid regex.
            This means a translation bug, not bad input, so it is fatal.
    """
    line = line.strip()
    if not line:
        return TranslateResult(None, True, "empty")

    # Only host anchored filters are supported
    if not line.startswith(HOST_ANCHOR):
        _log_skip(f"Unsupported filter: {line}")
        return TranslateResult(None, True, "unsupported")

    body = line
    option_str = ""
    option_index = line.rfind(OPTION_SEPARATOR)
    if option_index != -1:
        option_str = line[option_index + 1:]
        if FIRST_PARTY_OPTION in option_str:
            _log_skip(f"Skipping first-party filter: {line}")
            return TranslateResult(None, True, "first_party")
        body = line[:option_index]

    pattern = filter_to_pattern(body)
    try:
        re.compile(pattern)
    except re.error as e:
        raise MalformedPatternError(line, pattern, e) from e

    return TranslateResult(Rule(pattern=pattern, options=parse_options(option_str)), False, None)


def translate_lines(lines: Iterable[str]) -> Iterator[TranslateResult]:
    """Translate every line of a filter list, lower-casing each one first."""
    for line in lines:
        yield translate_filter(line.lower())
