#!/usr/bin/env python3
"""
classifier.py - Host Classification for Compiled Rules

Compiled rules carry no explicit domain field; the host has to be recovered
from the regex itself. Instead of analysing the regex statically, the
classifier generates one concrete string the pattern matches, turns it into a
URL and lets the URL parser find the host:

    example\\.com/track($|[?/])  ->  "example.com/track"
                                 ->  "http://example.com/track"
                                 ->  example.com

Known imprecision:
    This is exact whenever the host part of the pattern has no wildcard
    (the usual case for ||host filters). A wildcard inside the host, e.g.
    ||ads.*.example.com^, yields a sampled host that may not exist. Such
    hosts are reported by suspect_hosts but kept as classified.

The sampling strategy sits behind the HostClassifier callable so another
classifier can be plugged into group_rules_by_host.
"""

from __future__ import annotations

import sys
from functools import lru_cache
from typing import Callable, Final
from urllib.parse import urlsplit

import exrex
import tldextract

from rulecompiler.models import HostRuleGroup, RuleTable

# Offline suffix list snapshot, no update checks
_tld_extract = tldextract.TLDExtract(suffix_list_urls=())

# ============================================================================
# CONFIGURATION
# ============================================================================

#: Upper bound exrex uses for unbounded repeats such as ".*"
SAMPLE_REPEAT_LIMIT: Final[int] = 10

URL_SCHEME: Final[str] = "http://"
WWW_PREFIX: Final[str] = "www."

#: pattern -> host
HostClassifier = Callable[[str], str]


# ============================================================================
# CLASSIFICATION
# ============================================================================

def sample_match(pattern: str) -> str:
    """
    Return a string that the pattern matches.

    exrex enumerates matches in a fixed order, so taking the first one is
    deterministic: optional parts are left out and ".*" is empty.

    Example:
        >>> sample_match(r"ads\\.example\\.com/.*")
        'ads.example.com/'
    """
    return next(exrex.generate(pattern, limit=SAMPLE_REPEAT_LIMIT), "")


def extract_host(url: str) -> str:
    """
    Extract the hostname of a URL, without a leading "www.".

    Example:
        >>> extract_host("http://www.example.com/path")
        'example.com'
    """
    hostname = urlsplit(url).hostname or ""
    if hostname.startswith(WWW_PREFIX):
        hostname = hostname[len(WWW_PREFIX):]
    return hostname


@lru_cache(maxsize=65536)
def classify_host(pattern: str) -> str:
    """Derive the target hostname of a compiled pattern."""
    return extract_host(URL_SCHEME + sample_match(pattern))


def is_known_suffix(host: str) -> bool:
    """Check that the host ends in a public suffix (e.g. .com, .co.uk)."""
    return bool(_tld_extract(host).suffix)


# ============================================================================
# GROUPING
# ============================================================================

def group_rules_by_host(
    table: RuleTable,
    rule_type: str,
    classifier: HostClassifier = classify_host,
) -> HostRuleGroup:
    """
    Group compiled rules by their classified host.

    Args:
        table: Compiled rules, one per pattern
        rule_type: "rule" or "whitelist", the key the rules are listed under
        classifier: pattern -> host function

    Returns:
        host -> {rule_type: [rules in table order]}
    """
    by_host: HostRuleGroup = {}

    for pattern, rule in table.items():
        if not pattern:
            continue

        host = classifier(pattern)
        if not host:
            print(f"Warning: no host for pattern {pattern!r}, skipped", file=sys.stderr)
            continue

        by_host.setdefault(host, {rule_type: []})[rule_type].append(rule)

    return by_host


def suspect_hosts(groups: HostRuleGroup) -> list[str]:
    """
    List grouped hosts without a public suffix.

    These usually come from a wildcard in the host part of a filter, where
    the sampled host is not a real domain.

    Example:
        >>> suspect_hosts({"example.com": {}, "ads.a": {}})
        ['ads.a']
    """
    return [host for host in groups if not is_known_suffix(host)]
