#!/usr/bin/env python3
"""
selftest.py - Known Filter -> Rule Table

Checks the translator against filters with hand-verified output. Run with
--test on the pipeline; any mismatch aborts the run before the tracker
database is touched.
"""

from __future__ import annotations

import json
from typing import Any, Final

from rulecompiler.models import MalformedPatternError
from rulecompiler.translator import translate_filter


class SelfTestError(AssertionError):
    """Translator output differs from the known table."""

    def __init__(self, mismatches: list[str]):
        super().__init__("\n".join(mismatches))
        self.mismatches = mismatches


# filter -> expected rule JSON, or None when the filter must be skipped
KNOWN_FILTERS: Final[dict[str, dict[str, Any] | None]] = {
    "||example.com/track^": {"rule": r"example\.com/track($|[?/])"},
    "||ads.example.com/*$script,domain=foo.com|~bar.com": {
        "rule": r"ads\.example\.com/.*",
        "options": {"types": ["script"], "domains": ["foo.com"]},
    },
    "||tracker.io/pixel$first-party": None,
    "||cdn.example.com^*/beacon.gif": {"rule": r"cdn\.example\.com[?/].*/beacon\.gif"},
    "||stats.example.net/*^": {"rule": r"stats\.example\.net/.*($|[?/])"},
    "||metrics.example.org/collect?*": {"rule": r"metrics\.example\.org/collect\?.*"},
    "||widgets.example.com/(share)^$third-party": {
        "rule": r"widgets\.example\.com/\(share\)($|[?/])",
    },
    "||pix.example.com^$image,script,third-party": {
        "rule": r"pix\.example\.com($|[?/])",
        "options": {"types": ["image", "script"]},
    },
    "||ads.example.com^$domain=~news.example.com": {
        "rule": r"ads\.example\.com($|[?/])",
        "options": {"domains": []},
    },
    "/banner/*/ad.js": None,
    "@@||example.com/allowed.js": None,
}


def check_filter(filter_line: str, expected: dict[str, Any] | None) -> str | None:
    """Return a mismatch message, or None if the filter parses as expected."""
    try:
        result = translate_filter(filter_line.lower())
    except MalformedPatternError as e:
        return f"Filter: {filter_line}, Error: {e}"

    parsed = None if result.rule is None else result.rule.to_json()
    if parsed != expected:
        return f"Parsed: {json.dumps(parsed)}, Expected: {json.dumps(expected)}"
    return None


def run_self_test(table: dict[str, dict[str, Any] | None] = KNOWN_FILTERS) -> int:
    """
    Run every known filter through the translator.

    Returns:
        Number of filters checked

    Raises:
        SelfTestError: Listing every mismatch
    """
    mismatches = []
    for filter_line, expected in table.items():
        message = check_filter(filter_line, expected)
        if message is not None:
            mismatches.append(message)

    if mismatches:
        raise SelfTestError(mismatches)
    return len(table)
