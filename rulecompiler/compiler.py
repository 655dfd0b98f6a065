#!/usr/bin/env python3
"""
compiler.py - Rule Table Compilation with Option-Aware Deduplication

Folds translated filters into a RuleTable holding exactly one Rule per
distinct regex pattern.

KEY INSIGHT - IDENTITY IS THE PATTERN:
    Different filter lines often translate to the same regex:

        ||tracker.com/p.gif$image     ->  tracker\\.com/p\\.gif  types=[image]
        ||tracker.com/p.gif$script    ->  tracker\\.com/p\\.gif  types=[script]

    These are ONE rule. The second is merged into the first and its options
    are unioned:

        tracker\\.com/p\\.gif  types=[image, script]

MERGE PROPERTIES:
    The option union is commutative, associative and idempotent, so the order
    in which duplicates are folded never changes the final option SET. List
    order is first-seen, which keeps output reproducible for a given input.

The same merge reconciles a freshly compiled rule list with the list already
stored for a host in the tracker database (see merge_rule_lists).
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from rulecompiler.models import Rule, RuleOptions, RuleTable, pattern_key
from rulecompiler.translator import translate_lines

# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class CompileStats:
    """Statistics from compilation."""
    total_input: int = 0
    total_output: int = 0

    # Skipped lines
    empty_skipped: int = 0
    unsupported_skipped: int = 0
    first_party_skipped: int = 0

    # Lines folded into an existing rule
    duplicate_merged: int = 0


# ============================================================================
# MERGING
# ============================================================================

def _union(first: Iterable[str], second: Iterable[str]) -> tuple[str, ...]:
    """Ordered union: items of first, then unseen items of second."""
    seen: dict[str, None] = dict.fromkeys(first)
    seen.update(dict.fromkeys(second))
    return tuple(seen)


def _union_optional(
    first: tuple[str, ...] | None, second: tuple[str, ...] | None
) -> tuple[str, ...] | None:
    """Union of two lists where an absent list counts as empty."""
    if first is None:
        return second
    if second is None:
        return first
    return _union(first, second)


def merge_options(a: RuleOptions | None, b: RuleOptions | None) -> RuleOptions | None:
    """
    Union two option sets.

    An absent types or domain list counts as empty, so the union keeps
    whatever either side lists. Unknown option keys are merged with b
    winning on conflict.

    Example:
        >>> merge_options(RuleOptions(("script",)), RuleOptions(("image",), ("a.com",)))
        RuleOptions(types=('script', 'image'), domains=('a.com',))
    """
    if a is None:
        return b
    if b is None:
        return a

    return RuleOptions(
        types=_union_optional(a.types, b.types),
        domains=_union_optional(a.domains, b.domains),
        extra={**a.extra, **b.extra},
    )


def merge_rules(a: Rule, b: Rule) -> Rule:
    """
    Merge two rules that share a pattern.

    Patterns that only differ in writing "/" as "\\/" count as shared; the
    result keeps a's spelling.

    Args:
        a: Rule whose list items come first
        b: Rule merged into a; its extra fields win on conflict

    Raises:
        ValueError: If the patterns differ
    """
    if pattern_key(a.pattern) != pattern_key(b.pattern):
        raise ValueError(f"Cannot merge different rules: {a.pattern!r} != {b.pattern!r}")

    return Rule(
        pattern=a.pattern,
        options=merge_options(a.options, b.options),
        extra={**a.extra, **b.extra},
    )


def fold_rules(rules: Iterable[Rule]) -> RuleTable:
    """
    Fold rules into a fresh RuleTable, merging rules that share a pattern.

    The table is built locally and handed back; nothing outside this call
    sees it while it is being filled.
    """
    table: RuleTable = {}
    for rule in rules:
        existing = table.get(rule.pattern)
        table[rule.pattern] = rule if existing is None else merge_rules(existing, rule)
    return table


def merge_rule_lists(new: list[Rule], old: list[Rule]) -> list[Rule]:
    """
    Merge a freshly compiled rule list into an existing one.

    Rules are paired by pattern_key, so an old "a\\/b" pairs with a new
    "a/b". The result is every new rule (merged with its old counterpart
    when there is one), followed by the old rules that no new rule matched.

    Example:
        >>> a, b, c = Rule("a"), Rule("b"), Rule("c")
        >>> [r.pattern for r in merge_rule_lists([a, b], [c, a])]
        ['a', 'b', 'c']
    """
    old_by_key: dict[str, Rule] = {}
    for rule in old:
        key = pattern_key(rule.pattern)
        old_by_key[key] = merge_rules(old_by_key[key], rule) if key in old_by_key else rule

    merged: list[Rule] = []
    matched: set[str] = set()
    for rule in new:
        key = pattern_key(rule.pattern)
        counterpart = old_by_key.get(key)
        if counterpart is not None:
            matched.add(key)
            merged.append(merge_rules(rule, counterpart))
        else:
            merged.append(rule)

    leftovers = [r for k, r in old_by_key.items() if k not in matched]
    return merged + leftovers


# ============================================================================
# MAIN COMPILATION
# ============================================================================

def compile_rules(lines: Iterable[str]) -> tuple[RuleTable, CompileStats]:
    """
    Translate filter lines and fold them into a RuleTable.

    Raises:
        MalformedPatternError: If any filter translates to an invalid regex
    """
    stats = CompileStats()
    rules: list[Rule] = []

    for result in translate_lines(lines):
        stats.total_input += 1

        if result.skipped:
            if result.reason == "empty":
                stats.empty_skipped += 1
            elif result.reason == "first_party":
                stats.first_party_skipped += 1
            else:
                stats.unsupported_skipped += 1
            continue

        rules.append(result.rule)

    table = fold_rules(rules)
    stats.duplicate_merged = len(rules) - len(table)
    stats.total_output = len(table)
    return table, stats


def read_filter_lines(path: str | Path) -> list[str]:
    """Read a newline-separated filter list."""
    filter_path = Path(path)
    if not filter_path.is_file():
        raise FileNotFoundError(f"Filter list not found: {path}")

    with open(filter_path, encoding="utf-8-sig", errors="replace") as f:
        return f.read().splitlines()


# ============================================================================
# MAIN
# ============================================================================

if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python -m rulecompiler.compiler <filter_file>")
        sys.exit(1)

    table, stats = compile_rules(read_filter_lines(sys.argv[1]))

    print(f"\nCompilation complete:")
    print(f"  Input:  {stats.total_input:,} lines")
    print(f"  Output: {stats.total_output:,} rules")
    print(f"\nSkipped:")
    print(f"  Empty:        {stats.empty_skipped:,}")
    print(f"  Unsupported:  {stats.unsupported_skipped:,}")
    print(f"  First-party:  {stats.first_party_skipped:,}")
    print(f"  Duplicates:   {stats.duplicate_merged:,}")
