#!/usr/bin/env python3
"""
reconciler.py - Merge Compiled Rules into the Tracker Database

For every host in the compiled HostRuleGroup:

    1. Look the host up in EVERY tracker category, in priority order
    2. Category has no list for this rule type  ->  install the new list
       Category already has a list              ->  merge_rule_lists(new, old)
    3. No category knows the host               ->  orphan, saved for manual review

MULTI-CATEGORY HOSTS:
    A host may be listed under more than one category (e.g. a social widget
    that also does analytics). Every matching category is updated; the search
    never stops at the first hit.

Only the list for the run's rule type is ever touched. Other fields of a
host record, other rule-type lists and unknown categories stay as loaded.
"""

from __future__ import annotations

import copy
import sys
from dataclasses import dataclass, field
from typing import Final

from rulecompiler.compiler import merge_rule_lists
from rulecompiler.models import HostRuleGroup, OrphanList, TrackerDatabase, rule_group_to_json

# ============================================================================
# CONFIGURATION
# ============================================================================

#: Categories searched for a host, in priority order
TRACKER_CATEGORIES: Final[tuple[str, ...]] = ("Analytics", "Social", "Advertising")

#: Orphan entries are {"host": h, <rule_type>: [...]}; a bare rule group
#: would not say which host it belongs to
ORPHAN_HOST_KEY: Final[str] = "host"


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class ReconcileStats:
    """Statistics from reconciliation."""
    hosts_total: int = 0
    hosts_matched: int = 0
    hosts_orphaned: int = 0

    # Per category updates
    lists_installed: int = 0
    lists_merged: int = 0
    category_updates: dict[str, int] = field(default_factory=dict)


@dataclass
class ReconcileResult:
    database: TrackerDatabase
    orphans: OrphanList
    stats: ReconcileStats


# ============================================================================
# RECONCILIATION
# ============================================================================

def reconcile(
    groups: HostRuleGroup,
    database: TrackerDatabase,
    rule_type: str,
    categories: tuple[str, ...] = TRACKER_CATEGORIES,
) -> ReconcileResult:
    """
    Fold compiled host rule groups into a copy of the tracker database.

    Args:
        groups: host -> {rule_type: [rules]}
        database: Loaded tracker database (left untouched)
        rule_type: "rule" or "whitelist"
        categories: Category search order

    Returns:
        ReconcileResult with the updated database copy and the orphan list
    """
    updated = copy.deepcopy(database)
    orphans: OrphanList = []
    stats = ReconcileStats(category_updates={c: 0 for c in categories})

    for category in categories:
        if category not in updated:
            print(f"Warning: category {category!r} missing from tracker database", file=sys.stderr)

    for host, group in groups.items():
        stats.hosts_total += 1
        new_rules = group.get(rule_type, [])
        found = False

        for category in categories:
            record = updated.get(category, {}).get(host)
            if record is None:
                continue

            found = True
            stats.category_updates[category] += 1

            existing = record.rules.get(rule_type)
            if not existing:
                record.rules[rule_type] = list(new_rules)
                stats.lists_installed += 1
            else:
                record.rules[rule_type] = merge_rule_lists(new_rules, existing)
                stats.lists_merged += 1

        if found:
            stats.hosts_matched += 1
        else:
            stats.hosts_orphaned += 1
            orphans.append({ORPHAN_HOST_KEY: host, **rule_group_to_json(group)})

    return ReconcileResult(database=updated, orphans=orphans, stats=stats)
