import copy

import pytest

from rulecompiler.models import (
    HostRecord,
    Rule,
    RuleOptions,
    database_from_json,
    database_to_json,
    rule_group_to_json,
)
from rulecompiler.reconciler import TRACKER_CATEGORIES, reconcile


@pytest.fixture
def database():
    return {
        "Analytics": {
            "stats.com": HostRecord(
                rules={"rule": [Rule("stats\\.com/old"), Rule("stats\\.com/a", RuleOptions(types=("image",)))]},
                fields={"c": "Stats Inc", "u": "https://stats.com"},
            ),
            "shared.com": HostRecord(fields={"c": "Shared"}),
        },
        "Social": {
            "shared.com": HostRecord(rules={"rule": [Rule("shared\\.com/old")]}, fields={"c": "Shared"}),
        },
        "Advertising": {
            "stats.com": HostRecord(
                rules={"whitelist": [Rule("stats\\.com/ok")]},
                fields={"c": "Stats Inc"},
            ),
        },
        "Content": {
            "cdn.com": HostRecord(fields={"c": "CDN"}),
        },
    }


def test_category_order():
    assert TRACKER_CATEGORIES == ("Analytics", "Social", "Advertising")


def test_empty_groups_leave_database_unchanged(database):
    before = database_to_json(database)

    result = reconcile({}, database, "rule")

    assert database_to_json(result.database) == before
    assert result.orphans == []


def test_merge_into_existing_list_of_one_category(database):
    groups = {"stats.com": {"rule": [Rule("stats\\.com/a", RuleOptions(types=("script",))), Rule("stats\\.com/new")]}}

    result = reconcile(groups, database, "rule")

    analytics = result.database["Analytics"]["stats.com"]
    assert [r.pattern for r in analytics.rules["rule"]] == ["stats\\.com/a", "stats\\.com/new", "stats\\.com/old"]
    assert analytics.rules["rule"][0].options.types == ("script", "image")
    assert analytics.fields == {"c": "Stats Inc", "u": "https://stats.com"}

    # other categories keep their entries for the host
    advertising = result.database["Advertising"]["stats.com"]
    assert advertising.rules == {"whitelist": [Rule("stats\\.com/ok")], "rule": groups["stats.com"]["rule"]}
    assert result.orphans == []


def test_host_in_only_one_category_leaves_others_untouched(database):
    groups = {"shared.com": {"whitelist": [Rule("shared\\.com/ok")]}}
    del database["Social"]["shared.com"]
    before = copy.deepcopy(database_to_json(database))

    result = reconcile(groups, database, "whitelist")
    after = database_to_json(result.database)

    assert after["Analytics"]["shared.com"]["whitelist"] == [{"rule": "shared\\.com/ok"}]
    for category in ("Social", "Advertising", "Content"):
        assert after[category] == before[category]


def test_every_matching_category_is_updated(database):
    groups = {"shared.com": {"rule": [Rule("shared\\.com/new")]}}

    result = reconcile(groups, database, "rule")

    assert [r.pattern for r in result.database["Analytics"]["shared.com"].rules["rule"]] == ["shared\\.com/new"]
    assert [r.pattern for r in result.database["Social"]["shared.com"].rules["rule"]] == [
        "shared\\.com/new",
        "shared\\.com/old",
    ]
    assert result.stats.lists_installed == 1
    assert result.stats.lists_merged == 1
    assert result.stats.hosts_matched == 1


def test_unknown_host_becomes_orphan(database):
    rule = Rule("nowhere\\.io/p", RuleOptions(types=("script",), domains=("a.com",)))
    groups = {"nowhere.io": {"rule": [rule]}}

    result = reconcile(groups, database, "rule")

    assert result.orphans == [{
        "host": "nowhere.io",
        "rule": [{"rule": "nowhere\\.io/p", "options": {"types": ["script"], "domains": ["a.com"]}}],
    }]
    assert all("nowhere.io" not in hosts for hosts in result.database.values())
    assert result.stats.hosts_orphaned == 1


def test_unknown_categories_are_not_searched(database):
    result = reconcile({"cdn.com": {"rule": [Rule("cdn\\.com/x")]}}, database, "rule")

    assert result.database["Content"]["cdn.com"].rules == {}
    assert len(result.orphans) == 1


def test_input_database_is_not_mutated(database):
    before = database_to_json(database)

    reconcile({"stats.com": {"rule": [Rule("stats\\.com/new")]}}, database, "rule")

    assert database_to_json(database) == before


def test_missing_category_is_treated_as_empty(database):
    del database["Social"]

    result = reconcile({"shared.com": {"rule": [Rule("x")]}}, database, "rule")

    assert "Social" not in result.database
    assert result.stats.category_updates["Social"] == 0
    assert result.stats.category_updates["Analytics"] == 1


def test_orphan_entry_is_rule_group_plus_host(database):
    group = {"rule": [Rule("nowhere\\.io/p"), Rule("nowhere\\.io/q", RuleOptions(types=("image",)))]}

    result = reconcile({"nowhere.io": group}, database, "rule")

    # the host is carried inside each entry next to its rule-type lists
    entry = dict(result.orphans[0])
    assert entry.pop("host") == "nowhere.io"
    assert entry == rule_group_to_json(group)


def test_unmatched_run_writes_database_back_unchanged():
    raw = {
        "Analytics": {
            "stats.com": {
                "c": "Stats Inc",
                "rule": [
                    {"rule": "stats\\.com\\/a", "options": {"types": ["image"], "excludedDomains": ["x.com"]}},
                    {"rule": "stats\\.com/b", "options": {}},
                    {"rule": "stats\\.com/c", "options": {"domains": []}},
                ],
            },
        },
        "Social": {},
    }

    result = reconcile({}, database_from_json(raw), "rule")

    assert database_to_json(result.database) == raw


def test_merge_keeps_unknown_option_keys_of_stored_rule():
    raw = {"Analytics": {"stats.com": {"rule": [
        {"rule": "stats\\.com\\/a", "options": {"excludedDomains": ["x.com"]}},
    ]}}}
    groups = {"stats.com": {"rule": [Rule("stats\\.com/a", RuleOptions(types=("script",)))]}}

    result = reconcile(groups, database_from_json(raw), "rule")

    assert database_to_json(result.database)["Analytics"]["stats.com"]["rule"] == [
        {"rule": "stats\\.com/a", "options": {"types": ["script"], "excludedDomains": ["x.com"]}},
    ]
