from rulecompiler.classifier import (
    classify_host,
    extract_host,
    group_rules_by_host,
    is_known_suffix,
    suspect_hosts,
)
from rulecompiler.compiler import compile_rules
from rulecompiler.models import Rule


def test_host_of_anchored_path_pattern():
    assert classify_host(r"example\.com/track($|[?/])") == "example.com"


def test_host_of_wildcard_path_pattern():
    assert classify_host(r"ads\.example\.com/.*") == "ads.example.com"


def test_host_of_separator_wildcard_pattern():
    assert classify_host(r"cdn\.example\.com[?/].*/pixel") == "cdn.example.com"


def test_classification_is_deterministic():
    pattern = r"static\.tracker\.io/js/t\.js"

    hosts = {classify_host.__wrapped__(pattern) for _ in range(20)}

    assert hosts == {"static.tracker.io"}


def test_extract_host_strips_www():
    assert extract_host("http://www.example.com/a") == "example.com"
    assert extract_host("http://wwwexample.com/a") == "wwwexample.com"
    assert extract_host("http://") == ""


def test_known_suffix():
    assert is_known_suffix("example.com")
    assert is_known_suffix("tracker.co.uk")
    assert not is_known_suffix("intranet")


def test_group_rules_by_host_preserves_discovery_order():
    table, _ = compile_rules([
        "||example.com/a^",
        "||other.net/x^",
        "||example.com/b^",
    ])

    groups = group_rules_by_host(table, "rule")

    assert list(groups) == ["example.com", "other.net"]
    assert [r.pattern for r in groups["example.com"]["rule"]] == [
        r"example\.com/a($|[?/])",
        r"example\.com/b($|[?/])",
    ]


def test_group_rules_with_custom_classifier():
    table = {"p1": Rule("p1"), "p2": Rule("p2"), "p3": Rule("p3")}
    hosts = {"p1": "a.com", "p2": "", "p3": "a.com"}

    groups = group_rules_by_host(table, "whitelist", classifier=hosts.__getitem__)

    assert groups == {"a.com": {"whitelist": [Rule("p1"), Rule("p3")]}}


def test_hosts_without_public_suffix_are_suspect():
    groups = group_rules_by_host(
        {"p1": Rule("p1"), "p2": Rule("p2"), "p3": Rule("p3")},
        "rule",
        classifier={"p1": "example.com", "p2": "tracker-host", "p3": "tracker.co.uk"}.__getitem__,
    )

    assert suspect_hosts(groups) == ["tracker-host"]
