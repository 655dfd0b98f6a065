#!/usr/bin/env python3
"""
pipeline.py

Main processing pipeline: adblock filters -> tracker database rules.

Usage:
    python -m rulecompiler.pipeline -f <filterlist> -c <trackers.json> -t <rule|whitelist> [--test]

Pipeline stages:
1. Read the filter list
2. Translate host-anchored filters to regex rules and merge duplicates
3. Optionally check the translator against the known filter table
4. Classify each rule's host and group rules by host
5. Merge the groups into the tracker database, collecting orphans
6. Write the new database and the orphan list (both or neither)
"""
from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path
from typing import Final

from rulecompiler import translator
from rulecompiler.classifier import group_rules_by_host, suspect_hosts
from rulecompiler.compiler import CompileStats, compile_rules, read_filter_lines
from rulecompiler.models import RULE_TYPES, database_to_json, dump_json, load_database
from rulecompiler.reconciler import ReconcileStats, reconcile
from rulecompiler.selftest import run_self_test

DEFAULT_OUTPUT: Final[str] = "new-trackersWithParentCompany.json"
DEFAULT_ORPHANS: Final[str] = "unMatchedRules.json"


def write_outputs(outputs: dict[Path, object]) -> None:
    """
    Write every output file, or none of them.

    Each file is first serialized next to its target as .tmp; targets are
    only replaced once all temp files were written. Existing targets are
    moved aside as .bak and put back if a later replace fails.
    """
    temp_paths: dict[Path, Path] = {}
    try:
        for path, data in outputs.items():
            path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = path.with_name(path.name + ".tmp")
            temp_paths[path] = temp_path
            dump_json(data, temp_path)
    except BaseException:
        for temp_path in temp_paths.values():
            temp_path.unlink(missing_ok=True)
        raise

    backups: dict[Path, Path] = {}
    published: list[Path] = []
    try:
        for path, temp_path in temp_paths.items():
            if path.exists():
                backup_path = path.with_name(path.name + ".bak")
                path.replace(backup_path)
                backups[path] = backup_path
            temp_path.replace(path)
            published.append(path)
    except OSError:
        for path in published:
            path.unlink(missing_ok=True)
        for path, backup_path in backups.items():
            backup_path.replace(path)
        for temp_path in temp_paths.values():
            temp_path.unlink(missing_ok=True)
        raise

    for backup_path in backups.values():
        backup_path.unlink()


def process(
    filter_source: str,
    database_file: str,
    rule_type: str,
    output_file: str = DEFAULT_OUTPUT,
    orphans_file: str = DEFAULT_ORPHANS,
    self_test: bool = False,
) -> tuple[CompileStats, ReconcileStats]:
    """
    Run the full pipeline.

    Args:
        filter_source: Filter list path
        database_file: Tracker database JSON to merge into (never overwritten)
        rule_type: "rule" or "whitelist"
        output_file: Path for the updated database
        orphans_file: Path for rules whose host is not in the database
        self_test: Check the translator against the known table first

    Returns:
        (CompileStats, ReconcileStats)
    """
    if rule_type not in RULE_TYPES:
        raise ValueError(f"Rule type must be one of {', '.join(RULE_TYPES)}: {rule_type!r}")

    output_path = Path(output_file)
    orphans_path = Path(orphans_file)
    if output_path.resolve() == Path(database_file).resolve():
        raise ValueError(f"Refusing to overwrite the input database: {database_file}")

    # =========================================================================
    # Stage 1: Read filters
    # =========================================================================
    print("📖 Stage 1: Reading filter list...")
    lines = read_filter_lines(filter_source)
    print(f"   Read {len(lines):,} lines")

    # =========================================================================
    # Stage 2: Translate and merge duplicates
    # =========================================================================
    print("\n⚙️  Stage 2: Translating filters...")
    stage_start = time.time()
    table, compile_stats = compile_rules(lines)
    print(f"   Compiled {compile_stats.total_output:,} rules ({time.time() - stage_start:.1f}s)")

    if self_test:
        passed = run_self_test()
        print(f"   All {passed} parser tests passed")

    # =========================================================================
    # Stage 3: Group by host and reconcile
    # =========================================================================
    print("\n🔗 Stage 3: Merging into tracker database...")
    stage_start = time.time()
    database = load_database(database_file)
    groups = group_rules_by_host(table, rule_type)
    suspects = suspect_hosts(groups)
    for host in suspects:
        print(f"   Warning: {host!r} has no public suffix", file=sys.stderr)
    result = reconcile(groups, database, rule_type)
    print(f"   {len(groups):,} hosts ({len(suspects):,} without public suffix), "
          f"{result.stats.hosts_orphaned:,} unmatched ({time.time() - stage_start:.1f}s)")

    # =========================================================================
    # Stage 4: Write outputs
    # =========================================================================
    write_outputs({
        output_path: database_to_json(result.database),
        orphans_path: result.orphans,
    })
    print(f"\n💾 Wrote new trackers file to: {output_path}")
    print(f"💾 Wrote unmatched rules to: {orphans_path}")

    return compile_stats, result.stats


def print_summary(compile_stats: CompileStats, reconcile_stats: ReconcileStats) -> None:
    """Print formatted summary."""
    print("\n" + "=" * 60)
    print("📊 PIPELINE SUMMARY")
    print("=" * 60)

    print(f"\n📈 Filters:")
    print(f"   Input lines:   {compile_stats.total_input:>10,}")
    print(f"   Rules:         {compile_stats.total_output:>10,}")

    print(f"\n🧹 Skipped:")
    print(f"   Empty lines:   {compile_stats.empty_skipped:>10,}")
    print(f"   Unsupported:   {compile_stats.unsupported_skipped:>10,}")
    print(f"   First-party:   {compile_stats.first_party_skipped:>10,}")
    print(f"   Duplicates:    {compile_stats.duplicate_merged:>10,}")

    print(f"\n📦 Tracker database:")
    print(f"   Hosts:         {reconcile_stats.hosts_total:>10,}")
    print(f"   Matched:       {reconcile_stats.hosts_matched:>10,}")
    print(f"   Unmatched:     {reconcile_stats.hosts_orphaned:>10,}")
    print(f"   Lists added:   {reconcile_stats.lists_installed:>10,}")
    print(f"   Lists merged:  {reconcile_stats.lists_merged:>10,}")
    for category, count in reconcile_stats.category_updates.items():
        print(f"   {category + ':':<15}{count:>10,}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rulecompiler",
        description="Convert adblock filters to regex rules and merge them into a tracker database",
    )
    parser.add_argument("-f", "--file", required=True,
                        help="Text file with newline-separated filter list")
    parser.add_argument("-c", "--combine", required=True,
                        help="Path of trackers file to combine with")
    parser.add_argument("-t", "--rule-type", required=True, choices=RULE_TYPES,
                        help="Type of filters, rule or whitelist")
    parser.add_argument("--test", action="store_true", help="Run parser tests")
    parser.add_argument("--output", default=DEFAULT_OUTPUT, help="Updated trackers file")
    parser.add_argument("--orphans", default=DEFAULT_ORPHANS, help="Unmatched rules file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Print every skipped filter")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        translator.VERBOSE_LOGGING = True

    try:
        print("🚀 Starting rule compiler...")
        print("-" * 60)

        start_time = time.time()
        compile_stats, reconcile_stats = process(
            args.file,
            args.combine,
            args.rule_type,
            output_file=args.output,
            orphans_file=args.orphans,
            self_test=args.test,
        )

        print_summary(compile_stats, reconcile_stats)
        print(f"\n⏱️  Total time: {time.time() - start_time:.1f}s")
        print("✅ Pipeline completed successfully!")

        return 0

    except Exception as e:
        print(f"\n❌ ERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
