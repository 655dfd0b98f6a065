"""
rulecompiler package - Adblock Filter to Tracker Rule Compiler

Modules:
    models: Rule and tracker database structures, JSON validation
    translator: Host-anchored filter -> regex rule translation
    compiler: Option-aware merging of rules that share a pattern
    classifier: Host classification and grouping of compiled rules
    reconciler: Merge grouped rules into the tracker database
    selftest: Known filter -> rule table for the translator
    pipeline: Main processing pipeline and CLI
"""

__version__ = "1.0.0"
