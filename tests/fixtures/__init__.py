"""
Test fixtures package for governance protocol tests.

This package provides factory functions for creating test objects:
- common.py: Ledger, vault, settings and protocol harness factories

Usage:
    from fixtures.common import make_harness

    def test_something():
        h = make_harness(values=[10, 0, 30, 0])
        proposal_id = h.propose()
"""

from .common import (
    Harness,
    make_harness,
    make_ledger,
    make_settings,
    make_vault,
    participant,
)

__all__ = [
    "Harness",
    "make_harness",
    "make_ledger",
    "make_settings",
    "make_vault",
    "participant",
]
