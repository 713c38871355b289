"""
External collaborators: the voting power ledger and the bond vault.
"""

from .bonds import BondVault, InMemoryBondVault
from .voting_power import (
    InMemoryVotingPowerLedger,
    VotingPowerLedger,
    aggregate_delegated_power,
    build_delegate_subtree,
    build_tree_from_ledger,
    delegation_breakdown,
)

__all__ = [
    "BondVault",
    "InMemoryBondVault",
    "VotingPowerLedger",
    "InMemoryVotingPowerLedger",
    "aggregate_delegated_power",
    "build_tree_from_ledger",
    "delegation_breakdown",
    "build_delegate_subtree",
]
