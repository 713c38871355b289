"""
Governance lifecycle primitives.

Exports the clock and the proposal registry. The GovernanceProtocol facade
depends on core.dispute and is imported from core.governance.proposals.
"""

from .clock import Clock, ManualClock, SystemClock
from .store import ProposalStore, derive_state

__all__ = [
    "Clock",
    "ManualClock",
    "SystemClock",
    "ProposalStore",
    "derive_state",
]
