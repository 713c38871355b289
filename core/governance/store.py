"""
Proposal registry and state derivation.

All proposal and challenge records live in a ProposalStore owned by the
GovernanceProtocol; nothing is held in module-level state.
"""

from __future__ import annotations

from typing import Iterator

from core.schemas.errors import InvalidStateException
from core.schemas.governance import Proposal, ProposalState


def derive_state(proposal: Proposal, now: int) -> ProposalState:
    """
    Compute a proposal's state from its flags and timestamps.

    Flags take precedence over time, then the voting windows, then the
    tallies once voting has closed.
    """
    if proposal.cancelled:
        return ProposalState.CANCELLED
    if proposal.executed:
        return ProposalState.EXECUTED
    if proposal.defeated:
        return ProposalState.DEFEATED
    if proposal.finalised:
        return ProposalState.DESTROYED
    if now < proposal.start_time:
        return ProposalState.PENDING
    if now < proposal.phase1_end_time:
        return ProposalState.ACTIVE_PHASE1
    if now < proposal.phase2_end_time:
        return ProposalState.ACTIVE_PHASE2

    if proposal.votes_veto >= proposal.veto_quorum and proposal.votes_veto > 0:
        return ProposalState.VETOED
    turnout = proposal.votes_for + proposal.votes_against + proposal.votes_abstain
    if turnout < proposal.votes_required:
        return ProposalState.QUORUM_NOT_MET
    if proposal.votes_for > proposal.votes_against:
        if now < proposal.expiry_time:
            return ProposalState.SUCCEEDED
        return ProposalState.EXPIRED
    return ProposalState.DEFEATED


class ProposalStore:
    """Proposals keyed by sequential id."""

    def __init__(self) -> None:
        self._proposals: dict[int, Proposal] = {}

    def next_id(self) -> int:
        return len(self._proposals) + 1

    def add(self, proposal: Proposal) -> None:
        if proposal.id in self._proposals:
            raise ValueError(f"Proposal {proposal.id} already exists")
        self._proposals[proposal.id] = proposal

    def get(self, proposal_id: int) -> Proposal:
        try:
            return self._proposals[proposal_id]
        except KeyError as e:
            raise InvalidStateException(
                f"Invalid proposal: {proposal_id}",
                details={"proposal_id": proposal_id},
            ) from e

    def __iter__(self) -> Iterator[Proposal]:
        return iter(self._proposals.values())

    def __len__(self) -> int:
        return len(self._proposals)


__all__ = ["derive_state", "ProposalStore"]
