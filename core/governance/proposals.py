"""
Proposal Lifecycle
The facade callers use: propose, vote, dispute, execute and settle bonds.

Lifecycle:
    PENDING -> ACTIVE_PHASE1 -> ACTIVE_PHASE2 ->
        {CANCELLED, VETOED, QUORUM_NOT_MET, DEFEATED, SUCCEEDED, EXPIRED}
    SUCCEEDED -> EXECUTED, VETOED -> DESTROYED

Disputes only run while a proposal is PENDING. Phase 1 votes are cast by
delegates with a witness against the committed root; phase 2 lets a
participant override its delegate with its own ledger power.

Bond settlement:
- Index 1 is the proposer's own bond, returned unless the proposal was
  defeated or vetoed
- A challenge the proposer answered pays its bond to the proposer, less
  the burn share
- On defeat, challengers on the path to the defeat index split the
  proposer bond, less the burn share, and every challenger recovers its
  own bond
- Every settled index becomes PAID; a batch is validated in full before
  anything moves
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from core.config.runtime import CALC_BASE, RuntimeConfig, get_default_config
from core.dispute.challenge_engine import ChallengeEngine
from core.governance.clock import Clock, SystemClock
from core.governance.store import ProposalStore, derive_state
from core.ledger.bonds import BondVault
from core.ledger.voting_power import VotingPowerLedger
from core.merkle.merkle_proofs import verify_leaf_proof
from core.merkle.sum_tree import TreeNode
from core.merkle.tree_index import ROOT_INDEX, is_descendant, leaf_to_global, tree_depth_for
from core.schemas.errors import (
    DoubleSettlementException,
    InvalidStateException,
    MalformedProofException,
    NotAuthorizedException,
    ProofMismatchException,
    StaleSnapshotException,
)
from core.schemas.governance import (
    BondClaim,
    Challenge,
    ChallengeState,
    Proposal,
    ProposalState,
    VoteDirection,
    VoteRecord,
)


logger = logging.getLogger(__name__)

Executor = Callable[[Proposal], None]

_OPEN_STATES = (
    ProposalState.PENDING,
    ProposalState.ACTIVE_PHASE1,
    ProposalState.ACTIVE_PHASE2,
)


class GovernanceProtocol:
    """
    Proposal lifecycle and bond accounting on top of the challenge engine.

    Args:
        ledger: Voting power ledger the commitments are taken from
        vault: Custodian of proposer and challenger bonds
        clock: Time source (defaults to wall-clock seconds)
        config: Runtime configuration (defaults to get_default_config())
        executor: Called with the proposal when it is executed
    """

    def __init__(
        self,
        ledger: VotingPowerLedger,
        vault: BondVault,
        clock: Optional[Clock] = None,
        config: Optional[RuntimeConfig] = None,
        executor: Optional[Executor] = None,
    ):
        self.ledger = ledger
        self.vault = vault
        self.clock = clock or SystemClock()
        self.config = config or get_default_config()
        self.settings = self.config.proposals
        self.executor = executor
        self.store = ProposalStore()
        self.engine = ChallengeEngine(
            store=self.store,
            ledger=ledger,
            vault=vault,
            clock=self.clock,
            settings=self.settings,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get_proposal(self, proposal_id: int) -> Proposal:
        return self.store.get(proposal_id)

    def get_state(self, proposal_id: int) -> ProposalState:
        return derive_state(self.store.get(proposal_id), self.clock.now())

    def get_challenge(self, proposal_id: int, index: int) -> Challenge:
        challenge = self.store.get(proposal_id).challenges.get(index)
        if challenge is None:
            raise InvalidStateException("Challenge does not exist", details={"index": index})
        return challenge

    # =========================================================================
    # Proposals
    # =========================================================================

    def propose(
        self,
        proposer: str,
        message: str,
        payload: bytes,
        snapshot_block: int,
        root_pollard: Sequence[TreeNode],
    ) -> int:
        """
        Create a proposal committing to the snapshot at snapshot_block.

        Returns:
            The new proposal id

        Raises:
            StaleSnapshotException: Block is not in the past or no longer
                queryable
            MalformedProofException: Root pollard has the wrong width or the
                tree is deeper than allowed
            ProofMismatchException: A leaf-depth root pollard differs from
                the snapshot
            InsufficientBondException: Proposer cannot cover the bond
        """
        current = self.ledger.current_block()
        if snapshot_block >= current:
            raise StaleSnapshotException("Block must be in the past", block=snapshot_block)

        leaves = self.engine.snapshot_leaves(snapshot_block)
        tree_depth = tree_depth_for(len(leaves))
        if tree_depth > self.settings.max_tree_depth:
            raise MalformedProofException(
                f"Tree depth {tree_depth} exceeds maximum {self.settings.max_tree_depth}",
            )
        root = self.engine.verify_root_pollard(
            root_pollard, tree_depth, snapshot_block, self.settings.delegate_subtrees
        )

        self.vault.lock(proposer, self.settings.proposal_bond)

        now = self.clock.now()
        start = now + self.settings.vote_delay_time
        phase1_end = start + self.settings.vote_phase1_time
        phase2_end = phase1_end + self.settings.vote_phase2_time
        proposal = Proposal(
            id=self.store.next_id(),
            proposer=proposer,
            message=message,
            payload=payload,
            snapshot_block=snapshot_block,
            root_pollard=list(root_pollard),
            root=root,
            tree_depth=tree_depth,
            delegate_subtrees=self.settings.delegate_subtrees,
            votes_required=root.sum * self.settings.proposal_quorum // CALC_BASE,
            veto_quorum=root.sum * self.settings.veto_quorum // CALC_BASE,
            created_at=now,
            start_time=start,
            phase1_end_time=phase1_end,
            phase2_end_time=phase2_end,
            expiry_time=phase2_end + self.settings.execution_window,
            proposer_bond=self.settings.proposal_bond,
            challenge_bond=self.settings.challenge_bond,
        )
        proposal.challenges[ROOT_INDEX] = self.engine.root_checkpoint(proposal)
        self.store.add(proposal)
        logger.info(
            "Proposal created: id=%d proposer=%s block=%d depth=%d root_sum=%d",
            proposal.id, proposer, snapshot_block, tree_depth, root.sum,
        )
        return proposal.id

    def cancel(self, proposal_id: int, caller: str) -> Proposal:
        """Cancel an open proposal. A defeated proposal is left as is."""
        proposal = self.store.get(proposal_id)
        if caller != proposal.proposer:
            raise NotAuthorizedException("Not proposer", caller=caller)
        state = derive_state(proposal, self.clock.now())
        if proposal.defeated:
            logger.info("Cancel ignored for defeated proposal %d", proposal_id)
            return proposal
        if state not in _OPEN_STATES:
            raise InvalidStateException("Proposal can not be cancelled now", state=state.value)
        proposal.cancelled = True
        logger.info("Proposal cancelled: id=%d", proposal_id)
        return proposal

    def execute(self, proposal_id: int) -> Proposal:
        """Execute a succeeded proposal through the configured executor."""
        proposal = self.store.get(proposal_id)
        state = derive_state(proposal, self.clock.now())
        if state != ProposalState.SUCCEEDED:
            raise InvalidStateException(
                "Proposal has not succeeded, has expired, or has already been executed",
                state=state.value,
            )
        if self.executor is not None:
            self.executor(proposal)
        proposal.executed = True
        logger.info("Proposal executed: id=%d", proposal_id)
        return proposal

    def finalise(self, proposal_id: int) -> Proposal:
        """Destroy a vetoed proposal, burning the proposer bond."""
        proposal = self.store.get(proposal_id)
        state = derive_state(proposal, self.clock.now())
        if state != ProposalState.VETOED:
            raise InvalidStateException("Proposal has not been vetoed", state=state.value)
        self.vault.burn_locked(proposal.proposer, proposal.proposer_bond)
        proposal.finalised = True
        proposal.challenges[ROOT_INDEX].state = ChallengeState.PAID
        logger.info("Proposal finalised: id=%d burned=%d", proposal_id, proposal.proposer_bond)
        return proposal

    # =========================================================================
    # Voting
    # =========================================================================

    def vote(
        self,
        proposal_id: int,
        direction: VoteDirection,
        voting_power: int,
        voter_index: int,
        witness: Sequence[TreeNode],
        caller: str,
    ) -> VoteRecord:
        """
        Cast a phase 1 vote with delegated power proven against the root.

        Raises:
            InvalidStateException: Not in phase 1, or already voted
            NotAuthorizedException: Caller is not the participant at voter_index
            ProofMismatchException: Witness does not prove voting_power
        """
        proposal = self.store.get(proposal_id)
        self._require_state(proposal, ProposalState.ACTIVE_PHASE1, "Phase 1 voting is not active")
        self._require_participant(proposal, voter_index, caller)
        if voter_index in proposal.votes:
            raise InvalidStateException(
                "Node operator has already voted on proposal",
                details={"voter_index": voter_index},
            )

        global_index = leaf_to_global(voter_index, proposal.tree_depth)
        if not verify_leaf_proof(voting_power, global_index, witness, proposal.root):
            logger.warning(
                "Rejected vote with invalid proof: proposal=%d voter=%d",
                proposal_id, voter_index,
            )
            raise ProofMismatchException("Invalid proof", index=global_index)

        record = VoteRecord(
            proposal_id=proposal_id,
            voter_index=voter_index,
            direction=direction,
            voting_power=voting_power,
            witness=list(witness),
            phase=1,
        )
        proposal.votes[voter_index] = record
        proposal.tally(direction, voting_power)
        logger.info(
            "Vote cast: proposal=%d voter=%d direction=%s power=%d",
            proposal_id, voter_index, direction.value, voting_power,
        )
        return record

    def override_vote(
        self,
        proposal_id: int,
        direction: VoteDirection,
        voter_index: int,
        caller: str,
    ) -> VoteRecord:
        """
        Override a delegate's phase 1 vote with the voter's own power.

        Raises:
            InvalidStateException: Not in phase 2, already voted, or the
                override repeats the delegate's direction
            NotAuthorizedException: Caller is not the participant at voter_index
        """
        proposal = self.store.get(proposal_id)
        self._require_state(proposal, ProposalState.ACTIVE_PHASE2, "Phase 2 voting is not active")
        self._require_participant(proposal, voter_index, caller)
        if voter_index in proposal.votes:
            raise InvalidStateException(
                "Node operator has already voted on proposal",
                details={"voter_index": voter_index},
            )

        block = proposal.snapshot_block
        power = self.ledger.get_voting_power_at(voter_index, block)
        delegate_index = self._participant_index(self.ledger.get_delegate_at(voter_index, block), block)

        delegate_vote = proposal.votes.get(delegate_index) if delegate_index is not None else None
        if delegate_vote is not None and delegate_vote.phase == 1:
            if delegate_vote.direction == direction:
                raise InvalidStateException(
                    "Vote direction is the same as delegate",
                    details={"voter_index": voter_index, "delegate_index": delegate_index},
                )
            proposal.untally(delegate_vote.direction, power)

        record = VoteRecord(
            proposal_id=proposal_id,
            voter_index=voter_index,
            direction=direction,
            voting_power=power,
            delegate_index=delegate_index,
            phase=2,
        )
        proposal.votes[voter_index] = record
        proposal.tally(direction, power)
        logger.info(
            "Vote overridden: proposal=%d voter=%d delegate=%s direction=%s power=%d",
            proposal_id, voter_index, delegate_index, direction.value, power,
        )
        return record

    # =========================================================================
    # Disputes
    # =========================================================================

    def create_challenge(
        self,
        proposal_id: int,
        index: int,
        claimed_node: TreeNode,
        witness: Sequence[TreeNode],
        challenger: str,
    ) -> Challenge:
        return self.engine.create_challenge(proposal_id, index, claimed_node, witness, challenger)

    def respond_to_challenge(
        self,
        proposal_id: int,
        index: int,
        pollard: Sequence[TreeNode],
        responder: str,
    ) -> Challenge:
        return self.engine.respond_to_challenge(proposal_id, index, pollard, responder)

    def resolve_leaf_challenge(self, proposal_id: int, index: int) -> Challenge:
        return self.engine.resolve_leaf_challenge(proposal_id, index)

    def defeat_proposal(self, proposal_id: int, index: int) -> Proposal:
        return self.engine.defeat_proposal(proposal_id, index)

    def tick(self, now: Optional[int] = None) -> list[tuple[int, int]]:
        return self.engine.tick(now)

    # =========================================================================
    # Bond settlement
    # =========================================================================

    def claim_bond_proposer(self, proposal_id: int, indices: Sequence[int], caller: str) -> BondClaim:
        """
        Settle the proposer's side of a batch of indices.

        Raises:
            NotAuthorizedException: Caller is not the proposer
            InvalidStateException: Proposal pending, defeated or vetoed, or
                an index is not in a state the proposer won
            DoubleSettlementException: An index was already paid
        """
        proposal = self.store.get(proposal_id)
        if caller != proposal.proposer:
            raise NotAuthorizedException("Not proposer", caller=caller)
        state = derive_state(proposal, self.clock.now())
        if state == ProposalState.PENDING:
            raise InvalidStateException("Can not claim bond while proposal is Pending", state=state.value)

        challenges = self._claimable(proposal, indices)
        for challenge in challenges:
            if proposal.defeated:
                raise InvalidStateException("Proposal defeated", details={"index": challenge.index})
            if challenge.is_root:
                if state in (ProposalState.VETOED, ProposalState.DESTROYED):
                    raise InvalidStateException("Proposal vetoed", state=state.value)
            elif challenge.state not in (
                ChallengeState.RESPONDED,
                ChallengeState.RESOLVED_FOR_PROPOSER,
            ):
                raise InvalidStateException(
                    "Invalid challenge state",
                    state=challenge.state.value,
                    details={"index": challenge.index},
                )

        unlocked = reward = burned = 0
        for challenge in challenges:
            if challenge.is_root:
                self.vault.unlock(proposal.proposer, proposal.proposer_bond)
                unlocked += proposal.proposer_bond
            else:
                burn = self._burn_share(proposal.challenge_bond)
                self.vault.burn_locked(challenge.challenger, burn)
                self.vault.transfer_locked(
                    challenge.challenger, proposal.proposer, proposal.challenge_bond - burn
                )
                reward += proposal.challenge_bond - burn
                burned += burn
            challenge.state = ChallengeState.PAID

        claim = BondClaim(
            claimant=caller,
            indices=[c.index for c in challenges],
            unlocked=unlocked,
            reward=reward,
            burned=burned,
        )
        logger.info("Proposer bond claim: proposal=%d %s", proposal_id, claim.model_dump())
        return claim

    def claim_bond_challenger(self, proposal_id: int, indices: Sequence[int], caller: str) -> BondClaim:
        """
        Settle a challenger's side of a batch of indices.

        Raises:
            InvalidStateException: Proposal pending, or an index is not
                recoverable in the current outcome
            NotAuthorizedException: Caller did not open the challenge
            DoubleSettlementException: An index was already paid
        """
        proposal = self.store.get(proposal_id)
        state = derive_state(proposal, self.clock.now())
        if state == ProposalState.PENDING:
            raise InvalidStateException("Can not claim bond while proposal is Pending", state=state.value)

        if proposal.defeated:
            recoverable = (
                ChallengeState.AWAITING_RESPONSE,
                ChallengeState.RESPONDED,
                ChallengeState.RESOLVED_FOR_CHALLENGER,
                ChallengeState.CANCELLED,
            )
        else:
            recoverable = (ChallengeState.AWAITING_RESPONSE, ChallengeState.CANCELLED)

        challenges = self._claimable(proposal, indices)
        for challenge in challenges:
            if challenge.state not in recoverable:
                raise InvalidStateException(
                    "Invalid challenge state",
                    state=challenge.state.value,
                    details={"index": challenge.index},
                )
            if challenge.is_root or challenge.challenger != caller:
                raise NotAuthorizedException("Invalid challenger", caller=caller)

        unlocked = rewarded = 0
        for challenge in challenges:
            self.vault.unlock(caller, proposal.challenge_bond)
            unlocked += proposal.challenge_bond
            if proposal.defeated and is_descendant(proposal.defeat_index, challenge.index):
                rewarded += 1
            challenge.state = ChallengeState.PAID

        reward = burned = 0
        if rewarded:
            share = proposal.proposer_bond * rewarded // self._defeat_path_length(proposal)
            burned = self._burn_share(share)
            reward = share - burned
            self.vault.burn_locked(proposal.proposer, burned)
            self.vault.transfer_locked(proposal.proposer, caller, reward)

        claim = BondClaim(
            claimant=caller,
            indices=[c.index for c in challenges],
            unlocked=unlocked,
            reward=reward,
            burned=burned,
        )
        logger.info("Challenger bond claim: proposal=%d %s", proposal_id, claim.model_dump())
        return claim

    # =========================================================================
    # Internals
    # =========================================================================

    def _claimable(self, proposal: Proposal, indices: Sequence[int]) -> list[Challenge]:
        """Resolve a batch to challenges, rejecting unknown and paid indices."""
        seen: set[int] = set()
        challenges: list[Challenge] = []
        for index in indices:
            challenge = proposal.challenges.get(index)
            if challenge is None:
                raise InvalidStateException("Invalid challenge state", details={"index": index})
            if challenge.state == ChallengeState.PAID or index in seen:
                raise DoubleSettlementException("Bond already claimed", index=index)
            seen.add(index)
            challenges.append(challenge)
        return challenges

    def _defeat_path_length(self, proposal: Proposal) -> int:
        return sum(
            1
            for index in proposal.challenges
            if index != ROOT_INDEX and is_descendant(proposal.defeat_index, index)
        )

    def _burn_share(self, amount: int) -> int:
        return amount * self.settings.bond_burn_percent // 100

    def _require_state(self, proposal: Proposal, expected: ProposalState, message: str) -> None:
        state = derive_state(proposal, self.clock.now())
        if state != expected:
            raise InvalidStateException(message, state=state.value)

    def _require_participant(self, proposal: Proposal, voter_index: int, caller: str) -> None:
        try:
            identity = self.ledger.get_participant_at(voter_index, proposal.snapshot_block)
        except LookupError as e:
            raise NotAuthorizedException(
                f"No participant at index {voter_index}", caller=caller
            ) from e
        if identity != caller:
            raise NotAuthorizedException("Caller is not the voter", caller=caller)

    def _participant_index(self, identity: str, block: int) -> Optional[int]:
        for i in range(self.ledger.get_participant_count(block)):
            if self.ledger.get_participant_at(i, block) == identity:
                return i
        return None


__all__ = ["GovernanceProtocol", "Executor"]
