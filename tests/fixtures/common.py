"""
Common test fixtures shared by all modules.

Provides factory functions for the protocol's collaborators:
- VotingPowerLedger snapshots
- BondVault balances
- ProposalSettings tuned for short test timelines
- A wired GovernanceProtocol plus helpers for honest and dishonest proposals
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from core.config.runtime import CALC_BASE, ProposalSettings, RuntimeConfig
from core.governance.clock import ManualClock
from core.governance.proposals import GovernanceProtocol
from core.ledger.bonds import InMemoryBondVault
from core.ledger.voting_power import InMemoryVotingPowerLedger, build_delegate_subtree
from core.merkle.merkle_proofs import generate_challenge_proof, generate_subtree_challenge_proof
from core.merkle.pollard import generate_pollard, generate_subtree_pollard
from core.merkle.sum_tree import SumTree, build_tree


PROPOSER = "proposer"
CHALLENGER = "challenger"
CHALLENGER_2 = "challenger2"

START_TIME = 1_000
SNAPSHOT_BLOCK = 0


# =============================================================================
# Collaborator Factories
# =============================================================================

def participant(i: int) -> str:
    """Identity of the i-th registered participant."""
    return f"node{i}"


def make_ledger(
    values: Sequence[int],
    delegates: Optional[dict[int, int]] = None,
) -> InMemoryVotingPowerLedger:
    """
    Create a ledger whose block 0 holds the given voting power.

    Args:
        values: Voting power per participant, in registration order
        delegates: Optional map of participant index to delegate index

    Returns:
        Ledger advanced to block 1 so block 0 is in the past.
    """
    ledger = InMemoryVotingPowerLedger()
    for i, value in enumerate(values):
        ledger.register(participant(i), value)
    for i, delegate in (delegates or {}).items():
        ledger.set_delegate(participant(i), participant(delegate))
    ledger.advance(1)
    return ledger


def make_vault(stake: int = 10_000) -> InMemoryBondVault:
    """Create a vault where the proposer and both challengers have stake."""
    vault = InMemoryBondVault()
    for identity in (PROPOSER, CHALLENGER, CHALLENGER_2):
        vault.stake(identity, stake)
    return vault


def make_settings(**overrides) -> ProposalSettings:
    """ProposalSettings with short, easy to reason about windows."""
    values = dict(
        vote_delay_time=1_000,
        vote_phase1_time=1_000,
        vote_phase2_time=1_000,
        execution_window=1_000,
        proposal_quorum=CALC_BASE // 2,
        veto_quorum=CALC_BASE // 2,
        proposal_bond=100,
        challenge_bond=10,
        challenge_period=100,
        depth_per_round=1,
        bond_burn_percent=20,
        max_tree_depth=16,
    )
    values.update(overrides)
    return ProposalSettings(**values)


# =============================================================================
# Protocol Harness
# =============================================================================

@dataclass
class Harness:
    """A protocol instance together with everything it was built from."""
    protocol: GovernanceProtocol
    ledger: InMemoryVotingPowerLedger
    vault: InMemoryBondVault
    clock: ManualClock
    values: list[int]
    executed: list[int]

    @property
    def order(self) -> int:
        return self.protocol.settings.depth_per_round

    @property
    def tree(self) -> SumTree:
        """The tree a truthful proposer builds for the snapshot."""
        return build_tree(self.values)

    def propose(self, tree: Optional[SumTree] = None, proposer: str = PROPOSER) -> int:
        """Propose with the root pollard of tree (defaults to the truthful tree)."""
        tree = tree or self.tree
        return self.protocol.propose(
            proposer,
            "Test proposal",
            b"payload",
            SNAPSHOT_BLOCK,
            generate_pollard(tree, self.order),
        )

    def challenge(
        self,
        proposal_id: int,
        tree: SumTree,
        index: int,
        challenger: str = CHALLENGER,
    ):
        """Challenge index using nodes from the proposer's tree."""
        proof = generate_challenge_proof(tree, index, self.order)
        return self.protocol.create_challenge(
            proposal_id, index, proof.node, proof.witness, challenger
        )

    def respond(self, proposal_id: int, tree: SumTree, index: int, proposer: str = PROPOSER):
        """Respond to a challenge with the pollard from the proposer's tree."""
        return self.protocol.respond_to_challenge(
            proposal_id, index, generate_pollard(tree, self.order, index), proposer
        )

    def subtree(self, leaf_index: int) -> SumTree:
        """The delegate subtree a truthful proposer reveals beneath a leaf."""
        return build_delegate_subtree(self.ledger, SNAPSHOT_BLOCK, leaf_index)

    def challenge_subtree(
        self,
        proposal_id: int,
        subtree: SumTree,
        index: int,
        challenger: str = CHALLENGER,
    ):
        """Challenge an index below the leaves using nodes from a subtree."""
        depth = self.protocol.get_proposal(proposal_id).tree_depth
        proof = generate_subtree_challenge_proof(subtree, index, self.order, depth)
        return self.protocol.create_challenge(
            proposal_id, index, proof.node, proof.witness, challenger
        )

    def respond_subtree(self, proposal_id: int, subtree: SumTree, index: int):
        """Respond at or below the leaves with the pollard from a subtree."""
        depth = self.protocol.get_proposal(proposal_id).tree_depth
        return self.protocol.respond_to_challenge(
            proposal_id, index, generate_subtree_pollard(subtree, self.order, index, depth), PROPOSER
        )

    def to_phase1(self, proposal_id: int) -> None:
        self.clock.set(self.protocol.get_proposal(proposal_id).start_time)

    def to_phase2(self, proposal_id: int) -> None:
        self.clock.set(self.protocol.get_proposal(proposal_id).phase1_end_time)

    def to_closed(self, proposal_id: int) -> None:
        self.clock.set(self.protocol.get_proposal(proposal_id).phase2_end_time)


def make_harness(
    values: Sequence[int] = (10, 0, 30, 0),
    delegates: Optional[dict[int, int]] = None,
    **settings,
) -> Harness:
    """
    Create a fully wired protocol over a ledger snapshot.

    Args:
        values: Voting power per participant at the snapshot block
        delegates: Optional delegation map (participant index -> delegate index)
        **settings: ProposalSettings overrides

    Returns:
        Harness with a ManualClock at START_TIME.
    """
    ledger = make_ledger(values, delegates)
    vault = make_vault()
    clock = ManualClock(START_TIME)
    executed: list[int] = []
    config = RuntimeConfig(proposals=make_settings(**settings))
    protocol = GovernanceProtocol(
        ledger=ledger,
        vault=vault,
        clock=clock,
        config=config,
        executor=lambda proposal: executed.append(proposal.id),
    )
    leaves = [0] * max(len(values), 1)
    for i, value in enumerate(values):
        target = (delegates or {}).get(i, i)
        leaves[target] += value
    return Harness(
        protocol=protocol,
        ledger=ledger,
        vault=vault,
        clock=clock,
        values=leaves,
        executed=executed,
    )
