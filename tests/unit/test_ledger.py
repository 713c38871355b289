"""
Ledger and Vault Unit Tests
Tests for core/ledger/voting_power.py, core/ledger/bonds.py and core/governance/clock.py
"""
import pytest

from core.governance.clock import Clock, ManualClock, SystemClock
from core.ledger.bonds import BondVault, InMemoryBondVault
from core.ledger.voting_power import (
    InMemoryVotingPowerLedger,
    VotingPowerLedger,
    aggregate_delegated_power,
    build_delegate_subtree,
    build_tree_from_ledger,
    delegation_breakdown,
)
from core.merkle.sum_tree import build_tree, leaf_node
from core.schemas.errors import ErrorCodes, InsufficientBondException


class TestVotingPowerLedger:

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryVotingPowerLedger(), VotingPowerLedger)

    def test_history_is_block_indexed(self):
        ledger = InMemoryVotingPowerLedger()
        ledger.register("a", 10)
        ledger.advance(1)
        ledger.set_voting_power("a", 25)
        ledger.register("b", 5)
        ledger.advance(1)

        assert ledger.get_participant_count(0) == 1
        assert ledger.get_participant_count(1) == 2
        assert ledger.get_voting_power_at(0, 0) == 10
        assert ledger.get_voting_power_at(0, 1) == 25
        assert ledger.get_participant_at(1, 1) == "b"

    def test_unregistered_index(self):
        ledger = InMemoryVotingPowerLedger()
        ledger.register("a", 1)
        with pytest.raises(IndexError):
            ledger.get_participant_at(1, 0)

    def test_future_block_unqueryable(self):
        ledger = InMemoryVotingPowerLedger()
        with pytest.raises(LookupError, match="future"):
            ledger.get_participant_count(5)

    def test_pruned_block_unqueryable(self):
        ledger = InMemoryVotingPowerLedger(history_depth=2)
        ledger.register("a", 1)
        ledger.advance(5)
        with pytest.raises(LookupError, match="older"):
            ledger.get_participant_count(0)
        assert ledger.get_participant_count(3) == 1

    def test_duplicate_registration(self):
        ledger = InMemoryVotingPowerLedger()
        ledger.register("a")
        with pytest.raises(ValueError, match="already registered"):
            ledger.register("a")

    def test_default_delegate_is_self(self):
        ledger = InMemoryVotingPowerLedger()
        ledger.register("a", 3)
        assert ledger.get_delegate_at(0, 0) == "a"


class TestAggregation:

    def test_without_delegation(self):
        ledger = InMemoryVotingPowerLedger()
        for name, power in [("a", 10), ("b", 0), ("c", 30), ("d", 0)]:
            ledger.register(name, power)
        assert aggregate_delegated_power(ledger, 0) == [10, 0, 30, 0]

    def test_delegated_power_moves_to_delegate_leaf(self):
        ledger = InMemoryVotingPowerLedger()
        ledger.register("a", 10)
        ledger.register("b", 5, delegate="a")
        ledger.register("c", 7, delegate="a")
        ledger.register("d", 1)
        assert aggregate_delegated_power(ledger, 0) == [22, 0, 0, 1]

    def test_unknown_delegate_keeps_power(self):
        ledger = InMemoryVotingPowerLedger()
        ledger.register("a", 10, delegate="outsider")
        assert aggregate_delegated_power(ledger, 0) == [10]

    def test_delegation_is_taken_at_the_snapshot(self):
        ledger = InMemoryVotingPowerLedger()
        ledger.register("a", 10)
        ledger.register("b", 5)
        ledger.advance(1)
        ledger.set_delegate("b", "a")
        assert aggregate_delegated_power(ledger, 0) == [10, 5]
        assert aggregate_delegated_power(ledger, 1) == [15, 0]

    def test_empty_ledger_is_single_zero_leaf(self):
        ledger = InMemoryVotingPowerLedger()
        assert aggregate_delegated_power(ledger, 0) == [0]
        tree = build_tree_from_ledger(ledger, 0)
        assert tree.depth == 0
        assert tree.root == leaf_node(0)

    def test_build_tree_from_ledger(self):
        ledger = InMemoryVotingPowerLedger()
        for name, power in [("a", 10), ("b", 0), ("c", 30)]:
            ledger.register(name, power)
        assert build_tree_from_ledger(ledger, 0).root == build_tree([10, 0, 30]).root


class TestDelegationBreakdown:

    def setup_method(self):
        self.ledger = InMemoryVotingPowerLedger()
        self.ledger.register("a", 10)
        self.ledger.register("b", 5, delegate="a")
        self.ledger.register("c", 7, delegate="a")
        self.ledger.register("d", 1, delegate="outsider")

    def test_delegators_keep_their_positions(self):
        assert delegation_breakdown(self.ledger, 0, 0) == [10, 5, 7, 0]
        assert delegation_breakdown(self.ledger, 0, 1) == [0, 0, 0, 0]
        assert delegation_breakdown(self.ledger, 0, 3) == [0, 0, 0, 1]

    def test_each_breakdown_sums_to_its_leaf(self):
        leaves = aggregate_delegated_power(self.ledger, 0)
        for i, leaf in enumerate(leaves):
            assert sum(delegation_breakdown(self.ledger, 0, i)) == leaf

    def test_padding_leaf_breaks_down_to_zeros(self):
        assert delegation_breakdown(self.ledger, 0, 7) == [0, 0, 0, 0]

    def test_subtree_matches_tree_depth(self):
        subtree = build_delegate_subtree(self.ledger, 0, 0)
        assert subtree.depth == build_tree_from_ledger(self.ledger, 0).depth
        assert subtree.root.sum == 22

    def test_future_block_unqueryable(self):
        with pytest.raises(LookupError):
            delegation_breakdown(self.ledger, 5, 0)


class TestBondVault:

    def setup_method(self):
        self.vault = InMemoryBondVault()
        self.vault.stake("alice", 100)

    def test_satisfies_protocol(self):
        assert isinstance(self.vault, BondVault)

    def test_lock_and_unlock(self):
        self.vault.lock("alice", 60)
        assert self.vault.available("alice") == 40
        assert self.vault.locked("alice") == 60
        self.vault.unlock("alice", 60)
        assert self.vault.available("alice") == 100

    def test_lock_more_than_available(self):
        self.vault.lock("alice", 60)
        with pytest.raises(InsufficientBondException) as exc_info:
            self.vault.lock("alice", 50)
        assert exc_info.value.code == ErrorCodes.INSUFFICIENT_BOND
        assert exc_info.value.details["required"] == 50
        assert self.vault.locked("alice") == 60

    def test_transfer_locked(self):
        self.vault.lock("alice", 30)
        self.vault.transfer_locked("alice", "bob", 30)
        assert self.vault.staked("alice") == 70
        assert self.vault.locked("alice") == 0
        assert self.vault.available("bob") == 30

    def test_burn_locked(self):
        self.vault.lock("alice", 30)
        self.vault.burn_locked("alice", 10)
        assert self.vault.staked("alice") == 90
        assert self.vault.locked("alice") == 20
        assert self.vault.total_burned == 10

    def test_release_more_than_locked(self):
        self.vault.lock("alice", 10)
        with pytest.raises(ValueError, match="only 10 locked"):
            self.vault.unlock("alice", 11)

    def test_negative_amount(self):
        with pytest.raises(ValueError):
            self.vault.stake("alice", -1)


class TestClocks:

    def test_manual_clock(self):
        clock = ManualClock(100)
        assert clock.advance(5) == 105
        clock.set(200)
        assert clock.now() == 200

    def test_manual_clock_never_goes_back(self):
        clock = ManualClock(100)
        with pytest.raises(ValueError):
            clock.set(99)
        with pytest.raises(ValueError):
            clock.advance(-1)

    def test_system_clock(self):
        assert isinstance(SystemClock(), Clock)
        assert SystemClock().now() > 0


class TestIdentityLookup:

    def test_index_of(self):
        ledger = InMemoryVotingPowerLedger()
        ledger.register("a")
        ledger.register("b")
        assert ledger.index_of("b") == 1
        with pytest.raises(KeyError):
            ledger.index_of("c")
