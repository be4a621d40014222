"""
End-to-end tests of the verify-then-reconcile pipeline for proposals.
"""
import logging

import pytest

from anise_backend.exceptions import (
    EventNotFoundError, FieldMismatchError, NotAuthenticatedError, NotFoundError,
    StatePreconditionError, TxRevertedError, TxWrongDestinationError, ValidationError,
)
from anise_backend.store import join_path

from conftest import ALICE, BOB, CAROL, DAO_ADDRESS, MALLORY, encode_event, identity_for, module_event

MODULE = "ProposalVotingModule"


def proposal_created(proposal_id=7, proposer=ALICE, title="Budget", description="Q1"):
    return module_event(MODULE, "ProposalCreated",
                        proposalId=proposal_id, proposer=proposer.address, title=title, description=description)


def vote_cast(proposal_id, voter, approve=True):
    return module_event(MODULE, "VoteCast", proposalId=proposal_id, voter=voter.address, approve=approve)


def finalized(proposal_id, approved=True):
    return module_event(MODULE, "ProposalFinalized", proposalId=proposal_id, approved=approved)


@pytest.fixture
def proposals(pipelines):
    return pipelines["proposals"]


@pytest.fixture
def proposal(dao, chain, proposals, alice):
    """Proposal 7, created by Alice."""
    tx_hash = chain.module_tx(ALICE.address, MODULE, proposal_created())
    proposals.create(dao, {"txHash": tx_hash, "title": "Budget", "description": "Q1"}, alice)
    return 7


def _doc(store, proposal_id=7):
    return store.get(join_path("daos", DAO_ADDRESS, "proposals", str(proposal_id)))


class TestCreateProposal:
    """Tests for creating proposals from ProposalCreated transactions."""

    def test_matching_payload_creates_pending_proposal(self, dao, chain, store, proposals, alice):
        tx_hash = chain.module_tx(ALICE.address, MODULE, proposal_created())

        result = proposals.create(dao, {"txHash": tx_hash, "title": "Budget", "description": "Q1"}, alice)

        assert result["success"] is True
        assert result["proposalId"] == "7"
        assert result["txHash"] == tx_hash
        doc = _doc(store)
        assert doc["status"] == "pending"
        assert doc["proposer"] == ALICE.address
        assert doc["createdBy"] == "uid-alice"
        assert doc["proposalId"] == 7
        assert doc["approvals"] == 0 and doc["rejections"] == 0
        assert doc["voters"] == [] and doc["votes"] == {}
        assert doc["txHash"] == tx_hash
        assert "createdAt" in doc
        assert result["proposal"]["title"] == "Budget"

    def test_mismatched_title_writes_nothing(self, dao, chain, store, proposals, alice):
        tx_hash = chain.module_tx(ALICE.address, MODULE, proposal_created())

        with pytest.raises(FieldMismatchError) as excinfo:
            proposals.create(dao, {"txHash": tx_hash, "title": "Budget!!", "description": "Q1"}, alice)

        assert excinfo.value.field == "title"
        assert _doc(store) is None

    def test_description_must_match_too(self, dao, chain, store, proposals, alice):
        tx_hash = chain.module_tx(ALICE.address, MODULE, proposal_created())
        with pytest.raises(FieldMismatchError):
            proposals.create(dao, {"txHash": tx_hash, "title": "Budget"}, alice)
        assert _doc(store) is None

    def test_missing_fields_fail_before_verification(self, dao, chain, proposals, alice):
        with pytest.raises(ValidationError) as excinfo:
            proposals.create(dao, {"title": "Budget"}, alice)
        assert any(e["field"] == "txHash" for e in excinfo.value.errors)
        chain.w3.eth.get_transaction_receipt.assert_not_called()

    def test_body_must_be_an_object(self, dao, proposals, alice):
        with pytest.raises(ValidationError):
            proposals.create(dao, ["not", "an", "object"], alice)

    def test_caller_wallet_must_be_proposer(self, dao, chain, store, proposals, bob):
        tx_hash = chain.module_tx(ALICE.address, MODULE, proposal_created())
        with pytest.raises(FieldMismatchError):
            proposals.create(dao, {"txHash": tx_hash, "title": "Budget", "description": "Q1"}, bob)
        assert _doc(store) is None

    def test_sender_must_be_proposer(self, dao, chain, store, proposals):
        """A relayed transaction naming someone else as proposer is rejected."""
        tx_hash = chain.module_tx(MALLORY.address, MODULE, proposal_created(proposer=ALICE))
        with pytest.raises(FieldMismatchError):
            proposals.create(dao, {"txHash": tx_hash, "title": "Budget", "description": "Q1"},
                             identity_for(ALICE, "uid-alice"))

    def test_unlinked_wallet(self, dao, chain, proposals):
        tx_hash = chain.module_tx(ALICE.address, MODULE, proposal_created())
        with pytest.raises(NotAuthenticatedError):
            proposals.create(dao, {"txHash": tx_hash, "title": "Budget", "description": "Q1"},
                             identity_for(ALICE, "uid-alice", linked=False))

    def test_transaction_must_target_the_dao_module(self, dao, chain, proposals, alice):
        tx_hash = chain.transact(ALICE.address, MALLORY.address, [proposal_created()])
        with pytest.raises(TxWrongDestinationError):
            proposals.create(dao, {"txHash": tx_hash, "title": "Budget", "description": "Q1"}, alice)

    def test_unknown_dao(self, chain, proposals, alice):
        tx_hash = chain.module_tx(ALICE.address, MODULE, proposal_created())
        with pytest.raises(NotFoundError):
            proposals.create(DAO_ADDRESS, {"txHash": tx_hash, "title": "Budget", "description": "Q1"}, alice)

    @pytest.mark.parametrize("modules", [{}, {MODULE: {}}, {MODULE: {"address": ""}}])
    def test_dao_without_module_address(self, dao, chain, store, proposals, carol, modules):
        store.update(join_path("daos", dao), {"modules": modules})
        tx_hash = chain.transact(CAROL.address, MALLORY.address, [
            module_event(MODULE, "ProposalCreated", proposalId=7, proposer=CAROL.address, title="t", description="d"),
        ])
        with pytest.raises(NotFoundError, match=MODULE):
            proposals.create(dao, {"txHash": tx_hash, "title": "t", "description": "d"}, carol)
        assert _doc(store) is None

    def test_event_must_be_emitted_by_the_dao_module(self, dao, chain, store, proposals, alice):
        forged = encode_event(MODULE, "ProposalCreated", MALLORY.address,
                              proposalId=7, proposer=ALICE.address, title="Budget", description="Q1")
        tx_hash = chain.module_tx(ALICE.address, MODULE, forged)
        with pytest.raises(EventNotFoundError):
            proposals.create(dao, {"txHash": tx_hash, "title": "Budget", "description": "Q1"}, alice)
        assert _doc(store) is None

    def test_reverted_transaction_writes_nothing(self, dao, chain, store, proposals, alice):
        tx_hash = chain.module_tx(ALICE.address, MODULE, proposal_created(), status=0)
        with pytest.raises(TxRevertedError):
            proposals.create(dao, {"txHash": tx_hash, "title": "Budget", "description": "Q1"}, alice)
        assert _doc(store) is None

    def test_malformed_dao_address(self, proposals, alice):
        with pytest.raises(ValidationError):
            proposals.create("not-an-address", {"txHash": "0x" + "00" * 32, "title": "x"}, alice)

    def test_resubmitting_a_create_overwrites(self, dao, chain, store, proposals, alice, caplog):
        tx_hash = chain.module_tx(ALICE.address, MODULE, proposal_created())
        body = {"txHash": tx_hash, "title": "Budget", "description": "Q1"}
        proposals.create(dao, body, alice)

        with caplog.at_level(logging.WARNING):
            proposals.create(dao, body, alice)

        assert "Replacing existing document" in caplog.text
        assert _doc(store)["status"] == "pending"
        assert len(store.query(join_path("daos", dao, "proposals"))) == 1

    def test_dao_address_is_checksummed(self, dao, chain, store, proposals, alice):
        tx_hash = chain.module_tx(ALICE.address, MODULE, proposal_created())
        proposals.create(dao.lower(), {"txHash": tx_hash, "title": "Budget", "description": "Q1"}, alice)
        assert _doc(store) is not None


class TestVoteOnProposal:
    """Tests for recording votes and finalization."""

    def test_vote_without_finalization(self, proposal, chain, store, proposals, bob):
        tx_hash = chain.module_tx(BOB.address, MODULE, vote_cast(7, BOB))

        result = proposals.vote(DAO_ADDRESS, "7", {"txHash": tx_hash, "voteType": "approve"}, bob)

        assert result == {"success": True, "isFinalized": False, "status": "pending", "txHash": tx_hash}
        doc = _doc(store)
        assert doc["votes"][BOB.address]["approve"] is True
        assert doc["votes"][BOB.address]["txHash"] == tx_hash
        assert doc["voters"] == [BOB.address]
        assert doc["approvals"] == 1
        assert doc["rejections"] == 0

    def test_vote_and_finalization_in_one_receipt(self, proposal, chain, store, proposals, bob):
        tx_hash = chain.module_tx(BOB.address, MODULE, vote_cast(7, BOB), finalized(7, approved=True))

        result = proposals.vote(DAO_ADDRESS, 7, {"txHash": tx_hash, "voteType": "approve"}, bob)

        assert result["isFinalized"] is True
        assert result["status"] == "approved"
        doc = _doc(store)
        assert doc["status"] == "approved"
        assert doc["finalizedTxHash"] == tx_hash
        assert BOB.address in doc["votes"]

    def test_rejecting_finalization(self, proposal, chain, store, proposals, bob):
        tx_hash = chain.module_tx(BOB.address, MODULE, vote_cast(7, BOB, approve=False), finalized(7, approved=False))
        result = proposals.vote(DAO_ADDRESS, 7, {"txHash": tx_hash, "voteType": "reject"}, bob)
        assert result["status"] == "rejected"
        assert _doc(store)["rejections"] == 1

    def test_finalization_of_another_proposal_is_ignored(self, proposal, chain, store, proposals, bob):
        tx_hash = chain.module_tx(BOB.address, MODULE, vote_cast(7, BOB), finalized(8))
        result = proposals.vote(DAO_ADDRESS, 7, {"txHash": tx_hash, "voteType": "approve"}, bob)
        assert result["isFinalized"] is False
        assert _doc(store)["status"] == "pending"

    def test_reverted_vote_leaves_proposal_unchanged(self, proposal, chain, store, proposals, bob):
        before = _doc(store)
        tx_hash = chain.module_tx(BOB.address, MODULE, vote_cast(7, BOB), finalized(7), status=0)

        with pytest.raises(TxRevertedError):
            proposals.vote(DAO_ADDRESS, 7, {"txHash": tx_hash, "voteType": "approve"}, bob)

        assert _doc(store) == before

    def test_votes_from_another_contract_are_ignored(self, proposal, chain, store, proposals, bob):
        forged = encode_event(MODULE, "ProposalFinalized", MALLORY.address, proposalId=7, approved=True)
        tx_hash = chain.module_tx(BOB.address, MODULE, vote_cast(7, BOB), forged)

        result = proposals.vote(DAO_ADDRESS, 7, {"txHash": tx_hash, "voteType": "approve"}, bob)

        assert result["isFinalized"] is False
        assert _doc(store)["status"] == "pending"

    def test_vote_for_another_proposal_in_receipt(self, proposal, chain, proposals, bob):
        tx_hash = chain.module_tx(BOB.address, MODULE, vote_cast(8, BOB))
        with pytest.raises(EventNotFoundError):
            proposals.vote(DAO_ADDRESS, 7, {"txHash": tx_hash, "voteType": "approve"}, bob)

    def test_duplicate_vote(self, proposal, chain, store, proposals, bob):
        first = chain.module_tx(BOB.address, MODULE, vote_cast(7, BOB))
        proposals.vote(DAO_ADDRESS, 7, {"txHash": first, "voteType": "approve"}, bob)
        second = chain.module_tx(BOB.address, MODULE, vote_cast(7, BOB))

        with pytest.raises(StatePreconditionError):
            proposals.vote(DAO_ADDRESS, 7, {"txHash": second, "voteType": "approve"}, bob)
        assert _doc(store)["approvals"] == 1

    def test_proposer_cannot_vote(self, proposal, chain, proposals, alice):
        tx_hash = chain.module_tx(ALICE.address, MODULE, vote_cast(7, ALICE))
        with pytest.raises(StatePreconditionError, match="created"):
            proposals.vote(DAO_ADDRESS, 7, {"txHash": tx_hash, "voteType": "approve"}, alice)

    def test_voter_must_be_caller_wallet(self, proposal, chain, store, proposals, carol):
        tx_hash = chain.module_tx(BOB.address, MODULE, vote_cast(7, BOB))
        with pytest.raises(FieldMismatchError):
            proposals.vote(DAO_ADDRESS, 7, {"txHash": tx_hash, "voteType": "approve"}, carol)
        assert _doc(store)["voters"] == []

    def test_vote_type_must_match_chain(self, proposal, chain, proposals, bob):
        tx_hash = chain.module_tx(BOB.address, MODULE, vote_cast(7, BOB, approve=False))
        with pytest.raises(FieldMismatchError) as excinfo:
            proposals.vote(DAO_ADDRESS, 7, {"txHash": tx_hash, "voteType": "approve"}, bob)
        assert excinfo.value.field == "voteType"

    def test_invalid_vote_type(self, proposal, chain, proposals, bob):
        tx_hash = chain.module_tx(BOB.address, MODULE, vote_cast(7, BOB))
        with pytest.raises(ValidationError):
            proposals.vote(DAO_ADDRESS, 7, {"txHash": tx_hash, "voteType": "maybe"}, bob)

    def test_finalized_proposal_takes_no_votes(self, proposal, chain, proposals, bob, carol):
        tx_hash = chain.module_tx(BOB.address, MODULE, vote_cast(7, BOB), finalized(7))
        proposals.vote(DAO_ADDRESS, 7, {"txHash": tx_hash, "voteType": "approve"}, bob)

        late = chain.module_tx(CAROL.address, MODULE, vote_cast(7, CAROL))
        with pytest.raises(StatePreconditionError, match="status"):
            proposals.vote(DAO_ADDRESS, 7, {"txHash": late, "voteType": "approve"}, carol)

    def test_unknown_proposal(self, dao, chain, proposals, bob):
        tx_hash = chain.module_tx(BOB.address, MODULE, vote_cast(9, BOB))
        with pytest.raises(NotFoundError):
            proposals.vote(DAO_ADDRESS, 9, {"txHash": tx_hash, "voteType": "approve"}, bob)

    def test_invalid_proposal_id(self, dao, proposals, bob):
        with pytest.raises(ValidationError):
            proposals.vote(DAO_ADDRESS, "seven", {"txHash": "0x" + "00" * 32, "voteType": "approve"}, bob)

    def test_concurrent_voters_do_not_clobber_each_other(self, proposal, chain, store, proposals, bob, carol):
        bob_tx = chain.module_tx(BOB.address, MODULE, vote_cast(7, BOB))
        carol_tx = chain.module_tx(CAROL.address, MODULE, vote_cast(7, CAROL, approve=False))

        proposals.vote(DAO_ADDRESS, 7, {"txHash": bob_tx, "voteType": "approve"}, bob)
        proposals.vote(DAO_ADDRESS, 7, {"txHash": carol_tx, "voteType": "reject"}, carol)

        doc = _doc(store)
        assert set(doc["votes"]) == {BOB.address, CAROL.address}
        assert doc["approvals"] == 1 and doc["rejections"] == 1
        assert doc["voters"] == [BOB.address, CAROL.address]

    def test_proposals_cannot_be_updated(self, proposal, proposals, alice):
        with pytest.raises(NotFoundError, match="does not support"):
            proposals.update(DAO_ADDRESS, 7, {"txHash": "0x" + "00" * 32, "title": "x"}, alice)
