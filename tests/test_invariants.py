import pytest

from morpheus_bft.crypto import Identity, generate_keybooks
from morpheus_bft.process import MorpheusProcess
from morpheus_bft.state_tracking import PendingVotes
from morpheus_bft.types import (
    GEN_BLOCK_KEY,
    BlockHash,
    BlockKey,
    BlockType,
    MessageKind,
    SlotNum,
    ViewNum,
)
from morpheus_bft.violations import InvariantViolation, ViolationKind

N, F = 4, 1


@pytest.fixture
def keybooks():
    return generate_keybooks(N, 7)


@pytest.fixture
def process(keybooks):
    return MorpheusProcess(keybooks[0], Identity(1), N, F)


def _produce_tr_block(process):
    process.ready_transactions = [1, 2]
    process.try_produce_blocks()
    sent = process.drain_outbox()
    blocks = [m for m, _ in sent if m.kind == MessageKind.BLOCK]
    votes = [m for m, _ in sent if m.kind == MessageKind.NEW_VOTE]
    return blocks[0].payload.data.key, votes[0].payload


def test_fresh_process_has_no_violations(process):
    assert process.check_invariants() == []


def test_missing_phase_for_current_view(process):
    process.phase_i.clear()
    assert process.check_invariants() == [
        InvariantViolation(ViolationKind.VIEW_HAS_NO_PHASE, view=ViewNum(0))
    ]


def test_view_entry_time_after_current_time(process):
    process.view_entry_time = 50
    violations = process.check_invariants()
    assert violations == [
        InvariantViolation(
            ViolationKind.VIEW_ENTRY_TIME_AFTER_CURRENT_TIME, view_entry_time=50, current_time=0
        )
    ]


def test_empty_tips_reports_missing_genesis_tip(process):
    process.index.tips.clear()
    assert process.check_invariants() == [
        InvariantViolation(ViolationKind.TIPS_MISSING_QCS, missing_tips=[process.genesis_qc])
    ]


def test_max_height_mismatch(process):
    process.index.max_height = (3, GEN_BLOCK_KEY)
    violations = process.check_invariants()
    assert InvariantViolation(ViolationKind.MAX_HEIGHT_MISMATCH, recorded=3, actual=0) in violations


def test_finalized_block_also_unfinalized(process):
    process.index.unfinalized[GEN_BLOCK_KEY] = {process.genesis_qc}
    violations = process.check_invariants()
    assert InvariantViolation(
        ViolationKind.BLOCK_FINALIZED_BUT_ALSO_UNFINALIZED, block=GEN_BLOCK_KEY
    ) in violations


def test_unfinalized_2qc_with_wrong_z(process):
    process.index.unfinalized_2qc.add(process.genesis_qc)
    violations = process.check_invariants()
    kinds = {v.kind for v in violations}
    assert ViolationKind.UNFINALIZED_QC_HAS_WRONG_Z in kinds
    assert ViolationKind.BLOCK_FOR_UNFINALIZED_QC_NOT_IN_UNFINALIZED in kinds
    assert ViolationKind.UNFINALIZED_QC_NOT_IN_QCS not in kinds


def test_pending_vote_for_unknown_block(process):
    unknown = BlockKey(
        type_=BlockType.TR,
        view=ViewNum(0),
        height=1,
        author=Identity(2),
        slot=SlotNum(0),
        hash=BlockHash(0x200),
    )
    process.pending_votes[ViewNum(0)] = PendingVotes(tr_1={unknown: True})
    assert process.check_invariants() == [
        InvariantViolation(
            ViolationKind.PENDING_VOTES_BLOCK_NOT_FOUND,
            view=ViewNum(0),
            block_key=unknown,
            vote_type="tr_1",
        )
    ]


def test_recorded_own_block_keeps_invariants(process):
    _produce_tr_block(process)
    assert process.check_invariants() == []


def test_pending_vote_already_cast(process):
    key, _ = _produce_tr_block(process)
    process.voted_i.add((1, BlockType.TR, key.slot, key.author))
    assert InvariantViolation(
        ViolationKind.PENDING_VOTES_ALREADY_VOTED,
        view=ViewNum(0),
        block_key=key,
        vote_type="tr_1",
    ) in process.check_invariants()


def test_untracked_vote_is_reported(process):
    _, vote = _produce_tr_block(process)
    process.vote_tracker.votes[vote.data] = {}
    violations = process.check_invariants()
    assert InvariantViolation(ViolationKind.UNTRACKED_VOTE, vote_data=vote) in violations
    assert InvariantViolation(
        ViolationKind.VOTE_COUNT_MISMATCH,
        vote_data=vote.data,
        received_count=1,
        tracked_count=0,
    ) in violations