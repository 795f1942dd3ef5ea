import pytest

from morpheus_bft.crypto import Identity, PartialSignature, Signature, ThreshPartial, ThreshSigned
from morpheus_bft.format import format_block_key, format_vote_data
from morpheus_bft.types import BlockHash, BlockKey, BlockType, SlotNum, ViewNum, VoteData
from morpheus_bft.violations import InvariantViolation, ViolationKind


def _key(slot=1, height=2, author=3):
    return BlockKey(
        type_=BlockType.TR,
        view=ViewNum(0),
        height=height,
        author=Identity(author),
        slot=SlotNum(slot),
        hash=BlockHash(author * 0x100 + slot),
    )


def test_view_has_no_phase_message():
    violation = InvariantViolation(ViolationKind.VIEW_HAS_NO_PHASE, view=ViewNum(3))
    assert str(violation) == "Current view 3 has no phase entry"


def test_view_entry_time_message():
    violation = InvariantViolation(
        ViolationKind.VIEW_ENTRY_TIME_AFTER_CURRENT_TIME, view_entry_time=20, current_time=10
    )
    assert str(violation) == "View entry time 20 is after current time 10"


def test_block_key_mismatch_quotes_keys():
    a, b = _key(), _key(slot=2, height=3)
    violation = InvariantViolation(ViolationKind.BLOCK_KEY_MISMATCH, index_key=a, block_key=b)
    assert format_block_key(a) == "Tr[v0,s1,h2,p3,#301]"
    assert str(violation) == (
        f'Block key mismatch: index key "{format_block_key(a)}" '
        f'doesn\'t match block key "{format_block_key(b)}"'
    )


def test_pointing_block_message_is_unquoted():
    a, b = _key(), _key(slot=0, height=1)
    violation = InvariantViolation(
        ViolationKind.POINTING_BLOCK_DOES_NOT_ACTUALLY_POINT, pointing_block=a, pointed_block=b
    )
    assert str(violation) == (
        f"Block {format_block_key(a)} in block_pointed_by for "
        f"{format_block_key(b)} but block data disagrees"
    )


def test_max_height_mismatch_message():
    violation = InvariantViolation(ViolationKind.MAX_HEIGHT_MISMATCH, recorded=4, actual=5)
    assert str(violation) == "max_height (4) does not match actual max height (5)"


def test_unfinalized_qc_wrong_z_reports_z():
    qc = ThreshSigned(VoteData(1, _key()), Signature())
    violation = InvariantViolation(ViolationKind.UNFINALIZED_QC_HAS_WRONG_Z, vote_data=qc)
    assert str(violation) == (
        f'VoteData "{format_vote_data(qc.data, False)}" in unfinalized_2qc has z = 1 instead of 2'
    )


def test_untracked_vote_names_author():
    vote = ThreshPartial(VoteData(0, _key()), Identity(4), PartialSignature())
    violation = InvariantViolation(ViolationKind.UNTRACKED_VOTE, vote_data=vote)
    assert "from Identity(4) but not found in vote_tracker" in str(violation)


def test_pending_votes_already_voted_shows_view_debug():
    violation = InvariantViolation(
        ViolationKind.PENDING_VOTES_ALREADY_VOTED,
        view=ViewNum(2),
        block_key=_key(),
        vote_type="tr_1",
    )
    assert str(violation).endswith("in pending_votes.tr_1 for view ViewNum(2) has already voted")


def test_leader_verification_failed_message():
    violation = InvariantViolation(
        ViolationKind.LEADER_VERIFICATION_FAILED, leader=Identity(2), view=ViewNum(5)
    )
    assert str(violation) == "Current leader 2 for view 5 fails verification"


def test_equality_compares_kind_and_details():
    a = InvariantViolation(ViolationKind.MAX_1QC_HAS_WRONG_Z, z=2)
    b = InvariantViolation(ViolationKind.MAX_1QC_HAS_WRONG_Z, z=2)
    c = InvariantViolation(ViolationKind.MAX_1QC_HAS_WRONG_Z, z=0)
    assert a == b
    assert not a == c
    assert a.details == {"z": 2}


def test_violations_are_not_hashable():
    violation = InvariantViolation(ViolationKind.MAX_1QC_HAS_WRONG_Z, z=2)
    with pytest.raises(TypeError):
        hash(violation)
    assert str(violation) == "max_1qc has z = 2 instead of 1"
    assert violation.details == {"z": 2}