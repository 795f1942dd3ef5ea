"""Descriptions of broken internal state invariants of a Morpheus process."""

from __future__ import annotations

import enum
from typing import Any, Callable, Dict, Iterable

from .format import format_block_key, format_thresh_signed, format_vote_data


class ViolationKind(enum.Enum):
    """The internal invariants a process can break."""

    VIEW_HAS_NO_PHASE = "view_has_no_phase"
    VIEW_ENTRY_TIME_AFTER_CURRENT_TIME = "view_entry_time_after_current_time"
    BLOCK_KEY_MISMATCH = "block_key_mismatch"
    BLOCK_POINTS_TO_MISSING_FROM_POINTED_BY = "block_points_to_missing_from_pointed_by"
    BLOCK_POINTS_TO_MISSING_POINTED_BY_ENTRY = "block_points_to_missing_pointed_by_entry"
    BLOCK_POINTED_BY_CONTAINS_NON_EXISTENT_BLOCK = "block_pointed_by_contains_non_existent_block"
    POINTING_BLOCK_DOES_NOT_ACTUALLY_POINT = "pointing_block_does_not_actually_point"
    BLOCK_POINTED_BY_CONTAINS_NON_EXISTENT_POINTING_BLOCK = (
        "block_pointed_by_contains_non_existent_pointing_block"
    )
    QC_DATA_MISMATCH = "qc_data_mismatch"
    QC_INDEX_MISMATCH = "qc_index_mismatch"
    QC_NOT_IN_QC_INDEX = "qc_not_in_qc_index"
    TIPS_MISSING_QCS = "tips_missing_qcs"
    TIPS_CONTAINS_EXTRA_QCS = "tips_contains_extra_qcs"
    BLOCK_WITH_OBSERVED_2QC_NOT_FINALIZED = "block_with_observed_2qc_not_finalized"
    FINALIZED_BLOCK_NOT_2QC_OBSERVED = "finalized_block_not_2qc_observed"
    MAX_HEIGHT_MISMATCH = "max_height_mismatch"
    MAX_HEIGHT_KEY_DOES_NOT_EXIST = "max_height_key_does_not_exist"
    MAX_1QC_HAS_WRONG_Z = "max_1qc_has_wrong_z"
    FOUND_1QC_GREATER_THAN_MAX_1QC = "found_1qc_greater_than_max_1qc"
    BLOCK_FINALIZED_BUT_ALSO_UNFINALIZED = "block_finalized_but_also_unfinalized"
    UNFINALIZED_QC_HAS_WRONG_Z = "unfinalized_qc_has_wrong_z"
    UNFINALIZED_QC_NOT_IN_QCS = "unfinalized_qc_not_in_qcs"
    BLOCK_FOR_UNFINALIZED_QC_NOT_IN_UNFINALIZED = "block_for_unfinalized_qc_not_in_unfinalized"
    LEADER_VERIFICATION_FAILED = "leader_verification_failed"
    UNTRACKED_VOTE = "untracked_vote"
    VOTE_COUNT_MISMATCH = "vote_count_mismatch"
    MISSING_QC_DESPITE_QUORUM = "missing_qc_despite_quorum"
    PENDING_VOTES_BLOCK_NOT_FOUND = "pending_votes_block_not_found"
    PENDING_VOTES_FOR_FINALIZED_BLOCK = "pending_votes_for_finalized_block"
    PENDING_VOTES_MISSING_ELIGIBLE_BLOCK = "pending_votes_missing_eligible_block"
    PENDING_VOTES_ALREADY_VOTED = "pending_votes_already_voted"


def _quoted(text: str) -> str:
    return f'"{text}"'


def _key(key) -> str:
    return _quoted(format_block_key(key))


def _vote(vote_data) -> str:
    return _quoted(format_vote_data(vote_data, False))


def _qcs(qcs: Iterable) -> str:
    rendered = ", ".join(
        format_thresh_signed(qc, lambda vd: format_vote_data(vd, False), False) for qc in qcs
    )
    return f"[{rendered}]"


V = ViolationKind

_MESSAGES: Dict[ViolationKind, Callable[[Dict[str, Any]], str]] = {
    V.VIEW_HAS_NO_PHASE: lambda d: f"Current view {d['view'].value} has no phase entry",
    V.VIEW_ENTRY_TIME_AFTER_CURRENT_TIME: lambda d: (
        f"View entry time {d['view_entry_time']} is after current time {d['current_time']}"
    ),
    V.BLOCK_KEY_MISMATCH: lambda d: (
        f"Block key mismatch: index key {_key(d['index_key'])} "
        f"doesn't match block key {_key(d['block_key'])}"
    ),
    V.BLOCK_POINTS_TO_MISSING_FROM_POINTED_BY: lambda d: (
        f"Block {_key(d['block'])} points to {_key(d['pointed_to'])} "
        "but not in block_pointed_by"
    ),
    V.BLOCK_POINTS_TO_MISSING_POINTED_BY_ENTRY: lambda d: (
        f"Block {_key(d['block'])} points to {_key(d['pointed_to'])} "
        "which is missing from block_pointed_by"
    ),
    V.BLOCK_POINTED_BY_CONTAINS_NON_EXISTENT_BLOCK: lambda d: (
        f"block_pointed_by contains key {_key(d['key'])} but no such block exists"
    ),
    V.POINTING_BLOCK_DOES_NOT_ACTUALLY_POINT: lambda d: (
        f"Block {format_block_key(d['pointing_block'])} in block_pointed_by for "
        f"{format_block_key(d['pointed_block'])} but block data disagrees"
    ),
    V.BLOCK_POINTED_BY_CONTAINS_NON_EXISTENT_POINTING_BLOCK: lambda d: (
        f"block_pointed_by for {_key(d['pointed_block'])} contains non-existent block "
        f"{_key(d['pointing_block'])}"
    ),
    V.QC_DATA_MISMATCH: lambda d: (
        f"QC data mismatch: index data {_vote(d['index_data'])} "
        f"doesn't match QC data {_vote(d['qc_data'])}"
    ),
    V.QC_INDEX_MISMATCH: lambda d: (
        f"QC index mismatch: qc_index data {_vote(d['qc_index_data'])} "
        f"doesn't match QC data {_vote(d['qc_data'])}"
    ),
    V.QC_NOT_IN_QC_INDEX: lambda d: (
        f"QC {format_vote_data(d['vote_data'], False)} not found in qc_index:\n"
        f"{_quoted(d['qc_index'])}"
    ),
    V.TIPS_MISSING_QCS: lambda d: (
        f"Tips is missing QCs that should be tips: {_qcs(d['missing_tips'])}"
    ),
    V.TIPS_CONTAINS_EXTRA_QCS: lambda d: (
        f"Tips contains QCs that should not be tips: {_qcs(d['extra_tips'])}"
    ),
    V.BLOCK_WITH_OBSERVED_2QC_NOT_FINALIZED: lambda d: (
        f"Block {_key(d['block'])} with 2-QC is observed by another QC "
        "but not marked as finalized"
    ),
    V.FINALIZED_BLOCK_NOT_2QC_OBSERVED: lambda d: (
        f"Block {_key(d['block'])} is marked as finalized but its 2-QC "
        "is not observed by any other QC"
    ),
    V.MAX_HEIGHT_MISMATCH: lambda d: (
        f"max_height ({d['recorded']}) does not match actual max height ({d['actual']})"
    ),
    V.MAX_HEIGHT_KEY_DOES_NOT_EXIST: lambda d: (
        f"max_height_key {_key(d['key'])} does not exist in blocks"
    ),
    V.MAX_1QC_HAS_WRONG_Z: lambda d: f"max_1qc has z = {d['z']} instead of 1",
    V.FOUND_1QC_GREATER_THAN_MAX_1QC: lambda d: (
        f"Found 1-QC {_vote(d['found'])} that is greater than max_1qc "
        f"{_vote(d['max_1qc'])} according to compare_qc"
    ),
    V.BLOCK_FINALIZED_BUT_ALSO_UNFINALIZED: lambda d: (
        f"Block {format_block_key(d['block'])} is marked as finalized "
        "but is also in unfinalized"
    ),
    V.UNFINALIZED_QC_HAS_WRONG_Z: lambda d: (
        f"VoteData {_vote(d['vote_data'].data)} in unfinalized_2qc has "
        f"z = {d['vote_data'].data.z} instead of 2"
    ),
    V.UNFINALIZED_QC_NOT_IN_QCS: lambda d: (
        f"VoteData {_vote(d['vote_data'].data)} in unfinalized_2qc not found in qcs"
    ),
    V.BLOCK_FOR_UNFINALIZED_QC_NOT_IN_UNFINALIZED: lambda d: (
        f"Block {_key(d['block'])} for VoteData in unfinalized_2qc not found in unfinalized"
    ),
    V.LEADER_VERIFICATION_FAILED: lambda d: (
        f"Current leader {d['leader'].value} for view {d['view'].value} fails verification"
    ),
    V.UNTRACKED_VOTE: lambda d: (
        f"VoteData {_vote(d['vote_data'].data)} received in NewVote message from "
        f"Identity({d['vote_data'].author.value}) but not found in vote_tracker"
    ),
    V.VOTE_COUNT_MISMATCH: lambda d: (
        f"VoteData {_vote(d['vote_data'])} received {d['received_count']} times "
        f"but tracked {d['tracked_count']} times"
    ),
    V.MISSING_QC_DESPITE_QUORUM: lambda d: (
        f"Quorum present for {_vote(d['vote_data'])} but no corresponding QC found"
    ),
    V.PENDING_VOTES_BLOCK_NOT_FOUND: lambda d: (
        f"Block {_key(d['block_key'])} in pending_votes.{d['vote_type']} "
        f"for view {d['view'].value} doesn't exist in blocks"
    ),
    V.PENDING_VOTES_FOR_FINALIZED_BLOCK: lambda d: (
        f"Block {_key(d['block_key'])} in pending_votes.{d['vote_type']} "
        f"for view {d['view'].value} is already finalized"
    ),
    V.PENDING_VOTES_MISSING_ELIGIBLE_BLOCK: lambda d: (
        f"Eligible block {_key(d['block_key'])} for {d['vote_type']} vote "
        f"in view {d['view'].value} not in pending_votes"
    ),
    V.PENDING_VOTES_ALREADY_VOTED: lambda d: (
        f"Block {_key(d['block_key'])} in pending_votes.{d['vote_type']} "
        f"for view ViewNum({d['view'].value}) has already voted"
    ),
}


class InvariantViolation:
    """One broken invariant: its kind and the values involved."""

    __hash__ = None

    def __init__(self, kind: ViolationKind, **details: Any):
        self.kind = kind
        self.details = details

    def __eq__(self, other):
        if not isinstance(other, InvariantViolation):
            return NotImplemented
        return self.kind == other.kind and self.details == other.details

    def __str__(self) -> str:
        return _MESSAGES[self.kind](self.details)

    def __repr__(self) -> str:
        return f"InvariantViolation({self.kind.name}: {self})"